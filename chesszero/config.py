# chesszero/config.py
import logging
import math
import os
import tomllib  # python >=3.11
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

# Material in centipawns; the king carries no material weight
PIECE_VALUES = {
    "PAWN": 100,
    "KNIGHT": 320,
    "BISHOP": 330,
    "ROOK": 500,
    "QUEEN": 900,
    "KING": 0,
}

@dataclass
class SearchConfig:
    simulations: int = 1000
    time_limit_ms: Optional[int] = 5000  # None means simulation budget only
    exploration: float = math.sqrt(2)
    rollout_depth: int = 50
    capture_bias: float = 0.7  # chance to play a capture in rollouts when one exists
    check_bias: float = 0.5    # chance to look for a checking move otherwise
    yield_every: int = 50      # iterations between cooperative yields
    seed: Optional[int] = None
    use_evaluator: bool = True

@dataclass
class EvalConfig:
    piece_values: Dict[str, int] = field(default_factory=lambda: PIECE_VALUES.copy())
    hidden_size: int = 128
    learning_rate: float = 0.001
    epochs: int = 10
    batch_size: int = 32
    weights_path: Optional[str] = None  # .npz file with ValueNetwork weights

@dataclass
class LearningConfig:
    max_games: int = 100
    min_games: int = 1
    auto_train: bool = True
    self_play_simulations: int = 100
    self_play_max_plies: int = 200

@dataclass
class UIConfig:
    engine_name: str = "ChessZero"
    engine_author: str = "ChessZero developers"
    api_port: int = 8000
    book_paths: List[str] = field(default_factory=list)  # polyglot .bin files

@dataclass
class Config:
    search: SearchConfig = field(default_factory=SearchConfig)
    eval: EvalConfig = field(default_factory=EvalConfig)
    learning: LearningConfig = field(default_factory=LearningConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    log_level: str = "INFO"

    @staticmethod
    def load_from_toml(path: str = "config.toml") -> "Config":
        cfg = Config()
        if not os.path.exists(path):
            return cfg
        with open(path, "rb") as f:
            raw = tomllib.load(f)
        # shallow merge of known keys into each section
        for section in ("search", "eval", "learning", "ui"):
            target = getattr(cfg, section)
            for k, v in raw.get(section, {}).items():
                if hasattr(target, k):
                    setattr(target, k, v)
        if "log_level" in raw:
            cfg.log_level = raw["log_level"]
        return cfg

# single globally importable config instance
CONFIG = Config.load_from_toml(os.environ.get("CHESSZERO_CONFIG_TOML", "config.toml"))
# allow env override of the simulation budget for quick debugging
_override_simulations = os.environ.get("CHESSZERO_SIMULATIONS")
if _override_simulations:
    try:
        CONFIG.search.simulations = int(_override_simulations)
    except ValueError:
        logger.warning("Ignoring non-integer CHESSZERO_SIMULATIONS=%r", _override_simulations)
