"""Learning loop: keeps finished games and trains the evaluator on them.

Games are stored in memory as UCI move lists plus the final result from
White's point of view (1 win, 0.5 draw, 0 loss). A training session replays
every stored game from its start position and fits the evaluator on one
``(encoded position, result)`` sample per position reached.
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from chesszero.config import CONFIG
from chesszero.core.encoding import encode_position
from chesszero.core.evaluator import TrainingSample
from chesszero.core.position import STARTING_FEN, GameState
from chesszero.core.types import Move

logger = logging.getLogger(__name__)

VALID_OUTCOMES = (0.0, 0.5, 1.0)


@dataclass
class GameRecord:
    moves: List[str]
    outcome: float
    start_fen: str = STARTING_FEN
    timestamp: float = field(default_factory=time.time)

    @property
    def move_count(self) -> int:
        return len(self.moves)


class LearningLoop:
    def __init__(self, evaluator=None, max_games: Optional[int] = None,
                 min_games: Optional[int] = None, auto_train: Optional[bool] = None):
        cfg = CONFIG.learning
        self.evaluator = evaluator
        self.max_games = max_games if max_games is not None else cfg.max_games
        self.min_games = min_games if min_games is not None else cfg.min_games
        self.auto_train = auto_train if auto_train is not None else cfg.auto_train
        self.games: List[GameRecord] = []
        self.sessions_run = 0
        self.last_session_time: Optional[float] = None

    def record_completed_game(self, move_log: Sequence[Union[Move, str]], outcome: float,
                              start_fen: str = STARTING_FEN) -> GameRecord:
        """Store a finished game; only the most recent ``max_games`` are kept."""
        if outcome not in VALID_OUTCOMES:
            raise ValueError(f"Outcome must be one of {VALID_OUTCOMES}, got {outcome!r}")
        moves = [m.uci() if isinstance(m, Move) else str(m) for m in move_log]
        record = GameRecord(moves=moves, outcome=float(outcome), start_fen=start_fen)
        self.games.append(record)
        if len(self.games) > self.max_games:
            self.games = self.games[-self.max_games:]
        return record

    @property
    def is_trainable(self) -> bool:
        return self.evaluator is not None and hasattr(self.evaluator, "train_on_batch")

    def can_train(self) -> bool:
        return self.is_trainable and len(self.games) >= max(1, self.min_games)

    def training_samples(self) -> List[TrainingSample]:
        samples: List[TrainingSample] = []
        for record in self.games:
            state = GameState(record.start_fen)
            samples.append((encode_position(state), record.outcome))
            for text in record.moves:
                move = state.find_uci(text)
                if move is None:
                    logger.warning("Stored game has an illegal move %s; truncating replay", text)
                    break
                state.push(move)
                samples.append((encode_position(state), record.outcome))
        return samples

    async def train(self) -> dict:
        """Run one training session over every stored game."""
        if not self.is_trainable:
            raise RuntimeError("No trainable evaluator attached")
        if not self.games:
            raise RuntimeError("No stored games to train on")

        samples = self.training_samples()
        logger.info("Training on %d games (%d positions)", len(self.games), len(samples))
        report = self.evaluator.train_on_batch(samples)
        if inspect.isawaitable(report):
            report = await report
        self.sessions_run += 1
        self.last_session_time = time.time()
        return report if isinstance(report, dict) else {}

    def win_rate(self) -> float:
        """Share of stored games that ended decisively."""
        if not self.games:
            return 0.0
        decisive = sum(1 for g in self.games if g.outcome in (0.0, 1.0))
        return decisive / len(self.games)

    def get_training_statistics(self) -> dict:
        games = len(self.games)
        return {
            "games_stored": games,
            "sessions_run": self.sessions_run,
            "last_session_time": self.last_session_time,
            "average_game_length": sum(g.move_count for g in self.games) / games if games else 0.0,
            "win_rate": self.win_rate(),
            "has_evaluator": self.evaluator is not None,
            "auto_training": self.auto_train,
        }
