"""Position evaluator interface and the material heuristics used by rollouts.

An evaluator maps an encoded position (see ``encoding.py``) to White's
expected score in [0, 1]. ``evaluate`` may return the value directly or an
awaitable; the search handles both.
"""

from typing import Awaitable, Dict, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

import numpy as np

from chesszero.config import CONFIG
from chesszero.core.encoding import PIECE_PLANES
from chesszero.core.movegen import Grid
from chesszero.core.types import Color

TrainingSample = Tuple[np.ndarray, float]


@runtime_checkable
class PositionEvaluator(Protocol):
    def evaluate(self, encoded: np.ndarray) -> Union[float, Awaitable[float]]:
        ...


@runtime_checkable
class TrainableEvaluator(Protocol):
    def evaluate(self, encoded: np.ndarray) -> Union[float, Awaitable[float]]:
        ...

    async def train_on_batch(self, samples: Sequence[TrainingSample]) -> object:
        ...


def material_balance(board: Grid, color: Color,
                     piece_values: Optional[Dict[str, int]] = None) -> Tuple[int, int]:
    """(material of ``color``, material of both sides) in centipawns."""
    values = piece_values or CONFIG.eval.piece_values
    own = total = 0
    for row in board:
        for piece in row:
            if piece is None:
                continue
            v = values[piece.type.name]
            total += v
            if piece.color is color:
                own += v
    return own, total


def material_ratio(board: Grid, color: Color,
                   piece_values: Optional[Dict[str, int]] = None) -> float:
    """Share of the material on the board that belongs to ``color``; 0.5 on a bare board."""
    own, total = material_balance(board, color, piece_values)
    if total == 0:
        return 0.5
    return own / total


class MaterialEvaluator:
    """Evaluator that reads material straight off the encoded planes."""

    def __init__(self, piece_values: Optional[Dict[str, int]] = None):
        values = piece_values or CONFIG.eval.piece_values
        weights = np.zeros(12, dtype=np.float32)
        for (color, piece_type), plane in PIECE_PLANES.items():
            weights[plane] = values[piece_type.name]
        self._weights = weights

    def evaluate(self, encoded: np.ndarray) -> float:
        per_plane = encoded.reshape(-1, 12).sum(axis=0) * self._weights
        white = float(per_plane[:6].sum())
        total = float(per_plane.sum())
        if total == 0:
            return 0.5
        return white / total
