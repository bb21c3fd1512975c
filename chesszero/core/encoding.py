"""Position encoding for learned evaluators: 8x8x12 binary planes.

Plane order per color: pawn, rook, knight, bishop, queen, king; White
occupies planes 0-5 and Black planes 6-11. Cell ``[row, col, plane]`` is 1.0
when that piece stands on the square. Row 0 is rank 8.
"""

from __future__ import annotations

from typing import Iterable, Union

import numpy as np

from chesszero.core.movegen import Grid
from chesszero.core.position import GameState
from chesszero.core.types import Color, PieceType

ENCODED_SHAPE = (8, 8, 12)

_PLANE_ORDER = (
    PieceType.PAWN,
    PieceType.ROOK,
    PieceType.KNIGHT,
    PieceType.BISHOP,
    PieceType.QUEEN,
    PieceType.KING,
)

PIECE_PLANES = {
    (color, piece_type): offset + idx
    for color, offset in ((Color.WHITE, 0), (Color.BLACK, 6))
    for idx, piece_type in enumerate(_PLANE_ORDER)
}


def encode_position(position: Union[GameState, Grid]) -> np.ndarray:
    board = position.board if isinstance(position, GameState) else position
    planes = np.zeros(ENCODED_SHAPE, dtype=np.float32)
    for row in range(8):
        for col in range(8):
            piece = board[row][col]
            if piece is not None:
                planes[row, col, PIECE_PLANES[(piece.color, piece.type)]] = 1.0
    return planes


def encode_batch(positions: Iterable[Union[GameState, Grid]]) -> np.ndarray:
    encoded = [encode_position(p) for p in positions]
    if not encoded:
        return np.zeros((0,) + ENCODED_SHAPE, dtype=np.float32)
    return np.stack(encoded)
