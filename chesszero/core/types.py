"""Value types shared by the rules engine and the search: colors, pieces, moves, status."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

# (row, col); row 0 is rank 8, col 0 is file a
Square = Tuple[int, int]

FILES = "abcdefgh"


class InvalidFenError(ValueError):
    """Raised for FEN text that does not describe a playable position."""


class InvalidPositionError(RuntimeError):
    """Raised when a live position breaks a board invariant (e.g. a missing king)."""


class Color(Enum):
    WHITE = "white"
    BLACK = "black"

    @property
    def opposite(self) -> "Color":
        return Color.BLACK if self is Color.WHITE else Color.WHITE

    @property
    def fen(self) -> str:
        return "w" if self is Color.WHITE else "b"


class PieceType(Enum):
    PAWN = "pawn"
    KNIGHT = "knight"
    BISHOP = "bishop"
    ROOK = "rook"
    QUEEN = "queen"
    KING = "king"

    @property
    def symbol(self) -> str:
        return _TYPE_SYMBOLS[self]

    @staticmethod
    def from_symbol(symbol: str) -> "PieceType":
        try:
            return _SYMBOL_TYPES[symbol.lower()]
        except KeyError:
            raise ValueError(f"Unknown piece symbol: {symbol!r}") from None


_TYPE_SYMBOLS = {
    PieceType.PAWN: "p",
    PieceType.KNIGHT: "n",
    PieceType.BISHOP: "b",
    PieceType.ROOK: "r",
    PieceType.QUEEN: "q",
    PieceType.KING: "k",
}
_SYMBOL_TYPES = {v: k for k, v in _TYPE_SYMBOLS.items()}

PROMOTION_TYPES = (PieceType.QUEEN, PieceType.ROOK, PieceType.BISHOP, PieceType.KNIGHT)


@dataclass(frozen=True)
class Piece:
    type: PieceType
    color: Color

    def symbol(self) -> str:
        """FEN letter: uppercase for White, lowercase for Black."""
        s = self.type.symbol
        return s.upper() if self.color is Color.WHITE else s

    @staticmethod
    def from_symbol(symbol: str) -> "Piece":
        color = Color.WHITE if symbol.isupper() else Color.BLACK
        return Piece(PieceType.from_symbol(symbol), color)

    def __str__(self) -> str:
        return self.symbol()


class CastlingSide(Enum):
    KINGSIDE = "kingside"
    QUEENSIDE = "queenside"


class GameStatus(Enum):
    PLAYING = "playing"
    CHECK = "check"
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    DRAW = "draw"

    @property
    def is_terminal(self) -> bool:
        return self in (GameStatus.CHECKMATE, GameStatus.STALEMATE, GameStatus.DRAW)


@dataclass(frozen=True)
class CastlingRights:
    """Castling availability; rights are only ever removed, never granted back."""

    white_kingside: bool = True
    white_queenside: bool = True
    black_kingside: bool = True
    black_queenside: bool = True

    def has(self, color: Color, side: CastlingSide) -> bool:
        return getattr(self, _rights_field(color, side))

    def without(self, color: Color, side: Optional[CastlingSide] = None) -> "CastlingRights":
        """Return rights with one side (or both sides when ``side`` is None) cleared for ``color``."""
        sides = (side,) if side is not None else (CastlingSide.KINGSIDE, CastlingSide.QUEENSIDE)
        changes = {_rights_field(color, s): False for s in sides if self.has(color, s)}
        return replace(self, **changes) if changes else self

    def fen(self) -> str:
        text = ""
        if self.white_kingside:
            text += "K"
        if self.white_queenside:
            text += "Q"
        if self.black_kingside:
            text += "k"
        if self.black_queenside:
            text += "q"
        return text or "-"

    @staticmethod
    def from_fen(field: str) -> "CastlingRights":
        if field == "-":
            return CastlingRights(False, False, False, False)
        if not field or any(ch not in "KQkq" for ch in field):
            raise InvalidFenError(f"Invalid castling field: {field!r}")
        return CastlingRights("K" in field, "Q" in field, "k" in field, "q" in field)


def _rights_field(color: Color, side: CastlingSide) -> str:
    return f"{color.value}_{side.value}"


def square_name(square: Square) -> str:
    row, col = square
    return f"{FILES[col]}{8 - row}"


def parse_square(name: str) -> Square:
    """'e4' -> (4, 4). Raises ValueError for anything that is not a board square."""
    if len(name) != 2 or name[0] not in FILES or name[1] not in "12345678":
        raise ValueError(f"Invalid square: {name!r}")
    return 8 - int(name[1]), FILES.index(name[0])


@dataclass(frozen=True)
class Move:
    """A fully described move: enough to apply it and to take it back."""

    from_sq: Square
    to_sq: Square
    piece: Piece
    captured: Optional[Piece] = None
    castling: Optional[CastlingSide] = None
    en_passant_captured: Optional[Piece] = None
    promotion: Optional[PieceType] = None

    @property
    def is_capture(self) -> bool:
        return self.captured is not None or self.en_passant_captured is not None

    @property
    def is_en_passant(self) -> bool:
        return self.en_passant_captured is not None

    def uci(self) -> str:
        text = square_name(self.from_sq) + square_name(self.to_sq)
        if self.promotion is not None:
            text += self.promotion.symbol
        return text

    def __str__(self) -> str:
        return self.uci()
