"""Board State: the mutable chess position plus the game-end classifier.

``GameState`` owns the 8x8 grid, side to move, castling rights, en-passant
target, the halfmove/fullmove counters, the move log, captured pieces and
the repetition table. It changes only through ``push``/``pop`` (unchecked,
used by the search on moves it generated itself) and ``apply_move`` /
``undo_move`` (checked, for callers holding arbitrary moves).

Every push stores a snapshot of the auxiliary state, so ``pop`` restores the
position exactly, castling rights, en-passant target and counters included.
After every change the status is recomputed by ``classify_status``.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional

from chesszero.core.movegen import (
    CASTLING_COLUMNS,
    Grid,
    find_king,
    generate_legal_moves,
    home_row,
    is_in_check,
)
from chesszero.core.types import (
    CastlingRights,
    CastlingSide,
    Color,
    GameStatus,
    InvalidFenError,
    InvalidPositionError,
    Move,
    Piece,
    PieceType,
    Square,
    parse_square,
    square_name,
)

STARTING_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"

FIFTY_MOVE_PLIES = 100
REPETITION_LIMIT = 3

# rook home square -> the right it guards
_ROOK_CORNERS: Dict[Square, tuple] = {
    (7, 7): (Color.WHITE, CastlingSide.KINGSIDE),
    (7, 0): (Color.WHITE, CastlingSide.QUEENSIDE),
    (0, 7): (Color.BLACK, CastlingSide.KINGSIDE),
    (0, 0): (Color.BLACK, CastlingSide.QUEENSIDE),
}


@dataclass(frozen=True)
class _Snapshot:
    castling: CastlingRights
    en_passant: Optional[Square]
    halfmove_clock: int
    fullmove_number: int
    status: GameStatus
    signature: str
    legal: List[Move]
    kings: Dict[Color, Square]


class GameState:
    def __init__(self, fen: Optional[str] = None):
        """Initialize from FEN or the standard starting position."""
        self.set_fen(STARTING_FEN if fen is None else fen)

    # ------------------------------------------------------------------
    # Construction / copying
    # ------------------------------------------------------------------

    def set_fen(self, fen: str) -> None:
        """Replace the whole state with the position described by ``fen``.

        Raises InvalidFenError; the state is untouched when parsing fails.
        """
        board, turn, castling, en_passant, halfmove, fullmove = _parse_fen(fen)
        self.board: Grid = board
        self.turn: Color = turn
        self.castling: CastlingRights = castling
        self.en_passant: Optional[Square] = en_passant
        self.halfmove_clock: int = halfmove
        self.fullmove_number: int = fullmove
        self.move_log: List[Move] = []
        self.captured: Dict[Color, List[Piece]] = {Color.WHITE: [], Color.BLACK: []}
        self.repetitions: Counter = Counter()
        self._undo: List[_Snapshot] = []
        self._kings = {Color.WHITE: find_king(board, Color.WHITE), Color.BLACK: find_king(board, Color.BLACK)}
        self._legal = generate_legal_moves(self, self.turn)
        self._signature = self._compute_signature()
        self.repetitions[self._signature] += 1
        self.status: GameStatus = classify_status(self)

    def copy(self) -> "GameState":
        """Independent copy; pieces and moves are immutable so only containers are duplicated."""
        clone = GameState.__new__(GameState)
        clone.board = [row[:] for row in self.board]
        clone.turn = self.turn
        clone.castling = self.castling
        clone.en_passant = self.en_passant
        clone.halfmove_clock = self.halfmove_clock
        clone.fullmove_number = self.fullmove_number
        clone.move_log = list(self.move_log)
        clone.captured = {color: list(pieces) for color, pieces in self.captured.items()}
        clone.repetitions = Counter(self.repetitions)
        clone._undo = list(self._undo)
        clone._kings = dict(self._kings)
        clone._legal = self._legal
        clone._signature = self._signature
        clone.status = self.status
        return clone

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def piece_at(self, square: Square) -> Optional[Piece]:
        row, col = square
        return self.board[row][col]

    def king_square(self, color: Color) -> Square:
        square = self._kings[color]
        piece = self.board[square[0]][square[1]]
        if piece is None or piece.type is not PieceType.KING or piece.color is not color:
            raise InvalidPositionError(f"The {color.value} king is missing from {square_name(square)}")
        return square

    def legal_moves(self, color: Optional[Color] = None) -> List[Move]:
        """All legal moves for ``color`` (default: side to move); a fresh list each call."""
        if color is None or color is self.turn:
            return list(self._legal)
        return generate_legal_moves(self, color)

    def find_move(self, from_sq: Square, to_sq: Square,
                  promotion: Optional[PieceType] = None) -> Optional[Move]:
        """The legal move between two squares; promotions default to a queen."""
        for move in self._legal:
            if move.from_sq != from_sq or move.to_sq != to_sq:
                continue
            if move.promotion is None or move.promotion is (promotion or PieceType.QUEEN):
                return move
        return None

    def find_uci(self, text: str) -> Optional[Move]:
        """Parse a UCI move string ('e2e4', 'e7e8n') into the matching legal move."""
        if len(text) not in (4, 5):
            return None
        try:
            from_sq, to_sq = parse_square(text[:2]), parse_square(text[2:4])
            promotion = PieceType.from_symbol(text[4]) if len(text) == 5 else None
        except ValueError:
            return None
        move = self.find_move(from_sq, to_sq, promotion)
        if move is not None and (move.promotion is None) != (promotion is None):
            return None
        return move

    def is_check(self) -> bool:
        return is_in_check(self, self.turn)

    def repetition_count(self) -> int:
        return self.repetitions[self._signature]

    def signature(self) -> str:
        """Repetition key: placement, side to move, castling, and en-passant square when capturable."""
        return self._signature

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def apply_move(self, move: Move) -> bool:
        """Play ``move`` if it is legal here. Returns False and leaves the state alone otherwise."""
        if move not in self._legal:
            return False
        self.push(move)
        return True

    def undo_move(self) -> bool:
        """Take back the last move. Returns False when there is nothing to undo."""
        return self.pop() is not None

    def push(self, move: Move) -> None:
        """Play a move taken from ``legal_moves()`` without re-checking it."""
        board = self.board
        color = move.piece.color
        (fr, fc), (tr, tc) = move.from_sq, move.to_sq

        self._undo.append(_Snapshot(
            castling=self.castling,
            en_passant=self.en_passant,
            halfmove_clock=self.halfmove_clock,
            fullmove_number=self.fullmove_number,
            status=self.status,
            signature=self._signature,
            legal=self._legal,
            kings=dict(self._kings),
        ))

        board[fr][fc] = None
        if move.en_passant_captured is not None:
            board[fr][tc] = None
            self.captured[move.en_passant_captured.color].append(move.en_passant_captured)
        elif move.captured is not None:
            self.captured[move.captured.color].append(move.captured)

        if move.castling is not None:
            rook_from, _, rook_to = CASTLING_COLUMNS[move.castling]
            board[tr][rook_to] = board[tr][rook_from]
            board[tr][rook_from] = None

        if move.promotion is not None:
            board[tr][tc] = Piece(move.promotion, color)
        else:
            board[tr][tc] = move.piece

        if move.piece.type is PieceType.KING:
            self._kings[color] = (tr, tc)
            self.castling = self.castling.without(color)
        for corner in (move.from_sq, move.to_sq):
            guarded = _ROOK_CORNERS.get(corner)
            if guarded is not None:
                self.castling = self.castling.without(*guarded)

        if move.piece.type is PieceType.PAWN and abs(tr - fr) == 2:
            self.en_passant = ((fr + tr) // 2, fc)
        else:
            self.en_passant = None

        if move.piece.type is PieceType.PAWN or move.is_capture:
            self.halfmove_clock = 0
        else:
            self.halfmove_clock += 1
        if color is Color.BLACK:
            self.fullmove_number += 1

        self.move_log.append(move)
        self.turn = color.opposite
        self._legal = generate_legal_moves(self, self.turn)
        self._signature = self._compute_signature()
        self.repetitions[self._signature] += 1
        self.status = classify_status(self)

    def pop(self) -> Optional[Move]:
        """Undo the last move and return it (None when the log is empty)."""
        if not self.move_log:
            return None
        move = self.move_log.pop()
        snap = self._undo.pop()
        board = self.board
        (fr, fc), (tr, tc) = move.from_sq, move.to_sq

        self.repetitions[self._signature] -= 1
        if self.repetitions[self._signature] <= 0:
            del self.repetitions[self._signature]

        board[fr][fc] = move.piece
        board[tr][tc] = move.captured
        if move.en_passant_captured is not None:
            board[fr][tc] = move.en_passant_captured
            self.captured[move.en_passant_captured.color].pop()
        elif move.captured is not None:
            self.captured[move.captured.color].pop()

        if move.castling is not None:
            rook_from, _, rook_to = CASTLING_COLUMNS[move.castling]
            board[tr][rook_from] = board[tr][rook_to]
            board[tr][rook_to] = None

        self.turn = move.piece.color
        self.castling = snap.castling
        self.en_passant = snap.en_passant
        self.halfmove_clock = snap.halfmove_clock
        self.fullmove_number = snap.fullmove_number
        self.status = snap.status
        self._signature = snap.signature
        self._legal = snap.legal
        self._kings = dict(snap.kings)
        return move

    # ------------------------------------------------------------------
    # Text formats
    # ------------------------------------------------------------------

    def placement_fen(self) -> str:
        ranks = []
        for row in self.board:
            text, empty = "", 0
            for piece in row:
                if piece is None:
                    empty += 1
                    continue
                if empty:
                    text += str(empty)
                    empty = 0
                text += piece.symbol()
            if empty:
                text += str(empty)
            ranks.append(text)
        return "/".join(ranks)

    def to_fen(self) -> str:
        ep = square_name(self.en_passant) if self.en_passant is not None else "-"
        return (
            f"{self.placement_fen()} {self.turn.fen} {self.castling.fen()} {ep} "
            f"{self.halfmove_clock} {self.fullmove_number}"
        )

    def ascii(self) -> str:
        lines = []
        for row_idx, row in enumerate(self.board):
            cells = " ".join(p.symbol() if p is not None else "." for p in row)
            lines.append(f"{8 - row_idx} {cells}")
        lines.append("  a b c d e f g h")
        return "\n".join(lines)

    def _compute_signature(self) -> str:
        ep = "-"
        if self.en_passant is not None and any(m.is_en_passant for m in self._legal):
            ep = square_name(self.en_passant)
        return f"{self.placement_fen()} {self.turn.fen} {self.castling.fen()} {ep}"

    def __repr__(self) -> str:
        return f"GameState({self.to_fen()!r})"


# ---------------------------------------------------------------------------
# Game-end classifier
# ---------------------------------------------------------------------------

def classify_status(state: GameState) -> GameStatus:
    """Derive the status of ``state`` for its side to move.

    Order: checkmate, stalemate, fifty-move rule (100 plies), threefold
    repetition, insufficient material, check, playing.
    """
    in_check = state.is_check()
    if not state._legal:
        return GameStatus.CHECKMATE if in_check else GameStatus.STALEMATE
    if state.halfmove_clock >= FIFTY_MOVE_PLIES:
        return GameStatus.DRAW
    if state.repetition_count() >= REPETITION_LIMIT:
        return GameStatus.DRAW
    if has_insufficient_material(state.board):
        return GameStatus.DRAW
    if in_check:
        return GameStatus.CHECK
    return GameStatus.PLAYING


def has_insufficient_material(board: Grid) -> bool:
    """King vs king, or king and a single minor piece vs king."""
    others = [p for row in board for p in row if p is not None and p.type is not PieceType.KING]
    if not others:
        return True
    return len(others) == 1 and others[0].type in (PieceType.BISHOP, PieceType.KNIGHT)


# ---------------------------------------------------------------------------
# FEN parsing
# ---------------------------------------------------------------------------

def _parse_fen(fen: str):
    fields = fen.split()
    if len(fields) == 4:
        fields += ["0", "1"]
    if len(fields) != 6:
        raise InvalidFenError(f"Expected 6 FEN fields, got {len(fields)}: {fen!r}")
    placement, active, castling_field, ep_field, halfmove, fullmove = fields

    ranks = placement.split("/")
    if len(ranks) != 8:
        raise InvalidFenError(f"Expected 8 ranks in placement: {placement!r}")
    board: Grid = []
    for rank in ranks:
        row: List[Optional[Piece]] = []
        for ch in rank:
            if ch in "12345678":
                row.extend([None] * int(ch))
            else:
                try:
                    row.append(Piece.from_symbol(ch))
                except ValueError:
                    raise InvalidFenError(f"Invalid piece {ch!r} in {placement!r}") from None
        if len(row) != 8:
            raise InvalidFenError(f"Rank {rank!r} does not have 8 squares")
        board.append(row)

    for color in Color:
        kings = sum(1 for row in board for p in row
                    if p is not None and p.type is PieceType.KING and p.color is color)
        if kings != 1:
            raise InvalidFenError(f"Expected exactly one {color.value} king, found {kings}")
    for row in (0, 7):
        if any(p is not None and p.type is PieceType.PAWN for p in board[row]):
            raise InvalidFenError("Pawns cannot stand on the first or last rank")

    if active not in ("w", "b"):
        raise InvalidFenError(f"Invalid active color: {active!r}")
    turn = Color.WHITE if active == "w" else Color.BLACK

    castling = CastlingRights.from_fen(castling_field)
    # drop rights whose king or rook is not at home
    for color in Color:
        r = home_row(color)
        king = board[r][4]
        if king is None or king.type is not PieceType.KING or king.color is not color:
            castling = castling.without(color)
        for side, (rook_col, _, _) in CASTLING_COLUMNS.items():
            rook = board[r][rook_col]
            if rook is None or rook.type is not PieceType.ROOK or rook.color is not color:
                castling = castling.without(color, side)

    en_passant = None
    if ep_field != "-":
        try:
            en_passant = parse_square(ep_field)
        except ValueError:
            raise InvalidFenError(f"Invalid en-passant square: {ep_field!r}") from None
        if en_passant[0] != (2 if turn is Color.WHITE else 5):
            en_passant = None

    try:
        halfmove_clock = int(halfmove)
        fullmove_number = int(fullmove)
    except ValueError:
        raise InvalidFenError(f"Invalid move counters: {halfmove!r} {fullmove!r}") from None
    if halfmove_clock < 0 or fullmove_number < 1:
        raise InvalidFenError("Move counters out of range")

    return board, turn, castling, en_passant, halfmove_clock, fullmove_number
