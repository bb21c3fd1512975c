"""Move generation and attack detection over the 8x8 grid.

Generation happens in two stages: per-piece pseudo-legal moves (dispatched
on the piece type) and a king-safety filter that plays each candidate on the
grid, asks whether the mover's king is attacked, and takes it back.

The functions take a ``GameState`` (see ``position.py``) but only read its
grid, side to move, castling rights, en-passant target and king squares.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Optional

from chesszero.core.types import (
    PROMOTION_TYPES,
    CastlingSide,
    Color,
    InvalidPositionError,
    Move,
    Piece,
    PieceType,
    Square,
)

if TYPE_CHECKING:
    from chesszero.core.position import GameState

Grid = List[List[Optional[Piece]]]

KNIGHT_OFFSETS = ((-2, -1), (-2, 1), (-1, -2), (-1, 2), (1, -2), (1, 2), (2, -1), (2, 1))
KING_OFFSETS = ((-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1))
ROOK_DIRECTIONS = ((-1, 0), (1, 0), (0, -1), (0, 1))
BISHOP_DIRECTIONS = ((-1, -1), (-1, 1), (1, -1), (1, 1))
QUEEN_DIRECTIONS = ROOK_DIRECTIONS + BISHOP_DIRECTIONS

KING_HOME_COL = 4
# side -> (rook home col, king target col, rook target col)
CASTLING_COLUMNS = {
    CastlingSide.KINGSIDE: (7, 6, 5),
    CastlingSide.QUEENSIDE: (0, 2, 3),
}


def pawn_direction(color: Color) -> int:
    return -1 if color is Color.WHITE else 1


def home_row(color: Color) -> int:
    return 7 if color is Color.WHITE else 0


def pawn_start_row(color: Color) -> int:
    return 6 if color is Color.WHITE else 1


def on_board(row: int, col: int) -> bool:
    return 0 <= row < 8 and 0 <= col < 8


def find_king(board: Grid, color: Color) -> Square:
    for row in range(8):
        for col in range(8):
            piece = board[row][col]
            if piece is not None and piece.type is PieceType.KING and piece.color is color:
                return row, col
    raise InvalidPositionError(f"No {color.value} king on the board")


# ---------------------------------------------------------------------------
# Attack detection
# ---------------------------------------------------------------------------

def is_square_attacked(board: Grid, square: Square, by_color: Color) -> bool:
    """True if any ``by_color`` piece could move onto ``square`` ignoring its own king's safety."""
    row, col = square

    # pawns attack diagonally forward, so look one row "behind" the target
    pr = row - pawn_direction(by_color)
    for dc in (-1, 1):
        pc = col + dc
        if on_board(pr, pc):
            p = board[pr][pc]
            if p is not None and p.color is by_color and p.type is PieceType.PAWN:
                return True

    for dr, dc in KNIGHT_OFFSETS:
        r, c = row + dr, col + dc
        if on_board(r, c):
            p = board[r][c]
            if p is not None and p.color is by_color and p.type is PieceType.KNIGHT:
                return True

    for dr, dc in KING_OFFSETS:
        r, c = row + dr, col + dc
        if on_board(r, c):
            p = board[r][c]
            if p is not None and p.color is by_color and p.type is PieceType.KING:
                return True

    for directions, sliders in (
        (ROOK_DIRECTIONS, (PieceType.ROOK, PieceType.QUEEN)),
        (BISHOP_DIRECTIONS, (PieceType.BISHOP, PieceType.QUEEN)),
    ):
        for dr, dc in directions:
            r, c = row + dr, col + dc
            while on_board(r, c):
                p = board[r][c]
                if p is not None:
                    if p.color is by_color and p.type in sliders:
                        return True
                    break
                r += dr
                c += dc
    return False


def is_in_check(state: "GameState", color: Color) -> bool:
    return is_square_attacked(state.board, state.king_square(color), color.opposite)


# ---------------------------------------------------------------------------
# Pseudo-legal generation, one generator per piece type
# ---------------------------------------------------------------------------

def _pawn_moves(state: "GameState", square: Square, piece: Piece) -> Iterator[Move]:
    board = state.board
    row, col = square
    step = pawn_direction(piece.color)
    last_row = home_row(piece.color.opposite)

    def with_promotions(to_sq: Square, captured: Optional[Piece]) -> Iterator[Move]:
        if to_sq[0] == last_row:
            for promo in PROMOTION_TYPES:
                yield Move(square, to_sq, piece, captured=captured, promotion=promo)
        else:
            yield Move(square, to_sq, piece, captured=captured)

    one = row + step
    if on_board(one, col) and board[one][col] is None:
        yield from with_promotions((one, col), None)
        two = row + 2 * step
        if row == pawn_start_row(piece.color) and board[two][col] is None:
            yield Move(square, (two, col), piece)

    for dc in (-1, 1):
        c = col + dc
        if not on_board(one, c):
            continue
        target = board[one][c]
        if target is not None:
            if target.color is not piece.color:
                yield from with_promotions((one, c), target)
        elif state.en_passant == (one, c):
            victim = board[row][c]
            if victim is not None and victim.type is PieceType.PAWN and victim.color is not piece.color:
                yield Move(square, (one, c), piece, en_passant_captured=victim)


def _leaper_moves(board: Grid, square: Square, piece: Piece, offsets) -> Iterator[Move]:
    row, col = square
    for dr, dc in offsets:
        r, c = row + dr, col + dc
        if not on_board(r, c):
            continue
        target = board[r][c]
        if target is None or target.color is not piece.color:
            yield Move(square, (r, c), piece, captured=target)


def _slider_moves(board: Grid, square: Square, piece: Piece, directions) -> Iterator[Move]:
    row, col = square
    for dr, dc in directions:
        r, c = row + dr, col + dc
        while on_board(r, c):
            target = board[r][c]
            if target is None:
                yield Move(square, (r, c), piece)
            else:
                if target.color is not piece.color:
                    yield Move(square, (r, c), piece, captured=target)
                break
            r += dr
            c += dc


def _knight_moves(state: "GameState", square: Square, piece: Piece) -> Iterator[Move]:
    return _leaper_moves(state.board, square, piece, KNIGHT_OFFSETS)


def _bishop_moves(state: "GameState", square: Square, piece: Piece) -> Iterator[Move]:
    return _slider_moves(state.board, square, piece, BISHOP_DIRECTIONS)


def _rook_moves(state: "GameState", square: Square, piece: Piece) -> Iterator[Move]:
    return _slider_moves(state.board, square, piece, ROOK_DIRECTIONS)


def _queen_moves(state: "GameState", square: Square, piece: Piece) -> Iterator[Move]:
    return _slider_moves(state.board, square, piece, QUEEN_DIRECTIONS)


def _king_moves(state: "GameState", square: Square, piece: Piece) -> Iterator[Move]:
    yield from _leaper_moves(state.board, square, piece, KING_OFFSETS)
    yield from _castling_moves(state, square, piece)


def _castling_moves(state: "GameState", square: Square, piece: Piece) -> Iterator[Move]:
    board = state.board
    color = piece.color
    row = home_row(color)
    if square != (row, KING_HOME_COL):
        return
    enemy = color.opposite
    in_check: Optional[bool] = None
    for side, (rook_col, king_to, _) in CASTLING_COLUMNS.items():
        if not state.castling.has(color, side):
            continue
        rook = board[row][rook_col]
        if rook is None or rook.type is not PieceType.ROOK or rook.color is not color:
            continue
        step = 1 if rook_col > KING_HOME_COL else -1
        if any(board[row][c] is not None for c in range(KING_HOME_COL + step, rook_col, step)):
            continue
        if in_check is None:
            in_check = is_square_attacked(board, square, enemy)
        if in_check:
            return
        # the king may not cross or land on an attacked square
        path = (KING_HOME_COL + step, king_to)
        if any(is_square_attacked(board, (row, c), enemy) for c in path):
            continue
        yield Move(square, (row, king_to), piece, castling=side)


PIECE_MOVERS: Dict[PieceType, Callable[["GameState", Square, Piece], Iterator[Move]]] = {
    PieceType.PAWN: _pawn_moves,
    PieceType.KNIGHT: _knight_moves,
    PieceType.BISHOP: _bishop_moves,
    PieceType.ROOK: _rook_moves,
    PieceType.QUEEN: _queen_moves,
    PieceType.KING: _king_moves,
}


def pseudo_legal_moves(state: "GameState", color: Color) -> Iterator[Move]:
    board = state.board
    for row in range(8):
        for col in range(8):
            piece = board[row][col]
            if piece is not None and piece.color is color:
                yield from PIECE_MOVERS[piece.type](state, (row, col), piece)


# ---------------------------------------------------------------------------
# Legality
# ---------------------------------------------------------------------------

def leaves_king_attacked(board: Grid, move: Move, king_sq: Square) -> bool:
    """Play ``move`` on the grid, test the mover's king, and restore the grid."""
    (fr, fc), (tr, tc) = move.from_sq, move.to_sq
    color = move.piece.color
    displaced = board[tr][tc]
    board[tr][tc] = move.piece
    board[fr][fc] = None
    if move.en_passant_captured is not None:
        board[fr][tc] = None
    target = (tr, tc) if move.piece.type is PieceType.KING else king_sq
    try:
        return is_square_attacked(board, target, color.opposite)
    finally:
        board[fr][fc] = move.piece
        board[tr][tc] = displaced
        if move.en_passant_captured is not None:
            board[fr][tc] = move.en_passant_captured


def generate_legal_moves(state: "GameState", color: Color) -> List[Move]:
    king_sq = state.king_square(color)
    board = state.board
    return [m for m in pseudo_legal_moves(state, color) if not leaves_king_attacked(board, m, king_sq)]


def gives_check(state: "GameState", move: Move) -> bool:
    """Whether playing ``move`` would attack the opponent's king (rook placement included)."""
    board = state.board
    (fr, fc), (tr, tc) = move.from_sq, move.to_sq
    color = move.piece.color
    placed = Piece(move.promotion, color) if move.promotion is not None else move.piece
    displaced = board[tr][tc]
    board[fr][fc] = None
    board[tr][tc] = placed
    if move.en_passant_captured is not None:
        board[fr][tc] = None
    rook_cols = None
    if move.castling is not None:
        rook_from, _, rook_to = CASTLING_COLUMNS[move.castling]
        rook_cols = (rook_from, rook_to)
        board[tr][rook_to] = board[tr][rook_from]
        board[tr][rook_from] = None
    try:
        return is_square_attacked(board, state.king_square(color.opposite), color)
    finally:
        if rook_cols is not None:
            rook_from, rook_to = rook_cols
            board[tr][rook_from] = board[tr][rook_to]
            board[tr][rook_to] = None
        board[tr][tc] = displaced
        board[fr][fc] = move.piece
        if move.en_passant_captured is not None:
            board[fr][tc] = move.en_passant_captured


def perft(state: "GameState", depth: int) -> int:
    """Count leaf nodes of the legal move tree ``depth`` plies deep."""
    if depth <= 0:
        return 1
    moves = state.legal_moves()
    if depth == 1:
        return len(moves)
    nodes = 0
    for move in moves:
        state.push(move)
        nodes += perft(state, depth - 1)
        state.pop()
    return nodes
