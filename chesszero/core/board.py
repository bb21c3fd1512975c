"""Board wrapper over GameState providing the square-name move surface and history tracking."""

from typing import List, Optional

from chesszero.core.position import GameState
from chesszero.core.types import Color, GameStatus, Move, Piece, PieceType, parse_square, square_name


class ChessBoard:
    def __init__(self, fen: str = None):
        """Initialize from FEN or the standard starting position."""
        self.state = GameState(fen)
        self.start_fen = self.state.to_fen()

    @property
    def move_history(self) -> List[str]:
        return [m.uci() for m in self.state.move_log]

    @property
    def turn(self) -> Color:
        return self.state.turn

    def reset(self):
        """Reset to the initial position."""
        self.state = GameState()
        self.start_fen = self.state.to_fen()

    def set_fen(self, fen: str):
        """Set board state from a FEN string. Raises InvalidFenError."""
        self.state.set_fen(fen)
        self.start_fen = self.state.to_fen()

    def get_fen(self) -> str:
        """Return the current FEN."""
        return self.state.to_fen()

    def apply_move(self, from_square: str, to_square: str, promotion: Optional[str] = None) -> bool:
        """Play a move given as square names; ``promotion`` is a piece name or letter (default queen)."""
        try:
            from_sq, to_sq = parse_square(from_square), parse_square(to_square)
            promo = _promotion_type(promotion)
        except ValueError:
            return False
        move = self.state.find_move(from_sq, to_sq, promo)
        if move is None:
            return False
        return self.state.apply_move(move)

    def make_move(self, move_str: str) -> bool:
        """Push a UCI move (e.g. 'e2e4'). Returns True if legal."""
        move = self.state.find_uci(move_str)
        if move is None:
            return False
        return self.state.apply_move(move)

    def push(self, move: Move) -> bool:
        return self.state.apply_move(move)

    def undo_last_move(self) -> bool:
        """Pop the last move. Returns False with an empty history."""
        return self.state.undo_move()

    def get_legal_moves(self, from_square: Optional[str] = None) -> List[str]:
        """Destination squares for the piece on ``from_square``, or every legal move in UCI form."""
        if from_square is None:
            return [m.uci() for m in self.state.legal_moves()]
        try:
            from_sq = parse_square(from_square)
        except ValueError:
            return []
        targets = []
        for move in self.state.legal_moves():
            if move.from_sq == from_sq:
                name = square_name(move.to_sq)
                if name not in targets:
                    targets.append(name)
        return targets

    def get_status(self) -> GameStatus:
        return self.state.status

    def captured_pieces(self, color: Color) -> List[Piece]:
        """Pieces of ``color`` that have been captured so far."""
        return list(self.state.captured[color])

    def is_game_over(self):
        """Check if the game has ended."""
        return self.state.status.is_terminal

    def outcome(self) -> Optional[float]:
        """White's score for a finished game (1, 0.5 or 0); None while the game is running."""
        status = self.state.status
        if status is GameStatus.CHECKMATE:
            return 0.0 if self.state.turn is Color.WHITE else 1.0
        if status.is_terminal:
            return 0.5
        return None

    def print_board(self):
        """Print ASCII representation."""
        print(self.state.ascii())


def _promotion_type(promotion: Optional[str]) -> Optional[PieceType]:
    if promotion is None:
        return None
    text = promotion.strip().lower()
    for piece_type in (PieceType.QUEEN, PieceType.ROOK, PieceType.BISHOP, PieceType.KNIGHT):
        if text in (piece_type.value, piece_type.symbol):
            return piece_type
    raise ValueError(f"Invalid promotion piece: {promotion!r}")
