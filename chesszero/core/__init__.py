"""Core engine components: rules, position encoding, evaluators, and tree search."""

from .board import ChessBoard
from .book import OpeningBook
from .encoding import ENCODED_SHAPE, encode_batch, encode_position
from .evaluator import MaterialEvaluator, PositionEvaluator, TrainableEvaluator
from .position import STARTING_FEN, GameState
from .search import BiasedRolloutPolicy, MCTSEngine, SearchResult
from .types import (
    Color,
    GameStatus,
    InvalidFenError,
    InvalidPositionError,
    Move,
    Piece,
    PieceType,
)
from .value_network import ValueNetwork
