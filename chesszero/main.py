"""Game session: one live position, an optional evaluator, the search and the learning loop."""

import asyncio
import logging
import random
from typing import List, Optional

from chesszero.config import CONFIG, SearchConfig
from chesszero.core.board import ChessBoard
from chesszero.core.book import OpeningBook
from chesszero.core.evaluator import PositionEvaluator
from chesszero.core.position import GameState
from chesszero.core.search import MCTSEngine, SearchResult
from chesszero.core.types import Move
from chesszero.core.value_network import ValueNetwork
from chesszero.learning import GameRecord, LearningLoop

logger = logging.getLogger(__name__)


def load_evaluator() -> ValueNetwork:
    """Value network from ``CONFIG.eval.weights_path`` when it loads, else a fresh one."""
    path = CONFIG.eval.weights_path
    if path:
        try:
            return ValueNetwork.load(path)
        except OSError:
            logger.warning("Could not load weights from %s; starting untrained", path, exc_info=True)
    return ValueNetwork()


class Engine:
    def __init__(
        self,
        evaluator: Optional[PositionEvaluator] = None,
        search_config: Optional[SearchConfig] = None,
        fen: Optional[str] = None,
        book_paths: Optional[List[str]] = None,
        learning: Optional[LearningLoop] = None,
    ):
        self.board = ChessBoard(fen)
        self.evaluator = evaluator
        self.search = MCTSEngine(evaluator, config=search_config)
        self.book = OpeningBook(book_paths if book_paths is not None else CONFIG.ui.book_paths)
        self.learning = learning or LearningLoop(evaluator)
        self.last_result: Optional[SearchResult] = None
        self._rng = random.Random(self.search.config.seed)
        self._recorded_board: Optional[ChessBoard] = None

    async def choose_move(self, state: GameState, simulations: Optional[int] = None,
                          time_limit_ms: Optional[int] = None) -> Optional[Move]:
        """Book move, else the MCTS choice, else a random legal move if the search blows up."""
        self.last_result = None
        if state.status.is_terminal:
            return None
        book_move = self.book.probe(state)
        if book_move is not None:
            return book_move
        try:
            self.last_result = await self.search.search(state, simulations, time_limit_ms)
            return self.last_result.best_move
        except Exception:
            logger.exception("Search failed; falling back to a random legal move")
            moves = state.legal_moves()
            return self._rng.choice(moves) if moves else None

    def get_best_move(self, simulations: Optional[int] = None,
                      time_limit_ms: Optional[int] = None) -> Optional[Move]:
        return asyncio.run(self.choose_move(self.board.state, simulations, time_limit_ms))

    def play_engine_move(self, simulations: Optional[int] = None,
                         time_limit_ms: Optional[int] = None) -> Optional[Move]:
        """Search and play on the live board; None when there is no move to play."""
        move = self.get_best_move(simulations, time_limit_ms)
        if move is not None:
            self.board.push(move)
        return move

    def make_move(self, move_uci: str) -> bool:
        return self.board.make_move(move_uci)

    def new_game(self, fen: Optional[str] = None):
        self.board = ChessBoard(fen)
        self.last_result = None

    async def finish_game(self) -> Optional[GameRecord]:
        """Record the finished live game once and auto-train.

        None while the game is still running or when this game was already recorded.
        """
        outcome = self.board.outcome()
        if outcome is None or self._recorded_board is self.board:
            return None
        self._recorded_board = self.board
        record = self.learning.record_completed_game(
            self.board.state.move_log, outcome, start_fen=self.board.start_fen
        )
        if self.learning.auto_train and self.learning.can_train():
            try:
                await self.learning.train()
            except Exception:
                logger.warning("Auto-training failed", exc_info=True)
        return record

    async def self_play(self, num_games: int = 1, simulations: Optional[int] = None,
                        max_plies: Optional[int] = None) -> List[float]:
        """Play the engine against itself, store each game, then run one training session."""
        cfg = CONFIG.learning
        simulations = simulations if simulations is not None else cfg.self_play_simulations
        max_plies = max_plies if max_plies is not None else cfg.self_play_max_plies
        outcomes = []
        for game_num in range(num_games):
            board = ChessBoard()
            while not board.is_game_over() and len(board.state.move_log) < max_plies:
                move = await self.choose_move(board.state, simulations)
                if move is None:
                    break
                board.push(move)
            outcome = board.outcome()
            if outcome is None:
                outcome = 0.5  # unfinished games count as draws
            self.learning.record_completed_game(board.state.move_log, outcome, start_fen=board.start_fen)
            outcomes.append(outcome)
            logger.info("Self-play game %d/%d finished: %s after %d plies",
                        game_num + 1, num_games, outcome, len(board.state.move_log))
        if self.learning.can_train():
            await self.learning.train()
        return outcomes

    def print_board(self):
        self.board.print_board()
