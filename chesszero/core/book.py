"""Polyglot opening book lookup through python-chess."""

import logging
import os
import random
from typing import Iterable, List, Optional

import chess
from chess import polyglot

from chesszero.core.position import GameState
from chesszero.core.types import Move

logger = logging.getLogger(__name__)


class OpeningBook:
    def __init__(self, paths: Iterable[str] = (), rng: Optional[random.Random] = None):
        self.paths: List[str] = [p for p in paths if p]
        self.rng = rng or random.Random()

    @property
    def available(self) -> bool:
        return any(os.path.exists(p) for p in self.paths)

    def probe(self, state: GameState) -> Optional[Move]:
        """Weighted book move for ``state`` mapped onto our own legal moves, or None."""
        if not self.paths:
            return None
        board = chess.Board(state.to_fen())
        for book_path in self.paths:
            if not os.path.exists(book_path):
                continue
            try:
                with polyglot.open_reader(book_path) as reader:
                    entry = reader.weighted_choice(board, random=self.rng)
            except IndexError:
                continue  # position not in this book
            except OSError:
                logger.warning("Could not read opening book %s", book_path, exc_info=True)
                continue
            move = state.find_uci(entry.move.uci())
            if move is not None:
                logger.debug("[%s] Book move: %s", os.path.basename(book_path), move.uci())
                return move
        return None
