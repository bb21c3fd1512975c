import logging
import sys

from chesszero.config import CONFIG
from chesszero.core.board import ChessBoard
from chesszero.core.types import InvalidFenError
from chesszero.core.utils import print_info
from chesszero.main import Engine

logger = logging.getLogger(__name__)


class UCI:
    def __init__(self, engine=None):
        self.engine = engine or Engine()

    @property
    def board(self):
        return self.engine.board

    def run(self):
        for line in sys.stdin:
            command = line.strip()
            if not command:
                continue
            if not self.handle(command):
                break

    def handle(self, command):
        """Process one command line; False once the engine should exit."""
        tokens = command.split()
        name = tokens[0]
        if name == "uci":
            print(f"id name {CONFIG.ui.engine_name}")
            print(f"id author {CONFIG.ui.engine_author}")
            print("uciok")
        elif name == "isready":
            print("readyok")
        elif name == "ucinewgame":
            self.engine.new_game()
        elif name == "position":
            self._parse_position(tokens[1:])
        elif name == "go":
            self._go(tokens[1:])
        elif name == "quit":
            return False
        else:
            logger.debug("Ignoring unknown command: %s", command)
        sys.stdout.flush()
        return True

    def _parse_position(self, tokens):
        if not tokens:
            return
        if "moves" in tokens:
            idx = tokens.index("moves")
            setup, moves = tokens[:idx], tokens[idx + 1:]
        else:
            setup, moves = tokens, []
        if not setup:
            logger.warning("Position command without startpos or fen: %s", " ".join(tokens))
            return

        if setup[0] == "startpos":
            board = ChessBoard()
        elif setup[0] == "fen":
            try:
                board = ChessBoard(" ".join(setup[1:]))
            except InvalidFenError:
                logger.warning("Invalid FEN in position command: %s", " ".join(setup[1:]))
                return
        else:
            return

        for move in moves:
            if not board.make_move(move):
                logger.warning("Illegal move in position command: %s", move)
                break
        self.engine.board = board

    def _go(self, tokens):
        simulations = None
        time_limit_ms = None
        i = 0
        while i < len(tokens) - 1:
            key, value = tokens[i], tokens[i + 1]
            try:
                if key == "nodes":
                    simulations = int(value)
                elif key == "movetime":
                    time_limit_ms = int(value)
            except ValueError:
                logger.warning("Bad value for %s: %s", key, value)
            i += 2
        move = self.engine.get_best_move(simulations, time_limit_ms)
        if self.engine.last_result is not None:
            print_info(self.engine.last_result)
        print(f"bestmove {move.uci() if move else '0000'}")


if __name__ == "__main__":
    logging.basicConfig(level=CONFIG.log_level, stream=sys.stderr)
    UCI().run()
