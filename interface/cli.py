"""Play against the engine in the terminal; the human takes White."""

import asyncio
import logging

from chesszero.config import CONFIG
from chesszero.core.types import Color
from chesszero.main import Engine, load_evaluator


def main(human=Color.WHITE, simulations=None):
    logging.basicConfig(level=CONFIG.log_level)
    engine = Engine(load_evaluator())

    while not engine.board.is_game_over():
        engine.print_board()
        print("----------------------------")

        if engine.board.turn is human:
            user_move = input("Enter your move (uci format, e2e4), 'undo' or 'quit': ").strip()
            if user_move == "quit":
                return
            if user_move == "undo":
                # take back the engine reply and our own move
                engine.board.undo_last_move()
                engine.board.undo_last_move()
                continue
            if not engine.make_move(user_move):
                print("Illegal move, try again.")
        else:
            move = engine.play_engine_move(simulations)
            if move is None:
                break
            result = engine.last_result
            if result is not None and result.moves:
                print(f"Engine plays: {move} | visits {result.moves[0].visits} | value {result.moves[0].value:.2f}")
            else:
                print(f"Engine plays: {move}")

    engine.print_board()
    print("Game Over")
    print(f"Result: {engine.board.get_status().value} ({engine.board.outcome()})")
    asyncio.run(engine.finish_game())
    print(engine.learning.get_training_statistics())


if __name__ == "__main__":
    main()
