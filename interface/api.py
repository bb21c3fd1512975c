"""FastAPI REST interface for the engine."""

import asyncio
import logging
import threading

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from typing import Optional

from chesszero.config import CONFIG
from chesszero.core.types import Color, InvalidFenError
from chesszero.main import Engine, load_evaluator

app = FastAPI(title=CONFIG.ui.engine_name, version="1.0.0")

# Shared session; every request goes through the lock.
engine = Engine(load_evaluator())
_board_lock = threading.Lock()


class FenRequest(BaseModel):
    fen: str


class MoveRequest(BaseModel):
    move: Optional[str] = None  # UCI format e.g. "e2e4"
    from_square: Optional[str] = None
    to_square: Optional[str] = None
    promotion: Optional[str] = None


class SearchRequest(BaseModel):
    simulations: Optional[int] = None
    time_limit_ms: Optional[int] = None


def _board_payload():
    board = engine.board
    state = board.state
    return {
        "fen": board.get_fen(),
        "turn": state.turn.value,
        "status": state.status.value,
        "legal_moves": board.get_legal_moves(),
        "is_game_over": board.is_game_over(),
        "result": board.outcome(),
        "move_history": board.move_history,
        "captured": {
            color.value: [p.symbol() for p in board.captured_pieces(color)]
            for color in (Color.WHITE, Color.BLACK)
        },
    }


def _search_payload(result, move):
    return {
        "best_move": move.uci() if move else None,
        "simulations": result.simulations if result else 0,
        "elapsed_ms": result.elapsed_ms if result else 0.0,
        "moves": [
            {"move": s.move.uci(), "visits": s.visits, "value": s.value}
            for s in (result.moves if result else [])
        ],
    }


@app.get("/board")
def get_board():
    with _board_lock:
        return _board_payload()


@app.get("/moves/{square}")
def get_moves(square: str):
    with _board_lock:
        return {"square": square, "targets": engine.board.get_legal_moves(square)}


@app.post("/position")
def set_position(req: FenRequest):
    with _board_lock:
        try:
            engine.new_game(req.fen)
        except InvalidFenError as e:
            raise HTTPException(status_code=400, detail=f"Invalid FEN: {e}")
        return {"fen": engine.board.get_fen()}


@app.post("/move")
def make_move(req: MoveRequest):
    with _board_lock:
        if req.move is not None:
            ok = engine.make_move(req.move)
            label = req.move
        elif req.from_square and req.to_square:
            ok = engine.board.apply_move(req.from_square, req.to_square, req.promotion)
            label = f"{req.from_square}-{req.to_square}"
        else:
            raise HTTPException(status_code=400, detail="Provide 'move' or 'from_square' and 'to_square'")
        if not ok:
            raise HTTPException(status_code=400, detail=f"Illegal move: {label}")
        move = engine.board.state.move_log[-1]
        if engine.board.is_game_over():
            asyncio.run(engine.finish_game())
        return {"fen": engine.board.get_fen(), "move": move.uci(), "status": engine.board.get_status().value}


@app.post("/undo")
def undo_move():
    with _board_lock:
        if not engine.board.undo_last_move():
            raise HTTPException(status_code=400, detail="No move to undo")
        return {"fen": engine.board.get_fen()}


@app.post("/search")
def search_move(req: SearchRequest = SearchRequest()):
    with _board_lock:
        if engine.board.is_game_over():
            raise HTTPException(status_code=400, detail="Game is already over")
        move = engine.get_best_move(req.simulations, req.time_limit_ms)
        return _search_payload(engine.last_result, move)


@app.post("/engine-move")
def engine_move(req: SearchRequest = SearchRequest()):
    with _board_lock:
        if engine.board.is_game_over():
            raise HTTPException(status_code=400, detail="Game is already over")
        move = engine.play_engine_move(req.simulations, req.time_limit_ms)
        if move is None:
            raise HTTPException(status_code=400, detail="No move available")
        if engine.board.is_game_over():
            asyncio.run(engine.finish_game())
        payload = _search_payload(engine.last_result, move)
        payload["fen"] = engine.board.get_fen()
        payload["status"] = engine.board.get_status().value
        return payload


@app.post("/reset")
def reset_board():
    with _board_lock:
        engine.new_game()
        return {"fen": engine.board.get_fen()}


@app.get("/training/stats")
def training_stats():
    with _board_lock:
        return engine.learning.get_training_statistics()


@app.post("/training/train")
def train():
    with _board_lock:
        try:
            report = asyncio.run(engine.learning.train())
        except RuntimeError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"report": report, "stats": engine.learning.get_training_statistics()}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=CONFIG.log_level)
    uvicorn.run(app, host="127.0.0.1", port=CONFIG.ui.api_port)
