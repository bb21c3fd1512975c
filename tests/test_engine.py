"""
Unit test suite for the ChessZero engine.

Covers:
- Rules (move generation checked against python-chess, perft counts)
- Special moves (castling, en passant, promotion) and take-back
- Game status (mate, stalemate, draws by rule)
- FEN parsing and the square-name board surface
- Position encoding, material evaluator and the value network
- Monte-Carlo tree search (budget accounting, determinism, fallbacks)
"""

import asyncio
import math
import random

import chess
import numpy as np
import pytest

from chesszero.config import Config, SearchConfig
from chesszero.core.board import ChessBoard
from chesszero.core.encoding import ENCODED_SHAPE, PIECE_PLANES, encode_batch, encode_position
from chesszero.core.evaluator import (
    MaterialEvaluator,
    PositionEvaluator,
    TrainableEvaluator,
    material_ratio,
)
from chesszero.core.movegen import gives_check, is_in_check, perft
from chesszero.core.position import GameState, has_insufficient_material
from chesszero.core.search import BiasedRolloutPolicy, MCTSEngine, SearchNode
from chesszero.core.types import (
    CastlingSide,
    Color,
    GameStatus,
    InvalidFenError,
    InvalidPositionError,
    Piece,
    PieceType,
    parse_square,
    square_name,
)
from chesszero.core.utils import format_info, value_to_cp
from chesszero.core.value_network import ValueNetwork

KIWIPETE = "r3k2r/p1ppqpb1/bn2pnp1/3PN3/1p2P3/2N2Q1p/PPPBBPPP/R3K2R w KQkq - 0 1"
POSITION_3 = "8/2p5/3p4/KP5r/1R3p1k/8/4P1P1/8 w - - 0 1"
POSITION_4 = "r3k2r/Pppp1ppp/1b3nbN/nP6/BBP1P3/q4N2/Pp1P2PP/R2Q1RK1 w kq - 0 1"
FOOLS_MATE = ["f2f3", "e7e5", "g2g4", "d8h4"]


def play(state, *moves):
    for text in moves:
        move = state.find_uci(text)
        assert move is not None, f"{text} is not legal in {state.to_fen()}"
        state.push(move)
    return state


def uci_set(state):
    return {m.uci() for m in state.legal_moves()}


def quick_config(**overrides):
    params = dict(simulations=40, time_limit_ms=None, rollout_depth=8, seed=1, yield_every=10)
    params.update(overrides)
    return SearchConfig(**params)


def first_move_policy(state, moves, rng):
    return moves[0]


# ════════════════════════════════════════════════════════════════════════════
#  MOVE GENERATION
# ════════════════════════════════════════════════════════════════════════════


class TestMoveGeneration:
    def test_initial_position(self):
        state = GameState()
        assert state.to_fen() == chess.STARTING_FEN
        assert len(state.legal_moves()) == 20
        assert state.turn is Color.WHITE
        assert state.status is GameStatus.PLAYING

    @pytest.mark.parametrize(
        "fen,depth,expected",
        [
            (chess.STARTING_FEN, 1, 20),
            (chess.STARTING_FEN, 2, 400),
            (chess.STARTING_FEN, 3, 8902),
            (KIWIPETE, 1, 48),
            (KIWIPETE, 2, 2039),
            (POSITION_3, 1, 14),
            (POSITION_3, 2, 191),
            (POSITION_3, 3, 2812),
            (POSITION_4, 1, 6),
            (POSITION_4, 2, 264),
        ],
    )
    def test_perft(self, fen, depth, expected):
        assert perft(GameState(fen), depth) == expected

    @pytest.mark.parametrize("fen", [chess.STARTING_FEN, KIWIPETE, POSITION_3, POSITION_4])
    def test_legal_moves_match_python_chess(self, fen):
        assert uci_set(GameState(fen)) == {m.uci() for m in chess.Board(fen).legal_moves}

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_random_game_matches_python_chess(self, seed):
        """Walk a random game and compare every position with python-chess."""
        rng = random.Random(seed)
        state = GameState()
        reference = chess.Board()
        for _ in range(120):
            assert uci_set(state) == {m.uci() for m in reference.legal_moves}
            assert state.to_fen() == reference.fen(en_passant="fen")
            moves = sorted(state.legal_moves(), key=lambda m: m.uci())
            if not moves or state.status.is_terminal:
                break
            move = rng.choice(moves)
            state.push(move)
            reference.push(chess.Move.from_uci(move.uci()))

    def test_legal_moves_returns_fresh_list(self):
        state = GameState()
        moves = state.legal_moves()
        moves.clear()
        assert len(state.legal_moves()) == 20

    def test_no_legal_move_leaves_king_attacked(self):
        state = GameState(KIWIPETE)
        for move in state.legal_moves():
            state.push(move)
            assert not is_in_check(state, move.piece.color)
            state.pop()

    def test_legal_moves_for_other_color(self):
        state = GameState()
        assert len(state.legal_moves(Color.BLACK)) == 20

    def test_gives_check(self):
        state = play(GameState(), "e2e4", "f7f6")
        check = state.find_uci("d1h5")
        quiet = state.find_uci("d1e2")
        assert gives_check(state, check)
        assert not gives_check(state, quiet)
        assert state.to_fen() == play(GameState(), "e2e4", "f7f6").to_fen()


# ════════════════════════════════════════════════════════════════════════════
#  SPECIAL MOVES AND TAKE-BACK
# ════════════════════════════════════════════════════════════════════════════


class TestSpecialMoves:
    def test_kingside_castle_moves_rook(self):
        state = GameState("r3k2r/8/8/8/8/8/8/R3K2R w KQkq - 0 1")
        move = state.find_uci("e1g1")
        assert move.castling is CastlingSide.KINGSIDE
        state.push(move)
        assert state.piece_at(parse_square("f1")) == Piece(PieceType.ROOK, Color.WHITE)
        assert state.piece_at(parse_square("h1")) is None
        assert state.castling.fen() == "kq"
        state.pop()
        assert state.piece_at(parse_square("h1")) == Piece(PieceType.ROOK, Color.WHITE)
        assert state.piece_at(parse_square("e1")) == Piece(PieceType.KING, Color.WHITE)
        assert state.castling.fen() == "KQkq"

    def test_queenside_castle(self):
        state = GameState("r3k2r/8/8/8/8/8/8/R3K2R b KQkq - 0 1")
        play(state, "e8c8")
        assert state.piece_at(parse_square("d8")) == Piece(PieceType.ROOK, Color.BLACK)
        assert state.piece_at(parse_square("c8")) == Piece(PieceType.KING, Color.BLACK)

    def test_cannot_castle_through_attacked_square(self):
        state = GameState("r3k2r/8/8/8/8/8/5r2/R3K2R w KQkq - 0 1")
        moves = uci_set(state)
        assert "e1g1" not in moves
        assert "e1c1" in moves

    def test_cannot_castle_out_of_check(self):
        state = GameState("r3k2r/8/8/8/8/8/4r3/R3K2R w KQkq - 0 1")
        moves = uci_set(state)
        assert "e1g1" not in moves
        assert "e1c1" not in moves

    def test_rook_capture_clears_castling_rights(self):
        state = GameState("r3k2r/8/8/8/8/8/8/R3K2R w KQkq - 0 1")
        play(state, "a1a8")
        assert state.castling.fen() == "Kk"
        assert not state.castling.has(Color.BLACK, CastlingSide.QUEENSIDE)

    def test_king_move_clears_both_rights(self):
        state = GameState("r3k2r/8/8/8/8/8/8/R3K2R w KQkq - 0 1")
        play(state, "e1f1")
        assert state.castling.fen() == "kq"

    def test_en_passant_capture_and_undo(self):
        fen = "rnbqkbnr/ppp1pppp/8/3pP3/8/8/PPPP1PPP/RNBQKBNR w KQkq d6 0 3"
        state = GameState(fen)
        move = state.find_uci("e5d6")
        assert move.is_en_passant
        state.push(move)
        assert state.piece_at(parse_square("d5")) is None
        assert state.piece_at(parse_square("d6")) == Piece(PieceType.PAWN, Color.WHITE)
        assert state.captured[Color.BLACK] == [Piece(PieceType.PAWN, Color.BLACK)]
        state.pop()
        assert state.to_fen() == fen
        assert state.captured[Color.BLACK] == []

    def test_en_passant_only_on_next_move(self):
        state = play(GameState(), "e2e4", "a7a6", "e4e5", "d7d5")
        assert "e5d6" in uci_set(state)
        play(state, "g1f3", "a6a5")
        assert "e5d6" not in uci_set(state)

    def test_all_four_promotions_offered(self):
        state = GameState("8/P7/8/8/8/8/8/k6K w - - 0 1")
        promotions = {m.uci() for m in state.legal_moves() if m.from_sq == parse_square("a7")}
        assert promotions == {"a7a8q", "a7a8r", "a7a8b", "a7a8n"}

    def test_underpromotion_and_undo(self):
        state = GameState("8/P7/8/8/8/8/8/k6K w - - 0 1")
        play(state, "a7a8r")
        assert state.piece_at(parse_square("a8")) == Piece(PieceType.ROOK, Color.WHITE)
        assert state.status is GameStatus.CHECK
        state.pop()
        assert state.piece_at(parse_square("a7")) == Piece(PieceType.PAWN, Color.WHITE)
        assert state.piece_at(parse_square("a8")) is None

    def test_uci_without_promotion_letter_rejected_for_promotion(self):
        state = GameState("8/P7/8/8/8/8/8/k6K w - - 0 1")
        assert state.find_uci("a7a8") is None
        assert state.find_uci("h1h2q") is None

    def test_push_pop_restores_everything(self):
        state = GameState(KIWIPETE)
        fen = state.to_fen()
        legal = uci_set(state)
        repetitions = dict(state.repetitions)
        for move in state.legal_moves():
            state.push(move)
            state.pop()
            assert state.to_fen() == fen
            assert uci_set(state) == legal
            assert dict(state.repetitions) == repetitions
            assert state.status is GameStatus.PLAYING

    def test_apply_illegal_move_leaves_state(self):
        state = GameState()
        other = GameState("8/P7/8/8/8/8/8/k6K w - - 0 1").legal_moves()[0]
        assert state.apply_move(other) is False
        assert state.to_fen() == chess.STARTING_FEN

    def test_undo_with_empty_history(self):
        state = GameState()
        assert state.undo_move() is False
        assert state.pop() is None

    def test_copy_is_independent(self):
        state = play(GameState(), "e2e4")
        clone = state.copy()
        play(clone, "e7e5", "g1f3")
        assert state.to_fen() == play(GameState(), "e2e4").to_fen()
        clone.pop()
        clone.pop()
        clone.pop()
        assert clone.to_fen() == chess.STARTING_FEN
        assert state.move_log[-1].uci() == "e2e4"


# ════════════════════════════════════════════════════════════════════════════
#  GAME STATUS
# ════════════════════════════════════════════════════════════════════════════


class TestGameStatus:
    def test_fools_mate(self):
        state = play(GameState(), *FOOLS_MATE)
        assert state.status is GameStatus.CHECKMATE
        assert state.turn is Color.WHITE
        assert state.legal_moves() == []

    def test_stalemate(self):
        state = GameState("7k/5Q2/6K1/8/8/8/8/8 b - - 0 1")
        assert state.status is GameStatus.STALEMATE

    def test_check(self):
        state = play(GameState(), "e2e4", "f7f6", "d1h5")
        assert state.status is GameStatus.CHECK
        assert state.is_check()

    @pytest.mark.parametrize(
        "fen",
        [
            "8/8/8/4k3/8/8/8/4K3 w - - 0 1",
            "8/8/8/4k3/8/8/8/4K3 b - - 0 1",
            "8/8/8/4k3/8/8/8/2B1K3 w - - 0 1",
            "8/8/8/4k3/8/8/8/2B1K3 b - - 0 1",
            "8/8/8/4k3/8/8/8/1n2K3 w - - 0 1",
        ],
    )
    def test_insufficient_material_is_draw(self, fen):
        assert GameState(fen).status is GameStatus.DRAW

    def test_rook_is_sufficient(self):
        state = GameState("8/8/8/4k3/8/8/8/R3K3 w - - 0 1")
        assert not has_insufficient_material(state.board)
        assert state.status is GameStatus.PLAYING

    def test_threefold_repetition(self):
        state = GameState()
        shuffle = ["g1f3", "g8f6", "f3g1", "f6g8"]
        play(state, *shuffle)
        assert state.repetition_count() == 2
        assert state.status is GameStatus.PLAYING
        play(state, *shuffle)
        assert state.repetition_count() == 3
        assert state.status is GameStatus.DRAW

    def test_repetition_undo_decrements(self):
        state = GameState()
        play(state, "g1f3", "g8f6", "f3g1", "f6g8")
        state.pop()
        assert state.repetitions[GameState().signature()] == 1

    def test_fifty_move_rule(self):
        state = GameState("8/8/8/4k3/8/8/8/R3K3 w - - 99 60")
        assert state.status is GameStatus.PLAYING
        play(state, "a1a2")
        assert state.halfmove_clock == 100
        assert state.status is GameStatus.DRAW

    def test_pawn_move_resets_halfmove_clock(self):
        state = play(GameState(), "g1f3", "g8f6")
        assert state.halfmove_clock == 2
        play(state, "e2e4")
        assert state.halfmove_clock == 0
        assert state.fullmove_number == 2

    def test_checkmate_beats_fifty_move_rule(self):
        # back-rank mate delivered on the hundredth quiet ply
        state = GameState("6k1/5ppp/8/8/8/8/8/R5K1 w - - 99 80")
        play(state, "a1a8")
        assert state.status is GameStatus.CHECKMATE


# ════════════════════════════════════════════════════════════════════════════
#  FEN AND INVARIANTS
# ════════════════════════════════════════════════════════════════════════════


class TestFen:
    @pytest.mark.parametrize(
        "fen",
        [
            chess.STARTING_FEN,
            KIWIPETE,
            POSITION_3,
            POSITION_4,
            "rnbqkbnr/ppp1pppp/8/3pP3/8/8/PPPP1PPP/RNBQKBNR w KQkq d6 0 3",
        ],
    )
    def test_round_trip(self, fen):
        assert GameState(fen).to_fen() == fen

    def test_four_field_fen(self):
        state = GameState("8/8/8/4k3/8/8/8/R3K3 w - -")
        assert state.halfmove_clock == 0
        assert state.fullmove_number == 1

    def test_rights_without_rook_dropped(self):
        state = GameState("r3k3/8/8/8/8/8/8/4K2R w KQkq - 0 1")
        assert state.castling.fen() == "Kq"

    @pytest.mark.parametrize(
        "fen",
        [
            "",
            "invalid",
            "8/8/8/8/8/8/8/8 w - - 0 1",
            "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR x KQkq - 0 1",
            "rnbqkbnr/pppppppp/9/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1",
            "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNX w KQkq - 0 1",
            "Pnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1",
            "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - x 1",
            "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq z9 0 1",
            "rnbqkbnr/pppppppp/²²²²/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1",
            "rnbqkbnr/pppppppp/08/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1",
        ],
    )
    def test_invalid_fen(self, fen):
        with pytest.raises(InvalidFenError):
            GameState(fen)

    def test_invalid_fen_is_value_error(self):
        assert issubclass(InvalidFenError, ValueError)

    def test_failed_set_fen_keeps_position(self):
        state = play(GameState(), "e2e4")
        fen = state.to_fen()
        with pytest.raises(InvalidFenError):
            state.set_fen("not a fen")
        assert state.to_fen() == fen

    def test_missing_king_detected(self):
        state = GameState()
        state.board[7][4] = None
        with pytest.raises(InvalidPositionError):
            state.king_square(Color.WHITE)

    def test_square_names(self):
        assert parse_square("a8") == (0, 0)
        assert parse_square("h1") == (7, 7)
        assert square_name((4, 4)) == "e4"
        with pytest.raises(ValueError):
            parse_square("i9")


# ════════════════════════════════════════════════════════════════════════════
#  BOARD SURFACE
# ════════════════════════════════════════════════════════════════════════════


class TestChessBoard:
    def test_apply_move_by_squares(self):
        b = ChessBoard()
        assert b.apply_move("e2", "e4") is True
        assert b.move_history == ["e2e4"]
        assert b.turn is Color.BLACK

    def test_illegal_and_malformed_moves(self):
        b = ChessBoard()
        assert b.apply_move("e2", "e5") is False
        assert b.apply_move("z9", "e4") is False
        assert b.apply_move("e7", "e5") is False
        assert b.make_move("zzzz") is False
        assert b.get_fen() == chess.STARTING_FEN

    def test_promotion_by_name(self):
        b = ChessBoard("8/P7/8/8/8/8/8/k6K w - - 0 1")
        assert b.apply_move("a7", "a8", "knight") is True
        assert b.state.piece_at(parse_square("a8")) == Piece(PieceType.KNIGHT, Color.WHITE)
        assert b.move_history == ["a7a8n"]

    def test_promotion_defaults_to_queen(self):
        b = ChessBoard("8/P7/8/8/8/8/8/k6K w - - 0 1")
        assert b.apply_move("a7", "a8") is True
        assert b.move_history == ["a7a8q"]

    def test_bad_promotion_piece(self):
        b = ChessBoard("8/P7/8/8/8/8/8/k6K w - - 0 1")
        assert b.apply_move("a7", "a8", "king") is False

    def test_legal_targets(self):
        b = ChessBoard()
        assert set(b.get_legal_moves("g1")) == {"f3", "h3"}
        assert set(b.get_legal_moves("e2")) == {"e3", "e4"}
        assert b.get_legal_moves("e4") == []
        assert b.get_legal_moves("zz") == []
        assert len(b.get_legal_moves()) == 20

    def test_captured_pieces(self):
        b = ChessBoard()
        for move in ("e2e4", "d7d5", "e4d5"):
            assert b.make_move(move)
        assert b.captured_pieces(Color.BLACK) == [Piece(PieceType.PAWN, Color.BLACK)]
        assert b.captured_pieces(Color.WHITE) == []

    def test_outcome(self):
        b = ChessBoard()
        assert b.outcome() is None
        for move in FOOLS_MATE:
            b.make_move(move)
        assert b.is_game_over()
        assert b.outcome() == 0.0
        assert ChessBoard("8/8/8/4k3/8/8/8/4K3 w - - 0 1").outcome() == 0.5

    def test_undo_and_reset(self):
        b = ChessBoard()
        assert b.undo_last_move() is False
        b.make_move("e2e4")
        assert b.undo_last_move() is True
        assert b.get_fen() == chess.STARTING_FEN
        b.make_move("d2d4")
        b.reset()
        assert b.move_history == []

    def test_print_board(self, capsys):
        ChessBoard().print_board()
        out = capsys.readouterr().out
        assert "r n b q k b n r" in out
        assert "a b c d e f g h" in out


# ════════════════════════════════════════════════════════════════════════════
#  ENCODING AND EVALUATORS
# ════════════════════════════════════════════════════════════════════════════


class TestEncoding:
    def test_start_position_planes(self):
        planes = encode_position(GameState())
        assert planes.shape == ENCODED_SHAPE
        assert planes.dtype == np.float32
        assert planes.sum() == 32
        assert planes[6, :, PIECE_PLANES[(Color.WHITE, PieceType.PAWN)]].sum() == 8
        assert planes[0, 4, PIECE_PLANES[(Color.BLACK, PieceType.KING)]] == 1.0
        assert planes[7, 0, PIECE_PLANES[(Color.WHITE, PieceType.ROOK)]] == 1.0

    def test_plane_layout(self):
        assert PIECE_PLANES[(Color.WHITE, PieceType.PAWN)] == 0
        assert PIECE_PLANES[(Color.WHITE, PieceType.KING)] == 5
        assert PIECE_PLANES[(Color.BLACK, PieceType.PAWN)] == 6
        assert PIECE_PLANES[(Color.BLACK, PieceType.KING)] == 11

    def test_batch(self):
        batch = encode_batch([GameState(), GameState(KIWIPETE)])
        assert batch.shape == (2,) + ENCODED_SHAPE
        assert encode_batch([]).shape == (0,) + ENCODED_SHAPE


class TestEvaluators:
    def test_material_evaluator(self):
        ev = MaterialEvaluator()
        assert ev.evaluate(encode_position(GameState())) == pytest.approx(0.5)
        assert ev.evaluate(encode_position(GameState("4k3/8/8/8/8/8/8/3QK3 w - - 0 1"))) == pytest.approx(1.0)
        assert ev.evaluate(encode_position(GameState("8/8/8/4k3/8/8/8/4K3 w - - 0 1"))) == pytest.approx(0.5)

    def test_material_ratio(self):
        state = GameState("4k3/8/8/8/8/8/8/R3K3 w - - 0 1")
        assert material_ratio(state.board, Color.WHITE) == pytest.approx(1.0)
        assert material_ratio(state.board, Color.BLACK) == pytest.approx(0.0)

    def test_protocols(self):
        assert isinstance(MaterialEvaluator(), PositionEvaluator)
        assert not isinstance(MaterialEvaluator(), TrainableEvaluator)
        assert isinstance(ValueNetwork(hidden_size=4), TrainableEvaluator)


class TestValueNetwork:
    def setup_method(self):
        self.net = ValueNetwork(hidden_size=16, learning_rate=0.1, epochs=20, batch_size=64)

    def test_evaluate_in_range(self):
        value = self.net.evaluate(encode_position(GameState()))
        assert 0.0 <= value <= 1.0

    def test_training_lowers_loss(self):
        samples = [
            (encode_position(GameState("4k3/8/8/8/8/8/8/3QK3 w - - 0 1")), 1.0),
            (encode_position(GameState("3qk3/8/8/8/8/8/8/4K3 w - - 0 1")), 0.0),
        ]
        report = asyncio.run(self.net.train_on_batch(samples))
        assert report["samples"] == 2
        assert len(report["loss"]) == 20
        assert report["loss"][-1] < report["loss"][0]
        assert self.net.get_model_info()["training_sessions"] == 1
        assert self.net.is_training is False

    def test_empty_batch_rejected(self):
        with pytest.raises(ValueError):
            asyncio.run(self.net.train_on_batch([]))

    def test_concurrent_training_rejected(self):
        self.net.is_training = True
        with pytest.raises(RuntimeError):
            asyncio.run(self.net.train_on_batch([(encode_position(GameState()), 0.5)]))

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "value.npz"
        self.net.save(path)
        loaded = ValueNetwork.load(path)
        x = encode_batch([GameState(), GameState(KIWIPETE)])
        assert np.allclose(self.net.predict(x), loaded.predict(x))
        assert loaded.hidden_size == 16


# ════════════════════════════════════════════════════════════════════════════
#  MONTE-CARLO TREE SEARCH
# ════════════════════════════════════════════════════════════════════════════


class BrokenEvaluator:
    def __init__(self):
        self.calls = 0

    def evaluate(self, encoded):
        self.calls += 1
        raise RuntimeError("model unavailable")


class NanEvaluator:
    def evaluate(self, encoded):
        return float("nan")


class AsyncEvaluator:
    def __init__(self):
        self.calls = 0

    async def evaluate(self, encoded):
        self.calls += 1
        await asyncio.sleep(0)
        return 0.5


class TestSearch:
    def test_visits_add_up(self):
        engine = MCTSEngine(config=quick_config(simulations=50), rollout_policy=first_move_policy)
        result = engine.search_sync(GameState())
        assert result.simulations == 50
        assert result.root_visits == 50
        assert sum(s.visits for s in result.moves) == 50
        assert result.best_move is not None
        assert result.best_move.uci() in uci_set(GameState())

    def test_best_move_has_most_visits(self):
        result = MCTSEngine(config=quick_config()).search_sync(GameState())
        assert result.moves[0].move == result.best_move
        assert result.moves[0].visits == max(s.visits for s in result.moves)

    def test_same_seed_same_move(self):
        first = MCTSEngine(config=quick_config(seed=7, simulations=60)).search_sync(GameState(KIWIPETE))
        second = MCTSEngine(config=quick_config(seed=7, simulations=60)).search_sync(GameState(KIWIPETE))
        assert first.best_move == second.best_move
        assert [s.visits for s in first.moves] == [s.visits for s in second.moves]

    def test_search_leaves_state_untouched(self):
        state = play(GameState(), "e2e4", "e7e5")
        fen = state.to_fen()
        MCTSEngine(config=quick_config()).search_sync(state)
        assert state.to_fen() == fen
        assert len(state.move_log) == 2
        assert state.repetition_count() == 1

    def test_terminal_root_has_no_move(self):
        state = play(GameState(), *FOOLS_MATE)
        result = MCTSEngine(config=quick_config()).search_sync(state)
        assert result.best_move is None
        assert result.simulations == 0

    def test_draw_root_has_no_move(self):
        result = MCTSEngine(config=quick_config()).search_sync(GameState("8/8/8/4k3/8/8/8/4K3 w - - 0 1"))
        assert result.best_move is None

    def test_finds_mate_in_one(self):
        state = GameState("6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1")
        result = MCTSEngine(config=quick_config(simulations=400, seed=3)).search_sync(state)
        assert result.best_move.uci() == "a1a8"

    def test_time_limit_stops_search(self):
        engine = MCTSEngine(config=quick_config(simulations=10**9, time_limit_ms=50))
        result = engine.search_sync(GameState())
        assert 0 < result.simulations < 10**9
        assert result.best_move is not None

    def test_evaluator_called_for_leaves(self):
        evaluator = AsyncEvaluator()
        engine = MCTSEngine(evaluator, config=quick_config(simulations=30))
        result = engine.search_sync(GameState())
        assert 0 < evaluator.calls <= 30
        assert result.best_move is not None

    def test_evaluator_failure_falls_back_to_rollouts(self, caplog):
        evaluator = BrokenEvaluator()
        engine = MCTSEngine(evaluator, config=quick_config(simulations=30))
        result = engine.search_sync(GameState())
        assert result.simulations == 30
        assert result.best_move is not None
        assert evaluator.calls == 1
        failures = [r for r in caplog.records if "evaluator failed" in r.getMessage()]
        assert len(failures) == 1

    def test_nan_evaluation_is_rejected(self):
        engine = MCTSEngine(NanEvaluator(), config=quick_config(simulations=20))
        result = engine.search_sync(GameState())
        assert all(0.0 <= s.value <= 1.0 for s in result.moves)

    def test_material_evaluator_drives_search(self):
        engine = MCTSEngine(MaterialEvaluator(), config=quick_config(simulations=60))
        result = engine.search_sync(GameState("4k3/8/8/3q4/4P3/8/8/4K3 w - - 0 1"))
        assert result.best_move.uci() == "e4d5"

    def test_evaluator_can_be_disabled(self):
        evaluator = BrokenEvaluator()
        engine = MCTSEngine(evaluator, config=quick_config(use_evaluator=False))
        engine.search_sync(GameState())
        assert evaluator.calls == 0

    def test_async_search_in_running_loop(self):
        async def run():
            engine = MCTSEngine(config=quick_config(simulations=20, yield_every=1))
            return await engine.search(GameState())

        assert asyncio.run(run()).simulations == 20


class TestSearchInternals:
    def test_backpropagation_alternates(self):
        state = GameState()
        root = SearchNode(state)
        move = state.find_uci("e2e4")
        state.push(move)
        child = root.add_child(state, move)
        MCTSEngine._backpropagate(child, 1.0)
        assert child.visits == 1 and child.wins == 1.0
        assert root.visits == 1 and root.wins == 0.0
        assert child.parent is root

    def test_unvisited_child_has_infinite_uct(self):
        node = SearchNode(GameState())
        assert node.uct(10, math.sqrt(2)) == math.inf

    def test_rollout_restores_state(self):
        engine = MCTSEngine(config=quick_config())
        state = GameState()
        value = engine.rollout(state, Color.WHITE, random.Random(0))
        assert 0.0 <= value <= 1.0
        assert state.to_fen() == chess.STARTING_FEN
        assert state.move_log == []

    def test_score_checkmate(self):
        engine = MCTSEngine(config=quick_config())
        state = play(GameState(), *FOOLS_MATE)
        assert engine.score_position(state, Color.BLACK) == 1.0
        assert engine.score_position(state, Color.WHITE) == 0.0

    def test_capture_bias(self):
        state = GameState("4k3/8/8/3p4/4P3/8/8/4K3 w - - 0 1")
        policy = BiasedRolloutPolicy(capture_bias=1.0, check_bias=0.0)
        for seed in range(5):
            assert policy(state, state.legal_moves(), random.Random(seed)).uci() == "e4d5"


# ════════════════════════════════════════════════════════════════════════════
#  CONFIG AND OUTPUT HELPERS
# ════════════════════════════════════════════════════════════════════════════


class TestConfigAndUtils:
    def test_missing_toml_gives_defaults(self, tmp_path):
        cfg = Config.load_from_toml(str(tmp_path / "absent.toml"))
        assert cfg.search.simulations == 1000
        assert cfg.learning.max_games == 100

    def test_toml_overrides(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('log_level = "DEBUG"\n[search]\nsimulations = 64\nunknown = 1\n[learning]\nmax_games = 5\n')
        cfg = Config.load_from_toml(str(path))
        assert cfg.search.simulations == 64
        assert not hasattr(cfg.search, "unknown")
        assert cfg.learning.max_games == 5
        assert cfg.log_level == "DEBUG"

    def test_value_to_cp(self):
        assert value_to_cp(0.5) == 0
        assert value_to_cp(0.9) > 0 > value_to_cp(0.1)

    def test_format_info(self):
        result = MCTSEngine(config=quick_config(simulations=10)).search_sync(GameState())
        line = format_info(result)
        assert line.startswith("info nodes 10 ")
        assert f"pv {result.best_move.uci()}" in line
