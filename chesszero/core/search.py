"""Monte-Carlo tree search over GameState.

Each iteration runs select -> expand -> simulate -> backpropagate:

- Selection descends through fully expanded nodes by UCT
  (wins/visits + C * sqrt(ln(parent visits) / visits), unvisited = inf).
- Expansion adds one child for a not-yet-tried legal move.
- Simulation asks the position evaluator for a value, or plays a biased
  random rollout (captures, then checks, then anything) for at most
  ``rollout_depth`` plies and scores the final position.
- Backpropagation walks the parent links up to the root, flipping the
  result at every ply.

A node's wins/visits is the value of reaching that node for the player who
moved into it. The search never touches the caller's state: it works on one
private copy, playing moves on the way down and taking them back afterwards,
so tree nodes hold moves and statistics rather than whole positions.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import random
import time
import weakref
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from chesszero.config import CONFIG, SearchConfig
from chesszero.core.encoding import encode_position
from chesszero.core.evaluator import PositionEvaluator, material_ratio
from chesszero.core.movegen import gives_check
from chesszero.core.position import GameState
from chesszero.core.types import Color, GameStatus, Move

logger = logging.getLogger(__name__)

RolloutPolicy = Callable[[GameState, List[Move], random.Random], Move]


class BiasedRolloutPolicy:
    """Prefer captures, then checking moves, else a uniformly random move."""

    def __init__(self, capture_bias: float = 0.7, check_bias: float = 0.5):
        self.capture_bias = capture_bias
        self.check_bias = check_bias

    def __call__(self, state: GameState, moves: List[Move], rng: random.Random) -> Move:
        captures = [m for m in moves if m.is_capture]
        if captures and rng.random() < self.capture_bias:
            return rng.choice(captures)
        if rng.random() < self.check_bias:
            checks = [m for m in moves if gives_check(state, m)]
            if checks:
                return rng.choice(checks)
        return rng.choice(moves)


class SearchNode:
    def __init__(self, state: GameState, move: Optional[Move] = None,
                 parent: Optional["SearchNode"] = None):
        self.move = move
        self._parent = weakref.ref(parent) if parent is not None else None
        self.children: List[SearchNode] = []
        self.untried_moves: List[Move] = state.legal_moves()
        self.visits = 0
        self.wins = 0.0
        self.terminal = state.status.is_terminal

    @property
    def parent(self) -> Optional["SearchNode"]:
        return self._parent() if self._parent is not None else None

    @property
    def value(self) -> float:
        return self.wins / self.visits if self.visits else 0.0

    def is_fully_expanded(self) -> bool:
        return self.terminal or not self.untried_moves

    def uct(self, parent_visits: int, exploration: float) -> float:
        if self.visits == 0:
            return math.inf
        return self.wins / self.visits + exploration * math.sqrt(math.log(parent_visits) / self.visits)

    def best_child(self, exploration: float) -> "SearchNode":
        return max(self.children, key=lambda c: c.uct(self.visits, exploration))

    def add_child(self, state: GameState, move: Move) -> "SearchNode":
        child = SearchNode(state, move, self)
        self.children.append(child)
        return child


@dataclass
class MoveStat:
    move: Move
    visits: int
    value: float


@dataclass
class SearchResult:
    best_move: Optional[Move]
    simulations: int = 0
    elapsed_ms: float = 0.0
    root_visits: int = 0
    moves: List[MoveStat] = field(default_factory=list)


class MCTSEngine:
    def __init__(
        self,
        evaluator: Optional[PositionEvaluator] = None,
        config: Optional[SearchConfig] = None,
        rollout_policy: Optional[RolloutPolicy] = None,
    ):
        self.config = config or CONFIG.search
        self.evaluator = evaluator
        self.rollout_policy = rollout_policy or BiasedRolloutPolicy(
            self.config.capture_bias, self.config.check_bias
        )
        self.piece_values = CONFIG.eval.piece_values

    async def search(
        self,
        state: GameState,
        simulations: Optional[int] = None,
        time_limit_ms: Optional[int] = None,
    ) -> SearchResult:
        """Run MCTS from ``state`` until the simulation or time budget runs out.

        ``state`` is never modified. The chosen move is the root child with
        the most visits; ``best_move`` is None when the root has no legal
        move or is already decided.
        """
        cfg = self.config
        budget = simulations if simulations is not None else cfg.simulations
        limit_ms = time_limit_ms if time_limit_ms is not None else cfg.time_limit_ms
        started = time.perf_counter()
        deadline = started + limit_ms / 1000.0 if limit_ms else math.inf
        rng = random.Random(cfg.seed)

        working = state.copy()
        root = SearchNode(working)
        if root.terminal or not root.untried_moves:
            return SearchResult(None, elapsed_ms=(time.perf_counter() - started) * 1000.0)

        use_evaluator = self.evaluator is not None and cfg.use_evaluator
        done = 0
        while done < budget and time.perf_counter() < deadline:
            leaf, plies = self._select_and_expand(root, working, rng)
            result, evaluator_ok = await self._simulate(leaf, working, rng, use_evaluator)
            if use_evaluator and not evaluator_ok:
                use_evaluator = False
            self._backpropagate(leaf, result)
            for _ in range(plies):
                working.pop()
            done += 1
            if cfg.yield_every and done % cfg.yield_every == 0:
                await asyncio.sleep(0)

        stats = sorted(
            (MoveStat(c.move, c.visits, round(c.value, 4)) for c in root.children),
            key=lambda s: s.visits,
            reverse=True,
        )
        # first child wins ties, matching the order children were expanded
        best = max(root.children, key=lambda c: c.visits) if root.children else None
        return SearchResult(
            best_move=best.move if best is not None else None,
            simulations=done,
            elapsed_ms=round((time.perf_counter() - started) * 1000.0, 1),
            root_visits=root.visits,
            moves=stats,
        )

    def search_sync(self, state: GameState, simulations: Optional[int] = None,
                    time_limit_ms: Optional[int] = None) -> SearchResult:
        """Blocking wrapper for callers without an event loop."""
        return asyncio.run(self.search(state, simulations, time_limit_ms))

    def _select_and_expand(self, root: SearchNode, state: GameState,
                           rng: random.Random) -> tuple[SearchNode, int]:
        node = root
        plies = 0
        exploration = self.config.exploration
        while not node.terminal and node.is_fully_expanded():
            node = node.best_child(exploration)
            state.push(node.move)
            plies += 1

        if not node.terminal and node.untried_moves:
            move = node.untried_moves.pop(rng.randrange(len(node.untried_moves)))
            state.push(move)
            plies += 1
            node = node.add_child(state, move)
        return node, plies

    async def _simulate(self, leaf: SearchNode, state: GameState, rng: random.Random,
                        use_evaluator: bool) -> tuple[float, bool]:
        """Value of ``state`` (the leaf) for the player who moved into it, plus evaluator health."""
        mover = state.turn.opposite
        if leaf.terminal:
            return self.score_position(state, mover), True

        if use_evaluator:
            try:
                white_value = await self._evaluate(state)
                value = white_value if mover is Color.WHITE else 1.0 - white_value
                return value, True
            except Exception:
                logger.warning("Position evaluator failed; using rollouts for the rest of this search",
                               exc_info=True)
                return self.rollout(state, mover, rng), False

        return self.rollout(state, mover, rng), True

    async def _evaluate(self, state: GameState) -> float:
        value = self.evaluator.evaluate(encode_position(state))
        if inspect.isawaitable(value):
            value = await value
        value = float(value)
        if math.isnan(value):
            raise ValueError("Evaluator returned NaN")
        return min(1.0, max(0.0, value))

    def rollout(self, state: GameState, perspective: Color, rng: random.Random) -> float:
        """Play the rollout policy from ``state`` and score the end for ``perspective``.

        The moves are taken back before returning.
        """
        plies = 0
        try:
            while not state.status.is_terminal and plies < self.config.rollout_depth:
                moves = state.legal_moves()
                if not moves:
                    break
                state.push(self.rollout_policy(state, moves, rng))
                plies += 1
            return self.score_position(state, perspective)
        finally:
            for _ in range(plies):
                state.pop()

    def score_position(self, state: GameState, perspective: Color) -> float:
        """1/0 for a mate, otherwise the material share of ``perspective``."""
        if state.status is GameStatus.CHECKMATE:
            return 0.0 if state.turn is perspective else 1.0
        return material_ratio(state.board, perspective, self.piece_values)

    @staticmethod
    def _backpropagate(node: SearchNode, result: float) -> None:
        while node is not None:
            node.visits += 1
            node.wins += result
            result = 1.0 - result
            node = node.parent
