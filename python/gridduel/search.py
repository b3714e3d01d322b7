"""Exhaustive adversarial search for the stacking-circles ruleset."""

from __future__ import annotations

import logging
import math
import threading
import time
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .game.board import Player, check_winner, opponent
from .game.circles import CellStacks, CircleMove, Inventory, simulate_circle_move, top_owner_board, valid_circle_moves
from .geometry import center_index


LOG = logging.getLogger("gridduel.search")

Score = float

WIN_SCORE = 1000

# Nodes visited between two looks at the clock and the stop flag
CHECK_INTERVAL = 256


class Bound(Enum):
    EXACT = "exact"
    LOWER = "lower"
    UPPER = "upper"


def state_key(stacks: CellStacks, inventory_x: Inventory, inventory_o: Inventory, to_move: Player) -> str:
    # Owner+size per circle, bottom to top; identities are irrelevant
    cells = "|".join("".join(f"{c.owner.value}{int(c.size)}" for c in stack) for stack in stacks)
    return f"{to_move.value}::{inventory_x.key()}::{inventory_o.key()}::{cells}"


def terminal_score(winner: Optional[Player], ply: int, maximizer: Player) -> Score:
    # Faster wins and slower losses score better
    if winner is None:
        return 0
    if winner == maximizer:
        return WIN_SCORE - ply
    return -WIN_SCORE + ply


class CirclesMinimaxAgent:
    """Minimax with alpha-beta pruning and a transposition table.

    ``player`` is the maximizing side. With ``max_depth`` left as ``None``
    the search runs to the end of the game.

    Passing a ``deadline`` (a :func:`time.monotonic` timestamp) or a
    ``stop`` event bounds the search: it deepens one ply at a time and
    answers with the best root move of the deepest iteration that
    finished. An exhaustive 3x3 search takes minutes, so callers on a
    clock should always pass one of them.
    """

    def __init__(
        self,
        player: Player,
        grid_size: int,
        win_length: int,
        max_depth: Optional[int] = None,
        *,
        deadline: Optional[float] = None,
        stop: Optional[threading.Event] = None,
    ) -> None:
        self.player = player
        self.grid_size = grid_size
        self.win_length = win_length
        self.max_depth = max_depth
        self.deadline = deadline
        self.stop = stop
        self._table: Dict[str, Tuple[Score, Bound]] = {}
        self._depth_limit = max_depth
        self._stopped = False
        self._cut_off = False
        self.nodes = 0
        self.table_hits = 0
        self.completed_depth = 0

    @property
    def bounded(self) -> bool:
        return self.deadline is not None or self.stop is not None

    def choose_move(
        self,
        stacks: CellStacks,
        inventory_x: Inventory,
        inventory_o: Inventory,
    ) -> Optional[CircleMove]:
        self.nodes = 0
        self.table_hits = 0
        self.completed_depth = 0
        self._stopped = False

        root_inventory = inventory_x if self.player == Player.X else inventory_o
        moves = valid_circle_moves(stacks, root_inventory)
        if not moves:
            return None

        if not self.bounded:
            best_move, best_score = self._search_root(stacks, inventory_x, inventory_o, moves, self.max_depth)
            self.completed_depth = self.max_depth or inventory_x.total + inventory_o.total
            self._log_result(best_move, best_score)
            return best_move

        # Every ply spends a circle, so this many plies reaches the end of the game
        full_depth = inventory_x.total + inventory_o.total + 1
        last_depth = full_depth if self.max_depth is None else min(self.max_depth, full_depth)
        best_move, best_score = moves[0], None
        for depth in range(1, last_depth + 1):
            if depth > 1 and self._out_of_time():
                break
            move, score = self._search_root(stacks, inventory_x, inventory_o, moves, depth)
            if self._stopped:
                LOG.debug("%s stopped during depth %s", self.description, depth)
                break
            best_move, best_score = move, score
            self.completed_depth = depth
            if not self._cut_off or score >= WIN_SCORE - depth:
                # Solved, or a forced win no deeper search can shorten
                break

        self._log_result(best_move, best_score)
        return best_move

    def _search_root(
        self,
        stacks: CellStacks,
        inventory_x: Inventory,
        inventory_o: Inventory,
        moves: List[CircleMove],
        depth_limit: Optional[int],
    ) -> Tuple[CircleMove, Score]:
        # Root: first strictly best move in (size, cell) order.
        # Table entries are only valid for the depth they were searched to.
        self._table = {}
        self._depth_limit = depth_limit
        self._cut_off = False

        root_inventory = inventory_x if self.player == Player.X else inventory_o
        best_move = moves[0]
        best_score = -math.inf
        rival = opponent(self.player)

        for move in moves:
            child = simulate_circle_move(stacks, root_inventory, move, self.player)
            next_x = child.inventory if self.player == Player.X else inventory_x
            next_o = child.inventory if self.player == Player.O else inventory_o
            score = self._minimax(child.stacks, next_x, next_o, rival, 1, best_score, math.inf)
            if self._stopped:
                break
            if score > best_score:
                best_score = score
                best_move = move
        return best_move, best_score

    def _log_result(self, move: CircleMove, score: Optional[Score]) -> None:
        LOG.debug(
            "%s searched %s nodes (%s table hits) to depth %s, best %s@%s scores %s",
            self.description,
            self.nodes,
            self.table_hits,
            self.completed_depth,
            int(move.size),
            move.cell_index,
            score,
        )

    def _out_of_time(self) -> bool:
        if self.stop is not None and self.stop.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def _minimax(
        self,
        stacks: CellStacks,
        inventory_x: Inventory,
        inventory_o: Inventory,
        to_move: Player,
        ply: int,
        alpha: Score,
        beta: Score,
    ) -> Score:
        self.nodes += 1
        if self.nodes % CHECK_INTERVAL == 0 and self._out_of_time():
            self._stopped = True
        if self._stopped:
            # Unwinding; the caller discards this iteration
            return 0

        key = state_key(stacks, inventory_x, inventory_o, to_move)
        entry = self._table.get(key)
        if entry is not None:
            value, bound = entry
            if (
                bound is Bound.EXACT
                or (bound is Bound.LOWER and value >= beta)
                or (bound is Bound.UPPER and value <= alpha)
            ):
                self.table_hits += 1
                return value

        win = check_winner(top_owner_board(stacks), self.grid_size, self.win_length)
        if win is not None:
            return self._store(key, terminal_score(win.winner, ply, self.player), Bound.EXACT)

        if self._depth_limit is not None and ply >= self._depth_limit:
            self._cut_off = True
            return self._store(key, self._evaluate(stacks, inventory_x, inventory_o), Bound.EXACT)

        inventory = inventory_x if to_move == Player.X else inventory_o
        moves = valid_circle_moves(stacks, inventory)
        if not moves:
            return self._store(key, terminal_score(None, ply, self.player), Bound.EXACT)

        # Bigger captures first; sorted() keeps (size, cell) order among equals
        children = sorted(
            (simulate_circle_move(stacks, inventory, move, to_move) for move in moves),
            key=lambda child: child.captured_size,
            reverse=True,
        )

        maximizing = to_move == self.player
        rival = opponent(to_move)
        window_alpha, window_beta = alpha, beta
        best = -math.inf if maximizing else math.inf

        for child in children:
            next_x = child.inventory if to_move == Player.X else inventory_x
            next_o = child.inventory if to_move == Player.O else inventory_o
            score = self._minimax(child.stacks, next_x, next_o, rival, ply + 1, alpha, beta)
            if maximizing:
                best = max(best, score)
                alpha = max(alpha, best)
            else:
                best = min(best, score)
                beta = min(beta, best)
            if beta <= alpha:
                break

        if best <= window_alpha:
            bound = Bound.UPPER
        elif best >= window_beta:
            bound = Bound.LOWER
        else:
            bound = Bound.EXACT
        return self._store(key, best, bound)

    def _store(self, key: str, value: Score, bound: Bound) -> Score:
        self._table[key] = (value, bound)
        return value

    def _evaluate(self, stacks: CellStacks, inventory_x: Inventory, inventory_o: Inventory) -> Score:
        # Material, board control and the center cell
        mine = inventory_x if self.player == Player.X else inventory_o
        theirs = inventory_o if self.player == Player.X else inventory_x
        score = (mine.total - theirs.total) * 10

        board = top_owner_board(stacks)
        my_cells = sum(1 for owner in board if owner == self.player)
        their_cells = sum(1 for owner in board if owner is not None and owner != self.player)
        score += (my_cells - their_cells) * 15

        center = board[center_index(self.grid_size)]
        if center == self.player:
            score += 5
        elif center is not None:
            score -= 5
        return score

    @property
    def description(self) -> str:
        depth = "full" if self.max_depth is None else str(self.max_depth)
        return f"CirclesMinimax(player={self.player.value}, depth={depth})"


def compute_best_move(
    stacks: CellStacks,
    inventory_x: Inventory,
    inventory_o: Inventory,
    current_player: Player,
    grid_size: int,
    win_length: int,
    max_depth: Optional[int] = None,
    *,
    deadline: Optional[float] = None,
    stop: Optional[threading.Event] = None,
) -> Optional[CircleMove]:
    agent = CirclesMinimaxAgent(current_player, grid_size, win_length, max_depth=max_depth, deadline=deadline, stop=stop)
    return agent.choose_move(stacks, inventory_x, inventory_o)


__all__ = ["Bound", "CirclesMinimaxAgent", "compute_best_move", "state_key", "terminal_score"]
