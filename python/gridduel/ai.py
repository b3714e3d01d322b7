from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence, Union

from .config import Difficulty, GameConfig, Ruleset
from .game.board import CellValue, Player, empty_cells, has_winning_line, opponent
from .game.circles import (
    CellStacks,
    CircleMove,
    Inventory,
    largest_placeable_size,
    simulate_circle_move,
    top_circle,
    top_owner_board,
    valid_circle_moves,
)
from .game.rules import GameState
from .geometry import center_index, corner_indices, edge_indices
from .search import compute_best_move


LOG = logging.getLogger("gridduel.ai")

BotMove = Union[int, CircleMove]

# Applied to a circles move that hands the opponent an immediate win.
UNSAFE_MOVE_PENALTY = 1000.0


# Try each empty cell and report the first that completes a line
def find_winning_move(
    board: Sequence[CellValue],
    player: Player,
    grid_size: int,
    win_length: int,
) -> Optional[int]:
    for index in empty_cells(board):
        trial = list(board)
        trial[index] = player
        if has_winning_line(trial, player, grid_size, win_length):
            return index
    return None


def _anti_fork_edge(board: Sequence[CellValue], player: Player) -> Optional[int]:
    # Bot in the center, opponent on two opposite corners: take an edge
    rival = opponent(player)
    if board[center_index(3)] != player:
        return None
    top_left, top_right, bottom_left, bottom_right = corner_indices(3)
    opposite_corners = (
        (board[top_left] == rival and board[bottom_right] == rival)
        or (board[top_right] == rival and board[bottom_left] == rival)
    )
    if not opposite_corners:
        return None
    return next((index for index in edge_indices(3) if board[index] is None), None)


def get_bot_move(
    board: Sequence[CellValue],
    difficulty: Difficulty,
    grid_size: int,
    win_length: int,
    player: Player = Player.O,
    rng=None,
) -> Optional[int]:
    """Pick a cell for the classic and decay rulesets.

    Easy plays at random. Normal and hard run a fixed cascade: win, block,
    (hard only) anti-fork edge, center, random corner, random cell. The
    anti-fork, center and corner steps only apply on a 3x3 board.
    """

    rng = rng or random
    difficulty = Difficulty(difficulty)
    open_cells = empty_cells(board)
    if not open_cells:
        return None

    if difficulty is Difficulty.EASY:
        return rng.choice(open_cells)

    winning = find_winning_move(board, player, grid_size, win_length)
    if winning is not None:
        return winning

    blocking = find_winning_move(board, opponent(player), grid_size, win_length)
    if blocking is not None:
        return blocking

    if grid_size == 3:
        if difficulty is Difficulty.HARD:
            edge = _anti_fork_edge(board, player)
            if edge is not None:
                return edge

        center = center_index(grid_size)
        if board[center] is None:
            return center

        corners = [index for index in corner_indices(grid_size) if board[index] is None]
        if corners:
            return rng.choice(corners)

    return rng.choice(open_cells)


def score_circle_move(
    move: CircleMove,
    captured_size: int,
    projected_board: Sequence[CellValue],
    grid_size: int,
    covered_owner: Optional[Player],
    covered_size: int,
    player: Player,
) -> float:
    """Light positional score for a circles move; higher is better for ``player``."""

    score = 0.0

    # Capturing bigger circles is worth more
    score += captured_size * 6

    # Save the big circles for later
    score += (4 - move.size) * 2

    if grid_size == 3:
        if move.cell_index == center_index(grid_size):
            score += 4
        if move.cell_index in corner_indices(grid_size):
            score += 2

    occupied = sum(1 for owner in projected_board if owner is not None)
    score += occupied * 0.2

    if covered_owner == player and covered_size > 0:
        jump = move.size - covered_size
        score -= move.size * 10 + jump * 8

    return score


def _winning_circle_moves(
    stacks: CellStacks,
    inventory: Inventory,
    player: Player,
    grid_size: int,
    win_length: int,
) -> List[CircleMove]:
    winners: List[CircleMove] = []
    for move in valid_circle_moves(stacks, inventory):
        child = simulate_circle_move(stacks, inventory, move, player)
        if has_winning_line(top_owner_board(child.stacks), player, grid_size, win_length):
            winners.append(move)
    return winners


def _rate(
    move: CircleMove,
    stacks: CellStacks,
    inventory: Inventory,
    rival_inventory: Inventory,
    player: Player,
    grid_size: int,
    win_length: int,
) -> float:
    covered = top_circle(stacks, move.cell_index)
    child = simulate_circle_move(stacks, inventory, move, player)
    score = score_circle_move(
        move,
        child.captured_size,
        top_owner_board(child.stacks),
        grid_size,
        covered.owner if covered else None,
        int(covered.size) if covered else 0,
        player,
    )
    # One-ply safety: does any reply win on the spot?
    if _winning_circle_moves(child.stacks, rival_inventory, opponent(player), grid_size, win_length):
        score -= UNSAFE_MOVE_PENALTY
    return score


def choose_circle_move_normal(
    stacks: CellStacks,
    inventory: Inventory,
    rival_inventory: Inventory,
    player: Player,
    grid_size: int,
    win_length: int,
) -> Optional[CircleMove]:
    """Tactical circles bot: win, else block, else best heuristic move.

    Blocking covers each threatened cell with the largest circle that fits.
    Only one threat can be covered per turn, so two simultaneous threats
    still lose.
    """

    moves = valid_circle_moves(stacks, inventory)
    if not moves:
        return None

    winning = _winning_circle_moves(stacks, inventory, player, grid_size, win_length)
    if winning:
        return winning[0]

    rival = opponent(player)
    threatened = sorted(
        {move.cell_index for move in _winning_circle_moves(stacks, rival_inventory, rival, grid_size, win_length)}
    )
    blocks: List[CircleMove] = []
    for cell_index in threatened:
        size = largest_placeable_size(stacks, inventory, cell_index)
        if size is not None:
            blocks.append(CircleMove(cell_index=cell_index, size=size))

    candidates = blocks or moves
    best = max(
        candidates,
        key=lambda move: _rate(move, stacks, inventory, rival_inventory, player, grid_size, win_length),
    )
    if blocks:
        LOG.debug("Blocking threat at %s with size %s", best.cell_index, int(best.size))
    return best


def compute_bot_move(
    state: GameState,
    config: GameConfig,
    rng=None,
    max_depth: Optional[int] = None,
    *,
    deadline: Optional[float] = None,
    stop=None,
) -> Optional[BotMove]:
    """Choose the move for whoever is to play, without touching ``state``.

    ``deadline`` and ``stop`` only bound the hard circles search; see
    :class:`gridduel.search.CirclesMinimaxAgent`.
    """

    if state.is_over:
        return None

    rng = rng or random
    player = state.current_player
    difficulty = config.effective_difficulty

    if config.ruleset is not Ruleset.CIRCLES:
        return get_bot_move(state.board, difficulty, config.grid_size, config.win_length, player=player, rng=rng)

    circles = state.require_circles()
    inventory = circles.inventory(player)
    rival_inventory = circles.inventory(opponent(player))

    if difficulty is Difficulty.EASY:
        moves = valid_circle_moves(circles.stacks, inventory)
        return rng.choice(moves) if moves else None
    if difficulty is Difficulty.NORMAL:
        return choose_circle_move_normal(
            circles.stacks, inventory, rival_inventory, player, config.grid_size, config.win_length
        )
    return compute_best_move(
        circles.stacks,
        circles.inventory_x,
        circles.inventory_o,
        player,
        config.grid_size,
        config.win_length,
        max_depth=max_depth,
        deadline=deadline,
        stop=stop,
    )


__all__ = [
    "BotMove",
    "choose_circle_move_normal",
    "compute_bot_move",
    "find_winning_move",
    "get_bot_move",
    "score_circle_move",
]
