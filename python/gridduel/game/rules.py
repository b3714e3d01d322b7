"""Turn state machine for the classic, decay and circles rulesets.

Every transition returns a fresh :class:`GameState`; the flat board is
always re-derived from placements (classic/decay) or circle stacks
(circles) rather than edited in place.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import FrozenSet, Optional, Tuple

from ..config import GameConfig, Ruleset
from ..errors import GameError, InvalidPlacement, InventoryExhausted, StateNotInitialized
from .board import (
    Board,
    Placement,
    Player,
    WinResult,
    check_draw,
    check_winner,
    derive_board,
    empty_board,
    opponent,
)
from .circles import (
    SIZES,
    CellStacks,
    Circle,
    CircleSize,
    Inventory,
    check_circles_draw,
    empty_stacks,
    has_valid_moves,
    next_available_size,
    place_circle,
    top_owner_board,
)


LOG = logging.getLogger("gridduel.rules")

ExpiryBatch = FrozenSet[Placement]


@dataclass(frozen=True)
class CirclesPayload:
    stacks: CellStacks
    inventory_x: Inventory = field(default_factory=Inventory)
    inventory_o: Inventory = field(default_factory=Inventory)
    selected_size: Optional[CircleSize] = CircleSize.SMALL

    def inventory(self, player: Player) -> Inventory:
        return self.inventory_x if player == Player.X else self.inventory_o

    def with_inventory(self, player: Player, inventory: Inventory) -> "CirclesPayload":
        if player == Player.X:
            return replace(self, inventory_x=inventory)
        return replace(self, inventory_o=inventory)


@dataclass(frozen=True)
class GameState:
    board: Board
    current_player: Player = Player.X
    turn_number: int = 1
    winner: Optional[Player] = None
    winning_line: Optional[Tuple[int, ...]] = None
    is_draw: bool = False
    last_move_index: Optional[int] = None
    placements: Tuple[Placement, ...] = ()
    expiring_indices: FrozenSet[int] = frozenset()
    circles: Optional[CirclesPayload] = None

    @property
    def is_over(self) -> bool:
        return self.winner is not None or self.is_draw

    def require_circles(self) -> CirclesPayload:
        if self.circles is None:
            raise StateNotInitialized("Circle state requested on a game without circles")
        return self.circles

    def expiring_batch(self) -> ExpiryBatch:
        return frozenset(p for p in self.placements if p.index in self.expiring_indices)


@dataclass(frozen=True)
class MoveResult:
    legal: bool
    state: GameState
    error: Optional[str] = None
    captured: Optional[Circle] = None
    expiring: ExpiryBatch = frozenset()


def create_game(config: GameConfig) -> GameState:
    board = empty_board(config.grid_size)
    if config.ruleset is Ruleset.CIRCLES:
        payload = CirclesPayload(stacks=empty_stacks(config.cell_count))
        LOG.info("Created %sx%s circles game (%s)", config.grid_size, config.grid_size, config.mode.value)
        return GameState(board=board, circles=payload)
    LOG.info(
        "Created %sx%s %s game, %s in a row (%s)",
        config.grid_size,
        config.grid_size,
        config.ruleset.value,
        config.win_length,
        config.mode.value,
    )
    return GameState(board=board)


def reset_game(config: GameConfig) -> GameState:
    return create_game(config)


def _reject(state: GameState, code: str) -> MoveResult:
    return MoveResult(legal=False, state=state, error=code)


def attempt_move(
    state: GameState,
    config: GameConfig,
    cell_index: int,
    size: Optional[int] = None,
) -> MoveResult:
    """Apply the current player's move at ``cell_index``.

    Illegal moves never raise; they come back as ``MoveResult(legal=False)``
    carrying the untouched state and an error code.
    """

    if state.is_over:
        return _reject(state, "game_over")
    if not 0 <= cell_index < config.cell_count:
        return _reject(state, "invalid_cell")

    if config.ruleset is Ruleset.CIRCLES:
        return _attempt_circle_move(state, config, cell_index, size)
    return _attempt_mark(state, config, cell_index)


def _attempt_mark(state: GameState, config: GameConfig, cell_index: int) -> MoveResult:
    if state.board[cell_index] is not None:
        return _reject(state, "cell_occupied")

    player = state.current_player
    placements = state.placements + (Placement(cell_index, player, state.turn_number),)

    expiring: ExpiryBatch = frozenset()
    if config.ruleset is Ruleset.DECAY:
        expiring = frozenset(
            p for p in placements if state.turn_number - p.turn_placed >= config.decay_turns
        )

    board = derive_board(placements, config.grid_size)
    scored_board = board
    if expiring and not config.count_expiring_marks:
        scored_board = derive_board((p for p in placements if p not in expiring), config.grid_size)

    next_state = replace(
        state,
        board=board,
        placements=placements,
        expiring_indices=frozenset(p.index for p in expiring),
        turn_number=state.turn_number + 1,
        last_move_index=cell_index,
    )
    next_state = _settle(next_state, check_winner(scored_board, config.grid_size, config.win_length),
                         check_draw(scored_board))
    if expiring:
        LOG.debug("Marks at %s start expiring on turn %s", sorted(next_state.expiring_indices), state.turn_number)
    return MoveResult(legal=True, state=next_state, expiring=expiring)


def _settle(state: GameState, win: Optional[WinResult], draw: bool) -> GameState:
    if win is not None:
        LOG.info("%s wins with line %s", win.winner.value, list(win.line))
        return replace(state, winner=win.winner, winning_line=win.line)
    if draw:
        LOG.info("Game drawn on turn %s", state.turn_number - 1)
        return replace(state, is_draw=True)
    return replace(state, current_player=opponent(state.current_player))


def expire_marks(state: GameState, batch: ExpiryBatch) -> GameState:
    """Remove the placements in ``batch`` once their fade-out has finished.

    Safe to call with a stale or already-applied batch: placements that are
    no longer present are simply not found.
    """

    if not batch:
        return state
    placements = tuple(p for p in state.placements if p not in batch)
    if len(placements) == len(state.placements):
        return state
    grid_size = math.isqrt(len(state.board))
    removed = {p.index for p in batch}
    return replace(
        state,
        placements=placements,
        board=derive_board(placements, grid_size),
        expiring_indices=state.expiring_indices - removed,
    )


def _attempt_circle_move(
    state: GameState,
    config: GameConfig,
    cell_index: int,
    size: Optional[int],
) -> MoveResult:
    circles = state.require_circles()
    if size is None:
        size = circles.selected_size
    if size is None:
        return _reject(state, "no_size_selected")

    player = state.current_player
    try:
        placed = place_circle(circles.stacks, circles.inventory(player), cell_index, size, player)
    except GameError as exc:
        LOG.debug("Rejected %s circle at %s for %s: %s", size, cell_index, player.value, exc)
        return _reject(state, exc.code)

    payload = replace(circles.with_inventory(player, placed.inventory), stacks=placed.stacks)
    board = top_owner_board(placed.stacks)
    win = check_winner(board, config.grid_size, config.win_length)
    draw = win is None and check_circles_draw(payload.stacks, payload.inventory_x, payload.inventory_o)

    next_state = replace(
        state,
        board=board,
        circles=payload,
        turn_number=state.turn_number + 1,
        last_move_index=cell_index,
    )
    next_state = _settle(next_state, win, draw)

    if not next_state.is_over and not has_valid_moves(payload.stacks, payload.inventory(next_state.current_player)):
        # The other side is stuck but the mover is not: they go again.
        LOG.info("%s has no legal move and passes", next_state.current_player.value)
        next_state = replace(next_state, current_player=player)

    next_state = replace(next_state, circles=_reselect(payload, next_state.current_player))
    return MoveResult(legal=True, state=next_state, captured=placed.captured)


def _reselect(payload: CirclesPayload, player: Player) -> CirclesPayload:
    selected = payload.selected_size
    if selected is not None and payload.inventory(player).count(selected) > 0:
        return payload
    return replace(payload, selected_size=next_available_size(payload.inventory(player)))


def select_size(state: GameState, size: int) -> GameState:
    """Change the size the current player will place next."""

    circles = state.require_circles()
    if size not in SIZES:
        raise InvalidPlacement(f"Unknown circle size: {size}")
    if circles.inventory(state.current_player).count(size) <= 0:
        raise InventoryExhausted(f"No size {size} circles remaining for {state.current_player.value}")
    return replace(state, circles=replace(circles, selected_size=CircleSize(size)))


__all__ = [
    "CirclesPayload",
    "ExpiryBatch",
    "GameState",
    "MoveResult",
    "attempt_move",
    "create_game",
    "expire_marks",
    "reset_game",
    "select_size",
]
