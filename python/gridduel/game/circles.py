"""Stacking-circles placement rules.

Each player starts with two small, two medium and two large circles. A
circle may go on an empty cell or on top of a strictly smaller circle,
which is captured and leaves the game for good. Only the top circle of
each stack counts for the win check.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import List, Optional, Tuple

from ..errors import InvalidPlacement, InventoryExhausted
from .board import Board, Player


class CircleSize(IntEnum):
    SMALL = 1
    MEDIUM = 2
    LARGE = 3


SIZES: Tuple[CircleSize, ...] = (CircleSize.SMALL, CircleSize.MEDIUM, CircleSize.LARGE)
STARTING_COUNT = 2


@dataclass(frozen=True)
class Circle:
    identity: str
    owner: Player
    size: CircleSize


CellStack = Tuple[Circle, ...]
CellStacks = Tuple[CellStack, ...]


@dataclass(frozen=True)
class Inventory:
    small: int = STARTING_COUNT
    medium: int = STARTING_COUNT
    large: int = STARTING_COUNT

    def count(self, size: int) -> int:
        if size == CircleSize.SMALL:
            return self.small
        if size == CircleSize.MEDIUM:
            return self.medium
        if size == CircleSize.LARGE:
            return self.large
        raise InvalidPlacement(f"Unknown circle size: {size}")

    def take(self, size: int) -> "Inventory":
        remaining = self.count(size)
        if remaining <= 0:
            raise InventoryExhausted(f"No {CircleSize(size).name.lower()} circles remaining")
        field = CircleSize(size).name.lower()
        return replace(self, **{field: remaining - 1})

    @property
    def total(self) -> int:
        return self.small + self.medium + self.large

    def key(self) -> str:
        return f"{self.small}{self.medium}{self.large}"


@dataclass(frozen=True)
class CircleMove:
    cell_index: int
    size: CircleSize


@dataclass(frozen=True)
class Placed:
    stacks: CellStacks
    inventory: Inventory
    captured: Optional[Circle]


@dataclass(frozen=True)
class Simulated:
    stacks: CellStacks
    inventory: Inventory
    captured_size: int


def empty_stacks(cell_count: int) -> CellStacks:
    return ((),) * cell_count


def top_circle(stacks: CellStacks, cell_index: int) -> Optional[Circle]:
    stack = stacks[cell_index]
    return stack[-1] if stack else None


def is_valid_circle_placement(stacks: CellStacks, cell_index: int, size: int) -> bool:
    top = top_circle(stacks, cell_index)
    return top is None or size > top.size


def _check_cell(stacks: CellStacks, cell_index: int) -> None:
    if not 0 <= cell_index < len(stacks):
        raise InvalidPlacement(f"Cell {cell_index} is off the board")


def place_circle(
    stacks: CellStacks,
    inventory: Inventory,
    cell_index: int,
    size: int,
    player: Player,
) -> Placed:
    """Place ``player``'s circle and return the new stacks and inventory.

    Raises :class:`InvalidPlacement` when the top circle is not strictly
    smaller and :class:`InventoryExhausted` when no circle of ``size`` is
    left. Neither argument is modified.
    """

    _check_cell(stacks, cell_index)
    if size not in SIZES:
        raise InvalidPlacement(f"Unknown circle size: {size}")
    if not is_valid_circle_placement(stacks, cell_index, size):
        raise InvalidPlacement(f"A size {size} circle cannot cover cell {cell_index}")
    new_inventory = inventory.take(size)

    captured = top_circle(stacks, cell_index)
    remaining = stacks[cell_index][:-1] if captured is not None else stacks[cell_index]
    circle = Circle(
        identity=f"{player.value}-{int(size)}-{uuid.uuid4().hex}",
        owner=player,
        size=CircleSize(size),
    )
    new_stacks = stacks[:cell_index] + (remaining + (circle,),) + stacks[cell_index + 1:]
    return Placed(stacks=new_stacks, inventory=new_inventory, captured=captured)


def simulate_circle_move(
    stacks: CellStacks,
    inventory: Inventory,
    move: CircleMove,
    player: Player,
) -> Simulated:
    # Same rules as place_circle, without minting identities
    _check_cell(stacks, move.cell_index)
    if not is_valid_circle_placement(stacks, move.cell_index, move.size):
        raise InvalidPlacement(f"A size {move.size} circle cannot cover cell {move.cell_index}")
    new_inventory = inventory.take(move.size)

    stack = stacks[move.cell_index]
    captured_size = 0
    if stack:
        captured_size = int(stack[-1].size)
        stack = stack[:-1]
    circle = Circle(identity="sim", owner=player, size=move.size)
    new_stacks = stacks[:move.cell_index] + (stack + (circle,),) + stacks[move.cell_index + 1:]
    return Simulated(stacks=new_stacks, inventory=new_inventory, captured_size=captured_size)


def top_owner_board(stacks: CellStacks) -> Board:
    return tuple(stack[-1].owner if stack else None for stack in stacks)


def valid_circle_moves(stacks: CellStacks, inventory: Inventory) -> List[CircleMove]:
    """All legal moves, grouped by size (smallest first) then by cell index."""

    moves: List[CircleMove] = []
    for size in SIZES:
        if inventory.count(size) <= 0:
            continue
        for cell_index in range(len(stacks)):
            if is_valid_circle_placement(stacks, cell_index, size):
                moves.append(CircleMove(cell_index=cell_index, size=size))
    return moves


def has_valid_moves(stacks: CellStacks, inventory: Inventory) -> bool:
    for size in SIZES:
        if inventory.count(size) <= 0:
            continue
        if any(is_valid_circle_placement(stacks, index, size) for index in range(len(stacks))):
            return True
    return False


def check_circles_draw(stacks: CellStacks, inventory_x: Inventory, inventory_o: Inventory) -> bool:
    # Both sides stuck, whether or not cells are still open
    return not has_valid_moves(stacks, inventory_x) and not has_valid_moves(stacks, inventory_o)


def next_available_size(inventory: Inventory) -> Optional[CircleSize]:
    for size in SIZES:
        if inventory.count(size) > 0:
            return size
    return None


def largest_placeable_size(stacks: CellStacks, inventory: Inventory, cell_index: int) -> Optional[CircleSize]:
    for size in reversed(SIZES):
        if inventory.count(size) > 0 and is_valid_circle_placement(stacks, cell_index, size):
            return size
    return None


__all__ = [
    "Circle",
    "CircleMove",
    "CircleSize",
    "CellStack",
    "CellStacks",
    "Inventory",
    "Placed",
    "SIZES",
    "Simulated",
    "check_circles_draw",
    "empty_stacks",
    "has_valid_moves",
    "is_valid_circle_placement",
    "largest_placeable_size",
    "next_available_size",
    "place_circle",
    "simulate_circle_move",
    "top_circle",
    "top_owner_board",
    "valid_circle_moves",
]
