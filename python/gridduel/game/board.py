from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple

from ..geometry import Window, winning_windows


class Player(str, Enum):
    X = "X"  # Always moves first.
    O = "O"

    def __str__(self) -> str:
        return self.value


# Flip between players
def opponent(player: Player) -> Player:
    return Player.O if player == Player.X else Player.X


CellValue = Optional[Player]
Board = Tuple[CellValue, ...]


@dataclass(frozen=True)
class WinResult:
    winner: Player
    line: Window


@dataclass(frozen=True)
class Placement:
    index: int
    player: Player
    turn_placed: int


def empty_board(grid_size: int) -> Board:
    return (None,) * (grid_size * grid_size)


def derive_board(placements: Iterable[Placement], grid_size: int) -> Board:
    # Later placements win if two ever share a cell
    cells = [None] * (grid_size * grid_size)
    for placement in placements:
        cells[placement.index] = placement.player
    return tuple(cells)


def check_winner(board: Sequence[CellValue], grid_size: int, win_length: int) -> Optional[WinResult]:
    """Return the first completed window in scan order, or ``None``.

    Scan order is rows, columns, down-right diagonals, then down-left
    diagonals (see :func:`gridduel.geometry.lines`); it decides which line
    is reported when a move completes several at once.
    """

    for window in winning_windows(grid_size, win_length):
        first = board[window[0]]
        if first is None:
            continue
        if all(board[index] == first for index in window[1:]):
            return WinResult(winner=first, line=window)
    return None


def has_winning_line(board: Sequence[CellValue], player: Player, grid_size: int, win_length: int) -> bool:
    for window in winning_windows(grid_size, win_length):
        if all(board[index] == player for index in window):
            return True
    return False


def check_draw(board: Sequence[CellValue]) -> bool:
    return all(cell is not None for cell in board)


def empty_cells(board: Sequence[CellValue]) -> list[int]:
    return [index for index, cell in enumerate(board) if cell is None]


__all__ = [
    "Board",
    "CellValue",
    "Placement",
    "Player",
    "WinResult",
    "check_draw",
    "check_winner",
    "derive_board",
    "empty_board",
    "empty_cells",
    "has_winning_line",
    "opponent",
]
