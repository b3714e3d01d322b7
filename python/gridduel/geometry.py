"""Line geometry for square N-in-a-row boards.

Cells are indexed row-major (``index = row * grid_size + col``). Every
rule variant and every bot reads its lines from here so that grid size and
win length changes propagate from a single source of truth.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Iterator, List, Tuple


Window = Tuple[int, ...]


def cell_index(row: int, col: int, grid_size: int) -> int:
    return row * grid_size + col


def _rows(grid_size: int) -> Iterator[List[int]]:
    for row in range(grid_size):
        yield [cell_index(row, col, grid_size) for col in range(grid_size)]


def _columns(grid_size: int) -> Iterator[List[int]]:
    for col in range(grid_size):
        yield [cell_index(row, col, grid_size) for row in range(grid_size)]


def _walk(row: int, col: int, d_col: int, grid_size: int) -> List[int]:
    cells: List[int] = []
    while 0 <= row < grid_size and 0 <= col < grid_size:
        cells.append(cell_index(row, col, grid_size))
        row += 1
        col += d_col
    return cells


def _down_right_diagonals(grid_size: int) -> Iterator[List[int]]:
    for start_row in range(grid_size):
        yield _walk(start_row, 0, 1, grid_size)
    for start_col in range(1, grid_size):
        yield _walk(0, start_col, 1, grid_size)


def _down_left_diagonals(grid_size: int) -> Iterator[List[int]]:
    for start_row in range(grid_size):
        yield _walk(start_row, grid_size - 1, -1, grid_size)
    for start_col in range(grid_size - 2, -1, -1):
        yield _walk(0, start_col, -1, grid_size)


def lines(grid_size: int) -> Iterator[List[int]]:
    """Yield every full line in scan order.

    Rows come first, then columns, then down-right diagonals (starting
    down the first column, then along the first row), then down-left
    diagonals (starting down the last column, then leftwards along the
    first row).
    """

    yield from _rows(grid_size)
    yield from _columns(grid_size)
    yield from _down_right_diagonals(grid_size)
    yield from _down_left_diagonals(grid_size)


@lru_cache(maxsize=None)
def winning_windows(grid_size: int, win_length: int) -> Tuple[Window, ...]:
    """Return every ``win_length`` window of consecutive cells, in scan order.

    Windows inside one line are ordered from the line's start, so the first
    window that matches is the one a left-to-right, top-to-bottom reader
    would highlight.
    """

    if grid_size < 1 or win_length < 1:
        raise ValueError(f"Invalid geometry: grid_size={grid_size}, win_length={win_length}")

    windows: List[Window] = []
    for line in lines(grid_size):
        for start in range(len(line) - win_length + 1):
            windows.append(tuple(line[start:start + win_length]))
    return tuple(windows)


def center_index(grid_size: int) -> int:
    return (grid_size * grid_size) // 2


def corner_indices(grid_size: int) -> Tuple[int, ...]:
    last = grid_size - 1
    return (
        cell_index(0, 0, grid_size),
        cell_index(0, last, grid_size),
        cell_index(last, 0, grid_size),
        cell_index(last, last, grid_size),
    )


def edge_indices(grid_size: int) -> Tuple[int, ...]:
    """Non-corner border cells in index order (``(1, 3, 5, 7)`` on 3x3)."""

    last = grid_size - 1
    corners = set(corner_indices(grid_size))
    return tuple(
        index
        for index in range(grid_size * grid_size)
        if index not in corners
        and (index // grid_size in (0, last) or index % grid_size in (0, last))
    )


__all__ = [
    "Window",
    "cell_index",
    "center_index",
    "corner_indices",
    "edge_indices",
    "lines",
    "winning_windows",
]
