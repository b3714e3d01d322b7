"""Shared fixtures and board-building helpers."""

import random
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "python"))

from gridduel.config import EngineSettings
from gridduel.game.board import Player
from gridduel.game.circles import Circle, CircleSize, empty_stacks


# Short enough to keep the suite quick, long enough to observe locked input.
FAST_SETTINGS = EngineSettings(bot_delay=0.01, failsafe_timeout=2.0, expiry_delay=0.01)


def parse_board(text: str):
    """Build a flat board from a string such as ``"XXX OO. ..."``."""

    cells = [ch for ch in text if ch in "XO."]
    return tuple(None if ch == "." else Player(ch) for ch in cells)


def make_stacks(cells, cell_count: int = 9):
    """Build circle stacks from ``{index: "X1 O3"}`` (bottom to top)."""

    stacks = list(empty_stacks(cell_count))
    for index, spec in cells.items():
        stack = []
        for token in spec.split():
            owner, size = Player(token[0]), CircleSize(int(token[1]))
            stack.append(Circle(identity=f"{token}-{index}-{len(stack)}", owner=owner, size=size))
        stacks[index] = tuple(stack)
    return tuple(stacks)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def fast_settings() -> EngineSettings:
    return FAST_SETTINGS
