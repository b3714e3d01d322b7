"""Per-game configuration and per-process engine settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ConfigError
from .game.board import Player


class Mode(str, Enum):
    LOCAL = "local"
    BOT = "bot"
    ONLINE = "online"  # Not implemented; accepted so front ends can show it.


class Ruleset(str, Enum):
    CLASSIC = "classic"
    DECAY = "decay"
    CIRCLES = "circles"


class Difficulty(str, Enum):
    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"


DEFAULT_DECAY_TURNS = 7
MIN_GRID_SIZE = 3
MIN_WIN_LENGTH = 3


@dataclass(frozen=True)
class GameConfig:
    """Immutable parameters fixed for the lifetime of one game."""

    mode: Mode = Mode.LOCAL
    grid_size: int = 3
    win_length: int = 3
    difficulty: Optional[Difficulty] = None
    ruleset: Ruleset = Ruleset.CLASSIC
    decay_turns: int = DEFAULT_DECAY_TURNS
    # Whether marks that start fading on a move still count for that move's
    # win and draw checks.
    count_expiring_marks: bool = True
    bot_player: Player = Player.O

    def __post_init__(self) -> None:
        # Accept plain strings from argparse and other callers.
        try:
            object.__setattr__(self, "mode", Mode(self.mode))
            object.__setattr__(self, "ruleset", Ruleset(self.ruleset))
            object.__setattr__(self, "bot_player", Player(self.bot_player))
            if self.difficulty is not None:
                object.__setattr__(self, "difficulty", Difficulty(self.difficulty))
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

        if self.grid_size < MIN_GRID_SIZE:
            raise ConfigError(f"grid_size must be at least {MIN_GRID_SIZE}, got {self.grid_size}")
        if not MIN_WIN_LENGTH <= self.win_length <= self.grid_size:
            raise ConfigError(
                f"win_length must be between {MIN_WIN_LENGTH} and grid_size ({self.grid_size}), "
                f"got {self.win_length}"
            )
        if self.decay_turns < 1:
            raise ConfigError(f"decay_turns must be positive, got {self.decay_turns}")

    @property
    def cell_count(self) -> int:
        return self.grid_size * self.grid_size

    @property
    def effective_difficulty(self) -> Difficulty:
        return self.difficulty or Difficulty.NORMAL

    def is_bot_turn(self, player: Player) -> bool:
        return self.mode is Mode.BOT and player == self.bot_player


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


def _env_depth(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ConfigError(f"{name} must be at least 1, got {raw!r}")
    return value


# Used for hard circles games on boards larger than 3x3 when no depth is set.
LARGE_BOARD_SEARCH_DEPTH = 4

# Share of the failsafe the hard search may spend before answering.
SEARCH_BUDGET_SHARE = 0.6


@dataclass(frozen=True)
class EngineSettings:
    """Timing and search knobs for :class:`gridduel.session.GameSession`."""

    bot_delay: float = 0.5
    failsafe_timeout: float = 2.0
    expiry_delay: float = 0.2
    hard_search_depth: Optional[int] = None

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            bot_delay=_env_float("GRIDDUEL_BOT_DELAY", cls.bot_delay),
            failsafe_timeout=_env_float("GRIDDUEL_FAILSAFE_TIMEOUT", cls.failsafe_timeout),
            expiry_delay=_env_float("GRIDDUEL_EXPIRY_DELAY", cls.expiry_delay),
            hard_search_depth=_env_depth("GRIDDUEL_SEARCH_DEPTH"),
        )

    def search_depth_for(self, config: GameConfig) -> Optional[int]:
        if self.hard_search_depth is not None:
            return self.hard_search_depth
        if config.grid_size > MIN_GRID_SIZE:
            return LARGE_BOARD_SEARCH_DEPTH
        return None

    @property
    def search_budget(self) -> float:
        """Seconds the bot may search, leaving headroom under the failsafe."""

        return self.failsafe_timeout * SEARCH_BUDGET_SHARE


__all__ = [
    "DEFAULT_DECAY_TURNS",
    "Difficulty",
    "EngineSettings",
    "GameConfig",
    "Mode",
    "Ruleset",
]
