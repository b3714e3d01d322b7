"""Exception hierarchy shared by the rules engine, the bots and the session."""

from __future__ import annotations


class GameError(Exception):
    """Base class for every gridduel error.

    ``code`` is a short machine-readable identifier; it is what rejected
    moves report back in :class:`gridduel.game.rules.MoveResult`.
    """

    code = "game_error"


class InvalidPlacement(GameError):
    code = "invalid_placement"


class InventoryExhausted(GameError):
    code = "inventory_exhausted"


class NoLegalMove(GameError):
    code = "no_legal_move"


class StateNotInitialized(GameError):
    """Ruleset payload missing, e.g. circle data requested from a classic game."""

    code = "state_not_initialized"


class ConfigError(GameError):
    code = "invalid_config"


__all__ = [
    "ConfigError",
    "GameError",
    "InvalidPlacement",
    "InventoryExhausted",
    "NoLegalMove",
    "StateNotInitialized",
]
