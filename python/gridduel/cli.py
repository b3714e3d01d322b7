"""Command-line interface for playing gridduel locally or against the bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from .config import DEFAULT_DECAY_TURNS, Difficulty, EngineSettings, GameConfig, Mode, Ruleset
from .errors import GameError
from .game.board import Player
from .game.circles import SIZES, CircleSize
from .game.rules import GameState
from .session import GameSession


LOG = logging.getLogger("gridduel.cli")

SIZE_NAMES = {CircleSize.SMALL: "small", CircleSize.MEDIUM: "medium", CircleSize.LARGE: "large"}


class QuitGame(Exception):
    pass


def _render_board(state: GameState, config: GameConfig) -> None:
    width = len(str(config.cell_count - 1))
    circles = state.circles

    print("\nBoard state:")
    for index, owner in enumerate(state.board):
        if owner is None:
            symbol = "." * (2 if circles else 1)
        elif circles is not None:
            symbol = f"{owner.value}{int(circles.stacks[index][-1].size)}"
        else:
            symbol = owner.value
        if index in state.expiring_indices:
            symbol += "*"
        print(f"{index:{width}}:{symbol:<3} ", end="")
        if (index + 1) % config.grid_size == 0:
            print()

    if circles is not None:
        for player in (Player.X, Player.O):
            inventory = circles.inventory(player)
            print(f"{player.value} has small={inventory.small} medium={inventory.medium} large={inventory.large}")
    print()


async def _prompt_integer(prompt: str) -> int:
    while True:
        try:
            value = await asyncio.to_thread(input, prompt)
        except EOFError:
            raise QuitGame() from None

        value = value.strip()
        if value.lower() in {"q", "quit", "exit"}:
            raise QuitGame()

        try:
            return int(value)
        except ValueError:
            print("Please enter a number or 'q' to quit.")


async def _choose_size(session: GameSession) -> Optional[int]:
    circles = session.state.require_circles()
    inventory = circles.inventory(session.state.current_player)
    options = ", ".join(
        f"{int(size)}={SIZE_NAMES[size]}({inventory.count(size)})" for size in SIZES if inventory.count(size) > 0
    )
    default = circles.selected_size
    while True:
        suffix = f" [default {int(default)}]" if default is not None else ""
        raw = (await asyncio.to_thread(input, f"Circle size ({options}){suffix}: ")).strip()
        if raw.lower() in {"q", "quit", "exit"}:
            raise QuitGame()
        if not raw:
            return default
        try:
            return int(session.select_size(int(raw)).circles.selected_size)
        except (ValueError, GameError):
            print("That size is not available.")


async def _human_turn(session: GameSession) -> None:
    player = session.state.current_player
    while True:
        size = None
        if session.config.ruleset is Ruleset.CIRCLES:
            size = await _choose_size(session)
        cell = await _prompt_integer(f"{player.value} to move, select cell (0-{session.config.cell_count - 1}, or q to quit): ")

        result = session.attempt_move(cell, size)
        if not result.legal:
            print(f"Illegal move: {result.error}. Try again.")
            continue
        if result.captured is not None:
            print(f"Captured {result.captured.owner.value}'s size {int(result.captured.size)} circle.")
        return


async def _bot_turn(session: GameSession) -> bool:
    print("Bot is thinking...")
    for _ in range(2):
        if not session.schedule_bot():
            return True
        await session.wait_idle()
        if not session.config.is_bot_turn(session.state.current_player) or session.state.is_over:
            return True
    print("The bot could not find a move.")
    return False


def _announce_result(state: GameState, config: GameConfig) -> None:
    if state.winner is not None:
        if config.mode is Mode.BOT:
            print("AI wins! Better luck next time." if state.winner == config.bot_player else "Congratulations! You win!")
        else:
            print(f"{state.winner.value} wins!")
        print(f"Winning line: {list(state.winning_line or ())}")
    elif state.is_draw:
        print("It's a draw.")


async def _play(session: GameSession) -> int:
    config = session.config
    session.start()
    print("Game start! Enter 'q' at any prompt to quit.")

    try:
        while True:
            state = session.state
            _render_board(state, config)
            if state.is_over:
                _announce_result(state, config)
                break

            if config.is_bot_turn(state.current_player):
                if not await _bot_turn(session):
                    break
                continue

            await _human_turn(session)
    except QuitGame:
        pass
    finally:
        session.close()

    print("Thanks for playing!")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Play N-in-a-row, decaying marks or stacking circles")
    parser.add_argument("--mode", choices=[m.value for m in Mode], default=Mode.BOT.value)
    parser.add_argument("--ruleset", choices=[r.value for r in Ruleset], default=Ruleset.CLASSIC.value)
    parser.add_argument("--difficulty", choices=[d.value for d in Difficulty], default=Difficulty.NORMAL.value)
    parser.add_argument("--grid-size", type=int, default=3)
    parser.add_argument("--win-length", type=int, default=None, help="defaults to the grid size")
    parser.add_argument("--decay-turns", type=int, default=DEFAULT_DECAY_TURNS)
    parser.add_argument("--log-level", default=os.getenv("GRIDDUEL_LOG_LEVEL", "WARNING"))
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))

    if args.mode == Mode.ONLINE.value:
        print("Online play is not available yet.")
        return 2

    try:
        config = GameConfig(
            mode=args.mode,
            grid_size=args.grid_size,
            win_length=args.win_length or args.grid_size,
            difficulty=args.difficulty if args.mode == Mode.BOT.value else None,
            ruleset=args.ruleset,
            decay_turns=args.decay_turns,
        )
        settings = EngineSettings.from_env()
    except GameError as exc:
        print(f"Invalid configuration: {exc}")
        return 2

    try:
        return asyncio.run(_play(GameSession(config, settings)))
    except KeyboardInterrupt:
        LOG.info("Interrupted")
        return 130


if __name__ == "__main__":  # pragma: no cover - CLI invocation
    sys.exit(main())
