"""Asyncio-driven game session: authoritative state plus scheduled work.

The session owns the only mutable reference to the current
:class:`GameState`. Two kinds of deferred work hang off it:

* the bot's turn, a single task that locks human input, waits a short
  "thinking" delay, runs :func:`gridduel.ai.compute_bot_move` in the
  default executor and gives up after ``failsafe_timeout`` seconds. The
  search gets a deadline inside that window and a stop event that is set
  whenever the turn ends, so no worker thread outlives its turn;
* the removal of fading decay marks, a timer tagged with the batch of
  placements it will remove.

Both are cancelled by :meth:`GameSession.reset` and
:meth:`GameSession.close`. Bot and decay games must be driven from inside a
running event loop.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
import time
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from .ai import BotMove, compute_bot_move
from .config import Difficulty, EngineSettings, GameConfig, Ruleset
from .errors import NoLegalMove
from .game.board import empty_cells
from .game.circles import CircleMove, valid_circle_moves
from .game.rules import ExpiryBatch, GameState, MoveResult, attempt_move, expire_marks, reset_game, select_size


LOG = logging.getLogger("gridduel.session")

Listener = Callable[[GameState], None]


class GameSession:
    def __init__(
        self,
        config: GameConfig,
        settings: Optional[EngineSettings] = None,
        *,
        rng=None,
        on_change: Optional[Listener] = None,
    ) -> None:
        self.config = config
        self.settings = settings or EngineSettings()
        self._rng = rng
        self._listeners: List[Listener] = [on_change] if on_change is not None else []
        self._state = reset_game(config)
        self._input_locked = False
        self._bot_task: Optional[asyncio.Task[None]] = None
        self._bot_stop: Optional[threading.Event] = None
        self._expiry: Optional[Tuple[ExpiryBatch, asyncio.TimerHandle]] = None

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def input_locked(self) -> bool:
        return self._input_locked

    @property
    def bot_pending(self) -> bool:
        return self._bot_task is not None and not self._bot_task.done()

    @property
    def expiry_pending(self) -> bool:
        return self._expiry is not None

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def start(self) -> None:
        # Needed when the bot opens the game
        self.schedule_bot()

    # ------------------------------------------------------------------
    # Human input
    # ------------------------------------------------------------------

    def attempt_move(self, cell_index: int, size: Optional[int] = None) -> MoveResult:
        if self._input_locked:
            return MoveResult(legal=False, state=self._state, error="input_locked")
        if self.config.is_bot_turn(self._state.current_player):
            LOG.warning("Human attempted to play on the bot's turn")
            return MoveResult(legal=False, state=self._state, error="not_your_turn")
        return self._apply(cell_index, size)

    def select_size(self, size: int) -> GameState:
        self._publish(select_size(self._state, size))
        return self._state

    def reset(self) -> GameState:
        self._cancel_pending()
        self._publish(reset_game(self.config))
        self.schedule_bot()
        return self._state

    def close(self) -> None:
        self._cancel_pending()

    async def wait_idle(self) -> None:
        """Wait until no bot turn or mark expiry is outstanding."""

        loop = asyncio.get_running_loop()
        while True:
            if self._bot_task is not None and not self._bot_task.done():
                await asyncio.wait({self._bot_task})
                continue
            if self._expiry is not None:
                _, handle = self._expiry
                await asyncio.sleep(max(0.0, handle.when() - loop.time()))
                await asyncio.sleep(0)
                continue
            return

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _apply(self, cell_index: int, size: Optional[int] = None) -> MoveResult:
        result = attempt_move(self._state, self.config, cell_index, size)
        if not result.legal:
            LOG.debug("Move at %s rejected: %s", cell_index, result.error)
            return result

        # Marks still fading are part of the new batch as well
        self._cancel_expiry()
        self._publish(result.state)
        if result.expiring:
            self._schedule_expiry(result.expiring)
        self.schedule_bot()
        return result

    def _publish(self, state: GameState) -> None:
        self._state = state
        for listener in self._listeners:
            listener(state)

    def _schedule_expiry(self, batch: ExpiryBatch) -> None:
        loop = asyncio.get_running_loop()
        handle = loop.call_later(self.settings.expiry_delay, self._fire_expiry, batch)
        self._expiry = (batch, handle)

    def _fire_expiry(self, batch: ExpiryBatch) -> None:
        if self._expiry is None or self._expiry[0] != batch:
            return
        self._expiry = None
        self._publish(expire_marks(self._state, batch))
        LOG.debug("Removed %s expired marks", len(batch))
        self.schedule_bot()

    def _cancel_expiry(self) -> None:
        if self._expiry is not None:
            self._expiry[1].cancel()
            self._expiry = None

    def _cancel_pending(self) -> None:
        self._cancel_expiry()
        if self._bot_stop is not None:
            self._bot_stop.set()
            self._bot_stop = None
        if self._bot_task is not None and not self._bot_task.done():
            self._bot_task.cancel()
        self._bot_task = None
        self._input_locked = False

    # ------------------------------------------------------------------
    # Bot turn
    # ------------------------------------------------------------------

    def schedule_bot(self) -> bool:
        """Start the bot's turn if it is due; returns whether one is running."""

        if not self.config.is_bot_turn(self._state.current_player) or self._state.is_over:
            return False
        if self.bot_pending:
            LOG.debug("Bot move already pending, skipping")
            return True
        self._input_locked = True
        self._bot_task = asyncio.get_running_loop().create_task(self._bot_turn())
        return True

    async def _bot_turn(self) -> None:
        me = asyncio.current_task()
        stop = threading.Event()
        self._bot_stop = stop
        try:
            await asyncio.sleep(self.settings.bot_delay)
            snapshot = self._state
            depth = self.settings.search_depth_for(self.config)
            deadline = time.monotonic() + self.settings.search_budget
            LOG.info("Bot computing move on turn %s", snapshot.turn_number)
            loop = asyncio.get_running_loop()
            move = await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    functools.partial(
                        compute_bot_move, snapshot, self.config, self._rng, depth, deadline=deadline, stop=stop
                    ),
                ),
                timeout=self.settings.failsafe_timeout,
            )
            if move is None:
                raise NoLegalMove(f"No legal move for {snapshot.current_player.value}")
            if self._bot_task is not me:
                return
            self._bot_task = None
            self._input_locked = False
            if self._state is not snapshot:
                LOG.warning("State changed while the bot was thinking, recomputing")
                self.schedule_bot()
                return
            self._play_bot_move(move)
        except asyncio.TimeoutError:
            stop.set()
            LOG.warning("Bot failsafe triggered after %.1fs, unlocking input", self.settings.failsafe_timeout)
            if self._bot_task is me:
                self._bot_task = None
                self._input_locked = False
                self._play_quick_move()
        except NoLegalMove as exc:
            LOG.warning("Bot could not move: %s", exc)
        except Exception:
            LOG.exception("Bot move computation failed")
        finally:
            stop.set()
            if self._bot_stop is stop:
                self._bot_stop = None
            if self._bot_task is me:
                self._bot_task = None
                self._input_locked = False

    def _play_quick_move(self) -> None:
        if self.config.effective_difficulty is Difficulty.NORMAL:
            # The normal cascade itself stalled, take the first legal move
            move = self._fallback_move()
        else:
            # The normal cascade is shallow and always finishes promptly
            quick = replace(self.config, difficulty=Difficulty.NORMAL)
            move = compute_bot_move(self._state, quick, self._rng)
        if move is not None:
            self._play_bot_move(move)

    def _play_bot_move(self, move: BotMove) -> None:
        LOG.info("Bot plays %s", _describe(move))
        result = self._apply_bot_move(move)
        if result.legal:
            return
        LOG.warning("Bot's chosen move %s is invalid (%s), finding alternative", _describe(move), result.error)
        fallback = self._fallback_move()
        if fallback is not None:
            self._apply_bot_move(fallback)

    def _apply_bot_move(self, move: BotMove) -> MoveResult:
        if isinstance(move, CircleMove):
            return self._apply(move.cell_index, move.size)
        return self._apply(move)

    def _fallback_move(self) -> Optional[BotMove]:
        if self.config.ruleset is Ruleset.CIRCLES:
            circles = self._state.require_circles()
            moves = valid_circle_moves(circles.stacks, circles.inventory(self._state.current_player))
            return moves[0] if moves else None
        cells = empty_cells(self._state.board)
        return cells[0] if cells else None


def _describe(move: BotMove) -> str:
    if isinstance(move, CircleMove):
        return f"size {int(move.size)} at {move.cell_index}"
    return f"cell {move}"


__all__ = ["GameSession", "Listener"]
