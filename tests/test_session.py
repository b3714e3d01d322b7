"""Scheduling behaviour of GameSession: bot turns, failsafe and mark expiry."""

import asyncio
import logging
import random
import time

import gridduel.session as session_module
from conftest import FAST_SETTINGS
from gridduel.config import Difficulty, EngineSettings, GameConfig
from gridduel.game.board import Player
from gridduel.game.circles import CircleSize
from gridduel.session import GameSession


X, O = Player.X, Player.O

BOT_NORMAL = GameConfig(mode="bot", difficulty="normal")


def test_bot_replies_after_human_move():
    async def run():
        session = GameSession(BOT_NORMAL, FAST_SETTINGS, rng=random.Random(3))
        session.start()
        assert not session.bot_pending

        result = session.attempt_move(0)
        assert result.legal
        assert session.input_locked
        assert session.bot_pending

        # Human input is refused while the bot thinks
        assert session.attempt_move(1).error == "input_locked"

        await session.wait_idle()
        assert session.state.board[4] == O
        assert session.state.current_player == X
        assert not session.input_locked
        session.close()

    asyncio.run(run())


def test_only_one_bot_turn_in_flight():
    async def run():
        session = GameSession(BOT_NORMAL, FAST_SETTINGS)
        session.attempt_move(0)
        assert session.bot_pending
        assert session.schedule_bot()
        await session.wait_idle()
        # Exactly one O mark was placed
        assert sum(1 for cell in session.state.board if cell == O) == 1
        session.close()

    asyncio.run(run())


def test_bot_can_open_the_game():
    async def run():
        config = GameConfig(mode="bot", difficulty="normal", bot_player="X")
        session = GameSession(config, FAST_SETTINGS)
        session.start()
        assert session.input_locked
        await session.wait_idle()
        assert session.state.board[4] == X
        assert session.state.current_player == O
        session.close()

    asyncio.run(run())


def test_human_cannot_move_for_the_bot():
    async def run():
        config = GameConfig(mode="bot", difficulty="normal", bot_player="X")
        session = GameSession(config, EngineSettings(bot_delay=0.2, failsafe_timeout=2.0, expiry_delay=0.01))
        # Not started, so the bot is not scheduled yet and input is open
        assert session.attempt_move(0).error == "not_your_turn"
        session.close()

    asyncio.run(run())


def test_reset_cancels_pending_bot_turn():
    async def run():
        session = GameSession(BOT_NORMAL, EngineSettings(bot_delay=0.05, failsafe_timeout=2.0, expiry_delay=0.01))
        session.attempt_move(0)
        assert session.bot_pending

        state = session.reset()
        assert state.board == (None,) * 9
        assert not session.bot_pending
        assert not session.input_locked

        await asyncio.sleep(0.1)
        assert session.state.board == (None,) * 9
        session.close()

    asyncio.run(run())


def test_listeners_see_every_published_state():
    seen = []

    async def run():
        session = GameSession(BOT_NORMAL, FAST_SETTINGS, on_change=seen.append)
        session.attempt_move(0)
        await session.wait_idle()
        session.close()
        return session.state

    final = asyncio.run(run())
    assert len(seen) == 2
    assert seen[-1] == final


def test_decay_marks_removed_after_delay():
    async def run():
        config = GameConfig(mode="local", ruleset="decay", decay_turns=2)
        session = GameSession(config, FAST_SETTINGS)
        for cell in (0, 1, 2):
            assert session.attempt_move(cell).legal

        assert session.state.expiring_indices == {0}
        assert session.state.board[0] == X
        assert session.expiry_pending

        await session.wait_idle()
        assert session.state.board[0] is None
        assert session.state.expiring_indices == frozenset()
        assert not session.expiry_pending
        session.close()

    asyncio.run(run())


def test_new_move_supersedes_pending_expiry():
    async def run():
        config = GameConfig(mode="local", ruleset="decay", decay_turns=2)
        session = GameSession(config, EngineSettings(bot_delay=0.01, failsafe_timeout=2.0, expiry_delay=0.05))
        for cell in (0, 1, 2):
            session.attempt_move(cell)
        _, first_handle = session._expiry

        session.attempt_move(3)
        assert first_handle.cancelled()
        assert session.state.expiring_indices == {0, 1}

        await session.wait_idle()
        board = session.state.board
        assert board[0] is None and board[1] is None
        assert board[2] == X and board[3] == O
        session.close()

    asyncio.run(run())


def test_reset_drops_pending_expiry():
    async def run():
        config = GameConfig(mode="local", ruleset="decay", decay_turns=2)
        session = GameSession(config, EngineSettings(bot_delay=0.01, failsafe_timeout=2.0, expiry_delay=0.05))
        for cell in (0, 1, 2):
            session.attempt_move(cell)
        session.reset()
        assert not session.expiry_pending
        await asyncio.sleep(0.1)
        assert session.state.board == (None,) * 9
        session.close()

    asyncio.run(run())


def test_failsafe_falls_back_to_quick_move(monkeypatch, caplog):
    real = session_module.compute_bot_move

    def slow_for_hard(state, config, rng=None, max_depth=None, **kwargs):
        if config.difficulty is Difficulty.HARD:
            time.sleep(0.3)
        return real(state, config, rng, max_depth, **kwargs)

    monkeypatch.setattr(session_module, "compute_bot_move", slow_for_hard)

    async def run():
        config = GameConfig(mode="bot", difficulty="hard")
        session = GameSession(config, EngineSettings(bot_delay=0.01, failsafe_timeout=0.05, expiry_delay=0.01))
        session.attempt_move(0)
        await session.wait_idle()
        assert session.state.board[4] == O
        assert not session.input_locked
        session.close()

    with caplog.at_level(logging.WARNING, logger="gridduel.session"):
        asyncio.run(run())
    assert "failsafe" in caplog.text


def test_hung_normal_bot_still_passes_the_turn(monkeypatch, caplog):
    def hanging(state, config, rng=None, max_depth=None, **kwargs):
        time.sleep(0.3)
        return 4

    monkeypatch.setattr(session_module, "compute_bot_move", hanging)

    async def run():
        session = GameSession(BOT_NORMAL, EngineSettings(bot_delay=0.01, failsafe_timeout=0.05, expiry_delay=0.01))
        session.attempt_move(0)
        await session.wait_idle()
        assert not session.input_locked
        # First empty cell, not the hung computation's answer
        assert session.state.board[1] == O
        assert session.state.board[4] is None
        assert session.state.current_player == X
        assert session.attempt_move(5).legal
        session.close()

    with caplog.at_level(logging.WARNING, logger="gridduel.session"):
        asyncio.run(run())
    assert "failsafe" in caplog.text


def test_bot_errors_are_logged_and_unlock_input(monkeypatch, caplog):
    def broken(state, config, rng=None, max_depth=None, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(session_module, "compute_bot_move", broken)

    async def run():
        session = GameSession(BOT_NORMAL, FAST_SETTINGS)
        session.attempt_move(0)
        await session.wait_idle()
        assert not session.input_locked
        assert not session.bot_pending
        session.close()

    with caplog.at_level(logging.ERROR, logger="gridduel.session"):
        asyncio.run(run())
    assert "Bot move computation failed" in caplog.text


def test_bot_without_move_logs_warning(monkeypatch, caplog):
    monkeypatch.setattr(session_module, "compute_bot_move", lambda *args, **kwargs: None)

    async def run():
        session = GameSession(BOT_NORMAL, FAST_SETTINGS)
        session.attempt_move(0)
        await session.wait_idle()
        assert not session.input_locked
        session.close()

    with caplog.at_level(logging.WARNING, logger="gridduel.session"):
        asyncio.run(run())
    assert "Bot could not move" in caplog.text


def test_invalid_bot_move_is_replaced(monkeypatch):
    # Always answers with the cell X just took
    monkeypatch.setattr(session_module, "compute_bot_move", lambda *args, **kwargs: 0)

    async def run():
        session = GameSession(BOT_NORMAL, FAST_SETTINGS)
        session.attempt_move(0)
        await session.wait_idle()
        assert session.state.board[1] == O
        assert session.state.current_player == X
        session.close()

    asyncio.run(run())


def test_circles_bot_turn_and_size_selection():
    async def run():
        config = GameConfig(mode="bot", difficulty="normal", ruleset="circles")
        session = GameSession(config, FAST_SETTINGS, rng=random.Random(1))
        state = session.select_size(CircleSize.LARGE)
        assert state.circles.selected_size == CircleSize.LARGE

        assert session.attempt_move(4).legal
        await session.wait_idle()
        circles = session.state.require_circles()
        assert circles.inventory_x.large == 1
        assert circles.inventory_o.total == 5
        assert session.state.current_player == X
        session.close()

    asyncio.run(run())


def test_stale_bot_result_is_recomputed(monkeypatch, caplog):
    def first_empty(state, config, rng=None, max_depth=None, **kwargs):
        time.sleep(0.05)
        return state.board.index(None)

    monkeypatch.setattr(session_module, "compute_bot_move", first_empty)

    async def run():
        config = GameConfig(mode="bot", difficulty="normal", ruleset="decay", decay_turns=2)
        session = GameSession(config, EngineSettings(bot_delay=0, failsafe_timeout=2.0, expiry_delay=0.01))
        session.attempt_move(0)
        await session.wait_idle()
        assert session.state.board[1] == O

        # Cell 0 fades while the bot is still thinking about the old board
        session.attempt_move(2)
        await session.wait_idle()
        board = session.state.board
        assert board[0] == O
        assert board[2] == X
        assert session.state.current_player == X
        session.close()

    with caplog.at_level(logging.WARNING, logger="gridduel.session"):
        asyncio.run(run())
    assert "recomputing" in caplog.text


def test_hard_circles_bot_answers_within_failsafe(caplog):
    async def run():
        config = GameConfig(mode="bot", difficulty="hard", ruleset="circles")
        session = GameSession(config, EngineSettings(bot_delay=0.01, expiry_delay=0.01))
        assert session.attempt_move(4, CircleSize.SMALL).legal
        started = time.monotonic()
        await session.wait_idle()
        elapsed = time.monotonic() - started

        assert elapsed < session.settings.failsafe_timeout
        assert session.state.require_circles().inventory_o.total == 5
        assert session.state.current_player == X
        assert not session.input_locked
        session.close()

    started = time.monotonic()
    with caplog.at_level(logging.WARNING, logger="gridduel.session"):
        asyncio.run(run())
    # asyncio.run joins the executor, so a leftover search would show up here
    assert time.monotonic() - started < 5.0
    assert "failsafe" not in caplog.text


def test_close_stops_a_running_search():
    async def run():
        config = GameConfig(mode="bot", difficulty="hard", ruleset="circles")
        session = GameSession(config, EngineSettings(bot_delay=0, failsafe_timeout=60.0, expiry_delay=0.01))
        session.attempt_move(4, CircleSize.SMALL)
        await asyncio.sleep(0.2)
        assert session.bot_pending
        session.close()
        assert not session.bot_pending
        return session.state

    started = time.monotonic()
    state = asyncio.run(run())
    assert time.monotonic() - started < 5.0
    assert state.require_circles().inventory_o.total == 6


def test_stop_event_is_set_when_the_turn_ends(monkeypatch):
    seen = []

    def record(state, config, rng=None, max_depth=None, *, deadline=None, stop=None):
        seen.append((deadline, stop))
        return state.board.index(None)

    monkeypatch.setattr(session_module, "compute_bot_move", record)

    async def run():
        session = GameSession(BOT_NORMAL, FAST_SETTINGS)
        before = time.monotonic()
        session.attempt_move(0)
        await session.wait_idle()
        session.close()
        return before

    before = asyncio.run(run())
    (deadline, stop), = seen
    assert before < deadline <= time.monotonic() + FAST_SETTINGS.search_budget
    assert stop.is_set()


def test_reset_stops_search_in_flight(monkeypatch):
    events = []

    def wait_for_stop(state, config, rng=None, max_depth=None, *, deadline=None, stop=None):
        events.append(stop)
        stop.wait(5.0)
        return None

    monkeypatch.setattr(session_module, "compute_bot_move", wait_for_stop)

    async def run():
        session = GameSession(BOT_NORMAL, EngineSettings(bot_delay=0, failsafe_timeout=30.0, expiry_delay=0.01))
        session.attempt_move(0)
        await asyncio.sleep(0.1)
        session.reset()
        session.close()

    started = time.monotonic()
    asyncio.run(run())
    assert time.monotonic() - started < 3.0
    assert events and events[0].is_set()
