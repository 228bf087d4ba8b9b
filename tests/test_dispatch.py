"""Tests for callback dispatch: failure isolation, timeouts, async callbacks."""

import asyncio
import logging
import threading
import time

import pytest

from placeholder_api import (
    SERVER_CONTEXT,
    CallbackError,
    CallbackRef,
    CallbackTimeoutError,
    EngineSettings,
    PlaceholderEngine,
)
from placeholder_api.plugins import Player


@pytest.fixture
def fast_timeout_engine(clock):
    engine = PlaceholderEngine(EngineSettings(callback_timeout_ms=50), clock=clock)
    yield engine
    engine.close()


@pytest.fixture
def hanging_engine(clock):
    """Two-worker engine with a callback that blocks until released."""
    release = threading.Event()
    engine = PlaceholderEngine(EngineSettings(callback_timeout_ms=100, max_workers=2), clock=clock)
    engine.export_callback(lambda token, param: "done" if release.wait(5) else "late", "T", "hang")
    engine.export_callback(lambda token, param: "ok", "T", "fast")
    engine.register_server_placeholder("ex", "hang", "T", "hang")
    engine.register_server_placeholder("ex", "fast", "T", "fast")
    yield engine, release
    release.set()
    engine.close()


class TestFailureIsolation:
    def test_raising_callback_keeps_marker(self, engine, caplog):
        def boom(token, param):
            raise ValueError("kaboom")

        engine.export_callback(boom, "T", "boom")
        engine.register_server_placeholder("ex", "boom", "T", "boom")

        with caplog.at_level(logging.WARNING, logger="placeholder_api.dispatch"):
            result = engine.replace("a {ex:boom} b")

        assert result == "a {ex:boom} b"
        assert "kaboom" in caplog.text

    def test_non_string_return_is_an_error(self, engine):
        engine.export_callback(lambda token, param: 42, "T", "num")
        engine.register_server_placeholder("ex", "num", "T", "num")

        assert engine.replace("{ex:num}") == "{ex:num}"

    def test_empty_fallback(self, clock):
        engine = PlaceholderEngine(EngineSettings(failure_fallback="empty"), clock=clock)
        try:
            engine.export_callback(lambda token, param: None, "T", "none")
            engine.register_server_placeholder("ex", "none", "T", "none")
            assert engine.replace("[{ex:none}]") == "[]"
        finally:
            engine.close()

    def test_removed_callback_falls_back(self, engine):
        engine.export_callback(lambda token, param: "v", "T", "v")
        engine.register_server_placeholder("ex", "v", "T", "v")
        engine.callbacks.clear()

        assert engine.replace("{ex:v}") == "{ex:v}"

    def test_one_failure_does_not_abort_template(self, engine):
        engine.export_callback(lambda token, param: 1 / 0, "T", "div")
        engine.export_callback(lambda token, param: "fine", "T", "fine")
        engine.register_server_placeholder("ex", "div", "T", "div")
        engine.register_server_placeholder("ex", "fine", "T", "fine")

        assert engine.replace("{ex:div}|{ex:fine}") == "{ex:div}|fine"


class TestDispatchResult:
    def test_error_types(self, engine):
        engine.export_callback(lambda token, param: 1 / 0, "T", "div")
        engine.register_server_placeholder("ex", "div", "T", "div")
        definition = engine.registry.lookup("ex", "div")

        result = engine._dispatcher.invoke(definition, "", SERVER_CONTEXT, "{ex:div}")

        assert not result.ok
        assert isinstance(result.error, CallbackError)
        assert isinstance(result.error.__cause__, ZeroDivisionError)
        assert result.value == "{ex:div}"


class TestTimeouts:
    def test_slow_callback_times_out(self, fast_timeout_engine):
        engine = fast_timeout_engine
        engine.export_callback(lambda token, param: time.sleep(0.5) or "late", "T", "slow")
        engine.register_server_placeholder("ex", "slow", "T", "slow")
        definition = engine.registry.lookup("ex", "slow")

        started = time.monotonic()
        result = engine._dispatcher.invoke(definition, "", SERVER_CONTEXT, "{ex:slow}")
        elapsed = time.monotonic() - started

        assert isinstance(result.error, CallbackTimeoutError)
        assert result.value == "{ex:slow}"
        assert elapsed < 0.4

    def test_async_slow_callback_times_out(self, fast_timeout_engine):
        engine = fast_timeout_engine

        async def slow(token, param):
            await asyncio.sleep(0.5)
            return "late"

        engine.export_callback(slow, "T", "slow")
        engine.register_server_placeholder("ex", "slow", "T", "slow")

        assert asyncio.run(engine.areplace("x{ex:slow}")) == "x{ex:slow}"

    def test_hung_callback_does_not_starve_the_pool(self, hanging_engine):
        engine, release = hanging_engine

        assert engine.replace("{ex:hang}") == "{ex:hang}"
        assert engine.replace("{ex:hang}") == "{ex:hang}"
        assert engine.replace("{ex:fast}") == "ok"
        assert engine._dispatcher.overdue_callbacks() == [CallbackRef("T", "hang")]

        release.set()
        deadline = time.monotonic() + 2
        while engine._dispatcher.overdue_callbacks() and time.monotonic() < deadline:
            time.sleep(0.01)

        assert engine._dispatcher.overdue_callbacks() == []
        assert engine.replace("{ex:hang}") == "done"

    def test_async_calls_skipped_while_overdue(self, hanging_engine):
        engine, release = hanging_engine

        assert asyncio.run(engine.areplace("{ex:hang}")) == "{ex:hang}"
        assert engine._dispatcher.overdue_callbacks() == [CallbackRef("T", "hang")]
        assert asyncio.run(engine.areplace("{ex:hang}|{ex:fast}")) == "{ex:hang}|ok"


class TestAsyncCallbacks:
    def test_coroutine_callback_in_sync_replace(self, engine):
        async def greet(token, param, player):
            await asyncio.sleep(0)
            return f"hi {player.name}"

        engine.export_callback(greet, "T", "greet")
        engine.register_player_placeholder("ex", "greet", "T", "greet")

        assert engine.replace_for_player("{ex:greet}", Player(unique_id="1", name="Bo")) == "hi Bo"

    def test_sync_callback_in_async_replace(self, engine):
        engine.export_callback(lambda token, param: f"[{param}]", "T", "wrap")
        engine.register_server_placeholder("ex", "wrap", "T", "wrap")

        assert asyncio.run(engine.areplace("{ex:wrap:a:b}")) == "[a:b]"

    def test_async_raising_callback_keeps_marker(self, engine):
        async def boom(token, param):
            raise RuntimeError("async kaboom")

        engine.export_callback(boom, "T", "boom")
        engine.register_server_placeholder("ex", "boom", "T", "boom")

        assert asyncio.run(engine.areplace("{ex:boom}")) == "{ex:boom}"
