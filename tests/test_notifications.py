"""
Tests for the listener registry and safe emission.
"""

import asyncio

import pytest

from eventstream.utils.errors import ListenerError
from eventstream.utils.notifications import EventEmitter


class TestEventEmitter:
    """Test listener registration and fan-out."""

    @pytest.mark.asyncio
    async def test_handlers_run_in_registration_order(self):
        emitter = EventEmitter()
        calls = []
        emitter.on("tick", lambda n: calls.append(("first", n)))
        emitter.on("tick", lambda n: calls.append(("second", n)))

        delivered = await emitter.emit("tick", 1)

        assert delivered is True
        assert calls == [("first", 1), ("second", 1)]

    @pytest.mark.asyncio
    async def test_emit_without_listeners(self):
        emitter = EventEmitter()

        assert await emitter.emit("nobody") is False

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited_in_order(self):
        emitter = EventEmitter()
        calls = []

        async def slow(value):
            await asyncio.sleep(0.01)
            calls.append(("slow", value))

        emitter.on("tick", slow)
        emitter.on("tick", lambda value: calls.append(("fast", value)))

        await emitter.emit("tick", "x")

        assert calls == [("slow", "x"), ("fast", "x")]

    @pytest.mark.asyncio
    async def test_handlers_without_payload(self):
        emitter = EventEmitter()
        calls = []
        emitter.on("disconnect", lambda: calls.append("disconnect"))

        await emitter.emit("disconnect")

        assert calls == ["disconnect"]

    @pytest.mark.asyncio
    async def test_once_runs_a_single_time(self):
        emitter = EventEmitter()
        calls = []
        emitter.once("tick", calls.append)

        await emitter.emit("tick", 1)
        await emitter.emit("tick", 2)

        assert calls == [1]
        assert emitter.listener_count("tick") == 0

    @pytest.mark.asyncio
    async def test_off_removes_handler(self):
        emitter = EventEmitter()
        calls = []
        emitter.on("tick", calls.append)

        assert emitter.off("tick", calls.append) is True
        assert emitter.off("tick", calls.append) is False
        await emitter.emit("tick", 1)

        assert calls == []

    @pytest.mark.asyncio
    async def test_removal_during_delivery_uses_snapshot(self):
        emitter = EventEmitter()
        calls = []

        def second(value):
            calls.append(("second", value))

        def first(value):
            calls.append(("first", value))
            emitter.remove_all_listeners()

        emitter.on("tick", first)
        emitter.on("tick", second)

        await emitter.emit("tick", 1)
        await emitter.emit("tick", 2)

        assert calls == [("first", 1), ("second", 1)]

    def test_remove_all_listeners_for_one_event(self):
        emitter = EventEmitter()
        emitter.on("a", print)
        emitter.on("b", print)

        emitter.remove_all_listeners("a")

        assert emitter.listener_count("a") == 0
        assert emitter.listeners("b") == [print]

    @pytest.mark.asyncio
    async def test_emit_propagates_handler_failure(self):
        emitter = EventEmitter()

        def broken(_):
            raise RuntimeError("boom")

        emitter.on("tick", broken)

        with pytest.raises(RuntimeError):
            await emitter.emit("tick", 1)


class TestSafeEmission:
    """Test that listener failures never reach the emitter's caller."""

    @pytest.mark.asyncio
    async def test_failure_is_redispatched_as_error(self):
        emitter = EventEmitter()
        errors = []

        def broken(_):
            raise ValueError("bad handler")

        emitter.on("event", broken)
        emitter.on("error", errors.append)

        await emitter.emit_safe("event", {"a": 1})

        assert len(errors) == 1
        assert isinstance(errors[0], ListenerError)
        assert errors[0].event == "event"
        assert isinstance(errors[0].cause, ValueError)

    @pytest.mark.asyncio
    async def test_failure_without_error_listener_is_contained(self):
        emitter = EventEmitter()
        emitter.on("event", lambda _: 1 / 0)

        await emitter.emit_safe("event", {})

    @pytest.mark.asyncio
    async def test_failing_error_listener_does_not_loop(self):
        emitter = EventEmitter()
        calls = []

        def broken_error_handler(error):
            calls.append(error)
            raise RuntimeError("error handler failed too")

        emitter.on("event", lambda _: 1 / 0)
        emitter.on("error", broken_error_handler)

        await emitter.emit_safe("event", {})

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_failure_nested_inside_error_delivery_is_dropped(self):
        emitter = EventEmitter()
        errors = []

        async def error_handler(error):
            errors.append(error)
            await emitter.emit_safe("event", {})

        emitter.on("event", lambda _: 1 / 0)
        emitter.on("error", error_handler)

        await emitter.emit_safe("event", {})

        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_async_handler_failure_is_contained(self):
        emitter = EventEmitter()
        errors = []

        async def broken(_):
            raise KeyError("missing")

        emitter.on("event", broken)
        emitter.on("error", errors.append)

        await emitter.emit_safe("event", {})

        assert len(errors) == 1
        assert isinstance(errors[0].cause, KeyError)
