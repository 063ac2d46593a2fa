"""
Unit tests for the in-process ChangeBus.
"""

import asyncio
import logging

import pytest

from docstore.bus import CHANGE, PROFILE, ChangeBus, ChangeEvent
from docstore.observability import ATTR_CHANNEL, ATTR_HANDLER_COUNT, MockTracer

# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def bus() -> ChangeBus:
    """Create a fresh bus without tracing."""
    return ChangeBus(enable_tracing=False)


@pytest.fixture
def event() -> ChangeEvent:
    return ChangeEvent(event_type="insert", table="users", row_locator=1, document_id="u1")


# =============================================================================
# Registration and dispatch
# =============================================================================


class TestDispatch:
    """Tests for listen/publish."""

    def test_handlers_run_in_registration_order(self, bus: ChangeBus, event: ChangeEvent) -> None:
        calls: list[str] = []
        bus.listen(CHANGE, lambda e: calls.append("first"))
        bus.listen(CHANGE, lambda e: calls.append("second"))

        bus.publish(CHANGE, event)

        assert calls == ["first", "second"]

    def test_channels_are_separate(self, bus: ChangeBus, event: ChangeEvent) -> None:
        calls: list[object] = []
        bus.listen(PROFILE, calls.append)

        bus.publish(CHANGE, event)

        assert calls == []

    def test_publish_without_handlers(self, bus: ChangeBus, event: ChangeEvent) -> None:
        bus.publish(CHANGE, event)
        assert bus.stats["events_published"] == 1
        assert bus.stats["handlers_invoked"] == 0

    def test_same_handler_registered_twice(self, bus: ChangeBus, event: ChangeEvent) -> None:
        calls: list[object] = []
        first = bus.listen(CHANGE, calls.append)
        bus.listen(CHANGE, calls.append)

        bus.publish(CHANGE, event)
        assert len(calls) == 2

        first()
        bus.publish(CHANGE, event)
        assert len(calls) == 3

    def test_handler_added_during_publish_sees_later_events(
        self, bus: ChangeBus, event: ChangeEvent
    ) -> None:
        late: list[object] = []

        def register(_: object) -> None:
            bus.listen(CHANGE, late.append)

        bus.listen(CHANGE, register)
        bus.publish(CHANGE, event)
        assert late == []

        bus.publish(CHANGE, event)
        assert late == [event]


# =============================================================================
# Unsubscribe
# =============================================================================


class TestUnsubscribe:
    """Tests for unsubscribe closures."""

    def test_unsubscribe_stops_delivery(self, bus: ChangeBus, event: ChangeEvent) -> None:
        calls: list[object] = []
        unsubscribe = bus.listen(CHANGE, calls.append)

        unsubscribe()
        bus.publish(CHANGE, event)

        assert calls == []
        assert bus.handler_count(CHANGE) == 0

    def test_unsubscribe_is_idempotent(self, bus: ChangeBus) -> None:
        keep = bus.listen(CHANGE, lambda e: None)
        unsubscribe = bus.listen(CHANGE, lambda e: None)

        unsubscribe()
        unsubscribe()

        assert bus.handler_count(CHANGE) == 1
        keep()

    def test_clear(self, bus: ChangeBus) -> None:
        bus.listen(CHANGE, lambda e: None)
        bus.listen(PROFILE, lambda e: None)

        bus.clear()

        assert bus.handler_count(CHANGE) == 0
        assert bus.handler_count(PROFILE) == 0


# =============================================================================
# Error isolation
# =============================================================================


class TestErrorIsolation:
    """A failing handler never affects its siblings or the publisher."""

    def test_sync_failure_is_logged(
        self, bus: ChangeBus, event: ChangeEvent, caplog: pytest.LogCaptureFixture
    ) -> None:
        calls: list[object] = []

        def broken(_: object) -> None:
            raise RuntimeError("boom")

        bus.listen(CHANGE, broken)
        bus.listen(CHANGE, calls.append)

        with caplog.at_level(logging.ERROR, logger="docstore.bus.memory"):
            bus.publish(CHANGE, event)

        assert calls == [event]
        assert bus.stats["handler_errors"] == 1
        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_async_failure_is_logged(
        self, bus: ChangeBus, event: ChangeEvent, caplog: pytest.LogCaptureFixture
    ) -> None:
        async def broken(_: object) -> None:
            raise RuntimeError("async boom")

        bus.listen(CHANGE, broken)

        with caplog.at_level(logging.ERROR, logger="docstore.bus.memory"):
            bus.publish(CHANGE, event)
            await bus.drain()

        assert bus.stats["handler_errors"] == 1
        assert "async boom" in caplog.text

    def test_awaitable_without_loop_is_dropped(self, bus: ChangeBus, event: ChangeEvent) -> None:
        async def handler(_: object) -> None:
            pass

        bus.listen(CHANGE, handler)
        bus.publish(CHANGE, event)

        assert bus.pending_tasks == 0
        assert bus.stats["handler_errors"] == 1


# =============================================================================
# Async handlers
# =============================================================================


class TestAsyncHandlers:
    """Awaitables returned by handlers run as background tasks."""

    @pytest.mark.asyncio
    async def test_drain_waits_for_tasks(self, bus: ChangeBus, event: ChangeEvent) -> None:
        seen: list[ChangeEvent] = []

        async def handler(e: ChangeEvent) -> None:
            await asyncio.sleep(0.01)
            seen.append(e)

        bus.listen(CHANGE, handler)
        bus.publish(CHANGE, event)

        assert bus.pending_tasks == 1
        await bus.drain()
        assert seen == [event]
        assert bus.pending_tasks == 0

    @pytest.mark.asyncio
    async def test_drain_waits_for_chained_tasks(self, bus: ChangeBus, event: ChangeEvent) -> None:
        seen: list[str] = []

        async def second(_: object) -> None:
            seen.append("second")

        async def first(_: object) -> None:
            seen.append("first")
            bus.publish(PROFILE, event)

        bus.listen(CHANGE, first)
        bus.listen(PROFILE, second)
        bus.publish(CHANGE, event)
        await bus.drain()

        assert seen == ["first", "second"]


# =============================================================================
# Tracing
# =============================================================================


class TestTracing:
    """Tests for dispatch spans."""

    def test_dispatch_span(self, event: ChangeEvent) -> None:
        tracer = MockTracer()
        bus = ChangeBus(tracer=tracer)
        bus.listen(CHANGE, lambda e: None)

        bus.publish(CHANGE, event)

        assert tracer.span_names == ["docstore.change_bus.dispatch"]
        _, attributes = tracer.spans[0]
        assert attributes == {ATTR_CHANNEL: CHANGE, ATTR_HANDLER_COUNT: 1}

    def test_no_span_without_handlers(self, event: ChangeEvent) -> None:
        tracer = MockTracer()
        ChangeBus(tracer=tracer).publish(CHANGE, event)
        assert tracer.spans == []
