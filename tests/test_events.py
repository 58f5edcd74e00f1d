"""Tests for the event bus."""

import pytest

from greentwin.core.events import Event, EventBus, EventType


class TestEventBus:
    def test_publish_to_typed_and_wildcard(self):
        bus = EventBus()
        typed, everything = [], []
        bus.subscribe(EventType.SHOW_NUDGE, typed.append)
        bus.subscribe(None, everything.append)

        bus.publish(Event(type=EventType.SHOW_NUDGE, data={"id": "n1"}))
        bus.publish(Event(type=EventType.PROACTIVE_ALERT))

        assert [e.data["id"] for e in typed] == ["n1"]
        assert [e.type for e in everything] == [EventType.SHOW_NUDGE, EventType.PROACTIVE_ALERT]

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        bus.subscribe(EventType.SHOW_NOTIFICATION, seen.append)
        bus.unsubscribe(EventType.SHOW_NOTIFICATION, seen.append)
        bus.unsubscribe(EventType.SHOW_NOTIFICATION, seen.append)  # no-op
        bus.publish(Event(type=EventType.SHOW_NOTIFICATION))
        assert seen == []

    def test_failing_handler_does_not_block_others(self):
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(EventType.SHOW_NUDGE, broken)
        bus.subscribe(EventType.SHOW_NUDGE, seen.append)
        bus.publish(Event(type=EventType.SHOW_NUDGE))
        assert len(seen) == 1

    def test_async_handler_without_loop_is_dropped(self):
        bus = EventBus()

        async def handler(event):
            raise AssertionError("should not run")

        bus.subscribe(EventType.SHOW_NUDGE, handler)
        bus.publish(Event(type=EventType.SHOW_NUDGE))

    @pytest.mark.asyncio
    async def test_async_handlers_drain(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event.data)

        bus.subscribe(EventType.REMOTE_EVENT, handler)
        bus.publish(Event(type=EventType.REMOTE_EVENT, data={"n": 1}))
        await bus.drain()
        await bus.emit(Event(type=EventType.REMOTE_EVENT, data={"n": 2}))
        assert seen == [{"n": 1}, {"n": 2}]

    def test_clear(self):
        bus = EventBus()
        seen = []
        bus.subscribe(None, seen.append)
        bus.clear()
        bus.publish(Event(type=EventType.SHOW_NUDGE))
        assert seen == []
