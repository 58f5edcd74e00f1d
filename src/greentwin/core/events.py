"""Typed event bus connecting the engine to its UI collaborators.

Outbound notifications (nudges, reminders, alerts, connection health) and
inbound remote messages all travel as Events with a fixed EventType.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of events published by the engine."""

    # Outbound to UI surfaces
    SHOW_NUDGE = auto()
    SHOW_NOTIFICATION = auto()
    PROACTIVE_ALERT = auto()
    NUDGE_SUPPRESSED = auto()

    # Sync layer
    CONNECTION_STATUS = auto()
    REMOTE_EVENT = auto()
    PREFERENCE_UPDATE = auto()
    SYNC_RESPONSE = auto()


@dataclass
class Event:
    """An event in the system."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __repr__(self) -> str:
        return f"Event({self.type.name}, {self.data})"


# Handlers may be plain functions or coroutine functions
EventHandler = Callable[[Event], Any]


class EventBus:
    """Observer registry with typed events.

    One instance is created by the engine and passed to every component that
    publishes, so tests can subscribe to a private bus.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = {}
        self._all_handlers: list[EventHandler] = []  # Handlers for all events
        self._pending: set[asyncio.Task] = set()

    def subscribe(
        self,
        event_type: EventType | None,
        handler: EventHandler,
    ) -> None:
        """Subscribe to an event type.

        Args:
            event_type: The event type to subscribe to, or None for all events
            handler: Function or coroutine function called with each event
        """
        if event_type is None:
            self._all_handlers.append(handler)
        else:
            self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(
        self,
        event_type: EventType | None,
        handler: EventHandler,
    ) -> None:
        """Unsubscribe from an event type."""
        if event_type is None:
            if handler in self._all_handlers:
                self._all_handlers.remove(handler)
        elif handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    def _handlers_for(self, event: Event) -> list[EventHandler]:
        return list(self._all_handlers) + list(self._handlers.get(event.type, []))

    def publish(self, event: Event) -> None:
        """Dispatch synchronously.

        Coroutine results are scheduled on the running loop; without a loop
        they are closed and a warning is logged.
        """
        for handler in self._handlers_for(event):
            try:
                result = handler(event)
            except Exception as e:
                logger.error(f"Handler for {event.type.name} failed: {e}")
                continue
            if inspect.isawaitable(result):
                self._schedule(event, result)

    def _schedule(self, event: Event, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(f"No running loop for async {event.type.name} handler")
            return
        task = loop.create_task(self._await_handler(event, awaitable))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _await_handler(self, event: Event, awaitable: Any) -> None:
        try:
            await awaitable
        except Exception as e:
            logger.error(f"Async handler for {event.type.name} failed: {e}")

    async def emit(self, event: Event) -> None:
        """Emit an event and wait for all handlers to complete."""
        results = []
        for handler in self._handlers_for(event):
            try:
                results.append(handler(event))
            except Exception as e:
                logger.error(f"Handler for {event.type.name} failed: {e}")
        awaitables = [r for r in results if inspect.isawaitable(r)]
        if awaitables:
            outcomes = await asyncio.gather(*awaitables, return_exceptions=True)
            for outcome in outcomes:
                if isinstance(outcome, Exception):
                    logger.error(f"Async handler for {event.type.name} failed: {outcome}")

    async def drain(self) -> None:
        """Wait for handlers scheduled by publish()."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self) -> None:
        """Remove every subscription."""
        self._handlers.clear()
        self._all_handlers.clear()
