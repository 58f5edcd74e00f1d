"""Bounded offline queue of sync events.

FIFO with a hard capacity: appending past capacity evicts the oldest entry.
Contents are mirrored to the state store after every mutation so queued
events survive restarts.
"""

import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Iterable, Iterator

from greentwin.contracts.sync import QueuedEvent
from greentwin.storage import StateStore

logger = logging.getLogger(__name__)


class OfflineQueue:
    """Bounded FIFO of QueuedEvents."""

    def __init__(self, capacity: int = 1000, state: StateStore | None = None):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.state = state
        self._events: deque[QueuedEvent] = deque()
        self.evicted = 0
        if state is not None:
            self._events.extend(state.load_queue())
            self._trim()
            if self._events:
                logger.info(f"Loaded {len(self._events)} queued events from storage")

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[QueuedEvent]:
        return iter(list(self._events))

    def __bool__(self) -> bool:
        return bool(self._events)

    def _persist(self) -> None:
        if self.state is not None:
            self.state.replace_queue(list(self._events))

    def _trim(self) -> list[QueuedEvent]:
        dropped = []
        while len(self._events) > self.capacity:
            dropped.append(self._events.popleft())
        for event in dropped:
            self.evicted += 1
            logger.warning(f"Offline queue full, evicted oldest event {event.id} ({event.type})")
        return dropped

    def append(self, event: QueuedEvent) -> list[QueuedEvent]:
        """Queue an event at the back.

        Returns:
            Events evicted to stay within capacity
        """
        self._events.append(event)
        dropped = self._trim()
        self._persist()
        logger.debug(f"Event queued ({len(self._events)} pending): {event.type}")
        return dropped

    def extend_front(self, events: Iterable[QueuedEvent]) -> None:
        """Put events back at the front, keeping their relative order."""
        self._events.extendleft(reversed(list(events)))
        self._trim()
        self._persist()

    def pop_batch(self, size: int) -> list[QueuedEvent]:
        batch = []
        while self._events and len(batch) < size:
            batch.append(self._events.popleft())
        if batch:
            self._persist()
        return batch

    def peek(self, count: int | None = None) -> list[QueuedEvent]:
        events = list(self._events)
        return events if count is None else events[:count]

    def events_by_type(self, event_type: str) -> list[QueuedEvent]:
        return [e for e in self._events if e.type == event_type]

    def cleanup_old_events(
        self,
        max_age: timedelta = timedelta(days=7),
        now: datetime | None = None,
    ) -> int:
        """Drop events older than max_age.

        Returns:
            Number of events removed
        """
        cutoff = (now or datetime.now()) - max_age
        before = len(self._events)
        self._events = deque(e for e in self._events if e.timestamp >= cutoff)
        removed = before - len(self._events)
        if removed:
            self._persist()
            logger.info(f"Removed {removed} events older than {max_age}")
        return removed

    def clear(self) -> None:
        self._events.clear()
        self._persist()
        logger.info("Offline queue cleared")

    def stats(self) -> dict:
        return {
            "queue_length": len(self._events),
            "capacity": self.capacity,
            "evicted": self.evicted,
            "oldest_event": self._events[0].timestamp.isoformat() if self._events else None,
            "newest_event": self._events[-1].timestamp.isoformat() if self._events else None,
        }
