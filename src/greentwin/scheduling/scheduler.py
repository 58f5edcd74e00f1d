"""Deferred work - reminders, snoozes, reconnects and heartbeats.

Components never sleep on the wall clock. They ask a Scheduler to fire a
token at a point in time, and a single handler receives every due token.
"""

import asyncio
import heapq
import inspect
import itertools
import logging
from datetime import datetime, timedelta
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Receives the token of a fired alarm. May be sync or async.
FireHandler = Callable[[str], Any]


class Scheduler:
    """Minimal timer interface: schedule_at / cancel / pending.

    Scheduling a token that is already pending replaces it.
    """

    def __init__(self, on_fire: FireHandler | None = None):
        self.on_fire = on_fire

    def schedule_at(self, when: datetime, token: str) -> None:
        raise NotImplementedError

    def schedule_in(self, seconds: float, token: str) -> None:
        self.schedule_at(self.now() + timedelta(seconds=seconds), token)

    def cancel(self, token: str) -> bool:
        raise NotImplementedError

    def pending(self) -> dict[str, datetime]:
        raise NotImplementedError

    def now(self) -> datetime:
        return datetime.now()

    def is_pending(self, token: str) -> bool:
        return token in self.pending()

    async def _fire(self, token: str) -> None:
        """Run the handler, awaiting it when it returns an awaitable."""
        if self.on_fire is None:
            logger.debug(f"No handler for fired token {token}")
            return
        try:
            result = self.on_fire(token)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Handler for {token} failed: {e}")


class AsyncioScheduler(Scheduler):
    """Scheduler backed by loop.call_later on the running event loop.

    Tokens scheduled while no loop is running are held back and armed by
    start(), or by the next schedule_at() made from inside a loop.
    """

    def __init__(self, on_fire: FireHandler | None = None):
        super().__init__(on_fire)
        self._handles: dict[str, tuple[datetime, asyncio.TimerHandle]] = {}
        self._deferred: dict[str, datetime] = {}
        self._tasks: set[asyncio.Task] = set()

    def schedule_at(self, when: datetime, token: str) -> None:
        self.cancel(token)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deferred[token] = when
            logger.debug(f"No running loop, deferring {token}")
            return
        self._arm_deferred(loop)
        self._arm(loop, when, token)

    def start(self) -> None:
        """Arm tokens deferred before the loop was running."""
        self._arm_deferred(asyncio.get_running_loop())

    def _arm_deferred(self, loop: asyncio.AbstractEventLoop) -> None:
        deferred, self._deferred = self._deferred, {}
        for token, when in deferred.items():
            self._arm(loop, when, token)

    def _arm(self, loop: asyncio.AbstractEventLoop, when: datetime, token: str) -> None:
        delay = max(0.0, (when - self.now()).total_seconds())
        handle = loop.call_later(delay, self._on_timer, token)
        self._handles[token] = (when, handle)
        logger.debug(f"Scheduled {token} in {delay:.1f}s")

    def _on_timer(self, token: str) -> None:
        self._handles.pop(token, None)
        task = asyncio.get_running_loop().create_task(self._fire(token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel(self, token: str) -> bool:
        if self._deferred.pop(token, None) is not None:
            return True
        entry = self._handles.pop(token, None)
        if entry is None:
            return False
        entry[1].cancel()
        return True

    def pending(self) -> dict[str, datetime]:
        pending = dict(self._deferred)
        pending.update({token: when for token, (when, _) in self._handles.items()})
        return pending

    async def shutdown(self) -> None:
        """Cancel every timer and wait for in-flight handlers."""
        for _, handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        self._deferred.clear()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


class ManualScheduler(Scheduler):
    """Deterministic scheduler with its own clock.

    Time only moves when advance() or advance_to() is awaited; due tokens
    fire in time order (ties in scheduling order). Pass `scheduler.now` as the
    clock of every component under test.
    """

    def __init__(
        self,
        start: datetime | None = None,
        on_fire: FireHandler | None = None,
    ):
        super().__init__(on_fire)
        self._now = start or datetime(2024, 1, 1, 12, 0, 0)
        self._heap: list[tuple[datetime, int, str]] = []
        self._live: dict[str, tuple[datetime, int]] = {}
        self._seq = itertools.count()
        self.fired: list[str] = []

    def now(self) -> datetime:
        return self._now

    def set_now(self, when: datetime) -> None:
        """Jump the clock without firing anything."""
        self._now = when

    def schedule_at(self, when: datetime, token: str) -> None:
        seq = next(self._seq)
        self._live[token] = (when, seq)
        heapq.heappush(self._heap, (when, seq, token))

    def cancel(self, token: str) -> bool:
        return self._live.pop(token, None) is not None

    def pending(self) -> dict[str, datetime]:
        return {token: when for token, (when, _) in self._live.items()}

    async def advance(self, seconds: float) -> list[str]:
        return await self.advance_to(self._now + timedelta(seconds=seconds))

    async def advance_to(self, when: datetime) -> list[str]:
        """Move the clock forward, firing every token due on the way.

        Returns:
            Tokens fired, in firing order
        """
        fired = []
        while self._heap and self._heap[0][0] <= when:
            due, seq, token = heapq.heappop(self._heap)
            # Skip cancelled or rescheduled entries
            if self._live.get(token) != (due, seq):
                continue
            del self._live[token]
            self._now = max(self._now, due)
            fired.append(token)
            self.fired.append(token)
            await self._fire(token)
        self._now = max(self._now, when)
        return fired
