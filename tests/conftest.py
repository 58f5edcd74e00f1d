"""Shared fixtures: deterministic clock, temp state store, fake collector."""

import asyncio
from datetime import datetime

import pytest

from greentwin.core.events import Event, EventBus, EventType
from greentwin.errors import TransportError
from greentwin.scheduling import ManualScheduler
from greentwin.storage import StateStore

# Monday, noon: outside avoided hours and outside peak hours
START = datetime(2024, 1, 1, 12, 0, 0)


class FakeTransport:
    """In-memory collector connection.

    Set `online` to refuse connects, `fail_sends` to fail the next N sends.
    Inbound messages are pushed with push(); drop() simulates the collector
    closing the socket.
    """

    def __init__(self, online: bool = True):
        self.online = online
        self.fail_sends = 0
        self.sent: list[dict] = []
        self.connect_attempts: list[int] = []
        self._connected = False
        self._inbox: asyncio.Queue | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self, attempt: int = 0) -> None:
        self.connect_attempts.append(attempt)
        if not self.online:
            raise TransportError("collector unreachable")
        self._connected = True
        self._inbox = asyncio.Queue()

    async def send(self, message: dict) -> None:
        if not self._connected:
            raise TransportError("not connected")
        if self.fail_sends:
            self.fail_sends -= 1
            raise TransportError("send failed")
        self.sent.append(message)

    async def receive(self):
        inbox = self._inbox
        if inbox is None:
            return
        while True:
            message = await inbox.get()
            if message is None:
                break
            yield message

    def push(self, message: dict) -> None:
        assert self._inbox is not None
        self._inbox.put_nowait(message)

    def drop(self) -> None:
        self._connected = False
        if self._inbox is not None:
            self._inbox.put_nowait(None)

    async def close(self) -> None:
        self.drop()

    def events(self) -> list[dict]:
        """Data of every delivered event message."""
        return [m["data"] for m in self.sent if m["type"] == "event"]

    def event_ids(self) -> list[str]:
        return [e["id"] for e in self.events()]


class DedupCollector(FakeTransport):
    """Collector that stores each event id once and counts repeats.

    `lose_acks` drops the connection right after accepting the next N
    events, so the client never learns they arrived.
    """

    def __init__(self, online: bool = True):
        super().__init__(online)
        self.lose_acks = 0
        self.stored: dict[str, dict] = {}
        self.duplicates = 0

    async def send(self, message: dict) -> None:
        await super().send(message)
        if message["type"] != "event":
            return
        data = message["data"]
        if data["id"] in self.stored:
            self.duplicates += 1
        else:
            self.stored[data["id"]] = data
        if self.lose_acks:
            self.lose_acks -= 1
            self.drop()
            raise TransportError("connection lost before ack")


class Recorder:
    """Collects every event published on a bus."""

    def __init__(self, bus: EventBus):
        self.events: list[Event] = []
        bus.subscribe(None, self.events.append)

    def of(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.type == event_type]


async def settle(rounds: int = 5) -> None:
    """Let background tasks (receive loop, bus handlers) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def scheduler():
    return ManualScheduler(start=START)


@pytest.fixture
def state(tmp_path):
    return StateStore(tmp_path / "state.db")


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorder(bus):
    return Recorder(bus)


@pytest.fixture
def transport():
    return FakeTransport()
