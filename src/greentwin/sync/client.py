"""Sync Reliability Layer.

Connection state machine:

    disconnected --connect--> connecting --open--> connected
    connected --error/close--> disconnected

Entering disconnected schedules a reconnect after backoff(attempts) until
max_reconnect_attempts is reached; after that only the liveness probe or
retry_now() tries again. Entering connected resets the counter, starts the
heartbeat and flushes the offline queue.

Delivery is at-least-once: an event leaves the queue only after the
transport accepted it, and the stable event id lets the collector
de-duplicate. While the socket is down and an HTTP sender is configured,
the queue drains over HTTP instead.
"""

import asyncio
import logging
from typing import Any

from greentwin.contracts.sync import (
    ConnectionState,
    MessageType,
    QueuedEvent,
    SyncEvent,
    WireMessage,
)
from greentwin.core.events import Event, EventBus, EventType
from greentwin.errors import TransportError
from greentwin.scheduling import Scheduler
from greentwin.sync.backoff import backoff
from greentwin.sync.queue import OfflineQueue
from greentwin.sync.transport import HttpEventSender, Transport

logger = logging.getLogger(__name__)


class SyncClient:
    """Reconnecting transport with bounded offline buffering."""

    TOKEN_PREFIX = "sync:"
    RECONNECT_TOKEN = "sync:reconnect"
    HEARTBEAT_TOKEN = "sync:heartbeat"
    LIVENESS_TOKEN = "sync:liveness"
    FLUSH_TOKEN = "sync:flush"

    def __init__(
        self,
        transport: Transport,
        scheduler: Scheduler,
        bus: EventBus | None = None,
        queue: OfflineQueue | None = None,
        http: HttpEventSender | None = None,
        client_id: str = "unknown",
        max_reconnect_attempts: int = 5,
        backoff_base: float = 1.0,
        backoff_cap: float = 30.0,
        heartbeat_interval: float = 30.0,
        liveness_interval: float = 10.0,
        batch_size: int = 10,
        max_failures: int = 5,
        event_delay: float = 0.1,
    ):
        """Initialize the client.

        Args:
            transport: Socket transport to the collector
            scheduler: Scheduler for reconnect/heartbeat/liveness/flush tokens
            bus: Bus for CONNECTION_STATUS and inbound remote messages
            queue: Offline queue (in-memory default of 1000)
            http: Optional POST fallback used when the socket is down
            client_id: Id sent in wire messages until the collector assigns one
            max_reconnect_attempts: Automatic reconnects before giving up
            backoff_base: First reconnect delay in seconds
            backoff_cap: Longest reconnect delay in seconds
            heartbeat_interval: Seconds between heartbeats while connected
            liveness_interval: Seconds between liveness probes
            batch_size: Events delivered per flush batch
            max_failures: Consecutive delivery failures that abort a flush
            event_delay: Pause between deliveries during a flush
        """
        self.transport = transport
        self.scheduler = scheduler
        self.bus = bus
        self.queue = queue if queue is not None else OfflineQueue()
        self.http = http
        self.client_id = client_id
        self.max_reconnect_attempts = max_reconnect_attempts
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.heartbeat_interval = heartbeat_interval
        self.liveness_interval = liveness_interval
        self.batch_size = batch_size
        self.max_failures = max_failures
        self.event_delay = event_delay

        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self.last_delay: float | None = None
        self.delivered = 0
        self._flushing = False
        self._running = False
        self._receive_task: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def can_deliver(self) -> bool:
        """Socket up, or an HTTP fallback to drain through."""
        return self.connected or self.http is not None

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Begin liveness probing and make the first connection attempt."""
        if self._running:
            return
        self._running = True
        self.scheduler.schedule_in(self.liveness_interval, self.LIVENESS_TOKEN)
        await self.connect()

    async def stop(self) -> None:
        self._running = False
        for token in (
            self.RECONNECT_TOKEN,
            self.HEARTBEAT_TOKEN,
            self.LIVENESS_TOKEN,
            self.FLUSH_TOKEN,
        ):
            self.scheduler.cancel(token)
        if self._receive_task:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None
        await self.transport.close()
        if self.http is not None:
            await self.http.close()
        self._set_state(ConnectionState.DISCONNECTED)

    async def connect(self) -> bool:
        """Single connection attempt.

        Returns:
            True when connected afterwards
        """
        if self.state != ConnectionState.DISCONNECTED:
            return self.connected

        self._set_state(ConnectionState.CONNECTING)
        try:
            await self.transport.connect(self.attempts)
        except TransportError as e:
            logger.warning(f"Connection attempt {self.attempts + 1} failed: {e}")
            self._on_disconnected()
            return False

        await self._on_connected()
        return True

    async def retry_now(self) -> bool:
        """Reset the attempt counter and try immediately."""
        self.attempts = 0
        self.scheduler.cancel(self.RECONNECT_TOKEN)
        return await self.connect()

    async def _on_connected(self) -> None:
        logger.info("Connected to collector")
        self.attempts = 0
        self.last_delay = None
        self.scheduler.cancel(self.RECONNECT_TOKEN)
        self._set_state(ConnectionState.CONNECTED)
        self.scheduler.schedule_in(self.heartbeat_interval, self.HEARTBEAT_TOKEN)
        self._start_receiving()
        await self.flush()

    def _on_disconnected(self) -> None:
        self.scheduler.cancel(self.HEARTBEAT_TOKEN)
        self._set_state(ConnectionState.DISCONNECTED)

        if self.attempts >= self.max_reconnect_attempts:
            logger.info("Max reconnection attempts reached, waiting for liveness probe")
            return

        delay = backoff(self.attempts, self.backoff_base, self.backoff_cap)
        self.attempts += 1
        self.last_delay = delay
        self.scheduler.schedule_in(delay, self.RECONNECT_TOKEN)
        logger.info(f"Reconnecting in {delay:.0f}s (attempt {self.attempts})")

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        self.state = state
        if self.bus is not None and state != ConnectionState.CONNECTING:
            self.bus.publish(Event(
                type=EventType.CONNECTION_STATUS,
                data={"connected": self.connected, "state": state.value},
            ))

    def _start_receiving(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        # A loop left over from the previous connection must not outlive it
        if self._receive_task is not None and not self._receive_task.done():
            self._receive_task.cancel()
        self._receive_task = loop.create_task(self._receive_loop())

    async def _receive_loop(self) -> None:
        async for message in self.transport.receive():
            await self.route(message)
        if self.connected and self._receive_task is asyncio.current_task():
            logger.warning("Collector closed the connection")
            self._on_disconnected()

    # ─────────────────────────────────────────────────────────────────────
    # Scheduled work
    # ─────────────────────────────────────────────────────────────────────

    async def handle_alarm(self, token: str) -> bool:
        """Dispatch a fired sync:* token.

        Returns:
            False for tokens this client does not own
        """
        if token == self.RECONNECT_TOKEN:
            if self.state == ConnectionState.DISCONNECTED:
                await self.connect()
        elif token == self.HEARTBEAT_TOKEN:
            await self._heartbeat()
        elif token == self.LIVENESS_TOKEN:
            if self._running:
                self.scheduler.schedule_in(self.liveness_interval, self.LIVENESS_TOKEN)
            if (
                self.state == ConnectionState.DISCONNECTED
                and not self.scheduler.is_pending(self.RECONNECT_TOKEN)
            ):
                await self.connect()
            await self.flush()
        elif token == self.FLUSH_TOKEN:
            await self.flush()
        else:
            return False
        return True

    async def _heartbeat(self) -> None:
        if not self.connected:
            return
        await self._send(MessageType.HEARTBEAT, {"ping": True})
        if self.connected:
            self.scheduler.schedule_in(self.heartbeat_interval, self.HEARTBEAT_TOKEN)

    # ─────────────────────────────────────────────────────────────────────
    # Outbound
    # ─────────────────────────────────────────────────────────────────────

    async def _send(self, message_type: MessageType, data: Any) -> bool:
        message = WireMessage(type=message_type, client_id=self.client_id, data=data)
        try:
            await self.transport.send(message.to_json_dict())
        except TransportError as e:
            logger.warning(f"Send of {message_type.value} failed: {e}")
            # A failed send on a live socket is retried, not a disconnect
            if self.connected and not self.transport.connected:
                self._on_disconnected()
            return False
        return True

    async def deliver(self, event: QueuedEvent) -> bool:
        """Try socket, then HTTP fallback. True only when accepted."""
        if self.connected and await self._send(MessageType.EVENT, event.payload):
            return True
        if self.http is not None:
            return await self.http.send_event(event.payload)
        return False

    async def enqueue(self, event: SyncEvent) -> bool:
        """Deliver now if possible, otherwise queue.

        Returns:
            True when delivered immediately
        """
        queued = QueuedEvent.from_event(event)
        if self.can_deliver and not self._flushing:
            if await self.deliver(queued):
                self.delivered += 1
                logger.debug(f"Event {event.id} sent immediately")
                return True
        self.queue.append(queued)
        return False

    def submit(self, event: SyncEvent) -> None:
        """Synchronous entry point: queue, then flush soon if deliverable."""
        self.queue.append(QueuedEvent.from_event(event))
        if self.can_deliver:
            self.scheduler.schedule_in(0, self.FLUSH_TOKEN)

    async def flush(self) -> int:
        """Deliver queued events in batches over the socket or HTTP fallback.

        Failed events go back to the front of the queue. The flush aborts
        after more than max_failures consecutive failures on either path.

        Returns:
            Number of events delivered
        """
        if self._flushing or not self.can_deliver or not self.queue:
            return 0

        self._flushing = True
        delivered = 0
        consecutive_failures = 0
        logger.info(f"Flushing {len(self.queue)} queued events")
        try:
            while self.queue and self.can_deliver:
                batch = self.queue.pop_batch(self.batch_size)
                for index, event in enumerate(batch):
                    sent = self.can_deliver and await self.deliver(event)
                    if self.event_delay:
                        await asyncio.sleep(self.event_delay)
                    if not sent:
                        # The failed event and the rest of its batch keep their order
                        self.queue.extend_front(batch[index:])
                        if self.can_deliver:
                            consecutive_failures += 1
                        break
                    delivered += 1
                    consecutive_failures = 0
                if consecutive_failures > self.max_failures:
                    logger.warning("Too many delivery failures, aborting flush")
                    break
        finally:
            self._flushing = False

        self.delivered += delivered
        logger.info(f"Flush complete: {delivered} delivered, {len(self.queue)} remaining")
        return delivered

    async def send_preference_update(self, preferences: dict[str, Any]) -> bool:
        if not self.connected:
            return False
        return await self._send(MessageType.PREFERENCE, preferences)

    async def request_sync(self, since: int = 0) -> bool:
        if not self.connected:
            return False
        return await self._send(MessageType.SYNC_REQUEST, {"since": since})

    # ─────────────────────────────────────────────────────────────────────
    # Inbound
    # ─────────────────────────────────────────────────────────────────────

    async def route(self, message: dict[str, Any]) -> None:
        """Route one inbound wire message to the bus."""
        message_type = message.get("type")
        data = message.get("data") or {}

        if message_type == MessageType.HEARTBEAT.value:
            return
        if message_type == MessageType.SYNC_RESPONSE.value:
            if isinstance(data, dict) and data.get("clientId"):
                self.client_id = data["clientId"]
            self._publish(EventType.SYNC_RESPONSE, data)
            logger.info("Sync completed")
        elif message_type == MessageType.EVENT.value:
            self._publish(EventType.REMOTE_EVENT, data)
        elif message_type == MessageType.PREFERENCE.value:
            self._publish(EventType.PREFERENCE_UPDATE, data)
        else:
            logger.warning(f"Unknown message type from collector: {message_type}")

    def _publish(self, event_type: EventType, data: Any) -> None:
        if self.bus is not None:
            payload = data if isinstance(data, dict) else {"value": data}
            self.bus.publish(Event(type=event_type, data=payload))

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "connected": self.connected,
            "attempts": self.attempts,
            "last_delay": self.last_delay,
            "client_id": self.client_id,
            "delivered": self.delivered,
            "queue": self.queue.stats(),
        }
