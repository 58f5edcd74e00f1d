"""Transports to the remote collector.

WebSocketTransport carries wire messages over a socket; HttpEventSender is
the POST fallback for single events when the socket is unavailable.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from greentwin.errors import TransportError

logger = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Connection to the collector used by the sync client."""

    @property
    def connected(self) -> bool:
        ...

    async def connect(self, attempt: int = 0) -> None:
        """Open the connection. Raises TransportError on failure."""
        ...

    async def send(self, message: dict[str, Any]) -> None:
        """Send one wire message. Raises TransportError on failure."""
        ...

    def receive(self) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded inbound messages until the connection closes."""
        ...

    async def close(self) -> None:
        ...


class WebSocketTransport:
    """Socket transport. The URL is chosen by reconnect attempt number."""

    def __init__(
        self,
        urls: list[str],
        open_timeout: float = 10.0,
        ping_interval: float | None = 20.0,
    ):
        if not urls:
            raise ValueError("at least one collector URL is required")
        self.urls = list(urls)
        self.open_timeout = open_timeout
        self.ping_interval = ping_interval
        self._ws: Any = None
        self.url: str | None = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def url_for(self, attempt: int) -> str:
        return self.urls[min(attempt, len(self.urls) - 1)]

    async def connect(self, attempt: int = 0) -> None:
        url = self.url_for(attempt)
        logger.info(f"Connecting to collector at {url}")
        try:
            self._ws = await websockets.connect(
                url,
                open_timeout=self.open_timeout,
                ping_interval=self.ping_interval,
            )
        except (WebSocketException, asyncio.TimeoutError, OSError) as e:
            self._ws = None
            raise TransportError(f"connect to {url} failed: {e}") from e
        self.url = url

    async def send(self, message: dict[str, Any]) -> None:
        if self._ws is None:
            raise TransportError("not connected")
        try:
            await self._ws.send(json.dumps(message))
        except (ConnectionClosed, OSError) as e:
            self._ws = None
            raise TransportError(f"send failed: {e}") from e

    async def receive(self) -> AsyncIterator[dict[str, Any]]:
        if self._ws is None:
            return
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.error(f"Invalid message from collector: {raw!r:.80}")
                    continue
                if isinstance(message, dict):
                    yield message
        except ConnectionClosed as e:
            logger.warning(f"Collector connection closed: {e}")
        finally:
            self._ws = None

    async def close(self) -> None:
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()


class HttpEventSender:
    """POST fallback for events while the socket is down."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send_event(self, payload: dict[str, Any]) -> bool:
        """POST one event. True only on a 2xx response."""
        try:
            response = await self._get_client().post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"HTTP fallback failed for {payload.get('id')}: {e}")
            return False
        if response.is_success:
            return True
        logger.warning(f"HTTP fallback rejected {payload.get('id')}: {response.status_code}")
        return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
