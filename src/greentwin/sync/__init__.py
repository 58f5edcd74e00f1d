"""Reliable relay of local events to the remote collector."""

from greentwin.sync.backoff import backoff
from greentwin.sync.client import SyncClient
from greentwin.sync.queue import OfflineQueue
from greentwin.sync.transport import HttpEventSender, Transport, WebSocketTransport

__all__ = [
    "HttpEventSender",
    "OfflineQueue",
    "SyncClient",
    "Transport",
    "WebSocketTransport",
    "backoff",
]
