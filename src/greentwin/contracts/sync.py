"""Sync layer contracts - connection state, events, wire messages."""

import time
import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class MessageType(str, Enum):
    """Wire message types understood by the collector."""

    EVENT = "event"
    PREFERENCE = "preference"
    HEARTBEAT = "heartbeat"
    SYNC_REQUEST = "sync_request"
    SYNC_RESPONSE = "sync_response"


def new_event_id() -> str:
    return f"evt_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class SyncEvent(BaseModel):
    """A durable local event bound for the remote collector.

    The id is stable across retries so the collector can de-duplicate.
    """

    id: str = Field(default_factory=new_event_id)
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    source: str = "extension"
    timestamp: datetime = Field(default_factory=datetime.now)

    model_config = {"frozen": True}


class QueuedEvent(BaseModel):
    """Entry of the bounded offline queue."""

    id: str
    payload: dict[str, Any]
    timestamp: datetime
    queued: bool = True

    @classmethod
    def from_event(cls, event: SyncEvent) -> "QueuedEvent":
        return cls(
            id=event.id,
            payload=event.model_dump(mode="json"),
            timestamp=event.timestamp,
        )

    @property
    def type(self) -> str:
        return self.payload.get("type", "")


class WireMessage(BaseModel):
    """Envelope exchanged with the collector over the socket."""

    type: MessageType
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))
    client_id: str = Field(default="unknown", alias="clientId")
    data: Any = None

    model_config = {"populate_by_name": True}

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
