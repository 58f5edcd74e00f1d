"""Core runtime: event bus and message-routing engine."""

from greentwin.core.events import Event, EventBus, EventHandler, EventType

__all__ = ["Event", "EventBus", "EventHandler", "EventType"]
