"""SQLite persistence for profile, histogram, delays and offline queue."""

from greentwin.storage.state_store import StateStore

__all__ = ["StateStore"]
