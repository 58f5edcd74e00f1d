"""Scheduler abstraction for timer-driven deferred work."""

from greentwin.scheduling.scheduler import (
    AsyncioScheduler,
    FireHandler,
    ManualScheduler,
    Scheduler,
)

__all__ = ["AsyncioScheduler", "FireHandler", "ManualScheduler", "Scheduler"]
