"""Cooling-off windows for high-impact purchases."""

from greentwin.delays.manager import DelayManager, new_delay_id

__all__ = ["DelayManager", "new_delay_id"]
