"""GreenTwin nudge engine."""

__version__ = "0.3.0"
