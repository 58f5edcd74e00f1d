"""When-to-nudge gating and snooze scheduling."""

from greentwin.timing.optimizer import (
    NudgeHistoryEntry,
    NudgeTimingOptimizer,
    OptimalTime,
    TimingDecision,
)

__all__ = ["NudgeHistoryEntry", "NudgeTimingOptimizer", "OptimalTime", "TimingDecision"]
