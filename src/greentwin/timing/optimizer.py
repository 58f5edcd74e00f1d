"""Nudge Timing Optimizer.

Decides when a nudge may be shown. Keeps a 24-bucket activity histogram and
a short newest-first log of recent nudges, both persisted under the
"timing" owner of the state store.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from pydantic import BaseModel, Field

from greentwin.contracts.nudges import NudgeContext
from greentwin.scheduling import Scheduler
from greentwin.storage import StateStore

logger = logging.getLogger(__name__)


class NudgeHistoryEntry(BaseModel):
    """One entry of the recent-nudge log."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    nudge_type: str = ""
    action: str  # shown, accepted, delayed, dismissed, snoozed, ignored
    timestamp: datetime
    hour: int = Field(ge=0, le=23)


@dataclass
class TimingDecision:
    """Outcome of the timing gate."""

    show: bool
    reason: str
    probability: float | None = None


@dataclass
class OptimalTime:
    optimal_hour: int
    delay_hours: int
    probability: float
    should_delay: bool


class NudgeTimingOptimizer:
    """Activity- and fatigue-aware timing gate."""

    STATE_OWNER = "timing"
    SNOOZE_PREFIX = "snooze_"

    HIGH_ACTIVITY = 0.8
    FATIGUE_LIMIT = 3
    MIN_GAP = timedelta(minutes=15)
    SHOW_THRESHOLD = 0.3
    DELAY_THRESHOLD = 0.7
    HISTORY_CAP = 100
    LOOKAHEAD_HOURS = 6

    BASE_PROBABILITY = 0.5
    PEAK_HOURS = frozenset({10, 11, 14, 15, 16, 19, 20, 21})
    LOW_HOURS = frozenset({0, 1, 2, 3, 4, 5, 6, 22, 23})
    TIME_MULTIPLIERS = {"peak": 1.3, "low": 0.4, "normal": 1.0}
    HIGH_IMPACT_MULTIPLIER = 1.5
    ENGAGEMENT_MULTIPLIER = 1.2
    SUCCESS_ACTIONS = ("accepted", "delayed")

    def __init__(
        self,
        state: StateStore | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.state = state
        self.scheduler = scheduler
        self.clock = clock
        self.activity: list[float] = [0.0] * 24
        self.history: list[NudgeHistoryEntry] = []
        self._snoozed: dict[str, NudgeContext] = {}
        self._snooze_due: dict[str, datetime] = {}
        self._load()
        self._rearm_snoozes()

    def _load(self) -> None:
        if self.state is None:
            return
        activity = self.state.load(self.STATE_OWNER, "activity")
        if activity and len(activity) == 24:
            self.activity = [min(1.0, max(0.0, float(v))) for v in activity]
        history = self.state.load(self.STATE_OWNER, "history") or []
        self.history = [NudgeHistoryEntry.model_validate(h) for h in history]
        snoozed = self.state.load(self.STATE_OWNER, "snoozed") or {}
        now = self.clock()
        for token, entry in snoozed.items():
            # Older stores kept the bare context without a due time
            if "context" not in entry:
                entry = {"context": entry}
            self._snoozed[token] = NudgeContext.model_validate(entry["context"])
            due = entry.get("due")
            self._snooze_due[token] = datetime.fromisoformat(due) if due else now

    def _rearm_snoozes(self) -> None:
        """Schedule persisted snoozes; overdue ones fire on the next tick."""
        if self.scheduler is None:
            return
        now = self.clock()
        for token, due in self._snooze_due.items():
            self.scheduler.schedule_at(max(due, now), token)

    def _save(self) -> None:
        if self.state is None:
            return
        self.state.save(self.STATE_OWNER, "activity", self.activity)
        self.state.save(
            self.STATE_OWNER,
            "history",
            [h.model_dump(mode="json") for h in self.history],
        )
        self.state.save(
            self.STATE_OWNER,
            "snoozed",
            {
                token: {
                    "context": ctx.model_dump(mode="json"),
                    "due": self._snooze_due[token].isoformat(),
                }
                for token, ctx in self._snoozed.items()
            },
        )

    # ─────────────────────────────────────────────────────────────────────
    # Gate
    # ─────────────────────────────────────────────────────────────────────

    def should_show_nudge(self, context: NudgeContext | None = None) -> TimingDecision:
        """Gate order: high activity, fatigue, too recent, probability."""
        context = context or NudgeContext()
        now = self.clock()
        hour = now.hour

        if self.activity[hour] > self.HIGH_ACTIVITY:
            logger.debug(f"Timing gate: high activity at {hour}h")
            return TimingDecision(show=False, reason="high_activity")

        if self.recent_count(now) >= self.FATIGUE_LIMIT:
            logger.debug("Timing gate: nudge fatigue")
            return TimingDecision(show=False, reason="nudge_fatigue")

        since = self.time_since_last(now)
        if since is not None and since < self.MIN_GAP:
            logger.debug(f"Timing gate: too recent ({since.total_seconds():.0f}s)")
            return TimingDecision(show=False, reason="too_recent")

        probability = self.probability(context, hour)
        show = probability > self.SHOW_THRESHOLD
        return TimingDecision(
            show=show,
            reason="optimal_timing" if show else "low_probability",
            probability=probability,
        )

    def probability(self, context: NudgeContext, hour: int) -> float:
        """Multiplicative show probability for an hour, clamped to [0, 1]."""
        p = self.BASE_PROBABILITY
        p *= self.time_multiplier(hour)
        p *= max(0.2, 1 - self.activity[hour])
        if context.high_impact:
            p *= self.HIGH_IMPACT_MULTIPLIER
        if context.engagement == "high":
            p *= self.ENGAGEMENT_MULTIPLIER
        p *= 0.5 + self.historical_success_rate(hour)
        return min(1.0, max(0.0, p))

    def time_multiplier(self, hour: int) -> float:
        if hour in self.PEAK_HOURS:
            return self.TIME_MULTIPLIERS["peak"]
        if hour in self.LOW_HOURS:
            return self.TIME_MULTIPLIERS["low"]
        return self.TIME_MULTIPLIERS["normal"]

    def historical_success_rate(self, hour: int) -> float:
        at_hour = [h for h in self.history if h.hour == hour]
        if not at_hour:
            return 0.5
        successful = sum(1 for h in at_hour if h.action in self.SUCCESS_ACTIONS)
        return successful / len(at_hour)

    def recent_count(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        cutoff = now - timedelta(hours=1)
        return sum(1 for h in self.history if h.timestamp > cutoff)

    def time_since_last(self, now: datetime | None = None) -> timedelta | None:
        if not self.history:
            return None
        return (now or self.clock()) - self.history[0].timestamp

    # ─────────────────────────────────────────────────────────────────────
    # Tracking
    # ─────────────────────────────────────────────────────────────────────

    def track_activity(self) -> float:
        """Exponential increment of the current hour's activity."""
        hour = self.clock().hour
        level = self.activity[hour]
        self.activity[hour] = min(1.0, max(0.0, level + 0.1 * (1 - level)))
        self._save()
        return self.activity[hour]

    def track_interaction(
        self,
        nudge_type: str,
        action: str,
        context: NudgeContext | None = None,
        nudge_id: str | None = None,
    ) -> NudgeHistoryEntry:
        """Log a nudge event, or update the action of a known nudge_id."""
        if nudge_id is not None:
            for entry in self.history:
                if entry.id == nudge_id:
                    entry.action = action
                    self._save()
                    return entry

        now = self.clock()
        entry = NudgeHistoryEntry(
            nudge_type=nudge_type,
            action=action,
            timestamp=now,
            hour=now.hour,
        )
        if nudge_id is not None:
            entry.id = nudge_id
        self.history.insert(0, entry)
        del self.history[self.HISTORY_CAP:]
        self._save()
        return entry

    def optimal_time_for(self, context: NudgeContext | None = None) -> OptimalTime:
        """Best hour in the next six, and whether to wait for it."""
        context = context or NudgeContext()
        current = self.clock().hour
        best = None
        for delay in range(self.LOOKAHEAD_HOURS):
            hour = (current + delay) % 24
            p = self.probability(context, hour)
            if best is None or p > best[2]:
                best = (hour, delay, p)
        hour, delay, p = best
        return OptimalTime(
            optimal_hour=hour,
            delay_hours=delay,
            probability=p,
            should_delay=delay > 0 and p > self.DELAY_THRESHOLD,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Snooze
    # ─────────────────────────────────────────────────────────────────────

    def snooze_options(self) -> list[dict]:
        now = self.clock()
        tomorrow = (now + timedelta(days=1)).replace(
            hour=9, minute=0, second=0, microsecond=0
        )
        return [
            {"label": "15 minutes", "value_ms": 15 * 60 * 1000},
            {"label": "1 hour", "value_ms": 60 * 60 * 1000},
            {"label": "4 hours", "value_ms": 4 * 60 * 60 * 1000},
            {"label": "Tomorrow", "value_ms": int((tomorrow - now).total_seconds() * 1000)},
        ]

    def snooze(
        self,
        context: NudgeContext | None = None,
        duration_ms: int = 15 * 60 * 1000,
        nudge_id: str | None = None,
    ) -> str:
        """Record a snooze and schedule re-evaluation.

        Returns:
            The scheduler token
        """
        context = context or NudgeContext()
        nudge_type = context.nudge_type.value if context.nudge_type else ""
        self.track_interaction(nudge_type, "snoozed", context, nudge_id=nudge_id)

        token = f"{self.SNOOZE_PREFIX}{uuid.uuid4().hex[:12]}"
        when = self.clock() + timedelta(milliseconds=duration_ms)
        self._snoozed[token] = context
        self._snooze_due[token] = when
        self._save()

        if self.scheduler is not None:
            self.scheduler.schedule_at(when, token)
        logger.info(f"Snoozed nudge until {when.isoformat(timespec='minutes')}")
        return token

    def on_snooze_fired(self, token: str) -> tuple[NudgeContext, TimingDecision] | None:
        """Re-run the gate for a snoozed context."""
        context = self._snoozed.pop(token, None)
        if context is None:
            logger.debug(f"Unknown snooze token {token}")
            return None
        self._snooze_due.pop(token, None)
        self._save()
        return context, self.should_show_nudge(context)

    def pending_snoozes(self) -> dict[str, NudgeContext]:
        return dict(self._snoozed)

    def clear(self) -> None:
        """Reset histogram, history and snoozes."""
        if self.scheduler is not None:
            for token in self._snoozed:
                self.scheduler.cancel(token)
        self.activity = [0.0] * 24
        self.history = []
        self._snoozed = {}
        self._snooze_due = {}
        self._save()
