"""Predictive Intervention Trigger Engine.

Watches the session window and raises a proactive alert when a registered
trigger matches with enough confidence, before the action completes.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from greentwin.contracts.sync import SyncEvent
from greentwin.core.events import Event, EventBus, EventType
from greentwin.predictive.patterns import (
    BEHAVIOR_PATTERNS,
    DEFAULT_EXPECTED_SESSION,
    DEFAULT_TRIGGERS,
    INTERVENTION_COPY,
    SearchQuery,
    SessionWindow,
    SiteVisit,
    TriggerDefinition,
)

logger = logging.getLogger(__name__)


@dataclass
class Prediction:
    """A trigger that matched with confidence above the threshold."""

    trigger_id: str
    action: str
    category: str
    confidence: float
    intervention: str
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trigger_id": self.trigger_id,
            "action": self.action,
            "category": self.category,
            "confidence": self.confidence,
            "intervention": self.intervention,
            "context": self.context,
        }


@dataclass
class TriggerStats:
    triggered: int = 0
    total_confidence: float = 0.0

    @property
    def average_confidence(self) -> float:
        return self.total_confidence / self.triggered if self.triggered else 0.0


class PredictiveTriggerEngine:
    """Session-window pattern matcher with one alert per trigger per session."""

    DURATION_BOOST = 1.2
    SITE_COUNT_BOOST = 1.1
    EVENING_BOOST = 1.15
    EVENING_HOURS = range(19, 23)

    def __init__(
        self,
        bus: EventBus | None = None,
        submit: Callable[[SyncEvent], Any] | None = None,
        confidence_threshold: float = 0.7,
        triggers: list[TriggerDefinition] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the engine.

        Args:
            bus: Bus receiving PROACTIVE_ALERT events
            submit: Sync layer entry point for predictive_intervention events
            confidence_threshold: Minimum confidence to report a prediction
            triggers: Trigger catalog (defaults to the built-in five)
            clock: Source of "now"
        """
        self.bus = bus
        self.submit = submit
        self.confidence_threshold = confidence_threshold
        self.triggers = list(triggers if triggers is not None else DEFAULT_TRIGGERS)
        self.clock = clock
        self.session = SessionWindow(start_time=clock())
        self._alerted: set[str] = set()
        self._stats: dict[str, TriggerStats] = {}

    def register(self, trigger: TriggerDefinition) -> None:
        """Add or replace a trigger by id."""
        self.triggers = [t for t in self.triggers if t.id != trigger.id]
        self.triggers.append(trigger)

    def track_visit(self, url: str, title: str = "", dwell_ms: int = 0) -> list[Prediction]:
        self.session.visits.append(
            SiteVisit(url=url, title=title, dwell_ms=dwell_ms, timestamp=self.clock())
        )
        self.session.time_spent_ms += dwell_ms
        return self.analyze_session()

    def track_query(self, text: str) -> list[Prediction]:
        self.session.queries.append(SearchQuery(text=text.lower(), timestamp=self.clock()))
        return self.analyze_session()

    def reset_session(self) -> None:
        self.session = SessionWindow(start_time=self.clock())
        self._alerted.clear()
        logger.debug("Predictive session reset")

    def analyze_session(self) -> list[Prediction]:
        """Evaluate every trigger and alert on new qualifying matches.

        Returns:
            Every prediction at or above the threshold, including ones
            already alerted in this session
        """
        now = self.clock()
        predictions = []
        for trigger in self.triggers:
            if not trigger.pattern(self.session, now):
                continue
            confidence = self.confidence(trigger, now)
            if confidence < self.confidence_threshold:
                continue
            prediction = Prediction(
                trigger_id=trigger.id,
                action=trigger.action,
                category=trigger.category,
                confidence=confidence,
                intervention=trigger.intervention,
                context=self._context_for(trigger, now),
            )
            predictions.append(prediction)
            if trigger.id not in self._alerted:
                self._alerted.add(trigger.id)
                self._execute(prediction)
        return predictions

    def confidence(self, trigger: TriggerDefinition, now: datetime | None = None) -> float:
        now = now or self.clock()
        confidence = trigger.probability
        pattern = BEHAVIOR_PATTERNS.get(trigger.category)

        expected = pattern.expected_session if pattern else DEFAULT_EXPECTED_SESSION
        if now - self.session.start_time > expected * 0.5:
            confidence *= self.DURATION_BOOST

        relevant = len(self.session.visits_matching(pattern)) if pattern else 0
        if relevant > 2:
            confidence *= self.SITE_COUNT_BOOST

        if trigger.category == "shopping" and now.hour in self.EVENING_HOURS:
            confidence *= self.EVENING_BOOST

        return min(1.0, confidence)

    def _context_for(self, trigger: TriggerDefinition, now: datetime) -> dict[str, Any]:
        return {
            "session_duration_ms": int((now - self.session.start_time).total_seconds() * 1000),
            "sites_visited": len(self.session.visits),
            "search_queries": len(self.session.queries),
            "category": trigger.category,
            "trigger_id": trigger.id,
        }

    def _execute(self, prediction: Prediction) -> None:
        logger.info(
            f"Predictive alert {prediction.trigger_id} "
            f"(confidence {prediction.confidence:.2f})"
        )
        stats = self._stats.setdefault(prediction.trigger_id, TriggerStats())
        stats.triggered += 1
        stats.total_confidence += prediction.confidence

        if self.bus is not None:
            title, message, actions = INTERVENTION_COPY.get(
                prediction.intervention, ("Heads up", "", ["Dismiss"])
            )
            self.bus.publish(Event(
                type=EventType.PROACTIVE_ALERT,
                data={
                    **prediction.to_dict(),
                    "title": title,
                    "message": message,
                    "actions": actions,
                },
            ))

        if self.submit is not None:
            self.submit(SyncEvent(
                type="predictive_intervention",
                data={**prediction.to_dict(), "timestamp": self.clock().isoformat()},
            ))

    def stats(self) -> dict[str, dict[str, float]]:
        return {
            trigger_id: {
                "triggered": s.triggered,
                "total_confidence": s.total_confidence,
                "average_confidence": s.average_confidence,
            }
            for trigger_id, s in self._stats.items()
        }
