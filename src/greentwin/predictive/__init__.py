"""Proactive alerts from session-window patterns."""

from greentwin.predictive.engine import Prediction, PredictiveTriggerEngine, TriggerStats
from greentwin.predictive.patterns import (
    BEHAVIOR_PATTERNS,
    DEFAULT_TRIGGERS,
    BehaviorPattern,
    SessionWindow,
    TriggerDefinition,
    product_id,
)

__all__ = [
    "BEHAVIOR_PATTERNS",
    "DEFAULT_TRIGGERS",
    "BehaviorPattern",
    "Prediction",
    "PredictiveTriggerEngine",
    "SessionWindow",
    "TriggerDefinition",
    "TriggerStats",
    "product_id",
]
