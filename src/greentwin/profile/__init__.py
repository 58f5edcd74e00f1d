"""Behavior profile: interaction history and personalized strategy."""

from greentwin.profile.scoring import (
    EffectivenessWeights,
    SimilarityWeights,
    hour_distance,
)
from greentwin.profile.store import BehaviorProfileStore, ShowDecision

__all__ = [
    "BehaviorProfileStore",
    "EffectivenessWeights",
    "ShowDecision",
    "SimilarityWeights",
    "hour_distance",
]
