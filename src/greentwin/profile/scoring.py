"""Scoring helpers for the behavior profile.

Pure functions over profile data: contextual similarity and per-type
effectiveness. Both blends are tunable through small weight dataclasses.
"""

from dataclasses import dataclass

from greentwin.contracts.interactions import EffectivenessScore, InteractionContext


def hour_distance(a: int, b: int) -> int:
    """Distance between two hours of day on the 24h circle."""
    diff = abs(a - b) % 24
    return min(diff, 24 - diff)


@dataclass(frozen=True)
class SimilarityWeights:
    """Weighted match used to decide whether two contexts are similar.

    A past interaction counts as similar when the summed weight of the
    matching features reaches `threshold`.
    """

    time: float = 0.3
    category: float = 0.4
    emission: float = 0.3
    hour_window: int = 2
    emission_tolerance: float = 0.5  # relative difference
    threshold: float = 0.5

    def similarity(
        self,
        past: InteractionContext,
        hour: int,
        category: str,
        emission_level: float,
    ) -> float:
        score = 0.0
        if hour_distance(past.hour_of_day, hour) <= self.hour_window:
            score += self.time
        if past.product_category == category:
            score += self.category
        diff = abs(past.emission_level - emission_level)
        if diff <= max(past.emission_level, emission_level) * self.emission_tolerance:
            score += self.emission
        return score

    def is_similar(
        self,
        past: InteractionContext,
        hour: int,
        category: str,
        emission_level: float,
    ) -> bool:
        return self.similarity(past, hour, category, emission_level) >= self.threshold


@dataclass(frozen=True)
class EffectivenessWeights:
    """Blend of success rate and normalized CO2 saved per attempt.

    CO2 is divided by `co2_scale_kg` and capped at 1 so both terms live on
    the same 0-1 scale.
    """

    success: float = 0.7
    co2: float = 0.3
    co2_scale_kg: float = 5.0

    def score(self, effectiveness: EffectivenessScore) -> float:
        if effectiveness.total_attempts == 0:
            return 0.0
        co2_term = 0.0
        if self.co2_scale_kg > 0:
            co2_term = min(effectiveness.average_co2_saved / self.co2_scale_kg, 1.0)
        return effectiveness.success_rate * self.success + co2_term * self.co2


# Recommended type when nothing has been learned yet
CATEGORY_DEFAULT_TYPES = {
    "travel": "transport_alternative",
    "flight": "transport_alternative",
    "food": "food_choice",
    "energy": "energy_timing",
}


def confidence_boost(total_interactions: int, similar_count: int) -> float:
    """Additive confidence from sample size and contextual support."""
    boost = 0.0
    if total_interactions > 50:
        boost += 0.3
    elif total_interactions > 20:
        boost += 0.2
    elif total_interactions > 5:
        boost += 0.1

    if similar_count > 10:
        boost += 0.2
    elif similar_count > 5:
        boost += 0.1
    return boost
