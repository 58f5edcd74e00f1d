"""Behavior Profile Store.

Owns the per-user interaction history and everything derived from it:
response patterns by (nudge type, hour), effectiveness by nudge type, and
the successful/ignored learning lists. It is the only writer of the profile;
every other component reads through this API.
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from greentwin.contracts.interactions import (
    BehaviorProfile,
    EffectivenessScore,
    InteractionContext,
    InteractionRecord,
    LearningEntry,
    NudgeOutcome,
    NudgeResponse,
    ResponsePattern,
)
from greentwin.contracts.nudges import (
    EffortLevel,
    MessageStyle,
    NudgeContext,
    NudgeType,
    ResponseType,
    Strategy,
    TimingPreference,
)
from greentwin.profile.scoring import (
    CATEGORY_DEFAULT_TYPES,
    EffectivenessWeights,
    SimilarityWeights,
    confidence_boost,
    hour_distance,
)
from greentwin.storage import StateStore

logger = logging.getLogger(__name__)


@dataclass
class ShowDecision:
    """Result of the profile-level show gate."""

    allow: bool
    reason: str
    confidence: float | None = None


def new_interaction_id() -> str:
    return f"int_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class BehaviorProfileStore:
    """Persisted per-user model of nudge acceptance."""

    STATE_OWNER = "profile"

    BASE_CONFIDENCE = 0.5
    MAX_CONFIDENCE = 0.95
    GLOBAL_WEIGHT = 0.6
    LOCAL_WEIGHT = 0.4
    LOCAL_HOUR_WINDOW = 2

    FATIGUE_WINDOW = timedelta(hours=1)
    FATIGUE_LIMIT = 3
    IGNORE_WINDOW = timedelta(hours=24)
    IGNORE_RATE_LIMIT = 0.8
    IGNORE_MIN_SAMPLE = 3

    TIMING_MIN_SAMPLE = 3
    AVOID_RATE = 0.2

    URGENT_EMISSION_KG = 10.0

    def __init__(
        self,
        state: StateStore | None = None,
        user_id: str = "default",
        max_interactions: int = 500,
        similarity: SimilarityWeights | None = None,
        effectiveness: EffectivenessWeights | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the store, loading any persisted profile.

        Args:
            state: Shared state store, or None to keep the profile in memory
            user_id: Key of the profile row
            max_interactions: Retention cap of the interaction list
            similarity: Similarity weights and threshold
            effectiveness: Effectiveness blend weights
            clock: Source of "now"
        """
        self.state = state
        self.user_id = user_id
        self.max_interactions = max_interactions
        self.similarity = similarity or SimilarityWeights()
        self.effectiveness = effectiveness or EffectivenessWeights()
        self.clock = clock
        self.profile = self._load()

    def _load(self) -> BehaviorProfile:
        if self.state is None:
            return BehaviorProfile()
        data = self.state.load(self.STATE_OWNER, self.user_id)
        if data is None:
            return BehaviorProfile()
        profile = BehaviorProfile.model_validate(data)
        logger.info(f"Behavior profile loaded ({len(profile.interactions)} interactions)")
        return profile

    def _save(self) -> None:
        if self.state is not None:
            self.state.save(
                self.STATE_OWNER, self.user_id, self.profile.model_dump(mode="json")
            )

    def _find(self, interaction_id: str) -> InteractionRecord | None:
        for record in self.profile.interactions:
            if record.id == interaction_id:
                return record
        return None

    # ─────────────────────────────────────────────────────────────────────
    # Recording
    # ─────────────────────────────────────────────────────────────────────

    def record_shown(
        self,
        nudge_type: NudgeType,
        category: str = "",
        context: NudgeContext | None = None,
    ) -> str:
        """Create the interaction record for a displayed nudge.

        Returns:
            The new interaction id
        """
        context = context or NudgeContext()
        now = self.clock()
        record = InteractionRecord(
            id=new_interaction_id(),
            timestamp=now,
            nudge_type=nudge_type,
            category=category,
            context=InteractionContext(
                hour_of_day=now.hour,
                day_of_week=now.weekday(),
                source_url_domain=_domain(context.url),
                product_category=context.category or category,
                emission_level=context.emission_level,
                grid_intensity=context.grid_intensity,
            ),
        )
        self.profile.interactions.append(record)

        overflow = len(self.profile.interactions) - self.max_interactions
        if overflow > 0:
            del self.profile.interactions[:overflow]

        self._save()
        logger.debug(f"Recorded shown {nudge_type.value} as {record.id}")
        return record.id

    def record_response(self, interaction_id: str, response: NudgeResponse) -> bool:
        """Attach the user's response to an interaction.

        Returns:
            False when the id is unknown or already has a response
        """
        record = self._find(interaction_id)
        if record is None:
            logger.warning(f"Response for unknown interaction {interaction_id}")
            return False
        if record.response is not None:
            logger.warning(f"Interaction {interaction_id} already has a response")
            return False

        stamp = max(response.timestamp or self.clock(), record.timestamp)
        record.response = response.model_copy(update={"timestamp": stamp})

        key = BehaviorProfile.pattern_key(record.nudge_type, record.context.hour_of_day)
        pattern = self.profile.response_patterns.setdefault(key, ResponsePattern())
        pattern.total_shown += 1
        if response.type == ResponseType.ACCEPTED:
            pattern.accepted += 1
        elif response.type == ResponseType.DISMISSED:
            pattern.dismissed += 1
        elif response.type == ResponseType.SNOOZED:
            pattern.snoozed += 1
        else:
            pattern.ignored += 1

        entry = LearningEntry(
            nudge_type=record.nudge_type,
            context=record.context,
            timestamp=stamp,
        )
        if response.type == ResponseType.ACCEPTED:
            self._append_learning(self.profile.learning.successful, entry)
        elif response.type in (ResponseType.IGNORED, ResponseType.DISMISSED):
            self._append_learning(self.profile.learning.ignored, entry)

        self._save()
        return True

    def _append_learning(self, entries: list[LearningEntry], entry: LearningEntry) -> None:
        entries.append(entry)
        overflow = len(entries) - self.max_interactions
        if overflow > 0:
            del entries[:overflow]

    def record_outcome(self, interaction_id: str, outcome: NudgeOutcome) -> bool:
        """Attach the observed real-world outcome to an interaction.

        Returns:
            False when the id is unknown, has no response yet, or already
            has an outcome
        """
        record = self._find(interaction_id)
        if record is None:
            logger.warning(f"Outcome for unknown interaction {interaction_id}")
            return False
        if record.response is None:
            logger.warning(f"Outcome before response for {interaction_id}")
            return False
        if record.outcome is not None:
            logger.warning(f"Interaction {interaction_id} already has an outcome")
            return False

        stamp = max(outcome.timestamp or self.clock(), record.response.timestamp)
        record.outcome = outcome.model_copy(update={"timestamp": stamp})

        score = self.profile.effectiveness_scores.setdefault(
            record.nudge_type, EffectivenessScore()
        )
        score.total_attempts += 1
        if outcome.co2_saved > 0:
            score.successful_outcomes += 1
            score.total_co2_saved += outcome.co2_saved
            score.total_cost_saved += outcome.cost_saved

        response_ms = (record.response.timestamp - record.timestamp).total_seconds() * 1000
        score.average_response_time_ms = (
            score.average_response_time_ms * (score.total_attempts - 1) + response_ms
        ) / score.total_attempts

        self._save()
        return True

    # ─────────────────────────────────────────────────────────────────────
    # Derived views
    # ─────────────────────────────────────────────────────────────────────

    def _hour(self, context: NudgeContext) -> int:
        if context.hour_of_day is not None:
            return context.hour_of_day
        return self.clock().hour

    def find_similar(self, context: NudgeContext) -> list[InteractionRecord]:
        hour = self._hour(context)
        return [
            record
            for record in self.profile.interactions
            if self.similarity.is_similar(
                record.context, hour, context.category, context.emission_level
            )
        ]

    def best_nudge_type(self, context: NudgeContext) -> NudgeType:
        """Blend global effectiveness with acceptance near the current hour."""
        global_scores = {
            nudge_type: self.effectiveness.score(score)
            for nudge_type, score in self.profile.effectiveness_scores.items()
            if score.total_attempts > 0
        }

        hour = self._hour(context)
        local_totals: dict[NudgeType, list[int]] = {}
        for key, pattern in self.profile.response_patterns.items():
            nudge_type, pattern_hour = BehaviorProfile.split_pattern_key(key)
            if hour_distance(pattern_hour, hour) > self.LOCAL_HOUR_WINDOW:
                continue
            totals = local_totals.setdefault(nudge_type, [0, 0])
            totals[0] += pattern.accepted
            totals[1] += pattern.total_shown
        local_scores = {
            nudge_type: accepted / shown
            for nudge_type, (accepted, shown) in local_totals.items()
            if shown > 0
        }

        candidates = set(global_scores) | set(local_scores)
        if not candidates:
            return self._default_type(context.category)

        best = max(
            (nudge for nudge in NudgeType if nudge in candidates),
            key=lambda t: (
                global_scores.get(t, 0.0) * self.GLOBAL_WEIGHT
                + local_scores.get(t, 0.0) * self.LOCAL_WEIGHT
            ),
        )
        return best

    @staticmethod
    def _default_type(category: str) -> NudgeType:
        value = CATEGORY_DEFAULT_TYPES.get(category.lower(), NudgeType.DELAY_PURCHASE.value)
        return NudgeType(value)

    def optimal_timing(self) -> TimingPreference:
        """Preferred and avoided hours from per-hour acceptance."""
        accepted = [0] * 24
        counts = [0] * 24
        for record in self.profile.interactions:
            hour = record.context.hour_of_day
            counts[hour] += 1
            if record.response and record.response.type == ResponseType.ACCEPTED:
                accepted[hour] += 1

        rates = [
            (hour, accepted[hour] / counts[hour])
            for hour in range(24)
            if counts[hour] >= self.TIMING_MIN_SAMPLE
        ]
        if not rates:
            return TimingPreference()

        ranked = sorted(rates, key=lambda item: item[1], reverse=True)
        return TimingPreference(
            preferred_hours=[hour for hour, _ in ranked[:3]],
            avoid_hours=[hour for hour, rate in rates if rate < self.AVOID_RATE],
        )

    def message_style(self, context: NudgeContext) -> MessageStyle:
        if context.high_impact and context.emission_level >= self.URGENT_EMISSION_KG:
            return MessageStyle.URGENT

        successful = len(self.profile.learning.successful)
        ignored = len(self.profile.learning.ignored)
        if successful > ignored * 2:
            return MessageStyle.FRIENDLY
        if ignored > successful * 2:
            return MessageStyle.DIRECT
        return MessageStyle.INFORMATIVE

    def effort_level(self, context: NudgeContext) -> EffortLevel:
        # Higher emissions justify asking for more
        if context.emission_level > 5:
            return EffortLevel.HIGH
        if context.emission_level > 2:
            return EffortLevel.MEDIUM
        return self.profile.effort_tolerance

    def confidence(self, context: NudgeContext) -> float:
        boost = confidence_boost(
            len(self.profile.interactions), len(self.find_similar(context))
        )
        return min(self.MAX_CONFIDENCE, self.BASE_CONFIDENCE + boost)

    def strategy_for(self, context: NudgeContext | None = None) -> Strategy:
        """Personalized strategy for a context. Never raises on sparse data."""
        context = context or NudgeContext()
        return Strategy(
            recommended_type=self.best_nudge_type(context),
            optimal_timing=self.optimal_timing(),
            message_style=self.message_style(context),
            effort_level=self.effort_level(context),
            confidence=self.confidence(context),
        )

    def should_show(self, context: NudgeContext | None = None) -> ShowDecision:
        """Gate on fatigue, consistent ignoring and avoided hours."""
        context = context or NudgeContext()
        now = self.clock()

        recent = [
            r for r in self.profile.interactions
            if now - r.timestamp < self.FATIGUE_WINDOW
        ]
        if len(recent) >= self.FATIGUE_LIMIT:
            logger.debug(f"Profile gate: fatigue ({len(recent)} in last hour)")
            return ShowDecision(allow=False, reason="nudge_fatigue")

        recent_similar = [
            r for r in self.find_similar(context)
            if now - r.timestamp < self.IGNORE_WINDOW
        ]
        if len(recent_similar) >= self.IGNORE_MIN_SAMPLE:
            ignored = sum(
                1 for r in recent_similar
                if r.response
                and r.response.type in (ResponseType.IGNORED, ResponseType.DISMISSED)
            )
            if ignored / len(recent_similar) > self.IGNORE_RATE_LIMIT:
                logger.debug("Profile gate: consistently ignored")
                return ShowDecision(allow=False, reason="consistently_ignored")

        if self._hour(context) in self.optimal_timing().avoid_hours:
            logger.debug("Profile gate: suboptimal timing")
            return ShowDecision(allow=False, reason="suboptimal_timing")

        return ShowDecision(
            allow=True, reason="allowed", confidence=self.confidence(context)
        )

    # ─────────────────────────────────────────────────────────────────────
    # Summary and maintenance
    # ─────────────────────────────────────────────────────────────────────

    def most_effective_type(self) -> NudgeType:
        best_type = NudgeType.DELAY_PURCHASE
        best_score = 0.0
        for nudge_type, score in self.profile.effectiveness_scores.items():
            if score.total_attempts == 0:
                continue
            value = score.success_rate * score.average_co2_saved
            if value > best_score:
                best_score = value
                best_type = nudge_type
        return best_type

    def summary(self) -> dict:
        total = len(self.profile.interactions)
        successful = len(self.profile.learning.successful)
        ignored = len(self.profile.learning.ignored)
        if total > 20:
            quality = "good"
        elif total > 5:
            quality = "fair"
        else:
            quality = "poor"
        return {
            "total_interactions": total,
            "success_rate": successful / total if total else 0.0,
            "ignore_rate": ignored / total if total else 0.0,
            "most_effective_nudge": self.most_effective_type().value,
            "preferred_timing": self.optimal_timing().model_dump(),
            "data_quality": quality,
        }

    def get_interaction(self, interaction_id: str) -> InteractionRecord | None:
        return self._find(interaction_id)

    def export(self) -> str:
        return json.dumps(self.profile.model_dump(mode="json"), indent=2)

    def clear(self) -> None:
        self.profile = BehaviorProfile()
        self._save()
        logger.info("Behavior profile cleared")


def _domain(url: str) -> str:
    if "://" in url:
        url = url.split("://", 1)[1]
    return url.split("/", 1)[0]
