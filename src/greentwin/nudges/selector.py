"""Adaptive Nudge Selector.

Turns a profile strategy into a rendered nudge: picks the template for the
recommended type, the variant for the effort level, and applies the style.
Every nudge it returns is first registered with the profile store, and the
nudge id is the interaction id.
"""

import logging
from dataclasses import dataclass
from typing import Mapping

from greentwin.contracts.nudges import (
    EffortLevel,
    MessageStyle,
    Nudge,
    NudgeContext,
    NudgeTemplate,
    NudgeType,
    ResponseType,
    Strategy,
)
from greentwin.nudges.catalog import default_catalog, effort_order, render
from greentwin.profile import BehaviorProfileStore

logger = logging.getLogger(__name__)


@dataclass
class Selection:
    """Result of select(): either a nudge to show or the reason not to."""

    show: bool
    reason: str = ""
    nudge: Nudge | None = None
    strategy: Strategy | None = None


class AdaptiveNudgeSelector:
    """Personalized nudge selection backed by the behavior profile."""

    DEFAULT_EFFECTIVENESS = 0.5

    def __init__(
        self,
        profile: BehaviorProfileStore,
        catalog: Mapping[NudgeType, NudgeTemplate] | None = None,
    ):
        self.profile = profile
        self.catalog = catalog if catalog is not None else default_catalog()

    def select(self, context: NudgeContext | None = None) -> Selection:
        context = context or NudgeContext()
        strategy = self.profile.strategy_for(context)

        decision = self.profile.should_show(context)
        if not decision.allow:
            return Selection(show=False, reason=decision.reason, strategy=strategy)

        template = self.catalog.get(strategy.recommended_type)
        if template is None:
            logger.warning(f"No template for nudge type {strategy.recommended_type.value}")
            return Selection(show=False, reason="unknown_nudge_type", strategy=strategy)

        variant = template.variant(strategy.effort_level)
        title, message, action = render(variant, strategy.message_style, context)

        interaction_id = self.profile.record_shown(
            strategy.recommended_type, template.category, context
        )
        nudge = Nudge(
            id=interaction_id,
            type=strategy.recommended_type,
            category=template.category,
            title=title,
            message=message,
            action_label=action,
            duration_ms=variant.duration_ms,
            style=strategy.message_style,
            effort_level=strategy.effort_level,
            confidence=strategy.confidence,
            timing=strategy.optimal_timing,
        )
        logger.info(
            f"Selected {nudge.type.value} ({nudge.effort_level.value}, "
            f"{nudge.style.value}) confidence {nudge.confidence:.2f}"
        )
        return Selection(show=True, reason="selected", nudge=nudge, strategy=strategy)

    def generate_variations(
        self,
        nudge: Nudge,
        count: int = 3,
        context: NudgeContext | None = None,
    ) -> list[Nudge]:
        """Style/effort permutations of a nudge for offline experiments.

        Variations are not registered with the profile store.
        """
        template = self.catalog.get(nudge.type)
        if template is None:
            return []
        styles = list(MessageStyle)
        efforts = effort_order()
        variations = []
        for i in range(count):
            style = styles[i % len(styles)]
            effort = efforts[i % len(efforts)]
            variant = template.variant(effort)
            title, message, action = render(variant, style, context)
            variations.append(Nudge(
                id=f"{nudge.id}_var_{i}",
                type=nudge.type,
                category=template.category,
                title=title,
                message=message,
                action_label=action,
                duration_ms=variant.duration_ms,
                style=style,
                effort_level=effort,
                confidence=nudge.confidence,
                timing=nudge.timing,
                variation_of=nudge.id,
            ))
        return variations

    def predict_effectiveness(
        self, strategy: Strategy, context: NudgeContext | None = None
    ) -> float:
        """Acceptance rate among similar past interactions of the same type."""
        similar = [
            r for r in self.profile.find_similar(context or NudgeContext())
            if r.nudge_type == strategy.recommended_type
        ]
        if not similar:
            return self.DEFAULT_EFFECTIVENESS
        accepted = sum(
            1 for r in similar
            if r.response and r.response.type == ResponseType.ACCEPTED
        )
        return accepted / len(similar)

    def simulate_strategy(
        self,
        context: NudgeContext | None = None,
        recommended_type: NudgeType | None = None,
        message_style: MessageStyle | None = None,
        effort_level: EffortLevel | None = None,
    ) -> dict | None:
        """Render what a strategy override would show, without recording it."""
        context = context or NudgeContext()
        strategy = self.profile.strategy_for(context)
        overrides = {
            key: value
            for key, value in (
                ("recommended_type", recommended_type),
                ("message_style", message_style),
                ("effort_level", effort_level),
            )
            if value is not None
        }
        strategy = strategy.model_copy(update=overrides)

        template = self.catalog.get(strategy.recommended_type)
        if template is None:
            return None
        variant = template.variant(strategy.effort_level)
        title, message, action = render(variant, strategy.message_style, context)
        return {
            "strategy": strategy.model_dump(mode="json"),
            "nudge": {
                "title": title,
                "message": message,
                "action_label": action,
                "duration_ms": variant.duration_ms,
                "style": strategy.message_style.value,
                "effort_level": strategy.effort_level.value,
            },
            "predicted_effectiveness": self.predict_effectiveness(strategy, context),
        }

    def insights(self) -> dict:
        summary = self.profile.summary()
        return {
            "profile_summary": summary,
            "recommendations": self._recommendations(summary),
            "learning_status": {
                "data_quality": summary["data_quality"],
                "confidence_level": _confidence_level(summary["success_rate"]),
                "next_optimization": _next_optimization(summary),
            },
        }

    @staticmethod
    def _recommendations(summary: dict) -> list[dict]:
        recommendations = []
        if summary["ignore_rate"] > 0.7:
            recommendations.append({
                "type": "reduce_frequency",
                "message": "Consider reducing nudge frequency to avoid fatigue",
                "priority": "high",
            })
        if summary["success_rate"] < 0.3 and summary["total_interactions"] > 10:
            recommendations.append({
                "type": "adjust_strategy",
                "message": "Current nudge strategy may not be effective for this user",
                "priority": "high",
            })
        if summary["data_quality"] == "poor":
            recommendations.append({
                "type": "collect_more_data",
                "message": "More interaction data needed for better personalization",
                "priority": "medium",
            })
        return recommendations


def _confidence_level(success_rate: float) -> str:
    if success_rate > 0.6:
        return "high"
    if success_rate > 0.3:
        return "medium"
    return "low"


def _next_optimization(summary: dict) -> str:
    if summary["total_interactions"] < 20:
        return "Collect more interaction data"
    if summary["success_rate"] < 0.4:
        return "Experiment with different nudge types and timing"
    if summary["ignore_rate"] > 0.6:
        return "Reduce nudge frequency and improve targeting"
    return "Fine-tune message personalization"
