"""Nudge contracts - tagged variants, templates, strategies."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class NudgeType(str, Enum):
    """Kinds of nudge the catalog knows how to render."""

    DELAY_PURCHASE = "delay_purchase"
    ALTERNATIVE_SUGGESTION = "alternative_suggestion"
    ENERGY_TIMING = "energy_timing"
    TRANSPORT_ALTERNATIVE = "transport_alternative"
    FOOD_CHOICE = "food_choice"


class EffortLevel(str, Enum):
    """How much commitment a nudge asks of the user."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MessageStyle(str, Enum):
    """Tone wrapper applied on top of a template."""

    DIRECT = "direct"
    FRIENDLY = "friendly"
    URGENT = "urgent"
    INFORMATIVE = "informative"


class ResponseType(str, Enum):
    """User reaction to a displayed nudge."""

    ACCEPTED = "accepted"
    DISMISSED = "dismissed"
    SNOOZED = "snoozed"
    IGNORED = "ignored"


class EffortVariant(BaseModel):
    """One effort-level rendering of a template."""

    title: str
    message: str
    action_label: str
    duration_ms: int = Field(default=0, ge=0)

    model_config = {"frozen": True}


class NudgeTemplate(BaseModel):
    """Immutable catalog entry."""

    type: NudgeType
    category: str
    effort_levels: dict[EffortLevel, EffortVariant]

    model_config = {"frozen": True}

    def variant(self, effort: EffortLevel) -> EffortVariant:
        """Variant for an effort level, falling back to medium."""
        return self.effort_levels.get(effort) or self.effort_levels[EffortLevel.MEDIUM]


class NudgeContext(BaseModel):
    """What the page observer knows about the candidate action.

    Every field is optional; scoring degrades to defaults when data is missing.
    """

    hour_of_day: int | None = Field(default=None, ge=0, le=23)
    category: str = ""
    emission_level: float = Field(default=0.0, ge=0.0, description="Estimated kg CO2")
    cost_saving: float | None = None
    url: str = ""
    title: str = ""
    price_usd: float | None = None
    grid_intensity: float = 0.0
    high_impact: bool = False
    engagement: str | None = None  # "high" when the user is actively browsing
    nudge_type: NudgeType | None = None


class TimingPreference(BaseModel):
    """Hours the profile prefers and avoids for nudges."""

    preferred_hours: list[int] = Field(default_factory=lambda: [9, 14, 19])
    avoid_hours: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4, 5])


class Strategy(BaseModel):
    """Personalized recommendation produced by the profile store."""

    recommended_type: NudgeType
    optimal_timing: TimingPreference
    message_style: MessageStyle
    effort_level: EffortLevel
    confidence: float = Field(ge=0.0, le=0.95)


class Nudge(BaseModel):
    """A rendered nudge, ready for the UI surface."""

    id: str
    type: NudgeType
    category: str
    title: str
    message: str
    action_label: str
    duration_ms: int = 0
    style: MessageStyle
    effort_level: EffortLevel
    confidence: float = 0.5
    timing: TimingPreference | None = None
    variation_of: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
