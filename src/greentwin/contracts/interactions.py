"""Interaction records and the aggregate behavior profile."""

from datetime import datetime

from pydantic import BaseModel, Field

from greentwin.contracts.nudges import EffortLevel, NudgeType, ResponseType


class InteractionContext(BaseModel):
    """Context captured when a nudge is shown."""

    hour_of_day: int = Field(ge=0, le=23)
    day_of_week: int = Field(ge=0, le=6)
    source_url_domain: str = ""
    product_category: str = ""
    emission_level: float = 0.0
    grid_intensity: float = 0.0


class NudgeResponse(BaseModel):
    """How the user reacted."""

    type: ResponseType
    timestamp: datetime | None = None
    snooze_duration_ms: int = 0
    alternative_chosen: str | None = None


class NudgeOutcome(BaseModel):
    """Real-world effect observed after the response."""

    type: str  # purchase_delayed, alternative_chosen, purchase_cancelled, no_change
    co2_saved: float = 0.0
    cost_saved: float = 0.0
    timestamp: datetime | None = None


class InteractionRecord(BaseModel):
    """One nudge lifecycle: shown, then response, then outcome."""

    id: str
    timestamp: datetime
    nudge_type: NudgeType
    category: str = ""
    context: InteractionContext
    response: NudgeResponse | None = None
    outcome: NudgeOutcome | None = None


class ResponsePattern(BaseModel):
    """Response counters for one (nudge type, hour) bucket."""

    total_shown: int = 0
    accepted: int = 0
    dismissed: int = 0
    snoozed: int = 0
    ignored: int = 0

    @property
    def acceptance_rate(self) -> float:
        return self.accepted / self.total_shown if self.total_shown else 0.0


class EffectivenessScore(BaseModel):
    """Outcome statistics for one nudge type."""

    total_attempts: int = 0
    successful_outcomes: int = 0
    total_co2_saved: float = 0.0
    total_cost_saved: float = 0.0
    average_response_time_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        return self.successful_outcomes / self.total_attempts if self.total_attempts else 0.0

    @property
    def average_co2_saved(self) -> float:
        return self.total_co2_saved / self.total_attempts if self.total_attempts else 0.0


class LearningEntry(BaseModel):
    """Snapshot kept in the successful/ignored learning lists."""

    nudge_type: NudgeType
    context: InteractionContext
    timestamp: datetime


class LearningLists(BaseModel):
    successful: list[LearningEntry] = Field(default_factory=list)
    ignored: list[LearningEntry] = Field(default_factory=list)


class BehaviorProfile(BaseModel):
    """Aggregate per-user state owned by the profile store."""

    interactions: list[InteractionRecord] = Field(default_factory=list)
    # Keyed "<nudge_type>|<hour>"
    response_patterns: dict[str, ResponsePattern] = Field(default_factory=dict)
    effectiveness_scores: dict[NudgeType, EffectivenessScore] = Field(default_factory=dict)
    learning: LearningLists = Field(default_factory=LearningLists)
    effort_tolerance: EffortLevel = EffortLevel.MEDIUM

    @staticmethod
    def pattern_key(nudge_type: NudgeType, hour: int) -> str:
        return f"{nudge_type.value}|{hour}"

    @staticmethod
    def split_pattern_key(key: str) -> tuple[NudgeType, int]:
        type_value, hour = key.rsplit("|", 1)
        return NudgeType(type_value), int(hour)
