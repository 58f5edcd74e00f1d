"""Cooling-off delay contracts."""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class DelayStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class DelayOutcome(str, Enum):
    PURCHASED = "purchased"
    SKIPPED = "skipped"
    ALTERNATIVE = "alternative"


class DelayItem(BaseModel):
    """Snapshot of the product or booking being deferred."""

    title: str = ""
    price_usd: float = Field(default=0.0, ge=0.0)
    est_kg: float = Field(default=0.0, ge=0.0)
    category: str = ""
    url: str = ""


class PotentialSavings(BaseModel):
    co2: float = 0.0
    money: float = 0.0


class DelayRecord(BaseModel):
    """One cooling-off instance, addressable by delay_id."""

    delay_id: str
    item: DelayItem
    created_at: datetime
    delay_end: datetime
    potential_savings: PotentialSavings
    status: DelayStatus = DelayStatus.ACTIVE
    outcome: DelayOutcome | None = None
    completed_at: datetime | None = None
    interaction_id: str | None = None

    @model_validator(mode="after")
    def _outcome_requires_completion(self) -> "DelayRecord":
        if self.outcome is not None and self.status != DelayStatus.COMPLETED:
            raise ValueError("outcome can only be set on a completed delay")
        return self

    def is_active(self, now: datetime) -> bool:
        return self.status == DelayStatus.ACTIVE and self.delay_end > now

    def time_remaining(self, now: datetime) -> timedelta:
        return max(self.delay_end - now, timedelta(0))

    def co2_saved(self) -> float:
        """CO2 credited for the recorded outcome."""
        if self.outcome == DelayOutcome.SKIPPED:
            return self.item.est_kg
        if self.outcome == DelayOutcome.ALTERNATIVE:
            return self.potential_savings.co2
        return 0.0

    def money_saved(self) -> float:
        if self.outcome == DelayOutcome.SKIPPED:
            return self.item.price_usd
        if self.outcome == DelayOutcome.ALTERNATIVE:
            return self.potential_savings.money
        return 0.0


class DelayOutcomeEvent(BaseModel):
    """Emitted once when a delay completes."""

    delay_id: str
    outcome: DelayOutcome
    original_kg: float
    co2_saved: float
    cost_saved: float
    completed_at: datetime
    interaction_id: str | None = None
