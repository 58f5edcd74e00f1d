"""Inbound message payloads and persisted engine stats."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from greentwin.contracts.delays import DelayOutcome
from greentwin.contracts.nudges import NudgeContext, ResponseType


class InboundMessage(BaseModel):
    """Envelope sent by UI and page-observer collaborators."""

    type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ProductView(BaseModel):
    kind: Literal["product_view"] = "product_view"
    title: str = ""
    price_usd: float = Field(default=0.0, ge=0.0)
    category: str = "shopping"
    est_kg: float = Field(default=0.0, ge=0.0)
    url: str = ""
    engagement: str | None = None
    high_impact: bool | None = None


class TravelSearch(BaseModel):
    kind: Literal["travel_search"] = "travel_search"
    mode: str = "flight"
    origin: str = ""
    destination: str = ""
    distance_km: float = Field(default=0.0, ge=0.0)
    est_kg: float = Field(default=0.0, ge=0.0)
    url: str = ""
    high_impact: bool | None = None


class TextFlag(BaseModel):
    kind: Literal["text_flag"] = "text_flag"
    text: str = ""


class CreateDelay(BaseModel):
    title: str = ""
    price_usd: float = Field(default=0.0, ge=0.0)
    est_kg: float = Field(default=0.0, ge=0.0)
    category: str = ""
    url: str = ""
    interaction_id: str | None = None
    hours: float | None = Field(default=None, gt=0)


class CompleteDelay(BaseModel):
    delay_id: str
    outcome: DelayOutcome


class NudgeResponsePayload(BaseModel):
    interaction_id: str
    type: ResponseType
    snooze_duration_ms: int = Field(default=0, ge=0)
    alternative_chosen: str | None = None


class NudgeOutcomePayload(BaseModel):
    interaction_id: str
    type: str
    co2_saved: float = 0.0
    cost_saved: float = 0.0


class SnoozeNudge(BaseModel):
    interaction_id: str | None = None
    duration_ms: int = Field(default=15 * 60 * 1000, gt=0)
    context: NudgeContext = Field(default_factory=NudgeContext)


class TrackVisit(BaseModel):
    url: str
    title: str = ""
    dwell_ms: int = Field(default=0, ge=0)


class TrackQuery(BaseModel):
    text: str


class AlarmFired(BaseModel):
    alarm_id: str


# ─────────────────────────────────────────────────────────────────────────
# Persisted stats
# ─────────────────────────────────────────────────────────────────────────


class Totals(BaseModel):
    views: int = 0
    items: int = 0
    est_kg_month: float = 0.0
    misinfo_flags: int = 0


class Settings(BaseModel):
    misinfo_enabled: bool = True
    nudges_enabled: bool = True
    predictive_enabled: bool = True


class RecentEvent(BaseModel):
    type: str
    ts: datetime
    meta: dict[str, Any] = Field(default_factory=dict)
    kg: float = 0.0


class EngineStats(BaseModel):
    totals: Totals = Field(default_factory=Totals)
    events: list[RecentEvent] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)
