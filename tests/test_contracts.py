"""Tests for contracts module."""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from greentwin.contracts.delays import (
    DelayItem,
    DelayOutcome,
    DelayRecord,
    DelayStatus,
    PotentialSavings,
)
from greentwin.contracts.interactions import BehaviorProfile, EffectivenessScore
from greentwin.contracts.nudges import (
    EffortLevel,
    EffortVariant,
    NudgeContext,
    NudgeTemplate,
    NudgeType,
)
from greentwin.contracts.sync import MessageType, QueuedEvent, SyncEvent, WireMessage


def make_record(**updates) -> DelayRecord:
    now = datetime(2024, 1, 1, 12)
    record = DelayRecord(
        delay_id="delay_1",
        item=DelayItem(title="Laptop", price_usd=1000, est_kg=80),
        created_at=now,
        delay_end=now + timedelta(hours=24),
        potential_savings=PotentialSavings(co2=56.0, money=150.0),
    )
    return record.model_copy(update=updates)


class TestNudgeContracts:
    def test_context_defaults_are_optional(self):
        context = NudgeContext()
        assert context.hour_of_day is None
        assert context.emission_level == 0.0
        assert context.high_impact is False

    def test_context_rejects_bad_hour(self):
        with pytest.raises(ValidationError):
            NudgeContext(hour_of_day=24)

    def test_template_variant_falls_back_to_medium(self):
        medium = EffortVariant(title="m", message="m", action_label="go")
        template = NudgeTemplate(
            type=NudgeType.FOOD_CHOICE,
            category="food",
            effort_levels={EffortLevel.MEDIUM: medium},
        )
        assert template.variant(EffortLevel.HIGH) is medium


class TestInteractionContracts:
    def test_pattern_key_round_trip(self):
        key = BehaviorProfile.pattern_key(NudgeType.ENERGY_TIMING, 7)
        assert key == "energy_timing|7"
        assert BehaviorProfile.split_pattern_key(key) == (NudgeType.ENERGY_TIMING, 7)

    def test_effectiveness_rates_with_no_attempts(self):
        score = EffectivenessScore()
        assert score.success_rate == 0.0
        assert score.average_co2_saved == 0.0


class TestDelayContracts:
    def test_outcome_requires_completed_status(self):
        with pytest.raises(ValidationError):
            DelayRecord.model_validate({
                **make_record().model_dump(),
                "outcome": DelayOutcome.SKIPPED,
            })

    def test_savings_by_outcome(self):
        skipped = make_record(status=DelayStatus.COMPLETED, outcome=DelayOutcome.SKIPPED)
        assert skipped.co2_saved() == 80
        assert skipped.money_saved() == 1000

        alternative = make_record(status=DelayStatus.COMPLETED, outcome=DelayOutcome.ALTERNATIVE)
        assert alternative.co2_saved() == 56.0
        assert alternative.money_saved() == 150.0

        purchased = make_record(status=DelayStatus.COMPLETED, outcome=DelayOutcome.PURCHASED)
        assert purchased.co2_saved() == 0.0

    def test_time_remaining_never_negative(self):
        record = make_record()
        assert record.time_remaining(record.delay_end + timedelta(hours=1)) == timedelta(0)
        assert not record.is_active(record.delay_end)


class TestSyncContracts:
    def test_event_ids_are_unique_and_stable(self):
        a = SyncEvent(type="product_view")
        b = SyncEvent(type="product_view")
        assert a.id != b.id
        assert a.id.startswith("evt_")
        assert QueuedEvent.from_event(a).id == a.id

    def test_queued_event_type(self):
        queued = QueuedEvent.from_event(SyncEvent(type="nudge_shown", data={"x": 1}))
        assert queued.type == "nudge_shown"
        assert queued.payload["data"] == {"x": 1}

    def test_wire_message_uses_client_id_alias(self):
        message = WireMessage(type=MessageType.HEARTBEAT, client_id="c1", data={"ping": True})
        wire = message.to_json_dict()
        assert wire["clientId"] == "c1"
        assert wire["type"] == "heartbeat"
        assert isinstance(wire["timestamp"], int)
