"""Integration tests for the GreenTwin engine message router."""

import asyncio
from datetime import datetime

import pytest

from conftest import FakeTransport, settle
from greentwin.config import Config
from greentwin.contracts.delays import DelayItem
from greentwin.core.engine import GreenTwinEngine
from greentwin.core.events import EventType
from greentwin.delays import DelayManager

LAPTOP_VIEW = {
    "type": "report_action",
    "payload": {
        "kind": "product_view",
        "title": "Laptop",
        "price_usd": 1200,
        "est_kg": 80,
        "category": "electronics",
        "url": "https://www.amazon.com/dp/B0LAPTOP01",
    },
}


@pytest.fixture
def config(tmp_path):
    config = Config(search_from=tmp_path)
    config.DATA_DIR = str(tmp_path / "data")
    config.FLUSH_EVENT_DELAY = 0
    return config


@pytest.fixture
def engine(config, state, bus, scheduler, transport):
    return GreenTwinEngine(
        config=config, state=state, bus=bus, scheduler=scheduler, transport=transport
    )


def queued_types(engine):
    return [e.type for e in engine.sync.queue]


class TestProductView:
    @pytest.mark.asyncio
    async def test_high_impact_view_shows_urgent_nudge(self, engine, recorder):
        result = await engine.handle_message(LAPTOP_VIEW)

        assert result["ok"] and result["shown"]
        nudge = result["nudge"]
        assert nudge["type"] == "delay_purchase"
        assert nudge["style"] == "urgent"
        assert nudge["effort_level"] == "high"
        assert recorder.of(EventType.SHOW_NUDGE)[0].data["id"] == nudge["id"]

        stats = engine.stats.totals
        assert (stats.views, stats.items, stats.est_kg_month) == (1, 1, 80)
        assert queued_types(engine) == ["product_view", "nudge_shown"]

    @pytest.mark.asyncio
    async def test_second_view_is_too_recent(self, engine, recorder):
        await engine.handle_message(LAPTOP_VIEW)
        result = await engine.handle_message(LAPTOP_VIEW)

        assert result["ok"] and not result["shown"]
        assert result["reason"] == "too_recent"
        suppressed = recorder.of(EventType.NUDGE_SUPPRESSED)
        assert suppressed[0].data == {"reason": "too_recent", "stage": "timing"}
        assert engine.stats.totals.views == 2

    @pytest.mark.asyncio
    async def test_nudges_disabled(self, engine, recorder):
        assert (await engine.handle_message({
            "type": "set_settings", "payload": {"nudges_enabled": False},
        }))["ok"]
        result = await engine.handle_message(LAPTOP_VIEW)
        assert result["reason"] == "nudges_disabled"
        assert recorder.of(EventType.SHOW_NUDGE) == []

    @pytest.mark.asyncio
    async def test_travel_search_predicts_and_nudges(self, engine, recorder):
        result = await engine.handle_message({
            "type": "report_action",
            "payload": {
                "kind": "travel_search",
                "origin": "LHR",
                "destination": "JFK",
                "distance_km": 5500,
                "est_kg": 900,
                "url": "https://www.google.com/travel/flights?q=jfk",
            },
        })
        assert result["nudge"]["type"] == "transport_alternative"
        assert [p["trigger_id"] for p in result["predictions"]] == ["flight_search_terms"]
        assert recorder.of(EventType.PROACTIVE_ALERT)[0].data["title"] == "✈️ Travel Impact Alert"
        assert "predictive_intervention" in queued_types(engine)

    @pytest.mark.asyncio
    async def test_text_flag(self, engine):
        result = await engine.handle_message({
            "type": "report_action",
            "payload": {"kind": "text_flag", "text": "Carbon offsets cancel every flight"},
        })
        assert result == {"ok": True, "recorded": True}
        assert engine.stats.totals.misinfo_flags == 1

        await engine.handle_message({"type": "set_settings", "payload": {"misinfo_enabled": False}})
        result = await engine.handle_message({
            "type": "report_action", "payload": {"kind": "text_flag", "text": "x"},
        })
        assert result["recorded"] is False


class TestNudgeLifecycle:
    @pytest.mark.asyncio
    async def test_response_and_outcome(self, engine):
        nudge_id = (await engine.handle_message(LAPTOP_VIEW))["nudge"]["id"]

        premature = await engine.handle_message({
            "type": "nudge_outcome",
            "payload": {"interaction_id": nudge_id, "type": "purchase_delayed", "co2_saved": 5},
        })
        assert premature == {"ok": False, "error": "invalid_interaction"}

        response = {"type": "nudge_response", "payload": {"interaction_id": nudge_id, "type": "accepted"}}
        assert (await engine.handle_message(response))["ok"]
        assert (await engine.handle_message(response))["error"] == "invalid_interaction"
        assert engine.timing.history[0].action == "accepted"

        outcome = await engine.handle_message({
            "type": "nudge_outcome",
            "payload": {"interaction_id": nudge_id, "type": "purchase_delayed", "co2_saved": 5},
        })
        assert outcome["ok"]
        assert "nudge_interaction" in queued_types(engine)
        assert "nudge_outcome" in queued_types(engine)

    @pytest.mark.asyncio
    async def test_snooze_reshows_later(self, engine, scheduler, recorder):
        nudge_id = (await engine.handle_message(LAPTOP_VIEW))["nudge"]["id"]
        result = await engine.handle_message({
            "type": "snooze_nudge",
            "payload": {
                "interaction_id": nudge_id,
                "duration_ms": 15 * 60 * 1000,
                "context": {"category": "electronics", "emission_level": 80, "high_impact": True},
            },
        })
        assert result["token"].startswith("snooze_")
        assert engine.profile.get_interaction(nudge_id).response.type == "snoozed"

        await scheduler.advance(15 * 60)
        assert len(recorder.of(EventType.SHOW_NUDGE)) == 2

    @pytest.mark.asyncio
    async def test_clear_profile(self, engine):
        await engine.handle_message(LAPTOP_VIEW)
        assert (await engine.handle_message({"type": "clear_profile"}))["ok"]
        assert engine.profile.profile.interactions == []
        assert engine.timing.history == []


class TestDelays:
    @pytest.mark.asyncio
    async def test_delay_round_trip_updates_profile(self, engine):
        nudge_id = (await engine.handle_message(LAPTOP_VIEW))["nudge"]["id"]
        await engine.handle_message({
            "type": "nudge_response", "payload": {"interaction_id": nudge_id, "type": "accepted"},
        })
        created = await engine.handle_message({
            "type": "create_delay",
            "payload": {"title": "Laptop", "price_usd": 1200, "est_kg": 80, "interaction_id": nudge_id},
        })
        delay_id = created["delay_id"]

        active = await engine.handle_message({"type": "get_active_delays"})
        assert [d["delay_id"] for d in active["delays"]] == [delay_id]

        done = await engine.handle_message({
            "type": "complete_delay", "payload": {"delay_id": delay_id, "outcome": "skipped"},
        })
        assert done["outcome"]["co2_saved"] == 80
        assert engine.profile.get_interaction(nudge_id).outcome.type == "purchase_cancelled"
        assert "delay_completed" in queued_types(engine)

        again = await engine.handle_message({
            "type": "complete_delay", "payload": {"delay_id": delay_id, "outcome": "purchased"},
        })
        assert again["error"] == "delay_already_completed"

    @pytest.mark.asyncio
    async def test_reminder_fires_through_scheduler(self, engine, scheduler, recorder):
        created = await engine.handle_message({
            "type": "create_delay", "payload": {"title": "Sofa", "est_kg": 200},
        })
        await scheduler.advance(22 * 3600)
        notification = recorder.of(EventType.SHOW_NOTIFICATION)[0]
        assert notification.data["delay_id"] == created["delay_id"]

    @pytest.mark.asyncio
    async def test_host_alarm_is_handled_once(self, engine, scheduler, recorder):
        delay_id = (await engine.handle_message({
            "type": "create_delay", "payload": {"title": "Sofa"},
        }))["delay_id"]
        result = await engine.handle_message({
            "type": "alarm_fired", "payload": {"alarm_id": f"reminder_{delay_id}"},
        })
        assert result == {"ok": True, "handled": True}
        await scheduler.advance(24 * 3600)
        assert len(recorder.of(EventType.SHOW_NOTIFICATION)) == 1


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("message,error", [
        ({"type": "bogus"}, "unknown_message_type"),
        ({"type": "report_action", "payload": {"kind": "weird"}}, "unknown_message_type"),
        ({"type": "complete_delay", "payload": {"delay_id": "x"}}, "invalid_payload"),
        ({"type": "complete_delay", "payload": {"delay_id": "x", "outcome": "skipped"}}, "delay_not_found"),
        ({"payload": {}}, "invalid_payload"),
        ("not a message", "invalid_payload"),
    ])
    async def test_failure_results(self, engine, message, error):
        result = await engine.handle_message(message)
        assert result["ok"] is False
        assert result["error"] == error


class TestStatsAndSettings:
    @pytest.mark.asyncio
    async def test_get_stats(self, engine):
        await engine.handle_message(LAPTOP_VIEW)
        stats = await engine.handle_message({"type": "get_stats"})
        assert stats["totals"]["views"] == 1
        assert stats["events"][0]["type"] == "product"
        assert stats["profile"]["total_interactions"] == 1
        assert stats["sync"]["state"] == "disconnected"
        assert stats["settings"]["nudges_enabled"] is True

    @pytest.mark.asyncio
    async def test_settings_survive_restart(self, engine, config, state, scheduler, transport):
        await engine.handle_message({"type": "set_settings", "payload": {"predictive_enabled": False}})
        await engine.handle_message(LAPTOP_VIEW)

        restarted = GreenTwinEngine(
            config=config, state=state, scheduler=scheduler, transport=transport
        )
        assert restarted.stats.settings.predictive_enabled is False
        assert restarted.stats.totals.views == 1
        assert len(restarted.sync.queue) == len(engine.sync.queue)

    @pytest.mark.asyncio
    async def test_tracking_messages(self, engine):
        assert (await engine.handle_message({"type": "track_activity"}))["level"] == pytest.approx(0.1)
        visit = await engine.handle_message({
            "type": "track_visit", "payload": {"url": "https://www.ubereats.com/store/1"},
        })
        assert [p["trigger_id"] for p in visit["predictions"]] == ["food_delivery_sites"]
        assert (await engine.handle_message({"type": "reset_session"}))["ok"]
        assert engine.predictive.session.visits == []
        query = await engine.handle_message({"type": "track_query", "payload": {"text": "airport parking"}})
        assert [p["trigger_id"] for p in query["predictions"]] == ["flight_search_terms"]


class TestConnected:
    @pytest.mark.asyncio
    async def test_events_delivered_when_online(self, engine, scheduler, transport):
        await engine.start()
        await engine.handle_message(LAPTOP_VIEW)
        await scheduler.advance(0)
        assert [e["type"] for e in transport.events()] == ["product_view", "nudge_shown"]
        assert len(engine.sync.queue) == 0
        await engine.stop()

    @pytest.mark.asyncio
    async def test_remote_preferences_apply(self, engine, transport):
        await engine.start()
        transport.push({"type": "preference", "data": {"predictive_enabled": False}})
        await settle()
        assert engine.stats.settings.predictive_enabled is False
        result = await engine.handle_message({"type": "track_query", "payload": {"text": "flights"}})
        assert result["predictions"] == []
        await engine.stop()


class TestRestart:
    def test_restart_outside_loop_with_active_delay(self, config, state):
        delay_id = DelayManager(state=state, clock=datetime.now).create(
            DelayItem(title="Laptop", price_usd=1200, est_kg=80, category="electronics")
        )

        engine = GreenTwinEngine(config=config, state=state, transport=FakeTransport())
        token = f"reminder_{delay_id}"
        assert token in engine.scheduler.pending()

        async def lifecycle():
            await engine.start()
            armed = engine.scheduler.pending()
            await engine.stop()
            return armed

        assert token in asyncio.run(lifecycle())
