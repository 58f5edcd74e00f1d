"""Tests for the predictive trigger engine."""

from datetime import timedelta

import pytest

from greentwin.core.events import EventType
from greentwin.predictive import PredictiveTriggerEngine, TriggerDefinition
from greentwin.predictive.patterns import (
    SessionWindow,
    SiteVisit,
    high_value_shopping,
    product_id,
)


@pytest.fixture
def submitted():
    return []


@pytest.fixture
def engine(bus, scheduler, submitted):
    return PredictiveTriggerEngine(bus=bus, submit=submitted.append, clock=scheduler.now)


class TestPatterns:
    @pytest.mark.parametrize("url,expected", [
        ("https://www.amazon.com/Some-Item/dp/B08N5WRWNW?ref=x", "amazon.com:B08N5WRWNW"),
        ("https://www.ebay.com/itm/thing/1234567890", "ebay.com:1234567890"),
        ("https://www.walmart.com/ip/567", "walmart.com:567"),
        ("https://www.amazon.com/gp/help", None),
        ("https://example.com/product/1", None),
    ])
    def test_product_id(self, url, expected):
        assert product_id(url) == expected

    def test_high_value_window(self, scheduler):
        now = scheduler.now()
        session = SessionWindow(start_time=now)
        session.visits.append(
            SiteVisit(url="https://shop.example/x", title="Luxury watch", dwell_ms=0,
                      timestamp=now - timedelta(minutes=40))
        )
        assert not high_value_shopping(session, now)
        session.visits.append(
            SiteVisit(url="https://shop.example/electronics/tv", title="", dwell_ms=0, timestamp=now)
        )
        assert high_value_shopping(session, now)


class TestTriggers:
    def test_single_shopping_site_does_not_trigger(self, engine, recorder):
        assert engine.track_visit("https://www.amazon.com/s?k=lamp") == []
        assert recorder.of(EventType.PROACTIVE_ALERT) == []

    def test_multiple_shopping_sites(self, engine, recorder, submitted):
        engine.track_visit("https://www.amazon.com/s?k=lamp")
        predictions = engine.track_visit("https://www.ebay.com/sch/lamp")

        assert [p.trigger_id for p in predictions] == ["multiple_shopping_sites"]
        assert predictions[0].confidence == pytest.approx(0.8)
        alert = recorder.of(EventType.PROACTIVE_ALERT)[0]
        assert alert.data["intervention"] == "shopping_delay_suggestion"
        assert alert.data["actions"] == ["Maybe Later", "Got It!"]
        assert submitted[0].type == "predictive_intervention"
        assert submitted[0].data["trigger_id"] == "multiple_shopping_sites"

    def test_one_alert_per_trigger_per_session(self, engine, recorder):
        engine.track_visit("https://www.amazon.com/a")
        engine.track_visit("https://www.ebay.com/b")
        predictions = engine.track_visit("https://www.walmart.com/c")

        assert "multiple_shopping_sites" in [p.trigger_id for p in predictions]
        assert len(recorder.of(EventType.PROACTIVE_ALERT)) == 1

        engine.reset_session()
        engine.track_visit("https://www.amazon.com/a")
        engine.track_visit("https://www.ebay.com/b")
        assert len(recorder.of(EventType.PROACTIVE_ALERT)) == 2

    def test_flight_query(self, engine):
        predictions = engine.track_query("Cheap FLIGHTS to Lisbon")
        assert [p.trigger_id for p in predictions] == ["flight_search_terms"]
        assert predictions[0].category == "travel"
        assert predictions[0].context["search_queries"] == 1

    def test_below_threshold_is_not_reported(self, bus, scheduler):
        engine = PredictiveTriggerEngine(bus=bus, confidence_threshold=0.95, clock=scheduler.now)
        assert engine.track_query("flight to rome") == []
        assert engine.stats() == {}

    def test_session_duration_boost(self, engine, scheduler):
        engine.track_visit("https://www.amazon.com/a")
        # Shopping sessions run about 15 minutes; past half of that confidence grows
        scheduler.set_now(scheduler.now() + timedelta(minutes=8))
        predictions = engine.track_visit("https://www.ebay.com/b")
        assert predictions[0].confidence == pytest.approx(0.96)

    def test_evening_shopping_clamped(self, engine, scheduler):
        scheduler.set_now(scheduler.now().replace(hour=20))
        engine.reset_session()
        engine.track_visit("https://www.amazon.com/a")
        scheduler.set_now(scheduler.now() + timedelta(minutes=8))
        predictions = engine.track_visit("https://www.ebay.com/b")
        assert predictions[0].confidence == 1.0

    def test_repeated_product_views(self, engine):
        engine.track_visit("https://www.amazon.com/x/dp/B000000001")
        predictions = engine.track_visit("https://www.amazon.com/y/dp/B000000002")
        assert "repeated_product_views" in [p.trigger_id for p in predictions]

    def test_custom_trigger_replaces_by_id(self, engine):
        engine.register(TriggerDefinition(
            id="flight_search_terms",
            pattern=lambda session, now: False,
            probability=0.9,
            action="travel_booking",
            category="travel",
            intervention="travel_alternatives",
        ))
        assert engine.track_query("flight") == []
        assert len(engine.triggers) == 5

    def test_stats(self, engine):
        engine.track_query("vacation ideas")
        stats = engine.stats()["flight_search_terms"]
        assert stats["triggered"] == 1
        assert stats["average_confidence"] == pytest.approx(0.9)
