"""Behavior patterns and the built-in trigger catalog."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable


@dataclass(frozen=True)
class BehaviorPattern:
    """Typical session shape for one category of intent."""

    expected_session: timedelta
    domains: tuple[str, ...]
    indicators: tuple[str, ...] = ()

    def matches(self, url: str) -> bool:
        return any(domain in url for domain in self.domains)


BEHAVIOR_PATTERNS: dict[str, BehaviorPattern] = {
    "shopping": BehaviorPattern(
        expected_session=timedelta(minutes=15),
        domains=("amazon.com", "ebay.com", "walmart.com"),
        indicators=("add to cart", "buy now", "checkout", "purchase"),
    ),
    "travel": BehaviorPattern(
        expected_session=timedelta(minutes=20),
        domains=("google.com/travel", "expedia.com", "booking.com", "kayak.com"),
        indicators=("book now", "reserve", "confirm booking", "payment"),
    ),
    "food": BehaviorPattern(
        expected_session=timedelta(minutes=5),
        domains=("ubereats.com", "doordash.com", "grubhub.com"),
        indicators=("add to cart", "place order", "checkout"),
    ),
}

DEFAULT_EXPECTED_SESSION = timedelta(minutes=10)

FLIGHT_KEYWORDS = ("flight", "flights", "airline", "airport", "travel", "trip", "vacation")
HIGH_VALUE_KEYWORDS = ("expensive", "premium", "luxury", "professional", "electronics")
HIGH_VALUE_WINDOW = timedelta(minutes=30)

PRODUCT_ID_PATTERNS = (
    ("amazon.com", re.compile(r"/(?:dp|gp/product)/([A-Z0-9]{6,})")),
    ("ebay.com", re.compile(r"/itm/(?:[^/]+/)?(\d+)")),
    ("walmart.com", re.compile(r"/ip/(?:[^/]+/)?(\d+)")),
)


@dataclass
class SiteVisit:
    url: str
    title: str
    dwell_ms: int
    timestamp: datetime


@dataclass
class SearchQuery:
    text: str
    timestamp: datetime


@dataclass
class SessionWindow:
    """Rolling record of the current browsing session."""

    start_time: datetime
    visits: list[SiteVisit] = field(default_factory=list)
    queries: list[SearchQuery] = field(default_factory=list)
    time_spent_ms: int = 0

    def visits_matching(self, pattern: BehaviorPattern) -> list[SiteVisit]:
        return [v for v in self.visits if pattern.matches(v.url)]


# Pattern predicates take the session and "now"
PatternFn = Callable[[SessionWindow, datetime], bool]


@dataclass(frozen=True)
class TriggerDefinition:
    """A named session pattern with its base probability."""

    id: str
    pattern: PatternFn
    probability: float
    action: str
    category: str
    intervention: str


def product_id(url: str) -> str | None:
    for domain, regex in PRODUCT_ID_PATTERNS:
        if domain in url:
            match = regex.search(url)
            if match:
                return f"{domain}:{match.group(1)}"
    return None


def multiple_shopping_sites(session: SessionWindow, now: datetime) -> bool:
    return len(session.visits_matching(BEHAVIOR_PATTERNS["shopping"])) >= 2


def flight_search_terms(session: SessionWindow, now: datetime) -> bool:
    if session.visits_matching(BEHAVIOR_PATTERNS["travel"]):
        return True
    return any(
        keyword in query.text
        for query in session.queries
        for keyword in FLIGHT_KEYWORDS
    )


def food_delivery_sites(session: SessionWindow, now: datetime) -> bool:
    return bool(session.visits_matching(BEHAVIOR_PATTERNS["food"]))


def high_value_shopping(session: SessionWindow, now: datetime) -> bool:
    for visit in session.visits:
        if now - visit.timestamp >= HIGH_VALUE_WINDOW:
            continue
        haystack = f"{visit.title} {visit.url}".lower()
        if any(keyword in haystack for keyword in HIGH_VALUE_KEYWORDS):
            return True
    return False


def repeated_product_views(session: SessionWindow, now: datetime) -> bool:
    ids = {pid for pid in (product_id(v.url) for v in session.visits) if pid}
    return len(ids) >= 2


DEFAULT_TRIGGERS: tuple[TriggerDefinition, ...] = (
    TriggerDefinition(
        id="multiple_shopping_sites",
        pattern=multiple_shopping_sites,
        probability=0.8,
        action="purchase",
        category="shopping",
        intervention="shopping_delay_suggestion",
    ),
    TriggerDefinition(
        id="flight_search_terms",
        pattern=flight_search_terms,
        probability=0.9,
        action="travel_booking",
        category="travel",
        intervention="travel_alternatives",
    ),
    TriggerDefinition(
        id="food_delivery_sites",
        pattern=food_delivery_sites,
        probability=0.7,
        action="food_order",
        category="food",
        intervention="sustainable_food_options",
    ),
    TriggerDefinition(
        id="high_value_shopping",
        pattern=high_value_shopping,
        probability=0.85,
        action="expensive_purchase",
        category="shopping",
        intervention="purchase_delay_mandatory",
    ),
    TriggerDefinition(
        id="repeated_product_views",
        pattern=repeated_product_views,
        probability=0.75,
        action="purchase_consideration",
        category="shopping",
        intervention="alternatives_suggestion",
    ),
)

# Alert copy per intervention: (title, message, actions)
INTERVENTION_COPY: dict[str, tuple[str, str, list[str]]] = {
    "shopping_delay_suggestion": (
        "🤖 AI Prediction Alert",
        "I predict you're about to make a purchase. Consider waiting 24 hours "
        "to reduce impulse buying and carbon impact!",
        ["Maybe Later", "Got It!"],
    ),
    "travel_alternatives": (
        "✈️ Travel Impact Alert",
        "Planning a trip? Consider train/bus for shorter distances or direct "
        "flights to minimize your carbon footprint!",
        ["Show Alternatives", "Dismiss"],
    ),
    "sustainable_food_options": (
        "🥗 Food Choice Alert",
        "Ordering in? Plant-based dishes and local restaurants usually carry "
        "a much smaller footprint.",
        ["Show Options", "Dismiss"],
    ),
    "purchase_delay_mandatory": (
        "🚨 High-Impact Purchase Detected",
        "This appears to be a high-value purchase. I strongly recommend a "
        "24-hour cooling-off period to consider alternatives.",
        ["Delay Purchase", "Continue"],
    ),
    "alternatives_suggestion": (
        "🔄 Comparing Products?",
        "You've looked at several similar items. Refurbished or second-hand "
        "options can cut the footprint considerably.",
        ["Show Alternatives", "Dismiss"],
    ),
}
