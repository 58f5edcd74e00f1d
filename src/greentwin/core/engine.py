"""GreenTwin engine - wires the components and routes inbound messages.

Control flow for an observed action: timing gate -> adaptive selector
(reading the behavior profile) -> SHOW_NUDGE on the bus. User responses flow
back into the profile and timing log, delays into the delay manager, and
every durable event into the sync layer.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from greentwin.config import Config, get_config
from greentwin.contracts.delays import DelayItem
from greentwin.contracts.interactions import NudgeOutcome, NudgeResponse
from greentwin.contracts.nudges import NudgeContext, ResponseType
from greentwin.contracts.sync import SyncEvent
from greentwin.core.events import Event, EventBus, EventType
from greentwin.core.messages import (
    AlarmFired,
    CompleteDelay,
    CreateDelay,
    EngineStats,
    InboundMessage,
    NudgeOutcomePayload,
    NudgeResponsePayload,
    ProductView,
    RecentEvent,
    Settings,
    SnoozeNudge,
    TextFlag,
    TrackQuery,
    TrackVisit,
    TravelSearch,
)
from greentwin.delays import DelayManager
from greentwin.errors import GreenTwinError, UnknownMessageType
from greentwin.nudges import AdaptiveNudgeSelector
from greentwin.predictive import PredictiveTriggerEngine
from greentwin.profile import BehaviorProfileStore, EffectivenessWeights, SimilarityWeights
from greentwin.scheduling import AsyncioScheduler, Scheduler
from greentwin.storage import StateStore
from greentwin.sync import (
    HttpEventSender,
    OfflineQueue,
    SyncClient,
    Transport,
    WebSocketTransport,
)
from greentwin.timing import NudgeTimingOptimizer

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class GreenTwinEngine:
    """Single entry point for collaborators."""

    STATE_OWNER = "stats"
    EVENTS_CAP = 200
    HIGH_IMPACT_KG = 10.0

    def __init__(
        self,
        config: Config | None = None,
        state: StateStore | None = None,
        bus: EventBus | None = None,
        scheduler: Scheduler | None = None,
        transport: Transport | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Build every component around one store, bus, scheduler and sync client.

        Args:
            config: Configuration (global config by default)
            state: State store (SQLite file under DATA_DIR by default)
            bus: Event bus for outbound notifications
            scheduler: Timer facility (asyncio-backed by default)
            transport: Collector transport (websocket by default)
            clock: Source of "now" (the scheduler's clock by default)
        """
        self.config = config or get_config()
        cfg = self.config
        self.state = state or StateStore(cfg.data_path / f"{cfg.USER_ID}.db")
        self.bus = bus or EventBus()
        self.scheduler = scheduler or AsyncioScheduler()
        self.scheduler.on_fire = self.on_alarm
        self.clock = clock or self.scheduler.now

        http = HttpEventSender(cfg.SYNC_HTTP_URL) if cfg.SYNC_HTTP_URL else None
        self.sync = SyncClient(
            transport=transport or WebSocketTransport(cfg.SYNC_URLS),
            scheduler=self.scheduler,
            bus=self.bus,
            queue=OfflineQueue(cfg.OFFLINE_QUEUE_CAPACITY, self.state),
            http=http,
            client_id=cfg.USER_ID,
            max_reconnect_attempts=cfg.SYNC_MAX_RECONNECT_ATTEMPTS,
            backoff_base=cfg.SYNC_BACKOFF_BASE,
            backoff_cap=cfg.SYNC_BACKOFF_CAP,
            heartbeat_interval=cfg.SYNC_HEARTBEAT_INTERVAL,
            liveness_interval=cfg.SYNC_LIVENESS_INTERVAL,
            batch_size=cfg.FLUSH_BATCH_SIZE,
            max_failures=cfg.FLUSH_MAX_FAILURES,
            event_delay=cfg.FLUSH_EVENT_DELAY,
        )

        self.profile = BehaviorProfileStore(
            state=self.state,
            user_id=cfg.USER_ID,
            max_interactions=cfg.PROFILE_MAX_INTERACTIONS,
            similarity=SimilarityWeights(threshold=cfg.SIMILARITY_THRESHOLD),
            effectiveness=EffectivenessWeights(
                success=cfg.EFFECTIVENESS_SUCCESS_WEIGHT,
                co2=cfg.EFFECTIVENESS_CO2_WEIGHT,
                co2_scale_kg=cfg.EFFECTIVENESS_CO2_SCALE_KG,
            ),
            clock=self.clock,
        )
        self.timing = NudgeTimingOptimizer(
            state=self.state, scheduler=self.scheduler, clock=self.clock
        )
        self.selector = AdaptiveNudgeSelector(self.profile)
        self.predictive = PredictiveTriggerEngine(
            bus=self.bus,
            submit=self.sync.submit,
            confidence_threshold=cfg.PREDICTIVE_CONFIDENCE_THRESHOLD,
            clock=self.clock,
        )
        self.delays = DelayManager(
            state=self.state,
            scheduler=self.scheduler,
            bus=self.bus,
            profile=self.profile,
            submit=self.sync.submit,
            delay_hours=cfg.DELAY_HOURS,
            reminder_lead_hours=cfg.DELAY_REMINDER_LEAD_HOURS,
            clock=self.clock,
        )

        self.stats = self._load_stats()
        self.bus.subscribe(EventType.PREFERENCE_UPDATE, self._on_preference_update)

        self._handlers: dict[str, Handler] = {
            "report_action": self._report_action,
            "get_stats": self._get_stats,
            "set_settings": self._set_settings,
            "create_delay": self._create_delay,
            "get_active_delays": self._get_active_delays,
            "complete_delay": self._complete_delay,
            "nudge_response": self._nudge_response,
            "nudge_outcome": self._nudge_outcome,
            "snooze_nudge": self._snooze_nudge,
            "track_activity": self._track_activity,
            "track_visit": self._track_visit,
            "track_query": self._track_query,
            "reset_session": self._reset_session,
            "alarm_fired": self._alarm_fired,
            "clear_profile": self._clear_profile,
        }

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        if isinstance(self.scheduler, AsyncioScheduler):
            # Reminders and snoozes restored before the loop was running
            self.scheduler.start()
        await self.sync.start()

    async def stop(self) -> None:
        await self.sync.stop()
        if isinstance(self.scheduler, AsyncioScheduler):
            await self.scheduler.shutdown()

    # ─────────────────────────────────────────────────────────────────────
    # Boundary
    # ─────────────────────────────────────────────────────────────────────

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any]:
        """Route one inbound message. Validation and domain errors become failure results.

        Returns:
            {"ok": True, ...} on success, {"ok": False, "error": code} otherwise
        """
        kind = message.get("type") if isinstance(message, dict) else None
        try:
            inbound = InboundMessage.model_validate(message)
            handler = self._handlers.get(inbound.type)
            if handler is None:
                raise UnknownMessageType(inbound.type)
            return await handler(inbound.payload)
        except ValidationError as e:
            logger.warning(f"Invalid payload for {kind!r}: {e.error_count()} errors")
            return {"ok": False, "error": "invalid_payload", "detail": e.errors(include_url=False)}
        except GreenTwinError as e:
            logger.warning(f"Rejected {kind!r}: {e.code}")
            return {"ok": False, "error": e.code, "detail": str(e)}

    async def on_alarm(self, token: str) -> bool:
        """Scheduler callback; routes tokens by prefix."""
        if token.startswith(DelayManager.REMINDER_PREFIX):
            return self.delays.on_reminder(token)
        if token.startswith(NudgeTimingOptimizer.SNOOZE_PREFIX):
            fired = self.timing.on_snooze_fired(token)
            if fired is None:
                return False
            context, decision = fired
            if not decision.show:
                self._suppressed(decision.reason, "timing")
                return False
            nudge, _ = self._select_and_show(context)
            return nudge is not None
        if token.startswith(SyncClient.TOKEN_PREFIX):
            return await self.sync.handle_alarm(token)
        logger.warning(f"Unknown alarm {token}")
        return False

    # ─────────────────────────────────────────────────────────────────────
    # Stats
    # ─────────────────────────────────────────────────────────────────────

    def _load_stats(self) -> EngineStats:
        data = self.state.load(self.STATE_OWNER, "stats")
        return EngineStats.model_validate(data) if data else EngineStats()

    def _save_stats(self) -> None:
        self.state.save(self.STATE_OWNER, "stats", self.stats.model_dump(mode="json"))

    def _record_event(self, event_type: str, meta: dict[str, Any], kg: float = 0.0) -> RecentEvent:
        event = RecentEvent(type=event_type, ts=self.clock(), meta=meta, kg=kg)
        self.stats.events.insert(0, event)
        del self.stats.events[self.EVENTS_CAP:]
        return event

    def _on_preference_update(self, event: Event) -> None:
        merged = {**self.stats.settings.model_dump(), **event.data}
        self.stats.settings = Settings.model_validate(merged)
        self._save_stats()
        logger.info(f"Applied remote preferences: {sorted(event.data)}")

    # ─────────────────────────────────────────────────────────────────────
    # Nudge flow
    # ─────────────────────────────────────────────────────────────────────

    def _maybe_nudge(self, context: NudgeContext) -> dict[str, Any]:
        if not self.stats.settings.nudges_enabled:
            return {"shown": False, "reason": "nudges_disabled"}

        decision = self.timing.should_show_nudge(context)
        if not decision.show:
            self._suppressed(decision.reason, "timing")
            return {"shown": False, "reason": decision.reason}

        nudge, reason = self._select_and_show(context)
        if nudge is None:
            return {"shown": False, "reason": reason}
        return {"shown": True, "nudge": nudge}

    def _select_and_show(self, context: NudgeContext) -> tuple[dict[str, Any] | None, str]:
        selection = self.selector.select(context)
        if not selection.show or selection.nudge is None:
            self._suppressed(selection.reason, "profile")
            return None, selection.reason

        nudge = selection.nudge
        self.timing.track_interaction(nudge.type.value, "shown", context, nudge_id=nudge.id)
        data = nudge.model_dump(mode="json")
        self.bus.publish(Event(type=EventType.SHOW_NUDGE, data=data))
        self.sync.submit(SyncEvent(
            type="nudge_shown",
            data={
                "interaction_id": nudge.id,
                "nudge_type": nudge.type.value,
                "category": nudge.category,
                "effort_level": nudge.effort_level.value,
                "style": nudge.style.value,
                "confidence": nudge.confidence,
            },
        ))
        return data, selection.reason

    def _suppressed(self, reason: str, stage: str) -> None:
        logger.debug(f"Nudge suppressed at {stage}: {reason}")
        self.bus.publish(Event(
            type=EventType.NUDGE_SUPPRESSED,
            data={"reason": reason, "stage": stage},
        ))

    # ─────────────────────────────────────────────────────────────────────
    # Handlers
    # ─────────────────────────────────────────────────────────────────────

    async def _report_action(self, payload: dict[str, Any]) -> dict[str, Any]:
        kind = payload.get("kind")
        if kind == "product_view":
            return self._product_view(ProductView.model_validate(payload))
        if kind == "travel_search":
            return self._travel_search(TravelSearch.model_validate(payload))
        if kind == "text_flag":
            return self._text_flag(TextFlag.model_validate(payload))
        raise UnknownMessageType(f"report_action kind {kind!r}")

    def _product_view(self, view: ProductView) -> dict[str, Any]:
        totals = self.stats.totals
        totals.views += 1
        totals.items += 1
        totals.est_kg_month += view.est_kg
        event = self._record_event(
            "product",
            {"title": view.title, "price_usd": view.price_usd, "category": view.category},
            kg=view.est_kg,
        )
        self._save_stats()
        self.sync.submit(SyncEvent(type="product_view", data=event.model_dump(mode="json")))

        predictions = []
        if self.stats.settings.predictive_enabled and view.url:
            predictions = self.predictive.track_visit(view.url, view.title)

        high_impact = view.high_impact
        if high_impact is None:
            high_impact = view.est_kg >= self.HIGH_IMPACT_KG
        context = NudgeContext(
            hour_of_day=self.clock().hour,
            category=view.category,
            emission_level=view.est_kg,
            cost_saving=round(view.price_usd * DelayManager.MONEY_SAVINGS_RATE, 2) or None,
            url=view.url,
            title=view.title,
            price_usd=view.price_usd,
            high_impact=high_impact,
            engagement=view.engagement,
        )
        result = self._maybe_nudge(context)
        return {"ok": True, **result, "predictions": [p.to_dict() for p in predictions]}

    def _travel_search(self, search: TravelSearch) -> dict[str, Any]:
        totals = self.stats.totals
        totals.views += 1
        totals.est_kg_month += search.est_kg
        event = self._record_event(
            "travel",
            {
                "mode": search.mode,
                "origin": search.origin,
                "destination": search.destination,
                "distance_km": search.distance_km,
            },
            kg=search.est_kg,
        )
        self._save_stats()
        self.sync.submit(SyncEvent(type="travel_search", data=event.model_dump(mode="json")))

        predictions = []
        if self.stats.settings.predictive_enabled and search.url:
            predictions = self.predictive.track_visit(search.url)

        high_impact = search.high_impact
        if high_impact is None:
            high_impact = search.est_kg >= self.HIGH_IMPACT_KG
        context = NudgeContext(
            hour_of_day=self.clock().hour,
            category="travel",
            emission_level=search.est_kg,
            url=search.url,
            high_impact=high_impact,
        )
        result = self._maybe_nudge(context)
        return {"ok": True, **result, "predictions": [p.to_dict() for p in predictions]}

    def _text_flag(self, flag: TextFlag) -> dict[str, Any]:
        if not self.stats.settings.misinfo_enabled:
            return {"ok": True, "recorded": False}
        self.stats.totals.misinfo_flags += 1
        self._record_event("misinfo", {"snippet": flag.text[:120]})
        self._save_stats()
        return {"ok": True, "recorded": True}

    async def _get_stats(self, payload: dict[str, Any]) -> dict[str, Any]:
        return {
            "ok": True,
            **self.stats.model_dump(mode="json"),
            "profile": self.profile.summary(),
            "activity": list(self.timing.activity),
            "predictive": self.predictive.stats(),
            "sync": self.sync.status(),
        }

    async def _set_settings(self, payload: dict[str, Any]) -> dict[str, Any]:
        merged = {**self.stats.settings.model_dump(), **payload}
        self.stats.settings = Settings.model_validate(merged)
        self._save_stats()
        await self.sync.send_preference_update(payload)
        return {"ok": True, "settings": self.stats.settings.model_dump()}

    async def _create_delay(self, payload: dict[str, Any]) -> dict[str, Any]:
        request = CreateDelay.model_validate(payload)
        item = DelayItem(
            title=request.title,
            price_usd=request.price_usd,
            est_kg=request.est_kg,
            category=request.category,
            url=request.url,
        )
        delay_id = self.delays.create(item, request.interaction_id, request.hours)
        return {"ok": True, "delay_id": delay_id}

    async def _get_active_delays(self, payload: dict[str, Any]) -> dict[str, Any]:
        return {"ok": True, "delays": self.delays.list_active()}

    async def _complete_delay(self, payload: dict[str, Any]) -> dict[str, Any]:
        request = CompleteDelay.model_validate(payload)
        event = self.delays.complete(request.delay_id, request.outcome)
        return {"ok": True, "outcome": event.model_dump(mode="json")}

    async def _nudge_response(self, payload: dict[str, Any]) -> dict[str, Any]:
        request = NudgeResponsePayload.model_validate(payload)
        recorded = self.profile.record_response(
            request.interaction_id,
            NudgeResponse(
                type=request.type,
                timestamp=self.clock(),
                snooze_duration_ms=request.snooze_duration_ms,
                alternative_chosen=request.alternative_chosen,
            ),
        )
        if not recorded:
            return {"ok": False, "error": "invalid_interaction"}

        record = self.profile.get_interaction(request.interaction_id)
        self.timing.track_interaction(
            record.nudge_type.value, request.type.value, nudge_id=record.id
        )
        self.sync.submit(SyncEvent(
            type="nudge_interaction",
            data={
                "interaction_id": record.id,
                "nudge_type": record.nudge_type.value,
                "response": request.type.value,
            },
        ))
        return {"ok": True}

    async def _nudge_outcome(self, payload: dict[str, Any]) -> dict[str, Any]:
        request = NudgeOutcomePayload.model_validate(payload)
        recorded = self.profile.record_outcome(
            request.interaction_id,
            NudgeOutcome(
                type=request.type,
                co2_saved=request.co2_saved,
                cost_saved=request.cost_saved,
                timestamp=self.clock(),
            ),
        )
        if not recorded:
            return {"ok": False, "error": "invalid_interaction"}
        self.sync.submit(SyncEvent(type="nudge_outcome", data=request.model_dump()))
        return {"ok": True}

    async def _snooze_nudge(self, payload: dict[str, Any]) -> dict[str, Any]:
        request = SnoozeNudge.model_validate(payload)
        if request.interaction_id:
            self.profile.record_response(
                request.interaction_id,
                NudgeResponse(
                    type=ResponseType.SNOOZED,
                    timestamp=self.clock(),
                    snooze_duration_ms=request.duration_ms,
                ),
            )
        token = self.timing.snooze(
            request.context, request.duration_ms, nudge_id=request.interaction_id
        )
        return {"ok": True, "token": token}

    async def _track_activity(self, payload: dict[str, Any]) -> dict[str, Any]:
        return {"ok": True, "level": self.timing.track_activity()}

    async def _track_visit(self, payload: dict[str, Any]) -> dict[str, Any]:
        request = TrackVisit.model_validate(payload)
        if not self.stats.settings.predictive_enabled:
            return {"ok": True, "predictions": []}
        predictions = self.predictive.track_visit(request.url, request.title, request.dwell_ms)
        return {"ok": True, "predictions": [p.to_dict() for p in predictions]}

    async def _track_query(self, payload: dict[str, Any]) -> dict[str, Any]:
        request = TrackQuery.model_validate(payload)
        if not self.stats.settings.predictive_enabled:
            return {"ok": True, "predictions": []}
        predictions = self.predictive.track_query(request.text)
        return {"ok": True, "predictions": [p.to_dict() for p in predictions]}

    async def _reset_session(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.predictive.reset_session()
        return {"ok": True}

    async def _alarm_fired(self, payload: dict[str, Any]) -> dict[str, Any]:
        request = AlarmFired.model_validate(payload)
        # Host-driven alarm: drop any copy still pending in our scheduler
        self.scheduler.cancel(request.alarm_id)
        handled = await self.on_alarm(request.alarm_id)
        return {"ok": True, "handled": handled}

    async def _clear_profile(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.profile.clear()
        self.timing.clear()
        return {"ok": True}
