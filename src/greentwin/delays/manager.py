"""Delay / cooling-off manager.

State machine per record: active -> completed{purchased|skipped|alternative}.
A reminder token is scheduled two hours before the window ends; completing
the record cancels it, and a reminder firing for a completed record is a
no-op.
"""

import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable

from greentwin.contracts.delays import (
    DelayItem,
    DelayOutcome,
    DelayOutcomeEvent,
    DelayRecord,
    DelayStatus,
    PotentialSavings,
)
from greentwin.contracts.interactions import NudgeOutcome
from greentwin.contracts.sync import SyncEvent
from greentwin.core.events import Event, EventBus, EventType
from greentwin.errors import DelayAlreadyCompleted, DelayNotFound
from greentwin.profile import BehaviorProfileStore
from greentwin.scheduling import Scheduler
from greentwin.storage import StateStore

logger = logging.getLogger(__name__)


def new_delay_id() -> str:
    return f"delay_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class DelayManager:
    """Cooling-off windows for high-impact purchases."""

    REMINDER_PREFIX = "reminder_"

    CO2_SAVINGS_RATE = 0.7
    MONEY_SAVINGS_RATE = 0.15

    REMINDER_ACTIONS = ["View Alternatives", "Complete Purchase"]

    # Outcome type recorded on the originating interaction
    PROFILE_OUTCOMES = {
        DelayOutcome.SKIPPED: "purchase_cancelled",
        DelayOutcome.ALTERNATIVE: "alternative_chosen",
        DelayOutcome.PURCHASED: "no_change",
    }

    def __init__(
        self,
        state: StateStore | None = None,
        scheduler: Scheduler | None = None,
        bus: EventBus | None = None,
        profile: BehaviorProfileStore | None = None,
        submit: Callable[[SyncEvent], Any] | None = None,
        delay_hours: float = 24,
        reminder_lead_hours: float = 2,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.state = state
        self.scheduler = scheduler
        self.bus = bus
        self.profile = profile
        self.submit = submit
        self.delay_hours = delay_hours
        self.reminder_lead_hours = reminder_lead_hours
        self.clock = clock
        self._records: dict[str, DelayRecord] = {}
        if state is not None:
            self._records = {r.delay_id: r for r in state.list_delays()}
            self._rearm_reminders()

    def _rearm_reminders(self) -> None:
        """Schedule reminders for persisted records still ahead of their window."""
        if self.scheduler is None:
            return
        now = self.clock()
        for record in self._records.values():
            reminder_at = record.delay_end - timedelta(hours=self.reminder_lead_hours)
            if record.status == DelayStatus.ACTIVE and reminder_at > now:
                self.scheduler.schedule_at(reminder_at, self.REMINDER_PREFIX + record.delay_id)

    def _persist(self, record: DelayRecord) -> None:
        self._records[record.delay_id] = record
        if self.state is not None:
            self.state.upsert_delay(record)

    def create(
        self,
        item: DelayItem,
        interaction_id: str | None = None,
        hours: float | None = None,
    ) -> str:
        """Open a cooling-off window for an item.

        Returns:
            The new delay id
        """
        now = self.clock()
        record = DelayRecord(
            delay_id=new_delay_id(),
            item=item,
            created_at=now,
            delay_end=now + timedelta(hours=hours if hours is not None else self.delay_hours),
            potential_savings=PotentialSavings(
                co2=round(item.est_kg * self.CO2_SAVINGS_RATE, 1),
                money=round(item.price_usd * self.MONEY_SAVINGS_RATE, 2),
            ),
            interaction_id=interaction_id,
        )
        self._persist(record)

        reminder_at = record.delay_end - timedelta(hours=self.reminder_lead_hours)
        if self.scheduler is not None and reminder_at > now:
            self.scheduler.schedule_at(reminder_at, self.REMINDER_PREFIX + record.delay_id)

        logger.info(f"Created delay {record.delay_id} for {item.title!r}")
        return record.delay_id

    def get(self, delay_id: str) -> DelayRecord:
        record = self._records.get(delay_id)
        if record is None:
            raise DelayNotFound(delay_id)
        return record

    def list_active(self) -> list[dict]:
        """Active records whose window has not ended, with time remaining."""
        now = self.clock()
        return [
            {
                **record.model_dump(mode="json"),
                "time_remaining_ms": int(record.time_remaining(now).total_seconds() * 1000),
            }
            for record in self._records.values()
            if record.is_active(now)
        ]

    def list_all(self) -> list[DelayRecord]:
        return list(self._records.values())

    def complete(self, delay_id: str, outcome: DelayOutcome) -> DelayOutcomeEvent:
        """Record the user's final choice and forward the outcome."""
        record = self.get(delay_id)
        if record.status == DelayStatus.COMPLETED:
            raise DelayAlreadyCompleted(delay_id)

        if self.scheduler is not None:
            self.scheduler.cancel(self.REMINDER_PREFIX + delay_id)

        now = self.clock()
        record = record.model_copy(update={
            "status": DelayStatus.COMPLETED,
            "outcome": outcome,
            "completed_at": now,
        })
        self._persist(record)

        event = DelayOutcomeEvent(
            delay_id=delay_id,
            outcome=outcome,
            original_kg=record.item.est_kg,
            co2_saved=record.co2_saved(),
            cost_saved=record.money_saved(),
            completed_at=now,
            interaction_id=record.interaction_id,
        )
        logger.info(f"Delay {delay_id} completed: {outcome.value} ({event.co2_saved}kg saved)")

        if self.profile is not None and record.interaction_id:
            self.profile.record_outcome(
                record.interaction_id,
                NudgeOutcome(
                    type=self.PROFILE_OUTCOMES[outcome],
                    co2_saved=event.co2_saved,
                    cost_saved=event.cost_saved,
                    timestamp=now,
                ),
            )

        if self.submit is not None:
            self.submit(SyncEvent(
                type="delay_completed",
                data=event.model_dump(mode="json"),
            ))
        return event

    def on_reminder(self, token: str) -> bool:
        """Surface the reminder notification if the record is still active.

        Returns:
            False for stale or unknown reminders
        """
        delay_id = token.removeprefix(self.REMINDER_PREFIX)
        record = self._records.get(delay_id)
        if record is None or not record.is_active(self.clock()):
            logger.debug(f"Stale reminder {token}")
            return False

        text = (
            f"Your {self.delay_hours:g}-hour cooling-off period for "
            f"\"{record.item.title}\" ends in {self.reminder_lead_hours:g} hours. "
            "Consider the alternatives!"
        )
        if self.bus is not None:
            self.bus.publish(Event(
                type=EventType.SHOW_NOTIFICATION,
                data={
                    "title": "Green Twin Reminder",
                    "text": text,
                    "actions": list(self.REMINDER_ACTIONS),
                    "delay_id": delay_id,
                },
            ))
        return True

