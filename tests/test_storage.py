"""Tests for storage module."""

from datetime import datetime, timedelta

from greentwin.contracts.delays import DelayItem, DelayRecord, DelayStatus, PotentialSavings
from greentwin.contracts.sync import QueuedEvent, SyncEvent
from greentwin.storage import StateStore


def delay(delay_id: str, status: DelayStatus = DelayStatus.ACTIVE, offset: int = 0) -> DelayRecord:
    created = datetime(2024, 1, 1, 12) + timedelta(minutes=offset)
    return DelayRecord(
        delay_id=delay_id,
        item=DelayItem(title=delay_id),
        created_at=created,
        delay_end=created + timedelta(hours=24),
        potential_savings=PotentialSavings(),
        status=status,
    )


class TestStateStore:
    def test_documents_round_trip(self, tmp_path):
        store = StateStore(tmp_path / "test.db")
        assert store.load("timing", "activity") is None

        store.save("timing", "activity", [0.1] * 24)
        store.save("profile", "activity", {"other": True})
        assert store.load("timing", "activity") == [0.1] * 24
        assert store.load("profile", "activity") == {"other": True}

        store.delete("timing", "activity")
        assert store.load("timing", "activity") is None

    def test_survives_reopen(self, tmp_path):
        StateStore(tmp_path / "test.db").save("stats", "stats", {"views": 3})
        assert StateStore(tmp_path / "test.db").load("stats", "stats") == {"views": 3}

    def test_creates_parent_directory(self, tmp_path):
        store = StateStore(tmp_path / "nested" / "dir" / "test.db")
        assert store.db_path.parent.exists()

    def test_delays_upsert_and_filter(self, tmp_path):
        store = StateStore(tmp_path / "test.db")
        store.upsert_delay(delay("a", offset=0))
        store.upsert_delay(delay("b", offset=1))
        store.upsert_delay(delay("a", DelayStatus.COMPLETED, offset=0))

        assert store.get_delay("missing") is None
        assert store.get_delay("a").status == DelayStatus.COMPLETED
        assert [d.delay_id for d in store.list_delays()] == ["a", "b"]
        assert [d.delay_id for d in store.list_delays(DelayStatus.ACTIVE)] == ["b"]

    def test_queue_replace_preserves_order(self, tmp_path):
        store = StateStore(tmp_path / "test.db")
        events = [QueuedEvent.from_event(SyncEvent(type=f"t{i}")) for i in range(3)]
        store.replace_queue(events)
        assert [e.id for e in store.load_queue()] == [e.id for e in events]

        store.replace_queue(events[1:])
        assert [e.type for e in store.load_queue()] == ["t1", "t2"]
