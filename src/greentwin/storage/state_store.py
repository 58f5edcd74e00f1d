"""State store - SQLite persistence shared by every component.

Each logical owner (profile store, timing optimizer, delay manager, offline
queue, engine stats) reads and writes only its own rows. Access always goes
through the owner's API, never directly from a second component.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from greentwin.contracts.delays import DelayRecord, DelayStatus
from greentwin.contracts.sync import QueuedEvent

logger = logging.getLogger(__name__)


class StateStore:
    """Single-file SQLite store.

    Layout:
    - state: generic (owner, key) -> JSON document
    - delays: one row per delay record, keyed by delay_id
    - offline_queue: bounded FIFO of queued sync events, ordered by position
    """

    def __init__(self, db_path: Path | str):
        """Initialize state store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._conn() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS state (
                    owner TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (owner, key)
                );

                CREATE TABLE IF NOT EXISTS delays (
                    delay_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    delay_end TEXT NOT NULL,
                    record_json TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_delays_status
                    ON delays(status);

                CREATE TABLE IF NOT EXISTS offline_queue (
                    position INTEGER PRIMARY KEY,
                    event_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    event_json TEXT NOT NULL
                );
            """)

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with automatic commit/rollback."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ─────────────────────────────────────────────────────────────────────
    # Key/value documents
    # ─────────────────────────────────────────────────────────────────────

    def load(self, owner: str, key: str) -> Any | None:
        """Load a JSON document, or None if absent."""
        with self._conn() as conn:
            row = conn.execute(
                "SELECT value_json FROM state WHERE owner = ? AND key = ?",
                (owner, key),
            ).fetchone()
        if row is None:
            return None
        return json.loads(row["value_json"])

    def save(self, owner: str, key: str, value: Any) -> None:
        """Insert or replace a JSON document."""
        with self._conn() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO state (owner, key, value_json, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (owner, key, json.dumps(value, default=str), datetime.now().isoformat()),
            )

    def delete(self, owner: str, key: str) -> None:
        with self._conn() as conn:
            conn.execute("DELETE FROM state WHERE owner = ? AND key = ?", (owner, key))

    # ─────────────────────────────────────────────────────────────────────
    # Delays
    # ─────────────────────────────────────────────────────────────────────

    def upsert_delay(self, record: DelayRecord) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO delays
                    (delay_id, status, created_at, delay_end, record_json)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    record.delay_id,
                    record.status.value,
                    record.created_at.isoformat(),
                    record.delay_end.isoformat(),
                    record.model_dump_json(),
                ),
            )

    def get_delay(self, delay_id: str) -> DelayRecord | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT record_json FROM delays WHERE delay_id = ?",
                (delay_id,),
            ).fetchone()
        if row is None:
            return None
        return DelayRecord.model_validate_json(row["record_json"])

    def list_delays(self, status: DelayStatus | None = None) -> list[DelayRecord]:
        with self._conn() as conn:
            if status is None:
                cursor = conn.execute(
                    "SELECT record_json FROM delays ORDER BY created_at"
                )
            else:
                cursor = conn.execute(
                    "SELECT record_json FROM delays WHERE status = ? ORDER BY created_at",
                    (status.value,),
                )
            return [DelayRecord.model_validate_json(row["record_json"]) for row in cursor]

    # ─────────────────────────────────────────────────────────────────────
    # Offline queue
    # ─────────────────────────────────────────────────────────────────────

    def replace_queue(self, events: list[QueuedEvent]) -> None:
        """Persist the full queue contents in one transaction."""
        with self._conn() as conn:
            conn.execute("DELETE FROM offline_queue")
            conn.executemany(
                """
                INSERT INTO offline_queue
                    (position, event_id, event_type, timestamp, event_json)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (
                        position,
                        event.id,
                        event.type,
                        event.timestamp.isoformat(),
                        event.model_dump_json(),
                    )
                    for position, event in enumerate(events)
                ],
            )

    def load_queue(self) -> list[QueuedEvent]:
        with self._conn() as conn:
            cursor = conn.execute(
                "SELECT event_json FROM offline_queue ORDER BY position"
            )
            return [QueuedEvent.model_validate_json(row["event_json"]) for row in cursor]
