"""SQLite store for classified context events.

Events live in one append-only table in WAL mode so an aggregation read can
run while the pipeline writes. The semantic payload is JSON, encrypted with
AES-256-GCM when a key is configured. After insert the only mutable column
is ``synced``; commitment status changes are kept in a side table and
overlaid on read.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from cryptography.exceptions import InvalidTag

from contextlens.exceptions import StoreError
from contextlens.models import (
    CommitmentStatus,
    ContextEvent,
    ContextEventType,
    EventSource,
    PrivacyLevel,
    SemanticPayload,
)
from contextlens.store.encryption import decrypt_payload, encrypt_payload

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 100
DEFAULT_COMMITMENT_WINDOW = timedelta(hours=24)

CREATE_EVENTS_TABLE = """
CREATE TABLE IF NOT EXISTS context_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    event_type TEXT NOT NULL,
    application TEXT NOT NULL,
    window_title TEXT NOT NULL DEFAULT '',
    url TEXT,
    file_path TEXT,
    payload BLOB NOT NULL,
    encrypted INTEGER NOT NULL DEFAULT 0,
    confidence REAL NOT NULL,
    privacy_level TEXT NOT NULL,
    synced INTEGER NOT NULL DEFAULT 0
);
"""

CREATE_STATUS_TABLE = """
CREATE TABLE IF NOT EXISTS commitment_status (
    event_id INTEGER NOT NULL,
    commitment_index INTEGER NOT NULL,
    status TEXT NOT NULL,
    updated_at REAL NOT NULL,
    PRIMARY KEY (event_id, commitment_index)
);
"""

CREATE_INDEXES = (
    "CREATE INDEX IF NOT EXISTS ix_events_timestamp ON context_events(timestamp);",
    "CREATE INDEX IF NOT EXISTS ix_events_type ON context_events(event_type);",
    "CREATE INDEX IF NOT EXISTS ix_events_application ON context_events(application);",
    "CREATE INDEX IF NOT EXISTS ix_events_sync ON context_events(synced, privacy_level);",
)

_SELECT = (
    "SELECT id, timestamp, event_type, application, window_title, url, file_path, "
    "payload, encrypted, confidence, privacy_level, synced FROM context_events"
)


class EventStore:
    """Durable, queryable log of context events."""

    def __init__(self, db_path: str | Path, encryption_key: bytes | None = None) -> None:
        self.db_path = str(db_path)
        self._encryption_key = encryption_key
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Create the database directory, tables and indexes."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute(CREATE_EVENTS_TABLE)
        self._conn.execute(CREATE_STATUS_TABLE)
        for statement in CREATE_INDEXES:
            self._conn.execute(statement)
        self._conn.commit()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Event store is closed")
        return self._conn

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _encode_payload(self, payload: SemanticPayload) -> tuple[bytes, int]:
        raw = json.dumps(payload.to_dict()).encode("utf-8")
        if self._encryption_key is None:
            return raw, 0
        return encrypt_payload(raw, self._encryption_key), 1

    def _decode_payload(self, blob: bytes, encrypted: int) -> SemanticPayload:
        if encrypted:
            if self._encryption_key is None:
                raise StoreError("Encrypted payload but no key configured")
            blob = decrypt_payload(blob, self._encryption_key)
        return SemanticPayload.from_dict(json.loads(blob.decode("utf-8")))

    def _rows_to_events(self, rows: list[tuple[Any, ...]]) -> list[ContextEvent]:
        events: list[ContextEvent] = []
        for row in rows:
            (event_id, ts, event_type, app, title, url, file_path,
             blob, encrypted, confidence, privacy, synced) = row
            try:
                payload = self._decode_payload(blob, encrypted)
            except (InvalidTag, ValueError, KeyError, StoreError):
                logger.warning("Skipping unreadable event payload id=%d", event_id)
                continue
            events.append(
                ContextEvent(
                    id=event_id,
                    timestamp=datetime.fromtimestamp(ts, tz=UTC),
                    event_type=ContextEventType(event_type),
                    source=EventSource(
                        application=app, window_title=title, url=url, file_path=file_path
                    ),
                    payload=payload,
                    confidence=confidence,
                    privacy_level=PrivacyLevel(privacy),
                    synced=bool(synced),
                )
            )
        self._overlay_statuses(events)
        return events

    def _overlay_statuses(self, events: list[ContextEvent]) -> None:
        with_commitments = {e.id: e for e in events if e.payload.commitments}
        if not with_commitments:
            return
        placeholders = ",".join("?" for _ in with_commitments)
        cursor = self._connection().execute(
            "SELECT event_id, commitment_index, status FROM commitment_status "
            f"WHERE event_id IN ({placeholders})",
            list(with_commitments),
        )
        for event_id, index, status in cursor.fetchall():
            commitments = with_commitments[event_id].payload.commitments
            if 0 <= index < len(commitments):
                commitments[index].status = CommitmentStatus(status)

    def _query(self, where: str, params: Iterable[Any], order: str, limit: int | None) -> list[ContextEvent]:
        sql = f"{_SELECT} WHERE {where} ORDER BY {order}"
        args = list(params)
        with self._lock:
            conn = self._connection()
            if limit is None:
                return self._rows_to_events(conn.execute(sql, args).fetchall())

            # Unreadable rows are skipped, so page until ``limit`` readable
            # events are found or the table runs out.
            events: list[ContextEvent] = []
            offset = 0
            while len(events) < limit:
                rows = conn.execute(f"{sql} LIMIT ? OFFSET ?", [*args, limit, offset]).fetchall()
                events.extend(self._rows_to_events(rows))
                offset += len(rows)
                if len(rows) < limit:
                    break
            return events[:limit]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _db_insert(self, event: ContextEvent) -> int:
        """Synchronous insert, run via asyncio.to_thread."""
        blob, encrypted = self._encode_payload(event.payload)
        with self._lock:
            conn = self._connection()
            cursor = conn.execute(
                "INSERT INTO context_events (timestamp, event_type, application, window_title, "
                "url, file_path, payload, encrypted, confidence, privacy_level, synced) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    event.timestamp.timestamp(),
                    event.event_type.value,
                    event.source.application,
                    event.source.window_title,
                    event.source.url,
                    event.source.file_path,
                    blob,
                    encrypted,
                    event.confidence,
                    event.privacy_level.value,
                    int(event.synced),
                ),
            )
            conn.commit()
        event_id = cursor.lastrowid
        assert event_id is not None
        event.id = event_id
        return event_id

    async def insert(self, event: ContextEvent) -> int:
        """Append an event and return its identifier."""
        return await asyncio.to_thread(self._db_insert, event)

    def _db_mark_synced(self, event_ids: list[int]) -> int:
        if not event_ids:
            return 0
        placeholders = ",".join("?" for _ in event_ids)
        with self._lock:
            conn = self._connection()
            cursor = conn.execute(
                f"UPDATE context_events SET synced = 1 WHERE id IN ({placeholders})",
                event_ids,
            )
            conn.commit()
        return cursor.rowcount

    async def mark_synced(self, event_ids: int | Iterable[int]) -> int:
        """Mark one or many events as uploaded. Returns the number updated."""
        ids = [event_ids] if isinstance(event_ids, int) else list(event_ids)
        return await asyncio.to_thread(self._db_mark_synced, ids)

    def _db_update_commitment_status(
        self, event_id: int, index: int, status: CommitmentStatus
    ) -> None:
        events = self._query("id = ?", (event_id,), "id", 1)
        if not events:
            raise StoreError(f"No event with id {event_id}")
        if not 0 <= index < len(events[0].payload.commitments):
            raise StoreError(f"Event {event_id} has no commitment at index {index}")
        with self._lock:
            conn = self._connection()
            conn.execute(
                "INSERT OR REPLACE INTO commitment_status "
                "(event_id, commitment_index, status, updated_at) VALUES (?, ?, ?, ?)",
                (event_id, index, CommitmentStatus(status).value, datetime.now(UTC).timestamp()),
            )
            conn.commit()

    async def update_commitment_status(
        self, event_id: int, index: int, status: CommitmentStatus | str
    ) -> None:
        """Record a commitment lifecycle transition without touching the event row."""
        await asyncio.to_thread(
            self._db_update_commitment_status, event_id, index, CommitmentStatus(status)
        )

    def _db_cleanup(self, cutoff: datetime) -> int:
        with self._lock:
            conn = self._connection()
            cursor = conn.execute(
                "DELETE FROM context_events WHERE timestamp < ?", (cutoff.timestamp(),)
            )
            conn.execute(
                "DELETE FROM commitment_status WHERE event_id NOT IN (SELECT id FROM context_events)"
            )
            conn.commit()
        return cursor.rowcount

    async def cleanup_older_than(self, days: int, now: datetime | None = None) -> int:
        """Delete events older than ``days`` days. Returns the number deleted."""
        cutoff = (now or datetime.now(UTC)) - timedelta(days=days)
        deleted = await asyncio.to_thread(self._db_cleanup, cutoff)
        if deleted:
            logger.info("Retention cleanup removed %d events older than %d days", deleted, days)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_by_id(self, event_id: int) -> ContextEvent | None:
        events = await asyncio.to_thread(self._query, "id = ?", (event_id,), "id", 1)
        return events[0] if events else None

    async def get_by_time_range(
        self, start: datetime, end: datetime, limit: int | None = None
    ) -> list[ContextEvent]:
        """Events with ``start <= timestamp < end``, newest first."""
        return await asyncio.to_thread(
            self._query,
            "timestamp >= ? AND timestamp < ?",
            (start.timestamp(), end.timestamp()),
            "timestamp DESC, id DESC",
            limit,
        )

    async def get_by_event_type(
        self, event_type: ContextEventType | str, limit: int = DEFAULT_QUERY_LIMIT
    ) -> list[ContextEvent]:
        return await asyncio.to_thread(
            self._query,
            "event_type = ?",
            (ContextEventType(event_type).value,),
            "timestamp DESC, id DESC",
            limit,
        )

    async def get_by_application(
        self, application: str, limit: int = DEFAULT_QUERY_LIMIT
    ) -> list[ContextEvent]:
        return await asyncio.to_thread(
            self._query, "application = ?", (application,), "timestamp DESC, id DESC", limit
        )

    async def get_recent(
        self, minutes: int = 60, limit: int = DEFAULT_QUERY_LIMIT, now: datetime | None = None
    ) -> list[ContextEvent]:
        since = (now or datetime.now(UTC)) - timedelta(minutes=minutes)
        return await asyncio.to_thread(
            self._query, "timestamp >= ?", (since.timestamp(),), "timestamp DESC, id DESC", limit
        )

    async def get_commitments(
        self, since: datetime | None = None, now: datetime | None = None
    ) -> list[ContextEvent]:
        """Commitment events since ``since`` (default: the last 24 hours)."""
        if since is None:
            since = (now or datetime.now(UTC)) - DEFAULT_COMMITMENT_WINDOW
        return await asyncio.to_thread(
            self._query,
            "event_type = ? AND timestamp >= ?",
            (ContextEventType.COMMITMENT_DETECTED.value, since.timestamp()),
            "timestamp DESC, id DESC",
            None,
        )

    async def get_unsynced(self, limit: int = DEFAULT_QUERY_LIMIT) -> list[ContextEvent]:
        """Events eligible for upload and not yet synced, oldest first.

        Never returns events graded ``local_only``.
        """
        return await asyncio.to_thread(
            self._query,
            "synced = 0 AND privacy_level = ?",
            (PrivacyLevel.SYNC_ALLOWED.value,),
            "timestamp ASC, id ASC",
            limit,
        )

    def _db_scalar(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        with self._lock:
            row = self._connection().execute(sql, params).fetchone()
        return int(row[0]) if row else 0

    async def count(self) -> int:
        return await asyncio.to_thread(self._db_scalar, "SELECT COUNT(*) FROM context_events")

    async def count_by_type(
        self, event_type: ContextEventType | str, since: datetime | None = None
    ) -> int:
        since_ts = since.timestamp() if since else 0.0
        return await asyncio.to_thread(
            self._db_scalar,
            "SELECT COUNT(*) FROM context_events WHERE event_type = ? AND timestamp >= ?",
            (ContextEventType(event_type).value, since_ts),
        )

    def _db_top_applications(self, since_ts: float, limit: int) -> list[tuple[str, int]]:
        with self._lock:
            rows = self._connection().execute(
                "SELECT application, COUNT(*) AS n FROM context_events WHERE timestamp >= ? "
                "GROUP BY application ORDER BY n DESC, application ASC LIMIT ?",
                (since_ts, limit),
            ).fetchall()
        return [(app, int(n)) for app, n in rows]

    async def top_applications(
        self, since: datetime | None = None, limit: int = 10
    ) -> list[tuple[str, int]]:
        since_ts = since.timestamp() if since else 0.0
        return await asyncio.to_thread(self._db_top_applications, since_ts, limit)

    async def close(self) -> None:
        """Close the database connection. Safe to call twice."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
