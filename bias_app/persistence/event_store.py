"""Scored event persistence: the queue the aggregation pass drains."""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog

from ..errors import PersistenceError
from ..models.events import ProcessingStatus, ScoredEvent, normalize_symbol
from ..utils.time import ensure_utc, utc_now

logger = structlog.get_logger(__name__)


def _stamp(ts: datetime) -> str:
    return ensure_utc(ts).isoformat(timespec="microseconds")


class EventStore(ABC):
    """Scored events keyed by an auto-assigned integer id."""

    @abstractmethod
    def add(self, event: ScoredEvent) -> ScoredEvent:
        """Store an event and return it with ``event_id`` (and ``event_time``) set."""

    @abstractmethod
    def get(self, event_id: int) -> Optional[ScoredEvent]:
        """Fetch one event by id."""

    @abstractmethod
    def fetch_pending(
        self,
        since: datetime,
        until: datetime,
        symbol: Optional[str] = None
    ) -> list[ScoredEvent]:
        """PENDING events with ``since <= event_time <= until``, oldest first, ties by id."""

    @abstractmethod
    def mark_status(self, event_id: int, status: ProcessingStatus) -> ScoredEvent:
        """Record a new processing status; unknown ids raise PersistenceError."""

    @abstractmethod
    def count_by_status(self) -> dict[ProcessingStatus, int]:
        """Number of stored events per status."""

    @staticmethod
    def _stamped(event: ScoredEvent) -> ScoredEvent:
        return replace(
            event,
            symbol=normalize_symbol(event.symbol),
            event_time=ensure_utc(event.event_time)
        )


class InMemoryEventStore(EventStore):
    """Process-local event store."""

    def __init__(self) -> None:
        self._events: dict[int, ScoredEvent] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def add(self, event: ScoredEvent) -> ScoredEvent:
        with self._lock:
            stored = self._stamped(event).with_id(self._next_id)
            self._events[stored.event_id] = stored
            self._next_id += 1
        return stored

    def get(self, event_id: int) -> Optional[ScoredEvent]:
        with self._lock:
            return self._events.get(event_id)

    def fetch_pending(
        self,
        since: datetime,
        until: datetime,
        symbol: Optional[str] = None
    ) -> list[ScoredEvent]:
        since, until = ensure_utc(since), ensure_utc(until)
        if symbol is not None:
            symbol = normalize_symbol(symbol)
        with self._lock:
            pending = [
                event for event in self._events.values()
                if event.processing_status == ProcessingStatus.PENDING
                and since <= event.event_time <= until
                and (symbol is None or event.symbol == symbol)
            ]
        pending.sort(key=lambda event: (event.event_time, event.event_id))
        return pending

    def mark_status(self, event_id: int, status: ProcessingStatus) -> ScoredEvent:
        with self._lock:
            event = self._events.get(event_id)
            if event is None:
                raise PersistenceError(
                    f"Unknown event {event_id}",
                    operation="mark_status",
                    target=str(event_id)
                )
            updated = event.with_status(status)
            self._events[event_id] = updated
        return updated

    def count_by_status(self) -> dict[ProcessingStatus, int]:
        counts = {status: 0 for status in ProcessingStatus}
        with self._lock:
            for event in self._events.values():
                counts[event.processing_status] += 1
        return counts


class SqliteEventStore(EventStore):
    """SQLite-backed event store; the event body is kept as JSON."""

    def __init__(self, db_path: str = "events.db"):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._get_connection("init") as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS scored_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    symbol TEXT NOT NULL,
                    event_time TEXT NOT NULL,
                    processing_status TEXT NOT NULL,
                    event_data TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_scored_events_status_time
                ON scored_events(processing_status, event_time)
            """)
            conn.commit()

    @contextmanager
    def _get_connection(self, operation: str):
        """Get database connection, wrapping driver errors in PersistenceError."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            logger.error("Database error", operation=operation, db_path=str(self.db_path), error=str(e))
            raise PersistenceError(
                f"Event store {operation} failed: {e}",
                operation=operation,
                target=str(self.db_path)
            ) from e
        finally:
            if conn:
                conn.close()

    @staticmethod
    def _from_row(row: sqlite3.Row) -> ScoredEvent:
        data = json.loads(row["event_data"])
        data["event_id"] = row["id"]
        data["processing_status"] = row["processing_status"]
        return ScoredEvent.from_dict(data)

    def add(self, event: ScoredEvent) -> ScoredEvent:
        event = self._stamped(event)
        with self._lock:
            with self._get_connection("add") as conn:
                cursor = conn.execute("""
                    INSERT INTO scored_events (
                        symbol, event_time, processing_status, event_data, created_at
                    ) VALUES (?, ?, ?, ?, ?)
                """, (
                    event.symbol,
                    _stamp(event.event_time),
                    event.processing_status.value,
                    json.dumps(event.to_dict()),
                    _stamp(utc_now())
                ))
                conn.commit()
                event_id = cursor.lastrowid

        logger.debug("Scored event stored", event_id=event_id, symbol=event.symbol)
        return event.with_id(event_id)

    def get(self, event_id: int) -> Optional[ScoredEvent]:
        with self._get_connection("get") as conn:
            row = conn.execute(
                "SELECT id, processing_status, event_data FROM scored_events WHERE id = ?",
                (event_id,)
            ).fetchone()
        return self._from_row(row) if row else None

    def fetch_pending(
        self,
        since: datetime,
        until: datetime,
        symbol: Optional[str] = None
    ) -> list[ScoredEvent]:
        query = """
            SELECT id, processing_status, event_data FROM scored_events
            WHERE processing_status = ? AND event_time >= ? AND event_time <= ?
        """
        params: list = [ProcessingStatus.PENDING.value, _stamp(since), _stamp(until)]
        if symbol is not None:
            query += " AND symbol = ?"
            params.append(normalize_symbol(symbol))
        query += " ORDER BY event_time ASC, id ASC"

        with self._get_connection("fetch_pending") as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._from_row(row) for row in rows]

    def mark_status(self, event_id: int, status: ProcessingStatus) -> ScoredEvent:
        with self._lock:
            with self._get_connection("mark_status") as conn:
                cursor = conn.execute(
                    "UPDATE scored_events SET processing_status = ? WHERE id = ?",
                    (status.value, event_id)
                )
                conn.commit()
                if cursor.rowcount == 0:
                    raise PersistenceError(
                        f"Unknown event {event_id}",
                        operation="mark_status",
                        target=str(event_id)
                    )
        return self.get(event_id)

    def count_by_status(self) -> dict[ProcessingStatus, int]:
        counts = {status: 0 for status in ProcessingStatus}
        with self._get_connection("count_by_status") as conn:
            rows = conn.execute("""
                SELECT processing_status, COUNT(*) AS total
                FROM scored_events GROUP BY processing_status
            """).fetchall()
        for row in rows:
            counts[ProcessingStatus(row["processing_status"])] = row["total"]
        return counts
