"""Versioned snapshot persistence with a per-symbol latest pointer."""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog

from ..errors import PersistenceError
from ..models.snapshot import Snapshot
from ..utils.time import ensure_utc, parse_time, utc_now

logger = structlog.get_logger(__name__)


def _stamp(ts: datetime) -> str:
    # fixed width so stored timestamps sort lexically
    return ensure_utc(ts).isoformat(timespec="microseconds")


@dataclass(frozen=True)
class LatestPointer:
    """Which snapshot version is current for a symbol."""
    symbol: str
    version_id: str
    last_updated: datetime


class SnapshotStore(ABC):
    """
    Append-only snapshot versions plus one mutable pointer per symbol.

    Versions are never updated once saved. Readers only ever follow the
    latest pointer, which is moved after the new version is durable.
    """

    @abstractmethod
    def save(self, snapshot: Snapshot) -> str:
        """Persist a new version and return its id; existing ids are rejected."""

    @abstractmethod
    def get_version(self, version_id: str) -> Optional[Snapshot]:
        """Fetch one saved version."""

    @abstractmethod
    def get_latest_pointer(self, symbol: str) -> Optional[LatestPointer]:
        """Current pointer for a symbol, if any."""

    @abstractmethod
    def advance_latest(self, symbol: str, version_id: str) -> LatestPointer:
        """Point ``symbol`` at a saved version of that symbol."""

    @abstractmethod
    def list_versions(self, symbol: str, limit: Optional[int] = None) -> list[Snapshot]:
        """Saved versions of a symbol, newest first."""

    @abstractmethod
    def prune_versions(self, older_than: datetime) -> int:
        """Delete versions created before ``older_than`` that no pointer names."""

    def get_latest(self, symbol: str) -> Optional[Snapshot]:
        """The snapshot the latest pointer names, or None before the first fold."""
        pointer = self.get_latest_pointer(symbol)
        if pointer is None:
            return None
        return self.get_version(pointer.version_id)


class InMemorySnapshotStore(SnapshotStore):
    """Process-local store, used by default and in tests."""

    def __init__(self) -> None:
        self._versions: dict[str, Snapshot] = {}
        self._pointers: dict[str, LatestPointer] = {}
        self._lock = threading.Lock()

    def save(self, snapshot: Snapshot) -> str:
        with self._lock:
            if snapshot.version_id in self._versions:
                raise PersistenceError(
                    f"Snapshot version {snapshot.version_id} already exists",
                    operation="save",
                    target=snapshot.version_id
                )
            self._versions[snapshot.version_id] = snapshot
        return snapshot.version_id

    def get_version(self, version_id: str) -> Optional[Snapshot]:
        with self._lock:
            return self._versions.get(version_id)

    def get_latest_pointer(self, symbol: str) -> Optional[LatestPointer]:
        with self._lock:
            return self._pointers.get(symbol)

    def advance_latest(self, symbol: str, version_id: str) -> LatestPointer:
        with self._lock:
            snapshot = self._versions.get(version_id)
            if snapshot is None or snapshot.symbol != symbol:
                raise PersistenceError(
                    f"Cannot point {symbol} at unknown version {version_id}",
                    operation="advance_latest",
                    target=version_id
                )
            pointer = LatestPointer(symbol=symbol, version_id=version_id, last_updated=utc_now())
            self._pointers[symbol] = pointer
            return pointer

    def list_versions(self, symbol: str, limit: Optional[int] = None) -> list[Snapshot]:
        with self._lock:
            versions = [s for s in self._versions.values() if s.symbol == symbol]
        versions.sort(key=lambda s: s.created_at, reverse=True)
        return versions[:limit] if limit is not None else versions

    def prune_versions(self, older_than: datetime) -> int:
        cutoff = ensure_utc(older_than)
        with self._lock:
            pinned = {pointer.version_id for pointer in self._pointers.values()}
            expired = [
                version_id for version_id, snapshot in self._versions.items()
                if snapshot.created_at < cutoff and version_id not in pinned
            ]
            for version_id in expired:
                del self._versions[version_id]
        if expired:
            logger.info("Pruned snapshot versions", count=len(expired), older_than=_stamp(cutoff))
        return len(expired)


class SqliteSnapshotStore(SnapshotStore):
    """SQLite-backed store: one JSON document per version, one pointer row per symbol."""

    def __init__(self, db_path: str = "snapshots.db"):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._get_connection("init") as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS snapshots (
                    version_id TEXT PRIMARY KEY,
                    symbol TEXT NOT NULL,
                    previous_version_id TEXT,
                    created_at TEXT NOT NULL,
                    payload TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS latest_pointers (
                    symbol TEXT PRIMARY KEY,
                    version_id TEXT NOT NULL,
                    last_updated TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_snapshots_symbol_created
                ON snapshots(symbol, created_at)
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
                f"Snapshot store {operation} failed: {e}",
                operation=operation,
                target=str(self.db_path)
            ) from e
        finally:
            if conn:
                conn.close()

    def save(self, snapshot: Snapshot) -> str:
        with self._lock:
            try:
                with self._get_connection("save") as conn:
                    conn.execute("""
                        INSERT INTO snapshots (
                            version_id, symbol, previous_version_id, created_at, payload
                        ) VALUES (?, ?, ?, ?, ?)
                    """, (
                        snapshot.version_id,
                        snapshot.symbol,
                        snapshot.previous_version_id,
                        _stamp(snapshot.created_at),
                        json.dumps(snapshot.to_dict())
                    ))
                    conn.commit()
            except PersistenceError as e:
                if isinstance(e.__cause__, sqlite3.IntegrityError):
                    raise PersistenceError(
                        f"Snapshot version {snapshot.version_id} already exists",
                        operation="save",
                        target=snapshot.version_id
                    ) from e.__cause__
                raise
        return snapshot.version_id

    def get_version(self, version_id: str) -> Optional[Snapshot]:
        with self._get_connection("get_version") as conn:
            row = conn.execute(
                "SELECT payload FROM snapshots WHERE version_id = ?", (version_id,)
            ).fetchone()
        return Snapshot.from_dict(json.loads(row["payload"])) if row else None

    def get_latest_pointer(self, symbol: str) -> Optional[LatestPointer]:
        with self._get_connection("get_latest_pointer") as conn:
            row = conn.execute(
                "SELECT symbol, version_id, last_updated FROM latest_pointers WHERE symbol = ?",
                (symbol,)
            ).fetchone()
        if row is None:
            return None
        return LatestPointer(
            symbol=row["symbol"],
            version_id=row["version_id"],
            last_updated=parse_time(row["last_updated"])
        )

    def advance_latest(self, symbol: str, version_id: str) -> LatestPointer:
        with self._lock:
            with self._get_connection("advance_latest") as conn:
                row = conn.execute(
                    "SELECT symbol FROM snapshots WHERE version_id = ?", (version_id,)
                ).fetchone()
                if row is None or row["symbol"] != symbol:
                    raise PersistenceError(
                        f"Cannot point {symbol} at unknown version {version_id}",
                        operation="advance_latest",
                        target=version_id
                    )
                pointer = LatestPointer(symbol=symbol, version_id=version_id, last_updated=utc_now())
                conn.execute("""
                    INSERT INTO latest_pointers (symbol, version_id, last_updated)
                    VALUES (?, ?, ?)
                    ON CONFLICT(symbol) DO UPDATE SET
                        version_id = excluded.version_id,
                        last_updated = excluded.last_updated
                """, (symbol, version_id, _stamp(pointer.last_updated)))
                conn.commit()
        return pointer

    def list_versions(self, symbol: str, limit: Optional[int] = None) -> list[Snapshot]:
        query = "SELECT payload FROM snapshots WHERE symbol = ? ORDER BY created_at DESC"
        params: tuple = (symbol,)
        if limit is not None:
            query += " LIMIT ?"
            params = (symbol, limit)

        with self._get_connection("list_versions") as conn:
            rows = conn.execute(query, params).fetchall()
        return [Snapshot.from_dict(json.loads(row["payload"])) for row in rows]

    def prune_versions(self, older_than: datetime) -> int:
        cutoff = _stamp(older_than)
        with self._lock:
            with self._get_connection("prune_versions") as conn:
                cursor = conn.execute("""
                    DELETE FROM snapshots
                    WHERE created_at < ?
                    AND version_id NOT IN (SELECT version_id FROM latest_pointers)
                """, (cutoff,))
                conn.commit()
                deleted = cursor.rowcount
        if deleted:
            logger.info("Pruned snapshot versions", count=deleted, older_than=cutoff)
        return deleted
