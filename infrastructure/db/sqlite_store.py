"""
SQLite Local Durable Store.

One SQLite file holds the committed records, the outbound queue and the
persisted sync state, so a record write and its queue append share a single
transaction. Implements the LocalStore, QueueRepository and
SyncStateRepository ports.

Transactions are explicit (BEGIN / COMMIT / ROLLBACK on an autocommit
connection) and owned by one asyncio task at a time; nested blocks in the
owning task join the outer transaction and only the outermost one commits.
Every sqlite3 error surfaces as LocalStoreError.

Usage:
    store = SQLiteLocalStore("workout_sync.db")
    await store.open()

    async with store.transaction():
        await store.put(record)
        await store.queue.append(record.entity_type, record.id, SyncOperation.CREATE, snapshot)

    await store.close()
"""

import asyncio
import json
import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from application.exceptions import LocalStoreError
from domain.models import (
    DomainRecord,
    EntityType,
    QueueEntryStatus,
    SyncOperation,
    SyncQueueEntry,
    ensure_utc,
    utc_now,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    entity_type TEXT NOT NULL,
    id TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL,
    PRIMARY KEY (entity_type, id)
);

CREATE TABLE IF NOT EXISTS sync_queue (
    sequence INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    operation TEXT NOT NULL,
    payload TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending',
    last_error TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sync_queue_entity ON sync_queue(entity_type, entity_id);
CREATE INDEX IF NOT EXISTS idx_sync_queue_status ON sync_queue(status, sequence);

CREATE TABLE IF NOT EXISTS sync_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

SYNC_STATE_KEY = "sync_state"


def _format_ts(value: datetime) -> str:
    """Fixed-width UTC timestamp so text ordering matches time ordering."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _parse_ts(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value))


class SQLiteLocalStore:
    """
    SQLite implementation of LocalStore.

    `queue` and `sync_state` are facets sharing this store's connection and
    transactions.
    """

    def __init__(self, path: str = ":memory:") -> None:
        self._path = path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()
        self._owner: Optional["asyncio.Task[Any]"] = None
        self._depth = 0
        self.queue = SQLiteQueueRepository(self)
        self.sync_state = SQLiteSyncStateRepository(self)

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        try:
            self._conn = sqlite3.connect(self._path, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if self._path != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise LocalStoreError(f"Cannot open local database {self._path}: {e}", e) from e
        logger.info(f"Local store opened at {self._path}")

    async def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        logger.info("Local store closed")

    # =========================================================================
    # Transactions
    # =========================================================================

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        task = asyncio.current_task()
        if self._owner is not None and self._owner is task:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        async with self._lock:
            self._owner = task
            self._depth = 1
            try:
                self._execute("BEGIN")
                try:
                    yield
                except BaseException:
                    self._rollback()
                    raise
                try:
                    self._execute("COMMIT")
                except LocalStoreError:
                    self._rollback()
                    raise
            finally:
                self._owner = None
                self._depth = 0

    async def run_in_transaction(self, fn: Callable[[], Awaitable[T]]) -> T:
        async with self.transaction():
            return await fn()

    def _rollback(self) -> None:
        try:
            self._connection().execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.error(f"Rollback failed: {e}")

    # =========================================================================
    # Records
    # =========================================================================

    async def get(self, entity_type: EntityType, entity_id: str) -> Optional[DomainRecord]:
        row = self._execute(
            "SELECT * FROM records WHERE entity_type = ? AND id = ?",
            (EntityType(entity_type).value, entity_id),
        ).fetchone()
        return self._row_to_record(row) if row else None

    async def put(self, record: DomainRecord) -> None:
        dumped = record.model_dump(mode="json")
        async with self.transaction():
            self._execute(
                """
                INSERT INTO records (entity_type, id, updated_at, deleted, data)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (entity_type, id) DO UPDATE SET
                    updated_at = excluded.updated_at,
                    deleted = excluded.deleted,
                    data = excluded.data
                """,
                (
                    record.entity_type.value,
                    record.id,
                    _format_ts(record.updated_at),
                    int(record.deleted),
                    json.dumps(dumped["data"]),
                ),
            )

    async def delete(self, entity_type: EntityType, entity_id: str) -> bool:
        async with self.transaction():
            cursor = self._execute(
                "DELETE FROM records WHERE entity_type = ? AND id = ?",
                (EntityType(entity_type).value, entity_id),
            )
        return cursor.rowcount > 0

    async def list_records(self, entity_type: EntityType) -> List[DomainRecord]:
        rows = self._execute(
            "SELECT * FROM records WHERE entity_type = ? ORDER BY updated_at, id",
            (EntityType(entity_type).value,),
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    async def count(self, entity_type: EntityType) -> int:
        row = self._execute(
            "SELECT COUNT(*) FROM records WHERE entity_type = ?",
            (EntityType(entity_type).value,),
        ).fetchone()
        return int(row[0])

    async def clear(self) -> None:
        async with self.transaction():
            self._execute("DELETE FROM records")

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> DomainRecord:
        return DomainRecord(
            entity_type=EntityType(row["entity_type"]),
            id=row["id"],
            updated_at=_parse_ts(row["updated_at"]),
            deleted=bool(row["deleted"]),
            data=json.loads(row["data"]),
        )

    # =========================================================================
    # Low-level access (shared with the queue and state facets)
    # =========================================================================

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise LocalStoreError("Local store is not open")
        return self._conn

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self._connection().execute(sql, params)
        except sqlite3.Error as e:
            raise LocalStoreError(f"Local store error: {e}", e) from e


class SQLiteQueueRepository:
    """SQLite implementation of QueueRepository (the `sync_queue` table)."""

    def __init__(self, store: SQLiteLocalStore) -> None:
        self._store = store

    async def append(
        self,
        entity_type: EntityType,
        entity_id: str,
        operation: SyncOperation,
        payload: Dict[str, Any],
    ) -> SyncQueueEntry:
        created_at = utc_now()
        async with self._store.transaction():
            cursor = self._store._execute(
                """
                INSERT INTO sync_queue (entity_type, entity_id, operation, payload, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    EntityType(entity_type).value,
                    entity_id,
                    SyncOperation(operation).value,
                    json.dumps(payload),
                    QueueEntryStatus.PENDING.value,
                    _format_ts(created_at),
                ),
            )
        return SyncQueueEntry(
            sequence=cursor.lastrowid,
            entity_type=EntityType(entity_type),
            entity_id=entity_id,
            operation=SyncOperation(operation),
            payload=payload,
            created_at=created_at,
        )

    async def get(self, sequence: int) -> Optional[SyncQueueEntry]:
        row = self._store._execute(
            "SELECT * FROM sync_queue WHERE sequence = ?",
            (sequence,),
        ).fetchone()
        return self._row_to_entry(row) if row else None

    async def list_entries(
        self,
        *,
        statuses: Optional[Sequence[QueueEntryStatus]] = None,
        after_sequence: int = 0,
        limit: Optional[int] = None,
    ) -> List[SyncQueueEntry]:
        sql = "SELECT * FROM sync_queue WHERE sequence > ?"
        params: List[Any] = [after_sequence]
        if statuses:
            sql += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(QueueEntryStatus(s).value for s in statuses)
        sql += " ORDER BY sequence"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self._store._execute(sql, params).fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def save(self, entry: SyncQueueEntry) -> None:
        async with self._store.transaction():
            self._store._execute(
                "UPDATE sync_queue SET status = ?, attempts = ?, last_error = ? WHERE sequence = ?",
                (entry.status.value, entry.attempts, entry.last_error, entry.sequence),
            )

    async def remove(self, sequence: int) -> bool:
        async with self._store.transaction():
            cursor = self._store._execute(
                "DELETE FROM sync_queue WHERE sequence = ?",
                (sequence,),
            )
        return cursor.rowcount > 0

    async def count(self, status: Optional[QueueEntryStatus] = None) -> int:
        if status is None:
            row = self._store._execute("SELECT COUNT(*) FROM sync_queue").fetchone()
        else:
            row = self._store._execute(
                "SELECT COUNT(*) FROM sync_queue WHERE status = ?",
                (QueueEntryStatus(status).value,),
            ).fetchone()
        return int(row[0])

    async def latest_unacked(
        self,
        entity_type: EntityType,
        entity_id: str,
    ) -> Optional[SyncQueueEntry]:
        row = self._store._execute(
            """
            SELECT * FROM sync_queue
            WHERE entity_type = ? AND entity_id = ?
            ORDER BY sequence DESC LIMIT 1
            """,
            (EntityType(entity_type).value, entity_id),
        ).fetchone()
        return self._row_to_entry(row) if row else None

    async def clear(self) -> None:
        async with self._store.transaction():
            self._store._execute("DELETE FROM sync_queue")

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> SyncQueueEntry:
        return SyncQueueEntry(
            sequence=row["sequence"],
            entity_type=EntityType(row["entity_type"]),
            entity_id=row["entity_id"],
            operation=SyncOperation(row["operation"]),
            payload=json.loads(row["payload"]),
            attempts=row["attempts"],
            status=QueueEntryStatus(row["status"]),
            last_error=row["last_error"],
            created_at=_parse_ts(row["created_at"]),
        )


class SQLiteSyncStateRepository:
    """SQLite implementation of SyncStateRepository (one JSON row)."""

    def __init__(self, store: SQLiteLocalStore) -> None:
        self._store = store

    async def load(self) -> Optional[Dict[str, Any]]:
        row = self._store._execute(
            "SELECT value FROM sync_state WHERE key = ?",
            (SYNC_STATE_KEY,),
        ).fetchone()
        return json.loads(row["value"]) if row else None

    async def save(self, state: Dict[str, Any]) -> None:
        async with self._store.transaction():
            self._store._execute(
                """
                INSERT INTO sync_state (key, value) VALUES (?, ?)
                ON CONFLICT (key) DO UPDATE SET value = excluded.value
                """,
                (SYNC_STATE_KEY, json.dumps(state)),
            )

    async def clear(self) -> None:
        async with self._store.transaction():
            self._store._execute("DELETE FROM sync_state WHERE key = ?", (SYNC_STATE_KEY,))
