"""
SQLite event store implementation.

Durable event store using SQLite with async support via aiosqlite.
Optimistic locking is enforced twice: by an explicit version check inside
an immediate transaction, and by a UNIQUE(aggregate_id, aggregate_type,
version) constraint that turns a lost race into OptimisticLockError.

Suitable for single-instance deployments and for tests (":memory:").
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import aiosqlite
from pydantic import ValidationError as PydanticValidationError

from storefront.events.base import DomainEvent
from storefront.events.registry import EventTypeNotFoundError, default_registry
from storefront.exceptions import OptimisticLockError, SerializationError
from storefront.observability import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
    ATTR_EVENT_COUNT,
    ATTR_STREAM_COUNT,
    Tracer,
    create_tracer,
)
from storefront.stores.interface import (
    AppendResult,
    EventStore,
    EventStream,
    StreamAppend,
    check_expected_version,
    ensure_unique_streams,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    global_position INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT NOT NULL UNIQUE,
    event_type TEXT NOT NULL,
    aggregate_type TEXT NOT NULL,
    aggregate_id TEXT NOT NULL,
    version INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (aggregate_id, aggregate_type, version)
);

CREATE INDEX IF NOT EXISTS idx_events_aggregate_type
    ON events (aggregate_type, global_position);

CREATE INDEX IF NOT EXISTS idx_events_event_type
    ON events (event_type, global_position);
"""


class SQLiteEventStore(EventStore):
    """
    SQLite implementation of the event store.

    One connection is shared by all coroutines; an asyncio lock keeps one
    coroutine's transaction from interleaving with another's statements.

    SQLite-specific adaptations:
    - UUIDs stored as TEXT (36 characters, hyphenated format)
    - Timestamps stored as TEXT in ISO 8601 format
    - Event payloads stored as JSON TEXT

    Example:
        >>> async with SQLiteEventStore(":memory:") as store:
        ...     await store.initialize()
        ...     await store.append_events(order_id, "Order", [OrderPlaced(...)], 0)
    """

    def __init__(
        self,
        database: str,
        *,
        wal_mode: bool = True,
        busy_timeout: int = 5000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite event store.

        Args:
            database: Path to SQLite database file or ':memory:' for in-memory
            wal_mode: If True, enable WAL mode (default: True)
            busy_timeout: Timeout in milliseconds when database is locked (default: 5000)
            tracer: Optional custom Tracer instance
            enable_tracing: Emit OpenTelemetry spans when no tracer is given
        """
        self._database = database
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> SQLiteEventStore:
        await self._connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def _connect(self) -> None:
        if self._connection is not None:
            return

        # Autocommit mode: transactions are opened explicitly with BEGIN IMMEDIATE
        self._connection = await aiosqlite.connect(self._database, isolation_level=None)
        await self._connection.execute(f"PRAGMA busy_timeout = {self._busy_timeout}")
        if self._wal_mode:
            await self._connection.execute("PRAGMA journal_mode = WAL")
        self._connection.row_factory = aiosqlite.Row

        logger.debug(
            "Connected to SQLite database: %s (wal_mode=%s, busy_timeout=%d)",
            self._database,
            self._wal_mode,
            self._busy_timeout,
        )

    async def close(self) -> None:
        """Close the database connection. Safe to call multiple times."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed SQLite database connection: %s", self._database)

    async def initialize(self) -> None:
        """Create the events table and indexes if they don't exist. Idempotent."""
        await self._connect()
        conn = self._ensure_connected()
        async with self._lock:
            await conn.executescript(SCHEMA)
        logger.info("Initialized SQLite event store schema: %s", self._database)

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(
                "Not connected to database. Use 'async with store:' or call 'initialize()' first."
            )
        return self._connection

    async def append_streams(self, appends: list[StreamAppend]) -> list[AppendResult]:
        """
        Append to several streams in one IMMEDIATE transaction.

        Raises:
            OptimisticLockError: If any stream's expected version doesn't match,
                or a concurrent writer took a version first
        """
        ensure_unique_streams(appends)
        with self._tracer.span(
            "sqlite_event_store.append_streams",
            {
                ATTR_STREAM_COUNT: len(appends),
                ATTR_EVENT_COUNT: sum(len(a.events) for a in appends),
                ATTR_DB_SYSTEM: "sqlite",
                ATTR_DB_NAME: self._database,
            },
        ):
            conn = self._ensure_connected()
            async with self._lock:
                return await self._do_append_streams(conn, appends)

    async def _do_append_streams(
        self,
        conn: aiosqlite.Connection,
        appends: list[StreamAppend],
    ) -> list[AppendResult]:
        current: StreamAppend | None = None
        try:
            await conn.execute("BEGIN IMMEDIATE")

            for append in appends:
                current = append
                version = await self._current_version(
                    conn, append.aggregate_id, append.aggregate_type
                )
                try:
                    check_expected_version(append.aggregate_id, append.expected_version, version)
                except OptimisticLockError:
                    logger.debug(
                        "Version conflict for %s: expected=%d, actual=%d",
                        append.stream_id,
                        append.expected_version,
                        version,
                    )
                    raise

            results = []
            for append in appends:
                current = append
                results.append(await self._insert_events(conn, append))

            await conn.commit()
            logger.debug(
                "Committed %d stream(s), %d event(s)",
                len(appends),
                sum(len(a.events) for a in appends),
            )
            return results

        except aiosqlite.IntegrityError as e:
            await conn.rollback()
            error_str = str(e).lower()
            if current is not None and "unique" in error_str and "version" in error_str:
                actual_version = await self._current_version(
                    conn, current.aggregate_id, current.aggregate_type
                )
                raise OptimisticLockError(
                    current.aggregate_id, current.expected_version, actual_version
                ) from e
            raise
        except BaseException:
            await conn.rollback()
            raise

    async def _insert_events(
        self, conn: aiosqlite.Connection, append: StreamAppend
    ) -> AppendResult:
        new_version = await self._current_version(
            conn, append.aggregate_id, append.aggregate_type
        )
        now = datetime.now(UTC).isoformat()

        for event in append.events:
            cursor = await conn.execute(
                "SELECT 1 FROM events WHERE event_id = ?",
                (str(event.event_id),),
            )
            if await cursor.fetchone():
                logger.debug("Event %s already exists, skipping", event.event_id)
                continue

            new_version += 1
            await conn.execute(
                """
                INSERT INTO events (
                    event_id, event_type, aggregate_type, aggregate_id,
                    version, timestamp, payload, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(event.event_id),
                    event.event_type,
                    append.aggregate_type,
                    str(append.aggregate_id),
                    new_version,
                    event.occurred_at.isoformat(),
                    json.dumps(event.to_dict()),
                    now,
                ),
            )

        return AppendResult.successful(new_version)

    @staticmethod
    async def _current_version(
        conn: aiosqlite.Connection, aggregate_id: UUID, aggregate_type: str
    ) -> int:
        cursor = await conn.execute(
            """
            SELECT COALESCE(MAX(version), 0)
            FROM events
            WHERE aggregate_id = ? AND aggregate_type = ?
            """,
            (str(aggregate_id), aggregate_type),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def get_events(self, aggregate_id: UUID, aggregate_type: str) -> EventStream:
        with self._tracer.span(
            "sqlite_event_store.get_events",
            {
                ATTR_AGGREGATE_ID: str(aggregate_id),
                ATTR_AGGREGATE_TYPE: aggregate_type,
                ATTR_DB_SYSTEM: "sqlite",
            },
        ):
            conn = self._ensure_connected()
            async with self._lock:
                cursor = await conn.execute(
                    """
                    SELECT event_type, version, payload
                    FROM events
                    WHERE aggregate_id = ? AND aggregate_type = ?
                    ORDER BY version
                    """,
                    (str(aggregate_id), aggregate_type),
                )
                rows = await cursor.fetchall()

            return EventStream(
                aggregate_id=aggregate_id,
                aggregate_type=aggregate_type,
                events=[self._deserialize_event(row["event_type"], row["payload"]) for row in rows],
                version=max((row["version"] for row in rows), default=0),
            )

    async def get_events_by_type(
        self,
        aggregate_type: str,
        event_type: str | None = None,
    ) -> list[DomainEvent]:
        conn = self._ensure_connected()
        query = "SELECT event_type, payload FROM events WHERE aggregate_type = ?"
        params: list[Any] = [aggregate_type]
        if event_type is not None:
            query += " AND event_type = ?"
            params.append(event_type)
        query += " ORDER BY global_position"

        async with self._lock:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
        return [self._deserialize_event(row["event_type"], row["payload"]) for row in rows]

    def _deserialize_event(self, event_type: str, payload: str) -> DomainEvent:
        """
        Rebuild a domain event from its stored JSON payload.

        Raises:
            SerializationError: If the type is unknown or the payload is invalid
        """
        try:
            event_class = default_registry.get(event_type)
            return event_class.model_validate(json.loads(payload))
        except (EventTypeNotFoundError, PydanticValidationError, json.JSONDecodeError) as e:
            raise SerializationError(event_type, str(e)) from e


__all__ = ["SCHEMA", "SQLiteEventStore"]
