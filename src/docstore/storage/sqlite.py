"""
SQLite storage backend.

Async access via aiosqlite. Row changes are captured with TEMP triggers that
call a Python function registered on the connection, then published on the
change bus once the triggering statement has committed.

SQLite-specific notes:
- Requires the JSON1 functions (built into SQLite 3.38+, and most earlier builds)
- ``rowid`` is the row locator; tables must not be WITHOUT ROWID
- TEMP triggers live only as long as the connection
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Sequence
from typing import Any

import aiosqlite

from docstore.bus import CHANGE, PROFILE, ChangeBus, ChangeEvent, ProfileEvent
from docstore.compiler import quote_identifier
from docstore.config import MEMORY_DATABASE, StorageConfig
from docstore.exceptions import StorageError
from docstore.observability import (
    ATTR_CHANGE_KIND,
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_STATEMENT,
    ATTR_DB_SYSTEM,
    ATTR_PARAM_COUNT,
    ATTR_ROW_COUNT,
    ATTR_ROW_LOCATOR,
    ATTR_TABLE,
    Tracer,
    create_tracer,
)
from docstore.storage.interface import Row, Storage

logger = logging.getLogger(__name__)

NOTIFY_FUNCTION = "docstore_notify"

_CHANGE_KINDS = (
    ("insert", "INSERT", "NEW"),
    ("update", "UPDATE", "NEW"),
    ("delete", "DELETE", "OLD"),
)


def _operation(sql: str) -> str:
    words = sql.split(None, 1)
    return words[0].upper() if words else ""


class SQLiteStorage(Storage):
    """
    SQLite implementation of the storage interface.

    The connection is opened lazily on first use, or explicitly via
    ``async with``. Every ``run`` commits.

    Attributes:
        _database: Path to SQLite file or ':memory:'
        _wal_mode: Whether WAL mode is requested
        _busy_timeout: Timeout in ms for a locked database
        _connection: The aiosqlite connection once opened

    Example:
        >>> async with SQLiteStorage(":memory:") as storage:
        ...     store = DocumentStore(storage)
        ...     await store.collection("users").doc("u1").put({"name": "Ada"})
    """

    def __init__(
        self,
        database: str = ":memory:",
        *,
        wal_mode: bool = False,
        busy_timeout: int = 5000,
        bus: ChangeBus | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite storage.

        Args:
            database: Path to SQLite database file or ':memory:'
            wal_mode: Enable WAL journaling (ignored for ':memory:')
            busy_timeout: Milliseconds to wait when the database is locked
            bus: Change bus to publish on (a private one is created by default)
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces.
                Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        super().__init__(bus=bus, tracer=self._tracer)
        self._database = database
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        self._connect_lock = asyncio.Lock()
        # One statement at a time owns the change buffer
        self._write_lock = asyncio.Lock()
        self._closed = False
        # Filled from the aiosqlite worker thread by the trigger function
        self._pending: list[ChangeEvent] = []
        self._pending_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: StorageConfig, **kwargs: Any) -> SQLiteStorage:
        """Create a storage object from a StorageConfig."""
        if config.wal_mode and config.is_memory:
            logger.warning("WAL mode is ignored for in-memory databases")
        return cls(
            config.database,
            wal_mode=config.wal_mode,
            busy_timeout=config.busy_timeout,
            enable_tracing=config.enable_tracing,
            **kwargs,
        )

    async def __aenter__(self) -> SQLiteStorage:
        await self._ensure_connected()
        return self

    async def _ensure_connected(self) -> aiosqlite.Connection:
        if self._closed:
            raise StorageError(f"Storage for {self._database} has been closed")
        if self._connection is not None:
            return self._connection

        async with self._connect_lock:
            if self._connection is None:
                self._connection = await self._connect()
        return self._connection

    async def _connect(self) -> aiosqlite.Connection:
        connection = await aiosqlite.connect(self._database)
        await connection.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout)}")
        if self._wal_mode and self._database != MEMORY_DATABASE:
            await connection.execute("PRAGMA journal_mode = WAL")
        connection.row_factory = aiosqlite.Row
        await connection.create_function(NOTIFY_FUNCTION, 5, self._on_row_change)

        logger.debug(
            "Connected to SQLite database: %s (wal_mode=%s, busy_timeout=%d)",
            self._database,
            self._wal_mode,
            self._busy_timeout,
        )
        return connection

    def _on_row_change(
        self,
        kind: str,
        namespace: str,
        table: str,
        rowid: int,
        document_id: str | None,
    ) -> None:
        """Trigger callback; runs on the driver thread, so only buffers."""
        event = ChangeEvent(
            event_type=kind,
            namespace=namespace,
            table=table,
            row_locator=rowid,
            document_id=document_id,
        )
        with self._pending_lock:
            self._pending.append(event)

    def _take_pending(self) -> list[ChangeEvent]:
        with self._pending_lock:
            events, self._pending = self._pending, []
        return events

    def _span_attributes(self, sql: str, params: tuple[Any, ...]) -> dict[str, Any]:
        return {
            ATTR_DB_SYSTEM: "sqlite",
            ATTR_DB_NAME: self._database,
            ATTR_DB_OPERATION: _operation(sql),
            ATTR_DB_STATEMENT: sql,
            ATTR_PARAM_COUNT: len(params),
        }

    def _profile(self, sql: str, params: tuple[Any, ...], started: float) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        logger.debug("%s (%.2f ms) %s %r", _operation(sql), duration_ms, sql, params)
        if self._bus.handler_count(PROFILE):
            self._bus.publish(
                PROFILE, ProfileEvent(sql=sql, params=params, duration_ms=duration_ms)
            )

    async def raw_query(self, sql: str, *params: Any) -> Sequence[Row]:
        connection = await self._ensure_connected()
        with self._tracer.span(
            "docstore.storage.raw_query", self._span_attributes(sql, params)
        ) as span:
            started = time.perf_counter()
            async with connection.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
            if span:
                span.set_attribute(ATTR_ROW_COUNT, len(rows))
        self._profile(sql, params, started)
        return list(rows)

    async def run(self, sql: str, *params: Any) -> None:
        connection = await self._ensure_connected()
        async with self._write_lock:
            with self._tracer.span("docstore.storage.run", self._span_attributes(sql, params)):
                started = time.perf_counter()
                try:
                    await connection.execute(sql, params)
                    await connection.commit()
                except Exception:
                    # The failed statement's changes were rolled back
                    dropped = self._take_pending()
                    if dropped:
                        logger.debug("Discarded %d change notification(s)", len(dropped))
                    raise
                events = self._take_pending()
        self._profile(sql, params, started)

        for event in events:
            self._publish_change(event)

    def _publish_change(self, event: ChangeEvent) -> None:
        logger.debug(
            "Row %s on %s.%s (rowid=%d)",
            event.event_type,
            event.namespace,
            event.table,
            event.row_locator,
            extra={"table": event.table, "row_locator": event.row_locator},
        )
        with self._tracer.span(
            "docstore.storage.notify",
            {
                ATTR_DB_SYSTEM: "sqlite",
                ATTR_TABLE: event.table,
                ATTR_CHANGE_KIND: event.event_type,
                ATTR_ROW_LOCATOR: event.row_locator,
            },
        ):
            self._bus.publish(CHANGE, event)

    async def watch(self, table: str) -> None:
        connection = await self._ensure_connected()
        if "'" in table or '"' in table:
            raise StorageError(f"Cannot watch table {table!r}: quote characters in name")

        async with self._write_lock:
            with self._tracer.span(
                "docstore.storage.watch",
                {ATTR_DB_SYSTEM: "sqlite", ATTR_DB_NAME: self._database, ATTR_TABLE: table},
            ):
                for kind, statement, ref in _CHANGE_KINDS:
                    trigger = quote_identifier(f"docstore_{table}_{kind}")
                    await connection.execute(
                        f"CREATE TEMP TRIGGER IF NOT EXISTS {trigger} "
                        f"AFTER {statement} ON main.{quote_identifier(table)} "
                        f"BEGIN SELECT {NOTIFY_FUNCTION}("
                        f"'{kind}', 'main', '{table}', {ref}.rowid, {ref}.id); END"
                    )
                await connection.commit()

        logger.debug("Watching table %s for changes", table, extra={"table": table})

    async def close(self) -> None:
        """
        Close the connection.

        Waits for in-flight subscriber work and removes all bus handlers
        first. Safe to call multiple times; the storage cannot be reused.
        """
        if self._closed:
            return
        if self._bus.pending_tasks:
            logger.debug("Waiting for %d subscriber task(s)", self._bus.pending_tasks)
        await self._bus.drain()
        self._closed = True
        self._bus.clear()
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed SQLite database connection: %s", self._database)

    @property
    def is_connected(self) -> bool:
        """True while a connection is open."""
        return self._connection is not None

    @property
    def database(self) -> str:
        """Database path or ':memory:'."""
        return self._database

    def __repr__(self) -> str:
        return (
            f"SQLiteStorage("
            f"database={self._database!r}, "
            f"tracing={'enabled' if self._tracer.enabled else 'disabled'})"
        )


__all__ = ["NOTIFY_FUNCTION", "SQLiteStorage"]
