"""
Storage capability interface.

The document layer (collections, documents, queries) talks to the database
only through this narrow contract. Backends differ in the driver they bind;
the clause compiler and the change-bus wiring are written once against it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from docstore.bus import ChangeBus, Handler, Unsubscribe
from docstore.observability import Tracer
from docstore.serialization import json_loads

Row = Mapping[str, Any]
"""A raw result row addressable by column name."""


class Storage(ABC):
    """
    Abstract base class for storage backends.

    Concrete backends implement statement execution and change tracking.
    Decoding of the ``value`` column and the change-bus plumbing are shared.

    Each storage object owns exactly one ChangeBus. Backends publish a
    ``ChangeEvent`` on the ``"change"`` channel for every row mutation on a
    watched table, after the mutating statement has committed.

    Example:
        >>> async with SQLiteStorage(":memory:") as storage:
        ...     await storage.run('CREATE TABLE "t" (value TEXT, id TEXT PRIMARY KEY)')
        ...     rows = await storage.raw_query('SELECT COUNT(*) AS count FROM "t"')
    """

    def __init__(
        self,
        *,
        bus: ChangeBus | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._bus = bus or ChangeBus(tracer=tracer, enable_tracing=enable_tracing)

    @property
    def bus(self) -> ChangeBus:
        """The change bus owned by this storage object."""
        return self._bus

    @abstractmethod
    async def raw_query(self, sql: str, *params: Any) -> Sequence[Row]:
        """
        Execute a read statement and return rows as stored.

        Args:
            sql: Statement text with ``?`` placeholders
            *params: Positional parameters

        Returns:
            Rows addressable by column name (``value``, ``rowid``, ``count``, ...)
        """
        ...

    async def query(self, sql: str, *params: Any) -> list[dict[str, Any]]:
        """
        Execute a read statement and decode each row's ``value`` column.

        Returns:
            Documents in the order the statement returned them
        """
        rows = await self.raw_query(sql, *params)
        return [json_loads(row["value"]) for row in rows]

    @abstractmethod
    async def run(self, sql: str, *params: Any) -> None:
        """
        Execute a write or DDL statement and commit it.

        Change events for rows it touched are published once it has
        committed.
        """
        ...

    @abstractmethod
    async def watch(self, table: str) -> None:
        """
        Start reporting row changes on a table.

        Idempotent. The table must already exist.
        """
        ...

    def listen(self, channel: str, handler: Handler) -> Unsubscribe:
        """
        Register a handler on this storage's change bus.

        Args:
            channel: "change" for ChangeEvents, "profile" for ProfileEvents
            handler: Sync callable, or one returning an awaitable

        Returns:
            Idempotent unsubscribe closure
        """
        return self._bus.listen(channel, handler)

    @abstractmethod
    async def close(self) -> None:
        """Release the connection. Safe to call multiple times."""
        ...

    async def __aenter__(self) -> Storage:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()


__all__ = ["Row", "Storage"]
