"""
Event payloads published on the change bus.

Events are immutable pydantic models, published and then discarded; they are
never persisted.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

CHANGE = "change"
"""Channel carrying ChangeEvent payloads."""

PROFILE = "profile"
"""Channel carrying ProfileEvent payloads."""

ChangeKind = Literal["insert", "update", "delete"]


class ChangeEvent(BaseModel):
    """
    A single low-level row mutation reported by the storage layer.

    Attributes:
        event_type: Kind of mutation ('insert', 'update' or 'delete')
        namespace: Database namespace holding the table (e.g., 'main')
        table: Table (collection) name
        row_locator: Storage-assigned row position (SQLite rowid). Used only
            to correlate events with documents; it is not the document id.
        document_id: Logical id of the changed document when the storage
            layer can report it

    Example:
        >>> event = ChangeEvent(event_type="insert", namespace="main", table="users", row_locator=1)
        >>> event.table
        'users'
    """

    model_config = ConfigDict(frozen=True)

    event_type: ChangeKind
    namespace: str = "main"
    table: str
    row_locator: int
    document_id: str | None = None


class ProfileEvent(BaseModel):
    """
    Timing information for one statement executed by the storage layer.

    Attributes:
        sql: Statement text with placeholders
        params: Bound parameters
        duration_ms: Wall-clock execution time in milliseconds
    """

    model_config = ConfigDict(frozen=True)

    sql: str
    params: tuple[Any, ...] = ()
    duration_ms: float = Field(default=0.0, ge=0)


__all__ = [
    "CHANGE",
    "PROFILE",
    "ChangeKind",
    "ChangeEvent",
    "ProfileEvent",
]
