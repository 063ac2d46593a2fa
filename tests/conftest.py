"""
Shared pytest fixtures for the docstore tests.

This module provides:
- Storage fixtures (sqlite_storage, mock_storage)
- Store and collection fixtures (store, users)
- Snapshot recording (SnapshotRecorder via the recorder fixture)
- Sample data (people)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from docstore import CollectionRef, DocumentStore, SQLiteStorage, Storage
from docstore.bus import ChangeBus

# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_storage() -> AsyncGenerator[SQLiteStorage, None]:
    """
    Provide a connected in-memory SQLite storage.

    The storage is closed after the test, which also drains pending
    snapshot work.
    """
    storage = SQLiteStorage(":memory:", enable_tracing=False)
    async with storage:
        yield storage


@pytest.fixture
def mock_storage() -> MagicMock:
    """
    Provide a storage double for tests that only inspect generated SQL.

    Async methods are AsyncMocks; ``listen`` is wired to a real ChangeBus so
    subscription tests can publish events.
    """
    storage = MagicMock(spec=Storage)
    bus = ChangeBus(enable_tracing=False)
    storage.bus = bus
    storage.listen.side_effect = bus.listen
    storage.raw_query.return_value = []
    storage.query.return_value = []
    return storage


@pytest_asyncio.fixture
async def store(sqlite_storage: SQLiteStorage) -> DocumentStore:
    """Provide a document store on the in-memory storage."""
    return DocumentStore(sqlite_storage)


@pytest.fixture
def users(store: DocumentStore) -> CollectionRef:
    """Provide the 'users' collection."""
    return store.collection("users")


# ============================================================================
# Snapshot Recording
# ============================================================================


class SnapshotRecorder:
    """Collects values passed to snapshot callbacks."""

    def __init__(self) -> None:
        self.calls: list[Any] = []

    def __call__(self, snapshot: Any) -> None:
        self.calls.append(snapshot)

    @property
    def count(self) -> int:
        return len(self.calls)

    @property
    def last(self) -> Any:
        return self.calls[-1]


@pytest.fixture
def recorder() -> SnapshotRecorder:
    """Provide a fresh snapshot recorder."""
    return SnapshotRecorder()


# ============================================================================
# Sample Data
# ============================================================================


@pytest.fixture
def people() -> list[dict[str, Any]]:
    """The three records used by the composite query examples."""
    return [
        {"name": "John", "age": 10},
        {"name": "Kennedy", "age": 45},
        {"name": "Sita", "age": 20},
    ]
