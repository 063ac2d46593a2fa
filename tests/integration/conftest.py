"""
Fixtures for integration tests.
"""

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from docstore import CollectionRef, DocumentStore, StorageConfig


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark every integration test as needing SQLite."""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.sqlite)


@pytest.fixture
def file_config(tmp_path: Path) -> StorageConfig:
    """Configuration for a WAL-mode database file in a temp directory."""
    return StorageConfig(database=str(tmp_path / "documents.db"), wal_mode=True, enable_tracing=False)


@pytest_asyncio.fixture
async def file_store(file_config: StorageConfig) -> AsyncGenerator[DocumentStore, None]:
    """A store on a database file."""
    async with DocumentStore.sqlite(file_config) as store:
        yield store


@pytest_asyncio.fixture
async def numbered(users: CollectionRef) -> CollectionRef:
    """The users collection holding 100 documents with ages 1 to 100."""
    for age in range(1, 101):
        await users.doc(f"user-{age:03d}").put({"name": f"User {age}", "age": age})
    return users


@pytest_asyncio.fixture
async def populated(users: CollectionRef, people: list[dict[str, Any]]) -> CollectionRef:
    """The users collection holding John, Kennedy and Sita."""
    for person in people:
        await users.doc().put(person)
    return users
