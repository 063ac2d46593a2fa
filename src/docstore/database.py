"""
Document store facade.

Ties a storage backend to the collections living in it. The store owns the
storage object, and through it the change bus; closing the store tears both
down.
"""

from __future__ import annotations

import logging
from typing import Any

from docstore.bus import ChangeBus, Handler, Unsubscribe
from docstore.collection import CollectionRef
from docstore.config import StorageConfig
from docstore.storage import SQLiteStorage, Storage

logger = logging.getLogger(__name__)


class DocumentStore:
    """
    Entry point for working with collections.

    ``collection(name)`` returns the same handle for the same name, so the
    table-exists memo is shared by everything using that collection.

    Example:
        >>> async with DocumentStore.sqlite() as store:
        ...     users = store.collection("users")
        ...     await users.doc("123").put({"username": "John Doe"})
        ...     unsubscribe = users.doc("123").on_snapshot(print)
    """

    def __init__(self, storage: Storage) -> None:
        self._storage = storage
        self._collections: dict[str, CollectionRef] = {}

    @classmethod
    def sqlite(cls, config: StorageConfig | None = None, **kwargs: Any) -> DocumentStore:
        """
        Create a store on SQLite.

        Args:
            config: Connection settings (an in-memory database by default)
            **kwargs: Extra SQLiteStorage arguments (e.g., ``tracer``)
        """
        return cls(SQLiteStorage.from_config(config or StorageConfig(), **kwargs))

    @property
    def storage(self) -> Storage:
        return self._storage

    @property
    def bus(self) -> ChangeBus:
        return self._storage.bus

    def collection(self, name: str) -> CollectionRef:
        """
        Get the handle for a collection.

        Raises:
            InvalidNameError: If the name contains quote characters
        """
        collection = self._collections.get(name)
        if collection is None:
            collection = CollectionRef(self._storage, name)
            self._collections[name] = collection
        return collection

    def listen(self, channel: str, handler: Handler) -> Unsubscribe:
        """Register a handler for raw "change" or "profile" events."""
        return self._storage.listen(channel, handler)

    async def close(self) -> None:
        """Close the underlying storage. Safe to call multiple times."""
        await self._storage.close()

    async def __aenter__(self) -> DocumentStore:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"DocumentStore(storage={self._storage!r}, collections={sorted(self._collections)})"


__all__ = ["DocumentStore"]
