"""
Document handle: operations on one document addressed by id.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from docstore.bus import CHANGE, ChangeEvent, Unsubscribe
from docstore.compiler import compile_raw, quote_identifier
from docstore.criteria import RawFragment
from docstore.query import Document, as_fragment, patch_document
from docstore.serialization import json_dumps, to_document

if TYPE_CHECKING:
    from docstore.collection import CollectionRef

logger = logging.getLogger(__name__)

DocumentCallback = Callable[[Document | None], Awaitable[None] | None]


class DocumentRef:
    """
    Handle on a single document.

    The handle's id is taken from ``put()`` records that carry their own
    ``id``; otherwise it is the id the handle was created with. Every
    operation first makes sure the collection's table exists.

    Example:
        >>> ref = store.collection("users").doc("u1")
        >>> await ref.put({"name": "Ada", "age": 36})
        >>> await ref.update({"age": 37})
        >>> await ref.get()
        {'name': 'Ada', 'age': 37, 'id': 'u1'}
    """

    def __init__(self, collection: CollectionRef, doc_id: str) -> None:
        self._collection = collection
        self._id = str(doc_id)

    @property
    def id(self) -> str:
        return self._id

    @property
    def collection(self) -> CollectionRef:
        return self._collection

    @property
    def _table(self) -> str:
        return quote_identifier(self._collection.name)

    async def get(self) -> Document | None:
        """Fetch the document, or None if it does not exist."""
        await self._collection.ensure_exists()
        docs = await self._collection.storage.query(
            f"SELECT value FROM {self._table} WHERE id = ?", self._id  # nosec B608
        )
        return docs[0] if docs else None

    async def get_row_locator(self) -> int | None:
        """Current storage row locator of this document, or None if absent."""
        await self._collection.ensure_exists()
        rows = await self._collection.storage.raw_query(
            f"SELECT rowid FROM {self._table} WHERE id = ?", self._id  # nosec B608
        )
        return rows[0]["rowid"] if rows else None

    async def put(self, record: Mapping[str, Any] | BaseModel, *, merge: bool = False) -> None:
        """
        Insert the document or replace its whole body.

        A truthy ``id`` in the record re-pins this handle to that id. The
        stored body always carries the handle's id.

        Args:
            record: Document body
            merge: If True, an existing document is merge-patched with the
                record instead of replaced; keys absent from the record survive
        """
        document = to_document(record)
        record_id = document.get("id")
        if record_id:
            self._id = str(record_id)
        document["id"] = self._id

        on_conflict = "json_patch(value, excluded.value)" if merge else "excluded.value"
        await self._collection.ensure_exists()
        await self._collection.storage.run(
            f"INSERT INTO {self._table} (id, value) VALUES (?, ?) "  # nosec B608
            f"ON CONFLICT (id) DO UPDATE SET value = {on_conflict}",
            self._id,
            json_dumps(document),
        )

    async def update(self, partial: Mapping[str, Any] | BaseModel) -> None:
        """
        Merge ``partial`` into the stored document (JSON merge-patch).

        Missing documents are left missing. The ``id`` key is never patched.
        """
        patch = patch_document(partial)
        if not patch:
            logger.debug("Skipping empty update of %s/%s", self._collection.name, self._id)
            return
        await self._collection.ensure_exists()
        await self._collection.storage.run(
            f"UPDATE {self._table} SET value = json_patch(value, ?) WHERE id = ?",  # nosec B608
            json_dumps(patch),
            self._id,
        )

    async def update_raw(self, fragment: RawFragment | str, *values: Any) -> None:
        """
        Replace the stored JSON with a raw SQL expression over ``value``.

        Example:
            >>> await ref.update_raw(
            ...     "json_set(value, '$.visits', json_extract(value, '$.visits') + {})", 1
            ... )
        """
        expression = compile_raw(as_fragment(fragment, values))
        await self._collection.ensure_exists()
        await self._collection.storage.run(
            f"UPDATE {self._table} SET value = {expression.predicate} WHERE id = ?",  # nosec B608
            *expression.params,
            self._id,
        )

    async def delete(self) -> None:
        """Delete the document. Deleting a missing document is a no-op."""
        await self._collection.ensure_exists()
        await self._collection.storage.run(
            f"DELETE FROM {self._table} WHERE id = ?", self._id  # nosec B608
        )

    def on_snapshot(self, callback: DocumentCallback) -> Unsubscribe:
        """
        Invoke ``callback`` with the fresh document after each change to it.

        Inserts and updates are matched by re-resolving this document's row
        locator when the event arrives. Deletions are matched by document id,
        since the row locator no longer resolves; the callback then receives
        None. Callbacks may be sync or async.

        Returns:
            Closure removing the subscription; idempotent
        """
        table = self._collection.name

        def on_change(event: ChangeEvent) -> Awaitable[None] | None:
            if event.table != table:
                return None
            return self._deliver(event, callback)

        on_change.__qualname__ = f"DocumentRef.on_snapshot[{table}/{self._id}]"
        return self._collection.storage.listen(CHANGE, on_change)

    async def _deliver(self, event: ChangeEvent, callback: DocumentCallback) -> None:
        if event.event_type == "delete":
            if event.document_id != self._id:
                return
        else:
            locator = await self.get_row_locator()
            if locator is None or locator != event.row_locator:
                return

        snapshot = await self.get()
        logger.debug(
            "Delivering snapshot of %s/%s after %s",
            self._collection.name,
            self._id,
            event.event_type,
            extra={"table": self._collection.name, "document_id": self._id},
        )
        result = callback(snapshot)
        if inspect.isawaitable(result):
            await result

    def __repr__(self) -> str:
        return f"DocumentRef(collection={self._collection.name!r}, id={self._id!r})"


__all__ = ["DocumentCallback", "DocumentRef"]
