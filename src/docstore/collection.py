"""
Collection handle: a named set of documents backed by one table.

Each collection maps to a table with two columns: ``value`` (the JSON
document) and ``id`` (the primary key, mirrored inside the document).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from docstore.compiler import quote_identifier
from docstore.criteria import CriteriaInput, QueryOptions, RawFragment, expand_eq, parse_criteria
from docstore.document import DocumentRef
from docstore.exceptions import InvalidNameError
from docstore.query import Document, Query, as_fragment
from docstore.storage import Storage

logger = logging.getLogger(__name__)


def validate_collection_name(name: str) -> str:
    """
    Check that a collection name can be used as a quoted SQL identifier.

    Raises:
        InvalidNameError: If the name is empty or contains quote characters
    """
    if not isinstance(name, str) or not name:
        raise InvalidNameError(str(name), "must be a non-empty string")
    if '"' in name or "'" in name:
        raise InvalidNameError(name)
    return name


class CollectionRef:
    """
    Handle on a collection.

    Factory for document handles and queries. The backing table is created
    on first use; ``ensure_exists()`` remembers its success so later calls
    do not touch storage.

    Example:
        >>> users = store.collection("users")
        >>> await users.doc().put({"name": "Sita", "age": 20})
        >>> adults = await users.where({"age": {"gte": 18}})
        >>> await users.count()
        1
    """

    def __init__(self, storage: Storage, name: str) -> None:
        """
        Args:
            storage: Storage backend executing statements
            name: Collection (table) name

        Raises:
            InvalidNameError: If the name contains quote characters
        """
        self._storage = storage
        self._name = validate_collection_name(name)
        self._exists = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def storage(self) -> Storage:
        return self._storage

    async def ensure_exists(self) -> None:
        """Create the backing table and start change tracking, once."""
        if self._exists:
            return
        table = quote_identifier(self._name)
        await self._storage.run(
            f"CREATE TABLE IF NOT EXISTS {table} (value TEXT, id TEXT NOT NULL PRIMARY KEY)"
        )
        await self._storage.watch(self._name)
        self._exists = True
        logger.debug("Ensured collection %s exists", self._name, extra={"table": self._name})

    async def delete(self) -> None:
        """Drop the backing table and every document in it. Irreversible."""
        await self._storage.run(f"DROP TABLE IF EXISTS {quote_identifier(self._name)}")
        self._exists = False
        logger.info("Dropped collection %s", self._name, extra={"table": self._name})

    async def drop(self) -> None:
        """Alias of ``delete()``."""
        await self.delete()

    def doc(self, doc_id: Any = None) -> DocumentRef:
        """
        Get a handle on a document.

        Args:
            doc_id: Document id; a random UUID string when omitted
        """
        return DocumentRef(self, str(doc_id) if doc_id is not None else str(uuid4()))

    def where(self, criteria: CriteriaInput = None) -> Query:
        """
        Start a query with structured criteria.

        Example:
            >>> users.where({"or": [{"name": {"eq": "John"}}, {"age": {"gte": 40}}]})

        Raises:
            InvalidCriteriaError: If the criteria are malformed
        """
        return Query(self, QueryOptions(criteria=parse_criteria(criteria)))

    def where_eq(self, shorthand: Mapping[str, Any] | None = None) -> Query:
        """
        Start a query from equality shorthand.

        Example:
            >>> users.where_eq({"name": "John", "age": 10})
        """
        return Query(self, QueryOptions(criteria=expand_eq(shorthand)))

    def where_raw(self, fragment: RawFragment | str, *values: Any) -> Query:
        """
        Start a query filtered by a raw SQL fragment.

        Example:
            >>> users.where_raw("json_array_length(value, '$.tags') > {}", 2)
        """
        return Query(self, QueryOptions(raw=as_fragment(fragment, values)))

    async def count(self) -> int:
        """Number of documents in the collection."""
        return await self.where().count()

    async def all(self) -> list[Document]:
        """Every document in the collection."""
        return await self.where().get()

    async def doc_by_row_locator(self, row_locator: int) -> Document | None:
        """Fetch the document stored at a row locator, or None."""
        await self.ensure_exists()
        docs = await self._storage.query(
            f"SELECT value FROM {quote_identifier(self._name)} WHERE rowid = ?",  # nosec B608
            row_locator,
        )
        return docs[0] if docs else None

    def __repr__(self) -> str:
        return f"CollectionRef(name={self._name!r})"


__all__ = ["CollectionRef", "validate_collection_name"]
