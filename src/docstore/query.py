"""
Query builder for collections.

A Query is an immutable description of a filter plus sort, skip and limit.
Modifiers return new Query objects; terminal methods compile the description
with the clause compiler and execute it through the storage interface.

Example:
    >>> users = store.collection("users")
    >>> page = users.where({"age": {"gte": 50}}).sort({"age": "asc"}).skip(10).limit(10)
    >>> docs = await page            # same as: await page.get()
    >>> total = await users.where({"age": {"gte": 50}}).count()
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Generator, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from docstore.bus import CHANGE, ChangeEvent, Unsubscribe
from docstore.compiler import (
    Clause,
    compile_filter,
    compile_order_by,
    compile_raw,
    quote_identifier,
    where_sql,
)
from docstore.criteria import QueryOptions, RawFragment
from docstore.serialization import json_dumps, to_document

if TYPE_CHECKING:
    from docstore.collection import CollectionRef

logger = logging.getLogger(__name__)

Document = dict[str, Any]
SnapshotCallback = Callable[[list[Document]], Awaitable[None] | None]


def as_fragment(fragment: RawFragment | str, values: tuple[Any, ...]) -> RawFragment:
    """Accept either a RawFragment or a ``{}`` template plus values."""
    if isinstance(fragment, RawFragment):
        if values:
            raise TypeError("Values must not be passed alongside a RawFragment")
        return fragment
    return RawFragment.from_template(fragment, *values)


def patch_document(partial: Mapping[str, Any] | BaseModel) -> Document:
    """Normalise a partial update; the ``id`` key is never patched."""
    patch = to_document(partial)
    patch.pop("id", None)
    return patch


class Query:
    """
    Immutable, chainable query over one collection.

    Awaiting a Query runs a fresh ``get()`` each time. Count and update use
    only the filter; sort, skip and limit apply to ``get()``.

    Note:
        - Sorting compares JSON-extracted values, so numbers sort numerically
        - ``skip`` without ``limit`` is honoured (an unbounded LIMIT is emitted)
        - Rows come back exactly in the order SQLite returns them
    """

    __slots__ = ("_collection", "_options")

    def __init__(self, collection: CollectionRef, options: QueryOptions | None = None) -> None:
        self._collection = collection
        self._options = options or QueryOptions()

    @property
    def collection(self) -> CollectionRef:
        return self._collection

    @property
    def options(self) -> QueryOptions:
        return self._options

    # ------------------------------------------------------------------
    # Modifiers
    # ------------------------------------------------------------------

    def sort(self, spec: Mapping[str, str] | None = None, /, **fields: str) -> Query:
        """
        Return a new Query ordered by the given fields.

        Fields apply in declared order: the first is the primary key.
        Keyword form is available for plain field names.

        Example:
            >>> users.where().sort({"last": "asc", "first": "asc"})
            >>> users.where().sort(age="desc")
        """
        pairs = list((spec or {}).items()) + list(fields.items())
        return Query(self._collection, self._options.with_sort(pairs))

    def skip(self, count: int) -> Query:
        """Return a new Query dropping the first ``count`` matches."""
        return Query(self._collection, self._options.with_skip(count))

    def limit(self, count: int) -> Query:
        """Return a new Query returning at most ``count`` matches."""
        return Query(self._collection, self._options.with_limit(count))

    # ------------------------------------------------------------------
    # Statement compilation
    # ------------------------------------------------------------------

    @property
    def _table(self) -> str:
        return quote_identifier(self._collection.name)

    def filter_clause(self) -> Clause:
        """The compiled WHERE predicate (falsy when unfiltered)."""
        return compile_filter(self._options)

    def select_statement(self) -> tuple[str, tuple[Any, ...]]:
        """Compile the SELECT used by ``get()``."""
        clause = self.filter_clause()
        sql = f"SELECT value FROM {self._table}{where_sql(clause)}"  # nosec B608
        params = list(clause.params)

        order_by = compile_order_by(self._options.sort)
        if order_by:
            sql += f" ORDER BY {order_by}"

        if self._options.limit is not None:
            sql += " LIMIT ?"
            params.append(self._options.limit)
        elif self._options.skip:
            sql += " LIMIT -1"
        if self._options.skip:
            sql += " OFFSET ?"
            params.append(self._options.skip)

        return sql, tuple(params)

    def count_statement(self) -> tuple[str, tuple[Any, ...]]:
        """Compile the COUNT used by ``count()``."""
        clause = self.filter_clause()
        sql = f"SELECT COUNT(*) AS count FROM {self._table}{where_sql(clause)}"  # nosec B608
        return sql, clause.params

    def update_statement(self, partial: Mapping[str, Any] | BaseModel) -> tuple[str, tuple[Any, ...]]:
        """Compile the merge-patch UPDATE used by ``update()``."""
        clause = self.filter_clause()
        sql = f"UPDATE {self._table} SET value = json_patch(value, ?){where_sql(clause)}"  # nosec B608
        return sql, (json_dumps(patch_document(partial)), *clause.params)

    def update_raw_statement(
        self, fragment: RawFragment | str, *values: Any
    ) -> tuple[str, tuple[Any, ...]]:
        """Compile an UPDATE whose new ``value`` is a raw SQL expression."""
        expression = compile_raw(as_fragment(fragment, values))
        clause = self.filter_clause()
        sql = f"UPDATE {self._table} SET value = {expression.predicate}{where_sql(clause)}"  # nosec B608
        return sql, (*expression.params, *clause.params)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def count(self) -> int:
        """Number of documents matching the filter."""
        sql, params = self.count_statement()
        await self._collection.ensure_exists()
        rows = await self._collection.storage.raw_query(sql, *params)
        return int(rows[0]["count"]) if rows else 0

    async def get(self) -> list[Document]:
        """Fetch matching documents, sorted and paginated."""
        sql, params = self.select_statement()
        await self._collection.ensure_exists()
        return await self._collection.storage.query(sql, *params)

    async def update(self, partial: Mapping[str, Any] | BaseModel) -> None:
        """
        Merge ``partial`` into every matching document.

        Top-level keys are set; nested objects are merged recursively and a
        ``None`` value removes the key (JSON merge-patch, RFC 7396).
        """
        if not patch_document(partial):
            logger.debug("Skipping empty update on %s", self._collection.name)
            return
        sql, params = self.update_statement(partial)
        await self._collection.ensure_exists()
        await self._collection.storage.run(sql, *params)

    async def update_raw(self, fragment: RawFragment | str, *values: Any) -> None:
        """
        Replace the stored JSON of every match with a raw SQL expression.

        Example:
            >>> await users.where({"plan": {"eq": "trial"}}).update_raw(
            ...     "json_set(value, '$.credits', {})", 100
            ... )
        """
        sql, params = self.update_raw_statement(fragment, *values)
        await self._collection.ensure_exists()
        await self._collection.storage.run(sql, *params)

    def __await__(self) -> Generator[Any, None, list[Document]]:
        return self.get().__await__()

    # ------------------------------------------------------------------
    # Live snapshots
    # ------------------------------------------------------------------

    def on_snapshot(self, callback: SnapshotCallback) -> Unsubscribe:
        """
        Re-run the query after every change to this collection.

        Every change event on the collection's table triggers exactly one
        ``get()`` and one callback invocation, whether or not the changed row
        matches the filter. Callbacks may be sync or async.

        Returns:
            Closure removing the subscription; idempotent
        """
        table = self._collection.name

        def on_change(event: ChangeEvent) -> Awaitable[None] | None:
            if event.table != table:
                return None
            return self._deliver(callback)

        on_change.__qualname__ = f"Query.on_snapshot[{table}]"
        return self._collection.storage.listen(CHANGE, on_change)

    async def _deliver(self, callback: SnapshotCallback) -> None:
        docs = await self.get()
        result = callback(docs)
        if inspect.isawaitable(result):
            await result

    def __repr__(self) -> str:
        return f"Query(collection={self._collection.name!r}, options={self._options!r})"


__all__ = ["Document", "Query", "SnapshotCallback", "as_fragment", "patch_document"]
