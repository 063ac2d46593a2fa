"""
Unit tests for the Query builder.

Statements are inspected directly, and execution is checked against a mock
storage so no database is needed.
"""

from unittest.mock import MagicMock

import pytest

from docstore.bus import CHANGE, ChangeEvent
from docstore.collection import CollectionRef
from docstore.criteria import raw
from docstore.exceptions import UnsupportedOperatorError
from docstore.query import Query, as_fragment, patch_document

AGE = "json_extract(value, '$.age')"
NAME = "json_extract(value, '$.name')"


@pytest.fixture
def users(mock_storage: MagicMock) -> CollectionRef:
    return CollectionRef(mock_storage, "users")


# =============================================================================
# Immutability
# =============================================================================


class TestModifiers:
    """Modifiers never change the receiver."""

    def test_modifiers_return_new_queries(self, users: CollectionRef) -> None:
        base = users.where({"age": {"gte": 50}})
        sorted_ = base.sort({"age": "asc"})
        limited = sorted_.limit(10)
        skipped = limited.skip(5)

        assert base.options.sort == ()
        assert sorted_.options.limit is None
        assert limited.options.skip is None
        assert skipped.options.skip == 5
        assert skipped.options.limit == 10
        assert len({id(base), id(sorted_), id(limited), id(skipped)}) == 4

    def test_keyword_sort(self, users: CollectionRef) -> None:
        query = users.where().sort(age="desc")
        assert query.options.sort == (("age", "DESC"),)

    def test_mapping_and_keyword_sort_combine_in_order(self, users: CollectionRef) -> None:
        query = users.where().sort({"last": "asc"}, first="asc")
        assert query.options.sort == (("last", "ASC"), ("first", "ASC"))

    def test_negative_limit_rejected(self, users: CollectionRef) -> None:
        with pytest.raises(ValueError):
            users.where().limit(-1)


# =============================================================================
# Statement rendering
# =============================================================================


class TestStatements:
    """Tests for compiled SELECT / COUNT / UPDATE statements."""

    def test_unfiltered_select(self, users: CollectionRef) -> None:
        assert users.where().select_statement() == ('SELECT value FROM "users"', ())

    def test_filtered_sorted_paginated_select(self, users: CollectionRef) -> None:
        query = users.where({"age": {"gte": 50}}).sort({"age": "asc"}).limit(10).skip(20)
        sql, params = query.select_statement()
        assert sql == (
            f'SELECT value FROM "users" WHERE {AGE} >= ? ORDER BY {AGE} ASC LIMIT ? OFFSET ?'
        )
        assert params == (50, 10, 20)

    def test_skip_without_limit(self, users: CollectionRef) -> None:
        sql, params = users.where().skip(3).select_statement()
        assert sql == 'SELECT value FROM "users" LIMIT -1 OFFSET ?'
        assert params == (3,)

    def test_count_ignores_pagination(self, users: CollectionRef) -> None:
        query = users.where_eq({"name": "John"}).sort({"age": "asc"}).limit(1).skip(1)
        sql, params = query.count_statement()
        assert sql == f'SELECT COUNT(*) AS count FROM "users" WHERE {NAME} == ?'
        assert params == ("John",)

    def test_update_statement(self, users: CollectionRef) -> None:
        sql, params = users.where_eq({"name": "John"}).update_statement({"age": 11, "id": "x"})
        assert sql == f'UPDATE "users" SET value = json_patch(value, ?) WHERE {NAME} == ?'
        assert params == ('{"age": 11}', "John")

    def test_update_raw_statement(self, users: CollectionRef) -> None:
        query = users.where({"age": {"lt": 18}})
        sql, params = query.update_raw_statement("json_set(value, '$.minor', {})", True)
        assert sql == f"UPDATE \"users\" SET value = json_set(value, '$.minor', ?) WHERE {AGE} < ?"
        assert params == (True, 18)

    def test_where_raw(self, users: CollectionRef) -> None:
        sql, params = users.where_raw(f"{AGE} % {{}} = 0", 2).select_statement()
        assert sql == f'SELECT value FROM "users" WHERE {AGE} % ? = 0'
        assert params == (2,)


# =============================================================================
# Execution against a mock storage
# =============================================================================


class TestExecution:
    """Tests for terminal methods."""

    @pytest.mark.asyncio
    async def test_get_ensures_table_then_queries(
        self, users: CollectionRef, mock_storage: MagicMock
    ) -> None:
        mock_storage.query.return_value = [{"id": "1", "age": 60}]

        docs = await users.where({"age": {"gte": 50}}).get()

        assert docs == [{"id": "1", "age": 60}]
        mock_storage.run.assert_awaited_once()
        assert "CREATE TABLE IF NOT EXISTS" in mock_storage.run.await_args.args[0]
        mock_storage.watch.assert_awaited_once_with("users")
        mock_storage.query.assert_awaited_once_with(
            f'SELECT value FROM "users" WHERE {AGE} >= ?', 50
        )

    @pytest.mark.asyncio
    async def test_awaiting_runs_get(self, users: CollectionRef, mock_storage: MagicMock) -> None:
        mock_storage.query.return_value = [{"id": "1"}]
        query = users.where()

        assert await query == [{"id": "1"}]
        assert await query == [{"id": "1"}]
        assert mock_storage.query.await_count == 2

    @pytest.mark.asyncio
    async def test_count(self, users: CollectionRef, mock_storage: MagicMock) -> None:
        mock_storage.raw_query.return_value = [{"count": 7}]
        assert await users.where().count() == 7

    @pytest.mark.asyncio
    async def test_empty_update_is_skipped(
        self, users: CollectionRef, mock_storage: MagicMock
    ) -> None:
        await users.where().update({"id": "ignored"})
        mock_storage.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_on_snapshot_refetches_per_change(
        self, users: CollectionRef, mock_storage: MagicMock, recorder
    ) -> None:
        mock_storage.query.return_value = [{"id": "1"}]
        unsubscribe = users.where().on_snapshot(recorder)

        event = ChangeEvent(event_type="insert", table="users", row_locator=1)
        mock_storage.bus.publish(CHANGE, event)
        mock_storage.bus.publish(CHANGE, event.model_copy(update={"table": "other"}))
        await mock_storage.bus.drain()

        assert recorder.calls == [[{"id": "1"}]]
        unsubscribe()
        assert mock_storage.bus.handler_count(CHANGE) == 0


class TestOperatorErrors:
    """Unknown operators surface when a query is executed."""

    @pytest.mark.asyncio
    async def test_get(self, users: CollectionRef, mock_storage: MagicMock) -> None:
        with pytest.raises(UnsupportedOperatorError, match="like"):
            await users.where({"age": {"like": 1}}).get()
        mock_storage.query.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_await(self, users: CollectionRef) -> None:
        with pytest.raises(UnsupportedOperatorError):
            await users.where({"age": {"like": 1}})

    @pytest.mark.asyncio
    async def test_count(self, users: CollectionRef, mock_storage: MagicMock) -> None:
        with pytest.raises(UnsupportedOperatorError) as exc_info:
            await users.where({"age": {"like": 1}}).count()
        assert exc_info.value.operator == "like"
        mock_storage.raw_query.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update(self, users: CollectionRef, mock_storage: MagicMock) -> None:
        with pytest.raises(UnsupportedOperatorError):
            await users.where({"age": {"$regex": "x"}}).update({"seen": True})
        mock_storage.run.assert_not_awaited()


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:
    """Tests for module helpers."""

    def test_patch_document_drops_id(self) -> None:
        assert patch_document({"id": "1", "age": 3}) == {"age": 3}

    def test_as_fragment_from_template(self) -> None:
        assert as_fragment("x = {}", (1,)) == raw("x = {}", 1)

    def test_as_fragment_rejects_extra_values(self) -> None:
        with pytest.raises(TypeError):
            as_fragment(raw("x = 1"), (1,))

    def test_repr(self, users: CollectionRef) -> None:
        assert repr(Query(users)).startswith("Query(collection='users'")
