"""Unit tests for read projections, aggregates and chunked iteration."""

from __future__ import annotations

from decimal import Decimal

import pytest

from chainql.errors import ExecutionError, MappingError, UsageError
from chainql.schema.config import Settings
from chainql.schema.dialect import Dialect
from tests.fixtures import FakeDriverError, make_query, recording_query

# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


async def test_get_returns_rows(recorder):
    query, executor = recorder
    executor.queue([{"id": 1, "name": "A"}, {"id": 2, "name": "B"}])
    rows = await query.where("active", True).get()
    assert rows == [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}]
    assert executor.statements == [('SELECT * FROM "users" WHERE "active" = :param_0', {"param_0": True})]


async def test_get_columns_do_not_modify_builder(recorder):
    query, executor = recorder
    await query.get("id", "name")
    assert executor.sql == ['SELECT "id", "name" FROM "users"']
    assert query.to_sql().sql == 'SELECT * FROM "users"'


async def test_first(recorder):
    query, executor = recorder
    executor.queue([{"id": 1}])
    assert await query.order_by("id").first() == {"id": 1}
    assert executor.sql == ['SELECT * FROM "users" ORDER BY "id" ASC LIMIT 1']
    assert await query.first() is None


async def test_find(recorder):
    query, executor = recorder
    executor.queue([{"id": 4, "name": "D"}])
    assert await query.find(4) == {"id": 4, "name": "D"}
    assert executor.statements[0] == ('SELECT * FROM "users" WHERE "id" = :param_0 LIMIT 1', {"param_0": 4})


async def test_value(recorder):
    query, executor = recorder
    executor.queue([{"email": "a@x"}])
    assert await query.where("name", "A").value("users.email") == "a@x"
    assert executor.sql[0] == 'SELECT "users"."email" FROM "users" WHERE "name" = :param_0 LIMIT 1'
    assert await query.value("email") is None


async def test_value_missing_column(recorder):
    query, executor = recorder
    executor.queue([{"other": 1}])
    with pytest.raises(MappingError) as exc:
        await query.value("email")
    assert exc.value.column == "email"


async def test_pluck_single_and_many(recorder):
    query, executor = recorder
    executor.queue([{"name": "A"}, {"name": "B"}], [{"id": 1, "n": "A"}])
    assert await query.pluck("name") == ["A", "B"]
    assert await query.pluck("id", "name as n") == [{"id": 1, "n": "A"}]
    assert executor.sql[1] == 'SELECT "id", "name" AS "n" FROM "users"'


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


async def test_count(recorder):
    query, executor = recorder
    executor.queue([{"aggregate": 3}])
    assert await query.where("active", True).order_by("name").limit(5).count() == 3
    assert executor.sql == ['SELECT COUNT(*) AS "aggregate" FROM "users" WHERE "active" = :param_0']


async def test_count_coerces_decimal_and_digit_strings(recorder):
    query, executor = recorder
    executor.queue([{"aggregate": Decimal("4")}], [{"aggregate": "12"}])
    assert await query.count() == 4
    assert await query.count() == 12


async def test_count_rejects_non_integers(recorder):
    query, executor = recorder
    executor.queue([{"aggregate": "many"}])
    with pytest.raises(MappingError):
        await query.count()


async def test_count_grouped_query_wraps_derived_table():
    query, executor = recording_query(Dialect.PGSQL, "posts")
    executor.queue([{"aggregate": 2}])
    await query.select("user_id").group_by("user_id").count()
    assert executor.sql == [
        'SELECT COUNT(*) AS "aggregate" FROM (SELECT "user_id" FROM "posts" GROUP BY "user_id") AS "aggregate_table"'
    ]


async def test_count_distinct_mysql(my_recorder):
    query, executor = my_recorder
    executor.queue([{"aggregate": 5}])
    await query.select("email").distinct().count()
    assert executor.sql[0] == (
        "SELECT COUNT(*) AS `aggregate` FROM (SELECT DISTINCT `email` FROM `users`) AS `aggregate_table`"
    )


async def test_min_max_avg_sum(recorder):
    query, executor = recorder
    executor.queue([{"aggregate": 9}], [{"aggregate": 1}], [{"aggregate": 4.5}], [{"aggregate": None}])
    assert await query.max("votes") == 9
    assert await query.min("votes") == 1
    assert await query.avg("votes") == 4.5
    assert await query.sum("votes") == 0
    assert executor.sql[0] == 'SELECT MAX("votes") AS "aggregate" FROM "users"'
    assert executor.sql[3] == 'SELECT SUM("votes") AS "aggregate" FROM "users"'


async def test_unknown_aggregate_is_usage_error(recorder):
    query, executor = recorder
    with pytest.raises(UsageError) as exc:
        await query.aggregate("median", "votes")
    assert exc.value.operation == "aggregate"
    assert executor.statements == []


async def test_exists(recorder):
    query, executor = recorder
    executor.queue([{"1": 1}], [])
    assert await query.where("id", 1).exists() is True
    assert await query.doesnt_exist() is True
    assert executor.sql[0] == 'SELECT 1 FROM "users" WHERE "id" = :param_0 LIMIT 1'


# ---------------------------------------------------------------------------
# Execution plumbing
# ---------------------------------------------------------------------------


async def test_driver_errors_become_execution_errors(recorder):
    query, executor = recorder
    executor.queue(FakeDriverError("no such table: users"))
    with pytest.raises(ExecutionError) as exc:
        await query.get()
    assert exc.value.sql == 'SELECT * FROM "users"'
    assert isinstance(exc.value.original, FakeDriverError)
    assert exc.value.to_error_response()["error"] == "FakeDriverError"
    assert not executor.is_open


async def test_each_call_opens_and_closes_a_session(recorder):
    query, executor = recorder
    await query.get()
    await query.count()
    assert executor.connects == 2
    assert executor.disconnects == 2


async def test_outer_session_keeps_connection(recorder):
    query, executor = recorder
    async with executor.session():
        await query.get()
        await query.exists()
        assert executor.is_open
    assert executor.connects == 1
    assert not executor.is_open


async def test_read_without_executor():
    with pytest.raises(UsageError):
        await make_query(Dialect.SQLITE).get()


# ---------------------------------------------------------------------------
# Chunked iteration
# ---------------------------------------------------------------------------


async def test_chunk_pages_until_empty(recorder):
    query, executor = recorder
    executor.queue([{"id": 1}, {"id": 2}], [{"id": 3}], [])
    pages = []
    assert await query.order_by("id").chunk(2, pages.append) is True
    assert pages == [[{"id": 1}, {"id": 2}], [{"id": 3}]]
    assert executor.sql == [
        'SELECT * FROM "users" ORDER BY "id" ASC LIMIT 2 OFFSET 0',
        'SELECT * FROM "users" ORDER BY "id" ASC LIMIT 2 OFFSET 2',
        'SELECT * FROM "users" ORDER BY "id" ASC LIMIT 2 OFFSET 4',
    ]


async def test_chunk_stops_when_callback_returns_false(recorder):
    query, executor = recorder
    executor.queue([{"id": 1}], [{"id": 2}])
    assert await query.chunk(1, lambda rows: False) is False
    assert len(executor.statements) == 1


async def test_chunk_accepts_async_callback(recorder):
    query, executor = recorder
    executor.queue([{"id": 1}], [])
    seen = []

    async def collect(rows):
        seen.extend(rows)

    assert await query.chunk(1, collect) is True
    assert seen == [{"id": 1}]


@pytest.mark.parametrize("size", [0, -3, 1.5, True])
async def test_chunk_rejects_bad_size(recorder, size):
    query, executor = recorder
    with pytest.raises(UsageError):
        await query.chunk(size, lambda rows: None)
    assert executor.statements == []


async def test_chunk_by_id_uses_cursor(recorder):
    query, executor = recorder
    executor.queue([{"id": 1}, {"id": 2}], [{"id": 3}], [])
    pages = []
    await query.where("active", True).order_by("name").chunk_by_id(2, pages.append)
    assert [len(p) for p in pages] == [2, 1]
    assert executor.statements == [
        ('SELECT * FROM "users" WHERE "active" = :param_0 ORDER BY "id" ASC LIMIT 2', {"param_0": True}),
        (
            'SELECT * FROM "users" WHERE "active" = :param_0 AND "id" > :param_1 ORDER BY "id" ASC LIMIT 2',
            {"param_0": True, "param_1": 2},
        ),
        (
            'SELECT * FROM "users" WHERE "active" = :param_0 AND "id" > :param_1 ORDER BY "id" ASC LIMIT 2',
            {"param_0": True, "param_1": 3},
        ),
    ]
    assert query.to_sql().sql == 'SELECT * FROM "users" WHERE "active" = :param_0 ORDER BY "name" ASC'


async def test_chunk_by_id_desc(recorder):
    query, executor = recorder
    executor.queue([{"id": 9}], [])
    await query.chunk_by_id_desc(1, lambda rows: None)
    assert executor.sql[1] == 'SELECT * FROM "users" WHERE "id" < :param_0 ORDER BY "id" DESC LIMIT 1'


async def test_chunk_by_id_groups_or_conditions(recorder):
    query, executor = recorder
    executor.queue([{"id": 5}], [])
    await query.where("a", 1).or_where("b", 2).chunk_by_id(1, lambda rows: None)
    assert executor.sql[1] == (
        'SELECT * FROM "users" WHERE ("a" = :param_0 OR "b" = :param_1) AND "id" > :param_2 '
        'ORDER BY "id" ASC LIMIT 1'
    )


async def test_chunk_by_id_alias(recorder):
    query, executor = recorder
    executor.queue([{"uid": 4}], [])
    await query.select("users.id as uid").chunk_by_id(1, lambda rows: None, column="users.id", alias="uid")
    assert executor.statements[1][1] == {"param_0": 4}
    assert '"users"."id" > :param_0' in executor.sql[1]


async def test_chunk_by_id_missing_cursor_column(recorder):
    query, executor = recorder
    executor.queue([{"name": "A"}])
    with pytest.raises(MappingError):
        await query.chunk_by_id(1, lambda rows: None)


async def test_chunk_by_id_rejects_null_cursor_value(recorder):
    query, executor = recorder
    executor.queue([{"id": 1, "rank": None}], [{"id": 1, "rank": None}])
    pages = []
    with pytest.raises(MappingError) as exc:
        await query.chunk_by_id(1, pages.append, column="rank")
    assert exc.value.column == "rank"
    assert pages == [[{"id": 1, "rank": None}]]
    assert len(executor.statements) == 1


# ---------------------------------------------------------------------------
# Lazy iteration
# ---------------------------------------------------------------------------


async def test_lazy_yields_rows():
    query, executor = recording_query(Dialect.SQLITE, settings=Settings(default_chunk_size=2))
    executor.queue([{"id": 1}, {"id": 2}], [{"id": 3}], [])
    assert [row["id"] async for row in query.lazy()] == [1, 2, 3]
    assert executor.sql[0].endswith("LIMIT 2 OFFSET 0")


async def test_lazy_by_id(recorder):
    query, executor = recorder
    executor.queue([{"id": 1}, {"id": 2}], [])
    assert [row["id"] async for row in query.lazy_by_id(2)] == [1, 2]
    assert executor.statements[1][1] == {"param_0": 2}


async def test_lazy_by_id_desc(recorder):
    query, executor = recorder
    executor.queue([{"id": 3}], [])
    assert [row["id"] async for row in query.lazy_by_id_desc(1)] == [3]
    assert '"id" < :param_0' in executor.sql[1]
