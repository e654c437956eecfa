"""Unit tests for INSERT / UPSERT / UPDATE / DELETE / TRUNCATE."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

import chainql
from chainql.connection.base import ExecutionResult
from chainql.errors import MappingError, UsageError
from chainql.query.builder import QueryBuilder
from chainql.query.context import QueryContext
from chainql.schema.config import Settings
from chainql.schema.dialect import Dialect
from tests.fixtures import RecordingExecutor, make_query, recording_query


class RowidExecutor(RecordingExecutor):
    """Tracks a connection-wide last rowid and yields to the loop per statement."""

    def __init__(self) -> None:
        super().__init__(Dialect.SQLITE)
        self.rowid = 0

    async def _execute(self, sql: str, bindings: dict[str, Any]) -> ExecutionResult:
        await asyncio.sleep(0)
        self.statements.append((sql, bindings))
        if sql.startswith("INSERT"):
            self.rowid += 1
            return ExecutionResult(rowcount=1)
        return ExecutionResult(rows=[{"id": self.rowid}], columns=["id"])


# ---------------------------------------------------------------------------
# INSERT
# ---------------------------------------------------------------------------


async def test_insert_single_row(recorder):
    query, executor = recorder
    executor.queue(ExecutionResult(rowcount=1))
    assert await query.insert({"name": "Ann", "email": "ann@example.com"}) == 1
    sql, bindings = executor.statements[0]
    assert sql == 'INSERT INTO "users" ("name", "email") VALUES (:param_0, :param_1)'
    assert bindings == {"param_0": "Ann", "param_1": "ann@example.com"}


async def test_insert_many_rows_follow_first_row_order(recorder):
    query, executor = recorder
    await query.insert([{"name": "A", "email": "a@x"}, {"email": "b@x", "name": "B"}])
    sql, bindings = executor.statements[0]
    assert sql == 'INSERT INTO "users" ("name", "email") VALUES (:param_0, :param_1), (:param_2, :param_3)'
    assert list(bindings.values()) == ["A", "a@x", "B", "b@x"]


@pytest.mark.parametrize(
    "rows",
    [[], [{}], [{"name": "A"}, {"email": "b@x"}]],
    ids=["no-rows", "empty-row", "mismatched"],
)
async def test_insert_rejects_bad_rows(recorder, rows):
    query, executor = recorder
    with pytest.raises(UsageError):
        await query.insert(rows)
    assert executor.statements == []


async def test_insert_serialises_json_values(recorder):
    query, executor = recorder
    await query.insert({"name": "A", "meta": {"tags": ["x"]}})
    assert executor.statements[0][1]["param_1"] == '{"tags":["x"]}'


async def test_insert_or_ignore_per_dialect():
    for dialect, expected in [
        (Dialect.SQLITE, 'INSERT OR IGNORE INTO "users" ("email") VALUES (:param_0)'),
        (Dialect.MYSQL, "INSERT IGNORE INTO `users` (`email`) VALUES (%(param_0)s)"),
        (Dialect.PGSQL, 'INSERT INTO "users" ("email") VALUES (%(param_0)s) ON CONFLICT DO NOTHING'),
    ]:
        query, executor = recording_query(dialect)
        await query.insert_or_ignore({"email": "a@x"})
        assert executor.sql == [expected]


async def test_insert_strips_table_alias():
    query, executor = recording_query(Dialect.SQLITE, "users as u")
    await query.insert({"name": "A"})
    assert executor.sql[0].startswith('INSERT INTO "users" (')


async def test_insert_get_id_uses_returning_on_postgres(pg_recorder):
    query, executor = pg_recorder
    executor.queue([{"id": 7}])
    assert await query.insert_get_id({"name": "A"}) == 7
    assert executor.sql == ['INSERT INTO "users" ("name") VALUES (%(param_0)s) RETURNING "id"']


async def test_insert_get_id_reads_last_rowid_on_one_connection(recorder):
    query, executor = recorder
    executor.queue(ExecutionResult(rowcount=1), [{"id": 9}])
    assert await query.insert_get_id({"name": "A"}) == 9
    assert executor.sql == [
        'INSERT INTO "users" ("name") VALUES (:param_0)',
        "SELECT last_insert_rowid() AS id",
    ]
    assert executor.connects == 1
    assert executor.disconnects == 1


async def test_insert_get_id_mysql(my_recorder):
    query, executor = my_recorder
    executor.queue(ExecutionResult(rowcount=1), [{"id": 3}])
    assert await query.insert_get_id({"name": "A"}) == 3
    assert executor.sql[1] == "SELECT LAST_INSERT_ID() AS id"


async def test_insert_get_id_without_generated_id(recorder):
    query, executor = recorder
    executor.queue(ExecutionResult(rowcount=1), [{"id": None}])
    with pytest.raises(MappingError):
        await query.insert_get_id({"name": "A"})


async def test_insert_get_id_takes_one_row(recorder):
    query, _ = recorder
    with pytest.raises(UsageError):
        await query.insert_get_id([{"name": "A"}])


async def test_concurrent_insert_get_id_pairs_statements():
    executor = RowidExecutor()
    context = QueryContext.for_dialect(Dialect.SQLITE, executor)
    ids = await asyncio.gather(
        *(QueryBuilder(context, "users").insert_get_id({"name": f"n{i}"}) for i in range(5))
    )
    assert sorted(ids) == [1, 2, 3, 4, 5]
    kinds = [sql.split()[0] for sql in executor.sql]
    assert kinds == ["INSERT", "SELECT"] * 5
    inserted = [bindings["param_0"] for sql, bindings in executor.statements if sql.startswith("INSERT")]
    assert [f"n{i}" for i in sorted(range(5), key=lambda i: ids[i])] == inserted


async def test_insert_using():
    query, executor = recording_query(Dialect.SQLITE, "archived_users")
    await query.insert_using(
        ["id", "name"],
        lambda q: q.from_("users").select("id", "name").where("active", False),
    )
    sql, bindings = executor.statements[0]
    assert sql == (
        'INSERT INTO "archived_users" ("id", "name") '
        'SELECT "id", "name" FROM "users" WHERE "active" = :param_0'
    )
    assert bindings == {"param_0": False}


# ---------------------------------------------------------------------------
# UPSERT
# ---------------------------------------------------------------------------


async def test_upsert_sqlite(recorder):
    query, executor = recorder
    await query.upsert([{"email": "a@x", "name": "A", "votes": 1}], "email", ["name"])
    assert executor.sql == [
        'INSERT INTO "users" ("email", "name", "votes") VALUES (:param_0, :param_1, :param_2) '
        'ON CONFLICT ("email") DO UPDATE SET "name" = excluded."name"'
    ]


async def test_upsert_defaults_to_non_unique_columns(pg_recorder):
    query, executor = pg_recorder
    await query.upsert({"email": "a@x", "name": "A"}, ["email"])
    assert executor.sql[0].endswith('ON CONFLICT ("email") DO UPDATE SET "name" = excluded."name"')


async def test_upsert_mysql(my_recorder):
    query, executor = my_recorder
    await query.upsert({"email": "a@x", "name": "A", "votes": 1}, "email", ["name", "votes"])
    assert executor.sql[0].endswith("ON DUPLICATE KEY UPDATE `name` = VALUES(`name`), `votes` = VALUES(`votes`)")


async def test_upsert_nothing_to_update(my_recorder):
    query, executor = my_recorder
    await query.upsert({"email": "a@x"}, "email")
    assert executor.sql[0].endswith("ON DUPLICATE KEY UPDATE `email` = `email`")


async def test_upsert_unique_column_must_be_inserted(recorder):
    query, executor = recorder
    with pytest.raises(UsageError):
        await query.upsert({"name": "A"}, "email")
    assert executor.statements == []


# ---------------------------------------------------------------------------
# UPDATE
# ---------------------------------------------------------------------------


async def test_update_binds_set_values_before_where(recorder):
    query, executor = recorder
    executor.queue(ExecutionResult(rowcount=1))
    assert await query.where("id", 1).update({"name": "B", "users.votes": 2}) == 1
    sql, bindings = executor.statements[0]
    assert sql == 'UPDATE "users" SET "name" = :param_0, "votes" = :param_1 WHERE "id" = :param_2'
    assert bindings == {"param_0": "B", "param_1": 2, "param_2": 1}


async def test_update_with_raw_expression_value(recorder):
    query, executor = recorder
    await query.where("id", 3).update({"votes": chainql.raw("votes + ?", [1])})
    assert executor.statements == [
        ('UPDATE "users" SET "votes" = votes + :param_0 WHERE "id" = :param_1', {"param_0": 1, "param_1": 3})
    ]


async def test_update_rejects_empty_values(recorder):
    query, _ = recorder
    with pytest.raises(UsageError):
        await query.where("id", 1).update({})


async def test_update_with_join_is_rejected(recorder):
    query, executor = recorder
    with pytest.raises(UsageError):
        await query.join("posts", "users.id", "posts.user_id").where("id", 1).update({"name": "x"})
    assert executor.statements == []


async def test_update_with_limit_is_rejected(recorder):
    query, _ = recorder
    with pytest.raises(UsageError):
        await query.where("id", 1).limit(1).update({"name": "x"})


async def test_unscoped_update_logs_warning(recorder, caplog):
    query, executor = recorder
    with caplog.at_level(logging.WARNING, logger="chainql.query.writes"):
        await query.update({"active": False})
    assert executor.sql == ['UPDATE "users" SET "active" = :param_0']
    assert "without WHERE" in caplog.text


async def test_unscoped_update_guard_on_builder(recorder):
    query, executor = recorder
    with pytest.raises(UsageError):
        await query.guard_unscoped_writes().update({"active": False})
    assert executor.statements == []


async def test_unscoped_delete_guard_from_settings():
    query, executor = recording_query(Dialect.SQLITE, settings=Settings(guard_unscoped_writes=True))
    with pytest.raises(UsageError):
        await query.delete()
    assert executor.statements == []
    await query.where("id", 1).delete()
    assert executor.sql == ['DELETE FROM "users" WHERE "id" = :param_0']


async def test_builder_can_lift_guard_from_settings():
    query, executor = recording_query(Dialect.SQLITE, settings=Settings(guard_unscoped_writes=True))
    executor.queue(ExecutionResult(rowcount=4))
    assert await query.guard_unscoped_writes(False).update({"active": True}) == 4
    assert executor.sql == ['UPDATE "users" SET "active" = :param_0']


async def test_increment(recorder):
    query, executor = recorder
    await query.where("id", 1).increment("votes", 5)
    sql, bindings = executor.statements[0]
    assert sql == 'UPDATE "users" SET "votes" = "votes" + :param_0 WHERE "id" = :param_1'
    assert bindings == {"param_0": 5, "param_1": 1}


async def test_increment_with_extra_columns(recorder):
    query, executor = recorder
    await query.where("id", 1).increment("votes", 1, {"name": "x"})
    assert executor.sql[0] == (
        'UPDATE "users" SET "votes" = "votes" + :param_0, "name" = :param_1 WHERE "id" = :param_2'
    )


async def test_decrement_each(pg_recorder):
    query, executor = pg_recorder
    await query.where("id", 1).decrement_each({"votes": 2, "balance": 1.5})
    assert executor.sql[0] == (
        'UPDATE "users" SET "votes" = "votes" - %(param_0)s, "balance" = "balance" - %(param_1)s '
        'WHERE "id" = %(param_2)s'
    )


@pytest.mark.parametrize("amount", ["5", None, True])
async def test_increment_rejects_non_numeric(recorder, amount):
    query, executor = recorder
    with pytest.raises(UsageError):
        await query.where("id", 1).increment("votes", amount)
    assert executor.statements == []


async def test_update_json_sqlite(recorder):
    query, executor = recorder
    await query.where("id", 1).update_json("meta", "address.city", "Rome")
    sql, bindings = executor.statements[0]
    assert sql == 'UPDATE "users" SET "meta" = json_set("meta", :param_0, json(:param_1)) WHERE "id" = :param_2'
    assert list(bindings.values()) == ['$."address"."city"', '"Rome"', 1]


async def test_update_json_postgres(pg_recorder):
    query, executor = pg_recorder
    await query.where("id", 1).update_json("meta", "address.zip", 75001)
    sql, bindings = executor.statements[0]
    assert sql == (
        'UPDATE "users" SET "meta" = jsonb_set(CAST("meta" AS jsonb), CAST(%(param_0)s AS text[]), '
        'CAST(%(param_1)s AS jsonb)) WHERE "id" = %(param_2)s'
    )
    assert list(bindings.values()) == ["{address,zip}", "75001", 1]


async def test_update_json_mariadb():
    query, executor = recording_query(Dialect.MARIADB)
    await query.where("id", 1).update_json("meta", "a", [1])
    assert "JSON_SET(`meta`, %(param_0)s, JSON_EXTRACT(%(param_1)s, '$'))" in executor.sql[0]


async def test_update_or_insert_inserts_when_missing(recorder):
    query, executor = recorder
    executor.queue([])
    assert await query.update_or_insert({"email": "a@x"}, {"name": "A"}) is True
    assert executor.sql == [
        'SELECT 1 FROM "users" WHERE ("email" = :param_0) LIMIT 1',
        'INSERT INTO "users" ("email", "name") VALUES (:param_0, :param_1)',
    ]


async def test_update_or_insert_updates_when_present(recorder):
    query, executor = recorder
    executor.queue([{"1": 1}])
    assert await query.update_or_insert({"email": "a@x"}, {"name": "A"}) is False
    assert executor.sql[1] == 'UPDATE "users" SET "name" = :param_0 WHERE ("email" = :param_1)'


# ---------------------------------------------------------------------------
# DELETE / TRUNCATE
# ---------------------------------------------------------------------------


async def test_delete(recorder):
    query, executor = recorder
    executor.queue(ExecutionResult(rowcount=2))
    assert await query.where("votes", "<", 1).delete() == 2
    assert executor.sql == ['DELETE FROM "users" WHERE "votes" < :param_0']


async def test_delete_by_id_leaves_builder_untouched(recorder):
    query, executor = recorder
    await query.delete(5)
    assert executor.statements == [('DELETE FROM "users" WHERE "id" = :param_0', {"param_0": 5})]
    assert query.to_sql().sql == 'SELECT * FROM "users"'


async def test_truncate_per_dialect():
    for dialect, expected in [
        (Dialect.SQLITE, 'DELETE FROM "users"'),
        (Dialect.PGSQL, 'TRUNCATE TABLE "users" RESTART IDENTITY CASCADE'),
        (Dialect.MYSQL, "TRUNCATE TABLE `users`"),
    ]:
        query, executor = recording_query(dialect)
        await query.truncate()
        assert executor.sql == [expected]


async def test_write_without_executor():
    with pytest.raises(UsageError):
        await make_query(Dialect.SQLITE).insert({"name": "A"})
