"""Integration tests: build → execute against a real SQLite database file.

Covers reads, aggregates, chunked iteration, generated ids, upserts, JSON
columns and unscoped writes through aiosqlite.
"""
from __future__ import annotations

import asyncio
import json

import pytest

from chainql.connection.manager import DatabaseManager
from chainql.errors import ExecutionError, MappingError
from chainql.schema.config import ConnectionConfig, DatabaseConfig
from tests.fixtures import load_ddl

pytestmark = pytest.mark.integration

USERS = [
    {"name": "Ann", "email": "ann@example.com", "votes": 120, "balance": 10.5, "active": 1,
     "meta": json.dumps({"address": {"city": "Paris"}, "tags": ["admin", "dev"]}), "created_at": "2024-01-02 09:00:00"},
    {"name": "Bob", "email": "bob@example.com", "votes": 40, "balance": 0.0, "active": 1,
     "meta": json.dumps({"address": {"city": "Rome"}, "tags": ["dev"]}), "created_at": "2024-02-10 18:30:00"},
    {"name": "Cid", "email": "cid@example.com", "votes": 75, "balance": 3.0, "active": 0,
     "meta": json.dumps({"address": {"city": "Oslo"}, "tags": []}), "created_at": "2023-12-31 23:59:00"},
    {"name": "Dee", "email": "dee@example.com", "votes": 5, "balance": 1.0, "active": 1,
     "meta": None, "created_at": "2024-02-11 07:15:00"},
    {"name": "Eve", "email": "eve@example.com", "votes": 300, "balance": 99.0, "active": 0,
     "meta": json.dumps({"address": {"city": "Paris"}, "tags": ["ops"]}), "created_at": "2024-03-01 12:00:00"},
    {"name": "Fay", "email": "fay@example.com", "votes": 60, "balance": 7.0, "active": 1,
     "meta": json.dumps({"tags": ["dev", "ops"]}), "created_at": "2024-03-15 08:00:00"},
    {"name": "Gus", "email": "gus@example.com", "votes": 10, "balance": 2.5, "active": 1,
     "meta": None, "created_at": "2024-04-01 10:00:00"},
]


@pytest.fixture()
async def db(tmp_path):
    manager = DatabaseManager(
        DatabaseConfig(
            default="sqlite",
            connections={
                "sqlite": ConnectionConfig(
                    driver="sqlite",
                    database=str(tmp_path / "app.db"),
                    foreign_key_constraints=True,
                )
            },
        )
    )
    executor = manager.connection()
    for statement in load_ddl("sqlite"):
        await executor.execute(statement)
    await manager.table("users").insert(USERS)
    await manager.table("posts").insert(
        [
            {"user_id": 1, "title": "Hello", "published": 1},
            {"user_id": 1, "title": "Again", "published": 0},
            {"user_id": 2, "title": "Intro", "published": 1},
        ]
    )
    yield manager
    await manager.close()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def test_where_group_and_order(db):
    rows = await (
        db.table("users")
        .where("votes", ">", 100)
        .or_where(lambda q: q.where("name", "Bob").where("votes", ">", 10))
        .order_by("name")
        .pluck("name")
    )
    assert rows == ["Ann", "Bob", "Eve"]


async def test_find_and_value(db):
    assert (await db.table("users").find(2))["name"] == "Bob"
    assert await db.table("users").where("email", "cid@example.com").value("votes") == 75
    assert await db.table("users").find(999) is None


async def test_join_and_exists(db):
    titles = await (
        db.table("users")
        .join("posts", lambda j: j.on("users.id", "posts.user_id").where("posts.published", 1))
        .order_by("posts.id")
        .pluck("posts.title")
    )
    assert titles == ["Hello", "Intro"]
    authors = await (
        db.table("users")
        .where_exists(lambda q: q.from_("posts").select_raw("1").where_column("posts.user_id", "users.id"))
        .pluck("name")
    )
    assert sorted(authors) == ["Ann", "Bob"]


async def test_where_in_subquery(db):
    names = await (
        db.table("users")
        .where_in("id", lambda q: q.from_("posts").select("user_id").where("published", 1))
        .order_by("id")
        .pluck("name")
    )
    assert names == ["Ann", "Bob"]


async def test_empty_where_in(db):
    assert await db.table("users").where_in("id", []).get() == []
    assert await db.table("users").where_not_in("id", []).count() == len(USERS)


async def test_json_and_date_predicates(db):
    assert await db.table("users").where_json("meta", "address.city", "Paris").order_by("id").pluck("name") == ["Ann", "Eve"]
    assert await db.table("users").where_json("meta", "tags.0", "dev").order_by("id").pluck("name") == ["Bob", "Fay"]
    assert await db.table("users").where_json("meta", "address.city", None).count() == 3
    assert await db.table("users").where_year("created_at", 2023).pluck("name") == ["Cid"]
    assert await db.table("users").where_month("created_at", 2).count() == 2
    assert await db.table("users").where_date("created_at", "2024-02-11").pluck("name") == ["Dee"]


async def test_aggregates(db):
    assert await db.table("users").count() == 7
    assert await db.table("users").where("active", 1).count() == 5
    assert await db.table("users").max("votes") == 300
    assert await db.table("users").min("votes") == 5
    assert await db.table("users").sum("votes") == 610
    assert await db.table("users").where("votes", ">", 1000).sum("votes") == 0
    assert await db.table("posts").select("user_id").group_by("user_id").count() == 2
    assert await db.table("users").where("name", "Ann").exists() is True
    assert await db.table("users").where("name", "Zed").doesnt_exist() is True


async def test_paging(db):
    assert await db.table("users").order_by("id").for_page(2, 3).pluck("id") == [4, 5, 6]
    assert await db.table("users").order_by("id").offset(5).pluck("id") == [6, 7]


# ---------------------------------------------------------------------------
# Chunked iteration
# ---------------------------------------------------------------------------


async def test_chunk_pages(db):
    sizes = []
    await db.table("users").order_by("id").chunk(2, lambda rows: sizes.append(len(rows)))
    assert sizes == [2, 2, 2, 1]


async def test_chunk_by_id_ascending_and_descending(db):
    pages: list[list[int]] = []
    await db.table("users").chunk_by_id(3, lambda rows: pages.append([r["id"] for r in rows]))
    assert pages == [[1, 2, 3], [4, 5, 6], [7]]
    pages.clear()
    await db.table("users").chunk_by_id_desc(3, lambda rows: pages.append([r["id"] for r in rows]))
    assert pages == [[7, 6, 5], [4, 3, 2], [1]]


async def test_chunk_by_id_with_or_conditions(db):
    seen: list[int] = []
    await (
        db.table("users")
        .where("name", "Ann")
        .or_where("votes", "<", 50)
        .chunk_by_id(1, lambda rows: seen.extend(r["id"] for r in rows))
    )
    assert seen == [1, 2, 4, 7]


async def test_lazy(db):
    ids = [row["id"] async for row in db.table("users").lazy_by_id(2)]
    assert ids == list(range(1, 8))


async def test_chunk_by_id_stops_on_null_cursor_column(db):
    pages: list[list[int]] = []
    with pytest.raises(MappingError):
        await db.table("users").chunk_by_id(2, lambda rows: pages.append([r["id"] for r in rows]), column="meta")
    assert len(pages) == 1
    assert sorted(pages[0]) == [4, 7]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def test_insert_get_id_then_find(db):
    new_id = await db.table("users").insert_get_id({"name": "Hal", "email": "hal@example.com"})
    assert new_id == 8
    assert (await db.table("users").find(new_id))["email"] == "hal@example.com"


async def test_concurrent_insert_get_id_returns_own_ids(db):
    ids = await asyncio.gather(
        *(db.table("users").insert_get_id({"name": f"n{i}", "email": f"n{i}@example.com"}) for i in range(5))
    )
    assert sorted(ids) == [8, 9, 10, 11, 12]
    for i, new_id in enumerate(ids):
        assert (await db.table("users").find(new_id))["name"] == f"n{i}"


async def test_insert_or_ignore_skips_duplicates(db):
    assert await db.table("users").insert_or_ignore({"name": "X", "email": "ann@example.com"}) == 0
    assert await db.table("users").count() == 7


async def test_upsert_updates_only_listed_columns(db):
    await db.table("users").upsert(
        [
            {"email": "ann@example.com", "name": "Annie", "votes": 1},
            {"email": "ivy@example.com", "name": "Ivy", "votes": 2},
        ],
        "email",
        ["name"],
    )
    ann = await db.table("users").where("email", "ann@example.com").first()
    assert (ann["name"], ann["votes"]) == ("Annie", 120)
    assert await db.table("users").where("email", "ivy@example.com").value("votes") == 2


async def test_update_increment_and_json(db):
    assert await db.table("users").where("active", 0).update({"votes": 0}) == 2
    await db.table("users").where("id", 1).increment("votes", 5, {"name": "Ann B."})
    await db.table("users").where("id", 1).update_json("meta", "address.city", "Lyon")
    row = await db.table("users").find(1)
    assert (row["votes"], row["name"]) == (125, "Ann B.")
    assert json.loads(row["meta"])["address"]["city"] == "Lyon"


async def test_unscoped_update_counts_every_row(db):
    assert await db.table("users").update({"active": 1}) == 7


async def test_update_or_insert(db):
    assert await db.table("users").update_or_insert({"email": "bob@example.com"}, {"votes": 41}) is False
    assert await db.table("users").where("email", "bob@example.com").value("votes") == 41
    assert await db.table("users").update_or_insert({"email": "jo@example.com"}, {"name": "Jo"}) is True
    assert await db.table("users").count() == 8


async def test_insert_using_and_delete(db):
    copied = await db.table("archived_users").insert_using(
        ["id", "name"], lambda q: q.from_("users").select("id", "name").where("active", 0)
    )
    assert copied == 2
    assert await db.table("archived_users").order_by("id").pluck("name") == ["Cid", "Eve"]
    assert await db.table("archived_users").delete(3) == 1
    await db.table("archived_users").truncate()
    assert await db.table("archived_users").count() == 0


async def test_constraint_violation_raises_execution_error(db):
    with pytest.raises(ExecutionError) as exc:
        await db.table("users").insert({"name": "Dup", "email": "bob@example.com"})
    assert "UNIQUE" in str(exc.value)
    assert exc.value.sql.startswith('INSERT INTO "users"')
