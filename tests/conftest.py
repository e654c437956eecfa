"""Shared pytest fixtures for chainQL unit and integration tests."""
from __future__ import annotations

import pytest

from chainql.schema.dialect import Dialect
from tests.fixtures import recording_query

ALL_DIALECTS = [Dialect.PGSQL, Dialect.MYSQL, Dialect.MARIADB, Dialect.SQLITE]


@pytest.fixture(params=ALL_DIALECTS, ids=lambda d: d.value)
def dialect(request: pytest.FixtureRequest) -> Dialect:
    """Every supported dialect in turn."""
    return request.param


@pytest.fixture()
def recorder():
    """A SQLite ``users`` builder wired to a recording executor."""
    return recording_query(Dialect.SQLITE)


@pytest.fixture()
def pg_recorder():
    """A PostgreSQL ``users`` builder wired to a recording executor."""
    return recording_query(Dialect.PGSQL)


@pytest.fixture()
def my_recorder():
    """A MySQL ``users`` builder wired to a recording executor."""
    return recording_query(Dialect.MYSQL)

