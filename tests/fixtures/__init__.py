"""Test fixtures: sample DDL, a recording executor and context helpers."""

from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Any, Literal

from chainql.connection.base import ExecutionResult, Executor
from chainql.query.builder import QueryBuilder
from chainql.query.context import QueryContext
from chainql.schema.config import ConnectionConfig, Settings
from chainql.schema.dialect import Dialect

_FIXTURES_DIR = Path(__file__).parent


def load_ddl(target: Literal["sqlite", "postgres"] = "sqlite") -> list[str]:
    """Return the sample DDL statements for the given backend.

    Args:
        target: ``'sqlite'`` (default) or ``'postgres'``.

    Returns:
        One string per statement, ready to execute one at a time.
    """
    text = (_FIXTURES_DIR / f"ddl_{target}.sql").read_text()
    return [s.strip() for s in text.split(";") if s.strip()]


class FakeDriverError(Exception):
    """Stands in for a driver exception."""


class RecordingExecutor(Executor):
    """Executor that records statements and replays queued results.

    ``queue(...)`` adds results returned by subsequent ``execute`` calls in
    order; when the queue is empty an empty result is returned.
    """

    def __init__(self, dialect: Dialect | str = Dialect.SQLITE, settings: Settings | None = None) -> None:
        super().__init__(ConnectionConfig(driver=dialect), settings)
        self.statements: list[tuple[str, dict[str, Any]]] = []
        self.results: deque[ExecutionResult | BaseException] = deque()
        self.connects = 0
        self.disconnects = 0

    @property
    def driver_errors(self) -> tuple[type[BaseException], ...]:
        return (FakeDriverError,)

    def queue(self, *results: ExecutionResult | list[dict[str, Any]] | BaseException) -> RecordingExecutor:
        for result in results:
            if isinstance(result, list):
                result = ExecutionResult(rows=result, columns=list(result[0]) if result else [])
            self.results.append(result)
        return self

    @property
    def sql(self) -> list[str]:
        return [s for s, _ in self.statements]

    async def _connect(self) -> None:
        self.connects += 1

    async def _disconnect(self) -> None:
        self.disconnects += 1

    async def _execute(self, sql: str, bindings: dict[str, Any]) -> ExecutionResult:
        self.statements.append((sql, bindings))
        if not self.results:
            return ExecutionResult(rowcount=0)
        result = self.results.popleft()
        if isinstance(result, BaseException):
            raise result
        return result


def make_query(
    dialect: Dialect | str = Dialect.SQLITE,
    table: str | None = "users",
    executor: Executor | None = None,
    settings: Settings | None = None,
) -> QueryBuilder:
    """Return a builder on ``table`` for ``dialect``."""
    return QueryBuilder(QueryContext.for_dialect(dialect, executor, settings), table)


def recording_query(
    dialect: Dialect | str = Dialect.SQLITE,
    table: str | None = "users",
    settings: Settings | None = None,
) -> tuple[QueryBuilder, RecordingExecutor]:
    """Return a builder wired to a fresh :class:`RecordingExecutor`."""
    executor = RecordingExecutor(dialect, settings)
    return make_query(dialect, table, executor, settings), executor
