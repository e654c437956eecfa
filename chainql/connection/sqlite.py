"""SQLite executor backed by aiosqlite."""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any

import aiosqlite

from chainql.connection.base import ExecutionResult, Executor
from chainql.errors import ExecutionError

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


class SQLiteExecutor(Executor):
    """Runs statements on a SQLite database file through aiosqlite.

    The connection runs in autocommit mode (``isolation_level=None``);
    ``PRAGMA foreign_keys = ON`` is issued when the connection config asks
    for foreign-key enforcement.  An in-memory database lives only as long
    as the outermost session.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._connection: aiosqlite.Connection | None = None

    @property
    def driver_errors(self) -> tuple[type[BaseException], ...]:
        return (sqlite3.Error,)

    async def _connect(self) -> None:
        database = self._config.database or MEMORY
        if database != MEMORY and not database.startswith("file:"):
            path = Path(database).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            database = str(path)
        kwargs: dict[str, Any] = dict(self._config.options)
        if self._config.timeout is not None:
            kwargs["timeout"] = self._config.timeout
        self._connection = await aiosqlite.connect(database, isolation_level=None, **kwargs)
        if self._config.foreign_key_constraints:
            await self._connection.execute("PRAGMA foreign_keys = ON")
        logger.debug("SQLite library version %s", sqlite3.sqlite_version)

    async def _disconnect(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def _execute(self, sql: str, bindings: dict[str, Any]) -> ExecutionResult:
        if self._connection is None:
            raise ExecutionError("SQLite connection is not open.", sql=sql)
        cursor = await self._connection.execute(sql, bindings)
        try:
            rows = await cursor.fetchall()
            columns = [d[0] for d in cursor.description] if cursor.description else []
            return ExecutionResult(
                rows=[dict(zip(columns, row)) for row in rows],
                columns=columns,
                rowcount=cursor.rowcount,
            )
        finally:
            await cursor.close()
