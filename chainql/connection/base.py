"""Abstract execution collaborator.

An :class:`Executor` owns one driver connection for a configured database
and runs rendered statements on it.  The query core only relies on
``open()``/``close()``/``session()``/``exclusive()``,
``execute(sql, params)`` and ``dialect``.

Sessions are re-entrant: a depth counter keeps the connection open across
nested ``session()`` scopes.  The connection is closed on every exit path of
the outermost scope.  Every statement runs under the executor's exclusive
lock, so a task holding ``exclusive()`` (an INSERT followed by a
last-insert-id query) sees no statements from other tasks in between.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from chainql.compile.base import bind_names
from chainql.errors import ExecutionError
from chainql.schema.config import ConnectionConfig, Settings
from chainql.schema.dialect import Dialect
from chainql.schema.values import Row

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Outcome of one executed statement.

    Attributes:
        rows: Result rows in column order (empty for writes).
        columns: Result column names.
        rowcount: Affected rows as reported by the driver (``-1`` if unknown).
    """

    rows: list[Row] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)
    rowcount: int = -1

    def scalar(self) -> Any:
        """Return the first column of the first row, or ``None``."""
        if not self.rows:
            return None
        return next(iter(self.rows[0].values()), None)


class Executor(ABC):
    """Base class for dialect-specific executors.

    Args:
        config: Connection settings.
        settings: Runtime settings (query logging).
    """

    def __init__(self, config: ConnectionConfig, settings: Settings | None = None) -> None:
        self._config = config
        self._settings = settings or Settings()
        self._depth = 0
        self._lock = asyncio.Lock()
        self._exclusive_lock = asyncio.Lock()
        self._exclusive_owner: asyncio.Task[Any] | None = None

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def driver_errors(self) -> tuple[type[BaseException], ...]:
        """Driver exception types wrapped into :class:`ExecutionError`."""

    @abstractmethod
    async def _connect(self) -> None:
        """Open the underlying driver connection."""

    @abstractmethod
    async def _disconnect(self) -> None:
        """Close the underlying driver connection."""

    @abstractmethod
    async def _execute(self, sql: str, bindings: dict[str, Any]) -> ExecutionResult:
        """Run ``sql`` with named ``bindings`` on the open connection."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def dialect(self) -> Dialect:
        return self._config.driver

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def is_open(self) -> bool:
        return self._depth > 0

    async def open(self) -> None:
        """Enter one session level, connecting on the outermost one.

        Raises:
            ExecutionError: If the driver cannot connect.
        """
        async with self._lock:
            if self._depth == 0:
                try:
                    await self._connect()
                except (*self.driver_errors, OSError) as exc:
                    logger.error("Failed to connect to %s database: %s", self.dialect.value, exc)
                    raise ExecutionError(f"Failed to connect: {exc}", original=exc) from exc
                logger.info("Connected to %s database %r", self.dialect.value, self._config.database)
            self._depth += 1

    async def close(self) -> None:
        """Leave one session level, disconnecting when the last one exits."""
        async with self._lock:
            if self._depth == 0:
                return
            self._depth -= 1
            if self._depth == 0:
                await self._disconnect()
                logger.debug("Closed %s connection", self.dialect.value)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Executor]:
        """Hold the connection open for the duration of the block."""
        await self.open()
        try:
            yield self
        finally:
            await self.close()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[Executor]:
        """Hold the connection open and keep other tasks' statements out.

        Statements that depend on connection state left by the previous one
        (an INSERT followed by a last-insert-id query) run inside one
        exclusive scope.  Re-entrant for the owning task.
        """
        task = asyncio.current_task()
        if task is not None and self._exclusive_owner is task:
            async with self.session():
                yield self
            return
        async with self._exclusive_lock:
            self._exclusive_owner = task
            try:
                async with self.session():
                    yield self
            finally:
                self._exclusive_owner = None

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecutionResult:
        """Execute ``sql`` with positional ``params`` named ``param_0..N-1``.

        Opens a session around the call if none is active.  Waits while another
        task holds an :meth:`exclusive` scope.

        Raises:
            ExecutionError: If the driver rejects or fails the statement.
        """
        bindings = bind_names(params)
        if self._settings.log_queries:
            logger.debug("SQL: %s | params: %r", sql, bindings)
        async with self.exclusive():
            try:
                return await self._execute(sql, bindings)
            except self.driver_errors as exc:
                logger.debug("Statement failed: %s", exc)
                raise ExecutionError(str(exc), sql=sql, original=exc) from exc
