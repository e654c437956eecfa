"""Entry point tying configuration, executors and builders together."""
from __future__ import annotations

import logging

from chainql.compile.registry import CompilerFactory
from chainql.connection.base import Executor
from chainql.connection.registry import ExecutorFactory
from chainql.query.builder import QueryBuilder
from chainql.query.context import QueryContext
from chainql.schema.config import DatabaseConfig, Settings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Creates query builders bound to configured connections.

    One executor is created lazily per connection name and reused by every
    builder on that connection.  Nothing connects until the first terminal
    call.

    Example::

        db = DatabaseManager(DatabaseConfig(
            default="sqlite",
            connections={"sqlite": ConnectionConfig(driver="sqlite", database="app.db")},
        ))
        rows = await db.table("users").where("active", True).get()
        await db.close()

    Args:
        config: Named connections; defaults to the stock four connections.
        settings: Runtime toggles shared by every builder.
    """

    def __init__(self, config: DatabaseConfig | None = None, settings: Settings | None = None) -> None:
        self._config = config or DatabaseConfig()
        self._settings = settings or Settings()
        self._executors: dict[str, Executor] = {}

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    @property
    def settings(self) -> Settings:
        return self._settings

    def connection(self, name: str | None = None) -> Executor:
        """Return the (cached) executor for connection ``name``.

        Raises:
            ConfigError: If the connection or its driver is unknown.
        """
        key = name or self._config.default
        executor = self._executors.get(key)
        if executor is None:
            executor = ExecutorFactory.create(self._config.get(key), self._settings)
            self._executors[key] = executor
            logger.debug("Created %s executor for connection %r", executor.dialect.value, key)
        return executor

    def context(self, name: str | None = None) -> QueryContext:
        """Return the query context of connection ``name``."""
        executor = self.connection(name)
        return QueryContext(
            compiler=CompilerFactory.create(executor.dialect),
            executor=executor,
            settings=self._settings,
        )

    def table(self, name: str, connection: str | None = None) -> QueryBuilder:
        """Start a builder on ``name``, applying the connection's table prefix."""
        prefix = self._config.get(connection).prefix
        return QueryBuilder(self.context(connection), f"{prefix}{name}" if prefix else name)

    def query(self, connection: str | None = None) -> QueryBuilder:
        """Start a builder without a table (call ``from_()`` on it)."""
        return QueryBuilder(self.context(connection))

    async def close(self) -> None:
        """Close every open executor connection."""
        for name, executor in self._executors.items():
            while executor.is_open:
                await executor.close()
            logger.debug("Released connection %r", name)
