"""Executor registry.

Maps each :class:`~chainql.schema.dialect.Dialect` to the
:class:`~chainql.connection.base.Executor` class that talks to it, so a new
driver can be plugged in without touching the manager::

    ExecutorFactory.register_class(Dialect.MYSQL, MyAsyncMyExecutor)
"""
from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from chainql.connection.base import Executor
from chainql.errors import ConfigError
from chainql.schema.config import ConnectionConfig, Settings
from chainql.schema.dialect import Dialect


class ExecutorFactory:
    """Registry mapping dialects to :class:`Executor` classes."""

    _executors: ClassVar[dict[Dialect, type[Executor]]] = {}

    @classmethod
    def register(cls, dialect: Dialect | str) -> Callable[[type[Executor]], type[Executor]]:
        """Decorator that registers an executor class under ``dialect``."""

        def decorator(executor_cls: type[Executor]) -> type[Executor]:
            cls.register_class(dialect, executor_cls)
            return executor_cls

        return decorator

    @classmethod
    def register_class(cls, dialect: Dialect | str, executor_cls: type[Executor]) -> None:
        """Register an executor class without using the decorator form."""
        cls._executors[Dialect.parse(dialect)] = executor_cls

    @classmethod
    def create(cls, config: ConnectionConfig, settings: Settings | None = None) -> Executor:
        """Instantiate the executor for ``config.driver``.

        Raises:
            ConfigError: If no executor is registered for the driver.
        """
        executor_cls = cls._executors.get(config.driver)
        if executor_cls is None:
            raise ConfigError(
                f"No executor registered for driver '{config.driver.value}'. "
                f"Registered: {cls.registered_dialects()}."
            )
        return executor_cls(config, settings)

    @classmethod
    def registered_dialects(cls) -> list[str]:
        """Return the sorted list of registered dialect names."""
        return sorted(d.value for d in cls._executors)
