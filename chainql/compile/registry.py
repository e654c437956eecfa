"""Compiler registry (Open/Closed Principle).

Adding a dialect means registering one :class:`~chainql.compile.base.SQLCompiler`
subclass; the query builder looks it up by :class:`~chainql.schema.dialect.Dialect`.

Usage::

    from chainql.compile.registry import CompilerFactory

    @CompilerFactory.register(Dialect.MYSQL)
    class MySQLCompiler(SQLCompiler):
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from chainql.compile.base import SQLCompiler
from chainql.errors import ConfigError
from chainql.schema.dialect import Dialect


class CompilerFactory:
    """Registry mapping dialects to :class:`SQLCompiler` classes.

    Example::

        CompilerFactory.register_class(Dialect.SQLITE, SQLiteCompiler)
        compiler = CompilerFactory.create("sqlite3")
    """

    _compilers: ClassVar[dict[Dialect, type[SQLCompiler]]] = {}

    @classmethod
    def register(
        cls, dialect: Dialect | str
    ) -> Callable[[type[SQLCompiler]], type[SQLCompiler]]:
        """Decorator that registers a compiler class under ``dialect``.

        Args:
            dialect: The dialect (or any alias accepted by :meth:`Dialect.parse`).

        Returns:
            A decorator that registers and returns the compiler class.
        """

        def decorator(compiler_cls: type[SQLCompiler]) -> type[SQLCompiler]:
            cls.register_class(dialect, compiler_cls)
            return compiler_cls

        return decorator

    @classmethod
    def register_class(cls, dialect: Dialect | str, compiler_cls: type[SQLCompiler]) -> None:
        """Register a compiler class without using the decorator form."""
        cls._compilers[Dialect.parse(dialect)] = compiler_cls

    @classmethod
    def create(cls, dialect: Dialect | str) -> SQLCompiler:
        """Instantiate the compiler registered for ``dialect``.

        Raises:
            ConfigError: If the dialect is unknown or has no compiler.
        """
        key = Dialect.parse(dialect)
        compiler_cls = cls._compilers.get(key)
        if compiler_cls is None:
            raise ConfigError(
                f"No compiler registered for dialect '{key.value}'. "
                f"Registered: {cls.registered_dialects()}."
            )
        return compiler_cls()

    @classmethod
    def registered_dialects(cls) -> list[str]:
        """Return the sorted list of registered dialect names."""
        return sorted(d.value for d in cls._compilers)
