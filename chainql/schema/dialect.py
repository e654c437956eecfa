"""Dialect and lock-mode enums.

``Dialect`` names the SQL engine a query is rendered for and keys both the
compiler and executor registries::

    from chainql.schema.dialect import Dialect

    Dialect.parse("postgresql")   # -> Dialect.PGSQL
    Dialect.parse("sqlite3")      # -> Dialect.SQLITE
"""
from __future__ import annotations

from enum import Enum

from chainql.errors import ConfigError

# Driver spellings seen in connection URLs and config files.
_ALIASES: dict[str, str] = {
    "postgres": "pgsql",
    "postgresql": "pgsql",
    "psql": "pgsql",
    "sqlite3": "sqlite",
    "maria": "mariadb",
}


class Dialect(str, Enum):
    """Supported SQL engines."""

    PGSQL = "pgsql"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value: str | Dialect) -> Dialect:
        """Returns the dialect for ``value``, accepting common aliases.

        Args:
            value: A :class:`Dialect` or a driver name such as ``'postgresql'``.

        Raises:
            ConfigError: If the name is not recognised.
        """
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        name = name.split("+", 1)[0]  # "postgresql+psycopg" -> "postgresql"
        name = _ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError as exc:
            supported = sorted(d.value for d in cls)
            raise ConfigError(
                f"Unsupported database driver: '{value}'. Supported drivers: {supported}."
            ) from exc


class LockMode(str, Enum):
    """Row-locking mode appended to a SELECT."""

    NONE = "none"
    SHARE = "share"
    UPDATE = "update"
