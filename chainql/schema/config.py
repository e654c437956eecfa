"""Pydantic models for connection configuration and runtime settings.

Configuration is produced by the caller (from environment, a URL or its own
config files) and injected into :class:`~chainql.connection.manager.DatabaseManager`;
chainql itself never reads or writes configuration files.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from chainql.errors import ConfigError
from chainql.schema.dialect import Dialect


class ConnectionConfig(BaseModel):
    """Settings for one named database connection.

    Attributes:
        driver: SQL engine (``pgsql``, ``mysql``, ``mariadb``, ``sqlite``).
        host: Server host; unused for SQLite.
        port: Server port; unused for SQLite.
        database: Database name, or the file path for SQLite.
        username: Login user.
        password: Login password.
        charset: Client character set (MySQL / MariaDB).
        collation: Connection collation (MySQL / MariaDB).
        prefix: Prepended to every table name passed to ``table()``.
        schema_name: PostgreSQL ``search_path`` for the session.
        sslmode: TLS mode passed to the driver.
        foreign_key_constraints: Enable ``PRAGMA foreign_keys`` (SQLite).
        timeout: Connect timeout in seconds.
        options: Extra driver keyword arguments.
    """

    model_config = ConfigDict(extra="forbid")

    driver: Dialect
    host: str | None = None
    port: int | None = None
    database: str = ""
    username: str | None = None
    password: SecretStr | None = None
    charset: str | None = None
    collation: str | None = None
    prefix: str = ""
    schema_name: str | None = None
    sslmode: str | None = None
    foreign_key_constraints: bool = False
    timeout: float | None = Field(default=None, gt=0)
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("driver", mode="before")
    @classmethod
    def _parse_driver(cls, value: Any) -> Dialect:
        return Dialect.parse(value)

    @classmethod
    def from_url(cls, url: str, **overrides: Any) -> ConnectionConfig:
        """Build a config from a SQLAlchemy-style URL.

        ``postgresql+psycopg://user:pw@host:5432/app`` and
        ``sqlite:///path/to/app.db`` are both accepted.  Requires the
        ``sqlalchemy`` extra for URL parsing.

        Raises:
            ImportError: If SQLAlchemy is not installed.
            ConfigError: If the URL is malformed or names an unknown driver.
        """
        try:
            from sqlalchemy.engine import make_url  # noqa: PLC0415
            from sqlalchemy.exc import ArgumentError  # noqa: PLC0415
        except ImportError as exc:
            raise ImportError(
                "SQLAlchemy is required for ConnectionConfig.from_url. "
                "Install it with: pip install 'chainql[sqlalchemy]'"
            ) from exc

        try:
            parsed = make_url(url)
        except ArgumentError as exc:
            raise ConfigError(f"Invalid database URL: {exc}") from exc

        fields: dict[str, Any] = {
            "driver": parsed.get_backend_name(),
            "host": parsed.host,
            "port": parsed.port,
            "database": parsed.database or "",
            "username": parsed.username,
            "password": parsed.password,
        }
        query = dict(parsed.query)
        for key in ("charset", "sslmode"):
            if key in query:
                fields[key] = query.pop(key)
        if query:
            fields["options"] = query
        fields.update(overrides)
        return cls(**{k: v for k, v in fields.items() if v is not None})


def _default_connections() -> dict[str, ConnectionConfig]:
    mysql_like = {
        "host": "localhost",
        "port": 3306,
        "database": "database",
        "username": "root",
        "password": "",
        "charset": "utf8mb4",
        "collation": "utf8mb4_unicode_ci",
        "sslmode": "preferred",
    }
    return {
        "pgsql": ConnectionConfig(
            driver=Dialect.PGSQL,
            host="localhost",
            port=5432,
            database="postgres",
            username="postgres",
            password="postgres",
        ),
        "mysql": ConnectionConfig(driver=Dialect.MYSQL, **mysql_like),
        "sqlite": ConnectionConfig(
            driver=Dialect.SQLITE,
            database="database.sqlite",
            foreign_key_constraints=True,
        ),
        "mariadb": ConnectionConfig(driver=Dialect.MARIADB, **mysql_like),
    }


class DatabaseConfig(BaseModel):
    """Named connections plus the name of the default one.

    Attributes:
        default: Connection used when none is named.
        connections: Connection settings keyed by name.
    """

    model_config = ConfigDict(extra="forbid")

    default: str = "pgsql"
    connections: dict[str, ConnectionConfig] = Field(default_factory=_default_connections)

    def get(self, name: str | None = None) -> ConnectionConfig:
        """Return the connection called ``name`` (default when ``None``).

        Raises:
            ConfigError: If no such connection is configured.
        """
        key = name or self.default
        try:
            return self.connections[key]
        except KeyError:
            raise ConfigError(
                f"Unknown connection '{key}'. Configured: {sorted(self.connections)}.",
                connection=key,
            ) from None


class Settings(BaseModel):
    """Runtime behaviour toggles.

    Attributes:
        log_queries: Log every executed statement at DEBUG.
        guard_unscoped_writes: Reject UPDATE/DELETE statements that have no
            WHERE clause instead of only logging a warning.
        default_chunk_size: Page size used by ``lazy()`` when none is given.
    """

    model_config = ConfigDict(extra="forbid")

    log_queries: bool = False
    guard_unscoped_writes: bool = False
    default_chunk_size: int = Field(default=1000, gt=0)
