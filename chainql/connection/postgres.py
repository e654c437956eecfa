"""PostgreSQL executor backed by psycopg 3 (async)."""
from __future__ import annotations

from typing import Any

from chainql.connection.base import ExecutionResult, Executor
from chainql.errors import ExecutionError


def _require_psycopg() -> Any:
    try:
        import psycopg  # noqa: PLC0415
    except ImportError as exc:
        raise ImportError(
            "psycopg is required for PostgreSQL connections. "
            "Install it with: pip install 'chainql[postgres]'"
        ) from exc
    return psycopg


class PostgresExecutor(Executor):
    """Runs statements through a ``psycopg.AsyncConnection``.

    The connection is opened in autocommit mode with ``dict_row`` rows.  A
    configured ``schema_name`` becomes the session ``search_path``.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._psycopg = _require_psycopg()
        self._connection: Any = None

    @property
    def driver_errors(self) -> tuple[type[BaseException], ...]:
        return (self._psycopg.Error,)

    def connect_kwargs(self) -> dict[str, Any]:
        """Return the keyword arguments passed to ``AsyncConnection.connect``."""
        config = self._config
        kwargs: dict[str, Any] = {
            "host": config.host,
            "port": config.port,
            "dbname": config.database or None,
            "user": config.username,
            "password": config.password.get_secret_value() if config.password else None,
            "sslmode": config.sslmode,
            "connect_timeout": int(config.timeout) if config.timeout else None,
            "options": f"-c search_path={config.schema_name}" if config.schema_name else None,
        }
        kwargs = {k: v for k, v in kwargs.items() if v is not None}
        kwargs.update(config.options)
        return kwargs

    async def _connect(self) -> None:
        from psycopg.rows import dict_row  # noqa: PLC0415

        self._connection = await self._psycopg.AsyncConnection.connect(
            autocommit=True,
            row_factory=dict_row,
            **self.connect_kwargs(),
        )

    async def _disconnect(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def _execute(self, sql: str, bindings: dict[str, Any]) -> ExecutionResult:
        if self._connection is None:
            raise ExecutionError("PostgreSQL connection is not open.", sql=sql)
        # Always pass a mapping so '%%' escapes are unescaped by the driver.
        async with self._connection.cursor() as cursor:
            await cursor.execute(sql, bindings)
            if cursor.description is None:
                return ExecutionResult(rowcount=cursor.rowcount)
            rows = await cursor.fetchall()
            return ExecutionResult(
                rows=list(rows),
                columns=[c.name for c in cursor.description],
                rowcount=cursor.rowcount,
            )
