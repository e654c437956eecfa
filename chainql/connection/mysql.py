"""MySQL / MariaDB executor backed by aiomysql."""
from __future__ import annotations

from typing import Any

from chainql.connection.base import ExecutionResult, Executor
from chainql.errors import ExecutionError


def _require_aiomysql() -> Any:
    try:
        import aiomysql  # noqa: PLC0415
    except ImportError as exc:
        raise ImportError(
            "aiomysql is required for MySQL / MariaDB connections. "
            "Install it with: pip install 'chainql[mysql]'"
        ) from exc
    return aiomysql


class MySQLExecutor(Executor):
    """Runs statements through an ``aiomysql`` connection.

    Serves both MySQL and MariaDB; the connection is opened with
    ``autocommit=True`` and rows are fetched with ``DictCursor``.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._aiomysql = _require_aiomysql()
        self._connection: Any = None

    @property
    def driver_errors(self) -> tuple[type[BaseException], ...]:
        return (self._aiomysql.Error,)

    def connect_kwargs(self) -> dict[str, Any]:
        """Return the keyword arguments passed to ``aiomysql.connect``."""
        config = self._config
        kwargs: dict[str, Any] = {
            "host": config.host or "localhost",
            "port": config.port or 3306,
            "db": config.database or None,
            "user": config.username,
            "password": config.password.get_secret_value() if config.password else "",
            "charset": config.charset,
            "connect_timeout": config.timeout,
            "init_command": (
                f"SET NAMES {config.charset} COLLATE {config.collation}"
                if config.charset and config.collation
                else None
            ),
        }
        kwargs = {k: v for k, v in kwargs.items() if v is not None}
        kwargs.update(config.options)
        return kwargs

    async def _connect(self) -> None:
        self._connection = await self._aiomysql.connect(autocommit=True, **self.connect_kwargs())

    async def _disconnect(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    async def _execute(self, sql: str, bindings: dict[str, Any]) -> ExecutionResult:
        if self._connection is None:
            raise ExecutionError("MySQL connection is not open.", sql=sql)
        async with self._connection.cursor(self._aiomysql.DictCursor) as cursor:
            await cursor.execute(sql, bindings)
            if cursor.description is None:
                return ExecutionResult(rowcount=cursor.rowcount)
            rows = await cursor.fetchall()
            return ExecutionResult(
                rows=[dict(r) for r in rows],
                columns=[d[0] for d in cursor.description],
                rowcount=cursor.rowcount,
            )
