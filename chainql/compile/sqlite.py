"""SQLite dialect compiler."""
from __future__ import annotations

import logging
from typing import Any

from chainql.compile.base import SQLCompiler, json_path_expression
from chainql.compile.ledger import ParameterLedger
from chainql.errors import UsageError
from chainql.schema.dialect import Dialect, LockMode
from chainql.schema.values import to_json_text

logger = logging.getLogger(__name__)

_STRFTIME = {
    "date": "'%Y-%m-%d'",
    "time": "'%H:%M:%S'",
    "year": "'%Y'",
    "month": "'%m'",
    "day": "'%d'",
}


class SQLiteCompiler(SQLCompiler):
    """Renders SQLite-flavoured parameterized SQL.

    Parameter style: ``:name``, compatible with ``sqlite3`` / ``aiosqlite``
    named-parameter execution (``cursor.execute(sql, dict)``).

    Note: SQLite does not support ``ILIKE``; it is mapped to ``LIKE``.
    SQLite's ``LIKE`` is case-insensitive for ASCII by default.  There are
    no row locks and no ``TRUNCATE``.
    """

    supports_row_locks = False

    @property
    def dialect(self) -> Dialect:
        return Dialect.SQLITE

    def param_placeholder(self, name: str) -> str:
        return f":{name}"

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    def date_part(self, part: str, column_sql: str) -> str:
        expression = f"strftime({_STRFTIME[part]}, {column_sql})"
        if part in ("year", "month", "day"):
            return f"CAST({expression} AS INTEGER)"
        return expression

    def json_extract(self, column_sql: str, path: str, ledger: ParameterLedger) -> str:
        return f"json_extract({column_sql}, {ledger.bind(json_path_expression(path))})"

    def json_contains(self, column_sql: str, value: Any, ledger: ParameterLedger) -> str:
        if not self.is_scalar(value):
            raise UsageError(
                "SQLite can only test JSON arrays for a scalar member.",
                "where_json_contains",
            )
        return (
            f"EXISTS (SELECT 1 FROM json_each({column_sql}) "
            f"WHERE json_each.value = {ledger.bind(value)})"
        )

    def json_length(self, column_sql: str) -> str:
        return f"json_array_length({column_sql})"

    def json_set(self, column_sql: str, path: str, value: Any, ledger: ParameterLedger) -> str:
        path_marker = ledger.bind(json_path_expression(path))
        value_marker = ledger.bind(to_json_text(value))
        return f"json_set({column_sql}, {path_marker}, json({value_marker}))"

    def full_text(
        self,
        columns_sql: list[str],
        table_sql: str,
        term: str,
        ledger: ParameterLedger,
    ) -> str:
        # FTS5: a single column is matched directly, several through the table.
        target = columns_sql[0] if len(columns_sql) == 1 else table_sql
        return f"{target} MATCH {ledger.bind(term)}"

    def compile_limit_offset(self, limit: int | None, offset: int | None) -> list[str]:
        if offset is not None and limit is None:
            limit = -1
        return super().compile_limit_offset(limit, offset)

    def lock_clause(self, mode: LockMode) -> str | None:
        if mode is not LockMode.NONE:
            logger.debug("SQLite has no row locks; ignoring %s lock", mode.value)
        return None

    def insert_prefix(self, ignore: bool = False) -> str:
        return "INSERT OR IGNORE INTO" if ignore else "INSERT INTO"

    def last_insert_id_sql(self) -> str | None:
        return "SELECT last_insert_rowid() AS id"

    def truncate_sql(self, table_sql: str) -> str:
        return f"DELETE FROM {table_sql}"
