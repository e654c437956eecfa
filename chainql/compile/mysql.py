"""MySQL and MariaDB dialect compilers."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from chainql.compile.base import SQLCompiler, json_path_expression
from chainql.compile.ledger import ParameterLedger
from chainql.schema.dialect import Dialect, LockMode
from chainql.schema.values import to_json_text

# Largest unsigned BIGINT: MySQL's documented "no limit" for OFFSET-only reads.
NO_LIMIT = 18446744073709551615


class MySQLCompiler(SQLCompiler):
    """Renders MySQL-flavoured parameterized SQL.

    Parameter style: ``%(name)s``, compatible with ``PyMySQL``, ``aiomysql``
    and ``mysql-connector-python`` named-parameter execution.

    Note: MySQL does not support ``ILIKE``; it is mapped to ``LIKE``.
    MySQL's ``LIKE`` is case-insensitive for non-binary TEXT/VARCHAR columns
    by default.

    Identifiers are quoted with backticks (`` ` ``) rather than double-quotes.
    """

    @property
    def dialect(self) -> Dialect:
        return Dialect.MYSQL

    def param_placeholder(self, name: str) -> str:
        return f"%({name})s"

    def escape_text(self, text: str) -> str:
        return text.replace("%", "%%")

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace("`", "``")
        return f"`{escaped}`"

    def date_part(self, part: str, column_sql: str) -> str:
        return f"{part.upper()}({column_sql})"

    def json_extract(self, column_sql: str, path: str, ledger: ParameterLedger) -> str:
        return f"JSON_UNQUOTE(JSON_EXTRACT({column_sql}, {ledger.bind(json_path_expression(path))}))"

    def json_contains(self, column_sql: str, value: Any, ledger: ParameterLedger) -> str:
        return f"JSON_CONTAINS({column_sql}, {ledger.bind(self.json_text(value))})"

    def json_length(self, column_sql: str) -> str:
        return f"JSON_LENGTH({column_sql})"

    def json_set(self, column_sql: str, path: str, value: Any, ledger: ParameterLedger) -> str:
        path_marker = ledger.bind(json_path_expression(path))
        value_marker = ledger.bind(to_json_text(value))
        return f"JSON_SET({column_sql}, {path_marker}, CAST({value_marker} AS JSON))"

    def full_text(
        self,
        columns_sql: list[str],
        table_sql: str,
        term: str,
        ledger: ParameterLedger,
    ) -> str:
        columns = ", ".join(columns_sql)
        return f"MATCH ({columns}) AGAINST ({ledger.bind(term)} IN NATURAL LANGUAGE MODE)"

    def random_function(self) -> str:
        return "RAND()"

    def compile_limit_offset(self, limit: int | None, offset: int | None) -> list[str]:
        if offset is not None and limit is None:
            limit = NO_LIMIT
        return super().compile_limit_offset(limit, offset)

    def lock_clause(self, mode: LockMode) -> str | None:
        if mode is LockMode.SHARE:
            return "LOCK IN SHARE MODE"
        return super().lock_clause(mode)

    def insert_prefix(self, ignore: bool = False) -> str:
        return "INSERT IGNORE INTO" if ignore else "INSERT INTO"

    def last_insert_id_sql(self) -> str | None:
        return "SELECT LAST_INSERT_ID() AS id"

    def upsert_clause(
        self,
        unique_by: Sequence[str],
        update_columns: Sequence[str],
    ) -> str:
        # The conflict target is implied by the table's unique indexes.
        if not update_columns:
            noop = self.wrap(unique_by[0])
            return f"ON DUPLICATE KEY UPDATE {noop} = {noop}"
        assignments = ", ".join(
            f"{self.wrap(c)} = VALUES({self.wrap(c)})" for c in update_columns
        )
        return f"ON DUPLICATE KEY UPDATE {assignments}"


class MariaDBCompiler(MySQLCompiler):
    """Renders MariaDB SQL.

    Identical to MySQL except where MariaDB lacks a MySQL feature: it has no
    native JSON type, so ``CAST(... AS JSON)`` is replaced by
    ``JSON_EXTRACT(..., '$')`` when writing JSON values.
    """

    @property
    def dialect(self) -> Dialect:
        return Dialect.MARIADB

    def json_set(self, column_sql: str, path: str, value: Any, ledger: ParameterLedger) -> str:
        path_marker = ledger.bind(json_path_expression(path))
        value_marker = ledger.bind(to_json_text(value))
        return f"JSON_SET({column_sql}, {path_marker}, JSON_EXTRACT({value_marker}, '$'))"
