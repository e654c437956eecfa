"""PostgreSQL dialect compiler."""

from __future__ import annotations

from typing import Any

from chainql.compile.base import SQLCompiler, split_json_path
from chainql.compile.ledger import ParameterLedger
from chainql.schema.dialect import Dialect
from chainql.schema.values import to_json_text

_EXTRACT_FIELDS = {"year": "YEAR", "month": "MONTH", "day": "DAY"}


class PostgresCompiler(SQLCompiler):
    """Renders PostgreSQL-flavoured parameterized SQL.

    Parameter style: ``%(name)s``, compatible with ``psycopg`` named-parameter
    execution.  Literal ``%`` in the statement text is doubled.
    """

    supports_returning = True

    @property
    def dialect(self) -> Dialect:
        return Dialect.PGSQL

    def param_placeholder(self, name: str) -> str:
        return f"%({name})s"

    def escape_text(self, text: str) -> str:
        return text.replace("%", "%%")

    def like_operator(self, op: str) -> str:
        return op  # PostgreSQL supports ILIKE natively

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    def date_part(self, part: str, column_sql: str) -> str:
        if part == "date":
            return f"CAST({column_sql} AS date)"
        if part == "time":
            return f"CAST({column_sql} AS time)"
        return f"EXTRACT({_EXTRACT_FIELDS[part]} FROM {column_sql})"

    # JSON columns are cast to jsonb so both json and jsonb storage work.

    def json_extract(self, column_sql: str, path: str, ledger: ParameterLedger) -> str:
        segments = ", ".join(ledger.bind(s) for s in split_json_path(path))
        return f"jsonb_extract_path_text(CAST({column_sql} AS jsonb), {segments})"

    def json_value(self, value: Any) -> Any:
        # jsonb_extract_path_text yields text; compare against text.
        if value is None or isinstance(value, str):
            return value
        return to_json_text(value)

    def json_contains(self, column_sql: str, value: Any, ledger: ParameterLedger) -> str:
        return f"CAST({column_sql} AS jsonb) @> CAST({ledger.bind(self.json_text(value))} AS jsonb)"

    def json_length(self, column_sql: str) -> str:
        return f"jsonb_array_length(CAST({column_sql} AS jsonb))"

    def json_set(self, column_sql: str, path: str, value: Any, ledger: ParameterLedger) -> str:
        pg_path = "{" + ",".join(split_json_path(path)) + "}"
        path_marker = ledger.bind(pg_path)
        value_marker = ledger.bind(to_json_text(value))
        return (
            f"jsonb_set(CAST({column_sql} AS jsonb), CAST({path_marker} AS text[]), "
            f"CAST({value_marker} AS jsonb))"
        )

    def full_text(
        self,
        columns_sql: list[str],
        table_sql: str,
        term: str,
        ledger: ParameterLedger,
    ) -> str:
        document = " || ' ' || ".join(f"coalesce({c}, '')" for c in columns_sql)
        return (
            f"to_tsvector('english', {document}) @@ "
            f"plainto_tsquery('english', {ledger.bind(term)})"
        )

    def insert_suffix(self, ignore: bool = False) -> str | None:
        return "ON CONFLICT DO NOTHING" if ignore else None

    def truncate_sql(self, table_sql: str) -> str:
        return f"TRUNCATE TABLE {table_sql} RESTART IDENTITY CASCADE"
