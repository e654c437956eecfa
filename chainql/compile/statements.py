"""INSERT / UPDATE / DELETE / TRUNCATE rendering.

``StatementBuilder`` combines a builder's WHERE state with verb-specific
templates.  All input validation (empty rows, mismatched row schemas,
missing conflict targets) happens here, before anything is executed.
"""
from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from chainql.compile.base import SQLCompiler
from chainql.compile.clause_builders import ConditionClauseBuilder
from chainql.compile.ledger import Fragment, ParameterLedger
from chainql.errors import UsageError
from chainql.schema.values import Row, coerce_value

if TYPE_CHECKING:
    from chainql.query.state import QueryState


def normalize_rows(values: Mapping[str, Any] | Sequence[Mapping[str, Any]], operation: str) -> list[Row]:
    """Return ``values`` as a non-empty list of rows sharing one key set.

    A single mapping is treated as one row.

    Raises:
        UsageError: If there are no rows, a row is empty, or rows disagree on
            their columns.
    """
    rows = [dict(values)] if isinstance(values, Mapping) else [dict(r) for r in values]
    if not rows:
        raise UsageError("At least one row is required.", operation)
    columns = set(rows[0])
    if not columns:
        raise UsageError("Cannot insert an empty row.", operation)
    for index, row in enumerate(rows[1:], start=1):
        if set(row) != columns:
            raise UsageError(
                f"Row {index} has columns {sorted(row)}; expected {sorted(columns)}.",
                operation,
            )
    return rows


class StatementBuilder:
    """Renders write statements for one dialect.

    Args:
        compiler: Dialect-specific compiler instance.
    """

    def __init__(self, compiler: SQLCompiler) -> None:
        self._compiler = compiler
        self._where = ConditionClauseBuilder("WHERE")

    # ------------------------------------------------------------------
    # INSERT
    # ------------------------------------------------------------------

    def insert(
        self,
        table: str,
        rows: Sequence[Row],
        ignore: bool = False,
        returning: str | None = None,
        operation: str = "insert",
    ) -> Fragment:
        """``INSERT INTO t (a, b) VALUES (?, ?), (?, ?)``.

        Columns follow the first row's key order; later rows are read in that
        order whatever their own key order.
        """
        columns = list(rows[0])
        ledger = ParameterLedger()
        tuples = []
        for row in rows:
            markers = ", ".join(
                self._value(row[c], ledger, operation) for c in columns
            )
            tuples.append(f"({markers})")
        parts = [
            self._compiler.insert_prefix(ignore),
            self._compiler.wrap(_bare(table)),
            f"({self._column_list(columns)})",
            "VALUES",
            ", ".join(tuples),
        ]
        suffix = self._compiler.insert_suffix(ignore)
        if suffix:
            parts.append(suffix)
        if returning:
            parts.append(self._compiler.returning_clause(returning))
        return ledger.fragment(" ".join(parts))

    def insert_using(self, table: str, columns: Sequence[str], query: Fragment) -> Fragment:
        """``INSERT INTO t (a, b) <select>``."""
        if isinstance(columns, str) or not columns:
            raise UsageError("At least one column is required.", "insert_using")
        head = (
            f"{self._compiler.insert_prefix()} {self._compiler.wrap(_bare(table))} "
            f"({self._column_list(columns)}) "
        )
        return query.wrap(head, "")

    def upsert(
        self,
        table: str,
        rows: Sequence[Row],
        unique_by: Sequence[str],
        update_columns: Sequence[str] | None = None,
    ) -> Fragment:
        """INSERT with the dialect's conflict-resolution tail.

        ``update_columns`` defaults to every inserted column not in
        ``unique_by``.

        Raises:
            UsageError: If ``unique_by`` is empty, names a column that is not
                inserted, or the dialect has no native upsert.
        """
        if not self._compiler.supports_upsert:
            raise UsageError(
                f"Dialect '{self._compiler.dialect.value}' does not support upsert.",
                "upsert",
            )
        unique = [unique_by] if isinstance(unique_by, str) else list(unique_by)
        if not unique:
            raise UsageError("unique_by must name at least one column.", "upsert")
        columns = list(rows[0])
        missing = [c for c in unique if c not in columns]
        if missing:
            raise UsageError(f"unique_by columns {missing} are not being inserted.", "upsert")
        if update_columns is None:
            updates = [c for c in columns if c not in unique]
        elif isinstance(update_columns, str):
            updates = [update_columns]
        else:
            updates = list(update_columns)
        insert = self.insert(table, rows, operation="upsert")
        return insert.wrap("", f" {self._compiler.upsert_clause(unique, updates)}")

    # ------------------------------------------------------------------
    # UPDATE / DELETE / TRUNCATE
    # ------------------------------------------------------------------

    def update(self, state: QueryState, values: Mapping[str, Any], operation: str = "update") -> Fragment:
        """``UPDATE t SET a = ?, b = <expr> [WHERE ...]``.

        ``Fragment`` values are inlined as raw SQL expressions with their
        bindings; everything else is bound.
        """
        if not values:
            raise UsageError("At least one column value is required.", operation)
        self._check_scope(state, operation)
        ledger = ParameterLedger()
        assignments = ", ".join(
            f"{self._compiler.wrap(_unqualified(column))} = {self._value(value, ledger, operation)}"
            for column, value in values.items()
        )
        sql = f"UPDATE {self._compiler.wrap(state.table)} SET {assignments}"
        where = self._where.build(state.wheres)
        if where:
            sql = f"{sql} {ledger.absorb(where)}"
        return ledger.fragment(sql)

    def delete(self, state: QueryState) -> Fragment:
        """``DELETE FROM t [WHERE ...]``."""
        self._check_scope(state, "delete")
        head = Fragment(f"DELETE FROM {self._compiler.wrap(state.table)}")
        where = self._where.build(state.wheres)
        return Fragment.join(" ", [head, where]) if where else head

    def truncate(self, table: str) -> Fragment:
        return Fragment(self._compiler.truncate_sql(self._compiler.wrap(_bare(table))))

    def json_assignment(self, column: str, path: str, value: Any) -> Fragment:
        """``<json column with path replaced>`` for use as an UPDATE value."""
        ledger = ParameterLedger()
        target = self._compiler.wrap(_unqualified(column))
        return ledger.fragment(self._compiler.json_set(target, path, value, ledger))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _column_list(self, columns: Sequence[str]) -> str:
        return ", ".join(self._compiler.wrap(c) for c in columns)

    @staticmethod
    def _value(value: Any, ledger: ParameterLedger, operation: str) -> str:
        if isinstance(value, Fragment):
            return ledger.absorb(value)
        return ledger.bind(coerce_value(value, operation))

    @staticmethod
    def _check_scope(state: QueryState, operation: str) -> None:
        if not state.table:
            raise UsageError("No table selected.", operation)
        if state.joins:
            raise UsageError(
                "Joins are not supported on UPDATE/DELETE; scope the statement "
                "with where_in or where_exists instead.",
                operation,
            )
        if state.limit is not None or state.offset is not None or state.orders:
            raise UsageError(
                "ORDER BY / LIMIT / OFFSET are not supported on UPDATE/DELETE.",
                operation,
            )


def _bare(table: str) -> str:
    """``'users as u'`` -> ``'users'``; INSERT targets take no alias."""
    return re.split(r"\s+as\s+", table.strip(), maxsplit=1, flags=re.IGNORECASE)[0]


def _unqualified(column: str) -> str:
    """``'users.name'`` -> ``'name'``; SET targets take no table prefix."""
    return column.rsplit(".", 1)[-1]
