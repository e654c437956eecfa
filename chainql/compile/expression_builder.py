"""Predicate SQL compilers.

``PredicateBuilder`` turns one predicate intent (comparison, range, set
membership, null check, JSON or temporal test, ...) into a single
:class:`~chainql.compile.ledger.Fragment`.  Column references are wrapped
through the dialect compiler; every value is routed through a
:class:`~chainql.compile.ledger.ParameterLedger`, never into the SQL text.

Sub-queries and nested groups arrive here already rendered as fragments, so
their values are folded into the result in the order they appear.
"""
from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, time
from typing import Any

from chainql.compile.base import SQLCompiler
from chainql.compile.ledger import MARKER, Fragment, ParameterLedger
from chainql.errors import UsageError
from chainql.schema.expressions import (
    NULL_EQUALITY_OPS,
    NULL_INEQUALITY_OPS,
    Boolean,
    normalize_operator,
)
from chainql.schema.values import coerce_value

#: Parts accepted by :meth:`PredicateBuilder.date_part`.
DATE_PARTS: frozenset[str] = frozenset({"date", "time", "year", "month", "day"})

#: A column reference: an identifier string or a raw expression fragment.
ColumnRef = str | Fragment


def raw(sql: str, bindings: Sequence[Any] = (), operation: str = "raw") -> Fragment:
    """Builds a fragment from raw SQL with positional ``?`` bindings.

    Each ``?`` becomes a managed placeholder and its binding a bound value;
    bindings are never inlined.  With no bindings the text is used verbatim
    (so PostgreSQL's ``?`` JSON operator survives).

    Raises:
        UsageError: If the ``?`` count differs from the number of bindings.
    """
    if isinstance(bindings, (str, bytes)) or not isinstance(bindings, Sequence):
        bindings = [bindings]
    if not bindings:
        return Fragment(sql)
    expected = sql.count("?")
    if expected != len(bindings):
        raise UsageError(
            f"Raw SQL has {expected} '?' marker(s) but {len(bindings)} binding(s) were given.",
            operation,
        )
    values = tuple(coerce_value(v, operation) for v in bindings)
    return Fragment(sql.replace("?", MARKER), values)


class PredicateBuilder:
    """Compiles predicate intents to SQL fragments for one dialect.

    Args:
        compiler: Dialect-specific compiler used for quoting and functions.
    """

    def __init__(self, compiler: SQLCompiler) -> None:
        self._compiler = compiler

    # ------------------------------------------------------------------
    # Operands
    # ------------------------------------------------------------------

    def column(self, column: ColumnRef, ledger: ParameterLedger) -> str:
        """Return the SQL for a column reference, absorbing raw bindings."""
        if isinstance(column, Fragment):
            return ledger.absorb(column)
        if not isinstance(column, str) or not column.strip():
            raise UsageError(f"Invalid column reference: {column!r}.")
        return self._compiler.wrap(column)

    def value(self, value: Any, ledger: ParameterLedger, operation: str = "where") -> str:
        """Return the placeholder for ``value`` (or a raw fragment's SQL)."""
        if isinstance(value, Fragment):
            return ledger.absorb(value)
        return ledger.bind(coerce_value(value, operation))

    def operator(self, op: str, operation: str = "where") -> str:
        """Return the dialect spelling of a validated operator."""
        return self._compiler.like_operator(normalize_operator(op, operation))

    # ------------------------------------------------------------------
    # Basic comparisons
    # ------------------------------------------------------------------

    def compare(
        self,
        column: ColumnRef,
        op: str,
        value: Any,
        operation: str = "where",
    ) -> Fragment:
        """``column op ?``; ``= None`` / ``!= None`` become null checks.

        A ``Fragment`` value (a rendered sub-query or raw expression) is
        inlined with its bindings instead of being bound itself.
        """
        canonical = normalize_operator(op, operation)
        if value is None and canonical in NULL_EQUALITY_OPS:
            return self.null(column)
        if value is None and canonical in NULL_INEQUALITY_OPS:
            return self.null(column, negate=True)
        ledger = ParameterLedger()
        col = self.column(column, ledger)
        rhs = self.value(value, ledger, operation)
        return ledger.fragment(f"{col} {self._compiler.like_operator(canonical)} {rhs}")

    def compare_columns(self, first: ColumnRef, op: str, second: ColumnRef) -> Fragment:
        """``first op second``; both sides are identifiers, nothing is bound."""
        ledger = ParameterLedger()
        left = self.column(first, ledger)
        symbol = self.operator(op, "where_column")
        right = self.column(second, ledger)
        return ledger.fragment(f"{left} {symbol} {right}")

    def null(self, column: ColumnRef, negate: bool = False) -> Fragment:
        ledger = ParameterLedger()
        col = self.column(column, ledger)
        return ledger.fragment(f"{col} IS {'NOT NULL' if negate else 'NULL'}")

    # ------------------------------------------------------------------
    # Ranges and sets
    # ------------------------------------------------------------------

    def between(
        self,
        column: ColumnRef,
        values: Sequence[Any],
        negate: bool = False,
        operation: str = "where_between",
    ) -> Fragment:
        """``column [NOT] BETWEEN ? AND ?`` binding start then end."""
        start, end = self._pair(values, operation)
        ledger = ParameterLedger()
        col = self.column(column, ledger)
        low = self.value(start, ledger, operation)
        high = self.value(end, ledger, operation)
        keyword = "NOT BETWEEN" if negate else "BETWEEN"
        return ledger.fragment(f"{col} {keyword} {low} AND {high}")

    def between_columns(
        self,
        column: ColumnRef,
        columns: Sequence[ColumnRef],
        negate: bool = False,
    ) -> Fragment:
        first, second = self._pair(columns, "where_between_columns")
        ledger = ParameterLedger()
        col = self.column(column, ledger)
        low = self.column(first, ledger)
        high = self.column(second, ledger)
        keyword = "NOT BETWEEN" if negate else "BETWEEN"
        return ledger.fragment(f"{col} {keyword} {low} AND {high}")

    def in_values(
        self,
        column: ColumnRef,
        values: Sequence[Any],
        negate: bool = False,
        operation: str = "where_in",
    ) -> Fragment:
        """``column [NOT] IN (?, ...)``, one placeholder per element.

        An empty sequence renders a constant predicate: ``0 = 1`` for ``IN``
        (matches nothing) and ``1 = 1`` for ``NOT IN`` (matches everything).
        """
        items = list(values)
        if not items:
            return Fragment("1 = 1" if negate else "0 = 1")
        ledger = ParameterLedger()
        col = self.column(column, ledger)
        markers = ", ".join(self.value(v, ledger, operation) for v in items)
        keyword = "NOT IN" if negate else "IN"
        return ledger.fragment(f"{col} {keyword} ({markers})")

    def in_query(self, column: ColumnRef, query: Fragment, negate: bool = False) -> Fragment:
        """``column [NOT] IN (<sub-select>)``."""
        ledger = ParameterLedger()
        col = self.column(column, ledger)
        sub = ledger.absorb(query)
        keyword = "NOT IN" if negate else "IN"
        return ledger.fragment(f"{col} {keyword} ({sub})")

    def exists(self, query: Fragment, negate: bool = False) -> Fragment:
        keyword = "NOT EXISTS" if negate else "EXISTS"
        return query.wrap(f"{keyword} (", ")")

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    @staticmethod
    def group(conditions: Fragment) -> Fragment:
        """``(<conditions>)``."""
        return conditions.wrap()

    @staticmethod
    def negated_group(fragments: Sequence[Fragment]) -> Fragment:
        """``NOT (<a> OR <b> ...)``."""
        return Fragment.join(" OR ", fragments).wrap("NOT (", ")")

    def any_of(
        self,
        columns: Sequence[ColumnRef],
        op: str,
        value: Any,
        boolean: Boolean = Boolean.OR,
        operation: str = "where_any",
    ) -> Fragment:
        """``(a op ? OR b op ?)``; the value is bound once per column."""
        if isinstance(columns, str) or not columns:
            raise UsageError("At least one column is required.", operation)
        parts = [self.compare(c, op, value, operation) for c in columns]
        return Fragment.join(f" {boolean.value} ", parts).wrap()

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def json_path(
        self,
        column: ColumnRef,
        path: str,
        op: str,
        value: Any,
        operation: str = "where_json",
    ) -> Fragment:
        """Compare the text at ``path`` inside a JSON column with ``value``."""
        canonical = normalize_operator(op, operation)
        ledger = ParameterLedger()
        col = self.column(column, ledger)
        extracted = self._compiler.json_extract(col, path, ledger)
        if value is None and canonical in NULL_EQUALITY_OPS | NULL_INEQUALITY_OPS:
            suffix = "IS NULL" if canonical in NULL_EQUALITY_OPS else "IS NOT NULL"
            return ledger.fragment(f"{extracted} {suffix}")
        rhs = self.value(self._compiler.json_value(value), ledger, operation)
        return ledger.fragment(f"{extracted} {self._compiler.like_operator(canonical)} {rhs}")

    def json_contains(self, column: ColumnRef, value: Any, negate: bool = False) -> Fragment:
        ledger = ParameterLedger()
        col = self.column(column, ledger)
        predicate = self._compiler.json_contains(col, value, ledger)
        return ledger.fragment(f"NOT ({predicate})" if negate else predicate)

    def json_length(self, column: ColumnRef, op: str, value: Any) -> Fragment:
        ledger = ParameterLedger()
        col = self.column(column, ledger)
        symbol = self.operator(op, "where_json_length")
        rhs = self.value(value, ledger, "where_json_length")
        return ledger.fragment(f"{self._compiler.json_length(col)} {symbol} {rhs}")

    # ------------------------------------------------------------------
    # Temporal
    # ------------------------------------------------------------------

    def date_part(
        self,
        part: str,
        column: ColumnRef,
        op: str,
        value: Any,
    ) -> Fragment:
        """Compare the ``part`` component of ``column`` with ``value``.

        ``date``/``time``/``datetime`` values are formatted to the component's
        canonical text so every engine compares like with like.
        """
        operation = f"where_{part}"
        if part not in DATE_PARTS:
            raise UsageError(f"Unknown date part '{part}'.", operation)
        ledger = ParameterLedger()
        col = self.column(column, ledger)
        expression = self._compiler.date_part(part, col)
        symbol = self.operator(op, operation)
        rhs = self.value(_format_date_part(part, value), ledger, operation)
        return ledger.fragment(f"{expression} {symbol} {rhs}")

    # ------------------------------------------------------------------
    # Full text
    # ------------------------------------------------------------------

    def full_text(self, columns: Sequence[ColumnRef], table: str, term: str) -> Fragment:
        if isinstance(columns, str):
            columns = [columns]
        if not columns:
            raise UsageError("At least one column is required.", "where_full_text")
        ledger = ParameterLedger()
        cols = [self.column(c, ledger) for c in columns]
        table_sql = self._compiler.wrap(table)
        return ledger.fragment(self._compiler.full_text(cols, table_sql, term, ledger))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _pair(values: Sequence[Any], operation: str) -> tuple[Any, Any]:
        items = list(values)
        if len(items) != 2:
            raise UsageError(f"Expected exactly two values, got {len(items)}.", operation)
        return items[0], items[1]


def _format_date_part(part: str, value: Any) -> Any:
    if part == "date" and isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    if part == "time" and isinstance(value, (time, datetime)):
        return value.strftime("%H:%M:%S")
    if part in ("year", "month", "day") and isinstance(value, (date, datetime)):
        return getattr(value, part)
    if part in ("year", "month", "day") and isinstance(value, str) and value.isdigit():
        return int(value)
    return value
