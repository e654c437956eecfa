"""WHERE-clause methods of the fluent query builder.

Each method appends exactly one condition (or nothing, for an empty group)
to the builder's WHERE list and returns the builder.  Every predicate has an
``or_`` twin that joins with OR instead of AND.

Sub-queries and groups are given either as a builder or as a callable that
receives a fresh sub-builder on the same table and context::

    query.where("votes", ">", 100).or_where(lambda q: q.where("name", "Abigail")
                                                       .where("votes", ">", 50))

    query.where_in("id", lambda q: q.from_("orders").select("user_id"))
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Self

from chainql.compile.expression_builder import ColumnRef, PredicateBuilder, raw
from chainql.compile.ledger import Condition, Fragment, join_conditions
from chainql.errors import UsageError
from chainql.schema.expressions import UNSET, Boolean, normalize_boolean, resolve_operator

if TYPE_CHECKING:
    from chainql.query.context import QueryContext
    from chainql.query.state import QueryState

#: A sub-query: a builder, or a callable configuring a fresh sub-builder.
SubQuery = Any


class PredicateMixin:
    """WHERE predicates; mixed into :class:`~chainql.query.builder.QueryBuilder`."""

    _ctx: QueryContext
    _state: QueryState
    _predicates: PredicateBuilder

    # ------------------------------------------------------------------
    # Plumbing shared with the other mixins
    # ------------------------------------------------------------------

    def _add_where(self, fragment: Fragment, boolean: str | Boolean = "and") -> Self:
        self._state.wheres.append(Condition(normalize_boolean(boolean), fragment))
        return self

    def new_query(self, table: str | None = None) -> Self:
        """Return a fresh builder on the same context (and table by default)."""
        return type(self)(self._ctx, table if table is not None else self._state.table)

    def _resolve_builder(self, query: SubQuery, operation: str) -> Self:
        if isinstance(query, PredicateMixin):
            if query._ctx.dialect is not self._ctx.dialect:
                raise UsageError(
                    f"Sub-query targets '{query._ctx.dialect.value}' but this query "
                    f"targets '{self._ctx.dialect.value}'.",
                    operation,
                )
            return query  # type: ignore[return-value]
        if callable(query):
            sub = self.new_query()
            query(sub)
            return sub
        raise UsageError(
            f"Expected a query builder or a callable, got {type(query).__name__}.",
            operation,
        )

    def _subquery(self, query: SubQuery, operation: str) -> Fragment:
        """Render ``query`` as an unnumbered SELECT fragment."""
        return self._resolve_builder(query, operation).to_fragment()  # type: ignore[attr-defined]

    def _group(self, query: SubQuery, operation: str) -> list[Condition]:
        """Return the WHERE conditions a group callback / builder produced."""
        sub = self._resolve_builder(query, operation)
        if sub._state.table != self._state.table:
            raise UsageError(
                f"Group builder is bound to table {sub._state.table!r}, "
                f"not {self._state.table!r}.",
                operation,
            )
        return list(sub._state.wheres)

    @staticmethod
    def _is_subquery(value: Any) -> bool:
        return isinstance(value, PredicateMixin) or (
            callable(value) and not isinstance(value, (type, Fragment))
        )

    # ------------------------------------------------------------------
    # Basic WHERE
    # ------------------------------------------------------------------

    def where(
        self,
        column: ColumnRef | Mapping[str, Any] | Sequence[Sequence[Any]] | Callable[..., Any],
        operator: Any = UNSET,
        value: Any = UNSET,
        boolean: str | Boolean = "and",
    ) -> Self:
        """Add a comparison, a group or a sub-query comparison.

        Forms:
            ``where("votes", 100)``: ``votes = ?``.
            ``where("votes", ">=", 100)``: ``votes >= ?``.
            ``where("deleted_at", None)``: ``deleted_at IS NULL``.
            ``where({"a": 1, "b": 2})`` / ``where([("a", 1), ("b", ">", 2)])``:
                a parenthesised AND group.
            ``where(callable)``: a parenthesised group built by the callable.
            ``where("total", ">", sub)``: ``total > (<sub-select>)``.
        """
        if isinstance(column, Mapping):
            return self._where_pairs(list(column.items()), boolean)
        if isinstance(column, list):
            return self._where_pairs(column, boolean)
        if isinstance(column, PredicateMixin) or (callable(column) and operator is UNSET):
            return self.where_nested(column, boolean)
        op, rhs = resolve_operator(operator, value, "where")
        if self._is_subquery(rhs):
            rhs = self._subquery(rhs, "where").wrap()
        return self._add_where(self._predicates.compare(column, op, rhs), boolean)

    def or_where(
        self,
        column: ColumnRef | Mapping[str, Any] | Sequence[Sequence[Any]] | Callable[..., Any],
        operator: Any = UNSET,
        value: Any = UNSET,
    ) -> Self:
        return self.where(column, operator, value, "or")

    def _where_pairs(self, pairs: Sequence[Any], boolean: str | Boolean) -> Self:
        def build(sub: PredicateMixin) -> None:
            for pair in pairs:
                if not isinstance(pair, (tuple, list)) or len(pair) not in (2, 3):
                    raise UsageError(
                        f"Expected (column, value) or (column, operator, value), got {pair!r}.",
                        "where",
                    )
                sub.where(*pair)

        return self.where_nested(build, boolean)

    def where_nested(self, query: SubQuery, boolean: str | Boolean = "and") -> Self:
        """``(<sub conditions joined by their own connectives>)``."""
        conditions = self._group(query, "where")
        if not conditions:
            return self  # type: ignore[return-value]
        return self._add_where(PredicateBuilder.group(join_conditions(conditions)), boolean)

    def where_not(
        self,
        column: ColumnRef | Callable[..., Any],
        operator: Any = UNSET,
        value: Any = UNSET,
        boolean: str | Boolean = "and",
    ) -> Self:
        """``NOT (<a> OR <b> ...)`` over the conditions the group adds.

        A plain ``(column, operator, value)`` negates that single comparison.
        """
        if isinstance(column, PredicateMixin) or callable(column):
            conditions = self._group(column, "where_not")
        else:
            sub = self.new_query()
            sub.where(column, operator, value)
            conditions = sub._state.wheres
        if not conditions:
            return self  # type: ignore[return-value]
        fragment = PredicateBuilder.negated_group([c.fragment for c in conditions])
        return self._add_where(fragment, boolean)

    def or_where_not(
        self,
        column: ColumnRef | Callable[..., Any],
        operator: Any = UNSET,
        value: Any = UNSET,
    ) -> Self:
        return self.where_not(column, operator, value, "or")

    def where_column(
        self,
        first: ColumnRef | Sequence[Sequence[str]],
        operator: Any = UNSET,
        second: Any = UNSET,
        boolean: str | Boolean = "and",
    ) -> Self:
        """``first op second`` with both sides identifiers.

        A list of ``(first, second)`` / ``(first, op, second)`` tuples adds
        one comparison each.
        """
        if isinstance(first, list):
            for spec in first:
                self.where_column(*spec, boolean=boolean)
            return self  # type: ignore[return-value]
        op, other = resolve_operator(operator, second, "where_column")
        return self._add_where(self._predicates.compare_columns(first, op, other), boolean)

    def or_where_column(self, first: ColumnRef, operator: Any = UNSET, second: Any = UNSET) -> Self:
        return self.where_column(first, operator, second, "or")

    def where_raw(self, sql: str, bindings: Sequence[Any] = (), boolean: str | Boolean = "and") -> Self:
        """Raw SQL; each ``?`` is bound, in order, to ``bindings``."""
        return self._add_where(raw(sql, bindings, "where_raw"), boolean)

    def or_where_raw(self, sql: str, bindings: Sequence[Any] = ()) -> Self:
        return self.where_raw(sql, bindings, "or")

    # ------------------------------------------------------------------
    # Ranges
    # ------------------------------------------------------------------

    def where_between(
        self,
        column: ColumnRef,
        values: Sequence[Any],
        boolean: str | Boolean = "and",
        negate: bool = False,
    ) -> Self:
        operation = "where_not_between" if negate else "where_between"
        return self._add_where(self._predicates.between(column, values, negate, operation), boolean)

    def or_where_between(self, column: ColumnRef, values: Sequence[Any]) -> Self:
        return self.where_between(column, values, "or")

    def where_not_between(self, column: ColumnRef, values: Sequence[Any], boolean: str | Boolean = "and") -> Self:
        return self.where_between(column, values, boolean, negate=True)

    def or_where_not_between(self, column: ColumnRef, values: Sequence[Any]) -> Self:
        return self.where_between(column, values, "or", negate=True)

    def where_between_columns(
        self,
        column: ColumnRef,
        columns: Sequence[ColumnRef],
        boolean: str | Boolean = "and",
        negate: bool = False,
    ) -> Self:
        return self._add_where(self._predicates.between_columns(column, columns, negate), boolean)

    def or_where_between_columns(self, column: ColumnRef, columns: Sequence[ColumnRef]) -> Self:
        return self.where_between_columns(column, columns, "or")

    def where_not_between_columns(
        self, column: ColumnRef, columns: Sequence[ColumnRef], boolean: str | Boolean = "and"
    ) -> Self:
        return self.where_between_columns(column, columns, boolean, negate=True)

    def or_where_not_between_columns(self, column: ColumnRef, columns: Sequence[ColumnRef]) -> Self:
        return self.where_between_columns(column, columns, "or", negate=True)

    # ------------------------------------------------------------------
    # Sets and sub-queries
    # ------------------------------------------------------------------

    def where_in(
        self,
        column: ColumnRef,
        values: Iterable[Any] | SubQuery,
        boolean: str | Boolean = "and",
        negate: bool = False,
    ) -> Self:
        """``column IN (?, ...)`` or ``column IN (<sub-select>)``.

        An empty sequence matches nothing (``0 = 1``); for ``NOT IN`` it
        matches everything (``1 = 1``).
        """
        operation = "where_not_in" if negate else "where_in"
        if isinstance(values, Fragment):
            fragment = self._predicates.in_query(column, values, negate)
        elif self._is_subquery(values):
            fragment = self._predicates.in_query(column, self._subquery(values, operation), negate)
        elif isinstance(values, (str, bytes, Mapping)) or not isinstance(values, Iterable):
            raise UsageError(
                f"Expected a sequence of values or a sub-query, got {type(values).__name__}.",
                operation,
            )
        else:
            fragment = self._predicates.in_values(column, list(values), negate, operation)
        return self._add_where(fragment, boolean)

    def or_where_in(self, column: ColumnRef, values: Iterable[Any] | SubQuery) -> Self:
        return self.where_in(column, values, "or")

    def where_not_in(
        self, column: ColumnRef, values: Iterable[Any] | SubQuery, boolean: str | Boolean = "and"
    ) -> Self:
        return self.where_in(column, values, boolean, negate=True)

    def or_where_not_in(self, column: ColumnRef, values: Iterable[Any] | SubQuery) -> Self:
        return self.where_in(column, values, "or", negate=True)

    def where_exists(self, query: SubQuery, boolean: str | Boolean = "and", negate: bool = False) -> Self:
        """``EXISTS (<sub-select>)``."""
        operation = "where_not_exists" if negate else "where_exists"
        return self._add_where(self._predicates.exists(self._subquery(query, operation), negate), boolean)

    def or_where_exists(self, query: SubQuery) -> Self:
        return self.where_exists(query, "or")

    def where_not_exists(self, query: SubQuery, boolean: str | Boolean = "and") -> Self:
        return self.where_exists(query, boolean, negate=True)

    def or_where_not_exists(self, query: SubQuery) -> Self:
        return self.where_exists(query, "or", negate=True)

    # ------------------------------------------------------------------
    # Nulls
    # ------------------------------------------------------------------

    def where_null(
        self,
        columns: ColumnRef | Sequence[ColumnRef],
        boolean: str | Boolean = "and",
        negate: bool = False,
    ) -> Self:
        """``column IS NULL``; a list of columns adds one check each."""
        targets = [columns] if isinstance(columns, (str, Fragment)) else list(columns)
        for column in targets:
            self._add_where(self._predicates.null(column, negate), boolean)
        return self  # type: ignore[return-value]

    def or_where_null(self, columns: ColumnRef | Sequence[ColumnRef]) -> Self:
        return self.where_null(columns, "or")

    def where_not_null(self, columns: ColumnRef | Sequence[ColumnRef], boolean: str | Boolean = "and") -> Self:
        return self.where_null(columns, boolean, negate=True)

    def or_where_not_null(self, columns: ColumnRef | Sequence[ColumnRef]) -> Self:
        return self.where_null(columns, "or", negate=True)

    # ------------------------------------------------------------------
    # Column sets
    # ------------------------------------------------------------------

    def where_any(
        self,
        columns: Sequence[ColumnRef],
        operator: Any = UNSET,
        value: Any = UNSET,
        boolean: str | Boolean = "and",
    ) -> Self:
        """``(a op ? OR b op ?)``, the value bound once per column."""
        op, rhs = resolve_operator(operator, value, "where_any")
        fragment = self._predicates.any_of(columns, op, rhs, Boolean.OR, "where_any")
        return self._add_where(fragment, boolean)

    def or_where_any(self, columns: Sequence[ColumnRef], operator: Any = UNSET, value: Any = UNSET) -> Self:
        return self.where_any(columns, operator, value, "or")

    def where_all(
        self,
        columns: Sequence[ColumnRef],
        operator: Any = UNSET,
        value: Any = UNSET,
        boolean: str | Boolean = "and",
    ) -> Self:
        """``(a op ? AND b op ?)``, the value bound once per column."""
        op, rhs = resolve_operator(operator, value, "where_all")
        fragment = self._predicates.any_of(columns, op, rhs, Boolean.AND, "where_all")
        return self._add_where(fragment, boolean)

    def or_where_all(self, columns: Sequence[ColumnRef], operator: Any = UNSET, value: Any = UNSET) -> Self:
        return self.where_all(columns, operator, value, "or")

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def where_json(
        self,
        column: ColumnRef,
        path: str,
        value: Any,
        operator: str = "=",
        boolean: str | Boolean = "and",
    ) -> Self:
        """Compare the value at ``path`` (``'a.b'`` or ``'a->b'``) in a JSON column."""
        return self._add_where(self._predicates.json_path(column, path, operator, value), boolean)

    def or_where_json(self, column: ColumnRef, path: str, value: Any, operator: str = "=") -> Self:
        return self.where_json(column, path, value, operator, "or")

    def where_json_contains(
        self,
        column: ColumnRef,
        value: Any,
        boolean: str | Boolean = "and",
        negate: bool = False,
    ) -> Self:
        """JSON containment; non-string values are sent as compact JSON text."""
        return self._add_where(self._predicates.json_contains(column, value, negate), boolean)

    def or_where_json_contains(self, column: ColumnRef, value: Any) -> Self:
        return self.where_json_contains(column, value, "or")

    def where_json_doesnt_contain(self, column: ColumnRef, value: Any, boolean: str | Boolean = "and") -> Self:
        return self.where_json_contains(column, value, boolean, negate=True)

    def or_where_json_doesnt_contain(self, column: ColumnRef, value: Any) -> Self:
        return self.where_json_contains(column, value, "or", negate=True)

    def where_json_length(
        self,
        column: ColumnRef,
        operator: Any = UNSET,
        value: Any = UNSET,
        boolean: str | Boolean = "and",
    ) -> Self:
        op, rhs = resolve_operator(operator, value, "where_json_length")
        return self._add_where(self._predicates.json_length(column, op, rhs), boolean)

    def or_where_json_length(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET) -> Self:
        return self.where_json_length(column, operator, value, "or")

    # ------------------------------------------------------------------
    # Temporal
    # ------------------------------------------------------------------

    def _where_part(
        self,
        part: str,
        column: ColumnRef,
        operator: Any,
        value: Any,
        boolean: str | Boolean,
    ) -> Self:
        op, rhs = resolve_operator(operator, value, f"where_{part}")
        return self._add_where(self._predicates.date_part(part, column, op, rhs), boolean)

    def where_date(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET, boolean: str | Boolean = "and") -> Self:
        return self._where_part("date", column, operator, value, boolean)

    def or_where_date(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET) -> Self:
        return self._where_part("date", column, operator, value, "or")

    def where_time(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET, boolean: str | Boolean = "and") -> Self:
        return self._where_part("time", column, operator, value, boolean)

    def or_where_time(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET) -> Self:
        return self._where_part("time", column, operator, value, "or")

    def where_year(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET, boolean: str | Boolean = "and") -> Self:
        return self._where_part("year", column, operator, value, boolean)

    def or_where_year(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET) -> Self:
        return self._where_part("year", column, operator, value, "or")

    def where_month(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET, boolean: str | Boolean = "and") -> Self:
        return self._where_part("month", column, operator, value, boolean)

    def or_where_month(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET) -> Self:
        return self._where_part("month", column, operator, value, "or")

    def where_day(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET, boolean: str | Boolean = "and") -> Self:
        return self._where_part("day", column, operator, value, boolean)

    def or_where_day(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET) -> Self:
        return self._where_part("day", column, operator, value, "or")

    # ------------------------------------------------------------------
    # Full text
    # ------------------------------------------------------------------

    def where_full_text(
        self,
        columns: ColumnRef | Sequence[ColumnRef],
        term: str,
        boolean: str | Boolean = "and",
    ) -> Self:
        """Dialect full-text match of ``term`` against ``columns``."""
        table = self._state.table or ""
        return self._add_where(self._predicates.full_text(columns, table, term), boolean)

    def or_where_full_text(self, columns: ColumnRef | Sequence[ColumnRef], term: str) -> Self:
        return self.where_full_text(columns, term, "or")

    # ------------------------------------------------------------------
    # Conditional building
    # ------------------------------------------------------------------

    def when(
        self,
        condition: Any,
        callback: Callable[[Self, Any], Any],
        default: Callable[[Self, Any], Any] | None = None,
    ) -> Self:
        """Apply ``callback(builder, condition)`` if ``condition`` is truthy,
        else ``default(builder, condition)`` when given."""
        if condition:
            callback(self, condition)
        elif default is not None:
            default(self, condition)
        return self
