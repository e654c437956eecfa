"""SELECT-list, JOIN, GROUP BY / HAVING, ORDER BY, paging and lock methods."""
from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Self

from chainql.compile.clause_builders import JoinClause
from chainql.compile.expression_builder import ColumnRef, PredicateBuilder, raw
from chainql.compile.ledger import Condition, Fragment
from chainql.errors import UsageError
from chainql.schema.dialect import LockMode
from chainql.schema.expressions import (
    UNSET,
    Boolean,
    JoinType,
    normalize_boolean,
    normalize_direction,
    resolve_operator,
)

if TYPE_CHECKING:
    from chainql.query.context import QueryContext
    from chainql.query.state import QueryState


def _flatten(columns: Sequence[Any]) -> list[Any]:
    flat: list[Any] = []
    for column in columns:
        if isinstance(column, (list, tuple)):
            flat.extend(column)
        else:
            flat.append(column)
    return flat


def _non_negative_int(value: Any, operation: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise UsageError(f"Expected a non-negative integer, got {value!r}.", operation)
    return value


class ClauseMixin:
    """Clause methods; mixed into :class:`~chainql.query.builder.QueryBuilder`."""

    _ctx: QueryContext
    _state: QueryState
    _predicates: PredicateBuilder

    # ------------------------------------------------------------------
    # SELECT / FROM
    # ------------------------------------------------------------------

    def _column_fragment(self, column: ColumnRef) -> Fragment:
        if isinstance(column, Fragment):
            return column
        if not isinstance(column, str) or not column.strip():
            raise UsageError(f"Invalid column: {column!r}.", "select")
        return Fragment(self._ctx.compiler.wrap(column))

    def select(self, *columns: ColumnRef | Sequence[ColumnRef]) -> Self:
        """Replace the SELECT list; no columns means ``*``."""
        self._state.columns = [self._column_fragment(c) for c in _flatten(columns)]
        return self

    def add_select(self, *columns: ColumnRef | Sequence[ColumnRef]) -> Self:
        """Append to the SELECT list."""
        self._state.columns.extend(self._column_fragment(c) for c in _flatten(columns))
        return self

    def select_raw(self, sql: str, bindings: Sequence[Any] = ()) -> Self:
        """Append a raw expression (``?`` markers bound) to the SELECT list."""
        self._state.columns.append(raw(sql, bindings, "select_raw"))
        return self

    def raw(self, sql: str, bindings: Sequence[Any] = ()) -> Self:
        """Alias of :meth:`select_raw`."""
        return self.select_raw(sql, bindings)

    def distinct(self) -> Self:
        self._state.distinct = True
        return self

    def from_(self, table: str) -> Self:
        """Set the base table (used by sub-query callbacks)."""
        self._state.table = table
        return self

    # ------------------------------------------------------------------
    # JOIN
    # ------------------------------------------------------------------

    def join(
        self,
        table: str,
        first: ColumnRef | Callable[[JoinClause], Any] | None = None,
        operator: Any = UNSET,
        second: Any = UNSET,
        join_type: JoinType | str = JoinType.INNER,
    ) -> Self:
        """``INNER JOIN table ON first op second`` or a callback-built ON.

        Example::

            query.join("posts", "users.id", "=", "posts.user_id")
            query.join("posts", lambda j: j.on("users.id", "posts.user_id")
                                           .where("posts.published", True))
        """
        try:
            kind = JoinType(str(getattr(join_type, "value", join_type)).upper())
        except ValueError as exc:
            raise UsageError(f"Unsupported join type {join_type!r}.", "join") from exc
        clause = JoinClause(self._predicates, self._ctx.compiler, table, kind)
        if callable(first):
            first(clause)
        elif first is not None:
            clause.on(first, operator, second)
        self._state.joins.append(clause.build())
        return self

    def left_join(
        self,
        table: str,
        first: ColumnRef | Callable[[JoinClause], Any] | None = None,
        operator: Any = UNSET,
        second: Any = UNSET,
    ) -> Self:
        return self.join(table, first, operator, second, JoinType.LEFT)

    def right_join(
        self,
        table: str,
        first: ColumnRef | Callable[[JoinClause], Any] | None = None,
        operator: Any = UNSET,
        second: Any = UNSET,
    ) -> Self:
        return self.join(table, first, operator, second, JoinType.RIGHT)

    def cross_join(
        self,
        table: str,
        first: ColumnRef | Callable[[JoinClause], Any] | None = None,
        operator: Any = UNSET,
        second: Any = UNSET,
    ) -> Self:
        return self.join(table, first, operator, second, JoinType.CROSS)

    # ------------------------------------------------------------------
    # GROUP BY / HAVING
    # ------------------------------------------------------------------

    def group_by(self, *columns: ColumnRef | Sequence[ColumnRef]) -> Self:
        self._state.groups.extend(self._column_fragment(c) for c in _flatten(columns))
        return self

    def group_by_raw(self, sql: str, bindings: Sequence[Any] = ()) -> Self:
        self._state.groups.append(raw(sql, bindings, "group_by_raw"))
        return self

    def _add_having(self, fragment: Fragment, boolean: str | Boolean) -> Self:
        self._state.havings.append(Condition(normalize_boolean(boolean), fragment))
        return self

    def having(
        self,
        column: ColumnRef,
        operator: Any = UNSET,
        value: Any = UNSET,
        boolean: str | Boolean = "and",
    ) -> Self:
        """``HAVING column op ?``."""
        op, rhs = resolve_operator(operator, value, "having")
        return self._add_having(self._predicates.compare(column, op, rhs, "having"), boolean)

    def or_having(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET) -> Self:
        return self.having(column, operator, value, "or")

    def having_between(
        self,
        column: ColumnRef,
        values: Sequence[Any],
        boolean: str | Boolean = "and",
        negate: bool = False,
    ) -> Self:
        fragment = self._predicates.between(column, values, negate, "having_between")
        return self._add_having(fragment, boolean)

    def having_raw(self, sql: str, bindings: Sequence[Any] = (), boolean: str | Boolean = "and") -> Self:
        return self._add_having(raw(sql, bindings, "having_raw"), boolean)

    def or_having_raw(self, sql: str, bindings: Sequence[Any] = ()) -> Self:
        return self.having_raw(sql, bindings, "or")

    # ------------------------------------------------------------------
    # ORDER BY
    # ------------------------------------------------------------------

    def order_by(self, column: ColumnRef, direction: str = "asc") -> Self:
        direction_kw = normalize_direction(direction)
        if isinstance(column, Fragment):
            self._state.orders.append(column.wrap("", f" {direction_kw.value}"))
        else:
            wrapped = self._column_fragment(column).sql
            self._state.orders.append(Fragment(f"{wrapped} {direction_kw.value}"))
        return self

    def order_by_desc(self, column: ColumnRef) -> Self:
        return self.order_by(column, "desc")

    def latest(self, column: ColumnRef = "created_at") -> Self:
        return self.order_by(column, "desc")

    def oldest(self, column: ColumnRef = "created_at") -> Self:
        return self.order_by(column, "asc")

    def in_random_order(self) -> Self:
        self._state.orders.append(Fragment(self._ctx.compiler.random_function()))
        return self

    def order_by_raw(self, sql: str, bindings: Sequence[Any] = ()) -> Self:
        self._state.orders.append(raw(sql, bindings, "order_by_raw"))
        return self

    def reorder(self, column: ColumnRef | None = None, direction: str = "asc") -> Self:
        """Drop all orderings, then optionally order by ``column``."""
        self._state.orders = []
        if column is not None:
            self.order_by(column, direction)
        return self

    # ------------------------------------------------------------------
    # LIMIT / OFFSET
    # ------------------------------------------------------------------

    def limit(self, value: int) -> Self:
        self._state.limit = _non_negative_int(value, "limit")
        return self

    def take(self, value: int) -> Self:
        return self.limit(value)

    def offset(self, value: int) -> Self:
        self._state.offset = _non_negative_int(value, "offset")
        return self

    def skip(self, value: int) -> Self:
        return self.offset(value)

    def for_page(self, page: int, per_page: int = 15) -> Self:
        """``LIMIT per_page OFFSET (page - 1) * per_page``; pages start at 1."""
        page = _non_negative_int(page, "for_page")
        per_page = _non_negative_int(per_page, "for_page")
        if page < 1:
            raise UsageError("Pages are numbered from 1.", "for_page")
        return self.offset((page - 1) * per_page).limit(per_page)

    # ------------------------------------------------------------------
    # Locks and write safety
    # ------------------------------------------------------------------

    def shared_lock(self) -> Self:
        self._state.lock = LockMode.SHARE
        return self

    def lock_for_update(self) -> Self:
        self._state.lock = LockMode.UPDATE
        return self

    def guard_unscoped_writes(self, enabled: bool = True) -> Self:
        """Reject ``update``/``delete``/``increment`` calls without a WHERE clause."""
        self._state.guard_unscoped_writes = enabled
        return self
