"""Clause-level SQL builders.

Each class handles exactly one SQL clause and returns a
:class:`~chainql.compile.ledger.Fragment`, so values bound inside a clause
travel with its text into the assembled statement.

Classes
-------
SelectClauseBuilder     ``SELECT [DISTINCT] <items>``
FromClauseBuilder       ``FROM <table>``
ConditionClauseBuilder  ``WHERE …`` / ``HAVING …``
ListClauseBuilder       ``GROUP BY …`` / ``ORDER BY …``
JoinClause              fluent ``JOIN … ON …`` builder handed to join callbacks
"""
from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from chainql.compile.base import SQLCompiler
from chainql.compile.expression_builder import ColumnRef, PredicateBuilder
from chainql.compile.ledger import Condition, Fragment, join_conditions
from chainql.errors import UsageError
from chainql.schema.expressions import (
    UNSET,
    Boolean,
    JoinType,
    normalize_boolean,
    resolve_operator,
)


class SelectClauseBuilder:
    """Builds the ``SELECT [DISTINCT] …`` clause."""

    def build(self, columns: Sequence[Fragment], distinct: bool = False) -> Fragment:
        prefix = "SELECT DISTINCT" if distinct else "SELECT"
        if not columns:
            return Fragment(f"{prefix} *")
        return Fragment.join(", ", columns).wrap(f"{prefix} ", "")


class FromClauseBuilder:
    """Builds the ``FROM <table>`` fragment."""

    def __init__(self, compiler: SQLCompiler) -> None:
        self._compiler = compiler

    def build(self, table: str | None) -> Fragment:
        if not table:
            raise UsageError("No table selected; call from_() first.", "from_")
        return Fragment(f"FROM {self._compiler.wrap(table)}")


class ConditionClauseBuilder:
    """Builds ``<keyword> a AND b OR c``; empty lists render nothing."""

    def __init__(self, keyword: str) -> None:
        self._keyword = keyword

    def build(self, conditions: Sequence[Condition]) -> Fragment | None:
        if not conditions:
            return None
        return join_conditions(conditions).wrap(f"{self._keyword} ", "")


class ListClauseBuilder:
    """Builds ``<keyword> a, b``; empty lists render nothing."""

    def __init__(self, keyword: str) -> None:
        self._keyword = keyword

    def build(self, items: Sequence[Fragment]) -> Fragment | None:
        if not items:
            return None
        return Fragment.join(", ", items).wrap(f"{self._keyword} ", "")


# ---------------------------------------------------------------------------
# JOIN
# ---------------------------------------------------------------------------


class JoinClause:
    """Fluent builder for one JOIN's ``ON`` conditions.

    ``on``/``or_on`` compare two columns; ``where``/``or_where`` compare a
    column with a bound value.  Conditions are joined with their own
    connectives, exactly like WHERE conditions.

    Example::

        query.join("contacts", lambda j: j.on("users.id", "=", "contacts.user_id")
                                          .where("contacts.active", True))
    """

    def __init__(
        self,
        predicates: PredicateBuilder,
        compiler: SQLCompiler,
        table: str,
        join_type: JoinType = JoinType.INNER,
    ) -> None:
        self._predicates = predicates
        self._compiler = compiler
        self.table = table
        self.join_type = join_type
        self.conditions: list[Condition] = []

    def on(
        self,
        first: ColumnRef | Callable[[JoinClause], Any],
        operator: Any = UNSET,
        second: Any = UNSET,
        boolean: str | Boolean = "and",
    ) -> JoinClause:
        """Add ``first op second``; a callable adds a parenthesised group."""
        connective = normalize_boolean(boolean)
        if callable(first):
            nested = JoinClause(self._predicates, self._compiler, self.table, self.join_type)
            first(nested)
            if nested.conditions:
                self.conditions.append(
                    Condition(connective, join_conditions(nested.conditions).wrap())
                )
            return self
        op, other = resolve_operator(operator, second, "on")
        self.conditions.append(
            Condition(connective, self._predicates.compare_columns(first, op, other))
        )
        return self

    def or_on(
        self,
        first: ColumnRef | Callable[[JoinClause], Any],
        operator: Any = UNSET,
        second: Any = UNSET,
    ) -> JoinClause:
        return self.on(first, operator, second, "or")

    def where(
        self,
        column: ColumnRef,
        operator: Any = UNSET,
        value: Any = UNSET,
        boolean: str | Boolean = "and",
    ) -> JoinClause:
        """Add ``column op ?`` with ``value`` bound."""
        op, rhs = resolve_operator(operator, value, "join.where")
        self.conditions.append(
            Condition(normalize_boolean(boolean), self._predicates.compare(column, op, rhs))
        )
        return self

    def or_where(self, column: ColumnRef, operator: Any = UNSET, value: Any = UNSET) -> JoinClause:
        return self.where(column, operator, value, "or")

    def where_null(self, column: ColumnRef, boolean: str | Boolean = "and") -> JoinClause:
        self.conditions.append(
            Condition(normalize_boolean(boolean), self._predicates.null(column))
        )
        return self

    def where_not_null(self, column: ColumnRef, boolean: str | Boolean = "and") -> JoinClause:
        self.conditions.append(
            Condition(normalize_boolean(boolean), self._predicates.null(column, negate=True))
        )
        return self

    def where_in(
        self,
        column: ColumnRef,
        values: Sequence[Any],
        boolean: str | Boolean = "and",
    ) -> JoinClause:
        self.conditions.append(
            Condition(normalize_boolean(boolean), self._predicates.in_values(column, values))
        )
        return self

    def build(self) -> Fragment:
        """Render ``<TYPE> JOIN <table> [ON <conditions>]``.

        Raises:
            UsageError: If a non-CROSS join has no conditions.
        """
        head = f"{self.join_type.value} JOIN {self._compiler.wrap(self.table)}"
        if not self.conditions:
            if self.join_type is JoinType.CROSS:
                return Fragment(head)
            raise UsageError(f"JOIN {self.table!r} has no ON condition.", "join")
        return join_conditions(self.conditions).wrap(f"{head} ON ", "")
