"""SELECT statement assembly.

``SelectAssembler`` is the top-level orchestrator for reads.  It wires
together the focused clause-level sub-builders and emits, in order::

    SELECT [DISTINCT] list -> FROM -> JOINs -> WHERE -> GROUP BY -> HAVING
    -> ORDER BY -> LIMIT -> OFFSET -> lock suffix

Absent clauses are omitted entirely.  All dialect-specific behaviour is
delegated to the injected ``SQLCompiler``.

Parameter ledger sharing
------------------------
Every clause is a :class:`~chainql.compile.ledger.Fragment` whose values
travel with its text, so a sub-query rendered by a nested assembler is
folded into its parent with its values in textual order.  Placeholders are
numbered once, by :meth:`SQLCompiler.finalize`, on the outermost statement.

The assembler never mutates the state it reads; rendering the same state
twice yields byte-identical SQL and parameters.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from chainql.compile.base import CompiledSQL, SQLCompiler
from chainql.compile.clause_builders import (
    ConditionClauseBuilder,
    FromClauseBuilder,
    ListClauseBuilder,
    SelectClauseBuilder,
)
from chainql.compile.ledger import Fragment
from chainql.schema.expressions import Aggregate

if TYPE_CHECKING:
    from chainql.query.state import QueryState

#: Column alias of every aggregate result.
AGGREGATE_ALIAS = "aggregate"

#: Alias of the derived table wrapping grouped / distinct aggregates.
AGGREGATE_TABLE = "aggregate_table"


class SelectAssembler:
    """Renders a :class:`~chainql.query.state.QueryState` as a SELECT.

    Args:
        compiler: Dialect-specific compiler instance.
    """

    def __init__(self, compiler: SQLCompiler) -> None:
        self._compiler = compiler
        self._select = SelectClauseBuilder()
        self._from = FromClauseBuilder(compiler)
        self._where = ConditionClauseBuilder("WHERE")
        self._group = ListClauseBuilder("GROUP BY")
        self._having = ConditionClauseBuilder("HAVING")
        self._order = ListClauseBuilder("ORDER BY")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def render(self, state: QueryState) -> CompiledSQL:
        """Render ``state`` to final, placeholder-numbered SQL."""
        return self._compiler.finalize(self.build(state))

    def build(self, state: QueryState) -> Fragment:
        """Render ``state`` to an unnumbered fragment (for nesting)."""
        parts: list[Fragment | None] = [
            self._select.build(state.columns, state.distinct),
            *self._body(state),
            self._order.build(state.orders),
        ]
        tail = self._compiler.compile_limit_offset(state.limit, state.offset)
        lock = self._compiler.lock_clause(state.lock)
        if lock:
            tail.append(lock)
        parts.extend(Fragment(t) for t in tail)
        return Fragment.join(" ", [p for p in parts if p])

    def build_aggregate(self, state: QueryState, function: Aggregate, column: str = "*") -> Fragment:
        """Render ``SELECT FN(column) AS aggregate`` over ``state``.

        Ordering, paging and locking are dropped.  Grouped or DISTINCT
        queries are wrapped as a derived table so the aggregate runs over
        their result rows.
        """
        base = state.for_aggregate()
        target = "*" if column == "*" else self._compiler.wrap(column)
        projection = (
            f"SELECT {function.value}({target}) AS "
            f"{self._compiler.quote_identifier(AGGREGATE_ALIAS)}"
        )
        if base.groups or base.distinct:
            inner = self.build(base)
            alias = self._compiler.quote_identifier(AGGREGATE_TABLE)
            return inner.wrap(f"{projection} FROM (", f") AS {alias}")
        parts: list[Fragment | None] = [Fragment(projection), *self._body(base)]
        return Fragment.join(" ", [p for p in parts if p])

    def build_exists(self, state: QueryState) -> Fragment:
        """Render ``SELECT 1 ... LIMIT 1`` over ``state``'s predicates."""
        base = state.for_aggregate()
        base.columns = [Fragment("1")]
        base.distinct = False
        base.limit = 1
        return self.build(base)

    # ------------------------------------------------------------------
    # Shared body
    # ------------------------------------------------------------------

    def _body(self, state: QueryState) -> list[Fragment | None]:
        return [
            self._from.build(state.table),
            *state.joins,
            self._where.build(state.wheres),
            self._group.build(state.groups),
            self._having.build(state.havings),
        ]
