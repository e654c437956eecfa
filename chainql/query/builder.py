"""The fluent query builder.

Usage::

    from chainql import DatabaseManager

    db = DatabaseManager()
    users = await (
        db.table("users")
        .where("votes", ">", 100)
        .or_where(lambda q: q.where("name", "Abigail").where("votes", ">", 50))
        .order_by("name")
        .get()
    )
"""
from __future__ import annotations

import sys
from datetime import date, datetime, time
from decimal import Decimal
from typing import IO, Any, Self

from chainql.compile.base import CompiledSQL
from chainql.compile.builder import SelectAssembler
from chainql.compile.expression_builder import PredicateBuilder
from chainql.compile.ledger import MARKER, Fragment
from chainql.compile.statements import StatementBuilder
from chainql.connection.base import ExecutionResult, Executor
from chainql.errors import UsageError
from chainql.query.clauses import ClauseMixin
from chainql.query.context import QueryContext
from chainql.query.predicates import PredicateMixin
from chainql.query.reads import ReadMixin
from chainql.query.state import QueryState
from chainql.query.writes import WriteMixin
from chainql.schema.dialect import Dialect


def _literal(value: Any, dialect: Dialect) -> str:
    """Render ``value`` as an SQL literal (debug output only)."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        if dialect is Dialect.PGSQL:
            return "TRUE" if value else "FALSE"
        return "1" if value else "0"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return f"X'{bytes(value).hex()}'"
    if isinstance(value, (datetime, date, time)):
        value = value.isoformat(sep=" ") if isinstance(value, datetime) else value.isoformat()
    text = str(value).replace("'", "''")
    return f"'{text}'"


class QueryBuilder(PredicateMixin, ClauseMixin, ReadMixin, WriteMixin):
    """Fluent builder for one SELECT / INSERT / UPDATE / DELETE.

    Clause methods mutate the builder and return it.  Terminal calls
    (``get``, ``count``, ``update`` ...) are coroutines executed through the
    context's executor; ``to_sql()`` renders without executing.

    A builder has a single owner and no locking: share a ``clone()``
    rather than the builder itself between concurrent tasks.

    Args:
        context: Compiler, executor and settings.
        table: Base table, optionally aliased (``"users as u"``).
    """

    def __init__(self, context: QueryContext, table: str | None = None) -> None:
        self._ctx = context
        self._state = QueryState(
            table=table,
            guard_unscoped_writes=context.settings.guard_unscoped_writes,
        )
        self._predicates = PredicateBuilder(context.compiler)
        self._assembler = SelectAssembler(context.compiler)
        self._statements = StatementBuilder(context.compiler)

    def __repr__(self) -> str:
        return f"QueryBuilder(dialect={self.dialect.value!r}, table={self._state.table!r})"

    @property
    def context(self) -> QueryContext:
        return self._ctx

    @property
    def dialect(self) -> Dialect:
        return self._ctx.dialect

    @property
    def table(self) -> str | None:
        return self._state.table

    def clone(self) -> Self:
        """Return an independent copy sharing only the context."""
        copy = type(self)(self._ctx, self._state.table)
        copy._state = self._state.copy()
        return copy

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def to_fragment(self) -> Fragment:
        """Return the SELECT as an unnumbered fragment (for embedding)."""
        return self._assembler.build(self._state)

    def to_sql(self) -> CompiledSQL:
        """Render the SELECT with named placeholders and its parameters."""
        return self._assembler.render(self._state)

    def to_raw_sql(self) -> str:
        """Render the SELECT with parameters inlined as literals.

        For logging and debugging only; never execute the result.
        """
        fragment = self.to_fragment()
        pieces = fragment.sql.split(MARKER)
        out = [pieces[0]]
        for value, piece in zip(fragment.params, pieces[1:]):
            out.append(_literal(value, self.dialect))
            out.append(piece)
        return "".join(out)

    def dump(self, stream: IO[str] | None = None) -> Self:
        """Print the rendered SQL and its bindings; returns the builder."""
        compiled = self.to_sql()
        print(compiled.sql, file=stream or sys.stdout)
        print(compiled.bindings, file=stream or sys.stdout)
        return self

    def dump_raw_sql(self, stream: IO[str] | None = None) -> Self:
        """Print :meth:`to_raw_sql`; returns the builder."""
        print(self.to_raw_sql(), file=stream or sys.stdout)
        return self

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _require_executor(self) -> Executor:
        executor = self._ctx.executor
        if executor is None:
            raise UsageError(
                "This builder has no executor; create it through DatabaseManager "
                "or pass one to QueryContext to run queries."
            )
        return executor

    async def _run(self, fragment: Fragment) -> ExecutionResult:
        executor = self._require_executor()
        compiled = self._ctx.compiler.finalize(fragment)
        return await executor.execute(compiled.sql, compiled.params)
