"""Statement verbs: insert / upsert / update / delete / truncate.

Every verb validates its input and renders its statement before anything
is executed.  ``update``, ``delete``, the increment family and
``update_json`` apply the builder's current WHERE conditions; without any
they touch every row of the table.  That is allowed, logged at WARNING, and
can be turned into a :class:`~chainql.errors.UsageError` with
``guard_unscoped_writes()`` or ``Settings.guard_unscoped_writes``.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from chainql.compile.ledger import Fragment, ParameterLedger
from chainql.compile.statements import StatementBuilder, normalize_rows
from chainql.errors import MappingError, UsageError
from chainql.query.reads import project
from chainql.schema.values import is_numeric

if TYPE_CHECKING:
    from chainql.connection.base import Executor, ExecutionResult
    from chainql.query.context import QueryContext
    from chainql.query.state import QueryState

logger = logging.getLogger(__name__)

RowInput = Mapping[str, Any] | Sequence[Mapping[str, Any]]


class WriteMixin:
    """Write terminals; mixed into :class:`~chainql.query.builder.QueryBuilder`."""

    _ctx: QueryContext
    _state: QueryState
    _statements: StatementBuilder

    # Provided by QueryBuilder / the other mixins.
    _run: Callable[[Fragment], Awaitable[ExecutionResult]]
    _subquery: Callable[[Any, str], Fragment]
    _require_executor: Callable[[], Executor]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _target_table(self, operation: str) -> str:
        if not self._state.table:
            raise UsageError("No table selected.", operation)
        return self._state.table

    def _check_unscoped(self, operation: str) -> None:
        if self._state.wheres:
            return
        if self._state.guard_unscoped_writes:
            raise UsageError(
                f"{operation}() without a WHERE clause would affect every row of "
                f"{self._state.table!r}; add a condition or disable the guard.",
                operation,
            )
        logger.warning("%s() without WHERE affects every row of %r", operation, self._state.table)

    async def _write(self, fragment: Fragment) -> int:
        result = await self._run(fragment)
        return result.rowcount

    # ------------------------------------------------------------------
    # INSERT
    # ------------------------------------------------------------------

    async def insert(self, values: RowInput) -> int:
        """Insert one row (a mapping) or several (a sequence of mappings).

        Returns:
            The number of inserted rows.

        Raises:
            UsageError: If there are no rows, a row is empty, or rows disagree
                on their column set.
        """
        table = self._target_table("insert")
        rows = normalize_rows(values, "insert")
        return await self._write(self._statements.insert(table, rows))

    async def insert_or_ignore(self, values: RowInput) -> int:
        """Insert, silently skipping rows that violate a unique constraint."""
        table = self._target_table("insert_or_ignore")
        rows = normalize_rows(values, "insert_or_ignore")
        return await self._write(self._statements.insert(table, rows, ignore=True, operation="insert_or_ignore"))

    async def insert_get_id(self, values: Mapping[str, Any], id_column: str = "id") -> Any:
        """Insert one row and return its generated ``id_column`` value.

        PostgreSQL uses ``RETURNING``; the other engines read the
        last-insert id on the same connection right after the INSERT.

        Raises:
            MappingError: If the driver reports no generated id.
        """
        if not isinstance(values, Mapping):
            raise UsageError("insert_get_id() takes a single row mapping.", "insert_get_id")
        table = self._target_table("insert_get_id")
        rows = normalize_rows(values, "insert_get_id")
        compiler = self._ctx.compiler
        if compiler.supports_returning:
            fragment = self._statements.insert(table, rows, returning=id_column, operation="insert_get_id")
            result = await self._run(fragment)
            if not result.rows:
                raise MappingError("INSERT ... RETURNING returned no row.", column=id_column)
            return project(result.rows[0], id_column)
        last_id_sql = compiler.last_insert_id_sql()
        if last_id_sql is None:
            raise UsageError(
                f"Dialect '{compiler.dialect.value}' cannot report generated ids.",
                "insert_get_id",
            )
        fragment = self._statements.insert(table, rows, operation="insert_get_id")
        async with self._require_executor().exclusive():
            await self._run(fragment)
            result = await self._run(Fragment(last_id_sql))
        generated = result.scalar()
        if generated is None:
            raise MappingError("The database reported no generated id.", column=id_column)
        return generated

    async def insert_using(self, columns: Sequence[str], query: Any) -> int:
        """``INSERT INTO t (columns) <select>`` from a builder or callback."""
        table = self._target_table("insert_using")
        sub = self._subquery(query, "insert_using")
        return await self._write(self._statements.insert_using(table, columns, sub))

    async def upsert(
        self,
        values: RowInput,
        unique_by: str | Sequence[str],
        update_columns: Sequence[str] | None = None,
    ) -> int:
        """Insert rows, updating ``update_columns`` where ``unique_by`` conflicts.

        ``update_columns`` defaults to every inserted column not in
        ``unique_by``.  Returns the driver's affected-row count, whose
        meaning for updated rows differs between engines.
        """
        table = self._target_table("upsert")
        rows = normalize_rows(values, "upsert")
        return await self._write(self._statements.upsert(table, rows, unique_by, update_columns))

    # ------------------------------------------------------------------
    # UPDATE
    # ------------------------------------------------------------------

    async def update(self, values: Mapping[str, Any]) -> int:
        """Update matching rows; returns the affected-row count."""
        if not values:
            raise UsageError("At least one column value is required.", "update")
        self._check_unscoped("update")
        return await self._write(self._statements.update(self._state, values))

    async def update_or_insert(
        self,
        attributes: Mapping[str, Any],
        values: Mapping[str, Any] | None = None,
    ) -> bool:
        """Update the rows matching ``attributes`` or insert a new one.

        Returns:
            ``True`` if a row was inserted, ``False`` if existing rows were
            updated (or there was nothing to update).
        """
        if not attributes:
            raise UsageError("At least one attribute is required.", "update_or_insert")
        values = dict(values or {})
        scoped = self.clone().where(dict(attributes))  # type: ignore[attr-defined]
        if not await scoped.exists():
            await self.clone().insert({**attributes, **values})  # type: ignore[attr-defined]
            return True
        if values:
            await scoped.update(values)
        return False

    def _adjustments(self, amounts: Mapping[str, Any], sign: str, operation: str) -> dict[str, Any]:
        if not amounts:
            raise UsageError("At least one column is required.", operation)
        assignments: dict[str, Any] = {}
        for column, amount in amounts.items():
            if not is_numeric(amount):
                raise UsageError(
                    f"Non-numeric value passed to {operation}() for {column!r}: {amount!r}.",
                    operation,
                )
            ledger = ParameterLedger()
            sql = f"{self._ctx.compiler.wrap(column)} {sign} {ledger.bind(amount)}"
            assignments[column] = ledger.fragment(sql)
        return assignments

    async def _adjust(
        self,
        amounts: Mapping[str, Any],
        sign: str,
        extra: Mapping[str, Any] | None,
        operation: str,
    ) -> int:
        assignments = self._adjustments(amounts, sign, operation)
        assignments.update(extra or {})
        self._check_unscoped(operation)
        return await self._write(self._statements.update(self._state, assignments, operation))

    async def increment(self, column: str, amount: Any = 1, extra: Mapping[str, Any] | None = None) -> int:
        """``SET column = column + ?`` plus optional ``extra`` assignments."""
        return await self._adjust({column: amount}, "+", extra, "increment")

    async def decrement(self, column: str, amount: Any = 1, extra: Mapping[str, Any] | None = None) -> int:
        """``SET column = column - ?`` plus optional ``extra`` assignments."""
        return await self._adjust({column: amount}, "-", extra, "decrement")

    async def increment_each(self, amounts: Mapping[str, Any], extra: Mapping[str, Any] | None = None) -> int:
        return await self._adjust(amounts, "+", extra, "increment_each")

    async def decrement_each(self, amounts: Mapping[str, Any], extra: Mapping[str, Any] | None = None) -> int:
        return await self._adjust(amounts, "-", extra, "decrement_each")

    async def update_json(self, column: str, path: str, value: Any) -> int:
        """Replace the value at ``path`` inside a JSON column.

        ``value`` is stored as JSON (strings become JSON strings).
        """
        assignment = self._statements.json_assignment(column, path, value)
        self._check_unscoped("update_json")
        return await self._write(self._statements.update(self._state, {column: assignment}, "update_json"))

    # ------------------------------------------------------------------
    # DELETE / TRUNCATE
    # ------------------------------------------------------------------

    async def delete(self, id: Any = None, id_column: str = "id") -> int:
        """Delete matching rows (or the row with ``id``); returns the count."""
        query = self
        if id is not None:
            query = self.clone().where(id_column, "=", id)  # type: ignore[attr-defined]
        query._target_table("delete")
        query._check_unscoped("delete")
        return await query._write(query._statements.delete(query._state))

    async def truncate(self) -> None:
        """Empty the table (``TRUNCATE``; ``DELETE FROM`` on SQLite)."""
        table = self._target_table("truncate")
        await self._run(self._statements.truncate(table))
