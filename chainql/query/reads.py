"""Read projections: get/first/find/value/pluck, aggregates, existence and
chunked / lazy iteration.

Terminal reads work on clones, so a builder can be awaited repeatedly and
is never left partially modified, including when a chunked iteration is
cancelled between pages.

Chunked iteration follows a three-state machine::

    Fetching --non-empty page--> Delivering --callback continues--> Fetching
    Fetching --empty page--> Done
    Delivering --callback returns False--> Done

Pages are fetched strictly one after another; the next page (offset or
cursor value) is computed only after the previous page's callback returned.
"""
from __future__ import annotations

import inspect
import re
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Self

from chainql.compile.builder import AGGREGATE_ALIAS, SelectAssembler
from chainql.compile.expression_builder import PredicateBuilder
from chainql.compile.ledger import Condition, Fragment, join_conditions
from chainql.errors import MappingError, UsageError
from chainql.schema.expressions import Aggregate, Boolean
from chainql.schema.values import Row

if TYPE_CHECKING:
    from chainql.connection.base import ExecutionResult
    from chainql.query.context import QueryContext
    from chainql.query.state import QueryState

ChunkCallback = Callable[[list[Row]], "bool | None | Awaitable[bool | None]"]

_ALIAS_RE = re.compile(r"\s+as\s+", re.IGNORECASE)


def result_key(column: str) -> str:
    """Return the key a selected column appears under in a result row.

    ``users.name`` -> ``name``; ``name as n`` -> ``n``.
    """
    parts = _ALIAS_RE.split(column.strip(), maxsplit=1)
    if len(parts) == 2:
        return parts[1].strip()
    return parts[0].rsplit(".", 1)[-1]


def project(row: Row, column: str) -> Any:
    """Return ``row``'s value for ``column``.

    Raises:
        MappingError: If the result has no such column.
    """
    key = result_key(column)
    try:
        return row[key]
    except KeyError:
        raise MappingError(
            f"Column {key!r} is not in the result (columns: {sorted(row)}).", column=key
        ) from None


def _positive_size(size: Any, operation: str) -> int:
    if isinstance(size, bool) or not isinstance(size, int) or size < 1:
        raise UsageError(f"Chunk size must be a positive integer, got {size!r}.", operation)
    return size


async def _deliver(callback: ChunkCallback, rows: list[Row]) -> bool:
    """Run ``callback``; ``True`` means continue."""
    outcome = callback(rows)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome is not False


class ReadMixin:
    """Read terminals; mixed into :class:`~chainql.query.builder.QueryBuilder`."""

    _ctx: QueryContext
    _state: QueryState
    _assembler: SelectAssembler

    # Provided by QueryBuilder / the other mixins.
    clone: Callable[[], Self]
    _run: Callable[[Fragment], Awaitable[ExecutionResult]]

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    async def get(self, *columns: str) -> list[Row]:
        """Execute the SELECT and return every row.

        Args:
            columns: Optional columns replacing the SELECT list for this call.
        """
        query = self.clone()
        if columns:
            query.select(*columns)  # type: ignore[attr-defined]
        result = await query._run(query._assembler.build(query._state))
        return result.rows

    async def first(self, *columns: str) -> Row | None:
        """Return the first row (``LIMIT 1``), or ``None``."""
        rows = await self.clone().limit(1).get(*columns)  # type: ignore[attr-defined]
        return rows[0] if rows else None

    async def find(self, id: Any, id_column: str = "id", columns: tuple[str, ...] = ()) -> Row | None:
        """Return the row whose ``id_column`` equals ``id``, or ``None``."""
        return await self.clone().where(id_column, "=", id).first(*columns)  # type: ignore[attr-defined]

    async def value(self, column: str) -> Any:
        """Return ``column`` of the first row, or ``None`` if nothing matched."""
        row = await self.first(column)
        return None if row is None else project(row, column)

    async def pluck(self, column: str, *columns: str) -> list[Any]:
        """Return one column as a flat list, or several as a list of dicts."""
        rows = await self.get(column, *columns)
        if not columns:
            return [project(row, column) for row in rows]
        selected = (column, *columns)
        return [{result_key(c): project(row, c) for c in selected} for row in rows]

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    async def aggregate(self, function: Aggregate | str, column: str = "*") -> Any:
        """Run ``SELECT FN(column)`` over the current joins and predicates."""
        name = str(getattr(function, "value", function)).upper()
        try:
            fn = Aggregate(name)
        except ValueError as exc:
            raise UsageError(f"Unknown aggregate function '{name}'.", "aggregate") from exc
        fragment = self._assembler.build_aggregate(self._state, fn, column)
        result = await self._run(fragment)
        if not result.rows:
            return None
        return project(result.rows[0], AGGREGATE_ALIAS)

    async def count(self, column: str = "*") -> int:
        """Return the number of matching rows.

        Raises:
            MappingError: If the driver returns a non-integral count.
        """
        value = await self.aggregate(Aggregate.COUNT, column)
        if value is None:
            return 0
        if isinstance(value, bool):
            raise MappingError(f"COUNT returned a boolean: {value!r}.", column=AGGREGATE_ALIAS)
        if isinstance(value, int):
            return value
        if isinstance(value, (Decimal, float)) and value == int(value):
            return int(value)
        if isinstance(value, str) and value.strip().isdigit():
            return int(value)
        raise MappingError(f"COUNT returned a non-integer value: {value!r}.", column=AGGREGATE_ALIAS)

    async def max(self, column: str) -> Any:
        return await self.aggregate(Aggregate.MAX, column)

    async def min(self, column: str) -> Any:
        return await self.aggregate(Aggregate.MIN, column)

    async def avg(self, column: str) -> Any:
        return await self.aggregate(Aggregate.AVG, column)

    async def sum(self, column: str) -> Any:
        """Return the sum of ``column``; ``0`` when no rows match."""
        value = await self.aggregate(Aggregate.SUM, column)
        return 0 if value is None else value

    async def exists(self) -> bool:
        """``True`` if ``SELECT 1 ... LIMIT 1`` returns a row."""
        result = await self._run(self._assembler.build_exists(self._state))
        return bool(result.rows)

    async def doesnt_exist(self) -> bool:
        return not await self.exists()

    # ------------------------------------------------------------------
    # Page generators
    # ------------------------------------------------------------------

    async def _offset_pages(self, size: int) -> AsyncGenerator[list[Row], None]:
        page = 0
        while True:
            rows = await self.clone().offset(page * size).limit(size).get()  # type: ignore[attr-defined]
            if not rows:
                return
            yield rows
            page += 1

    async def _cursor_pages(
        self,
        size: int,
        column: str,
        alias: str | None,
        descending: bool,
    ) -> AsyncGenerator[list[Row], None]:
        key = alias or column
        last: Any = None
        started = False
        while True:
            query = self.clone()
            query._isolate_wheres()
            if started:
                query.where(column, "<" if descending else ">", last)  # type: ignore[attr-defined]
            query.reorder(column, "desc" if descending else "asc").limit(size)  # type: ignore[attr-defined]
            rows = await query.get()
            if not rows:
                return
            yield rows
            last = project(rows[-1], key)
            if last is None:
                raise MappingError(
                    f"Cursor column {key!r} is NULL in the last row of a page; "
                    "cursor pagination needs a non-null key.",
                    column=key,
                )
            started = True

    def _isolate_wheres(self) -> None:
        """Wrap OR-connected WHERE conditions in one group so an added
        cursor predicate applies to all of them."""
        wheres = self._state.wheres
        if any(c.boolean is Boolean.OR for c in wheres[1:]):
            group = PredicateBuilder.group(join_conditions(wheres))
            self._state.wheres = [Condition(Boolean.AND, group)]

    # ------------------------------------------------------------------
    # Chunked iteration
    # ------------------------------------------------------------------

    async def chunk(self, size: int, callback: ChunkCallback) -> bool:
        """Feed ``LIMIT size OFFSET k*size`` pages to ``callback``.

        ``callback`` (sync or async) receives the page's rows; returning
        ``False`` stops the iteration.

        Returns:
            ``False`` if the callback stopped early, else ``True``.
        """
        size = _positive_size(size, "chunk")
        return await self._drive(self._offset_pages(size), callback)

    async def chunk_by_id(
        self,
        size: int,
        callback: ChunkCallback,
        column: str = "id",
        alias: str | None = None,
    ) -> bool:
        """Cursor pagination: ``column > last`` pages ordered ascending.

        Other orderings are replaced.  ``alias`` names the key in the result
        rows when it differs from ``column``.
        """
        size = _positive_size(size, "chunk_by_id")
        return await self._drive(self._cursor_pages(size, column, alias, False), callback)

    async def chunk_by_id_desc(
        self,
        size: int,
        callback: ChunkCallback,
        column: str = "id",
        alias: str | None = None,
    ) -> bool:
        """Cursor pagination: ``column < last`` pages ordered descending."""
        size = _positive_size(size, "chunk_by_id_desc")
        return await self._drive(self._cursor_pages(size, column, alias, True), callback)

    @staticmethod
    async def _drive(pages: AsyncGenerator[list[Row], None], callback: ChunkCallback) -> bool:
        try:
            async for rows in pages:
                if not await _deliver(callback, rows):
                    return False
            return True
        finally:
            await pages.aclose()

    # ------------------------------------------------------------------
    # Lazy iteration
    # ------------------------------------------------------------------

    async def lazy(self, chunk_size: int | None = None) -> AsyncIterator[Row]:
        """Yield rows one by one, fetched in offset pages."""
        size = _positive_size(chunk_size or self._ctx.settings.default_chunk_size, "lazy")
        async for rows in self._offset_pages(size):
            for row in rows:
                yield row

    async def lazy_by_id(
        self,
        chunk_size: int | None = None,
        column: str = "id",
        alias: str | None = None,
    ) -> AsyncIterator[Row]:
        """Yield rows one by one, fetched in ascending cursor pages."""
        size = _positive_size(chunk_size or self._ctx.settings.default_chunk_size, "lazy_by_id")
        async for rows in self._cursor_pages(size, column, alias, False):
            for row in rows:
                yield row

    async def lazy_by_id_desc(
        self,
        chunk_size: int | None = None,
        column: str = "id",
        alias: str | None = None,
    ) -> AsyncIterator[Row]:
        """Yield rows one by one, fetched in descending cursor pages."""
        size = _positive_size(chunk_size or self._ctx.settings.default_chunk_size, "lazy_by_id_desc")
        async for rows in self._cursor_pages(size, column, alias, True):
            for row in rows:
                yield row
