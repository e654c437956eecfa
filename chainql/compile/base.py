"""Compiler abstractions: CompiledSQL and the SQLCompiler ABC.

The Template Method pattern (GoF) is used:
- ``SQLCompiler`` defines the rendering skeleton and the defaults shared by
  most engines (identifier wrapping, LIMIT/OFFSET, ON CONFLICT upserts).
- ``PostgresCompiler``, ``MySQLCompiler``, ``MariaDBCompiler`` and
  ``SQLiteCompiler`` override the dialect-specific steps (placeholder style,
  quoting, insert-ignore, RETURNING vs last-insert-id, JSON and date
  functions, lock suffixes).

Methods that need to bind values receive the caller's
:class:`~chainql.compile.ledger.ParameterLedger` and return SQL text whose
markers line up with what they recorded.
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from chainql.compile.ledger import MARKER, Fragment, ParameterLedger
from chainql.errors import CompilationError, UsageError
from chainql.schema.dialect import Dialect, LockMode
from chainql.schema.values import SCALAR_TYPES, to_json_text

_SEGMENT = r"[A-Za-z_][A-Za-z0-9_$]*"
_IDENTIFIER_RE = re.compile(rf"^(\*|{_SEGMENT}(\.({_SEGMENT}|\*))*)$")
_ALIAS_RE = re.compile(r"^(.+?)\s+as\s+(.+)$", re.IGNORECASE)
_JSON_PATH_SPLIT_RE = re.compile(r"->|\.")

#: Prefix of every renumbered placeholder name.
PARAM_PREFIX = "param_"


@dataclass
class CompiledSQL:
    """The output of a successful render.

    Attributes:
        sql: The rendered SQL with named placeholders ``param_0 .. param_{N-1}``.
        params: Bound values, position ``i`` belonging to ``param_i``.
        dialect: The dialect the SQL was rendered for.
    """

    sql: str
    params: list[Any]
    dialect: Dialect

    @property
    def bindings(self) -> dict[str, Any]:
        """Returns the ``{placeholder_name: value}`` mapping drivers consume."""
        return bind_names(self.params)


def bind_names(params: Sequence[Any]) -> dict[str, Any]:
    """Maps an ordered parameter list onto the renumbered placeholder names."""
    return {f"{PARAM_PREFIX}{i}": value for i, value in enumerate(params)}


def split_json_path(path: str) -> list[str]:
    """Splits ``'meta.tags'`` / ``'meta->tags'`` into path segments.

    Raises:
        UsageError: If the path is empty or has empty segments.
    """
    segments = [s.strip() for s in _JSON_PATH_SPLIT_RE.split(path or "")]
    if not segments or any(not s for s in segments):
        raise UsageError(f"Invalid JSON path: {path!r}.", "where_json")
    return segments


def json_path_expression(path: str) -> str:
    """Returns the ``$."a"[0]`` style path used by MySQL, MariaDB and SQLite."""
    parts = ["$"]
    for segment in split_json_path(path):
        if segment.isdigit():
            parts.append(f"[{segment}]")
        else:
            escaped = segment.replace('"', '\\"')
            parts.append(f'."{escaped}"')
    return "".join(parts)


class SQLCompiler(ABC):
    """Abstract base for dialect-specific SQL compilers.

    Subclasses implement the abstract hooks; the assembler and the statement
    builder use this interface via the Strategy / Template Method patterns.
    """

    #: Whether ``INSERT ... RETURNING`` can fetch generated keys.
    supports_returning: bool = False

    #: Whether the engine has a native conflict-resolution upsert.
    supports_upsert: bool = True

    #: Whether ``FOR UPDATE`` / ``FOR SHARE`` style row locks exist.
    supports_row_locks: bool = True

    # ------------------------------------------------------------------
    # Abstract hooks
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def dialect(self) -> Dialect:
        """Return the dialect this compiler renders for."""

    @abstractmethod
    def param_placeholder(self, name: str) -> str:
        """Return the SQL placeholder string for a named parameter.

        Args:
            name: Parameter name (e.g. ``'param_0'``).

        Returns:
            Dialect-specific placeholder string.
        """

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """Return a single, properly-quoted identifier segment.

        Args:
            name: Unquoted identifier (table, column or alias name).
        """

    @abstractmethod
    def date_part(self, part: str, column_sql: str) -> str:
        """Return the expression extracting ``part`` from ``column_sql``.

        Args:
            part: One of ``'date'``, ``'time'``, ``'year'``, ``'month'``, ``'day'``.
            column_sql: The already-wrapped column expression.
        """

    @abstractmethod
    def json_extract(self, column_sql: str, path: str, ledger: ParameterLedger) -> str:
        """Return the expression extracting ``path`` from a JSON column as text."""

    @abstractmethod
    def json_contains(self, column_sql: str, value: Any, ledger: ParameterLedger) -> str:
        """Return the containment predicate for ``value`` in a JSON column."""

    @abstractmethod
    def json_length(self, column_sql: str) -> str:
        """Return the expression giving the length of a JSON array column."""

    @abstractmethod
    def json_set(self, column_sql: str, path: str, value: Any, ledger: ParameterLedger) -> str:
        """Return the expression replacing ``path`` in a JSON column by ``value``."""

    @abstractmethod
    def full_text(
        self,
        columns_sql: list[str],
        table_sql: str,
        term: str,
        ledger: ParameterLedger,
    ) -> str:
        """Return the full-text match predicate with ``term`` bound once."""

    # ------------------------------------------------------------------
    # Text and identifiers
    # ------------------------------------------------------------------

    def escape_text(self, text: str) -> str:
        """Escape literal SQL text for the driver's parameter syntax.

        The default is a no-op; pyformat drivers double ``%``.
        """
        return text

    def like_operator(self, op: str) -> str:
        """Return the operator keyword to emit for ``op``.

        Engines without ``ILIKE`` fall back to ``LIKE``.
        """
        if op == "ILIKE":
            return "LIKE"
        if op == "NOT ILIKE":
            return "NOT LIKE"
        return op

    def wrap(self, expression: str) -> str:
        """Quote ``expression`` if it is a plain (optionally aliased) identifier.

        ``users.id`` -> ``"users"."id"``, ``name as n`` -> ``"name" AS "n"``,
        ``users.*`` -> ``"users".*``.  Anything else (function calls,
        arithmetic, pre-quoted names) is returned unchanged.
        """
        text = expression.strip()
        alias_match = _ALIAS_RE.match(text)
        if alias_match:
            base, alias = alias_match.group(1).strip(), alias_match.group(2).strip()
            if _IDENTIFIER_RE.match(base) and re.fullmatch(_SEGMENT, alias):
                return f"{self._wrap_segments(base)} AS {self.quote_identifier(alias)}"
            return text
        if _IDENTIFIER_RE.match(text):
            return self._wrap_segments(text)
        return text

    def _wrap_segments(self, identifier: str) -> str:
        return ".".join(
            part if part == "*" else self.quote_identifier(part)
            for part in identifier.split(".")
        )

    # ------------------------------------------------------------------
    # SELECT tails
    # ------------------------------------------------------------------

    def compile_limit_offset(self, limit: int | None, offset: int | None) -> list[str]:
        """Return the LIMIT / OFFSET clauses for the given values."""
        parts: list[str] = []
        if limit is not None:
            parts.append(f"LIMIT {int(limit)}")
        if offset is not None:
            parts.append(f"OFFSET {int(offset)}")
        return parts

    def lock_clause(self, mode: LockMode) -> str | None:
        """Return the row-locking suffix for ``mode`` (``None`` for no suffix)."""
        if mode is LockMode.UPDATE:
            return "FOR UPDATE"
        if mode is LockMode.SHARE:
            return "FOR SHARE"
        return None

    def random_function(self) -> str:
        """Return the expression used by ``in_random_order``."""
        return "RANDOM()"

    # ------------------------------------------------------------------
    # Statement verbs
    # ------------------------------------------------------------------

    def insert_prefix(self, ignore: bool = False) -> str:
        """Return the keyword(s) opening an INSERT statement."""
        return "INSERT INTO"

    def insert_suffix(self, ignore: bool = False) -> str | None:
        """Return text appended after the VALUES list, if any."""
        return None

    def returning_clause(self, column: str) -> str:
        """Return the ``RETURNING`` clause for ``column``.

        Raises:
            UsageError: If the engine cannot return generated keys.
        """
        if not self.supports_returning:
            raise UsageError(
                f"Dialect '{self.dialect.value}' does not support RETURNING.",
                "insert_get_id",
            )
        return f"RETURNING {self.wrap(column)}"

    def last_insert_id_sql(self) -> str | None:
        """Return the query reading the last generated key, or ``None``
        when ``RETURNING`` is used instead."""
        return None

    def upsert_clause(
        self,
        unique_by: Sequence[str],
        update_columns: Sequence[str],
    ) -> str:
        """Return the conflict-resolution tail of an upsert.

        The default renders the ``ON CONFLICT`` form shared by PostgreSQL and
        SQLite.
        """
        target = ", ".join(self.wrap(c) for c in unique_by)
        if not update_columns:
            return f"ON CONFLICT ({target}) DO NOTHING"
        assignments = ", ".join(
            f"{self.wrap(c)} = excluded.{self.wrap(c)}" for c in update_columns
        )
        return f"ON CONFLICT ({target}) DO UPDATE SET {assignments}"

    def truncate_sql(self, table_sql: str) -> str:
        """Return the statement emptying ``table_sql``."""
        return f"TRUNCATE TABLE {table_sql}"

    # ------------------------------------------------------------------
    # Shared value helpers
    # ------------------------------------------------------------------

    @staticmethod
    def json_text(value: Any) -> Any:
        """Return ``value`` as JSON text unless it already is a string."""
        if isinstance(value, str):
            return value
        return to_json_text(value)

    def json_value(self, value: Any) -> Any:
        """Return ``value`` as it should be bound against an extracted JSON path."""
        return value

    @staticmethod
    def is_scalar(value: Any) -> bool:
        """Return ``True`` for values that are not containers."""
        return value is None or isinstance(value, SCALAR_TYPES)

    # ------------------------------------------------------------------
    # Final render
    # ------------------------------------------------------------------

    def finalize(self, fragment: Fragment) -> CompiledSQL:
        """Renumber ``fragment``'s markers and render the final statement.

        Markers are replaced left to right by ``param_0 .. param_{N-1}`` in
        this dialect's placeholder style; the literal text in between is
        escaped for the driver.

        Raises:
            CompilationError: If the marker count and value count disagree.
        """
        pieces = fragment.sql.split(MARKER)
        if len(pieces) - 1 != len(fragment.params):
            raise CompilationError(
                f"Rendered {len(pieces) - 1} placeholder(s) for "
                f"{len(fragment.params)} value(s)."
            )
        out = [self.escape_text(pieces[0])]
        for i, piece in enumerate(pieces[1:]):
            out.append(self.param_placeholder(f"{PARAM_PREFIX}{i}"))
            out.append(self.escape_text(piece))
        return CompiledSQL(sql="".join(out), params=list(fragment.params), dialect=self.dialect)
