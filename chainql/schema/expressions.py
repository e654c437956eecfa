"""Constants and helpers for predicate operators and clause keywords.

The fluent builder accepts operators and directions as plain strings.  This
module defines the allowable sets and the normalisation helpers shared by
the predicate builder and the clause builders.
"""

from __future__ import annotations

from enum import Enum

from chainql.errors import UsageError

# ---------------------------------------------------------------------------
# Keyword enums
# ---------------------------------------------------------------------------


class Boolean(str, Enum):
    """Connective joining a condition to the one before it."""

    AND = "AND"
    OR = "OR"


class Direction(str, Enum):
    """ORDER BY direction."""

    ASC = "ASC"
    DESC = "DESC"


class JoinType(str, Enum):
    """Supported JOIN flavours."""

    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    CROSS = "CROSS"


class Aggregate(str, Enum):
    """Aggregate functions exposed as read projections."""

    COUNT = "COUNT"
    MAX = "MAX"
    MIN = "MIN"
    AVG = "AVG"
    SUM = "SUM"


class _Unset:
    """Marks an omitted optional argument where ``None`` is a real value."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


# ---------------------------------------------------------------------------
# Operator groups (frozenset for O(1) membership tests)
# ---------------------------------------------------------------------------

#: Plain comparison operators.
COMPARISON_OPS: frozenset[str] = frozenset({"=", "<", ">", "<=", ">=", "<>", "!=", "<=>"})

#: Pattern-match operators.  ``ILIKE`` is remapped by dialects without it.
PATTERN_OPS: frozenset[str] = frozenset(
    {
        "LIKE",
        "NOT LIKE",
        "ILIKE",
        "NOT ILIKE",
        "REGEXP",
        "NOT REGEXP",
        "RLIKE",
        "SIMILAR TO",
        "NOT SIMILAR TO",
        "~",
        "~*",
        "!~",
        "!~*",
    }
)

#: Bitwise operators.
BITWISE_OPS: frozenset[str] = frozenset({"&", "|", "^", "<<", ">>"})

#: JSON / array containment operators (PostgreSQL).
CONTAINMENT_OPS: frozenset[str] = frozenset({"@>", "<@"})

#: Complete set of operators accepted by ``where``/``having``.
ALL_OPERATORS: frozenset[str] = COMPARISON_OPS | PATTERN_OPS | BITWISE_OPS | CONTAINMENT_OPS

#: Operators that turn a ``None`` right-hand side into ``IS [NOT] NULL``.
NULL_EQUALITY_OPS: frozenset[str] = frozenset({"="})
NULL_INEQUALITY_OPS: frozenset[str] = frozenset({"!=", "<>"})

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_operator(op: str, operation: str = "where") -> str:
    """Returns the canonical (upper-cased, single-spaced) form of ``op``.

    Args:
        op: Operator as typed by the caller (e.g. ``'not like'``).
        operation: Builder method name, reported in the error.

    Raises:
        UsageError: If ``op`` is not a supported operator.
    """
    if not isinstance(op, str):
        raise UsageError(f"Operator must be a string, got {type(op).__name__}.", operation)
    canonical = " ".join(op.split()).upper()
    if canonical not in ALL_OPERATORS:
        raise UsageError(
            f"Unsupported operator '{op}'. Supported: {sorted(ALL_OPERATORS)}.",
            operation,
        )
    return canonical


def resolve_operator(operator: object, value: object, operation: str = "where") -> tuple[str, object]:
    """Resolves the two-argument ``(column, value)`` shorthand.

    ``where("votes", 100)`` means ``where("votes", "=", 100)``.

    Raises:
        UsageError: If neither an operator nor a value was given.
    """
    if value is UNSET:
        if operator is UNSET:
            raise UsageError("A value is required.", operation)
        return "=", operator
    if operator is UNSET:
        return "=", value
    return normalize_operator(operator, operation), value  # type: ignore[arg-type]


def normalize_direction(direction: str, operation: str = "order_by") -> Direction:
    """Returns the :class:`Direction` for ``'asc'``/``'desc'`` (any case).

    Raises:
        UsageError: For anything else.
    """
    try:
        return Direction(str(getattr(direction, "value", direction)).strip().upper())
    except ValueError as exc:
        raise UsageError(
            f"Order direction must be 'asc' or 'desc', got {direction!r}.", operation
        ) from exc


def normalize_boolean(boolean: str | Boolean) -> Boolean:
    """Returns the :class:`Boolean` connective for ``'and'``/``'or'``."""
    try:
        return Boolean(str(getattr(boolean, "value", boolean)).strip().upper())
    except ValueError as exc:
        raise UsageError(f"Boolean connective must be 'and' or 'or', got {boolean!r}.") from exc
