"""Bound-value coercion.

Every value that reaches the parameter ledger passes through
:func:`coerce_value`.  Scalars of the supported variants (null, boolean,
integer, float, decimal, text, blob, date/time, UUID) are passed through
unchanged; ``dict`` and ``list`` values become canonical JSON text; anything
else is rejected at build time rather than failing inside the driver.
"""

from __future__ import annotations

import json
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic_core import to_jsonable_python

from chainql.errors import UsageError

#: A result row: column name -> value, in result-column order.
Row = dict[str, Any]

#: Scalar types that drivers bind natively.
SCALAR_TYPES: tuple[type, ...] = (
    bool,
    int,
    float,
    Decimal,
    str,
    bytes,
    bytearray,
    memoryview,
    datetime,
    date,
    time,
    UUID,
)


def to_json_text(value: Any) -> str:
    """Serialises ``value`` to compact, canonical JSON text.

    Dates, decimals and UUIDs are converted with pydantic's JSON encoder so
    the output matches what a pydantic model would emit.
    """
    return json.dumps(
        to_jsonable_python(value),
        separators=(",", ":"),
        ensure_ascii=False,
    )


def coerce_value(value: Any, operation: str | None = None) -> Any:
    """Returns ``value`` in a form every supported driver can bind.

    Args:
        value: The caller-supplied value.
        operation: Builder method name, reported in the error.

    Raises:
        UsageError: If ``value`` is of an unsupported type.
    """
    if value is None or isinstance(value, SCALAR_TYPES):
        return value
    if isinstance(value, (dict, list, tuple)):
        return to_json_text(value)
    raise UsageError(
        f"Cannot bind value of type {type(value).__name__}; "
        "convert it to a scalar, a mapping or a list first.",
        operation,
    )


def is_numeric(value: Any) -> bool:
    """Returns ``True`` for int/float/Decimal values (``bool`` excluded)."""
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)
