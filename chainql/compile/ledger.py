"""Parameter ledger: SQL fragments paired with the values they bind.

While a statement is being composed, placeholders are written as an
anonymous :data:`MARKER` and the bound value travels alongside the text in a
:class:`Fragment`.  Nothing is numbered until the final render pass
(:meth:`chainql.compile.base.SQLCompiler.finalize`), which walks the markers
left to right and names them ``param_0 .. param_{N-1}``.  Folding a
sub-query, a nested group or a JOIN into a parent therefore never needs
renumbering: text and values are concatenated in the same order.

A fragment's marker count always equals the length of its value tuple; the
constructor enforces this so a mismatch surfaces where it is introduced.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from chainql.errors import CompilationError
from chainql.schema.expressions import Boolean

#: Anonymous placeholder.  NUL never occurs in legitimate SQL text.
MARKER = "\x00"


@dataclass(frozen=True)
class Fragment:
    """A piece of SQL text and the values bound by its placeholders.

    Attributes:
        sql: SQL text; each :data:`MARKER` is one placeholder.
        params: Values for the placeholders, in textual order.
    """

    sql: str
    params: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        markers = self.sql.count(MARKER)
        if markers != len(self.params):
            raise CompilationError(
                f"Fragment has {markers} placeholder(s) but {len(self.params)} value(s): "
                f"{self.sql.replace(MARKER, '?')!r}"
            )

    @classmethod
    def raw(cls, sql: str) -> Fragment:
        """Returns a fragment with no bound values."""
        return cls(sql)

    @classmethod
    def join(cls, separator: str, fragments: Iterable[Fragment]) -> Fragment:
        """Concatenates ``fragments`` with ``separator``, values in order."""
        parts = list(fragments)
        return cls(
            separator.join(f.sql for f in parts),
            tuple(v for f in parts for v in f.params),
        )

    def wrap(self, prefix: str = "(", suffix: str = ")") -> Fragment:
        """Returns this fragment surrounded by ``prefix`` and ``suffix``."""
        return Fragment(f"{prefix}{self.sql}{suffix}", self.params)

    def __bool__(self) -> bool:
        return bool(self.sql)


@dataclass(frozen=True)
class Condition:
    """A WHERE/HAVING entry: a fragment and the connective that precedes it."""

    boolean: Boolean
    fragment: Fragment


@dataclass
class ParameterLedger:
    """Ordered accumulator used while one fragment is being composed.

    Example::

        ledger = ParameterLedger()
        sql = f"{col} BETWEEN {ledger.bind(low)} AND {ledger.bind(high)}"
        fragment = ledger.fragment(sql)

    ``bind`` and ``absorb`` must be called in the same left-to-right order in
    which their return values appear in the final text.
    """

    values: list[Any] = field(default_factory=list)

    def bind(self, value: Any) -> str:
        """Records ``value`` and returns its placeholder marker."""
        self.values.append(value)
        return MARKER

    def bind_many(self, values: Sequence[Any]) -> list[str]:
        """Records each of ``values`` and returns one marker per value."""
        return [self.bind(v) for v in values]

    def absorb(self, fragment: Fragment) -> str:
        """Appends ``fragment``'s values and returns its SQL text."""
        self.values.extend(fragment.params)
        return fragment.sql

    def fragment(self, sql: str) -> Fragment:
        """Returns ``sql`` paired with everything recorded so far."""
        return Fragment(sql, tuple(self.values))


def join_conditions(conditions: Sequence[Condition]) -> Fragment:
    """Joins conditions with their connectives; the first connective is dropped.

    ``[AND a, AND b, OR c]`` renders ``a AND b OR c``.
    """
    if not conditions:
        return Fragment("")
    ledger = ParameterLedger()
    parts: list[str] = []
    for i, cond in enumerate(conditions):
        text = ledger.absorb(cond.fragment)
        parts.append(text if i == 0 else f"{cond.boolean.value} {text}")
    return ledger.fragment(" ".join(parts))
