"""Clause state accumulated by one query builder."""
from __future__ import annotations

from dataclasses import dataclass, field, replace

from chainql.compile.ledger import Condition, Fragment
from chainql.schema.dialect import LockMode


@dataclass
class QueryState:
    """Ordered clause fragments for one statement.

    Every list holds immutable :class:`~chainql.compile.ledger.Fragment` /
    :class:`~chainql.compile.ledger.Condition` objects, so :meth:`copy` only
    needs to copy the lists themselves.

    Attributes:
        table: Base table expression (``"users"`` or ``"users as u"``);
            ``None`` for a sub-query builder that has not called ``from_``.
        columns: SELECT list; empty renders ``*``.
        distinct: Whether ``SELECT DISTINCT`` is emitted.
        joins: Rendered JOIN clauses in addition order.
        wheres: WHERE conditions with their connectives.
        groups: GROUP BY expressions.
        havings: HAVING conditions with their connectives.
        orders: ``expr DIRECTION`` fragments.
        limit: Row limit, or ``None``.
        offset: Row offset, or ``None``.
        lock: Row-lock mode appended to the SELECT.
        guard_unscoped_writes: Reject UPDATE/DELETE without a WHERE clause.
    """

    table: str | None = None
    columns: list[Fragment] = field(default_factory=list)
    distinct: bool = False
    joins: list[Fragment] = field(default_factory=list)
    wheres: list[Condition] = field(default_factory=list)
    groups: list[Fragment] = field(default_factory=list)
    havings: list[Condition] = field(default_factory=list)
    orders: list[Fragment] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    lock: LockMode = LockMode.NONE
    guard_unscoped_writes: bool = False

    def copy(self) -> QueryState:
        """Return an independent copy of this state."""
        return replace(
            self,
            columns=list(self.columns),
            joins=list(self.joins),
            wheres=list(self.wheres),
            groups=list(self.groups),
            havings=list(self.havings),
            orders=list(self.orders),
        )

    def for_aggregate(self) -> QueryState:
        """Return a copy without ordering, paging or locking."""
        state = self.copy()
        state.orders = []
        state.limit = None
        state.offset = None
        state.lock = LockMode.NONE
        return state
