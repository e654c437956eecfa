"""chainQL fluent query builder."""
from chainql.query.builder import QueryBuilder
from chainql.query.context import QueryContext

__all__ = ["QueryBuilder", "QueryContext"]
