"""chainQL schema models: dialects, operators and configuration."""
from chainql.schema.config import ConnectionConfig, DatabaseConfig, Settings
from chainql.schema.dialect import Dialect, LockMode
from chainql.schema.expressions import Aggregate, Boolean, Direction, JoinType

__all__ = [
    "ConnectionConfig",
    "DatabaseConfig",
    "Settings",
    "Dialect",
    "LockMode",
    "Aggregate",
    "Boolean",
    "Direction",
    "JoinType",
]
