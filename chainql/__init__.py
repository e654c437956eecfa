"""chainQL: a fluent, parameterized query builder for PostgreSQL, MySQL,
MariaDB and SQLite.

Usage::

    import chainql

    db = chainql.DatabaseManager(chainql.DatabaseConfig(
        default="sqlite",
        connections={"sqlite": chainql.ConnectionConfig(driver="sqlite", database="app.db")},
    ))
    rows = await db.table("users").where("votes", ">", 100).get()

Builders can also be created without a database for rendering only::

    query = chainql.QueryBuilder(chainql.QueryContext.for_dialect("pgsql"), "users")
    compiled = query.where("id", 1).to_sql()
    compiled.sql        # 'SELECT * FROM "users" WHERE "id" = %(param_0)s'
    compiled.bindings   # {'param_0': 1}
"""
from __future__ import annotations

from chainql.compile.base import CompiledSQL, SQLCompiler
from chainql.compile.expression_builder import raw
from chainql.compile.ledger import Fragment
from chainql.compile.mysql import MariaDBCompiler, MySQLCompiler
from chainql.compile.postgres import PostgresCompiler
from chainql.compile.registry import CompilerFactory
from chainql.compile.sqlite import SQLiteCompiler
from chainql.connection.base import ExecutionResult, Executor
from chainql.connection.manager import DatabaseManager
from chainql.connection.mysql import MySQLExecutor
from chainql.connection.postgres import PostgresExecutor
from chainql.connection.registry import ExecutorFactory
from chainql.connection.sqlite import SQLiteExecutor
from chainql.errors import (
    ChainQLError,
    CompilationError,
    ConfigError,
    ExecutionError,
    MappingError,
    UsageError,
)
from chainql.query.builder import QueryBuilder
from chainql.query.context import QueryContext
from chainql.schema.config import ConnectionConfig, DatabaseConfig, Settings
from chainql.schema.dialect import Dialect, LockMode
from chainql.schema.expressions import Aggregate, Boolean, Direction, JoinType

# ---------------------------------------------------------------------------
# Register built-in compilers and executors
# ---------------------------------------------------------------------------

CompilerFactory.register_class(Dialect.PGSQL, PostgresCompiler)
CompilerFactory.register_class(Dialect.MYSQL, MySQLCompiler)
CompilerFactory.register_class(Dialect.MARIADB, MariaDBCompiler)
CompilerFactory.register_class(Dialect.SQLITE, SQLiteCompiler)

ExecutorFactory.register_class(Dialect.PGSQL, PostgresExecutor)
ExecutorFactory.register_class(Dialect.MYSQL, MySQLExecutor)
ExecutorFactory.register_class(Dialect.MARIADB, MySQLExecutor)
ExecutorFactory.register_class(Dialect.SQLITE, SQLiteExecutor)

__all__ = [
    # Entry points
    "DatabaseManager",
    "QueryBuilder",
    "QueryContext",
    # Configuration
    "ConnectionConfig",
    "DatabaseConfig",
    "Settings",
    "Dialect",
    "LockMode",
    "Aggregate",
    "Boolean",
    "Direction",
    "JoinType",
    # Compilation
    "CompiledSQL",
    "Fragment",
    "raw",
    "SQLCompiler",
    "CompilerFactory",
    "PostgresCompiler",
    "MySQLCompiler",
    "MariaDBCompiler",
    "SQLiteCompiler",
    # Execution
    "ExecutionResult",
    "Executor",
    "ExecutorFactory",
    "PostgresExecutor",
    "MySQLExecutor",
    "SQLiteExecutor",
    # Errors
    "ChainQLError",
    "UsageError",
    "CompilationError",
    "ConfigError",
    "ExecutionError",
    "MappingError",
]
