"""chainQL compilation layer: clause state → parameterized SQL."""
from chainql.compile.base import CompiledSQL, SQLCompiler
from chainql.compile.builder import SelectAssembler
from chainql.compile.ledger import Fragment
from chainql.compile.mysql import MariaDBCompiler, MySQLCompiler
from chainql.compile.postgres import PostgresCompiler
from chainql.compile.registry import CompilerFactory
from chainql.compile.sqlite import SQLiteCompiler

__all__ = [
    "CompiledSQL",
    "SQLCompiler",
    "SelectAssembler",
    "Fragment",
    "CompilerFactory",
    "PostgresCompiler",
    "MySQLCompiler",
    "MariaDBCompiler",
    "SQLiteCompiler",
]
