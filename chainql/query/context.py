"""Query context value object.

Packages the ``(compiler, executor, settings)`` data clump every builder
needs into one object that is created explicitly and handed to builders;
there is no process-wide manager.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from chainql.compile.base import SQLCompiler
from chainql.compile.registry import CompilerFactory
from chainql.connection.base import Executor
from chainql.schema.config import Settings
from chainql.schema.dialect import Dialect


@dataclass(frozen=True)
class QueryContext:
    """Immutable context shared by a builder and its sub-builders.

    Attributes:
        compiler: Dialect-specific SQL compiler.
        executor: Execution collaborator for terminal calls, or ``None`` for
            render-only use.
        settings: Runtime behaviour toggles.
    """

    compiler: SQLCompiler
    executor: Executor | None = None
    settings: Settings = field(default_factory=Settings)

    @property
    def dialect(self) -> Dialect:
        return self.compiler.dialect

    @classmethod
    def for_dialect(
        cls,
        dialect: Dialect | str,
        executor: Executor | None = None,
        settings: Settings | None = None,
    ) -> QueryContext:
        """Build a context with the registered compiler for ``dialect``."""
        return cls(
            compiler=CompilerFactory.create(dialect),
            executor=executor,
            settings=settings or Settings(),
        )
