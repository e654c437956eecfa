"""Custom exception hierarchy for chainQL.

All public errors inherit from ChainQLError so callers can catch the base
class for any chainQL-specific failure.

``UsageError`` and ``CompilationError`` are raised while a statement is being
built or rendered, before anything reaches the database.  ``ExecutionError``
comes from the execution layer and ``MappingError`` from result projection.
"""
from __future__ import annotations

from typing import Any


class ChainQLError(Exception):
    """Base exception for all chainQL errors."""


class UsageError(ChainQLError):
    """Raised synchronously when the builder is used incorrectly.

    Examples: an empty values mapping passed to ``insert``/``update``,
    multi-row inserts whose rows disagree on columns, an unsupported
    operator, or a non-integer LIMIT.

    Args:
        message: Human-readable description.
        operation: The builder method that rejected its input.
    """

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class CompilationError(ChainQLError):
    """Raised when SQL rendering hits an internal inconsistency.

    Args:
        message: Human-readable description.
        clause: The clause being rendered when the error occurred.
    """

    def __init__(self, message: str, clause: str | None = None) -> None:
        super().__init__(message)
        self.clause = clause


class ConfigError(ChainQLError):
    """Raised when connection configuration is missing or inconsistent.

    Detected when a connection or executor is resolved, before any query is
    executed.

    Args:
        message: Human-readable description.
        connection: Name of the offending connection, if any.
    """

    def __init__(self, message: str, connection: str | None = None) -> None:
        super().__init__(message)
        self.connection = connection


class ExecutionError(ChainQLError):
    """Raised by an executor when the database rejects or fails a statement.

    The query core never retries and never swallows these; it lets them
    propagate unchanged to the caller.

    Args:
        message: Human-readable description.
        sql: The statement that failed, when known.
        original: The driver exception that caused the failure.
    """

    def __init__(
        self,
        message: str,
        sql: str | None = None,
        original: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.sql = sql
        self.original = original

    def to_error_response(self) -> dict[str, Any]:
        """Returns a structured description suitable for logging."""
        return {
            "error": type(self.original).__name__ if self.original else "ExecutionError",
            "message": str(self),
            "sql": self.sql,
        }


class MappingError(ChainQLError):
    """Raised when a result set cannot be projected as requested.

    Args:
        message: Human-readable description.
        column: The column that was missing or could not be converted.
    """

    def __init__(self, message: str, column: str | None = None) -> None:
        super().__init__(message)
        self.column = column
