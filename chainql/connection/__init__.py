"""chainQL execution layer: async driver executors and the manager."""
from chainql.connection.base import ExecutionResult, Executor
from chainql.connection.registry import ExecutorFactory

__all__ = ["ExecutionResult", "Executor", "ExecutorFactory"]
