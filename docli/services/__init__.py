"""Session services: connections, query execution and editing."""

from .connection import ConnectionManager
from .editor import EditorBridge, EditorBuffer, EditorKind
from .executor import CancelToken, QueryExecutor, QueryResult, build_plan

__all__ = [
    "CancelToken",
    "ConnectionManager",
    "EditorBridge",
    "EditorBuffer",
    "EditorKind",
    "QueryExecutor",
    "QueryResult",
    "build_plan",
]
