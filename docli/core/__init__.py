"""Core types: session, modes and errors."""

from .errors import (
    ConnectionError,
    ConnectionErrorKind,
    DocliError,
    DocumentEditError,
    EditorError,
    EditorErrorKind,
    ExecutionError,
    HistoryPersistError,
    MissingDriverError,
    ParseError,
)
from .mode import InvalidTransition, Mode, Trigger, next_mode
from .session import Connection, ConnectionStatus, Session

__all__ = [
    "Connection",
    "ConnectionError",
    "ConnectionErrorKind",
    "ConnectionStatus",
    "DocliError",
    "DocumentEditError",
    "EditorError",
    "EditorErrorKind",
    "ExecutionError",
    "HistoryPersistError",
    "InvalidTransition",
    "MissingDriverError",
    "Mode",
    "ParseError",
    "Session",
    "Trigger",
    "next_mode",
]
