"""Language service for docli commands and queries."""

from .analysis import Completion, CompletionKind, ConnectionContext, Diagnostic, Severity, complete, diagnose

__all__ = [
    "Completion",
    "CompletionKind",
    "ConnectionContext",
    "Diagnostic",
    "Severity",
    "complete",
    "diagnose",
]
