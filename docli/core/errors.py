"""Error types shared across docli.

Every recoverable failure derives from DocliError so the controller can surface
it in the status line without knowing where it came from.
"""

from __future__ import annotations

from enum import Enum


class DocliError(Exception):
    """Base class for recoverable docli errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ParseError(DocliError):
    """Malformed command or query text.

    ``start`` and ``end`` are character offsets into the parsed input.
    """

    def __init__(self, message: str, start: int = 0, end: int | None = None):
        self.start = start
        self.end = start if end is None else end
        super().__init__(message)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParseError):
            return NotImplemented
        return (self.message, self.start, self.end) == (other.message, other.start, other.end)

    def __hash__(self) -> int:
        return hash((self.message, self.start, self.end))

    def __repr__(self) -> str:
        return f"ParseError({self.message!r}, {self.start}, {self.end})"


class ConnectionErrorKind(Enum):
    UNREACHABLE = "unreachable"
    AUTH_FAILED = "auth_failed"
    SUBSTITUTION_FAILED = "substitution_failed"
    INVALID_URI = "invalid_uri"
    NOT_CONNECTED = "not_connected"
    INVALID_DATABASE = "invalid_database"
    MISSING_DRIVER = "missing_driver"


class ConnectionError(DocliError):  # noqa: A001
    """Connecting, resolving or switching failed; the prior connection stays active."""

    def __init__(self, kind: ConnectionErrorKind, message: str):
        self.kind = kind
        super().__init__(message)


class MissingDriverError(ConnectionError):
    """Exception raised when a required database driver package is not installed."""

    def __init__(self, driver_name: str, package_name: str, import_error: str | None = None):
        self.driver_name = driver_name
        self.package_name = package_name
        self.import_error = import_error
        super().__init__(
            ConnectionErrorKind.MISSING_DRIVER,
            f"Missing driver for {driver_name} (pip install {package_name})",
        )


class ExecutionError(DocliError):
    """The database rejected a query, or the query could not be lowered."""


class EditorErrorKind(Enum):
    UNAVAILABLE = "unavailable"
    NON_ZERO_EXIT = "non_zero_exit"
    READBACK_FAILED = "readback_failed"
    CANCELLED = "cancelled"


class EditorError(DocliError):
    """The external editor could not be used."""

    def __init__(self, kind: EditorErrorKind, message: str):
        self.kind = kind
        super().__init__(message)


class DocumentEditError(DocliError):
    """An edited document could not be saved back."""


class HistoryPersistError(DocliError):
    """Writing the history file failed. Non-fatal."""
