"""Session state owned by the mode controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .mode import Mode, Trigger, next_mode

if TYPE_CHECKING:
    from ..history import HistoryIndex


class ConnectionStatus(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"


@dataclass(frozen=True)
class Connection:
    """A resolved, verified database handle plus the selected database.

    Records are replaced rather than mutated, so a worker holding an old record
    keeps seeing a consistent snapshot.
    """

    uri: str
    database: str | None
    handle: Any = field(compare=False, repr=False)
    status: ConnectionStatus = ConnectionStatus.CONNECTED
    host: str = ""

    def get_display_info(self) -> str:
        """Status line text, ``host | database``."""
        return f"{self.host or self.uri} | {self.database or '-'}"


@dataclass
class Session:
    """Live single-operator runtime state."""

    history: HistoryIndex
    connection: Connection | None = None
    mode: Mode = Mode.NORMAL
    last_executed_query: str | None = None
    query_draft: str = ""

    def apply(self, trigger: Trigger) -> Mode:
        """Move to the mode reached on ``trigger`` and return it."""
        self.mode = next_mode(self.mode, trigger)
        return self.mode
