"""Command line (``:`` prompt) input buffer.

Handles typing, backspace and cycling through fuzzy history matches.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..history import HistoryIndex


class CommandLine:
    """Input buffer for command mode."""

    def __init__(self) -> None:
        self._buffer: str = ""
        self._history_query: str | None = None
        self._matches: list[str] = []
        self._match_index = -1

    @property
    def buffer(self) -> str:
        """Get the current command buffer."""
        return self._buffer

    @property
    def cycling(self) -> bool:
        return self._history_query is not None

    def start(self, initial: str = "") -> None:
        """Start command mode."""
        self._buffer = initial
        self._reset_cycle()

    def add_char(self, char: str) -> None:
        """Add a character to the command buffer."""
        if len(char) == 1:
            self._buffer += char
            self._reset_cycle()

    def backspace(self) -> bool:
        """Remove last character. Returns False if buffer was already empty."""
        self._reset_cycle()
        if self._buffer:
            self._buffer = self._buffer[:-1]
            return True
        return False

    def cancel(self) -> None:
        """Cancel command mode."""
        self._buffer = ""
        self._reset_cycle()

    def submit(self) -> str:
        """Return the entered text and clear the buffer."""
        text = self._buffer.strip()
        self._buffer = ""
        self._reset_cycle()
        return text

    def cycle_history(self, history: HistoryIndex, step: int = 1) -> bool:
        """Replace the buffer with the next ranked history match.

        The text typed before the first press is the search query; repeated
        presses walk the ranked matches and wrap around. Returns False when
        nothing matches.
        """
        if self._history_query is None:
            self._history_query = self._buffer
            self._matches = _unique([entry.text for entry in history.search(self._history_query)])
            self._match_index = -1

        if not self._matches:
            return False

        if self._match_index == -1 and step < 0:
            self._match_index = len(self._matches) - 1
        else:
            self._match_index = (self._match_index + step) % len(self._matches)
        self._buffer = self._matches[self._match_index]
        return True

    def _reset_cycle(self) -> None:
        self._history_query = None
        self._matches = []
        self._match_index = -1


def _unique(texts: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for text in texts:
        if text not in seen:
            seen.add(text)
            result.append(text)
    return result
