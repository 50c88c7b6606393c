"""Append-only command history with fuzzy search."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..core.errors import HistoryPersistError
from .fuzzy import score

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    text: str
    timestamp: float

    def to_record(self) -> dict:
        return {"text": self.text, "ts": self.timestamp}

    @classmethod
    def from_record(cls, record: object) -> HistoryEntry | None:
        """Build an entry from a decoded JSON line, ignoring unknown fields."""
        if not isinstance(record, dict):
            return None
        text = record.get("text")
        if not isinstance(text, str):
            return None
        ts = record.get("ts", 0.0)
        if not isinstance(ts, (int, float)) or isinstance(ts, bool):
            ts = 0.0
        return cls(text=text, timestamp=float(ts))


class HistoryIndex:
    """Ordered log of submitted commands.

    The in-memory log is only ever appended to. Searches read a snapshot of
    its current length, so a concurrent append is either fully visible or not
    visible at all. Writes to the backing file are serialized by a lock and
    only add the entries not yet written.
    """

    def __init__(
        self,
        path: Path | None = None,
        *,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.path = path
        self.enabled = enabled
        self._clock = clock
        self._entries: list[HistoryEntry] = []
        self._persisted = 0
        self._loaded = False
        self._persist_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries[: len(self._entries)])

    def append(self, text: str) -> HistoryEntry:
        entry = HistoryEntry(text=text, timestamp=self._clock())
        self._entries.append(entry)
        return entry

    def search(self, query: str, limit: int | None = None) -> list[HistoryEntry]:
        """Entries matching ``query`` as a subsequence, best match first.

        Equal scores are ordered most recent first. An empty query returns
        every entry, most recent first.
        """
        size = len(self._entries)
        snapshot = self._entries[:size]

        ranked: list[tuple[int, int, HistoryEntry]] = []
        for position, entry in enumerate(snapshot):
            entry_score = score(query, entry.text)
            if entry_score is None:
                continue
            ranked.append((entry_score, position, entry))

        ranked.sort(key=lambda item: (item[0], item[1]), reverse=True)
        results = [entry for _, _, entry in ranked]
        if limit is not None:
            results = results[:limit]
        return results

    def load(self) -> int:
        """Read entries from the backing file. Returns how many were loaded.

        Only the first successful call reads anything; the file holds the
        entries already in memory after that.
        """
        if not self.enabled or self.path is None or self._loaded:
            return 0
        if not self.path.exists():
            self._loaded = True
            return 0

        loaded: list[HistoryEntry] = []
        try:
            with self.path.open(encoding="utf-8") as handle:
                for line_number, line in enumerate(handle, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entry = HistoryEntry.from_record(json.loads(line))
                    except json.JSONDecodeError:
                        entry = None
                    if entry is None:
                        logger.debug("Skipping unreadable history line %d in %s", line_number, self.path)
                        continue
                    loaded.append(entry)
        except OSError as exc:
            logger.warning("Could not read history file %s: %s", self.path, exc)
            return 0

        with self._persist_lock:
            self._entries[:0] = loaded
            self._persisted += len(loaded)
            self._loaded = True
        return len(loaded)

    def persist(self) -> int:
        """Append unwritten entries to the backing file. Returns how many were written."""
        if not self.enabled or self.path is None:
            return 0

        with self._persist_lock:
            pending = self._entries[self._persisted : len(self._entries)]
            if not pending:
                return 0
            written = 0
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    for entry in pending:
                        handle.write(json.dumps(entry.to_record(), ensure_ascii=False) + "\n")
                        handle.flush()
                        written += 1
                        self._persisted += 1
            except OSError as exc:
                raise HistoryPersistError(
                    f"Could not write history to {self.path} ({written} of {len(pending)} written): {exc}"
                ) from exc
            return written
