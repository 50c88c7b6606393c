"""Query plans and result cursors exchanged with database adapters."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class QueryPlan:
    """A query lowered from the expression tree into driver terms."""

    operation: str  # find, find_one, aggregate, count, distinct, command, list_collections
    collection: str | None = None
    filter: dict[str, Any] = field(default_factory=dict)
    projection: dict[str, Any] | None = None
    pipeline: list[dict[str, Any]] = field(default_factory=list)
    sort: list[tuple[str, int]] | None = None
    skip: int = 0
    limit: int | None = None
    allow_disk_use: bool = False
    field: str | None = None
    command: dict[str, Any] | None = None

    @property
    def pageable(self) -> bool:
        return self.operation in ("find", "aggregate")

    @property
    def editable(self) -> bool:
        """Documents from this plan can be written back by ``_id``."""
        return self.operation in ("find", "find_one") and self.collection is not None

    def page(self, offset: int, size: int) -> QueryPlan:
        """The plan restricted to ``size`` results starting ``offset`` into its own results."""
        if not self.pageable:
            return self

        limit = size
        if self.limit is not None:
            limit = max(0, min(size, self.limit - offset))

        if self.operation == "aggregate":
            stages = list(self.pipeline)
            if offset:
                stages.append({"$skip": offset})
            stages.append({"$limit": limit})
            return replace(self, pipeline=stages)

        return replace(self, skip=self.skip + offset, limit=limit)


class DocumentCursor:
    """Lazy, finite, non-restartable sequence of documents.

    Iterating consumes it; running the query again is the only way to see the
    documents a second time. ``close`` may be called from another thread to
    abandon an in-flight fetch.
    """

    def __init__(self, source: Iterator[dict[str, Any]], on_close: Callable[[], None] | None = None):
        self._source = source
        self._on_close = on_close
        self._closed = threading.Event()
        self._exhausted = False

    def __iter__(self) -> DocumentCursor:
        return self

    def __next__(self) -> dict[str, Any]:
        if self._closed.is_set() or self._exhausted:
            raise StopIteration
        try:
            return next(self._source)
        except StopIteration:
            self._exhausted = True
            raise

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def fetch(self, count: int) -> list[dict[str, Any]]:
        """Pull up to ``count`` documents."""
        docs: list[dict[str, Any]] = []
        for doc in self:
            docs.append(doc)
            if len(docs) >= count:
                break
        return docs

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        if self._on_close is not None:
            self._on_close()
