"""Base class for document database adapters."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ..plan import DocumentCursor, QueryPlan

_SCHEME_AND_CREDENTIALS = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://(?:[^@/]*@)?")


def display_host(uri: str) -> str:
    """Host part of a connection URI with credentials stripped."""
    rest = _SCHEME_AND_CREDENTIALS.sub("", uri, count=1)
    return rest.split("/", 1)[0].split("?", 1)[0] or uri


class DocumentAdapter(ABC):
    """Black-box access to a document database.

    Adapters are stateless: every method receives the client handle returned
    by ``connect``. All calls block and are run off the UI thread.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable database name."""

    @property
    def install_package(self) -> str | None:
        return None

    @property
    def driver_import_names(self) -> tuple[str, ...]:
        return ()

    @abstractmethod
    def connect(self, uri: str, *, timeout_ms: int) -> Any:
        """Create a client for ``uri``. Must not perform network I/O beyond what the driver requires."""

    @abstractmethod
    def ping(self, client: Any) -> None:
        """Verify reachability and credentials."""

    @abstractmethod
    def close(self, client: Any) -> None: ...

    @abstractmethod
    def default_database(self, client: Any) -> str | None:
        """The database named in the connection URI, if any."""

    @abstractmethod
    def list_databases(self, client: Any) -> list[str]: ...

    @abstractmethod
    def list_collections(self, client: Any, database: str) -> list[str]: ...

    @abstractmethod
    def run(self, client: Any, database: str, plan: QueryPlan) -> DocumentCursor:
        """Execute ``plan`` and return a lazy cursor over its documents."""

    @abstractmethod
    def replace_document(self, client: Any, database: str, collection: str, document: dict[str, Any]) -> int:
        """Replace the stored document with the same ``_id``. Returns the matched count."""

    def host_label(self, uri: str) -> str:
        return display_host(uri)


@dataclass(frozen=True, eq=False)
class ClientHandle:
    """A live client together with the adapter that created it."""

    adapter: DocumentAdapter
    client: Any

    def close(self) -> None:
        self.adapter.close(self.client)
