"""In-memory stand-ins for the database adapter and the terminal host."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any

from docli.core.errors import ConnectionError, ConnectionErrorKind
from docli.db.adapters.base import DocumentAdapter
from docli.db.plan import DocumentCursor, QueryPlan


class FakeClient:
    def __init__(self, uri: str) -> None:
        self.uri = uri
        self.closed = False


class FakeAdapter(DocumentAdapter):
    """Serves documents from ``data[database][collection]``.

    URIs containing ``unreachable`` fail the ping. Each Event queued in
    ``gates`` holds back one cursor, in call order, until it is set.
    """

    def __init__(self, data: dict[str, dict[str, list[dict]]] | None = None) -> None:
        self.data = data if data is not None else {}
        self.clients: list[FakeClient] = []
        self.plans: list[tuple[str, QueryPlan]] = []
        self.cursors: list[DocumentCursor] = []
        self.gates: list[threading.Event] = []
        self.started = threading.Event()

    @property
    def name(self) -> str:
        return "Fake"

    def connect(self, uri: str, *, timeout_ms: int) -> FakeClient:
        client = FakeClient(uri)
        self.clients.append(client)
        return client

    def ping(self, client: FakeClient) -> None:
        if "unreachable" in client.uri:
            raise ConnectionError(ConnectionErrorKind.UNREACHABLE, f"Cannot reach {client.uri}")

    def close(self, client: FakeClient) -> None:
        client.closed = True

    def default_database(self, client: FakeClient) -> str | None:
        rest = client.uri.split("://", 1)[-1]
        if "/" not in rest:
            return None
        name = rest.split("/", 1)[1].split("?", 1)[0]
        return name or None

    def list_databases(self, client: FakeClient) -> list[str]:
        return sorted(self.data)

    def list_collections(self, client: FakeClient, database: str) -> list[str]:
        return sorted(self.data.get(database, {}))

    def run(self, client: FakeClient, database: str, plan: QueryPlan) -> DocumentCursor:
        self.plans.append((database, plan))
        docs = self._select(database, plan)
        gate = self.gates.pop(0) if self.gates else None
        started = self.started

        def generate():
            started.set()
            if gate is not None:
                gate.wait(timeout=5)
            yield from docs

        cursor = DocumentCursor(generate())
        self.cursors.append(cursor)
        return cursor

    def replace_document(self, client: FakeClient, database: str, collection: str, document: dict[str, Any]) -> int:
        docs = self.data.get(database, {}).get(collection, [])
        for i, existing in enumerate(docs):
            if existing.get("_id") == document.get("_id"):
                docs[i] = dict(document)
                return 1
        return 0

    def _select(self, database: str, plan: QueryPlan) -> list[dict[str, Any]]:
        collections = self.data.get(database, {})
        if plan.operation == "list_collections":
            return [{"name": name} for name in sorted(collections)]

        docs = [
            dict(doc)
            for doc in collections.get(plan.collection or "", [])
            if all(doc.get(key) == value for key, value in plan.filter.items())
        ]
        if plan.operation == "count":
            return [{"count": len(docs)}]
        if plan.operation == "find_one":
            return docs[:1]
        if plan.operation == "aggregate":
            for stage in plan.pipeline:
                if "$skip" in stage:
                    docs = docs[stage["$skip"] :]
                if "$limit" in stage:
                    docs = docs[: stage["$limit"]]
            return docs

        docs = docs[plan.skip :]
        if plan.limit is not None:
            docs = docs[: plan.limit]
        return docs


class FakeHost:
    """Records everything the controller asks the user interface to do."""

    def __init__(self) -> None:
        self.statuses: list[Any] = []
        self.command_lines: list[str | None] = []
        self.results: list[Any] = []
        self.notifications: list[tuple[str, str]] = []
        self.suspensions = 0
        self.selected: int | None = 0
        self.copied: list[str] = []
        self.shown: list[tuple[str, str]] = []
        self.exited = False

    def render_status(self, session) -> None:
        self.statuses.append(session.mode)

    def render_command_line(self, text: str | None) -> None:
        self.command_lines.append(text)

    def render_results(self, result) -> None:
        self.results.append(result)

    def notify(self, message: str, *, severity: str = "information") -> None:
        self.notifications.append((message, severity))

    @contextmanager
    def suspend_terminal(self):
        self.suspensions += 1
        yield

    def selected_index(self) -> int | None:
        return self.selected

    def copy_text(self, text: str) -> bool:
        self.copied.append(text)
        return True

    def show_document(self, text: str, title: str) -> None:
        self.shown.append((text, title))

    def exit(self) -> None:
        self.exited = True

    @property
    def messages(self) -> list[str]:
        return [message for message, _ in self.notifications]

    def errors(self) -> list[str]:
        return [message for message, severity in self.notifications if severity == "error"]


class ScriptedEditor:
    """Editor runner that writes prepared text into the file it is given."""

    def __init__(self, *responses: str, status: int = 0, interrupt: bool = False) -> None:
        self.responses = list(responses)
        self.status = status
        self.interrupt = interrupt
        self.calls: list[list[str]] = []
        self.seen: list[str] = []

    def __call__(self, argv: list[str]) -> int:
        self.calls.append(argv)
        path = argv[-1]
        with open(path, encoding="utf-8") as f:
            self.seen.append(f.read())
        if self.interrupt:
            raise KeyboardInterrupt
        if self.responses:
            with open(path, "w", encoding="utf-8") as f:
                f.write(self.responses.pop(0))
        return self.status
