"""Widgets for the docli app."""

from __future__ import annotations

from typing import Any

import pyarrow as pa
from rich.markup import escape as escape_markup
from textual.widgets import Static
from textual_fastdatatable import ArrowBackend, DataTable

from ..core.mode import Mode
from ..core.session import Session
from ..services.documents import render_value

MAX_COLUMN_CONTENT_WIDTH = 60
MISSING = ""


class DocumentTable(DataTable):
    """Results table: one row per document, one column per top-level key."""


def build_documents_table(page: list[dict[str, Any]], columns: list[str], *, table_id: str) -> DocumentTable:
    """Build a table for a page of documents.

    Documents missing a key get an empty cell. Values are rendered as compact
    JSON and markup-escaped.
    """
    if not columns:
        return DocumentTable(id=table_id, zebra_stripes=True, show_header=False)

    data: dict[str, list[str]] = {col: [] for col in columns}
    for doc in page:
        for col in columns:
            if col in doc:
                data[col].append(escape_markup(render_value(doc[col])))
            else:
                data[col].append(MISSING)

    backend = ArrowBackend(pa.table(data))
    return DocumentTable(
        id=table_id,
        zebra_stripes=True,
        backend=backend,
        max_column_content_width=MAX_COLUMN_CONTENT_WIDTH,
    )


class StatusLine(Static):
    """Bottom line: mode, ``host | database`` and a busy marker."""

    DEFAULT_CSS = """
    StatusLine {
        height: 1;
        background: $surface-darken-1;
        padding: 0 1;
    }
    """

    def show(self, session: Session, *, busy: bool = False) -> None:
        mode = session.mode
        if session.connection is None:
            where = "Not connected"
        else:
            where = session.connection.get_display_info()
        marker = " [b]…[/b]" if busy else ""
        self.update(f"[reverse] {mode.value} [/reverse] {escape_markup(where)}{marker}")


class CommandBar(Static):
    """The ``:`` prompt. Hidden outside command mode."""

    DEFAULT_CSS = """
    CommandBar {
        height: 1;
        padding: 0 1;
        display: none;
    }

    CommandBar.visible {
        display: block;
    }
    """

    def show_text(self, text: str | None) -> None:
        if text is None:
            self.remove_class("visible")
            self.update("")
            return
        self.add_class("visible")
        self.update(f":{escape_markup(text)}█")


MODE_HINTS = {
    Mode.NORMAL: "e edit query  : command  r rerun  q quit",
    Mode.COMMAND: "enter run  esc cancel  ↑/↓ history",
    Mode.EDITOR: "editing…",
    Mode.VIEWER: "enter edit  v view  y copy  [ ] page  esc back",
}
