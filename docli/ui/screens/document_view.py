"""Read-only view of a single document."""

from __future__ import annotations

from rich.syntax import Syntax
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Static


class DocumentViewScreen(ModalScreen):
    """Modal screen showing a document as highlighted JSON."""

    BINDINGS = [
        Binding("escape", "dismiss", "Close"),
        Binding("enter", "dismiss", "Close"),
        Binding("q", "dismiss", "Close"),
        Binding("y", "copy", "Copy"),
    ]

    CSS = """
    DocumentViewScreen {
        align: center middle;
        background: transparent;
    }

    #document-scroll {
        width: 90;
        max-width: 95%;
        height: 70%;
        border: solid $primary;
        border-title-color: $primary;
        padding: 1;
    }

    #document-text {
        width: auto;
        height: auto;
    }
    """

    def __init__(self, text: str, title: str = "Document"):
        super().__init__()
        self.text = text
        self._title = title

    def compose(self) -> ComposeResult:
        scroll = VerticalScroll(id="document-scroll")
        scroll.border_title = self._title
        scroll.border_subtitle = "y copy · esc close"
        with scroll:
            yield Static(Syntax(self.text, "json", theme="ansi_dark", word_wrap=True), id="document-text")

    def on_mount(self) -> None:
        self.query_one("#document-scroll").focus()

    def action_dismiss(self) -> None:  # type: ignore[override]
        self.dismiss(None)

    def action_copy(self) -> None:
        copy = getattr(self.app, "copy_text", None)
        if callable(copy) and copy(self.text):
            self.notify("Document copied", timeout=2)
        else:
            self.notify("Copy unavailable", timeout=2)
