"""Main Textual application for docli."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any

from rich.markup import escape as escape_markup
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Vertical
from textual.screen import ModalScreen
from textual.widgets import Static

from .config import RuntimeConfig, load_settings, save_settings
from .core.mode import Mode
from .core.session import Session
from .services.connection import ConnectionManager
from .services.editor import EditorBridge
from .services.executor import QueryExecutor
from .ui.controller import ModeController
from .ui.mixins import ResultsMixin
from .ui.widgets import MODE_HINTS, CommandBar, DocumentTable, StatusLine

DEFAULT_THEME = "tokyo-night"


class DocliApp(ResultsMixin, App):
    """Terminal client for a document database."""

    TITLE = "docli"

    CSS = """
    Screen {
        background: $surface;
    }

    #main-container {
        width: 100%;
        height: 100%;
    }

    #results-label {
        height: 1;
        color: $text-muted;
        padding: 0 1;
    }

    #results-area {
        height: 1fr;
        padding: 0 1;
    }

    #results-area DocumentTable {
        height: 1fr;
    }

    #hint-line {
        height: 1;
        color: $text-muted;
        padding: 0 1;
    }
    """

    # Every key goes through the controller; check_action lets a key fall
    # through to on_key (command line typing) when the current mode ignores it.
    BINDINGS = [
        Binding("ctrl+c", "key('ctrl+c')", "Cancel", show=False, priority=True),
        Binding("ctrl+q", "quit", "Quit", show=False, priority=True),
        Binding("colon", "key(':')", "Command", show=False, priority=True),
        Binding("e", "key('e')", "Edit query", show=False, priority=True),
        Binding("r", "key('r')", "Rerun", show=False, priority=True),
        Binding("q", "key('q')", "Quit", show=False, priority=True),
        Binding("enter", "key('enter')", "Edit document", show=False, priority=True),
        Binding("escape", "key('escape')", "Back", show=False, priority=True),
        Binding("right_square_bracket", "key(']')", "Next page", show=False, priority=True),
        Binding("left_square_bracket", "key('[')", "Previous page", show=False, priority=True),
        Binding("y", "key('y')", "Copy document", show=False, priority=True),
        Binding("v", "key('v')", "View document", show=False, priority=True),
        Binding("up", "key('up')", "History", show=False, priority=True),
        Binding("down", "key('down')", "History", show=False, priority=True),
        Binding("backspace", "key('backspace')", "Delete", show=False, priority=True),
    ]

    def __init__(self, config: RuntimeConfig, session: Session, initial_uri: str | None = None):
        super().__init__()
        self.config = config
        self.session = session
        self._initial_uri = initial_uri
        self.controller = ModeController(
            self,
            session,
            config=config,
            connections=ConnectionManager(config),
            executor=QueryExecutor(page_size=config.page_size),
            editor=EditorBridge(config.editor),
        )

    @property
    def results_area(self) -> Container:
        return self.query_one("#results-area", Container)

    @property
    def results_label(self) -> Static:
        return self.query_one("#results-label", Static)

    @property
    def status_line(self) -> StatusLine:
        return self.query_one(StatusLine)

    @property
    def command_bar(self) -> CommandBar:
        return self.query_one(CommandBar)

    def compose(self) -> ComposeResult:
        with Vertical(id="main-container"):
            yield Static("No results", id="results-label")
            with Container(id="results-area"):
                yield DocumentTable(id="results-table-0", zebra_stripes=True, show_header=False)
            yield CommandBar()
            yield StatusLine("Not connected")
            yield Static(MODE_HINTS[Mode.NORMAL], id="hint-line")

    def on_mount(self) -> None:
        """Initialize the app."""
        theme = self.config.theme or load_settings().get("theme")
        try:
            self.theme = theme or DEFAULT_THEME
        except Exception:
            self.theme = DEFAULT_THEME

        self.render_status(self.session)
        if self._initial_uri:
            self.controller.connect_on_startup(self._initial_uri)

    async def on_unmount(self) -> None:
        await self.controller.shutdown()

    def watch_theme(self, old_theme: str, new_theme: str) -> None:
        """Save theme whenever it changes."""
        settings = load_settings()
        settings["theme"] = new_theme
        save_settings(settings)

    def check_action(self, action: str, parameters: tuple[object, ...]) -> bool | None:
        if action == "key" and parameters:
            key = str(parameters[0])
            # modal screens (document view) handle their own keys
            if isinstance(self.screen, ModalScreen) and key != "ctrl+c":
                return False
            return self.controller.accepts(key)
        return True

    def action_key(self, name: str) -> None:
        self.controller.handle_key(name, name if len(name) == 1 else None)

    def on_key(self, event: events.Key) -> None:
        if self.session.mode != Mode.COMMAND:
            return
        if event.character and len(event.character) == 1 and event.character.isprintable():
            self.controller.handle_key(event.key, event.character)
            event.stop()
            event.prevent_default()

    # ControllerHost

    def render_status(self, session: Session) -> None:
        try:
            self.status_line.show(session, busy=self.controller.busy)
            self.query_one("#hint-line", Static).update(MODE_HINTS[session.mode])
        except Exception:
            # not mounted yet, or already torn down
            pass

    def render_command_line(self, text: str | None) -> None:
        self.command_bar.show_text(text)

    def notify(self, message: str, *, severity: str = "information", **kwargs: Any) -> None:  # type: ignore[override]
        super().notify(escape_markup(message), severity=severity, **kwargs)  # type: ignore[arg-type]

    def suspend_terminal(self) -> AbstractContextManager[Any]:
        return self.suspend()
