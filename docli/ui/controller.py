"""Mode controller: turns key presses into session transitions.

The controller owns the Session. It talks to the terminal only through the
ControllerHost protocol, so it can be driven by the Textual app or by a fake
host in tests.

Every user action that does I/O runs as an asyncio task. Starting a new action
bumps ``generation`` and cancels the task in flight; actions then run one at a
time under a lock, and a task only mutates the session while its generation
is still current.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractContextManager
from typing import Any, Protocol

from ..config import RuntimeConfig, save_query_draft
from ..core.errors import (
    DocliError,
    EditorError,
    EditorErrorKind,
    HistoryPersistError,
    ParseError,
)
from ..core.mode import Mode, Trigger, can_transition
from ..core.session import Session
from ..grammar.commands import Command, Connect, RawQuery, Unknown, Use, parse
from ..services.connection import ConnectionManager
from ..services.documents import parse_edited_document, render_document
from ..services.editor import EditorBridge, EditorKind
from ..services.executor import QueryExecutor, QueryResult
from .command_line import CommandLine

logger = logging.getLogger(__name__)


class ControllerHost(Protocol):
    """What the controller needs from the user interface."""

    def render_status(self, session: Session) -> None: ...

    def render_command_line(self, text: str | None) -> None:
        """Show the command line with ``text``, or hide it when None."""

    def render_results(self, result: QueryResult) -> None: ...

    def notify(self, message: str, *, severity: str = "information") -> None: ...

    def suspend_terminal(self) -> AbstractContextManager[Any]:
        """Release the terminal to a child process for the duration of the block."""

    def selected_index(self) -> int | None: ...

    def copy_text(self, text: str) -> bool: ...

    def show_document(self, text: str, title: str) -> None: ...

    def exit(self) -> None: ...


MODE_KEYS: dict[Mode, frozenset[str]] = {
    Mode.NORMAL: frozenset({":", "e", "r", "q"}),
    Mode.VIEWER: frozenset({":", "e", "r", "q", "enter", "escape", "]", "[", "y", "v"}),
    Mode.COMMAND: frozenset({"enter", "escape", "backspace", "up", "down"}),
    Mode.EDITOR: frozenset(),
}


def format_duration_ms(elapsed_ms: float) -> str:
    if elapsed_ms < 1000:
        return f"{elapsed_ms:.0f}ms"
    return f"{elapsed_ms / 1000:.2f}s"


class ModeController:
    """Top-level state machine for one interactive session."""

    def __init__(
        self,
        host: ControllerHost,
        session: Session,
        *,
        config: RuntimeConfig,
        connections: ConnectionManager,
        executor: QueryExecutor,
        editor: EditorBridge,
    ):
        self.host = host
        self.session = session
        self.config = config
        self.connections = connections
        self.executor = executor
        self.editor = editor
        self.command_line = CommandLine()
        self.result: QueryResult | None = None
        self._result_command: RawQuery | None = None
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._dispatch_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Task bookkeeping
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_task(self) -> asyncio.Task | None:
        return self._task

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _supersede(self) -> int:
        """Invalidate and cancel whatever is in flight. Returns the new generation."""
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return self._generation

    def _start(self, name: str, action: Callable[[int], Awaitable[Any]]) -> asyncio.Task:
        generation = self._supersede()
        task = asyncio.get_running_loop().create_task(self._run(generation, action), name=name)
        self._task = task
        return task

    async def _run(self, generation: int, action: Callable[[int], Awaitable[Any]]) -> Any:
        async with self._dispatch_lock:
            if not self._is_current(generation):
                return None
            self.host.render_status(self.session)
            try:
                return await action(generation)
            except DocliError as e:
                if self._is_current(generation):
                    self._report(e)
            except Exception as e:
                logger.exception("Unexpected error")
                if self._is_current(generation):
                    self.host.notify(f"Unexpected error: {e}", severity="error")
            finally:
                if self._is_current(generation):
                    self._task = None
                    self.host.render_status(self.session)
            return None

    # ------------------------------------------------------------------
    # Mode helpers
    # ------------------------------------------------------------------

    def _transition(self, trigger: Trigger) -> None:
        self.session.apply(trigger)
        self.host.render_status(self.session)

    def _report(self, error: DocliError) -> None:
        logger.info("%s: %s", type(error).__name__, error.message)
        self.host.notify(error.message, severity="error")
        self.host.render_status(self.session)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def accepts(self, key: str) -> bool:
        """Whether ``key`` does something in the current mode."""
        return key == "ctrl+c" or key in MODE_KEYS[self.session.mode]

    def handle_key(self, key: str, character: str | None = None) -> bool:
        """Route a key press. Returns True when the key was consumed."""
        if key == "ctrl+c":
            self.cancel()
            return True

        mode = self.session.mode
        if mode == Mode.COMMAND:
            return self._handle_command_key(key, character)
        if mode == Mode.EDITOR:
            return False

        # printable keys match on the character, named keys on the key name
        name = character if character and len(character) == 1 and character.isprintable() else key

        if name == ":":
            self.open_command_line()
        elif name == "e":
            self.author_query()
        elif name == "r":
            self.rerun()
        elif name == "q":
            self.host.exit()
        elif mode == Mode.VIEWER and name == "enter":
            self.edit_selected_document()
        elif mode == Mode.VIEWER and name == "escape":
            self.leave_viewer()
        elif mode == Mode.VIEWER and name == "]":
            self.next_page()
        elif mode == Mode.VIEWER and name == "[":
            self.previous_page()
        elif mode == Mode.VIEWER and name == "y":
            self.copy_selected_document()
        elif mode == Mode.VIEWER and name == "v":
            self.view_selected_document()
        else:
            return False
        return True

    def _handle_command_key(self, key: str, character: str | None) -> bool:
        if key == "escape":
            self.command_line.cancel()
            self._transition(Trigger.ABORT)
            self.host.render_command_line(None)
        elif key == "enter":
            self.submit_command_line()
        elif key == "backspace":
            self.command_line.backspace()
            self.host.render_command_line(self.command_line.buffer)
        elif key == "up":
            if not self.command_line.cycle_history(self.session.history, 1):
                self.host.notify("No matching history", severity="warning")
            self.host.render_command_line(self.command_line.buffer)
        elif key == "down":
            self.command_line.cycle_history(self.session.history, -1)
            self.host.render_command_line(self.command_line.buffer)
        elif character and len(character) == 1 and character.isprintable():
            self.command_line.add_char(character)
            self.host.render_command_line(self.command_line.buffer)
        return True

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def open_command_line(self) -> None:
        self._supersede()
        self._transition(Trigger.OPEN_COMMAND)
        self.command_line.start()
        self.host.render_command_line("")

    def submit_command_line(self) -> asyncio.Task | None:
        """Parse the command line and dispatch it.

        On a parse error the prompt stays open with the input intact.
        """
        text = self.command_line.buffer.strip()
        try:
            command = parse(text) if text else None
        except ParseError as e:
            self._report(e)
            return None

        self.command_line.submit()
        self._transition(Trigger.SUBMIT)
        self.host.render_command_line(None)
        if command is None:
            return None
        return self._start("dispatch", lambda gen: self._dispatch(command, gen, history_text=text))

    def run_command(self, text: str) -> asyncio.Task | None:
        """Parse and dispatch ``text`` as if submitted from the command line."""
        if self.session.mode != Mode.COMMAND:
            self.open_command_line()
        self.command_line.start(text)
        return self.submit_command_line()

    def dispatch(self, command: Command) -> asyncio.Task:
        """Dispatch an already parsed command without recording history."""
        return self._start("dispatch", lambda gen: self._dispatch(command, gen))

    def connect_on_startup(self, uri: str) -> asyncio.Task | None:
        try:
            command = parse(f"connect {uri}")
        except ParseError as e:
            self._report(e)
            return None
        return self.dispatch(command)

    def author_query(self) -> asyncio.Task:
        return self._start("author-query", self._author_query)

    def rerun(self) -> asyncio.Task | None:
        last = self.session.last_executed_query
        if not last:
            self.host.notify("No query to rerun", severity="warning")
            return None
        try:
            command = parse(last)
        except ParseError as e:
            self._report(e)
            return None
        return self.dispatch(command)

    def leave_viewer(self) -> None:
        self._supersede()
        self._transition(Trigger.LEAVE_VIEWER)

    def next_page(self) -> asyncio.Task | None:
        if self.result is None or not self.result.has_more:
            self.host.notify("No more documents", severity="warning")
            return None
        return self._start_page(self.result.offset + self.executor.page_size)

    def previous_page(self) -> asyncio.Task | None:
        if self.result is None or self.result.offset == 0:
            self.host.notify("Already at the first page", severity="warning")
            return None
        return self._start_page(max(0, self.result.offset - self.executor.page_size))

    def cancel(self) -> None:
        """Abort whatever is in flight and return to Normal mode."""
        was_busy = self.busy
        self._supersede()
        self.command_line.cancel()
        self.host.render_command_line(None)
        self._transition(Trigger.CANCEL)
        if was_busy:
            self.host.notify("Cancelled", severity="warning")

    def edit_selected_document(self) -> asyncio.Task | None:
        selected = self._selected_document()
        if selected is None:
            return None
        if self.result is None or not self.result.editable:
            self.host.notify("Documents from this query cannot be edited", severity="warning")
            return None
        index, document = selected
        result = self.result
        return self._start("edit-document", lambda gen: self._edit_document(gen, result, index, document))

    def copy_selected_document(self) -> None:
        selected = self._selected_document()
        if selected is None:
            return
        if self.host.copy_text(render_document(selected[1])):
            self.host.notify("Document copied")
        else:
            self.host.notify("Copy unavailable", severity="warning")

    def view_selected_document(self) -> None:
        selected = self._selected_document()
        if selected is None or self.result is None:
            return
        title = f"{self.result.collection} document" if self.result.collection else "Document"
        self.host.show_document(render_document(selected[1]), title)

    async def shutdown(self) -> None:
        self._supersede()
        task = self._task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)
        self.connections.close()
        self._persist_history()

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def _dispatch(self, command: Command, generation: int, history_text: str | None = None) -> bool:
        """Apply ``command`` fully or not at all. Returns True on success."""
        if isinstance(command, Use):
            ok = await self._use(command, generation)
        elif isinstance(command, Connect):
            ok = await self._connect(command, generation)
        elif isinstance(command, RawQuery):
            ok = await self._query(command, generation)
        elif isinstance(command, Unknown):
            word = command.text.split(None, 1)[0] if command.text else ""
            self.host.notify(f"Command not found: {word}", severity="error")
            ok = False
        else:
            raise TypeError(f"Unsupported command: {command!r}")

        if ok and history_text and self._is_current(generation):
            self.session.history.append(history_text)
            await asyncio.to_thread(self._persist_history)
        return ok

    async def _use(self, command: Use, generation: int) -> bool:
        connection = self.connections.switch_database(command.database)
        if not self._is_current(generation):
            return False
        self.connections.activate(connection)
        self.session.connection = connection
        self.host.render_status(self.session)
        self.host.notify(f"Switched to database {command.database}")
        await self.connections.write_snapshot(connection)
        return True

    async def _connect(self, command: Connect, generation: int) -> bool:
        self.host.notify("Connecting...")
        uri = await self.connections.resolve_uri(command.source)
        connection = await self.connections.connect(uri)
        if not self._is_current(generation):
            self.connections.discard(connection)
            return False
        self.connections.activate(connection)
        self.session.connection = connection
        self.host.render_status(self.session)
        self.host.notify(f"Connected to {connection.host}")
        await self.connections.write_snapshot(connection)
        return True

    async def _query(self, command: RawQuery, generation: int) -> bool:
        result = await self.executor.execute_async(command, self.session.connection)
        if not self._is_current(generation) or result.cancelled:
            return False
        if result.error is not None:
            self._report(result.error)
            return False

        self.session.last_executed_query = command.text
        self._show_result(command, result)
        count = len(result.page)
        more = "+" if result.has_more else ""
        self.host.notify(f"Query returned {count}{more} documents in {format_duration_ms(result.elapsed_ms)}")
        return True

    def _start_page(self, offset: int) -> asyncio.Task | None:
        command = self._result_command
        if command is None:
            return None

        async def page(generation: int) -> bool:
            result = await self.executor.execute_async(command, self.session.connection, offset=offset)
            if not self._is_current(generation) or result.cancelled:
                return False
            if result.error is not None:
                self._report(result.error)
                return False
            self._show_result(command, result)
            return True

        return self._start("page", page)

    def _show_result(self, command: RawQuery, result: QueryResult) -> None:
        self.result = result
        self._result_command = command
        self.host.render_results(result)
        if can_transition(self.session.mode, Trigger.SHOW_RESULTS):
            self._transition(Trigger.SHOW_RESULTS)

    async def _author_query(self, generation: int) -> bool:
        self._transition(Trigger.AUTHOR_QUERY)
        text = self._edit(self.session.query_draft, EditorKind.QUERY, Trigger.QUERY_EDITED)
        if text is None:
            return False

        self.session.query_draft = text
        save_query_draft(text, self.config.query_path)
        if not text.strip():
            self.host.notify("Empty query, nothing to run", severity="warning")
            return False

        command = parse(text.strip())
        return await self._dispatch(command, generation)

    async def _edit_document(self, generation: int, result: QueryResult, index: int, document: dict) -> bool:
        self._transition(Trigger.EDIT_DOCUMENT)
        text = self._edit(render_document(document), EditorKind.DOCUMENT, Trigger.DOCUMENT_EDITED)
        if text is None:
            return False

        updated = parse_edited_document(document, text)
        if updated is None:
            self.host.notify("No changes")
            return False

        connection = self.session.connection
        if connection is None or result.collection is None:
            self.host.notify("Not connected", severity="error")
            return False

        matched = await asyncio.to_thread(self.executor.replace_document, connection, result.collection, updated)
        if not self._is_current(generation):
            return False
        if not matched:
            self.host.notify("Document no longer exists", severity="warning")
            return False

        if result is self.result and index < len(result.page):
            result.page[index] = updated
            self.host.render_results(result)
        self.host.notify("Document updated")
        return True

    def _edit(self, initial: str, kind: EditorKind, done: Trigger) -> str | None:
        """Run the editor with the terminal released. Blocks the event loop.

        Leaves Editor mode through ``done``, or through CANCEL when the editor
        was interrupted, in which case None is returned and nothing else in
        the session changes.
        """
        try:
            text = self._run_editor(initial, kind)
        except EditorError as e:
            if e.kind != EditorErrorKind.CANCELLED:
                self._transition(done)
                raise
            logger.info("Editor cancelled: %s", e.message)
            self._transition(Trigger.CANCEL)
            self.host.notify("Cancelled", severity="warning")
            return None
        except BaseException:
            self._transition(done)
            raise
        self._transition(done)
        return text

    def _run_editor(self, initial: str, kind: EditorKind) -> str:
        try:
            with self.host.suspend_terminal():
                return self.editor.edit(initial, kind)
        except KeyboardInterrupt:
            raise EditorError(EditorErrorKind.CANCELLED, "Editor interrupted") from None
        except DocliError:
            raise
        except Exception as e:
            raise EditorError(EditorErrorKind.UNAVAILABLE, f"Cannot release the terminal: {e}") from e

    def _selected_document(self) -> tuple[int, dict] | None:
        if self.result is None or not self.result.page:
            self.host.notify("No results", severity="warning")
            return None
        index = self.host.selected_index()
        if index is None or not 0 <= index < len(self.result.page):
            return None
        return index, self.result.page[index]

    def _persist_history(self) -> None:
        try:
            self.session.history.persist()
        except HistoryPersistError as e:
            logger.warning("%s", e.message)
