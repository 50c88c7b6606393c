"""External editor round-trip."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..core.errors import EditorError, EditorErrorKind

logger = logging.getLogger(__name__)


class EditorKind(Enum):
    QUERY = "query"
    DOCUMENT = "document"

    @property
    def suffix(self) -> str:
        return ".js" if self is EditorKind.QUERY else ".json"


@dataclass(frozen=True)
class EditorBuffer:
    temp_path: Path
    original_content: str
    kind: EditorKind


Runner = Callable[[list[str]], int]


def _run_editor(argv: list[str]) -> int:
    return subprocess.run(argv, check=False).returncode


class EditorBridge:
    """Hands a temporary file to the operator's editor and reads it back.

    ``edit`` blocks until the editor exits. The caller is responsible for
    releasing the terminal first (``App.suspend`` in the TUI).
    """

    def __init__(self, editor: str | None, runner: Runner = _run_editor, temp_dir: Path | None = None):
        self.editor = editor
        self._runner = runner
        self._temp_dir = temp_dir

    @contextmanager
    def buffer(self, initial_content: str, kind: EditorKind) -> Iterator[EditorBuffer]:
        """Create the temporary file and remove it on every exit path."""
        fd, name = tempfile.mkstemp(prefix="docli-", suffix=kind.suffix, dir=self._temp_dir)
        path = Path(name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(initial_content)
            yield EditorBuffer(temp_path=path, original_content=initial_content, kind=kind)
        finally:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not remove temporary file %s: %s", path, e)

    def edit(self, initial_content: str, kind: EditorKind) -> str:
        """Open ``initial_content`` in the editor and return what was saved."""
        argv = self._command()
        with self.buffer(initial_content, kind) as buf:
            logger.debug("Launching editor %s on %s", argv[0], buf.temp_path)
            try:
                status = self._runner([*argv, str(buf.temp_path)])
            except OSError as e:
                raise EditorError(EditorErrorKind.UNAVAILABLE, f"Could not start editor '{argv[0]}': {e}") from e
            except KeyboardInterrupt:
                # the released terminal delivers ctrl+c to us as well as to the editor
                raise EditorError(EditorErrorKind.CANCELLED, "Editor interrupted") from None

            if status < 0:
                raise EditorError(EditorErrorKind.CANCELLED, f"Editor killed by signal {-status}")
            if status != 0:
                raise EditorError(EditorErrorKind.NON_ZERO_EXIT, f"Editor exited with status {status}")

            try:
                return buf.temp_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise EditorError(EditorErrorKind.READBACK_FAILED, f"Could not read edited file: {e}") from e

    def _command(self) -> list[str]:
        if not self.editor or not self.editor.strip():
            raise EditorError(EditorErrorKind.UNAVAILABLE, "No editor configured. Set $EDITOR or $VISUAL")
        try:
            argv = shlex.split(self.editor)
        except ValueError as e:
            raise EditorError(EditorErrorKind.UNAVAILABLE, f"Invalid editor command '{self.editor}': {e}") from e
        if not argv:
            raise EditorError(EditorErrorKind.UNAVAILABLE, "No editor configured. Set $EDITOR or $VISUAL")
        return argv
