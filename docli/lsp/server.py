"""Language server for docli command and query buffers.

JSON-RPC 2.0 over stdio with Content-Length framing. Each message looks like::

    Content-Length: 52\\r\\n
    \\r\\n
    {"jsonrpc":"2.0","id":1,"method":"initialize","params":{}}

Documents are synced in full on every change. Diagnostics are published after
open and change. Schema context (databases, collections) comes from the
snapshot file the TUI writes on connect, or from
``initializationOptions.snapshot``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, BinaryIO, Callable

from lsprotocol import converters, types

from ..core.errors import DocliError
from .analysis import (
    Completion,
    CompletionKind,
    ConnectionContext,
    Diagnostic,
    Severity,
    complete,
    diagnose,
    offset_to_position,
    position_to_offset,
)

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603
SERVER_NOT_INITIALIZED = -32002

TRIGGER_CHARACTERS = [".", " ", "$"]

COMPLETION_KINDS = {
    CompletionKind.VERB: types.CompletionItemKind.Keyword,
    CompletionKind.KEYWORD: types.CompletionItemKind.Variable,
    CompletionKind.CONSTRUCTOR: types.CompletionItemKind.Constructor,
    CompletionKind.METHOD: types.CompletionItemKind.Method,
    CompletionKind.COLLECTION: types.CompletionItemKind.Class,
    CompletionKind.DATABASE: types.CompletionItemKind.Module,
    CompletionKind.OPERATOR: types.CompletionItemKind.Operator,
}

SEVERITIES = {
    Severity.ERROR: types.DiagnosticSeverity.Error,
    Severity.WARNING: types.DiagnosticSeverity.Warning,
    Severity.INFORMATION: types.DiagnosticSeverity.Information,
}


class ProtocolError(DocliError):
    """A message that could not be framed or decoded."""


def read_message(stream: BinaryIO) -> dict[str, Any] | None:
    """Read one Content-Length framed message. Returns None at end of input."""
    headers: list[str] = []
    while True:
        line = stream.readline()
        if not line:
            if headers:
                raise ProtocolError("Unexpected end of input inside headers")
            return None
        line_str = line.decode("ascii", errors="replace").rstrip("\r\n")
        if line_str == "":
            if headers:
                break
            continue
        headers.append(line_str)

    content_length = None
    for header_line in headers:
        if header_line.lower().startswith("content-length:"):
            try:
                content_length = int(header_line.split(":", 1)[1].strip())
            except ValueError:
                raise ProtocolError(f"Invalid header: {header_line}") from None

    if content_length is None:
        raise ProtocolError(f"No Content-Length in headers: {headers}")

    body = stream.read(content_length)
    if len(body) < content_length:
        raise ProtocolError("Unexpected end of input inside message body")

    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e
    if not isinstance(message, dict):
        raise ProtocolError("Expected a JSON object")
    return message


def write_message(stream: BinaryIO, message: dict[str, Any]) -> None:
    """Encode and send a JSON-RPC message with Content-Length header."""
    body = json.dumps({"jsonrpc": "2.0", **message}).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    stream.write(header + body)
    stream.flush()


class SnapshotSource:
    """Schema context, reloaded whenever the snapshot file changes."""

    def __init__(self, path: Path | None = None, context: ConnectionContext | None = None):
        self.path = path
        self._fixed = context
        self._context: ConnectionContext | None = None
        self._mtime: int | None = None

    def set_fixed(self, context: ConnectionContext) -> None:
        self._fixed = context

    def get(self) -> ConnectionContext | None:
        if self._fixed is not None:
            return self._fixed
        if self.path is None:
            return None
        try:
            mtime = self.path.stat().st_mtime_ns
        except OSError:
            self._context = None
            self._mtime = None
            return None
        if mtime != self._mtime:
            self._context = ConnectionContext.load(self.path)
            self._mtime = mtime
        return self._context


class LanguageServer:
    def __init__(
        self,
        reader: BinaryIO,
        writer: BinaryIO,
        *,
        snapshot: SnapshotSource | None = None,
    ):
        self._reader = reader
        self._writer = writer
        self.snapshot = snapshot or SnapshotSource()
        self.documents: dict[str, str] = {}
        self._converter = converters.get_converter()
        self._initialized = False
        self._shutdown_requested = False
        self._running = False

        self._requests: dict[str, Callable[[Any], Any]] = {
            "initialize": self._initialize,
            "shutdown": self._shutdown,
            "textDocument/completion": self._completion,
        }
        self._notifications: dict[str, Callable[[Any], None]] = {
            "initialized": lambda params: None,
            "exit": self._exit,
            "textDocument/didOpen": self._did_open,
            "textDocument/didChange": self._did_change,
            "textDocument/didClose": self._did_close,
        }

    def serve(self) -> int:
        """Process messages until ``exit`` or end of input.

        Returns the process exit code: 0 when ``shutdown`` preceded the end.
        """
        self._running = True
        while self._running:
            try:
                message = read_message(self._reader)
            except ProtocolError as e:
                logger.warning("Dropping malformed message: %s", e)
                self._send_error(None, PARSE_ERROR, e.message)
                continue
            if message is None:
                break
            self.handle(message)
        return 0 if self._shutdown_requested else 1

    def handle(self, message: dict[str, Any]) -> None:
        method = message.get("method")
        if method is None:
            # Response to a server-initiated request; none are sent.
            return

        params = message.get("params")
        if "id" not in message:
            self._handle_notification(method, params)
            return

        msg_id = message["id"]
        handler = self._requests.get(method)
        if handler is None:
            self._send_error(msg_id, METHOD_NOT_FOUND, f"Unhandled method {method}")
            return
        if self._shutdown_requested:
            self._send_error(msg_id, INVALID_REQUEST, "Server is shutting down")
            return
        if not self._initialized and method != "initialize":
            self._send_error(msg_id, SERVER_NOT_INITIALIZED, "Server not initialized")
            return

        try:
            result = handler(params)
        except Exception as e:
            logger.exception("Request %s failed", method)
            self._send_error(msg_id, INTERNAL_ERROR, str(e))
            return
        self._send({"id": msg_id, "result": result})

    def _handle_notification(self, method: str, params: Any) -> None:
        handler = self._notifications.get(method)
        if handler is None:
            logger.debug("Ignoring notification %s", method)
            return
        try:
            handler(params)
        except Exception:
            logger.exception("Notification %s failed", method)

    def _initialize(self, params: Any) -> Any:
        options = (params or {}).get("initializationOptions") or {}
        snapshot = options.get("snapshot") if isinstance(options, dict) else None
        if isinstance(snapshot, dict):
            self.snapshot.set_fixed(ConnectionContext.from_snapshot(snapshot))
        elif isinstance(snapshot, str):
            self.snapshot.path = Path(snapshot).expanduser()

        self._initialized = True
        result = types.InitializeResult(
            capabilities=types.ServerCapabilities(
                text_document_sync=types.TextDocumentSyncKind.Full,
                completion_provider=types.CompletionOptions(trigger_characters=TRIGGER_CHARACTERS),
            )
        )
        return self._converter.unstructure(result)

    def _shutdown(self, params: Any) -> None:
        self._shutdown_requested = True
        return None

    def _exit(self, params: Any) -> None:
        self._running = False

    def _did_open(self, params: Any) -> None:
        parsed = self._converter.structure(params, types.DidOpenTextDocumentParams)
        document = parsed.text_document
        self.documents[document.uri] = document.text
        self._publish_diagnostics(document.uri, document.version)

    def _did_change(self, params: Any) -> None:
        parsed = self._converter.structure(params, types.DidChangeTextDocumentParams)
        uri = parsed.text_document.uri
        if parsed.content_changes:
            self.documents[uri] = parsed.content_changes[-1].text
        self._publish_diagnostics(uri, parsed.text_document.version)

    def _did_close(self, params: Any) -> None:
        parsed = self._converter.structure(params, types.DidCloseTextDocumentParams)
        uri = parsed.text_document.uri
        self.documents.pop(uri, None)
        self._notify(
            "textDocument/publishDiagnostics",
            types.PublishDiagnosticsParams(uri=uri, diagnostics=[]),
        )

    def _completion(self, params: Any) -> Any:
        parsed = self._converter.structure(params, types.CompletionParams)
        text = self.documents.get(parsed.text_document.uri, "")
        offset = position_to_offset(text, parsed.position.line, parsed.position.character)
        items = [self._completion_item(item) for item in complete(text, offset, self.snapshot.get())]
        return self._converter.unstructure(types.CompletionList(is_incomplete=False, items=items))

    def _completion_item(self, item: Completion) -> types.CompletionItem:
        return types.CompletionItem(
            label=item.label,
            kind=COMPLETION_KINDS[item.kind],
            detail=item.detail or None,
            documentation=item.documentation or None,
        )

    def _publish_diagnostics(self, uri: str, version: int | None = None) -> None:
        text = self.documents.get(uri, "")
        diagnostics = [self._lsp_diagnostic(text, d) for d in diagnose(text, self.snapshot.get())]
        self._notify(
            "textDocument/publishDiagnostics",
            types.PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics, version=version),
        )

    def _lsp_diagnostic(self, text: str, diagnostic: Diagnostic) -> types.Diagnostic:
        start_line, start_char = offset_to_position(text, diagnostic.start)
        end_line, end_char = offset_to_position(text, diagnostic.end)
        return types.Diagnostic(
            range=types.Range(
                start=types.Position(line=start_line, character=start_char),
                end=types.Position(line=end_line, character=end_char),
            ),
            message=diagnostic.message,
            severity=SEVERITIES[diagnostic.severity],
            source="docli",
        )

    def _notify(self, method: str, params: Any) -> None:
        self._send({"method": method, "params": self._converter.unstructure(params)})

    def _send_error(self, msg_id: Any, code: int, message: str) -> None:
        self._send({"id": msg_id, "error": {"code": code, "message": message}})

    def _send(self, message: dict[str, Any]) -> None:
        write_message(self._writer, message)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docli-lsp",
        description="Language server for docli commands and queries (stdio)",
    )
    parser.add_argument(
        "--snapshot",
        metavar="PATH",
        type=Path,
        help="Schema snapshot to complete against (default: the one docli writes on connect)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Write a debug log to the config directory",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    from ..config import LSP_LOG_PATH, SNAPSHOT_PATH
    from ..logs import configure_logging

    configure_logging(args.debug, LSP_LOG_PATH)
    server = LanguageServer(
        sys.stdin.buffer,
        sys.stdout.buffer,
        snapshot=SnapshotSource(args.snapshot or SNAPSHOT_PATH),
    )
    return server.serve()


if __name__ == "__main__":
    sys.exit(main())
