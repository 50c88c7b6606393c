"""Connection lifecycle: URI resolution, connect, database switching."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..config import RuntimeConfig
from ..core.errors import ConnectionError, ConnectionErrorKind, DocliError
from ..core.session import Connection, ConnectionStatus
from ..db.adapters import ClientHandle, DocumentAdapter, get_adapter
from ..grammar.commands import Literal, ShellSubstitution, UriSource

logger = logging.getLogger(__name__)

INVALID_DATABASE_CHARS = frozenset('/\\. "$\0')
MAX_DATABASE_NAME_LENGTH = 63


class ConnectionManager:
    """Owns the active connection handle.

    New connections are built off to the side and only installed with
    ``activate`` once they are verified, so a failed or cancelled connect
    never disturbs the connection already in use.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        adapter_factory: Callable[[str], DocumentAdapter] = get_adapter,
    ):
        self._config = config
        self._adapter_factory = adapter_factory
        self._active: Connection | None = None

    @property
    def active(self) -> Connection | None:
        return self._active

    async def resolve_uri(self, source: UriSource) -> str:
        """Turn a URI source into a URI, running the shell for substitutions."""
        if isinstance(source, Literal):
            return source.uri
        if not isinstance(source, ShellSubstitution):
            raise TypeError(f"Unsupported URI source: {source!r}")

        logger.debug("Running substitution command with %s", self._config.shell)
        try:
            proc = await asyncio.create_subprocess_exec(
                self._config.shell,
                "-c",
                source.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ConnectionError(
                ConnectionErrorKind.SUBSTITUTION_FAILED,
                f"Could not run {self._config.shell}: {e}",
            ) from e

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            message = f"Substitution command exited with status {proc.returncode}"
            raise ConnectionError(
                ConnectionErrorKind.SUBSTITUTION_FAILED,
                f"{message}: {detail}" if detail else message,
            )

        uri = stdout.decode(errors="replace").rstrip("\r\n")
        if not uri.strip():
            raise ConnectionError(ConnectionErrorKind.SUBSTITUTION_FAILED, "Substitution command produced no output")
        return uri

    async def connect(self, uri: str) -> Connection:
        """Open and ping a new connection without installing it."""
        adapter = self._adapter_factory(uri)
        opening = asyncio.ensure_future(
            asyncio.to_thread(adapter.connect, uri, timeout_ms=self._config.connect_timeout_ms)
        )
        try:
            client = await asyncio.shield(opening)
        except asyncio.CancelledError:
            # the worker thread cannot be stopped; close the client it hands back
            opening.add_done_callback(lambda done: self._close_abandoned(adapter, done))
            raise
        handle = ClientHandle(adapter, client)
        try:
            await asyncio.to_thread(adapter.ping, client)
            database = await asyncio.to_thread(adapter.default_database, client)
        except (Exception, asyncio.CancelledError):
            self._close_quietly(handle)
            raise

        host = adapter.host_label(uri)
        logger.info("Connected to %s", host)
        return Connection(
            uri=uri,
            database=database,
            handle=handle,
            status=ConnectionStatus.CONNECTED,
            host=host,
        )

    def activate(self, connection: Connection) -> Connection | None:
        """Install ``connection`` as the active one, closing the previous handle."""
        previous = self._active
        self._active = connection
        if previous is not None and previous.handle is not connection.handle:
            self._close_quietly(previous.handle)
        return previous

    def discard(self, connection: Connection) -> None:
        """Close a connection that was opened but never activated."""
        if self._active is not None and self._active.handle is connection.handle:
            return
        self._close_quietly(connection.handle)

    def switch_database(self, name: str) -> Connection:
        """Return a copy of the active connection with ``database`` set to ``name``."""
        if self._active is None:
            raise ConnectionError(ConnectionErrorKind.NOT_CONNECTED, "Not connected. Use 'connect <uri>' first")
        validate_database_name(name)
        return dataclasses.replace(self._active, database=name)

    async def list_databases(self, connection: Connection) -> list[str]:
        handle: ClientHandle = connection.handle
        return await asyncio.to_thread(handle.adapter.list_databases, handle.client)

    async def list_collections(self, connection: Connection) -> list[str]:
        if not connection.database:
            return []
        handle: ClientHandle = connection.handle
        return await asyncio.to_thread(handle.adapter.list_collections, handle.client, connection.database)

    async def snapshot(self, connection: Connection) -> dict[str, Any]:
        """Read-only schema context for the language server."""
        databases: list[str] = []
        collections: list[str] = []
        try:
            databases = await self.list_databases(connection)
            collections = await self.list_collections(connection)
        except DocliError as e:
            logger.warning("Could not list schema for snapshot: %s", e)
        return {
            "host": connection.host,
            "database": connection.database,
            "databases": databases,
            "collections": collections,
        }

    async def write_snapshot(self, connection: Connection, path: Path | None = None) -> None:
        path = path or self._config.snapshot_path
        data = await self.snapshot(connection)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not write schema snapshot %s: %s", path, e)

    def close(self) -> None:
        if self._active is not None:
            self._close_quietly(self._active.handle)
            self._active = None

    def _close_quietly(self, handle: ClientHandle) -> None:
        try:
            handle.close()
        except Exception as e:
            logger.debug("Error while closing client: %s", e)

    def _close_abandoned(self, adapter: DocumentAdapter, opening: asyncio.Future) -> None:
        if opening.cancelled() or opening.exception() is not None:
            return
        logger.debug("Closing client opened after connect was cancelled")
        self._close_quietly(ClientHandle(adapter, opening.result()))


def validate_database_name(name: str) -> None:
    if not name:
        raise ConnectionError(ConnectionErrorKind.INVALID_DATABASE, "Database name cannot be empty")
    bad = sorted(INVALID_DATABASE_CHARS.intersection(name))
    if bad:
        chars = " ".join(repr(c) for c in bad)
        raise ConnectionError(ConnectionErrorKind.INVALID_DATABASE, f"Database name cannot contain {chars}")
    if len(name) > MAX_DATABASE_NAME_LENGTH:
        raise ConnectionError(
            ConnectionErrorKind.INVALID_DATABASE,
            f"Database name is longer than {MAX_DATABASE_NAME_LENGTH} characters",
        )
