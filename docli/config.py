"""Configuration management for docli.

Paths for persisted state live under CONFIG_DIR (``~/.config/docli`` unless
``DOCLI_CONFIG_DIR`` is set). RuntimeConfig merges command line flags, the
environment and ``settings.json`` into the values the session uses.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _config_dir() -> Path:
    override = os.environ.get("DOCLI_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "docli"


CONFIG_DIR = _config_dir()
SETTINGS_PATH = CONFIG_DIR / "settings.json"
HISTORY_PATH = CONFIG_DIR / "command_history.jsonl"
DEBUG_LOG_PATH = CONFIG_DIR / "debug.log"
LSP_LOG_PATH = CONFIG_DIR / "lsp.log"
QUERY_PATH = CONFIG_DIR / "query.js"
SNAPSHOT_PATH = CONFIG_DIR / "schema_snapshot.json"

DEFAULT_PAGE_SIZE = 100
DEFAULT_CONNECT_TIMEOUT_MS = 5000
DEFAULT_SHELL = "/bin/sh"


def load_settings(path: Path | None = None) -> dict[str, Any]:
    """Load app settings from the settings file."""
    path = path or SETTINGS_PATH
    if not path.exists():
        return {}
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def save_settings(settings: dict[str, Any], path: Path | None = None) -> None:
    """Save app settings to the settings file."""
    path = path or SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(settings, f, indent=2)


def load_query_draft(path: Path | None = None) -> str:
    """The last query authored in the editor, or an empty string."""
    path = path or QUERY_PATH
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""
    except OSError as exc:
        logger.warning("Could not read query draft %s: %s", path, exc)
        return ""


def save_query_draft(text: str, path: Path | None = None) -> None:
    path = path or QUERY_PATH
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        logger.warning("Could not save query draft %s: %s", path, exc)


@dataclass
class RuntimeConfig:
    """Resolved settings for one run."""

    editor: str | None = None
    shell: str = DEFAULT_SHELL
    page_size: int = DEFAULT_PAGE_SIZE
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS
    history_enabled: bool = True
    debug: bool = False
    theme: str | None = None
    history_path: Path = HISTORY_PATH
    query_path: Path = QUERY_PATH
    snapshot_path: Path = SNAPSHOT_PATH
    debug_log_path: Path = DEBUG_LOG_PATH

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            self.page_size = DEFAULT_PAGE_SIZE
        if self.connect_timeout_ms <= 0:
            self.connect_timeout_ms = DEFAULT_CONNECT_TIMEOUT_MS

    @classmethod
    def resolve(
        cls,
        *,
        debug: bool = False,
        history_enabled: bool = True,
        environ: dict[str, str] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> RuntimeConfig:
        """Build the config from flags, the environment and saved settings.

        The editor comes from ``VISUAL``, then ``EDITOR``, then the ``editor``
        setting. The shell used for ``!(...)`` substitution comes from the
        ``shell`` setting, then ``SHELL``.
        """
        env = os.environ if environ is None else environ
        settings = load_settings() if settings is None else settings

        editor = env.get("VISUAL") or env.get("EDITOR") or settings.get("editor") or None
        shell = settings.get("shell") or env.get("SHELL") or DEFAULT_SHELL

        return cls(
            editor=editor,
            shell=shell,
            page_size=_int_setting(settings, "page_size", DEFAULT_PAGE_SIZE),
            connect_timeout_ms=_int_setting(settings, "connect_timeout_ms", DEFAULT_CONNECT_TIMEOUT_MS),
            history_enabled=history_enabled,
            debug=debug,
            theme=settings.get("theme") if isinstance(settings.get("theme"), str) else None,
        )


def _int_setting(settings: dict[str, Any], key: str, default: int) -> int:
    value = settings.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        logger.warning("Setting %s must be an integer, using %s", key, default)
        return default
    return value
