"""Controller fixtures wired to in-memory fakes."""

from __future__ import annotations

from pathlib import Path

import pytest

from docli.config import RuntimeConfig
from docli.core.session import Session
from docli.history import HistoryIndex
from docli.services.connection import ConnectionManager
from docli.services.editor import EditorBridge
from docli.services.executor import QueryExecutor
from docli.ui.controller import ModeController
from tests.fixtures.fakes import FakeAdapter, FakeHost, ScriptedEditor

SAMPLE_DATA = {
    "mydb": {
        "users": [
            {"_id": 1, "name": "ada", "age": 36},
            {"_id": 2, "name": "grace", "age": 45},
            {"_id": 3, "name": "linus", "age": 28},
        ],
        "orders": [{"_id": 10, "user": 1, "total": 12.5}],
    },
    "other": {"logs": []},
}


def make_config(tmp_path: Path, **overrides) -> RuntimeConfig:
    values = {
        "editor": "fake-editor",
        "shell": "/bin/sh",
        "page_size": 2,
        "history_path": tmp_path / "command_history.jsonl",
        "query_path": tmp_path / "query.js",
        "snapshot_path": tmp_path / "schema_snapshot.json",
        "debug_log_path": tmp_path / "debug.log",
    }
    values.update(overrides)
    return RuntimeConfig(**values)


def make_controller(
    config: RuntimeConfig,
    adapter: FakeAdapter,
    host: FakeHost | None = None,
    editor: ScriptedEditor | None = None,
) -> ModeController:
    history = HistoryIndex(config.history_path, enabled=config.history_enabled)
    history.load()
    return ModeController(
        host or FakeHost(),
        Session(history=history),
        config=config,
        connections=ConnectionManager(config, adapter_factory=lambda uri: adapter),
        executor=QueryExecutor(config.page_size),
        editor=EditorBridge(config.editor, runner=editor or ScriptedEditor()),
    )


@pytest.fixture
def runtime_config(tmp_path: Path) -> RuntimeConfig:
    return make_config(tmp_path)


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter({db: {name: [dict(d) for d in docs] for name, docs in colls.items()} for db, colls in SAMPLE_DATA.items()})


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def scripted_editor() -> ScriptedEditor:
    return ScriptedEditor()


@pytest.fixture
def controller(runtime_config, fake_adapter, fake_host, scripted_editor) -> ModeController:
    return make_controller(runtime_config, fake_adapter, fake_host, scripted_editor)
