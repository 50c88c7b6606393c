"""Tests for the interaction mode state machine."""

import pytest

from docli.core.mode import InvalidTransition, Mode, Trigger, can_transition, next_mode
from docli.core.session import Connection, Session
from docli.history import HistoryIndex


@pytest.mark.parametrize(
    "mode,trigger,expected",
    [
        (Mode.NORMAL, Trigger.OPEN_COMMAND, Mode.COMMAND),
        (Mode.NORMAL, Trigger.AUTHOR_QUERY, Mode.EDITOR),
        (Mode.COMMAND, Trigger.SUBMIT, Mode.NORMAL),
        (Mode.COMMAND, Trigger.ABORT, Mode.NORMAL),
        (Mode.EDITOR, Trigger.QUERY_EDITED, Mode.NORMAL),
        (Mode.NORMAL, Trigger.SHOW_RESULTS, Mode.VIEWER),
        (Mode.VIEWER, Trigger.EDIT_DOCUMENT, Mode.EDITOR),
        (Mode.EDITOR, Trigger.DOCUMENT_EDITED, Mode.VIEWER),
        (Mode.VIEWER, Trigger.LEAVE_VIEWER, Mode.NORMAL),
        (Mode.VIEWER, Trigger.OPEN_COMMAND, Mode.COMMAND),
    ],
)
def test_transitions(mode, trigger, expected):
    assert next_mode(mode, trigger) == expected


@pytest.mark.parametrize("mode", list(Mode))
def test_cancel_returns_to_normal_from_every_mode(mode):
    assert next_mode(mode, Trigger.CANCEL) == Mode.NORMAL


@pytest.mark.parametrize(
    "mode,trigger",
    [
        (Mode.NORMAL, Trigger.SUBMIT),
        (Mode.COMMAND, Trigger.OPEN_COMMAND),
        (Mode.EDITOR, Trigger.OPEN_COMMAND),
        (Mode.NORMAL, Trigger.EDIT_DOCUMENT),
        (Mode.COMMAND, Trigger.SHOW_RESULTS),
    ],
)
def test_invalid_transitions(mode, trigger):
    assert not can_transition(mode, trigger)
    with pytest.raises(InvalidTransition):
        next_mode(mode, trigger)


def test_session_apply_updates_mode():
    session = Session(history=HistoryIndex())
    assert session.apply(Trigger.OPEN_COMMAND) == Mode.COMMAND
    assert session.mode == Mode.COMMAND


def test_session_rejects_invalid_trigger_without_changing_mode():
    session = Session(history=HistoryIndex())
    with pytest.raises(InvalidTransition):
        session.apply(Trigger.SUBMIT)
    assert session.mode == Mode.NORMAL


def test_connection_display_info():
    conn = Connection(uri="mongodb://localhost:27017", database="mydb", handle=None, host="localhost:27017")
    assert conn.get_display_info() == "localhost:27017 | mydb"


def test_connection_display_info_without_database():
    conn = Connection(uri="mongodb://localhost", database=None, handle=None)
    assert conn.get_display_info() == "mongodb://localhost | -"
