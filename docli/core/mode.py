"""Interaction modes and the transitions between them."""

from __future__ import annotations

from enum import Enum


class Mode(Enum):
    """Top-level interaction modes."""

    NORMAL = "NORMAL"
    COMMAND = "COMMAND"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"


class Trigger(Enum):
    """Events that move the controller between modes."""

    AUTHOR_QUERY = "author_query"  # 'e'
    OPEN_COMMAND = "open_command"  # ':'
    SUBMIT = "submit"  # enter in the command line
    ABORT = "abort"  # escape in the command line
    QUERY_EDITED = "query_edited"  # editor returned with query text
    EDIT_DOCUMENT = "edit_document"  # enter in the viewer
    DOCUMENT_EDITED = "document_edited"  # editor returned with a document
    SHOW_RESULTS = "show_results"
    LEAVE_VIEWER = "leave_viewer"
    CANCEL = "cancel"  # ctrl+c, valid from every mode


class InvalidTransition(Exception):
    def __init__(self, mode: Mode, trigger: Trigger):
        self.mode = mode
        self.trigger = trigger
        super().__init__(f"{trigger.value} is not valid in {mode.value} mode")


TRANSITIONS: dict[tuple[Mode, Trigger], Mode] = {
    (Mode.NORMAL, Trigger.AUTHOR_QUERY): Mode.EDITOR,
    (Mode.VIEWER, Trigger.AUTHOR_QUERY): Mode.EDITOR,
    (Mode.NORMAL, Trigger.OPEN_COMMAND): Mode.COMMAND,
    (Mode.VIEWER, Trigger.OPEN_COMMAND): Mode.COMMAND,
    (Mode.COMMAND, Trigger.SUBMIT): Mode.NORMAL,
    (Mode.COMMAND, Trigger.ABORT): Mode.NORMAL,
    (Mode.EDITOR, Trigger.QUERY_EDITED): Mode.NORMAL,
    (Mode.VIEWER, Trigger.EDIT_DOCUMENT): Mode.EDITOR,
    (Mode.EDITOR, Trigger.DOCUMENT_EDITED): Mode.VIEWER,
    (Mode.NORMAL, Trigger.SHOW_RESULTS): Mode.VIEWER,
    (Mode.VIEWER, Trigger.SHOW_RESULTS): Mode.VIEWER,
    (Mode.VIEWER, Trigger.LEAVE_VIEWER): Mode.NORMAL,
}
TRANSITIONS.update({(mode, Trigger.CANCEL): Mode.NORMAL for mode in Mode})


def next_mode(mode: Mode, trigger: Trigger) -> Mode:
    """Return the mode reached from ``mode`` on ``trigger``."""
    try:
        return TRANSITIONS[(mode, trigger)]
    except KeyError:
        raise InvalidTransition(mode, trigger) from None


def can_transition(mode: Mode, trigger: Trigger) -> bool:
    return (mode, trigger) in TRANSITIONS
