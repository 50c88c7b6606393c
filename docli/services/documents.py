"""Rendering documents for the editor and reading edits back."""

from __future__ import annotations

import json
from typing import Any

from bson import json_util
from bson.json_util import JSONOptions, JSONMode

from ..core.errors import DocumentEditError

JSON_OPTIONS = JSONOptions(json_mode=JSONMode.RELAXED, tz_aware=True)


def render_document(document: dict[str, Any]) -> str:
    """Canonical editor text for a document: relaxed Extended JSON, 2-space indent."""
    return json_util.dumps(document, json_options=JSON_OPTIONS, indent=2, ensure_ascii=False) + "\n"


def render_value(value: Any) -> str:
    """Compact one-line JSON for a table cell."""
    if isinstance(value, str):
        return value
    return json_util.dumps(value, json_options=JSON_OPTIONS, ensure_ascii=False)


def parse_edited_document(original: dict[str, Any], text: str) -> dict[str, Any] | None:
    """Parse an edited document.

    Returns None when the text is identical to the original rendering, so no
    write is needed. Raises DocumentEditError for text that is not a JSON
    object or that changes ``_id``.
    """
    if text == render_document(original) or text.strip() == render_document(original).strip():
        return None

    try:
        edited = json_util.loads(text, json_options=JSON_OPTIONS)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        raise DocumentEditError(f"Invalid JSON: {e}") from e

    if not isinstance(edited, dict):
        raise DocumentEditError("Edited document must be a JSON object")

    if "_id" in original:
        if "_id" not in edited:
            raise DocumentEditError("Edited document is missing _id")
        if edited["_id"] != original["_id"]:
            raise DocumentEditError("_id cannot be changed")

    if edited == original:
        return None
    return edited
