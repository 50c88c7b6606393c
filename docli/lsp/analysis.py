"""Completion and diagnostics for command and query buffers.

This module provides the editor-facing analysis used by the language server:
- Context-aware completion (verbs, ``db`` members, collection and cursor
  methods, database names after ``use``)
- Fuzzy filtering of candidates by the word under the cursor
- Diagnostics from the shared grammar plus a static unknown-method pass

Everything here works on plain strings and character offsets. The server
converts to and from LSP line/character positions.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path

from ..grammar.catalog import (
    COLLECTION,
    CONSTRUCTORS,
    CURSOR,
    DATABASE,
    DB_IDENTIFIER,
    PIPELINE_STAGES,
    QUERY_OPERATORS,
    TypeInfo,
)
from ..grammar.commands import VERBS, parse_partial
from ..grammar.lexer import Token, TokenType, tokenize
from ..history.fuzzy import fuzzy_match

logger = logging.getLogger(__name__)

_CURRENT_WORD = re.compile(r"[A-Za-z0-9_$]*$")
_USE_ARGUMENT = re.compile(r"^\s*use\s+$")
_LEADING_VERB = re.compile(r"^\s*(use|connect)(\s|$)")


class CompletionKind(Enum):
    """Types of completion candidates."""

    VERB = auto()
    KEYWORD = auto()
    CONSTRUCTOR = auto()
    METHOD = auto()
    COLLECTION = auto()
    DATABASE = auto()
    OPERATOR = auto()


class Severity(Enum):
    ERROR = auto()
    WARNING = auto()
    INFORMATION = auto()


@dataclass(frozen=True)
class Completion:
    label: str
    kind: CompletionKind
    detail: str = ""
    documentation: str = ""


@dataclass(frozen=True)
class Diagnostic:
    message: str
    start: int
    end: int
    severity: Severity = Severity.ERROR


@dataclass(frozen=True)
class ConnectionContext:
    """Read-only view of the connected server, from the TUI's schema snapshot."""

    databases: tuple[str, ...] = ()
    collections: tuple[str, ...] = ()
    database: str | None = None

    @classmethod
    def from_snapshot(cls, data: dict) -> ConnectionContext:
        return cls(
            databases=tuple(str(name) for name in data.get("databases") or ()),
            collections=tuple(str(name) for name in data.get("collections") or ()),
            database=data.get("database"),
        )

    @classmethod
    def load(cls, path: Path) -> ConnectionContext | None:
        """Read a snapshot file. Returns None when it is missing or unreadable."""
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable schema snapshot %s: %s", path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring schema snapshot %s: expected an object", path)
            return None
        return cls.from_snapshot(data)


def offset_to_position(text: str, offset: int) -> tuple[int, int]:
    """Convert a character offset to a zero-based (line, character) pair."""
    offset = max(0, min(offset, len(text)))
    line = text.count("\n", 0, offset)
    line_start = text.rfind("\n", 0, offset) + 1
    return line, offset - line_start


def position_to_offset(text: str, line: int, character: int) -> int:
    """Convert a zero-based (line, character) pair to a character offset."""
    offset = 0
    for _ in range(line):
        newline = text.find("\n", offset)
        if newline == -1:
            return len(text)
        offset = newline + 1
    line_end = text.find("\n", offset)
    if line_end == -1:
        line_end = len(text)
    return min(offset + max(character, 0), line_end)


def current_word(text: str, offset: int) -> str:
    match = _CURRENT_WORD.search(text[:offset])
    return match.group(0) if match else ""


def _receiver(tokens: list[Token], dot_index: int) -> TypeInfo | None:
    """What the member access at ``tokens[dot_index]`` is applied to.

    ``db.`` is the database, ``db.users.`` and ``db.getCollection("x").`` are
    collections, and any other call result is a cursor.
    """
    k = dot_index - 1
    if k < 0:
        return None
    token = tokens[k]

    if token.type == TokenType.RIGHT_PAREN:
        open_index = _matching_open(tokens, k)
        if open_index is None or open_index == 0:
            return None
        callee = tokens[open_index - 1]
        if callee.type == TokenType.IDENTIFIER and callee.value == "getCollection":
            return COLLECTION
        return CURSOR

    if token.type != TokenType.IDENTIFIER:
        return None

    segments = 0
    while k >= 2 and tokens[k - 1].type == TokenType.DOT and tokens[k - 2].type == TokenType.IDENTIFIER:
        k -= 2
        segments += 1
    if k > 0 and tokens[k - 1].type == TokenType.DOT:
        return None
    if tokens[k].value != DB_IDENTIFIER:
        return None
    return DATABASE if segments == 0 else COLLECTION


def _matching_open(tokens: list[Token], close_index: int) -> int | None:
    depth = 0
    for i in range(close_index, -1, -1):
        if tokens[i].type == TokenType.RIGHT_PAREN:
            depth += 1
        elif tokens[i].type == TokenType.LEFT_PAREN:
            depth -= 1
            if depth == 0:
                return i
    return None


def _enclosing_bracket(tokens: list[Token]) -> TokenType | None:
    depth = 0
    for token in reversed(tokens):
        if token.type in (TokenType.RIGHT_PAREN, TokenType.RIGHT_BRACE, TokenType.RIGHT_BRACKET):
            depth += 1
        elif token.type in (TokenType.LEFT_PAREN, TokenType.LEFT_BRACE, TokenType.LEFT_BRACKET):
            if depth == 0:
                return token.type
            depth -= 1
    return None


def _methods(info: TypeInfo) -> list[Completion]:
    return [Completion(m.name, CompletionKind.METHOD, m.signature, m.documentation) for m in info.methods]


def _expression_start() -> list[Completion]:
    items = [Completion(DB_IDENTIFIER, CompletionKind.KEYWORD, "current database")]
    items.extend(Completion(m.name, CompletionKind.CONSTRUCTOR, m.signature, m.documentation) for m in CONSTRUCTORS.methods)
    return items


def get_candidates(text: str, offset: int, context: ConnectionContext | None = None) -> list[Completion]:
    """Candidates valid at ``offset``, before filtering by the current word."""
    word = current_word(text, offset)
    before = text[: offset - len(word)]

    if not before.strip():
        items = [Completion(verb, CompletionKind.VERB) for verb in VERBS]
        items.extend(_expression_start())
        return items

    if _USE_ARGUMENT.match(before):
        if context is None:
            return []
        return [Completion(name, CompletionKind.DATABASE) for name in context.databases]

    if _LEADING_VERB.match(before):
        return []

    tokens, errors = tokenize(before)
    if any(e.message in ("Unterminated string", "Unterminated regex") for e in errors):
        return []
    tokens = [t for t in tokens if t.type != TokenType.EOF]
    if not tokens:
        return []

    if word.startswith("$"):
        return [Completion(op, CompletionKind.OPERATOR) for op in QUERY_OPERATORS + PIPELINE_STAGES]

    last = tokens[-1]
    if last.type == TokenType.DOT:
        receiver = _receiver(tokens, len(tokens) - 1)
        if receiver is None:
            return []
        items = _methods(receiver)
        if receiver is DATABASE and context is not None:
            items.extend(Completion(name, CompletionKind.COLLECTION) for name in context.collections)
        return items

    if last.type in (TokenType.LEFT_PAREN, TokenType.COLON, TokenType.LEFT_BRACKET, TokenType.SEMICOLON):
        return _expression_start()
    if last.type == TokenType.COMMA and _enclosing_bracket(tokens) != TokenType.LEFT_BRACE:
        return _expression_start()
    return []


def complete(text: str, offset: int, context: ConnectionContext | None = None) -> list[Completion]:
    """Completions at ``offset``, fuzzy-filtered by the word under the cursor."""
    candidates = get_candidates(text, offset, context)
    if not candidates:
        return []

    by_label: dict[str, Completion] = {}
    for item in candidates:
        by_label.setdefault(item.label, item)

    word = current_word(text, offset)
    return [by_label[label] for label in fuzzy_match(word, list(by_label))]


def diagnose(text: str, context: ConnectionContext | None = None) -> list[Diagnostic]:
    """Syntax errors plus unknown methods and collections, sorted by position."""
    result = parse_partial(text)
    diagnostics = [Diagnostic(e.message, e.start, max(e.end, e.start)) for e in result.errors]
    diagnostics.extend(_check_members(result.tokens, context))
    diagnostics.sort(key=lambda d: (d.start, d.end))
    return diagnostics


def _check_members(tokens: list[Token], context: ConnectionContext | None) -> list[Diagnostic]:
    found: list[Diagnostic] = []
    for i, token in enumerate(tokens):
        if token.type != TokenType.IDENTIFIER or i == 0 or tokens[i - 1].type != TokenType.DOT:
            continue
        receiver = _receiver(tokens, i - 1)
        if receiver is None:
            continue

        is_call = i + 1 < len(tokens) and tokens[i + 1].type == TokenType.LEFT_PAREN
        if is_call:
            if receiver.get(token.value) is None:
                found.append(
                    Diagnostic(
                        f"Unknown {receiver.name.lower()} method '{token.value}'",
                        token.start,
                        token.end,
                    )
                )
        elif receiver is DATABASE and context is not None and context.collections:
            if token.value not in context.collections:
                where = f" in '{context.database}'" if context.database else ""
                found.append(
                    Diagnostic(
                        f"Collection '{token.value}' not found{where}",
                        token.start,
                        token.end,
                        Severity.WARNING,
                    )
                )
    return found
