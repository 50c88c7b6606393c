"""Command grammar shared by the TUI dispatcher and the language server.

Input is one of::

    use <database>
    connect <uri>
    connect !(<shell command>)
    <query expression>           e.g. db.users.find({age: {$gt: 30}})

A leading word that is neither a verb nor the start of a query expression
parses to ``Unknown`` so the caller can report it instead of failing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Union

from ..core.errors import ParseError
from .ast import Program
from .catalog import CONSTRUCTORS, DATABASE, DB_IDENTIFIER
from .lexer import Token, TokenType
from .parser import parse_query

VERBS = ("use", "connect")

_LEADING_WORD = re.compile(r"\s*(\S+)")


@dataclass(frozen=True)
class Literal:
    uri: str


@dataclass(frozen=True)
class ShellSubstitution:
    command: str


UriSource = Union[Literal, ShellSubstitution]


@dataclass(frozen=True)
class Use:
    database: str


@dataclass(frozen=True)
class Connect:
    source: UriSource


@dataclass(frozen=True)
class RawQuery:
    text: str
    program: Program = field(default_factory=Program)


@dataclass(frozen=True)
class Unknown:
    text: str


Command = Union[Use, Connect, RawQuery, Unknown]


@dataclass(frozen=True)
class Node:
    """A position-tagged piece of input, for incremental analysis."""

    kind: str
    start: int
    end: int
    text: str


@dataclass
class PartialParse:
    nodes: list[Node]
    errors: list[ParseError]
    command: Command | None = None
    tokens: list[Token] = field(default_factory=list)


def parse(raw: str) -> Command:
    """Parse one line of operator input.

    Raises ParseError for malformed ``use``/``connect`` arguments and for
    query text with syntax errors. Unrecognized verbs return ``Unknown``.
    """
    result = parse_partial(raw)
    if result.errors and not isinstance(result.command, Unknown):
        raise result.errors[0]
    if result.command is None:
        raise ParseError("Could not parse input", 0, len(raw))
    return result.command


def parse_partial(raw: str) -> PartialParse:
    """Parse without raising, keeping every node and error found."""
    match = _LEADING_WORD.match(raw)
    if match is None:
        return PartialParse(nodes=[], errors=[], command=Unknown(""))

    word = match.group(1)
    word_start, word_end = match.span(1)
    rest_start = word_end

    if word in VERBS:
        verb_node = Node("verb", word_start, word_end, word)
        arg_text = raw[rest_start:]
        stripped = arg_text.strip()
        arg_start = rest_start + (len(arg_text) - len(arg_text.lstrip()))
        arg_end = arg_start + len(stripped)

        if not stripped:
            error = ParseError(f"'{word}' requires an argument", word_start, word_end)
            return PartialParse(nodes=[verb_node], errors=[error])

        if word == "use":
            return _parse_use(verb_node, stripped, arg_start, arg_end)
        return _parse_connect(verb_node, stripped, arg_start, arg_end)

    if is_query_start(raw):
        return _parse_raw_query(raw)

    nodes = [Node("verb", word_start, word_end, word)]
    error = ParseError(f"Unknown command '{word}'", word_start, word_end)
    return PartialParse(nodes=nodes, errors=[error], command=Unknown(raw.strip()))


def is_query_start(raw: str) -> bool:
    """True when the input opens with a query expression rather than a verb."""
    text = raw.lstrip()
    if not text:
        return False
    if text[0] in "{[":
        return True
    match = re.match(r"[A-Za-z_$][A-Za-z0-9_$]*", text)
    if match is None:
        return False
    following = text[match.end() :].lstrip()[:1]
    return match.group(0) == DB_IDENTIFIER or following in (".", "(")


def _parse_use(verb: Node, arg: str, start: int, end: int) -> PartialParse:
    node = Node("database", start, end, arg)
    if any(ch.isspace() for ch in arg):
        error = ParseError("Database name cannot contain whitespace", start, end)
        return PartialParse(nodes=[verb, node], errors=[error])
    return PartialParse(nodes=[verb, node], errors=[], command=Use(arg))


def _parse_connect(verb: Node, arg: str, start: int, end: int) -> PartialParse:
    if arg.startswith("!("):
        close = _matching_paren(arg, 1)
        if close is None:
            node = Node("substitution", start, end, arg)
            error = ParseError("Unterminated substitution, expected ')'", start, end)
            return PartialParse(nodes=[verb, node], errors=[error])

        node = Node("substitution", start, start + close + 1, arg[: close + 1])
        if close != len(arg) - 1:
            error = ParseError("Unexpected text after substitution", start + close + 1, end)
            return PartialParse(nodes=[verb, node], errors=[error])

        inner = arg[2:close].strip()
        if not inner:
            error = ParseError("Empty substitution", start, end)
            return PartialParse(nodes=[verb, node], errors=[error])
        return PartialParse(nodes=[verb, node], errors=[], command=Connect(ShellSubstitution(inner)))

    node = Node("argument", start, end, arg)
    if any(ch.isspace() for ch in arg):
        error = ParseError("Connection URI cannot contain whitespace", start, end)
        return PartialParse(nodes=[verb, node], errors=[error])
    return PartialParse(nodes=[verb, node], errors=[], command=Connect(Literal(arg)))


def _matching_paren(text: str, open_index: int) -> int | None:
    """Index of the ')' closing the '(' at ``open_index``, skipping quoted text."""
    depth = 0
    quote: str | None = None
    i = open_index
    while i < len(text):
        char = text[i]
        if quote:
            if char == "\\" and quote == '"':
                i += 1
            elif char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return None


def _parse_raw_query(raw: str) -> PartialParse:
    program, errors, tokens = parse_query(raw)
    nodes = classify_tokens(tokens)
    command: Command | None = None
    if not errors:
        command = RawQuery(raw.strip(), program)
    return PartialParse(nodes=nodes, errors=errors, command=command, tokens=tokens)


def classify_tokens(tokens: list[Token]) -> list[Node]:
    """Tag query tokens with the role they play (collection, method, key...)."""
    nodes: list[Node] = []
    for i, token in enumerate(tokens):
        if token.type == TokenType.EOF:
            break
        prev = tokens[i - 1] if i > 0 else None
        prev2 = tokens[i - 2] if i > 1 else None
        following = tokens[i + 1] if i + 1 < len(tokens) else None

        kind = "punct"
        if token.type == TokenType.IDENTIFIER:
            after_dot = prev is not None and prev.type == TokenType.DOT
            if after_dot and prev2 is not None and prev2.type == TokenType.IDENTIFIER and prev2.value == DB_IDENTIFIER:
                kind = "method" if token.value in DATABASE.method_names else "collection"
            elif after_dot:
                kind = "method"
            elif following is not None and following.type == TokenType.COLON:
                kind = "key"
            elif token.value == DB_IDENTIFIER:
                kind = "keyword"
            elif token.value in CONSTRUCTORS.method_names:
                kind = "constructor"
            else:
                kind = "identifier"
        elif token.type == TokenType.STRING:
            kind = "key" if following is not None and following.type == TokenType.COLON else "string"
        elif token.type == TokenType.NUMBER:
            kind = "number"
        elif token.type in (TokenType.BOOL, TokenType.NULL):
            kind = "keyword"
        elif token.type == TokenType.REGEX:
            kind = "regex"
        nodes.append(Node(kind, token.start, token.end, token.lexeme))
    return nodes
