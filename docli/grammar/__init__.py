"""Command and query grammar. Side-effect free."""

from .commands import (
    VERBS,
    Command,
    Connect,
    Literal,
    Node,
    PartialParse,
    RawQuery,
    ShellSubstitution,
    Unknown,
    UriSource,
    Use,
    parse,
    parse_partial,
)
from .parser import parse_query

__all__ = [
    "VERBS",
    "Command",
    "Connect",
    "Literal",
    "Node",
    "PartialParse",
    "RawQuery",
    "ShellSubstitution",
    "Unknown",
    "UriSource",
    "Use",
    "parse",
    "parse_partial",
    "parse_query",
]
