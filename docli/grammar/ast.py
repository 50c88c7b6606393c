"""Query expression tree.

Nodes are immutable and carry their source span, so parsing the same text
twice produces equal trees.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Identifier:
    name: str
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class StringLit:
    value: str
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class NumberLit:
    value: int | float
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class BoolLit:
    value: bool
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class NullLit:
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class RegexLit:
    pattern: str
    flags: str = ""
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class Property:
    key: str
    value: Expr
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class ObjectExpr:
    properties: tuple[Property, ...] = ()
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class ArrayExpr:
    elements: tuple[Expr, ...] = ()
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class Member:
    """``object.name``"""

    object: Expr
    name: str
    start: int = 0
    end: int = 0


@dataclass(frozen=True)
class Call:
    """``callee(args...)``"""

    callee: Expr
    args: tuple[Expr, ...] = ()
    start: int = 0
    end: int = 0


Expr = Union[Identifier, StringLit, NumberLit, BoolLit, NullLit, RegexLit, ObjectExpr, ArrayExpr, Member, Call]
LITERAL_TYPES = (StringLit, NumberLit, BoolLit, NullLit)


@dataclass(frozen=True)
class Program:
    statements: tuple[Expr, ...] = ()


def literal_value(expr: Expr) -> Any:
    """Return the plain Python value of a literal node."""
    if isinstance(expr, NullLit):
        return None
    if isinstance(expr, LITERAL_TYPES):
        return expr.value
    raise TypeError(f"{type(expr).__name__} is not a literal")

