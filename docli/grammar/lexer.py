"""Tokenizer for the mongo-shell style query language.

The lexer never raises: problems (unterminated strings, stray characters) are
collected as ParseError values next to the tokens that could be read, so the
language server can report every error in one pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from ..core.errors import ParseError


class TokenType(Enum):
    SEMICOLON = auto()
    LEFT_PAREN = auto()
    RIGHT_PAREN = auto()
    LEFT_BRACE = auto()
    RIGHT_BRACE = auto()
    LEFT_BRACKET = auto()
    RIGHT_BRACKET = auto()
    COMMA = auto()
    DOT = auto()
    COLON = auto()
    IDENTIFIER = auto()
    STRING = auto()
    NUMBER = auto()
    BOOL = auto()
    NULL = auto()
    REGEX = auto()
    EOF = auto()


SINGLE_CHAR_TOKENS = {
    ";": TokenType.SEMICOLON,
    "(": TokenType.LEFT_PAREN,
    ")": TokenType.RIGHT_PAREN,
    "{": TokenType.LEFT_BRACE,
    "}": TokenType.RIGHT_BRACE,
    "[": TokenType.LEFT_BRACKET,
    "]": TokenType.RIGHT_BRACKET,
    ",": TokenType.COMMA,
    ".": TokenType.DOT,
    ":": TokenType.COLON,
}

REGEX_FLAGS = frozenset("imxsu")

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "0": "\0",
}


@dataclass(frozen=True)
class Token:
    """A lexeme with its decoded value and source span."""

    type: TokenType
    lexeme: str
    value: Any
    start: int
    end: int
    line: int


def _is_identifier_start(char: str) -> bool:
    # _peek() returns "" at end of input
    return len(char) == 1 and char.isascii() and (char.isalpha() or char in "$_")


def _is_identifier_part(char: str) -> bool:
    return _is_identifier_start(char) or (char.isascii() and char.isdigit())


class Lexer:
    """Single-pass scanner over a query buffer."""

    def __init__(self, source: str):
        self.source = source
        self.tokens: list[Token] = []
        self.errors: list[ParseError] = []
        self._start = 0
        self._current = 0
        self._line = 1

    def scan_tokens(self) -> tuple[list[Token], list[ParseError]]:
        """Scan the whole source. Always ends with an EOF token."""
        while not self._is_at_end():
            self._start = self._current
            self._scan_token()
        self.tokens.append(Token(TokenType.EOF, "", None, len(self.source), len(self.source), self._line))
        return self.tokens, self.errors

    def _scan_token(self) -> None:
        char = self._advance()

        if char in " \r\t":
            return
        if char == "\n":
            self._line += 1
            return

        if char in SINGLE_CHAR_TOKENS:
            self._add_token(SINGLE_CHAR_TOKENS[char])
        elif char in "\"'":
            self._string(char)
        elif char == "/":
            if self._peek() == "/":
                self._line_comment()
            else:
                self._regex()
        elif char.isascii() and char.isdigit() or (char in "-+" and self._peek().isascii() and self._peek().isdigit()):
            self._number()
        elif _is_identifier_start(char):
            self._identifier()
        else:
            self._error(f"Unknown character {char!r}")

    def _string(self, quote: str) -> None:
        chars: list[str] = []
        while not self._is_at_end() and self._peek() != quote:
            char = self._advance()
            if char == "\n":
                self._line += 1
            if char == "\\" and not self._is_at_end():
                escaped = self._advance()
                chars.append(_ESCAPES.get(escaped, escaped))
            else:
                chars.append(char)

        if self._is_at_end():
            self._error("Unterminated string")
            return

        self._advance()
        self._add_token(TokenType.STRING, "".join(chars))

    def _regex(self) -> None:
        chars: list[str] = []
        while not self._is_at_end() and self._peek() != "/":
            char = self._advance()
            if char == "\n":
                self._error("Unterminated regex")
                self._line += 1
                return
            if char == "\\" and self._peek() == "/":
                chars.append(self._advance())
            else:
                chars.append(char)

        if self._is_at_end():
            self._error("Unterminated regex")
            return

        self._advance()
        flags_start = self._current
        while self._peek() in REGEX_FLAGS:
            self._advance()
        self._add_token(TokenType.REGEX, ("".join(chars), self.source[flags_start : self._current]))

    def _line_comment(self) -> None:
        while not self._is_at_end() and self._peek() != "\n":
            self._advance()

    def _number(self) -> None:
        while self._peek().isascii() and self._peek().isdigit():
            self._advance()

        is_float = False
        if self._peek() == "." and self._peek_next().isascii() and self._peek_next().isdigit():
            is_float = True
            self._advance()
            while self._peek().isascii() and self._peek().isdigit():
                self._advance()

        if self._peek() in ("e", "E"):
            offset = 1
            if self._peek_next() in ("+", "-"):
                offset = 2
            following = self.source[self._current + offset : self._current + offset + 1]
            if following.isascii() and following.isdigit():
                is_float = True
                for _ in range(offset):
                    self._advance()
                while self._peek().isascii() and self._peek().isdigit():
                    self._advance()

        lexeme = self.source[self._start : self._current]
        self._add_token(TokenType.NUMBER, float(lexeme) if is_float else int(lexeme))

    def _identifier(self) -> None:
        while _is_identifier_part(self._peek()):
            self._advance()

        lexeme = self.source[self._start : self._current]
        if lexeme in ("true", "false"):
            self._add_token(TokenType.BOOL, lexeme == "true")
        elif lexeme == "null":
            self._add_token(TokenType.NULL, None)
        else:
            self._add_token(TokenType.IDENTIFIER, lexeme)

    def _add_token(self, token_type: TokenType, value: Any = None) -> None:
        self.tokens.append(
            Token(
                type=token_type,
                lexeme=self.source[self._start : self._current],
                value=value,
                start=self._start,
                end=self._current,
                line=self._line,
            )
        )

    def _error(self, message: str) -> None:
        self.errors.append(ParseError(message, self._start, self._current))

    def _advance(self) -> str:
        char = self.source[self._current]
        self._current += 1
        return char

    def _peek(self) -> str:
        if self._is_at_end():
            return ""
        return self.source[self._current]

    def _peek_next(self) -> str:
        if self._current + 1 >= len(self.source):
            return ""
        return self.source[self._current + 1]

    def _is_at_end(self) -> bool:
        return self._current >= len(self.source)


def tokenize(source: str) -> tuple[list[Token], list[ParseError]]:
    """Tokenize ``source``, returning tokens (EOF terminated) and lexer errors."""
    return Lexer(source).scan_tokens()
