"""Recursive descent parser for query expressions.

Grammar::

    program    := statement (";" statement)* ";"?
    statement  := expression
    expression := primary ("." IDENT | "(" args? ")")*
    primary    := STRING | NUMBER | BOOL | NULL | REGEX | IDENT | object | array
    object     := "{" (key ":" expression ("," key ":" expression)* ","?)? "}"
    key        := IDENT | STRING | NUMBER
    array      := "[" (expression ("," expression)* ","?)? "]"
"""

from __future__ import annotations

from ..core.errors import ParseError
from .ast import (
    ArrayExpr,
    BoolLit,
    Call,
    Expr,
    Identifier,
    Member,
    NullLit,
    NumberLit,
    ObjectExpr,
    Program,
    Property,
    RegexLit,
    StringLit,
)
from .lexer import Token, TokenType, tokenize


class _Abort(Exception):
    def __init__(self, error: ParseError):
        self.error = error


class Parser:
    """Parses a token stream into a Program, collecting errors per statement."""

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.errors: list[ParseError] = []
        self._current = 0

    def parse_program(self) -> Program:
        statements: list[Expr] = []
        while not self._check(TokenType.EOF):
            if self._match(TokenType.SEMICOLON):
                continue
            try:
                statements.append(self._expression())
                if not self._check(TokenType.EOF):
                    self._consume(TokenType.SEMICOLON, "Expected ';' between statements")
            except _Abort as abort:
                self.errors.append(abort.error)
                self._synchronize()
        return Program(tuple(statements))

    def _expression(self) -> Expr:
        expr = self._primary()
        while True:
            if self._match(TokenType.DOT):
                name = self._consume(TokenType.IDENTIFIER, "Expected property name after '.'")
                expr = Member(expr, name.value, expr.start, name.end)
            elif self._match(TokenType.LEFT_PAREN):
                args = self._arguments()
                close = self._consume(TokenType.RIGHT_PAREN, "Expected ')' after arguments")
                expr = Call(expr, tuple(args), expr.start, close.end)
            else:
                return expr

    def _arguments(self) -> list[Expr]:
        args: list[Expr] = []
        if self._check(TokenType.RIGHT_PAREN):
            return args
        args.append(self._expression())
        while self._match(TokenType.COMMA):
            args.append(self._expression())
        return args

    def _primary(self) -> Expr:
        token = self._peek()
        kind = token.type
        if kind == TokenType.STRING:
            self._advance()
            return StringLit(token.value, token.start, token.end)
        if kind == TokenType.NUMBER:
            self._advance()
            return NumberLit(token.value, token.start, token.end)
        if kind == TokenType.BOOL:
            self._advance()
            return BoolLit(token.value, token.start, token.end)
        if kind == TokenType.NULL:
            self._advance()
            return NullLit(token.start, token.end)
        if kind == TokenType.REGEX:
            self._advance()
            pattern, flags = token.value
            return RegexLit(pattern, flags, token.start, token.end)
        if kind == TokenType.IDENTIFIER:
            self._advance()
            return Identifier(token.value, token.start, token.end)
        if kind == TokenType.LEFT_BRACE:
            return self._object()
        if kind == TokenType.LEFT_BRACKET:
            return self._array()
        raise self._error(token, "Expected expression")

    def _object(self) -> ObjectExpr:
        open_brace = self._advance()
        properties: list[Property] = []
        while not self._check(TokenType.RIGHT_BRACE):
            key = self._peek()
            if key.type in (TokenType.IDENTIFIER, TokenType.STRING):
                self._advance()
                name = key.value
            elif key.type == TokenType.NUMBER:
                self._advance()
                name = key.lexeme
            else:
                raise self._error(key, "Expected property key")
            self._consume(TokenType.COLON, "Expected ':' after property key")
            value = self._expression()
            properties.append(Property(name, value, key.start, value.end))
            if not self._match(TokenType.COMMA):
                break
        close = self._consume(TokenType.RIGHT_BRACE, "Expected '}' to close object")
        return ObjectExpr(tuple(properties), open_brace.start, close.end)

    def _array(self) -> ArrayExpr:
        open_bracket = self._advance()
        elements: list[Expr] = []
        while not self._check(TokenType.RIGHT_BRACKET):
            elements.append(self._expression())
            if not self._match(TokenType.COMMA):
                break
        close = self._consume(TokenType.RIGHT_BRACKET, "Expected ']' to close array")
        return ArrayExpr(tuple(elements), open_bracket.start, close.end)

    def _synchronize(self) -> None:
        while not self._check(TokenType.EOF):
            if self._advance().type == TokenType.SEMICOLON:
                return

    def _consume(self, kind: TokenType, message: str) -> Token:
        if self._check(kind):
            return self._advance()
        raise self._error(self._peek(), message)

    def _error(self, token: Token, message: str) -> _Abort:
        if token.type == TokenType.EOF:
            message = f"{message}, found end of input"
        else:
            message = f"{message}, found {token.lexeme!r}"
        return _Abort(ParseError(message, token.start, max(token.end, token.start)))

    def _match(self, kind: TokenType) -> bool:
        if self._check(kind):
            self._advance()
            return True
        return False

    def _check(self, kind: TokenType) -> bool:
        return self._peek().type == kind

    def _advance(self) -> Token:
        token = self.tokens[self._current]
        if token.type != TokenType.EOF:
            self._current += 1
        return token

    def _peek(self) -> Token:
        return self.tokens[self._current]


def parse_query(source: str) -> tuple[Program, list[ParseError], list[Token]]:
    """Lex and parse ``source``.

    Returns the program (possibly partial), every lexer and parser error, and
    the token list.
    """
    tokens, lex_errors = tokenize(source)
    parser = Parser(tokens)
    program = parser.parse_program()
    errors = sorted(lex_errors + parser.errors, key=lambda e: e.start)
    return program, errors, tokens
