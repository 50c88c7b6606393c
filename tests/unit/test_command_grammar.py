"""Tests for the command grammar shared by the dispatcher and language server."""

import pytest

from docli.core.errors import ParseError
from docli.grammar import (
    Connect,
    Literal,
    RawQuery,
    ShellSubstitution,
    Unknown,
    Use,
    commands,
    parse,
    parse_partial,
)
from docli.grammar.ast import Call, Member
from docli.grammar.commands import PartialParse, classify_tokens, is_query_start


class TestVerbs:
    """Tests for use/connect parsing."""

    def test_use(self):
        assert parse("use mydb") == Use("mydb")

    def test_use_surrounding_whitespace(self):
        assert parse("   use   mydb  ") == Use("mydb")

    def test_use_without_argument(self):
        with pytest.raises(ParseError) as exc:
            parse("use")
        assert "requires an argument" in exc.value.message
        assert (exc.value.start, exc.value.end) == (0, 3)

    def test_use_with_spaces_in_name(self):
        with pytest.raises(ParseError, match="whitespace"):
            parse("use my db")

    def test_connect_literal(self):
        assert parse("connect mongodb://localhost:27017") == Connect(Literal("mongodb://localhost:27017"))

    def test_connect_substitution(self):
        command = parse('connect !(echo "mongodb://localhost")')
        assert command == Connect(ShellSubstitution('echo "mongodb://localhost"'))

    def test_substitution_keeps_parens_inside_quotes(self):
        command = parse("connect !(printf ')' && echo x)")
        assert command == Connect(ShellSubstitution("printf ')' && echo x"))

    def test_substitution_with_nested_parens(self):
        command = parse("connect !(echo $(cat uri.txt))")
        assert command == Connect(ShellSubstitution("echo $(cat uri.txt)"))

    def test_unterminated_substitution(self):
        with pytest.raises(ParseError, match="Unterminated substitution"):
            parse("connect !(echo x")

    def test_text_after_substitution(self):
        with pytest.raises(ParseError, match="Unexpected text after substitution"):
            parse("connect !(echo x) extra")

    def test_empty_substitution(self):
        with pytest.raises(ParseError, match="Empty substitution"):
            parse("connect !(  )")

    def test_connect_without_argument(self):
        with pytest.raises(ParseError, match="'connect' requires an argument"):
            parse("connect   ")


class TestQueries:
    """Tests for raw query recognition."""

    def test_find_query(self):
        command = parse("db.users.find({age: {$gt: 30}})")
        assert isinstance(command, RawQuery)
        assert command.text == "db.users.find({age: {$gt: 30}})"
        call = command.program.statements[0]
        assert isinstance(call, Call)
        assert isinstance(call.callee, Member)
        assert call.callee.name == "find"

    def test_bare_object_is_query(self):
        command = parse("{}")
        assert isinstance(command, RawQuery)
        assert command.text == "{}"

    def test_query_text_is_stripped(self):
        assert parse("  db.users.find()  ").text == "db.users.find()"

    def test_query_syntax_error_raises(self):
        with pytest.raises(ParseError, match=r"Expected '\)'"):
            parse("db.users.find({a: 1}")

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("db.users.find()", True),
            ("db", True),
            ("{a: 1}", True),
            ("[1, 2]", True),
            ("ObjectId('x')", True),
            ("foo.bar", True),
            ("foo bar", False),
            ("", False),
            ("show dbs", False),
        ],
    )
    def test_is_query_start(self, text, expected):
        assert is_query_start(text) is expected


class TestUnknown:
    """Unknown verbs are returned, not raised."""

    def test_unknown_verb(self):
        assert parse("frobnicate now") == Unknown("frobnicate now")

    def test_unknown_verb_partial_error(self):
        result = parse_partial("frobnicate now")
        assert isinstance(result.command, Unknown)
        assert result.errors == [ParseError("Unknown command 'frobnicate'", 0, 10)]

    def test_empty_input(self):
        assert parse("") == Unknown("")
        assert parse("   ") == Unknown("")


class TestParsePartial:
    """Partial parses keep nodes and every error."""

    def test_partial_use_nodes(self):
        result = parse_partial("use mydb")
        assert [(n.kind, n.start, n.end, n.text) for n in result.nodes] == [
            ("verb", 0, 3, "use"),
            ("database", 4, 8, "mydb"),
        ]

    def test_partial_query_collects_all_errors(self):
        result = parse_partial('db.a.find("x); db.b.find(')
        assert result.command is None
        assert len(result.errors) >= 1
        assert result.errors == sorted(result.errors, key=lambda e: e.start)

    def test_partial_query_nodes(self):
        result = parse_partial("db.users.find({name: 'x'}).limit(2)")
        kinds = {(n.text, n.kind) for n in result.nodes}
        assert ("db", "keyword") in kinds
        assert ("users", "collection") in kinds
        assert ("find", "method") in kinds
        assert ("name", "key") in kinds
        assert ("'x'", "string") in kinds
        assert ("limit", "method") in kinds
        assert ("2", "number") in kinds

    def test_classify_database_method(self):
        result = parse_partial("db.getCollectionNames()")
        kinds = {(n.text, n.kind) for n in result.nodes}
        assert ("getCollectionNames", "method") in kinds

    def test_classify_constructor(self):
        nodes = classify_tokens(parse_partial("db.c.find({_id: ObjectId('a')})").tokens)
        assert any(n.text == "ObjectId" and n.kind == "constructor" for n in nodes)

    @pytest.mark.parametrize(
        "text,last",
        [
            ("db", ("keyword", 0, 2, "db")),
            ("db.users", ("collection", 3, 8, "users")),
            ("db.users.find().so", ("method", 16, 18, "so")),
            ("db.users.find({}).limit", ("method", 18, 23, "limit")),
        ],
    )
    def test_input_ending_in_identifier(self, text, last):
        result = parse_partial(text)
        assert result.errors == []
        assert isinstance(result.command, RawQuery)
        node = result.nodes[-1]
        assert (node.kind, node.start, node.end, node.text) == last

    def test_missing_command_raises_parse_error(self, monkeypatch):
        monkeypatch.setattr(commands, "parse_partial", lambda raw: PartialParse(nodes=[], errors=[]))
        with pytest.raises(ParseError):
            commands.parse("db.users.find()")


@pytest.mark.parametrize(
    "text",
    [
        "use mydb",
        "use",
        "connect mongodb://localhost:27017/mydb",
        "connect !(pass show mongo)",
        "connect !(echo x",
        "db.users.find({age: {$gt: 30}}).limit(5)",
        "db.users.find({a: 1}",
        "db.users",
        "db.users.find().so",
        "frobnicate now",
        "",
    ],
)
def test_parse_is_deterministic(text):
    def outcome():
        try:
            return parse(text)
        except ParseError as e:
            return e

    first, second = outcome(), outcome()
    assert first == second
    assert parse_partial(text).nodes == parse_partial(text).nodes
