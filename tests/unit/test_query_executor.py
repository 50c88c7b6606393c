"""Tests for lowering queries to plans and running them."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest
from bson import ObjectId
from bson.int64 import Int64
from bson.regex import Regex

from docli.core.errors import ExecutionError
from docli.core.session import Connection
from docli.db.adapters import ClientHandle
from docli.db.plan import DocumentCursor, QueryPlan
from docli.grammar import parse
from docli.services.executor import CancelToken, QueryExecutor, build_plan
from tests.fixtures.fakes import FakeAdapter, FakeClient
from tests.fixtures.session import SAMPLE_DATA


def plan_for(text: str) -> QueryPlan:
    return build_plan(parse(text).program)


def _connection(adapter: FakeAdapter, database: str | None = "mydb") -> Connection:
    return Connection(
        uri="mongodb://localhost",
        database=database,
        handle=ClientHandle(adapter, FakeClient("mongodb://localhost")),
        host="localhost",
    )


class TestBuildPlan:
    """Tests for query lowering."""

    def test_find_with_filter_and_projection(self):
        plan = plan_for("db.users.find({age: {$gt: 30}}, {name: 1})")
        assert plan.operation == "find"
        assert plan.collection == "users"
        assert plan.filter == {"age": {"$gt": 30}}
        assert plan.projection == {"name": 1}

    def test_find_without_arguments(self):
        plan = plan_for("db.users.find()")
        assert plan.filter == {}
        assert plan.projection is None

    def test_cursor_modifiers(self):
        plan = plan_for("db.users.find().sort({age: -1, name: 1}).skip(5).limit(10)")
        assert plan.sort == [("age", -1), ("name", 1)]
        assert plan.skip == 5
        assert plan.limit == 10

    def test_find_count(self):
        plan = plan_for("db.users.find({a: 1}).count()")
        assert plan.operation == "count"
        assert plan.filter == {"a": 1}

    def test_find_one(self):
        plan = plan_for("db.users.findOne({name: 'ada'})")
        assert plan.operation == "find_one"
        assert plan.editable

    def test_get_collection(self):
        plan = plan_for("db.getCollection('weird name').find()")
        assert plan.collection == "weird name"

    def test_dotted_collection_name(self):
        plan = plan_for("db.logs.archive.find()")
        assert plan.collection == "logs.archive"

    def test_aggregate(self):
        plan = plan_for("db.orders.aggregate([{$match: {total: {$gt: 10}}}]).allowDiskUse()")
        assert plan.operation == "aggregate"
        assert plan.pipeline == [{"$match": {"total": {"$gt": 10}}}]
        assert plan.allow_disk_use
        assert not plan.editable

    def test_distinct(self):
        plan = plan_for("db.users.distinct('name', {age: 30})")
        assert (plan.operation, plan.field, plan.filter) == ("distinct", "name", {"age": 30})

    def test_count_documents(self):
        assert plan_for("db.users.countDocuments()").operation == "count"

    def test_database_methods(self):
        assert plan_for("db.getCollectionNames()").operation == "list_collections"
        plan = plan_for("db.runCommand({ping: 1})")
        assert (plan.operation, plan.command) == ("command", {"ping": 1})

    def test_bare_filter_lists_collections(self):
        plan = plan_for("{}")
        assert plan.operation == "list_collections"
        assert plan.filter == {}

    def test_values(self):
        plan = plan_for(
            "db.c.find({_id: ObjectId('64b7f0c2a1b2c3d4e5f60718'), n: NumberLong(5), "
            "at: ISODate('2024-01-02T03:04:05Z'), name: /^a/i, tags: ['x', null, true]})"
        )
        assert plan.filter["_id"] == ObjectId("64b7f0c2a1b2c3d4e5f60718")
        assert plan.filter["n"] == Int64(5)
        assert plan.filter["at"] == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert isinstance(plan.filter["name"], Regex)
        assert plan.filter["tags"] == ["x", None, True]

    @pytest.mark.parametrize(
        "text,message",
        [
            ("db.users.frob()", "Unknown collection method 'frob'"),
            ("db.users.find().frob()", "Unknown cursor method 'frob'"),
            ("db.frob()", "Unknown database method 'frob'"),
            ("users.find()", "must start with 'db'"),
            ("db.users", "Expected a method call"),
            ("db.users.find(1)", "Filter must be a document"),
            ("db.users.find().limit(-1)", "non-negative integer"),
            ("db.users.find().sort({a: 2})", "must be 1 or -1"),
            ("db.users.aggregate({})", "array of stage documents"),
            ("db.users.count().limit(1)", "applies to find()"),
            ("db.c.find({_id: ObjectId('nope')})", "Invalid ObjectId"),
            ("db.c.find({a: x})", "Unknown identifier 'x'"),
            ("db.a.find(); db.b.find()", "exactly one query"),
            ("db.users.find({}, {}, {})", "takes 0 to 2 argument"),
        ],
    )
    def test_errors(self, text, message):
        with pytest.raises(ExecutionError, match=message):
            plan_for(text)


class TestPaging:
    def test_find_page_window(self):
        plan = QueryPlan("find", collection="c", skip=3, limit=10)
        page = plan.page(4, 5)
        assert (page.skip, page.limit) == (7, 5)

    def test_find_page_respects_user_limit(self):
        plan = QueryPlan("find", collection="c", limit=6)
        assert plan.page(4, 5).limit == 2

    def test_aggregate_page_appends_stages(self):
        plan = QueryPlan("aggregate", collection="c", pipeline=[{"$match": {}}])
        assert plan.page(10, 5).pipeline == [{"$match": {}}, {"$skip": 10}, {"$limit": 5}]
        assert plan.pipeline == [{"$match": {}}]

    def test_non_pageable_plan_unchanged(self):
        plan = QueryPlan("count", collection="c")
        assert plan.page(10, 5) is plan


class TestDocumentCursor:
    def test_fetch_and_exhaust(self):
        cursor = DocumentCursor(iter([{"a": 1}, {"a": 2}]))
        assert cursor.fetch(1) == [{"a": 1}]
        assert cursor.fetch(5) == [{"a": 2}]
        assert cursor.exhausted

    def test_closed_cursor_yields_nothing(self):
        closed = []
        cursor = DocumentCursor(iter([{"a": 1}]), on_close=lambda: closed.append(True))
        cursor.close()
        cursor.close()
        assert list(cursor) == []
        assert closed == [True]

    def test_cancel_token_closes_bound_cursor(self):
        token = CancelToken()
        cursor = DocumentCursor(iter([]))
        token.bind(cursor)
        token.cancel()
        assert cursor.closed and token.cancelled

    def test_bind_after_cancel_closes_immediately(self):
        token = CancelToken()
        token.cancel()
        cursor = DocumentCursor(iter([]))
        token.bind(cursor)
        assert cursor.closed


class TestQueryExecutor:
    """Tests for executing plans against an adapter."""

    @pytest.fixture
    def adapter(self):
        return FakeAdapter({"mydb": {name: list(docs) for name, docs in SAMPLE_DATA["mydb"].items()}})

    def test_first_page_has_more(self, adapter):
        result = QueryExecutor(page_size=2).execute(parse("db.users.find()"), _connection(adapter))
        assert result.ok
        assert [d["_id"] for d in result.page] == [1, 2]
        assert result.has_more
        assert result.columns == ["_id", "name", "age"]
        assert result.editable
        assert result.elapsed_ms >= 0

    def test_second_page(self, adapter):
        result = QueryExecutor(page_size=2).execute(parse("db.users.find()"), _connection(adapter), offset=2)
        assert [d["_id"] for d in result.page] == [3]
        assert not result.has_more

    def test_cursor_is_closed_after_each_page(self, adapter):
        executor = QueryExecutor(page_size=2)
        first = executor.execute(parse("db.users.find()"), _connection(adapter))
        again = executor.execute(parse("db.users.find()"), _connection(adapter))

        assert len(adapter.cursors) == 2
        assert all(cursor.closed for cursor in adapter.cursors)
        assert first.page == again.page

    def test_fetches_one_extra_document(self, adapter):
        QueryExecutor(page_size=2).execute(parse("db.users.find()"), _connection(adapter))
        _, plan = adapter.plans[-1]
        assert plan.limit == 3

    def test_count(self, adapter):
        result = QueryExecutor().execute(parse("db.users.count({age: 36})"), _connection(adapter))
        assert result.page == [{"count": 1}]
        assert not result.editable

    def test_list_collections(self, adapter):
        result = QueryExecutor().execute(parse("{}"), _connection(adapter))
        assert result.page == [{"name": "orders"}, {"name": "users"}]

    def test_not_connected(self):
        result = QueryExecutor().execute(parse("db.users.find()"), None)
        assert not result.ok
        assert "Not connected" in result.error.message

    def test_no_database(self, adapter):
        result = QueryExecutor().execute(parse("db.users.find()"), _connection(adapter, database=None))
        assert "No database selected" in result.error.message
        assert adapter.plans == []

    def test_plan_error_is_reported_not_raised(self, adapter):
        result = QueryExecutor().execute(parse("db.users.frob()"), _connection(adapter))
        assert result.error is not None
        assert result.page == []

    def test_cancel_during_fetch(self, adapter):
        gate = threading.Event()
        adapter.gates.append(gate)
        token = CancelToken()
        executor = QueryExecutor(page_size=2)
        outcome = {}

        def run():
            outcome["result"] = executor.execute(parse("db.users.find()"), _connection(adapter), cancel=token)

        worker = threading.Thread(target=run)
        worker.start()
        assert adapter.started.wait(5)
        token.cancel()
        gate.set()
        worker.join(5)

        assert outcome["result"].cancelled
        assert not outcome["result"].ok

    def test_replace_document(self, adapter):
        executor = QueryExecutor()
        matched = executor.replace_document(_connection(adapter), "users", {"_id": 1, "name": "ada lovelace"})
        assert matched == 1
        assert adapter.data["mydb"]["users"][0]["name"] == "ada lovelace"
        assert executor.replace_document(_connection(adapter), "users", {"_id": 99}) == 0
