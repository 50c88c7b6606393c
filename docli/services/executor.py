"""Query execution: lowering query expressions to plans and running them."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from bson.decimal128 import Decimal128
from bson.errors import InvalidId
from bson.int64 import Int64
from bson.regex import Regex

from ..config import DEFAULT_PAGE_SIZE
from ..core.errors import ExecutionError
from ..core.session import Connection
from ..db.plan import DocumentCursor, QueryPlan
from ..grammar import ast
from ..grammar.catalog import COLLECTION, CURSOR, DATABASE, DB_IDENTIFIER
from ..grammar.commands import RawQuery

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


def to_value(expr: ast.Expr) -> Any:
    """Evaluate a value expression into BSON-ready Python data."""
    if isinstance(expr, ast.LITERAL_TYPES):
        return ast.literal_value(expr)
    if isinstance(expr, ast.RegexLit):
        return Regex(expr.pattern, expr.flags)
    if isinstance(expr, ast.ObjectExpr):
        return {prop.key: to_value(prop.value) for prop in expr.properties}
    if isinstance(expr, ast.ArrayExpr):
        return [to_value(element) for element in expr.elements]
    if isinstance(expr, ast.Call) and isinstance(expr.callee, ast.Identifier):
        return _construct(expr.callee.name, [to_value(arg) for arg in expr.args])
    if isinstance(expr, ast.Identifier):
        raise ExecutionError(f"Unknown identifier '{expr.name}'")
    raise ExecutionError("Expected a value")


def _construct(name: str, args: list[Any]) -> Any:
    if name == "ObjectId":
        if not args:
            return ObjectId()
        try:
            return ObjectId(args[0])
        except (InvalidId, TypeError) as e:
            raise ExecutionError(f"Invalid ObjectId: {e}") from e
    if name in ("ISODate", "Date"):
        if not args:
            return datetime.now(timezone.utc)
        return _parse_datetime(args[0])
    if name in ("NumberLong", "NumberInt"):
        try:
            number = int(args[0]) if args else 0
        except (TypeError, ValueError) as e:
            raise ExecutionError(f"Invalid {name} value: {args[0]!r}") from e
        return Int64(number) if name == "NumberLong" else number
    if name == "NumberDecimal":
        try:
            return Decimal128(str(args[0]) if args else "0")
        except Exception as e:
            raise ExecutionError(f"Invalid NumberDecimal value: {args[0]!r}") from e
    raise ExecutionError(f"Unknown function '{name}'")


def _parse_datetime(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ExecutionError(f"Invalid date: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ExecutionError(f"Invalid date: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _document(expr: ast.Expr, what: str) -> dict[str, Any]:
    value = to_value(expr)
    if not isinstance(value, dict):
        raise ExecutionError(f"{what} must be a document")
    return value


def _integer(expr: ast.Expr, what: str) -> int:
    value = to_value(expr)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ExecutionError(f"{what} must be a non-negative integer")
    return int(value)


def _sort_spec(expr: ast.Expr) -> list[tuple[str, int]]:
    spec = _document(expr, "sort()")
    pairs: list[tuple[str, int]] = []
    for key, direction in spec.items():
        if direction not in (1, -1) or isinstance(direction, bool):
            raise ExecutionError(f"Sort direction for '{key}' must be 1 or -1")
        pairs.append((key, int(direction)))
    return pairs


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


def _check_arity(name: str, args: tuple, low: int, high: int) -> None:
    if not low <= len(args) <= high:
        if low == high:
            expected = str(low)
        else:
            expected = f"{low} to {high}"
        raise ExecutionError(f"{name}() takes {expected} argument(s), got {len(args)}")


def _unwind(expr: ast.Expr) -> tuple[str, list[tuple[str, tuple | None]]]:
    """Split ``a.b(x).c`` into the root name and ``[("b", (x,)), ("c", None)]``."""
    chain: list[tuple[str, tuple | None]] = []
    node = expr
    while True:
        if isinstance(node, ast.Call) and isinstance(node.callee, ast.Member):
            chain.append((node.callee.name, node.args))
            node = node.callee.object
        elif isinstance(node, ast.Member):
            chain.append((node.name, None))
            node = node.object
        elif isinstance(node, ast.Identifier):
            chain.reverse()
            return node.name, chain
        else:
            raise ExecutionError("Expected a query starting with 'db.'")


def build_plan(program: ast.Program) -> QueryPlan:
    """Lower a parsed query into a QueryPlan."""
    if len(program.statements) != 1:
        raise ExecutionError("Expected exactly one query")
    expr = program.statements[0]

    if isinstance(expr, ast.ObjectExpr):
        return QueryPlan("list_collections", filter=_document(expr, "Filter"))

    root, chain = _unwind(expr)
    if root != DB_IDENTIFIER:
        raise ExecutionError(f"Queries must start with 'db', not '{root}'")
    if not chain:
        raise ExecutionError("Expected a collection or method after 'db'")

    name, args = chain[0]
    if args is not None and name == "getCollectionNames":
        _check_arity(name, args, 0, 0)
        _ensure_end(chain, 1)
        return QueryPlan("list_collections")
    if args is not None and name == "runCommand":
        _check_arity(name, args, 1, 1)
        _ensure_end(chain, 1)
        return QueryPlan("command", command=_document(args[0], "runCommand()"))
    if args is not None and name == "getCollection":
        _check_arity(name, args, 1, 1)
        collection = to_value(args[0])
        if not isinstance(collection, str) or not collection:
            raise ExecutionError("getCollection() expects a collection name")
        index = 1
    elif args is None:
        # db.a.b.find() addresses the collection "a.b"
        parts = []
        index = 0
        while index < len(chain) and chain[index][1] is None:
            parts.append(chain[index][0])
            index += 1
        collection = ".".join(parts)
    else:
        known = ", ".join(DATABASE.method_names)
        raise ExecutionError(f"Unknown database method '{name}' (known: {known})")

    if index >= len(chain):
        raise ExecutionError(f"Expected a method call on collection '{collection}'")

    plan = _collection_plan(collection, *chain[index])
    return _apply_modifiers(plan, chain[index + 1 :])


def _ensure_end(chain: list, index: int) -> None:
    if len(chain) > index:
        raise ExecutionError(f"Unexpected '.{chain[index][0]}' after '{chain[index - 1][0]}()'")


def _collection_plan(collection: str, name: str, args: tuple | None) -> QueryPlan:
    if args is None:
        raise ExecutionError(f"Expected a method call on collection '{collection}', got '.{name}'")

    if name in ("find", "findOne"):
        _check_arity(name, args, 0, 2)
        filter_doc = _document(args[0], "Filter") if args else {}
        projection = _document(args[1], "Projection") if len(args) > 1 else None
        operation = "find" if name == "find" else "find_one"
        return QueryPlan(operation, collection=collection, filter=filter_doc, projection=projection)

    if name == "aggregate":
        _check_arity(name, args, 0, 1)
        stages = to_value(args[0]) if args else []
        if not isinstance(stages, list) or not all(isinstance(stage, dict) for stage in stages):
            raise ExecutionError("aggregate() expects an array of stage documents")
        return QueryPlan("aggregate", collection=collection, pipeline=stages)

    if name in ("count", "countDocuments"):
        _check_arity(name, args, 0, 1)
        filter_doc = _document(args[0], "Filter") if args else {}
        return QueryPlan("count", collection=collection, filter=filter_doc)

    if name == "distinct":
        _check_arity(name, args, 1, 2)
        field_name = to_value(args[0])
        if not isinstance(field_name, str):
            raise ExecutionError("distinct() expects a field name")
        filter_doc = _document(args[1], "Filter") if len(args) > 1 else {}
        return QueryPlan("distinct", collection=collection, field=field_name, filter=filter_doc)

    known = ", ".join(COLLECTION.method_names)
    raise ExecutionError(f"Unknown collection method '{name}' (known: {known})")


def _apply_modifiers(plan: QueryPlan, modifiers: list[tuple[str, tuple | None]]) -> QueryPlan:
    for name, args in modifiers:
        if args is None or CURSOR.get(name) is None:
            known = ", ".join(CURSOR.method_names)
            raise ExecutionError(f"Unknown cursor method '{name}' (known: {known})")

        if name == "allowDiskUse":
            if plan.operation not in ("find", "aggregate"):
                raise ExecutionError("allowDiskUse() applies to find() and aggregate()")
            _check_arity(name, args, 0, 1)
            allow = True if not args else bool(to_value(args[0]))
            plan = replace(plan, allow_disk_use=allow)
            continue

        if plan.operation != "find":
            raise ExecutionError(f"{name}() applies to find()")

        if name == "sort":
            _check_arity(name, args, 1, 1)
            plan = replace(plan, sort=_sort_spec(args[0]))
        elif name == "limit":
            _check_arity(name, args, 1, 1)
            limit = _integer(args[0], "limit()")
            plan = replace(plan, limit=limit or None)
        elif name == "skip":
            _check_arity(name, args, 1, 1)
            plan = replace(plan, skip=_integer(args[0], "skip()"))
        elif name == "count":
            _check_arity(name, args, 0, 0)
            plan = replace(plan, operation="count", projection=None, sort=None)
    return plan


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class CancelToken:
    """Cross-thread cancellation flag that closes the cursor it is bound to."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._cursor: DocumentCursor | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            self._event.set()
            cursor = self._cursor
        if cursor is not None:
            cursor.close()

    def bind(self, cursor: DocumentCursor) -> None:
        with self._lock:
            self._cursor = cursor
            cancelled = self._event.is_set()
        if cancelled:
            cursor.close()


@dataclass
class QueryResult:
    """One page of documents from a query, or the error it produced.

    The adapter's cursor is closed once the page is read. Another page, or the
    same one again, means running the query again.
    """

    text: str
    plan: QueryPlan | None = None
    page: list[dict[str, Any]] = field(default_factory=list)
    offset: int = 0
    has_more: bool = False
    error: ExecutionError | None = None
    elapsed_ms: float = 0.0
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled

    @property
    def editable(self) -> bool:
        return self.ok and self.plan is not None and self.plan.editable

    @property
    def collection(self) -> str | None:
        return self.plan.collection if self.plan else None

    @property
    def columns(self) -> list[str]:
        """Union of the page's top-level keys, in order of first appearance."""
        seen: dict[str, None] = {}
        for doc in self.page:
            for key in doc:
                seen.setdefault(key, None)
        return list(seen)


class QueryExecutor:
    """Runs raw queries against a borrowed connection.

    The connection is only used for the duration of a call and never kept.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE):
        self.page_size = page_size

    def execute(
        self,
        command: RawQuery,
        connection: Connection | None,
        *,
        offset: int = 0,
        cancel: CancelToken | None = None,
    ) -> QueryResult:
        started = time.perf_counter()
        result = QueryResult(text=command.text, offset=offset)
        try:
            self._execute_into(result, command, connection, cancel or CancelToken())
        except ExecutionError as e:
            logger.info("Query failed: %s", e)
            result.error = e
            result.page = []
            result.has_more = False
        result.elapsed_ms = (time.perf_counter() - started) * 1000
        return result

    def _execute_into(
        self,
        result: QueryResult,
        command: RawQuery,
        connection: Connection | None,
        cancel: CancelToken,
    ) -> None:
        if connection is None:
            raise ExecutionError("Not connected. Use 'connect <uri>' first")

        plan = build_plan(command.program)
        result.plan = plan
        if not connection.database:
            raise ExecutionError("No database selected. Use 'use <database>' first")

        database = connection.database
        handle = connection.handle
        offset = result.offset

        if plan.pageable:
            cursor = handle.adapter.run(handle.client, database, plan.page(offset, self.page_size + 1))
            cancel.bind(cursor)
            try:
                docs = cursor.fetch(self.page_size + 1)
            finally:
                cursor.close()
            result.has_more = len(docs) > self.page_size
            result.page = docs[: self.page_size]
        else:
            cursor = handle.adapter.run(handle.client, database, plan)
            cancel.bind(cursor)
            try:
                docs = list(cursor)
            finally:
                cursor.close()
            result.page = docs[offset : offset + self.page_size]
            result.has_more = len(docs) > offset + self.page_size

        result.cancelled = cancel.cancelled

    async def execute_async(
        self,
        command: RawQuery,
        connection: Connection | None,
        *,
        offset: int = 0,
    ) -> QueryResult:
        """Run ``execute`` in a worker thread. Cancelling closes the cursor."""
        token = CancelToken()
        try:
            return await asyncio.to_thread(self.execute, command, connection, offset=offset, cancel=token)
        except asyncio.CancelledError:
            token.cancel()
            raise

    def replace_document(self, connection: Connection, collection: str, document: dict[str, Any]) -> int:
        if not connection.database:
            raise ExecutionError("No database selected. Use 'use <database>' first")
        handle = connection.handle
        return handle.adapter.replace_document(handle.client, connection.database, collection, document)
