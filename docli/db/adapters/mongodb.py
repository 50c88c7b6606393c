"""MongoDB adapter using pymongo."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from ...core.errors import ConnectionError, ConnectionErrorKind, ExecutionError
from ..driver import import_driver_module
from ..plan import DocumentCursor, QueryPlan
from .base import DocumentAdapter

AUTH_ERROR_CODES = frozenset({13, 18})


def _pymongo() -> Any:
    return import_driver_module("pymongo", driver_name="MongoDB", package_name="pymongo")


def _errors() -> Any:
    return import_driver_module("pymongo.errors", driver_name="MongoDB", package_name="pymongo")


def _guarded(documents: Iterable[dict[str, Any]]) -> Iterator[dict[str, Any]]:
    errors = _errors()
    try:
        yield from documents
    except errors.PyMongoError as e:
        raise ExecutionError(str(e)) from e


class MongoDBAdapter(DocumentAdapter):
    """Adapter for MongoDB using pymongo."""

    @property
    def name(self) -> str:
        return "MongoDB"

    @property
    def install_package(self) -> str | None:
        return "pymongo"

    @property
    def driver_import_names(self) -> tuple[str, ...]:
        return ("pymongo",)

    def connect(self, uri: str, *, timeout_ms: int) -> Any:
        """Create a MongoClient. pymongo connects lazily, so this only validates the URI."""
        pymongo = _pymongo()
        errors = _errors()
        try:
            return pymongo.MongoClient(
                uri,
                serverSelectionTimeoutMS=timeout_ms,
                connectTimeoutMS=timeout_ms,
                appname="docli",
            )
        except errors.ConfigurationError as e:
            raise ConnectionError(ConnectionErrorKind.INVALID_URI, f"Invalid connection URI: {e}") from e

    def ping(self, client: Any) -> None:
        errors = _errors()
        try:
            client.admin.command("ping")
        except errors.OperationFailure as e:
            if e.code in AUTH_ERROR_CODES:
                raise ConnectionError(ConnectionErrorKind.AUTH_FAILED, f"Authentication failed: {e}") from e
            raise ConnectionError(ConnectionErrorKind.UNREACHABLE, str(e)) from e
        except errors.PyMongoError as e:
            raise ConnectionError(ConnectionErrorKind.UNREACHABLE, f"Server unreachable: {e}") from e

    def close(self, client: Any) -> None:
        client.close()

    def default_database(self, client: Any) -> str | None:
        errors = _errors()
        try:
            return client.get_default_database().name
        except errors.ConfigurationError:
            return None

    def list_databases(self, client: Any) -> list[str]:
        errors = _errors()
        try:
            return sorted(client.list_database_names())
        except errors.PyMongoError as e:
            raise ExecutionError(str(e)) from e

    def list_collections(self, client: Any, database: str) -> list[str]:
        errors = _errors()
        try:
            return sorted(client[database].list_collection_names())
        except errors.PyMongoError as e:
            raise ExecutionError(str(e)) from e

    def run(self, client: Any, database: str, plan: QueryPlan) -> DocumentCursor:
        errors = _errors()
        db = client[database]
        try:
            return self._run(db, plan)
        except errors.PyMongoError as e:
            raise ExecutionError(str(e)) from e

    def _run(self, db: Any, plan: QueryPlan) -> DocumentCursor:
        op = plan.operation

        if op == "list_collections":
            cursor = db.list_collections(filter=plan.filter or None)
            return DocumentCursor(_guarded(cursor), on_close=cursor.close)

        if op == "command":
            result = db.command(plan.command or {})
            return DocumentCursor(iter([result]))

        coll = db[plan.collection]

        if op == "find":
            kwargs: dict[str, Any] = {"skip": plan.skip, "limit": plan.limit or 0}
            if plan.sort:
                kwargs["sort"] = plan.sort
            if plan.allow_disk_use:
                kwargs["allow_disk_use"] = True
            cursor = coll.find(plan.filter, plan.projection, **kwargs)
            return DocumentCursor(_guarded(cursor), on_close=cursor.close)

        if op == "find_one":
            doc = coll.find_one(plan.filter, plan.projection, sort=plan.sort)
            return DocumentCursor(iter([doc] if doc is not None else []))

        if op == "aggregate":
            agg_kwargs: dict[str, Any] = {}
            if plan.allow_disk_use:
                agg_kwargs["allowDiskUse"] = True
            cursor = coll.aggregate(plan.pipeline, **agg_kwargs)
            return DocumentCursor(_guarded(cursor), on_close=cursor.close)

        if op == "count":
            count_kwargs: dict[str, Any] = {}
            if plan.skip:
                count_kwargs["skip"] = plan.skip
            if plan.limit:
                count_kwargs["limit"] = plan.limit
            count = coll.count_documents(plan.filter, **count_kwargs)
            return DocumentCursor(iter([{"count": count}]))

        if op == "distinct":
            values = coll.distinct(plan.field, plan.filter)
            return DocumentCursor(iter([{"value": value} for value in values]))

        raise ExecutionError(f"Unsupported operation: {op}")

    def replace_document(self, client: Any, database: str, collection: str, document: dict[str, Any]) -> int:
        errors = _errors()
        try:
            result = client[database][collection].replace_one({"_id": document["_id"]}, document)
        except errors.PyMongoError as e:
            raise ExecutionError(str(e)) from e
        return result.matched_count
