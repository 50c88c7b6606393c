"""Known objects and methods of the query language.

Used by the executor to lower calls and by the language server for completion
and unknown-method diagnostics.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class MethodInfo:
    name: str
    signature: str
    documentation: str = ""


@dataclass(frozen=True)
class TypeInfo:
    name: str
    methods: tuple[MethodInfo, ...]

    def get(self, name: str) -> MethodInfo | None:
        for method in self.methods:
            if method.name == name:
                return method
        return None

    @property
    def method_names(self) -> list[str]:
        return [m.name for m in self.methods]


DATABASE = TypeInfo(
    "Database",
    (
        MethodInfo("getCollection", "getCollection(name)", "Return the named collection."),
        MethodInfo("getCollectionNames", "getCollectionNames()", "List the collections of the current database."),
        MethodInfo("runCommand", "runCommand(command)", "Run a database command document."),
    ),
)

COLLECTION = TypeInfo(
    "Collection",
    (
        MethodInfo("find", "find(filter?, projection?)", "Select documents matching the filter."),
        MethodInfo("findOne", "findOne(filter?, projection?)", "Return the first document matching the filter."),
        MethodInfo("aggregate", "aggregate(pipeline)", "Run an aggregation pipeline."),
        MethodInfo("count", "count(filter?)", "Count documents matching the filter."),
        MethodInfo("countDocuments", "countDocuments(filter?)", "Count documents matching the filter."),
        MethodInfo("distinct", "distinct(field, filter?)", "List distinct values of a field."),
    ),
)

CURSOR = TypeInfo(
    "Cursor",
    (
        MethodInfo("sort", "sort(spec)", "Order results, e.g. {createdAt: -1}."),
        MethodInfo("limit", "limit(n)", "Return at most n documents."),
        MethodInfo("skip", "skip(n)", "Skip the first n documents."),
        MethodInfo("count", "count()", "Return the number of matching documents instead of the documents."),
        MethodInfo("allowDiskUse", "allowDiskUse()", "Allow the server to use temporary files for large sorts."),
    ),
)

CONSTRUCTORS = TypeInfo(
    "Constructors",
    (
        MethodInfo("ObjectId", "ObjectId(hex)", "A 12-byte ObjectId from its hex string."),
        MethodInfo("ISODate", "ISODate(iso_string)", "A UTC datetime from an ISO-8601 string."),
        MethodInfo("Date", "Date(iso_string)", "Alias of ISODate."),
        MethodInfo("NumberLong", "NumberLong(n)", "A 64-bit integer."),
        MethodInfo("NumberInt", "NumberInt(n)", "A 32-bit integer."),
        MethodInfo("NumberDecimal", "NumberDecimal(text)", "A 128-bit decimal."),
    ),
)

DB_IDENTIFIER = "db"

QUERY_OPERATORS = [
    "$eq",
    "$ne",
    "$gt",
    "$gte",
    "$lt",
    "$lte",
    "$in",
    "$nin",
    "$and",
    "$or",
    "$nor",
    "$not",
    "$exists",
    "$type",
    "$regex",
    "$elemMatch",
    "$size",
    "$all",
]

PIPELINE_STAGES = [
    "$match",
    "$project",
    "$group",
    "$sort",
    "$limit",
    "$skip",
    "$unwind",
    "$lookup",
    "$count",
    "$addFields",
    "$set",
    "$unset",
    "$facet",
    "$sample",
    "$replaceRoot",
]
