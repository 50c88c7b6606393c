"""Database access layer."""

from .adapters import ClientHandle, DocumentAdapter, MongoDBAdapter, get_adapter
from .plan import DocumentCursor, QueryPlan

__all__ = ["ClientHandle", "DocumentAdapter", "DocumentCursor", "MongoDBAdapter", "QueryPlan", "get_adapter"]
