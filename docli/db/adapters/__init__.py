from .base import ClientHandle, DocumentAdapter, display_host
from .mongodb import MongoDBAdapter

__all__ = [
    "ClientHandle",
    "DocumentAdapter",
    "MongoDBAdapter",
    "display_host",
    "get_adapter",
]


def get_adapter(uri: str) -> DocumentAdapter:
    """Pick the adapter for a connection URI by its scheme."""
    scheme = uri.split("://", 1)[0].lower() if "://" in uri else ""
    adapters = {
        "mongodb": MongoDBAdapter,
        "mongodb+srv": MongoDBAdapter,
    }
    adapter = adapters.get(scheme)
    if not adapter:
        from ...core.errors import ConnectionError, ConnectionErrorKind

        raise ConnectionError(ConnectionErrorKind.INVALID_URI, f"Unsupported connection URI scheme: {scheme or uri}")
    return adapter()
