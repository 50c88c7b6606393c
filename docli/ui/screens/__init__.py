from .document_view import DocumentViewScreen

__all__ = ["DocumentViewScreen"]
