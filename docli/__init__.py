"""docli - A terminal UI for document databases."""

__version__ = "0.1.0"
