"""Command history."""

from .fuzzy import fuzzy_match, score
from .index import HistoryEntry, HistoryIndex

__all__ = ["HistoryEntry", "HistoryIndex", "fuzzy_match", "score"]
