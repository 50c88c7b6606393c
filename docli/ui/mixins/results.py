"""Results handling mixin for DocliApp."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ...services.executor import QueryResult


class ResultsMixin:
    """Mixin providing results rendering and clipboard support."""

    _results_table_counter: int = 0
    _internal_clipboard: str = ""

    def render_results(self: Any, result: QueryResult) -> None:
        """Replace the results table with the result's current page."""
        from ..widgets import build_documents_table

        self._results_table_counter += 1
        new_table = build_documents_table(
            result.page,
            result.columns,
            table_id=f"results-table-{self._results_table_counter}",
        )
        container = self.results_area
        old_tables = list(container.query("DocumentTable"))
        container.mount(new_table)
        for table in old_tables:
            table.remove()
        new_table.focus()

        label = result.collection or "results"
        last = result.offset + len(result.page)
        first = result.offset + 1 if result.page else 0
        more = "+" if result.has_more else ""
        self.results_label.update(f"{label}: {first}-{last}{more}")

    def selected_index(self: Any) -> int | None:
        from ..widgets import DocumentTable

        tables = list(self.results_area.query(DocumentTable))
        if not tables:
            return None
        table = tables[-1]
        if table.row_count <= 0:
            return None
        return int(table.cursor_row)

    def copy_text(self: Any, text: str) -> bool:
        """Copy text to clipboard if possible, otherwise store internally."""
        self._internal_clipboard = text

        # Prefer Textual's clipboard support (OSC52 where available).
        try:
            self.copy_to_clipboard(text)
            return True
        except Exception:
            pass

        # Fallback to system clipboard via pyperclip (requires platform support).
        try:
            import pyperclip

            pyperclip.copy(text)
            return True
        except Exception:
            return False

    def show_document(self: Any, text: str, title: str) -> None:
        from ..screens import DocumentViewScreen

        self.push_screen(DocumentViewScreen(text, title=title))
