"""WSIF TUI Viewer - Main Textual app with 3-panel layout."""

from __future__ import annotations

import sys
from pathlib import Path

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.widgets import Footer, Header, Input

from wsif.document import WSIFDocument
from wsif.errors import StructuralError
from wsif.reader import LoadResult, WSIFReader
from wsif.tui.widgets import ArchivePanel, PageContentPanel, PageList


class WSIFViewerApp(App):
    """TUI viewer for .wsif archives. Archive info, page list, page content."""

    TITLE = "WSIF Viewer"
    CSS = """
    Screen {
        layout: vertical;
    }
    #main-area {
        height: 1fr;
    }
    #search-bar {
        dock: bottom;
        display: none;
        height: 3;
        padding: 0 1;
    }
    #search-bar.visible {
        display: block;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit", show=True),
        Binding("slash", "toggle_search", "Search", show=True),
        Binding("escape", "close_search", "Close search", show=False),
        Binding("j", "next_page", "Next", show=True),
        Binding("k", "prev_page", "Prev", show=True),
    ]

    def __init__(self, doc: WSIFDocument, result: LoadResult, path: str | Path, **kwargs) -> None:
        super().__init__(**kwargs)
        self._doc = doc
        self._result = result
        self._path = Path(path)
        self._all_indices = list(range(len(doc.pages)))

    def compose(self) -> ComposeResult:
        self.title = f"WSIF Viewer - {self._path.name}"

        headers = {
            "version": self._result.version,
            "generator": f"{self._result.generator} {self._result.generator_version}".strip(),
            "author": self._result.author,
            "pages": str(len(self._doc)),
        }
        if self._result.expected_pages is not None:
            headers["declared"] = str(self._result.expected_pages)

        yield Header()
        with Horizontal(id="main-area"):
            yield ArchivePanel(
                headers={k: v for k, v in headers.items() if v},
                errors=self._result.errors,
                id="archive",
            )
            yield PageList(self._doc.pages, self._all_indices, id="pages")
            yield PageContentPanel(id="content")
        yield Input(placeholder="Search pages... (Escape to close)", id="search-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Auto-select the first page on mount."""
        if self._doc.pages:
            self.query_one("#content", PageContentPanel).show_page(self._doc.pages[0])
            self.query_one("#pages", PageList).focus()

    def on_page_list_page_selected(self, event: PageList.PageSelected) -> None:
        self.query_one("#content", PageContentPanel).show_page(self._doc.pages[event.page_index])

    def action_next_page(self) -> None:
        self.query_one("#pages", PageList).action_cursor_down()

    def action_prev_page(self) -> None:
        self.query_one("#pages", PageList).action_cursor_up()

    def action_toggle_search(self) -> None:
        search = self.query_one("#search-bar", Input)
        search.toggle_class("visible")
        if search.has_class("visible"):
            search.focus()
        else:
            self.action_close_search()

    def action_close_search(self) -> None:
        search = self.query_one("#search-bar", Input)
        search.remove_class("visible")
        search.value = ""
        self._update_page_list(self._all_indices)
        self.query_one("#pages", PageList).focus()

    def on_input_changed(self, event: Input.Changed) -> None:
        """Filter titles as the user types."""
        if event.input.id != "search-bar":
            return
        query = event.value.lower().strip()
        if not query:
            self._update_page_list(self._all_indices)
            return
        self._update_page_list([
            i for i in self._all_indices if query in self._doc.pages[i].title.lower()
        ])

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Search titles and the text of plain pages."""
        if event.input.id != "search-bar":
            return
        query = event.value.lower().strip()
        if not query:
            return
        matches = []
        for i in self._all_indices:
            page = self._doc.pages[i]
            if query in page.title.lower() or (page.is_text and query in page.get_text().lower()):
                matches.append(i)
        self._update_page_list(matches)

    def _update_page_list(self, indices: list[int]) -> None:
        old = self.query_one("#pages", PageList)
        new_list = PageList(self._doc.pages, indices, id="pages")
        old.remove()
        self.query_one("#main-area", Horizontal).mount(new_list, before="#content")
        if indices:
            self.query_one("#content", PageContentPanel).show_page(self._doc.pages[indices[0]])


def run_viewer(path: str | Path) -> None:
    """Load an archive and launch the viewer."""
    path = Path(path)
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)
    if not WSIFReader.is_wsif(path):
        print(f"Error: Not a WSIF file: {path}", file=sys.stderr)
        sys.exit(1)

    doc = WSIFDocument()
    try:
        result = WSIFReader.load(path, doc.create_page, log=lambda msg: None)
    except StructuralError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    result.apply_to(doc)
    WSIFViewerApp(doc, result, path).run()
