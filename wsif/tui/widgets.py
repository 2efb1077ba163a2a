"""WSIF TUI Widgets - Custom panels for the WSIF viewer."""

from __future__ import annotations

import binascii
from datetime import datetime, timezone

from rich.syntax import Syntax
from textual.app import ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Label, ListItem, ListView, Static

from wsif.document import WSIFPage


class ArchivePanel(Static):
    """Sidebar panel showing the archive header block and load status."""

    DEFAULT_CSS = """
    ArchivePanel {
        width: 32;
        border: solid $accent;
        padding: 1;
        overflow-y: auto;
    }
    ArchivePanel .meta-title {
        text-style: bold;
        color: $text;
        margin-bottom: 1;
    }
    ArchivePanel .meta-key {
        color: $text-muted;
    }
    ArchivePanel .meta-val {
        color: $text;
    }
    ArchivePanel .status-ok {
        color: $success;
        text-style: bold;
    }
    ArchivePanel .status-errors {
        color: $error;
        text-style: bold;
    }
    """

    def __init__(self, headers: dict[str, str], errors: list[str], **kwargs) -> None:
        super().__init__(**kwargs)
        self._headers = headers
        self._errors = errors

    def compose(self) -> ComposeResult:
        yield Label(f"WSIF v{self._headers.get('version', '?')}", classes="meta-title")

        if self._errors:
            yield Label(f"Errors: {len(self._errors)}", classes="status-errors")
        else:
            yield Label("Loaded cleanly", classes="status-ok")

        yield Label("")

        for key, val in self._headers.items():
            if key == "version":
                continue
            display = val if len(val) <= 24 else val[:21] + "..."
            yield Label(f"{key}:", classes="meta-key")
            yield Label(f"  {display}", classes="meta-val")


class PageList(ListView):
    """List of page titles. Supports keyboard navigation."""

    DEFAULT_CSS = """
    PageList {
        width: 32;
        border: solid $accent;
    }
    PageList > ListItem {
        padding: 0 1;
    }
    PageList > ListItem.--highlight {
        background: $accent;
    }
    """

    class PageSelected(Message):
        """Fired when a page is selected."""

        def __init__(self, page_index: int) -> None:
            self.page_index = page_index
            super().__init__()

    def __init__(self, pages: list[WSIFPage], indices: list[int], **kwargs) -> None:
        self._pages = pages
        self._indices = indices
        super().__init__(**kwargs)

    def compose(self) -> ComposeResult:
        for i in self._indices:
            page = self._pages[i]
            marker = "*" if page.is_encrypted else "+" if not page.is_text else " "
            yield ListItem(Label(f"{marker} {page.title}"))

    def _selected(self) -> None:
        idx = self.index or 0
        if 0 <= idx < len(self._indices):
            self.post_message(self.PageSelected(self._indices[idx]))

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        self._selected()

    def on_list_view_highlighted(self, event: ListView.Highlighted) -> None:
        self._selected()


class PageContentPanel(Static):
    """Main content viewer. Binary pages show a summary instead of bytes."""

    DEFAULT_CSS = """
    PageContentPanel {
        border: solid $accent;
        padding: 1;
        overflow: auto;
    }
    PageContentPanel .content-title {
        text-style: bold;
        color: $accent;
        margin-bottom: 1;
    }
    PageContentPanel .content-info {
        color: $text-muted;
        margin-bottom: 1;
    }
    PageContentPanel .content-body {
        color: $text;
    }
    """

    current_page = reactive("")

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._title_widget: Label | None = None
        self._info_widget: Label | None = None
        self._body_widget: Static | None = None

    def compose(self) -> ComposeResult:
        self._title_widget = Label("Select a page", classes="content-title")
        self._info_widget = Label("", classes="content-info")
        self._body_widget = Static("", classes="content-body", markup=False)
        yield self._title_widget
        yield self._info_widget
        yield self._body_widget

    def show_page(self, page: WSIFPage) -> None:
        self.current_page = page.title
        if self._title_widget:
            self._title_widget.update(f"--- {page.title} ---")
        if self._info_widget:
            self._info_widget.update(page_summary(page))
        if self._body_widget:
            self._body_widget.update(self._render_body(page))
        self.scroll_home()

    @staticmethod
    def _render_body(page: WSIFPage) -> str | Syntax:
        """Embedded text files (scripts, notes) are shown highlighted."""
        text = embedded_text(page)
        if text is None:
            return page_body(page)
        return Syntax(text, Syntax.guess_lexer(page.title, text), theme="monokai", line_numbers=True)


def page_summary(page: WSIFPage) -> str:
    """One-line description: kind, size and modification time."""
    if page.is_encrypted:
        kind = "encrypted"
    elif page.is_image:
        kind = f"image ({page.mime})"
    elif page.is_embedded:
        kind = "embedded file"
    else:
        kind = "text"
    parts = [kind, f"{len(page.content)} bytes"]
    if page.last_modified:
        stamp = datetime.fromtimestamp(page.last_modified, tz=timezone.utc)
        parts.append(stamp.strftime("modified %Y-%m-%d %H:%M"))
    return " | ".join(parts)


def embedded_text(page: WSIFPage) -> str | None:
    """Decoded content of an embedded file when it is UTF-8 text, else None."""
    if not page.is_embedded or page.is_image or page.is_encrypted:
        return None
    try:
        text = page.get_data().decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    return None if "\x00" in text else text


def page_body(page: WSIFPage) -> str:
    if page.is_text:
        return page.get_text()
    if page.is_encrypted:
        return "(encrypted content)"
    try:
        size = len(page.get_data())
    except binascii.Error:
        return f"(undecodable content, {len(page.content)} bytes)"
    return f"(binary content, {size} bytes decoded)"
