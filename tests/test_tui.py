"""
TUI Tests - Viewer helpers and a headless run of the app.
"""

import asyncio

import pytest

pytest.importorskip("textual")

from rich.syntax import Syntax

from wsif.document import WSIFDocument, WSIFPage
from wsif.reader import LoadResult
from wsif.spec import PageAttributes
from wsif.tui.viewer import WSIFViewerApp
from wsif.tui.widgets import PageContentPanel, embedded_text, page_body, page_summary


class TestHelpers:

    def test_summary_text(self):
        summary = page_summary(WSIFPage.text("A", "hello", last_modified=0))
        assert summary == "text | 5 bytes"

    def test_summary_image_and_mtime(self):
        page = WSIFPage.image("i.png", "image/png", b"x", last_modified=86400)
        assert page_summary(page).startswith("image (image/png) | ")
        assert "modified 1970-01-02 00:00" in page_summary(page)

    def test_body_kinds(self):
        assert page_body(WSIFPage.text("A", "hello")) == "hello"
        assert page_body(WSIFPage.encrypted("S", b"\x00")) == "(encrypted content)"
        assert page_body(WSIFPage.file("f", b"\x00\x01\x02")) == "(binary content, 3 bytes decoded)"

    def test_body_undecodable(self):
        page = WSIFPage("f", b"abcde", PageAttributes.EMBEDDED_FILE)
        assert page_body(page) == "(undecodable content, 5 bytes)"

    def test_embedded_text(self):
        assert embedded_text(WSIFPage.file("run.py", b"print('hi')\n")) == "print('hi')\n"
        assert embedded_text(WSIFPage.file("blob", b"\x00\xff")) is None
        assert embedded_text(WSIFPage.text("A", "plain page")) is None
        assert embedded_text(WSIFPage.image("i.png", "image/png", b"abc")) is None

    def test_render_body_highlights_scripts(self):
        rendered = PageContentPanel._render_body(WSIFPage.file("run.py", b"import os\n"))
        assert isinstance(rendered, Syntax)


class TestViewerApp:

    def test_headless_navigation(self):
        doc = WSIFDocument(pages=[
            WSIFPage.text("First", "one"),
            WSIFPage.text("Second", "two"),
        ])
        result = LoadResult(version="1.3.1", generator="libwsif-py")

        async def run():
            app = WSIFViewerApp(doc, result, "index.wsif")
            async with app.run_test() as pilot:
                await pilot.pause()
                panel = app.query_one("#content", PageContentPanel)
                assert panel.current_page == "First"
                await pilot.press("j")
                await pilot.pause()
                assert panel.current_page == "Second"

        asyncio.run(run())
