"""
WSIF Document - In-memory page collection.

A WSIFDocument plays both collaborator roles the codec needs: its
create_page() method is the import hook for WSIFReader, and page_source()
hands pages to WSIFWriter one at a time.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator

from wsif.spec import PageAttributes, WSIF_VERSION, GENERATOR, LIBWSIF_VERSION


@dataclass
class WSIFPage:
    """A single WoaS page.

    content is always bytes:
        plain page      UTF-8 text
        encrypted page  raw ciphertext
        embedded file   base64 text
        embedded image  data:<mime>;base64,<payload>
    """
    title: str
    content: bytes = b""
    attributes: PageAttributes = PageAttributes.NONE
    last_modified: int = 0

    def __post_init__(self) -> None:
        self.attributes = PageAttributes(int(self.attributes))

    @classmethod
    def text(cls, title: str, text: str, last_modified: int = 0) -> WSIFPage:
        return cls(title, text.encode("utf-8"), PageAttributes.NONE, last_modified)

    @classmethod
    def file(cls, title: str, data: bytes, last_modified: int = 0) -> WSIFPage:
        """Embedded file page. Stores the base64 form, as WoaS does."""
        return cls(title, base64.b64encode(data), PageAttributes.EMBEDDED_FILE, last_modified)

    @classmethod
    def image(cls, title: str, mime: str, data: bytes, last_modified: int = 0) -> WSIFPage:
        uri = f"data:{mime};base64,".encode("ascii") + base64.b64encode(data)
        return cls(
            title, uri,
            PageAttributes.EMBEDDED_FILE | PageAttributes.EMBEDDED_IMAGE,
            last_modified,
        )

    @classmethod
    def encrypted(cls, title: str, data: bytes, last_modified: int = 0) -> WSIFPage:
        return cls(title, data, PageAttributes.ENCRYPTED, last_modified)

    @property
    def is_encrypted(self) -> bool:
        return bool(self.attributes & PageAttributes.ENCRYPTED)

    @property
    def is_embedded(self) -> bool:
        return bool(self.attributes & PageAttributes.EMBEDDED_FILE)

    @property
    def is_image(self) -> bool:
        return bool(self.attributes & PageAttributes.EMBEDDED_IMAGE)

    @property
    def is_text(self) -> bool:
        return not (self.is_encrypted or self.is_embedded or self.is_image)

    def get_text(self) -> str:
        """Content of a plain page as str."""
        return self.content.decode("utf-8", errors="replace")

    def get_data(self) -> bytes:
        """Binary payload: decoded file/image bytes, raw bytes otherwise."""
        if self.is_encrypted:
            return self.content
        if self.is_image:
            _, _, payload = self.content.partition(b",")
            return base64.b64decode(payload)
        if self.is_embedded:
            return base64.b64decode(self.content)
        return self.content

    @property
    def mime(self) -> str:
        """MIME type of an image page, empty otherwise."""
        if not self.is_image or not self.content.startswith(b"data:"):
            return ""
        head = self.content[5:].split(b";", 1)[0]
        return head.decode("ascii", errors="replace").strip()


@dataclass
class WSIFDocument:
    """
    In-memory collection of WoaS pages.

    Usage:
        doc = WSIFDocument(author="me")
        doc.add_page(WSIFPage.text("Main Page", "Hello wiki"))
        doc.write("export/")          # writes export/index.wsif

        doc = WSIFDocument.read("export/index.wsif")
    """

    pages: list[WSIFPage] = field(default_factory=list)

    # Archive header block
    version: str = WSIF_VERSION
    generator: str = GENERATOR
    generator_version: str = LIBWSIF_VERSION
    author: str = ""
    expected_pages: int | None = None

    def add_page(self, page: WSIFPage) -> WSIFPage:
        """Append a page. Titles must be non-empty single lines."""
        if not page.title:
            raise ValueError("Page title cannot be empty")
        if "\n" in page.title or "\r" in page.title:
            raise ValueError(f"Page title must be a single line: {page.title!r}")
        self.pages.append(page)
        return page

    def get_page(self, title: str) -> WSIFPage | None:
        for page in self.pages:
            if page.title == title:
                return page
        return None

    @property
    def titles(self) -> list[str]:
        return [p.title for p in self.pages]

    def create_page(self, title: str, content: bytes, attributes: int, last_modified: int) -> int:
        """Import hook for WSIFReader. Returns the new page index, -1 on failure."""
        try:
            self.add_page(WSIFPage(title, content, PageAttributes(attributes), last_modified))
        except ValueError:
            return -1
        return len(self.pages) - 1

    def page_source(self) -> Callable[[], WSIFPage | None]:
        """Pull-based page supplier for WSIFWriter. Returns None when done."""
        return iter_source(self.pages)

    def __iter__(self) -> Iterator[WSIFPage]:
        return iter(self.pages)

    def __len__(self) -> int:
        return len(self.pages)

    @classmethod
    def read(cls, path: str, **kwargs) -> WSIFDocument:
        """Load an archive file (index.wsif or any single .wsif)."""
        from wsif.reader import WSIFReader
        doc = cls()
        result = WSIFReader.load(path, doc.create_page, **kwargs)
        result.apply_to(doc)
        return doc

    @classmethod
    def parse(cls, data: bytes, **kwargs) -> WSIFDocument:
        from wsif.reader import WSIFReader
        doc = cls()
        result = WSIFReader.parse(data, doc.create_page, **kwargs)
        result.apply_to(doc)
        return doc

    def write(self, directory: str, **kwargs) -> int:
        """Save into a directory as index.wsif (+ blobs). Returns pages written."""
        from wsif.writer import WSIFWriter
        kwargs.setdefault("author", self.author)
        return WSIFWriter.save(self.page_source(), directory, **kwargs)

    def to_bytes(self, **kwargs) -> bytes:
        """Serialize to a single-file archive."""
        from wsif.writer import WSIFWriter
        kwargs.setdefault("author", self.author)
        return WSIFWriter.serialize(self.pages, **kwargs)

    def __repr__(self) -> str:
        return f"WSIFDocument(version={self.version!r}, pages={self.titles})"


def iter_source(pages: Iterable[WSIFPage]) -> Callable[[], WSIFPage | None]:
    """Adapt any iterable of pages to the page_source() protocol."""
    it = iter(pages)

    def _next() -> WSIFPage | None:
        return next(it, None)

    return _next
