"""
WSIF Writer - Serializes pages to .wsif archives.

Default behaviour (as in WoaS):
  - wiki pages go inline, ecma/plain when they contain multi-byte UTF-8
  - embedded files/images go inline as base64, or out as blob files
  - encrypted pages go inline as base64 with their original length

Output layout:
  single file   <dir>/index.wsif holds every record
  multi file    <dir>/0.wsif, 1.wsif, ... one record each, and
                <dir>/index.wsif referencing them as external text/wsif
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import os
import re
from dataclasses import dataclass
from typing import Callable, Iterable

from wsif import ecma
from wsif.boundary import generate as generate_boundary
from wsif.document import WSIFPage, iter_source
from wsif.errors import WSIFError
from wsif.spec import (
    BLOB_PREFIX,
    DEFAULT_INDEX,
    DISP_EXTERNAL,
    DISP_INLINE,
    ENC_8BIT_BASE64,
    ENC_8BIT_PLAIN,
    ENC_ECMA_PLAIN,
    ENC_TEXT_WSIF,
    EXTENSION,
    GENERATOR,
    H_AUTHOR,
    H_GENERATOR,
    H_GENERATOR_VERSION,
    H_PAGES,
    H_VERSION,
    LIBWSIF_VERSION,
    P_ATTRIBUTES,
    P_BOUNDARY,
    P_DISPOSITION,
    P_ENCODING,
    P_FILENAME,
    P_LAST_MODIFIED,
    P_LENGTH,
    P_MIME,
    P_ORIGINAL_LENGTH,
    P_TITLE,
    WSIF_VERSION,
    format_header,
    inline_body,
    page_header,
)
from wsif.storage import FileStorage, Storage

logger = logging.getLogger(__name__)

PageSource = Callable[[], "WSIFPage | None"]
LogSink = Callable[[str], None]

_DATA_URI_RE = re.compile(rb"data:\s*([^;]*);\s*base64,\s*")
_FILE_EXT_RE = re.compile(r"\.(\w+)$")


@dataclass
class EncodedPage:
    """A page after encoding and disposition have been chosen."""
    title: str
    attributes: int
    last_modified: int
    content: bytes              # bytes as they will be stored
    encoding: str
    disposition: str
    mime: str | None = None
    original_length: int | None = None


class WSIFWriter:

    @staticmethod
    def archive_header(author: str = "", pages: int | None = None) -> bytes:
        """Header block of an archive file, without the closing blank line."""
        buf = io.BytesIO()
        buf.write(format_header(H_VERSION, WSIF_VERSION))
        buf.write(format_header(H_GENERATOR, GENERATOR))
        buf.write(format_header(H_GENERATOR_VERSION, LIBWSIF_VERSION))
        if author:
            buf.write(format_header(H_AUTHOR, _single_line(author)))
        if pages is not None:
            buf.write(format_header(H_PAGES, pages))
        return buf.getvalue()

    @staticmethod
    def encode_page(page: WSIFPage, inline_blobs: bool = True) -> EncodedPage:
        """Pick encoding and disposition for a page and encode its content.

        Raises WSIFError for pages that cannot be written (multi-line or
        space-padded title, image without a data: URI, broken base64).
        Only embedded files go to external blobs; image-only pages stay inline.
        """
        if "\n" in page.title or "\r" in page.title:
            raise WSIFError(f"Page title must be a single line: {page.title!r}")
        if page.title != page.title.strip():
            raise WSIFError(f"Page title has leading or trailing whitespace: {page.title!r}")

        attrs = int(page.attributes)
        if page.is_encrypted:
            return EncodedPage(
                page.title, attrs, page.last_modified,
                base64.b64encode(page.content), ENC_8BIT_BASE64, DISP_INLINE,
                original_length=len(page.content),
            )

        content = page.content
        if page.is_embedded or page.is_image:
            mime = None
            if page.is_image:
                match = _DATA_URI_RE.match(content)
                if match is None:
                    raise WSIFError(f"Image {page.title} has no data: URI")
                mime = _single_line(match.group(1).decode("utf-8", errors="replace")).strip()
                content = content[match.end():]
            if inline_blobs or not page.is_embedded:
                return EncodedPage(
                    page.title, attrs, page.last_modified,
                    content, ENC_8BIT_BASE64, DISP_INLINE, mime=mime,
                )
            try:
                raw = base64.b64decode(content)
            except binascii.Error as e:
                raise WSIFError(f"Embedded page {page.title} has invalid base64 content: {e}") from e
            return EncodedPage(
                page.title, attrs, page.last_modified,
                raw, ENC_8BIT_PLAIN, DISP_EXTERNAL, mime=mime,
            )

        if ecma.needs_escaping(content):
            return EncodedPage(
                page.title, attrs, page.last_modified,
                ecma.encode(content), ENC_ECMA_PLAIN, DISP_INLINE,
            )
        return EncodedPage(
            page.title, attrs, page.last_modified,
            content, ENC_8BIT_PLAIN, DISP_INLINE,
        )

    @staticmethod
    def build_record(
        encoded: EncodedPage,
        relaxed: bool = False,
        boundary: str | None = None,
        filename: str | None = None,
    ) -> bytes:
        """Header lines plus body (inline) or filename reference (external)."""
        buf = io.BytesIO()
        buf.write(page_header(P_TITLE, ecma.encode_text(encoded.title)))
        buf.write(page_header(P_ATTRIBUTES, encoded.attributes))
        # Timestamp only when not magic
        if not relaxed and encoded.last_modified:
            buf.write(page_header(P_LAST_MODIFIED, encoded.last_modified))
        if encoded.mime is not None:
            buf.write(page_header(P_MIME, encoded.mime))
        if not relaxed:
            buf.write(page_header(P_LENGTH, len(encoded.content)))
        buf.write(page_header(P_ENCODING, encoded.encoding))
        buf.write(page_header(P_DISPOSITION, encoded.disposition))
        if encoded.disposition == DISP_INLINE:
            if boundary is None:
                raise ValueError("Inline records need a boundary")
            if encoded.original_length is not None:
                buf.write(page_header(P_ORIGINAL_LENGTH, encoded.original_length))
            buf.write(page_header(P_BOUNDARY, boundary))
            buf.write(inline_body(boundary, encoded.content))
        else:
            if filename is None:
                raise ValueError("External records need a filename")
            buf.write(page_header(P_FILENAME, filename))
            buf.write(b"\n")
        return buf.getvalue()

    @staticmethod
    def build_reference(title: str, filename: str) -> bytes:
        """Index record pointing at a nested archive."""
        buf = io.BytesIO()
        buf.write(page_header(P_TITLE, ecma.encode_text(title)))
        buf.write(page_header(P_ATTRIBUTES, 0))
        buf.write(page_header(P_ENCODING, ENC_TEXT_WSIF))
        buf.write(page_header(P_DISPOSITION, DISP_EXTERNAL))
        buf.write(page_header(P_FILENAME, filename))
        buf.write(b"\n")
        return buf.getvalue()

    @staticmethod
    def serialize(
        pages: Iterable[WSIFPage],
        author: str = "",
        boundary: str = "",
        relaxed: bool = False,
        log: LogSink | None = None,
    ) -> bytes:
        """Serialize pages into a single-file archive held in memory.

        Everything is inline; pages that cannot be encoded are logged and left out.
        """
        log = log or logger.error
        records = io.BytesIO()
        done = 0
        for page in pages:
            try:
                encoded = WSIFWriter.encode_page(page, inline_blobs=True)
            except WSIFError as e:
                log(str(e))
                continue
            boundary = generate_boundary(boundary, encoded.content)
            records.write(WSIFWriter.build_record(encoded, relaxed, boundary=boundary))
            done += 1
        header = WSIFWriter.archive_header(author, None if relaxed else done)
        return header + b"\n" + records.getvalue()

    @staticmethod
    def save(
        page_source: PageSource | Iterable[WSIFPage],
        path: str | os.PathLike,
        single_file: bool = True,
        inline_blobs: bool = True,
        author: str = "",
        boundary: str = "",
        relaxed: bool = False,
        storage: Storage | None = None,
        log: LogSink | None = None,
    ) -> int:
        """Write pages into the directory at path. Returns pages written.

        page_source is called until it returns None (any iterable of pages
        works too). A page, blob or per-page file that fails is logged and
        skipped. If the single-file index cannot be written, nothing was
        written and 0 is returned.

        relaxed leaves out woas.pages, length and last_modified, so that
        archives of the same pages merge cleanly.
        """
        if not callable(page_source):
            page_source = iter_source(page_source)
        directory = os.fspath(path)
        storage = storage or FileStorage()
        log = log or logger.error

        extra = WSIFWriter.archive_header(author)
        records = io.BytesIO()
        titles: list[str] = []
        done = 0
        blob_counter = 0

        while True:
            page = page_source()
            if page is None:
                break
            try:
                encoded = WSIFWriter.encode_page(page, inline_blobs)
            except WSIFError as e:
                log(str(e))
                continue

            if encoded.disposition == DISP_INLINE:
                # Keep the previous boundary while it stays collision-free
                boundary = generate_boundary(boundary, encoded.content)
                record = WSIFWriter.build_record(encoded, relaxed, boundary=boundary)
            else:
                blob_counter += 1
                blob_fn = f"{BLOB_PREFIX}{blob_counter}{_file_ext(page.title)}"
                record = WSIFWriter.build_record(encoded, relaxed, filename=blob_fn)
                try:
                    storage.write_file(os.path.join(directory, blob_fn), encoded.content)
                except OSError as e:
                    log(f"Could not save {blob_fn}: {e}")

            if single_file:
                records.write(record)
                done += 1
                continue

            # One archive per page, numbered by successfully written pages
            page_fn = f"{len(titles)}{EXTENSION}"
            page_header_block = extra if relaxed else extra + format_header(H_PAGES, 1)
            try:
                storage.write_file(
                    os.path.join(directory, page_fn), page_header_block + b"\n" + record,
                )
            except OSError as e:
                log(f"Could not save {page_fn}: {e}")
                continue
            titles.append(page.title)
            done += 1

        if not relaxed:
            extra += format_header(H_PAGES, done if single_file else len(titles))
        for n, title in enumerate(titles):
            records.write(WSIFWriter.build_reference(title, f"{n}{EXTENSION}"))

        try:
            storage.write_file(os.path.join(directory, DEFAULT_INDEX), extra + b"\n" + records.getvalue())
        except OSError as e:
            log(f"Could not save {DEFAULT_INDEX}: {e}")
            # The per-page files of a multi-file save are still usable
            if single_file:
                done = 0
        return done


def _file_ext(title: str) -> str:
    """Extension of the title's trailing ".word", with the dot, or ""."""
    match = _FILE_EXT_RE.search(title)
    return f".{match.group(1)}" if match else ""


def _single_line(value: str) -> str:
    return "".join(c for c in value if c >= " " and c != "\x7f")
