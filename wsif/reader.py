"""
WSIF Reader - Single-pass parser for .wsif archives.

Parsing model:
  - The archive header block (everything before the first "\\nwoas.page.")
    must carry a supported wsif.version, otherwise nothing is imported
  - Page headers accumulate into one in-progress record; the next title
    header (or the end of the buffer) hands the record to the resolver
  - The resolver finds the body (inline boundary, external blob or nested
    archive), decodes it and calls the caller's create_page hook
  - A broken record is logged and skipped; a broken archive raises

Security features:
  - Nested archives may only be imported MAX_RECURSION_DEPTH levels deep
  - External filenames may not leave the archive directory
  - Archive size limit (prevents OOM from crafted files)
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any, Callable

from wsif import ecma
from wsif.errors import (
    BadEncodingError,
    BadEncryptedEncodingError,
    BadExternalEncodingError,
    DocumentLoadError,
    EcmaEncodingError,
    EndBoundaryNotFound,
    ExternalLoadError,
    HeaderNameError,
    ImportHookError,
    InvalidDispositionError,
    MissingFieldError,
    MissingFilenameError,
    MissingVersionError,
    RecordError,
    RecursionLimitError,
    StartBoundaryNotFound,
    StructuralError,
    TruncatedHeaderError,
    UnknownEncodingError,
    UnsupportedVersionError,
)
from wsif.spec import (
    DISP_EXTERNAL,
    DISP_INLINE,
    ENC_8BIT_BASE64,
    ENC_8BIT_PLAIN,
    ENC_ECMA_PLAIN,
    ENC_TEXT_WSIF,
    H_AUTHOR,
    H_GENERATOR,
    H_GENERATOR_VERSION,
    H_PAGES,
    H_VERSION,
    MAX_FILE_SIZE,
    MAX_MAGIC_SCAN_BYTES,
    MAX_RECURSION_DEPTH,
    MSG_BAD_HEADER_VALUE,
    MSG_BAD_VERSION,
    MSG_IMPORT_FAILURE,
    MSG_NO_HEADER_NAME,
    MSG_NO_VERSION,
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
    RECORD_PREFIX,
    PageAttributes,
    version_supported,
)
from wsif.storage import FileStorage, Storage

logger = logging.getLogger(__name__)

CreatePageHook = Callable[[str, bytes, PageAttributes, int], Any]
LogSink = Callable[[str], None]

# Return value of create_page that reports failure
HOOK_FAILURE = -1

_EMBEDDED = PageAttributes.EMBEDDED_FILE | PageAttributes.EMBEDDED_IMAGE


@dataclass
class PageRecord:
    """Headers collected for one page while scanning."""
    title: str
    start: int                       # offset of the title header
    attributes: int | None = None
    last_modified: int | None = None
    length: int | None = None
    original_length: int | None = None
    encoding: str | None = None
    disposition: str | None = None
    filename: str | None = None
    boundary: str | None = None
    mime: str | None = None
    last_header_end: int | None = None   # newline ending the last non-title header


@dataclass
class LoadResult:
    """Outcome of one load: created page ids plus every diagnostic logged."""
    imported: list[Any] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    # Top-level archive header block
    version: str = ""
    generator: str = ""
    generator_version: str = ""
    author: str = ""
    expected_pages: int | None = None

    @property
    def count(self) -> int:
        return len(self.imported)

    @property
    def last_error(self) -> str | None:
        return self.errors[-1] if self.errors else None

    def apply_to(self, doc) -> None:
        """Copy the archive header fields onto a WSIFDocument."""
        doc.version = self.version or doc.version
        doc.generator = self.generator or doc.generator
        doc.generator_version = self.generator_version or doc.generator_version
        doc.author = self.author
        doc.expected_pages = self.expected_pages


class _Diagnostics:
    """Routes messages to the caller's sink and records them on the result."""

    def __init__(self, result: LoadResult, log: LogSink | None) -> None:
        self._result = result
        self._log = log

    def error(self, message: str) -> None:
        self._result.errors.append(message)
        if self._log is not None:
            self._log(message)
        else:
            logger.error(message)

    def warning(self, message: str) -> None:
        self._result.warnings.append(message)
        if self._log is not None:
            self._log(message)
        else:
            logger.warning(message)


class WSIFReader:
    """
    WSIF archive reader.

    Usage:
        def create_page(title, content, attributes, last_modified):
            pages.append(...)
            return len(pages) - 1      # -1 reports failure

        result = WSIFReader.load("export/index.wsif", create_page)
        print(result.count, result.errors)
    """

    @staticmethod
    def is_wsif(path: str | os.PathLike) -> bool:
        """Fast check if a file looks like WSIF. Reads only the first few KB."""
        with open(path, "rb") as f:
            head = f.read(MAX_MAGIC_SCAN_BYTES)
        return WSIFReader.is_wsif_bytes(head)

    @staticmethod
    def is_wsif_bytes(data: bytes) -> bool:
        head = data[:MAX_MAGIC_SCAN_BYTES]
        return head.startswith(H_VERSION.encode("ascii")) or (
            b"\n" + H_VERSION.encode("ascii") + b":" in head
        )

    @classmethod
    def load(
        cls,
        path: str | os.PathLike,
        create_page: CreatePageHook,
        log: LogSink | None = None,
        storage: Storage | None = None,
        max_size: int = MAX_FILE_SIZE,
    ) -> LoadResult:
        """Read and parse an archive file. External files resolve next to it."""
        path = os.fspath(path)
        storage = storage or FileStorage(max_size=max_size)
        result = LoadResult()
        diag = _Diagnostics(result, log)
        try:
            data = storage.read_file(path)
        except OSError as e:
            message = f"Could not read WSIF file {path}: {e}"
            diag.error(message)
            raise DocumentLoadError(message) from e
        return _Import(create_page, diag, storage, result).run(data, path, max_size)

    @classmethod
    def parse(
        cls,
        data: bytes,
        create_page: CreatePageHook,
        log: LogSink | None = None,
        path: str | os.PathLike | None = None,
        storage: Storage | None = None,
        depth: int = 0,
        max_size: int = MAX_FILE_SIZE,
    ) -> LoadResult:
        """Parse archive bytes.

        path is where the bytes came from; external files are looked up in
        its directory (the current directory when path is None). depth is
        the nesting level of this archive, 0 for a top-level document.
        """
        storage = storage or FileStorage(max_size=max_size)
        result = LoadResult()
        diag = _Diagnostics(result, log)
        return _Import(create_page, diag, storage, result).run(
            data, os.fspath(path) if path is not None else None, max_size, depth,
        )


class _Import:
    """State of one load call, shared by nested archive imports."""

    def __init__(
        self,
        create_page: CreatePageHook,
        diag: _Diagnostics,
        storage: Storage,
        result: LoadResult,
    ) -> None:
        self.create_page = create_page
        self.diag = diag
        self.storage = storage
        self.result = result

    def run(self, data: bytes, path: str | None, max_size: int, depth: int = 0) -> LoadResult:
        if len(data) > max_size:
            self._fail(DocumentLoadError(
                f"Input size {len(data)} exceeds maximum {max_size} bytes. "
                f"Pass max_size= to override."
            ))
        self.scan(data, path, depth)
        expected = self.result.expected_pages
        if expected is not None and expected != self.result.count:
            self.diag.warning(
                f"Archive declares {expected} pages but {self.result.count} were imported"
            )
        return self.result

    def _fail(self, error: StructuralError) -> None:
        self.diag.error(str(error))
        raise error

    # -------------------------------------------------------------------------
    # Record Parser
    # -------------------------------------------------------------------------

    def scan(self, data: bytes, path: str | None, depth: int) -> int:
        """Scan one archive buffer. Returns the number of pages created."""
        p = data.find(RECORD_PREFIX)
        self._read_archive_headers(data if p < 0 else data[:p], depth)
        if p < 0:
            self.diag.warning(f"No page records found in {path or 'WSIF data'}")
            return 0

        created = 0
        record: PageRecord | None = None
        prefix_len = len(RECORD_PREFIX)
        while p >= 0:
            sep = data.find(b":", p + prefix_len)
            if sep < 0:
                self._fail(HeaderNameError(MSG_NO_HEADER_NAME))
            end = data.find(b"\n", sep + 1)
            if end < 0:
                self._fail(TruncatedHeaderError(MSG_BAD_HEADER_VALUE))
            name = data[p + prefix_len:sep].decode("utf-8", errors="replace")
            value = data[sep + 1:end].strip()

            if name == P_TITLE:
                # A new title closes the record in progress
                if record is not None:
                    created += self._finish(record, data, path, depth)
                record = PageRecord(title=ecma.decode_text(value), start=p)
            elif record is None:
                self.diag.warning(f"WSIF header {name} appears before any page title")
            else:
                record.last_header_end = end
                self._apply_header(record, name, value)

            p = data.find(RECORD_PREFIX, self._skip_body(record, data, end))

        if record is not None:
            created += self._finish(record, data, path, depth)
        return created

    def _read_archive_headers(self, block: bytes, depth: int) -> None:
        headers: dict[str, str] = {}
        for line in block.split(b"\n"):
            name, sep, value = line.partition(b":")
            if not sep:
                continue
            key = name.strip().decode("utf-8", errors="replace")
            # First wins
            headers.setdefault(key, value.strip().decode("utf-8", errors="replace"))

        version = headers.get(H_VERSION, "")
        if not version:
            self._fail(MissingVersionError(MSG_NO_VERSION))
        if not version_supported(version):
            self._fail(UnsupportedVersionError(MSG_BAD_VERSION.format(version=version), version))

        # Nested archives do not override the top-level header block
        if depth > 0:
            return
        self.result.version = version
        self.result.generator = headers.get(H_GENERATOR, "")
        self.result.generator_version = headers.get(H_GENERATOR_VERSION, "")
        self.result.author = headers.get(H_AUTHOR, "")
        pages = headers.get(H_PAGES)
        if pages is not None:
            if pages.isdigit():
                self.result.expected_pages = int(pages)
            else:
                self.diag.warning(f"Ignoring invalid {H_PAGES} value {pages!r}")

    def _apply_header(self, record: PageRecord, name: str, value: bytes) -> None:
        text = value.decode("utf-8", errors="replace")
        if name in (P_ATTRIBUTES, P_LAST_MODIFIED, P_LENGTH, P_ORIGINAL_LENGTH):
            try:
                number = int(text)
            except ValueError:
                self.diag.warning(f"Invalid {name} value {text!r} for page {record.title}")
                return
            setattr(record, name, number)
        elif name == P_ENCODING:
            record.encoding = text
        elif name == P_DISPOSITION:
            record.disposition = text
        elif name == P_FILENAME:
            record.filename = text
        elif name == P_BOUNDARY:
            record.boundary = text
        elif name == P_MIME:
            record.mime = text
        else:
            self.diag.warning(f"Unknown WSIF header: {name}")

    @staticmethod
    def _skip_body(record: PageRecord | None, data: bytes, end: int) -> int:
        """Where to look for the next header.

        When an inline body starts right after the current header line, the
        search resumes at its closing boundary, so body text can never be
        taken for headers.
        """
        if record is None or record.disposition != DISP_INLINE or not record.boundary:
            return end
        delimiter = f"\n--{record.boundary}\n".encode("utf-8")
        # The delimiter may share the header's newline or follow it
        for start in (end, end + 1):
            if data.startswith(delimiter, start):
                break
        else:
            return end
        close = data.find(delimiter, start + len(delimiter))
        if close < 0:
            return end
        # Keep the closing newline: it is the first byte of the next prefix
        return close + len(delimiter) - 1

    def _finish(self, record: PageRecord, data: bytes, path: str | None, depth: int) -> int:
        try:
            return self._resolve(record, data, path, depth)
        except RecordError as e:
            self.diag.error(str(e))
            self.diag.error(MSG_IMPORT_FAILURE.format(title=record.title))
            return 0

    # -------------------------------------------------------------------------
    # Page Resolver
    # -------------------------------------------------------------------------

    def _resolve(self, record: PageRecord, data: bytes, path: str | None, depth: int) -> int:
        title = record.title
        if record.attributes is None:
            raise MissingFieldError(f'No attributes defined for page "{title}"', title)
        if record.disposition is None:
            raise MissingFieldError(f'No disposition defined for page "{title}"', title)
        attributes = PageAttributes(record.attributes)
        last_modified = record.last_modified or 0

        if record.disposition == DISP_INLINE:
            content = self._inline_content(record, attributes, data)
        elif record.disposition == DISP_EXTERNAL:
            if not record.filename:
                raise MissingFilenameError(
                    f"Page {title} is external but no filename was specified", title
                )
            if attributes & _EMBEDDED:
                content = self._external_blob(record, attributes, path)
            else:
                # Pages of a nested archive go through create_page on their own
                return self._external_archive(record, path, depth)
        else:
            raise InvalidDispositionError(
                f'Page "{title}" has invalid disposition: {record.disposition}', title
            )

        rv = self.create_page(title, content, attributes, last_modified)
        if rv is None or rv == HOOK_FAILURE:
            raise ImportHookError(f"Import hook rejected page {title}", title)
        self.result.imported.append(rv)
        return 1

    def _inline_content(self, record: PageRecord, attributes: PageAttributes, data: bytes) -> bytes:
        title = record.title
        if not record.boundary:
            raise MissingFieldError(f"No boundary defined for inline page {title}", title)
        delimiter = f"\n--{record.boundary}\n".encode("utf-8")
        # Search from the last non-title header, never from the title itself
        search_from = record.last_header_end if record.last_header_end is not None else record.start
        start = data.find(delimiter, search_from)
        if start < 0:
            raise StartBoundaryNotFound(
                f"Failed to find start boundary {record.boundary} for page {title}", title
            )
        body_start = start + len(delimiter)
        end = data.find(delimiter, body_start)
        if end < 0:
            raise EndBoundaryNotFound(
                f"Failed to find end boundary {record.boundary} for page {title}", title
            )
        body = data[body_start:end]

        if record.length is not None and record.length != len(body):
            self.diag.warning(
                f"Length mismatch for page {title}: ought to be {record.length} but was {len(body)}"
            )
        return self._decode_inline(record, attributes, body)

    def _decode_inline(self, record: PageRecord, attributes: PageAttributes, body: bytes) -> bytes:
        title = record.title
        encoding = record.encoding

        if attributes & PageAttributes.ENCRYPTED:
            if encoding != ENC_8BIT_BASE64:
                raise BadEncryptedEncodingError(
                    f"Encrypted page {title} is not encoded as {ENC_8BIT_BASE64}", title
                )
            return _b64decode(body, title)

        if attributes & PageAttributes.EMBEDDED_IMAGE:
            if encoding != ENC_8BIT_BASE64:
                raise BadEncodingError(f"Image {title} is not encoded as {ENC_8BIT_BASE64}", title)
            if record.mime is None:
                raise MissingFieldError(f"Image {title} has no mime type defined", title)
            # Payload stays base64, only the data: URI prefix is restored
            return _data_uri(record.mime, body)

        if encoding == ENC_8BIT_BASE64:
            # Embedded files are kept base64-encoded, as WoaS stores them
            if attributes & PageAttributes.EMBEDDED_FILE:
                return body
            return _b64decode(body, title)
        if encoding == ENC_ECMA_PLAIN:
            try:
                return ecma.decode(body)
            except EcmaEncodingError as e:
                raise BadEncodingError(f"Page {title}: {e}", title) from e
        if encoding == ENC_8BIT_PLAIN:
            return body
        raise UnknownEncodingError(
            f"Normal page {title} comes with unknown encoding {encoding}", title
        )

    def _external_blob(self, record: PageRecord, attributes: PageAttributes, path: str | None) -> bytes:
        title = record.title
        if record.encoding != ENC_8BIT_PLAIN:
            raise BadExternalEncodingError(
                f"Page {title} is an external file/image but not encoded as {ENC_8BIT_PLAIN}", title
            )
        blob_path = _sibling_path(path, record.filename, title)
        try:
            raw = self.storage.read_file(blob_path)
        except OSError as e:
            raise ExternalLoadError(f"Failed load of external {blob_path}: {e}", title) from e

        is_file = bool(attributes & PageAttributes.EMBEDDED_FILE)
        is_image = bool(attributes & PageAttributes.EMBEDDED_IMAGE)
        if is_file and is_image:
            if record.mime is None:
                raise MissingFieldError(f"Image {title} has no mime type defined", title)
            return _data_uri(record.mime, base64.b64encode(raw))
        if is_file:
            return base64.b64encode(raw)
        return raw

    def _external_archive(self, record: PageRecord, path: str | None, depth: int) -> int:
        title = record.title
        if record.encoding != ENC_TEXT_WSIF:
            raise BadExternalEncodingError(
                f"Page {title} is external but not encoded as {ENC_TEXT_WSIF}", title
            )
        if depth >= MAX_RECURSION_DEPTH:
            raise RecursionLimitError(
                f"Cannot import nested archive {record.filename} for page {title}: "
                f"maximum import depth is {MAX_RECURSION_DEPTH}",
                title,
            )
        nested_path = _sibling_path(path, record.filename, title)
        try:
            nested = self.storage.read_file(nested_path)
        except OSError as e:
            raise ExternalLoadError(f"Failed load of external {nested_path}: {e}", title) from e
        logger.debug("Importing nested archive %s (depth %d)", nested_path, depth + 1)
        try:
            return self.scan(nested, nested_path, depth + 1)
        except StructuralError as e:
            raise ExternalLoadError(
                f"Failed import of external {record.filename}: {e}", title
            ) from e


def _b64decode(body: bytes, title: str) -> bytes:
    try:
        return base64.b64decode(body)
    except binascii.Error as e:
        raise BadEncodingError(f"Page {title} has invalid base64 content: {e}", title) from e


def _data_uri(mime: str, payload: bytes) -> bytes:
    return f"data:{mime};base64,".encode("utf-8") + payload


def _sibling_path(path: str | None, filename: str, title: str) -> str:
    """Resolve an external filename against the archive's directory."""
    name = PurePath(filename)
    if name.is_absolute() or ".." in name.parts:
        raise ExternalLoadError(
            f"External file {filename!r} of page {title} is outside the archive directory",
            title,
        )
    base = os.path.dirname(path) if path else ""
    return os.path.join(base, filename) if base else filename
