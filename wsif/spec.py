"""
WSIF Format Specification v1.3.1
================================

Layout (single-file archive):
    wsif.version: 1.3.1                  <- Archive header block
    wsif.generator: libwsif-py
    wsif.generator.version: 1.3.3
    woas.author: <name>                  <- Optional
    woas.pages: <count>                  <- Advisory page count
                                         <- Blank line ends the header block
    woas.page.title: <ecma title>        <- Starts a page record
    woas.page.attributes: <bitmask>
    woas.page.last_modified: <epoch>
    woas.page.length: <stored length>
    woas.page.encoding: 8bit/plain
    woas.page.disposition: inline
    woas.page.boundary: <token>
    \\n--<token>\\n<content>\\n--<token>\\n   <- Inline body
    woas.page.title: ...                 <- Next record

Multi-file archives keep one record per numbered file (0.wsif, 1.wsif, ...)
and an index.wsif whose records point at them with
``disposition: external`` and ``encoding: text/wsif``.

Design Decisions:
    - Every page header starts a line, so records are found by scanning for
      "\\nwoas.page." (the newline is part of the prefix)
    - "title" is the only header that starts a record; a record ends when
      the next title shows up or the buffer ends
    - Inline bodies are framed by a random boundary that never occurs in
      the body itself
    - Text pages that contain multi-byte UTF-8 are stored with \\uXXXX
      escapes (ecma/plain) so the archive stays 7-bit
    - Counters (woas.pages, length, original_length) are advisory only
"""

from __future__ import annotations

import enum

# Versions
WSIF_VERSION = "1.3.1"
LIBWSIF_VERSION = "1.3.3"
GENERATOR = "libwsif-py"

# Known broken version, always rejected
UNSUPPORTED_VERSIONS = frozenset({"1.0.0"})

# Header names
H_VERSION = "wsif.version"
H_GENERATOR = "wsif.generator"
H_GENERATOR_VERSION = "wsif.generator.version"
H_AUTHOR = "woas.author"
H_PAGES = "woas.pages"

PAGE_PREFIX = "woas.page."
RECORD_PREFIX = b"\n" + PAGE_PREFIX.encode("ascii")

# Page header names (without the woas.page. prefix)
P_TITLE = "title"
P_ATTRIBUTES = "attributes"
P_LAST_MODIFIED = "last_modified"
P_LENGTH = "length"
P_ORIGINAL_LENGTH = "original_length"
P_ENCODING = "encoding"
P_DISPOSITION = "disposition"
P_FILENAME = "disposition.filename"
P_BOUNDARY = "boundary"
P_MIME = "mime"

PAGE_HEADERS = {
    P_TITLE: "Page title, ECMA-escaped",
    P_ATTRIBUTES: "Attribute bitmask (2=encrypted, 4=embedded file, 8=embedded image)",
    P_LAST_MODIFIED: "Last modification time, seconds since the epoch",
    P_LENGTH: "Length of the stored body (advisory)",
    P_ORIGINAL_LENGTH: "Length of the content before encoding (encrypted pages)",
    P_ENCODING: "Body encoding",
    P_DISPOSITION: "inline or external",
    P_FILENAME: "External file, relative to the archive directory",
    P_BOUNDARY: "Boundary token framing an inline body",
    P_MIME: "MIME type of an embedded image",
}

# Encodings
ENC_8BIT_PLAIN = "8bit/plain"
ENC_8BIT_BASE64 = "8bit/base64"
ENC_ECMA_PLAIN = "ecma/plain"
ENC_TEXT_WSIF = "text/wsif"
ENCODINGS = frozenset({ENC_8BIT_PLAIN, ENC_8BIT_BASE64, ENC_ECMA_PLAIN, ENC_TEXT_WSIF})

# Dispositions
DISP_INLINE = "inline"
DISP_EXTERNAL = "external"
DISPOSITIONS = frozenset({DISP_INLINE, DISP_EXTERNAL})


class PageAttributes(enum.IntFlag):
    """WoaS page attribute bits."""
    NONE = 0
    ENCRYPTED = 2
    EMBEDDED_FILE = 4
    EMBEDDED_IMAGE = 8


# Boundaries
BOUNDARY_LENGTH = 10
BOUNDARY_CHARSET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"

# Files
EXTENSION = ".wsif"
DEFAULT_INDEX = "index.wsif"
BLOB_PREFIX = "blob"

# Safety limits
MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB max archive size for reader
MAX_RECURSION_DEPTH = 1            # Nested archives sit at most this many levels below the top

# Max bytes scanned when identifying a file
MAX_MAGIC_SCAN_BYTES = 4096

# Messages shared by reader and tests
MSG_NO_VERSION = "Could not read WSIF version"
MSG_BAD_VERSION = "WSIF version {version} not supported!"
MSG_NO_HEADER_NAME = "Could not locate header name"
MSG_BAD_HEADER_VALUE = "Could not locate end of header value"
MSG_IMPORT_FAILURE = "Import failure for page {title}"


def format_header(name: str, value: object) -> bytes:
    """Format one ``name: value`` header line."""
    return f"{name}: {value}\n".encode("utf-8")


def page_header(name: str, value: object) -> bytes:
    """Format one ``woas.page.<name>: value`` header line."""
    return format_header(PAGE_PREFIX + name, value)


def inline_body(boundary: str, content: bytes) -> bytes:
    """Frame content between two boundary lines."""
    delimiter = f"\n--{boundary}\n".encode("ascii")
    return delimiter + content + delimiter


def _natural_key(version: str) -> list[tuple[int, int | str]]:
    key: list[tuple[int, int | str]] = []
    token = ""
    for ch in version:
        if ch.isdigit() != token[-1:].isdigit() and token:
            key.append((0, int(token)) if token.isdigit() else (1, token))
            token = ""
        token += ch
    if token:
        key.append((0, int(token)) if token.isdigit() else (1, token))
    return key


def version_supported(version: str) -> bool:
    """True unless the version is known broken or newer than WSIF_VERSION.

    Versions compare in natural order, so "1.10.0" is newer than "1.9.0".
    """
    if version in UNSUPPORTED_VERSIONS:
        return False
    return _natural_key(version) <= _natural_key(WSIF_VERSION)
