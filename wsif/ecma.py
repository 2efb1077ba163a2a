"""
WSIF ECMA encoding - \\uXXXX escapes for non-ASCII text.

Text pages and titles that carry multi-byte UTF-8 are stored with
ECMAScript-style escapes so the archive itself stays 7-bit:

    "Café \\ ok"  -> on disk "Caf\\u00e9 \\\\ ok"  -> decode -> "Café \\ ok"

Rules:
    - encode doubles every backslash, then rewrites each run of well-formed
      multi-byte UTF-8 as one \\uhhhh escape per UTF-16 code unit
      (lowercase hex, zero padded, surrogate pairs above U+FFFF)
    - decode undoes both in a single left-to-right scan, so an escaped
      backslash followed by "u0041" is never mistaken for an escape
    - bytes that are not well-formed UTF-8 pass through untouched
"""

from __future__ import annotations

import re

from wsif.errors import EcmaEncodingError

# Well-formed multi-byte UTF-8 (ASCII is deliberately left out)
_UTF8_MULTIBYTE = (
    rb"[\xC2-\xDF][\x80-\xBF]"               # non-overlong 2-byte
    rb"|\xE0[\xA0-\xBF][\x80-\xBF]"          # excluding overlongs
    rb"|[\xE1-\xEC\xEE\xEF][\x80-\xBF]{2}"   # straight 3-byte
    rb"|\xED[\x80-\x9F][\x80-\xBF]"          # excluding surrogates
    rb"|\xF0[\x90-\xBF][\x80-\xBF]{2}"       # planes 1-3
    rb"|[\xF1-\xF3][\x80-\xBF]{3}"           # planes 4-15
    rb"|\xF4[\x80-\x8F][\x80-\xBF]{2}"       # plane 16
)

_MULTIBYTE_RE = re.compile(_UTF8_MULTIBYTE)
_MULTIBYTE_RUN_RE = re.compile(rb"(?:" + _UTF8_MULTIBYTE + rb")+")

# Order matters: escaped backslash, then surrogate pair, then single escape
_ESCAPE_RE = re.compile(
    rb"\\\\"
    rb"|\\u([dD][89abAB][0-9a-fA-F]{2})\\u([dD][c-fC-F][0-9a-fA-F]{2})"
    rb"|\\u([0-9a-fA-F]{4})"
)

MAX_CODE_POINT = 0x1FFFFF


def code_to_utf8(code: int) -> bytes:
    """Pack a code point into 1-4 UTF-8 bytes.

    Surrogate code points are packed like any other 3-byte value.
    """
    if code < 0:
        raise EcmaEncodingError(f"Negative code point {code}")
    if code < 0x80:
        return bytes((code,))
    if code < 0x800:
        return bytes((0xC0 | (code >> 6), 0x80 | (code & 0x3F)))
    if code < 0x10000:
        return bytes((
            0xE0 | (code >> 12),
            0x80 | ((code >> 6) & 0x3F),
            0x80 | (code & 0x3F),
        ))
    if code <= MAX_CODE_POINT:
        return bytes((
            0xF0 | (code >> 18),
            0x80 | ((code >> 12) & 0x3F),
            0x80 | ((code >> 6) & 0x3F),
            0x80 | (code & 0x3F),
        ))
    raise EcmaEncodingError(f"UTF8 sequence with value 0x{code:x} is not valid!")


def _unescape(match: re.Match) -> bytes:
    high, low, single = match.groups()
    if single is not None:
        return code_to_utf8(int(single, 16))
    if high is not None:
        code = 0x10000 + ((int(high, 16) - 0xD800) << 10) + (int(low, 16) - 0xDC00)
        return code_to_utf8(code)
    return b"\\"


def _escape_run(match: re.Match) -> bytes:
    out = bytearray()
    for ch in match.group(0).decode("utf-8"):
        code = ord(ch)
        if code > 0xFFFF:
            code -= 0x10000
            out += b"\\u%04x\\u%04x" % (0xD800 + (code >> 10), 0xDC00 + (code & 0x3FF))
        else:
            out += b"\\u%04x" % code
    return bytes(out)


def decode(data: bytes) -> bytes:
    """Turn \\uXXXX escapes back into UTF-8 and \\\\ back into \\."""
    return _ESCAPE_RE.sub(_unescape, data)


def encode(data: bytes) -> bytes:
    """Escape backslashes and every multi-byte UTF-8 sequence."""
    return _MULTIBYTE_RUN_RE.sub(_escape_run, data.replace(b"\\", b"\\\\"))


def needs_escaping(data: bytes) -> bool:
    """True if data holds at least one multi-byte UTF-8 sequence."""
    return _MULTIBYTE_RE.search(data) is not None


def decode_text(data: bytes | str) -> str:
    """Decode an escaped value (e.g. a title) straight to str."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    raw = decode(data)
    try:
        return raw.decode("utf-8", errors="surrogatepass")
    except UnicodeDecodeError:
        return raw.decode("utf-8", errors="replace")


def encode_text(text: str) -> str:
    """Escape a str value for a header line. The result is pure ASCII
    whenever the input is valid Unicode."""
    raw = text.encode("utf-8", errors="surrogatepass")
    return encode(raw).decode("utf-8", errors="surrogatepass")
