"""
Unit Tests - Test individual components in isolation.
"""

import random

import pytest

from wsif import ecma
from wsif.boundary import generate, is_valid, random_token
from wsif.document import WSIFDocument, WSIFPage, iter_source
from wsif.errors import EcmaEncodingError
from wsif.spec import (
    BOUNDARY_CHARSET,
    BOUNDARY_LENGTH,
    PageAttributes,
    WSIF_VERSION,
    format_header,
    inline_body,
    page_header,
    version_supported,
)


# =============================================================================
# Format constants and helpers
# =============================================================================

class TestSpec:

    def test_version(self):
        assert WSIF_VERSION == "1.3.1"

    def test_attribute_bits(self):
        assert PageAttributes.ENCRYPTED == 2
        assert PageAttributes.EMBEDDED_FILE == 4
        assert PageAttributes.EMBEDDED_IMAGE == 8
        assert PageAttributes.EMBEDDED_FILE | PageAttributes.EMBEDDED_IMAGE == 12

    def test_format_header(self):
        assert format_header("wsif.version", "1.3.1") == b"wsif.version: 1.3.1\n"

    def test_page_header(self):
        assert page_header("attributes", 4) == b"woas.page.attributes: 4\n"

    def test_inline_body(self):
        assert inline_body("XYZ", b"hi") == b"\n--XYZ\nhi\n--XYZ\n"


class TestVersionSupported:

    @pytest.mark.parametrize("version", ["1.3.1", "1.3.0", "1.3", "1.2.9", "0.9"])
    def test_supported(self, version):
        assert version_supported(version)

    @pytest.mark.parametrize("version", ["1.3.2", "1.4", "2.0", "1.10.0", "1.3.10"])
    def test_newer_rejected(self, version):
        assert not version_supported(version)

    def test_known_broken_rejected(self):
        assert not version_supported("1.0.0")

    def test_numeric_components(self):
        assert version_supported("1.2.10")
        assert not version_supported("1.3.01a")


# =============================================================================
# ECMA codec
# =============================================================================

class TestEcmaEncode:

    def test_ascii_untouched(self):
        assert ecma.encode(b"plain text 123") == b"plain text 123"

    def test_two_byte(self):
        assert ecma.encode("é".encode("utf-8")) == b"\\u00e9"

    def test_three_byte(self):
        assert ecma.encode("€".encode("utf-8")) == b"\\u20ac"

    def test_four_byte_surrogate_pair(self):
        assert ecma.encode("😀".encode("utf-8")) == b"\\ud83d\\ude00"

    def test_backslash_doubled(self):
        assert ecma.encode(b"a\\b") == b"a\\\\b"

    def test_mixed(self):
        assert ecma.encode("Grüße\\n".encode("utf-8")) == b"Gr\\u00fc\\u00dfe\\\\n"

    def test_invalid_utf8_passes_through(self):
        assert ecma.encode(b"caf\xe9") == b"caf\xe9"

    def test_encoded_is_ascii(self):
        encoded = ecma.encode("日本語 ☕ 😀".encode("utf-8"))
        assert max(encoded) < 0x80


class TestEcmaDecode:

    def test_single_escape(self):
        assert ecma.decode(b"Caf\\u00e9") == "Café".encode("utf-8")

    def test_uppercase_hex(self):
        assert ecma.decode(b"\\u00E9") == "é".encode("utf-8")

    def test_surrogate_pair(self):
        assert ecma.decode(b"\\ud83d\\ude00") == "😀".encode("utf-8")

    def test_escaped_backslash(self):
        assert ecma.decode(b"a\\\\b") == b"a\\b"

    def test_escaped_backslash_before_u(self):
        # \\u0041 is a literal backslash followed by "u0041"
        assert ecma.decode(b"\\\\u0041") == b"\\u0041"

    def test_incomplete_escape_untouched(self):
        assert ecma.decode(b"\\u12") == b"\\u12"

    def test_lone_high_surrogate(self):
        assert ecma.decode(b"\\ud83d") == b"\xed\xa0\xbd"


class TestEcmaRoundTrip:

    @pytest.mark.parametrize("text", [
        "",
        "hello",
        "Café",
        "C:\\path\\u00e9",
        "\\\\server\\share",
        "mixed ☕ and 😀 and \\ backslash",
        "日本語のテキスト",
    ])
    def test_round_trip(self, text):
        raw = text.encode("utf-8")
        assert ecma.decode(ecma.encode(raw)) == raw

    def test_text_helpers(self):
        escaped = ecma.encode_text("Ünïcödé title")
        assert escaped.isascii()
        assert ecma.decode_text(escaped) == "Ünïcödé title"

    def test_decode_text_accepts_bytes(self):
        assert ecma.decode_text(b"Caf\\u00e9") == "Café"


class TestEcmaHelpers:

    def test_needs_escaping(self):
        assert not ecma.needs_escaping(b"ascii only")
        assert ecma.needs_escaping("ü".encode("utf-8"))

    def test_needs_escaping_ignores_malformed(self):
        assert not ecma.needs_escaping(b"\xe9")
        assert not ecma.needs_escaping(b"\xed\xa0\x80")  # encoded surrogate
        assert not ecma.needs_escaping(b"\xc0\x80")      # overlong NUL

    def test_code_to_utf8(self):
        assert ecma.code_to_utf8(0x41) == b"A"
        assert ecma.code_to_utf8(0xE9) == "é".encode("utf-8")
        assert ecma.code_to_utf8(0x20AC) == "€".encode("utf-8")
        assert ecma.code_to_utf8(0x1F600) == "😀".encode("utf-8")
        assert len(ecma.code_to_utf8(0x1FFFFF)) == 4

    def test_code_to_utf8_out_of_range(self):
        with pytest.raises(EcmaEncodingError, match="not valid"):
            ecma.code_to_utf8(0x200000)


# =============================================================================
# Boundaries
# =============================================================================

class TestBoundary:

    def test_random_token(self):
        token = random_token()
        assert len(token) == BOUNDARY_LENGTH
        assert all(c in BOUNDARY_CHARSET for c in token)

    def test_preferred_kept(self):
        assert generate("KEEP", b"some content") == "KEEP"

    def test_empty_preferred_generates(self):
        token = generate("", b"")
        assert len(token) == BOUNDARY_LENGTH

    def test_preferred_replaced_on_collision(self):
        token = generate("abc", b"xxabcxx")
        assert token != "abc"
        assert token.encode() not in b"xxabcxx"

    def test_random_collision_retried(self):
        first = random_token(rng=random.Random(7))
        content = b"prefix " + first.encode() + b" suffix"
        token = generate("", content, rng=random.Random(7))
        assert token != first
        assert token.encode() not in content

    def test_invalid_preferred_replaced(self):
        for bad in ["BAD\nBOUNDARY", "Grenzé", "with space", "--dash"]:
            token = generate(bad, b"content")
            assert len(token) == BOUNDARY_LENGTH
            assert is_valid(token)

    def test_is_valid(self):
        assert is_valid("Abc123")
        assert not is_valid("")
        assert not is_valid("a-b")


# =============================================================================
# WSIFPage
# =============================================================================

class TestWSIFPage:

    def test_text_page(self):
        page = WSIFPage.text("Main", "hello")
        assert page.content == b"hello"
        assert page.attributes == PageAttributes.NONE
        assert page.is_text
        assert page.get_text() == "hello"

    def test_file_page(self):
        page = WSIFPage.file("notes.bin", b"\x00\x01")
        assert page.content == b"AAE="
        assert page.is_embedded and not page.is_image
        assert page.get_data() == b"\x00\x01"

    def test_image_page(self):
        page = WSIFPage.image("logo.png", "image/png", b"\x89PNG")
        assert page.content == b"data:image/png;base64,iVBORw=="
        assert page.attributes == 12
        assert page.is_image and page.is_embedded
        assert page.mime == "image/png"
        assert page.get_data() == b"\x89PNG"

    def test_encrypted_page(self):
        page = WSIFPage.encrypted("Secret", b"\xff\xfe")
        assert page.is_encrypted
        assert not page.is_text
        assert page.get_data() == b"\xff\xfe"

    def test_attributes_coerced(self):
        page = WSIFPage("x", b"", 2)
        assert isinstance(page.attributes, PageAttributes)
        assert page.is_encrypted

    def test_mime_empty_for_text(self):
        assert WSIFPage.text("t", "data:x;base64,").mime == ""


# =============================================================================
# WSIFDocument
# =============================================================================

class TestWSIFDocument:

    def test_defaults(self):
        doc = WSIFDocument()
        assert doc.version == "1.3.1"
        assert doc.generator == "libwsif-py"
        assert len(doc) == 0

    def test_add_and_get(self):
        doc = WSIFDocument()
        doc.add_page(WSIFPage.text("A", "a"))
        doc.add_page(WSIFPage.text("B", "b"))
        assert doc.titles == ["A", "B"]
        assert doc.get_page("B").content == b"b"
        assert doc.get_page("missing") is None

    def test_empty_title_rejected(self):
        with pytest.raises(ValueError, match="empty"):
            WSIFDocument().add_page(WSIFPage.text("", "x"))

    def test_multiline_title_rejected(self):
        with pytest.raises(ValueError, match="single line"):
            WSIFDocument().add_page(WSIFPage.text("a\nb", "x"))

    def test_create_page_hook(self):
        doc = WSIFDocument()
        assert doc.create_page("First", b"1", 0, 10) == 0
        assert doc.create_page("Second", b"2", 4, 20) == 1
        assert doc.pages[1].is_embedded
        assert doc.pages[1].last_modified == 20

    def test_create_page_hook_failure(self):
        assert WSIFDocument().create_page("", b"", 0, 0) == -1

    def test_page_source(self):
        doc = WSIFDocument()
        doc.add_page(WSIFPage.text("A", "a"))
        source = doc.page_source()
        assert source().title == "A"
        assert source() is None
        assert source() is None

    def test_iter_source(self):
        source = iter_source(p for p in [WSIFPage.text("x", "")])
        assert source().title == "x"
        assert source() is None

    def test_iterable(self):
        doc = WSIFDocument(pages=[WSIFPage.text("A", ""), WSIFPage.text("B", "")])
        assert [p.title for p in doc] == ["A", "B"]
