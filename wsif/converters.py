"""
WSIF Converters - Convert archives to/from JSON.

Text pages keep their content as a JSON string; every other page (and any
text page that is not valid UTF-8) stores {"base64": "..."} so the bytes
survive exactly.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from wsif.document import WSIFDocument, WSIFPage
from wsif.spec import PageAttributes


def _content_to_json(page: WSIFPage) -> Any:
    if page.is_text:
        try:
            return page.content.decode("utf-8")
        except UnicodeDecodeError:
            pass
    return {"base64": base64.b64encode(page.content).decode("ascii")}


def _content_from_json(value: Any) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, dict) and isinstance(value.get("base64"), str):
        try:
            return base64.b64decode(value["base64"], validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid WSIF JSON: bad base64 content: {e}") from e
    raise ValueError("Invalid WSIF JSON: 'content' must be a string or {\"base64\": ...}")


def to_json(doc: WSIFDocument, indent: int = 2) -> str:
    """Convert a WSIF document to a JSON string."""
    data: dict[str, Any] = {
        "wsif_version": doc.version,
        "author": doc.author,
        "pages": [],
    }
    for page in doc.pages:
        data["pages"].append({
            "title": page.title,
            "attributes": int(page.attributes),
            "last_modified": page.last_modified,
            "content": _content_to_json(page),
        })
    return json.dumps(data, indent=indent, ensure_ascii=False)


def from_json(json_str: str) -> WSIFDocument:
    """Create a WSIF document from a JSON string.

    Validates the structure so malformed input fails with ValueError
    instead of producing half-built pages.
    """
    data = json.loads(json_str)
    if not isinstance(data, dict):
        raise ValueError("Invalid WSIF JSON: expected a JSON object at top level")

    pages = data.get("pages", [])
    if not isinstance(pages, list):
        raise ValueError("Invalid WSIF JSON: 'pages' must be an array")

    doc = WSIFDocument()
    author = data.get("author", "")
    if isinstance(author, str):
        doc.author = author

    for entry in pages:
        if not isinstance(entry, dict):
            continue
        title = entry.get("title")
        if not isinstance(title, str):
            raise ValueError("Invalid WSIF JSON: every page needs a string 'title'")
        attributes = entry.get("attributes", 0)
        last_modified = entry.get("last_modified", 0)
        if not isinstance(attributes, int) or not isinstance(last_modified, int):
            raise ValueError(f"Invalid WSIF JSON: bad attributes/last_modified for page {title!r}")
        doc.add_page(WSIFPage(
            title=title,
            content=_content_from_json(entry.get("content", "")),
            attributes=PageAttributes(attributes),
            last_modified=last_modified,
        ))
    return doc
