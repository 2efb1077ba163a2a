"""Shared builders for hand-written WSIF archives."""

from __future__ import annotations

import os

_HEADER_NAMES = {"filename": "disposition.filename"}


def page_record(title: str, body: bytes | None = None, **headers) -> bytes:
    """One page record. Headers are written in keyword order.

    When body is given, it is framed with the record's boundary header.
    """
    out = f"woas.page.title: {title}\n".encode("utf-8")
    for name, value in headers.items():
        out += f"woas.page.{_HEADER_NAMES.get(name, name)}: {value}\n".encode("utf-8")
    if body is not None:
        delimiter = f"\n--{headers['boundary']}\n".encode("utf-8")
        out += delimiter + body + delimiter
    return out


def archive(*records: bytes, version: str | None = "1.3.1", extra: bytes = b"") -> bytes:
    head = b""
    if version is not None:
        head += f"wsif.version: {version}\n".encode("utf-8")
    head += extra
    return head + b"\n" + b"".join(records)


def text_record(title: str, text: bytes, boundary: str = "BND", **headers) -> bytes:
    attributes = headers.pop("attributes", 0)
    encoding = headers.pop("encoding", "8bit/plain")
    return page_record(
        title, text,
        attributes=attributes,
        encoding=encoding,
        disposition="inline",
        boundary=boundary,
        **headers,
    )


def reference_record(title: str, filename: str) -> bytes:
    return page_record(
        title, attributes=0, encoding="text/wsif", disposition="external", filename=filename,
    ) + b"\n"


class MemoryStorage:
    """Dict-backed stand-in for FileStorage."""

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files = {os.path.normpath(k): v for k, v in (files or {}).items()}

    def read_file(self, path: str) -> bytes:
        try:
            return self.files[os.path.normpath(path)]
        except KeyError:
            raise FileNotFoundError(path) from None

    def write_file(self, path: str, data: bytes) -> None:
        self.files[os.path.normpath(path)] = bytes(data)


class FailingStorage(MemoryStorage):
    """MemoryStorage that refuses to write files whose name matches.

    With once=True only the first matching write fails.
    """

    def __init__(self, fail_on: str, once: bool = False) -> None:
        super().__init__()
        self.fail_on = fail_on
        self.once = once

    def write_file(self, path: str, data: bytes) -> None:
        if os.path.basename(path) == self.fail_on:
            if self.once:
                self.fail_on = None
            raise OSError(f"disk full: {path}")
        super().write_file(path, data)


class Collector:
    """create_page hook that records every call."""

    def __init__(self, fail_titles: tuple[str, ...] = ()) -> None:
        self.pages: list[tuple[str, bytes, int, int]] = []
        self.fail_titles = fail_titles

    def __call__(self, title, content, attributes, last_modified):
        if title in self.fail_titles:
            return -1
        self.pages.append((title, content, int(attributes), last_modified))
        return len(self.pages) - 1

    @property
    def titles(self) -> list[str]:
        return [p[0] for p in self.pages]

    def content(self, title: str) -> bytes:
        for t, content, _, _ in self.pages:
            if t == title:
                return content
        raise KeyError(title)
