"""
WSIF Storage - Filesystem boundary for reader and writer.

Anything with the same two methods can stand in for FileStorage
(an in-memory dict, a zip file, ...). Failures are reported as OSError.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol

from wsif.spec import MAX_FILE_SIZE


class Storage(Protocol):
    def read_file(self, path: str) -> bytes: ...

    def write_file(self, path: str, data: bytes) -> None: ...


class FileStorage:
    """Local filesystem storage with atomic writes."""

    def __init__(self, max_size: int = MAX_FILE_SIZE, mode: int = 0o644) -> None:
        self.max_size = max_size
        self.mode = mode

    def read_file(self, path: str) -> bytes:
        file_size = Path(path).stat().st_size
        if file_size > self.max_size:
            raise OSError(
                f"File size {file_size} exceeds maximum {self.max_size} bytes"
            )
        with open(path, "rb") as f:
            return f.read()

    def write_file(self, path: str, data: bytes) -> None:
        """Write-to-temp-then-rename, so a crash never leaves a half archive."""
        dir_name = os.path.dirname(os.path.abspath(path)) or "."
        fd, tmp_path = tempfile.mkstemp(dir=dir_name, suffix=".wsif.tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, self.mode)
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
