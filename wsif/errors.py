"""
WSIF errors.

StructuralError aborts a whole load. RecordError only costs the page that
raised it; the reader logs it and keeps scanning.
"""

from __future__ import annotations


class WSIFError(ValueError):
    """Base class for everything the codec raises."""


class EcmaEncodingError(WSIFError):
    """A \\uXXXX escape or UTF-8 sequence the codec cannot represent."""


# =============================================================================
# Structural errors
# =============================================================================

class StructuralError(WSIFError):
    pass


class MissingVersionError(StructuralError):
    pass


class UnsupportedVersionError(StructuralError):
    def __init__(self, message: str, version: str) -> None:
        super().__init__(message)
        self.version = version


class HeaderNameError(StructuralError):
    pass


class TruncatedHeaderError(StructuralError):
    pass


class DocumentLoadError(StructuralError):
    """The archive file itself could not be read."""


# =============================================================================
# Per-record errors
# =============================================================================

class RecordError(WSIFError):
    def __init__(self, message: str, title: str = "") -> None:
        super().__init__(message)
        self.title = title


class MissingFieldError(RecordError):
    pass


class MissingFilenameError(MissingFieldError):
    pass


class InvalidDispositionError(RecordError):
    pass


class StartBoundaryNotFound(RecordError):
    pass


class EndBoundaryNotFound(RecordError):
    pass


class BadEncodingError(RecordError):
    pass


class BadEncryptedEncodingError(BadEncodingError):
    pass


class BadExternalEncodingError(BadEncodingError):
    pass


class UnknownEncodingError(BadEncodingError):
    pass


class ExternalLoadError(RecordError):
    pass


class RecursionLimitError(RecordError):
    pass


class ImportHookError(RecordError):
    pass
