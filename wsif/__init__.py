"""
WSIF - Wiki on a Stick Interchange Format.
Read and write multi-page wiki archives.

Inline bodies, external blobs, nested archives.
"""

__version__ = "1.3.3"
__format_version__ = "1.3.1"

from wsif.spec import WSIF_VERSION, PageAttributes
from wsif.errors import WSIFError, StructuralError, RecordError
from wsif.document import WSIFDocument, WSIFPage
from wsif.reader import WSIFReader, LoadResult
from wsif.writer import WSIFWriter
