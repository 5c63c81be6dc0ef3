"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Turns bytes into requests and responses into bytes, and decides which
file a request names. No sockets, no threads: everything here works on
plain streams, which is what makes it easy to test with io.BytesIO.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       RequestParser: stream → HTTPRequest                │
    │ response.py      ResponseWriter: HTTPResponse → stream              │
    │                  (Content-Length or chunked)                        │
    │ paths.py         PathResolver: target → file under the root         │
    │ mime_types.py    suffix → Content-Type                              │
    │ status_codes.py  the five status codes we send                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, IncompleteBodyError
from .response import HTTPResponse, ResponseWriter, encode_chunked, iter_chunks
from .paths import PathResolver, PathTraversalError, normalize_path, split_target
from .status_codes import HTTPStatus
from .mime_types import get_content_type

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "IncompleteBodyError",

    # Response writing
    "HTTPResponse",
    "ResponseWriter",
    "encode_chunked",
    "iter_chunks",

    # Path resolution
    "PathResolver",
    "PathTraversalError",
    "normalize_path",
    "split_target",

    # Status codes
    "HTTPStatus",

    # Content types
    "get_content_type",
]
