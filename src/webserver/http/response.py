"""
=============================================================================
HTTP RESPONSE WRITER
=============================================================================

Serializes responses onto the connection, in one of two framings.

=============================================================================
FIXED-LENGTH VS CHUNKED
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  FIXED-LENGTH                      │  CHUNKED                       │
    ├────────────────────────────────────┼────────────────────────────────┤
    │  HTTP/1.1 200 OK\r\n               │  HTTP/1.1 200 OK\r\n           │
    │  Content-Length: 5\r\n             │  Transfer-Encoding: chunked\r\n│
    │  Content-Type: text/html\r\n       │  Content-Type: text/html\r\n   │
    │  \r\n                              │  \r\n                          │
    │  hello                             │  5\r\n                         │
    │                                    │  hello\r\n                     │
    │                                    │  0\r\n                         │
    │                                    │  \r\n                          │
    └────────────────────────────────────┴────────────────────────────────┘

The client picks: a "chunked: yes" request header selects chunked
framing, anything else gets Content-Length. A response never carries
both headers.

Chunk size lines are lowercase hex without leading zeros. Each chunk
holds at most chunk_size (4096) bytes; a 10000 byte body goes out as
1000, 1000, 710 (hex), then the zero-length terminator.

=============================================================================
HEAD
=============================================================================

HEAD gets exactly the headers GET would get. Only the body is left off,
and with chunked framing that includes the terminating zero chunk.

=============================================================================
ERRORS
=============================================================================

Error responses are a bare status line and a blank line:

    HTTP/1.1 404 Not Found\r\n
    \r\n

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Protocol
import logging

from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)

CRLF = b"\r\n"
DEFAULT_CHUNK_SIZE = 4096


class ByteSink(Protocol):
    """What the writer needs from a stream."""

    def write(self, data: bytes) -> int: ...

    def flush(self) -> None: ...


@dataclass
class HTTPResponse:
    """
    A response waiting to be written.

    Framing is not part of the response: the same HTTPResponse can go out
    fixed-length or chunked, which is what keeps GET and HEAD, chunked
    or not, consistent with each other.
    """

    status: HTTPStatus = HTTPStatus.OK
    content_type: Optional[str] = None
    body: bytes = b""
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def status_line(self) -> str:
        """Example: "HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"


def iter_chunks(body: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """
    Yield consecutive slices of body, each at most chunk_size bytes.

    An empty body yields nothing.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    view = memoryview(body)
    for offset in range(0, len(body), chunk_size):
        yield bytes(view[offset:offset + chunk_size])


def encode_chunk(data: bytes) -> bytes:
    """Frame one chunk: "<hex size>\\r\\n<data>\\r\\n"."""
    return f"{len(data):x}".encode("ascii") + CRLF + data + CRLF


LAST_CHUNK = b"0" + CRLF + CRLF


def encode_chunked(body: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """
    Encode a whole body with chunked framing, terminator included.

    Example:
        >>> encode_chunked(b"hello")
        b'5\\r\\nhello\\r\\n0\\r\\n\\r\\n'
    """
    return b"".join(encode_chunk(chunk) for chunk in iter_chunks(body, chunk_size)) + LAST_CHUNK


class ResponseWriter:
    """
    Writes exactly one response to a stream.

    =========================================================================
    WRITE ORDER
    =========================================================================

        headers_sent = True ──► status line + headers + blank line ──► flush
                     │
                     ▼
        body  (fixed: one write | chunked: one write per chunk + terminator)
                     │
                     ▼
        flush

    Once headers_sent is True, the status can no longer change. The
    handler uses that to decide between answering 500 and just dropping
    the connection when something fails.

    =========================================================================

    Usage:
        writer = ResponseWriter(conn)
        writer.send(HTTPResponse(HTTPStatus.OK, "text/html", b"hello"))

        writer = ResponseWriter(conn)
        writer.send_status(HTTPStatus.NOT_FOUND)
    """

    def __init__(self, stream: ByteSink, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.stream = stream
        self.chunk_size = chunk_size
        self.headers_sent = False
        self.status: Optional[HTTPStatus] = None
        self.body_bytes = 0
        self.chunked = False

    def send(self, response: HTTPResponse, chunked: bool = False, head_only: bool = False) -> None:
        """
        Write a complete response.

        Args:
            response: Status, content type and body to send.
            chunked: Use Transfer-Encoding: chunked instead of Content-Length.
            head_only: Send headers only (HEAD). Header values are computed
                       from the full body either way.

        Raises:
            OSError: If the stream fails. headers_sent is True once any
                     part of the head may have been written.
        """
        headers: Dict[str, str] = {}
        if chunked:
            headers["Transfer-Encoding"] = "chunked"
        else:
            headers["Content-Length"] = str(len(response.body))
        if response.content_type is not None:
            headers["Content-Type"] = response.content_type
        headers.update(response.headers)

        self.chunked = chunked
        self._write_head(response, headers)

        if head_only:
            self.stream.flush()
            return

        if chunked:
            for chunk in iter_chunks(response.body, self.chunk_size):
                self.stream.write(encode_chunk(chunk))
                self.body_bytes += len(chunk)
            self.stream.write(LAST_CHUNK)
        elif response.body:
            self.stream.write(response.body)
            self.body_bytes = len(response.body)

        self.stream.flush()

    def send_status(self, status: HTTPStatus, version: str = "HTTP/1.1") -> None:
        """Write a bare status line plus blank line, no headers, no body."""
        self._write_head(HTTPResponse(status=status, version=version), {})
        self.stream.flush()

    def _write_head(self, response: HTTPResponse, headers: Dict[str, str]) -> None:
        if self.headers_sent:
            raise RuntimeError("Response headers already sent")

        lines = [response.status_line]
        for name, value in headers.items():
            lines.append(f"{name}: {value}")
            logger.debug(f"Response Header: {name}: {value}")

        head = "\r\n".join(lines).encode("utf-8") + CRLF + CRLF

        # A head that fails partway may already be on the wire
        self.status = response.status
        self.headers_sent = True
        self.stream.write(head)
        self.stream.flush()
