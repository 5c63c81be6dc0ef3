"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Reads exactly one HTTP/1.1 request off a byte stream and turns it into an
HTTPRequest.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  REQUEST LINE     POST /params_info.html?src=form HTTP/1.1\r\n      │
    │                   ─┬── ──────────┬────────────── ───┬────           │
    │                  Method       Target            Version             │
    │                                                                      │
    │  HEADERS          Host: localhost:8080\r\n                          │
    │                   Content-Length: 19\r\n                            │
    │                   chunked: yes\r\n                                  │
    │                                                                      │
    │  EMPTY LINE       \r\n                                              │
    │                                                                      │
    │  BODY             name=alice&name=bob          (exactly 19 bytes)   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STREAMING, NOT BUFFER-THEN-PARSE
=============================================================================

The parser never asks for "the whole request". It pulls one line at a
time until the blank line, then, if Content-Length says so, exactly N
more bytes. Anything with readline() and read(n) works as a source:

    Connection  (socket-backed, see core/connection.py)
    io.BytesIO  (tests)

Body reads loop. read(n) is allowed to return fewer than n bytes (TCP
delivers data in arbitrary pieces) so we keep asking until we have all
of it or the stream ends. Ending early is an I/O failure, not a short
but valid body.

=============================================================================
OUTCOMES
=============================================================================

    ┌───────────────────────────────┬─────────────────────────────────────┐
    │ Situation                     │ parse() result                      │
    ├───────────────────────────────┼─────────────────────────────────────┤
    │ Well-formed request           │ HTTPRequest                         │
    │ Stream closed before any byte │ None  (nothing to answer)           │
    │ < 3 tokens in request line    │ HTTPParseError (400)                │
    │ Version not "HTTP/..."        │ HTTPParseError (400)                │
    │ No Host header                │ HTTPParseError (400)                │
    │ Body shorter than promised    │ IncompleteBodyError (drop conn)     │
    │ Header line without ": "      │ ignored                             │
    └───────────────────────────────┴─────────────────────────────────────┘

=============================================================================
INTERVIEW QUESTIONS ABOUT HTTP PARSING
=============================================================================

Q: "How do you know when the headers end?"
A: "An empty line. We read line by line and stop at the first one that
   is empty once the line terminator is stripped."

Q: "Why not trust a single recv() to hold the body?"
A: "TCP is a byte stream. A 10 KB body can arrive as 1 KB + 9 KB, or
   byte by byte. Reading exactly Content-Length bytes means looping."

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Protocol
import logging


logger = logging.getLogger(__name__)


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the HTTP status code to answer with. Everything the parser
    rejects is a 400 Bad Request: a short request line, a version token
    that isn't HTTP/..., or a missing Host header.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class IncompleteBodyError(ConnectionError):
    """
    Raised when the stream ends before Content-Length bytes arrived.

    This is an I/O failure on the connection, not a client mistake we can
    report. The peer is gone (or has stopped talking), so the connection
    is simply dropped.
    """

    def __init__(self, expected: int, received: int):
        super().__init__(f"Incomplete body: expected {expected} bytes, got {received}")
        self.expected = expected
        self.received = received


class ByteSource(Protocol):
    """What the parser needs from a stream."""

    def readline(self, size: int = -1) -> bytes: ...

    def read(self, size: int = -1) -> bytes: ...


@dataclass(frozen=True)
class HTTPRequest:
    """
    A parsed HTTP request. Immutable once built.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:   Method token exactly as sent ("GET", "POST", "PUT", ...)

        target:   Raw request target, query included
                  "/form.html?name=alice"

        version:  Protocol token ("HTTP/1.1")

        headers:  Header name → value. Names keep the client's spelling
                  (lookups are case-sensitive) and a repeated name keeps
                  the last value.

        body:     Exactly Content-Length bytes, or None when no valid
                  Content-Length was sent. b"" means "Content-Length: 0".

    =========================================================================
    """

    method: str
    target: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    @property
    def request_line(self) -> str:
        """The request line, rebuilt from its three tokens."""
        return f"{self.method} {self.target} {self.version}"

    @property
    def path(self) -> str:
        """Target without the query component."""
        return self.target.partition("?")[0]

    @property
    def query(self) -> Optional[str]:
        """Query component, or None if the target has no "?"."""
        _, sep, query = self.target.partition("?")
        return query if sep else None

    @property
    def wants_chunked(self) -> bool:
        """
        Whether the client asked for a chunked response.

        "chunked: yes" is a private, non-standard header. It shapes our
        *response*; it says nothing about how the request was encoded.
        """
        return self.headers.get("chunked", "").lower() == "yes"

    @property
    def has_body(self) -> bool:
        """True when a valid Content-Length was supplied."""
        return self.body is not None


class RequestParser:
    """
    Incremental parser: one request per call to parse().

    ==========================================================================
    PARSER FLOW
    ==========================================================================

        stream.readline()  ──►  request line ──► 3 tokens? HTTP/ prefix?
                                      │
                                      ▼
        stream.readline()  ──►  header lines until "" ──► "Name: value"
                                      │
                                      ▼
                                Host present?
                                      │
                                      ▼
        stream.read(n)     ──►  body (loop until Content-Length bytes)
                                      │
                                      ▼
                                HTTPRequest

    ==========================================================================
    """

    def __init__(self, max_header_bytes: int = 64 * 1024):
        """
        Args:
            max_header_bytes: Upper bound on request line + headers.
                              Past it the request is rejected as malformed
                              rather than buffered without limit.
        """
        self.max_header_bytes = max_header_bytes

    def parse(self, stream: ByteSource) -> Optional[HTTPRequest]:
        """
        Read and parse one request from a stream.

        Args:
            stream: Binary source with readline() and read(n).

        Returns:
            The parsed request, or None if the stream was closed before
            any byte arrived.

        Raises:
            HTTPParseError: Malformed request line or missing Host.
            IncompleteBodyError: Stream ended inside the body.
        """
        raw_line = stream.readline(self.max_header_bytes + 1)
        if not raw_line:
            return None

        consumed = len(raw_line)
        self._check_size(consumed)

        method, target, version = self._parse_request_line(_decode_line(raw_line))
        logger.debug(f"Request line: {method} {target} {version}")

        headers, header_bytes = self._read_headers(stream, consumed)
        self._check_size(consumed + header_bytes)

        if "Host" not in headers:
            raise HTTPParseError("Missing Host header")

        content_length = _parse_content_length(headers.get("Content-Length"))
        body = None
        if content_length is not None:
            body = self._read_body(stream, content_length)

        return HTTPRequest(
            method=method,
            target=target,
            version=version,
            headers=headers,
            body=body,
        )

    def _check_size(self, size: int) -> None:
        if size > self.max_header_bytes:
            raise HTTPParseError(f"Request head too large: {size} bytes")

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        """
        Split "METHOD SP TARGET SP VERSION".

        Tokens past the third are ignored, as the request line is split
        on single spaces and only the first three are meaningful.
        """
        tokens = line.split(" ")
        while tokens and tokens[-1] == "":
            tokens.pop()

        if len(tokens) < 3:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = tokens[0], tokens[1], tokens[2]
        if not version.startswith("HTTP/"):
            raise HTTPParseError(f"Invalid protocol token: {version!r}")

        return method, target, version

    def _read_headers(self, stream: ByteSource, consumed: int) -> tuple[Dict[str, str], int]:
        """
        Read header lines up to the blank separator line.

        Lines that don't contain ": " are skipped (lenient parsing).
        Returns the headers and the number of bytes read.
        """
        headers: Dict[str, str] = {}
        total = 0

        while True:
            raw_line = stream.readline(self.max_header_bytes + 1)
            total += len(raw_line)
            self._check_size(consumed + total)

            line = _decode_line(raw_line)
            if not line:
                # Blank separator, or the client stopped after the headers
                break

            name, sep, value = line.partition(": ")
            if not sep:
                logger.debug(f"Ignoring malformed header line: {line!r}")
                continue

            name = name.strip()
            value = value.strip()
            headers[name] = value
            logger.debug(f"Request Header: {name}: {value}")

        return headers, total

    def _read_body(self, stream: ByteSource, length: int) -> bytes:
        """Read exactly length bytes, looping over short reads."""
        chunks = []
        received = 0

        while received < length:
            chunk = stream.read(length - received)
            if not chunk:
                raise IncompleteBodyError(length, received)
            chunks.append(chunk)
            received += len(chunk)

        return b"".join(chunks)


def _decode_line(raw: bytes) -> str:
    """Decode a header-section line and strip its CRLF (or bare LF)."""
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


def _parse_content_length(value: Optional[str]) -> Optional[int]:
    """Content-Length as an int, or None if absent or not a non-negative integer."""
    if value is None or not (value.isascii() and value.isdigit()):
        return None
    return int(value)
