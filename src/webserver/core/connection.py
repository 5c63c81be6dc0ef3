"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket in a small file-like API the request
handler can read lines and exact byte counts from, and write to.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

TCP does not preserve message boundaries. It only guarantees that bytes
arrive in order and intact.

    Client sends:
        send("GET /index.html HTTP/1.1\r\nHost: x\r\n\r\n")

    Server might receive:
        recv() → "GET /ind"
        recv() → "ex.html HTTP/1.1\r\nHo"
        recv() → "st: x\r\n\r\n"

So we keep a buffer. readline() pulls from the socket until the buffer
holds a "\n"; read(n) hands back what is buffered first and only then
touches the socket.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        CONNECTION BUFFER                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   socket.recv(buffer_size)                                          │
    │          │                                                           │
    │          ▼                                                           │
    │   ┌──────────────────────────────────────────┐                      │
    │   │ GET / HTTP/1.1\r\nHost: x\r\n\r\nname=a… │  _buffer             │
    │   └──────────────────────────────────────────┘                      │
    │          │                          │                                │
    │    readline() takes up to "\n"   read(n) takes the next n bytes     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

One request per connection. No keep-alive.

    NEW ──► READING ──► WRITING ──► CLOSING ──► CLOSED
                │                       ▲
                └───── (error / EOF) ───┘

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, for logging and clean shutdown."""
    NEW = "new"              # Just accepted, nothing read yet
    READING = "reading"      # Reading the request
    WRITING = "writing"      # Sending the response
    CLOSING = "closing"      # Shutdown sequence in progress
    CLOSED = "closed"        # Socket released


@dataclass
class Connection:
    """
    A client connection exposing readline(), read(), write() and flush().

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used in log lines.
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
        buffer_size: Bytes requested per recv().
        timeout: Read/write timeout in seconds, or None to block forever.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    buffer_size: int = 8192
    timeout: Optional[float] = None

    _buffer: bytes = field(default=b"", repr=False)
    _eof: bool = field(default=False, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def readline(self, size: int = -1) -> bytes:
        """
        Read up to and including the next b"\\n".

        Returns fewer bytes (possibly b"") if the peer closes first, and
        at most size bytes when size is non-negative, mirroring
        io.BufferedReader.readline().

        Raises:
            TimeoutError: If the read timeout expires.
        """
        self.state = ConnectionState.READING

        while True:
            newline = self._buffer.find(b"\n")
            if newline >= 0:
                end = newline + 1
                break
            if 0 <= size <= len(self._buffer):
                end = size
                break
            if not self._fill():
                end = len(self._buffer)
                break

        if 0 <= size < end:
            end = size

        line, self._buffer = self._buffer[:end], self._buffer[end:]
        return line

    def read(self, size: int = -1) -> bytes:
        """
        Read at most size bytes.

        Buffered bytes are returned first without touching the socket.
        A short result is allowed; b"" means the peer closed.
        """
        self.state = ConnectionState.READING

        if not self._buffer and size != 0:
            self._fill()

        if size < 0:
            size = len(self._buffer)

        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def _fill(self) -> bool:
        """Append one recv() worth of data to the buffer. False on EOF."""
        if self._eof:
            return False

        data = self._recv()
        if not data:
            self._eof = True
            return False

        self._buffer += data
        return True

    def _recv(self) -> bytes:
        """
        Receive data from the socket.

        A reset from the client reads as end-of-stream; a timeout
        propagates so the caller can treat it as an I/O failure.
        """
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def write(self, data: bytes) -> int:
        """
        Send all of data.

        Unlike a buffered file, nothing is held back: sendall() returns
        only once the kernel has taken every byte. Failures raise OSError.
        """
        self.state = ConnectionState.WRITING
        self.socket.sendall(data)
        return len(data)

    def flush(self) -> None:
        """No-op; write() is unbuffered."""

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR) sends FIN: we're done sending
        2. Drain whatever the client still had in flight
        3. close() releases the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self):
        """
        Allows:

            with Connection(sock, addr) as conn:
                handler.handle(conn, conn, conn.address)
            # closed here
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
