"""
pytest configuration and fixtures.
"""

import io
import socket
import threading
from pathlib import Path
from typing import Generator, Optional

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from webserver import ServerConfig, WebServer
from webserver.handler import RequestHandler
from webserver.http.paths import PathResolver
from webserver.params import ParameterStore


@pytest.fixture
def doc_root(tmp_path: Path) -> Path:
    """A document root with a few files in it."""
    root = tmp_path / "www"
    root.mkdir()
    (root / "index.html").write_bytes(b"hello")
    (root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 100)
    (root / "big.bin").write_bytes(bytes(range(256)) * 40)  # 10240 bytes
    (root / "docs").mkdir()
    (root / "docs" / "index.html").write_bytes(b"<h1>docs</h1>")
    (root / "empty").mkdir()
    return root


@pytest.fixture
def store() -> ParameterStore:
    return ParameterStore()


@pytest.fixture
def handler(doc_root: Path, store: ParameterStore) -> RequestHandler:
    return RequestHandler(PathResolver(doc_root), store)


class RawResponse:
    """A response split back into status line, headers and body."""

    def __init__(self, raw: bytes):
        self.raw = raw
        head, sep, self.body = raw.partition(b"\r\n\r\n")
        assert sep, f"No header terminator in {raw!r}"
        lines = head.decode("utf-8").split("\r\n")
        self.status_line = lines[0]
        self.status = int(self.status_line.split(" ")[1])
        self.headers = dict(line.split(": ", 1) for line in lines[1:])

    @property
    def decoded_body(self) -> bytes:
        """Body with chunked framing removed, if it was chunked."""
        if self.headers.get("Transfer-Encoding") == "chunked":
            return decode_chunked(self.body)
        return self.body


def decode_chunked(data: bytes) -> bytes:
    """Reassemble a chunked body. Fails on anything after the last chunk."""
    body = b""
    while True:
        size_line, sep, data = data.partition(b"\r\n")
        assert sep, "Truncated chunk size line"
        size = int(size_line, 16)
        if size == 0:
            assert data == b"\r\n", f"Unexpected trailer: {data!r}"
            return body
        chunk, data = data[:size], data[size:]
        assert len(chunk) == size
        assert data.startswith(b"\r\n")
        data = data[2:]
        body += chunk


def request_bytes(
    method: str = "GET",
    target: str = "/",
    headers: Optional[dict] = None,
    body: Optional[bytes] = None,
) -> bytes:
    """Build a raw request. Host is added unless headers says otherwise."""
    all_headers = {"Host": "localhost:8080"}
    if body is not None:
        all_headers["Content-Length"] = str(len(body))
    all_headers.update(headers or {})

    lines = [f"{method} {target} HTTP/1.1"]
    lines += [f"{name}: {value}" for name, value in all_headers.items() if value is not None]
    return ("\r\n".join(lines) + "\r\n\r\n").encode() + (body or b"")


@pytest.fixture
def make_request():
    """The request_bytes() builder."""
    return request_bytes


@pytest.fixture
def dechunk():
    """The decode_chunked() helper."""
    return decode_chunked


@pytest.fixture
def parse_response():
    """Split raw response bytes into a RawResponse."""
    return RawResponse


@pytest.fixture
def run_request(handler: RequestHandler):
    """
    Feed raw request bytes through the handler.

    Returns (status, RawResponse or None if nothing was written).
    """
    def run(raw: bytes):
        out = io.BytesIO()
        status = handler.handle(io.BytesIO(raw), out, ("127.0.0.1", 12345))
        written = out.getvalue()
        return status, (RawResponse(written) if written else None)
    return run


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, server: WebServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"setup_logging": False},
            daemon=True,
        )
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def send(self, raw: bytes) -> bytes:
        """Send raw bytes, half-close, and read until the server closes."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=5.0) as s:
            s.sendall(raw)
            s.shutdown(socket.SHUT_WR)
            chunks = []
            while True:
                data = s.recv(65536)
                if not data:
                    break
                chunks.append(data)
        return b"".join(chunks)


@pytest.fixture
def test_server(doc_root: Path) -> Generator[TestServer, None, None]:
    """A real WebServer on a free port, serving doc_root."""
    server = WebServer(ServerConfig(
        host="127.0.0.1",
        port=0,
        root=str(doc_root),
        max_threads=4,
        read_timeout=5.0,
        log_level="WARNING",
    ))

    test_srv = TestServer(server)
    test_srv.start()

    yield test_srv

    test_srv.stop()
