"""
=============================================================================
REQUEST HANDLER
=============================================================================

Runs one request from first byte to closed connection: parse, dispatch on
method, answer.

=============================================================================
REQUEST STATES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   PARSE_REQUEST ──(None)──────────────────────────────────┐          │
    │        │                                                   │          │
    │        │ (HTTPParseError → 400)                            │          │
    │        ▼                                                   │          │
    │    DISPATCH                                                │          │
    │        │                                                   │          │
    │        ├── GET / HEAD ────────► SERVE_FILE ───────────────┤          │
    │        ├── POST /params_info ─► STORE_AND_RENDER_PARAMS ──┤          │
    │        ├── POST (other) ──────► SERVE_FILE ───────────────┤          │
    │        ├── TRACE ─────────────► ECHO ─────────────────────┤          │
    │        └── anything else ─────► NOT_IMPLEMENTED ──────────┤          │
    │                                                            ▼          │
    │                                                         CLOSED       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

State lives for one request only. The one thing shared between
requests (and workers) is the ParameterStore.

=============================================================================
WHAT GETS STORED
=============================================================================

    ┌──────────────────────────────┬──────────────────────────────────────┐
    │ Request                      │ Appended to the store                │
    ├──────────────────────────────┼──────────────────────────────────────┤
    │ GET /file?q=1  (file found)  │ query parameters                     │
    │ HEAD /file?q=1               │ nothing                              │
    │ POST /params_info.html?a=1   │ query + body, body wins per name     │
    │ POST /file?a=1 (file found)  │ body parameters only                 │
    │ TRACE, errors                │ nothing                              │
    └──────────────────────────────┴──────────────────────────────────────┘

=============================================================================
FAILURES
=============================================================================

Anything that goes wrong before the status line is on the wire can still
be reported (500). After that the status is fixed and the only honest
thing left is to drop the connection.

=============================================================================
"""

import logging
import time
from enum import Enum
from typing import Callable, Dict, Optional

from .http.mime_types import DEFAULT_TYPE, HTML_TYPE, get_content_type
from .http.paths import PathResolver, PathTraversalError
from .http.request import (
    ByteSource,
    HTTPParseError,
    HTTPRequest,
    IncompleteBodyError,
    RequestParser,
)
from .http.response import DEFAULT_CHUNK_SIZE, ByteSink, HTTPResponse, ResponseWriter
from .http.status_codes import HTTPStatus
from .params import (
    PARAMS_PAGE_NAME,
    ParameterStore,
    merge_parameters,
    parse_parameters,
)


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("webserver.access")

PARAMS_PAGE_PATH = "/" + PARAMS_PAGE_NAME


class RequestState(Enum):
    """Where a request is in its lifecycle."""
    PARSE_REQUEST = "parse_request"
    DISPATCH = "dispatch"
    SERVE_FILE = "serve_file"
    ECHO = "echo"
    STORE_AND_RENDER_PARAMS = "store_and_render_params"
    NOT_IMPLEMENTED = "not_implemented"
    CLOSED = "closed"


class _Exchange:
    """One request/response pair and where it has got to."""

    def __init__(self, writer: ResponseWriter, client: str):
        self.writer = writer
        self.client = client
        self.request: Optional[HTTPRequest] = None
        self.state = RequestState.PARSE_REQUEST

    def enter(self, state: RequestState) -> None:
        logger.debug(f"[{self.client}] {self.state.value} -> {state.value}")
        self.state = state


class RequestHandler:
    """
    Answers one request per call to handle().

    Stateless apart from the shared ParameterStore, so one instance
    serves every worker thread.

    Usage:
        handler = RequestHandler(PathResolver("~/www"), ParameterStore())
        status = handler.handle(conn, conn, conn.address)
    """

    def __init__(
        self,
        resolver: PathResolver,
        store: ParameterStore,
        parser: Optional[RequestParser] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.resolver = resolver
        self.store = store
        self.parser = parser or RequestParser()
        self.chunk_size = chunk_size

        self._dispatch: Dict[str, Callable[[_Exchange, HTTPRequest], None]] = {
            "GET": self._handle_get,
            "HEAD": self._handle_head,
            "POST": self._handle_post,
            "TRACE": self._handle_trace,
        }

    @property
    def params_page(self):
        """Where the rendered parameter page is persisted."""
        return self.resolver.document_root / PARAMS_PAGE_NAME

    def handle(
        self,
        rfile: ByteSource,
        wfile: ByteSink,
        client_address: Optional[tuple] = None,
    ) -> Optional[HTTPStatus]:
        """
        Read one request from rfile and write its response to wfile.

        Args:
            rfile: Source of request bytes.
            wfile: Destination for response bytes.
            client_address: (host, port), for logging only.

        Returns:
            The status sent (or whose status line was being written when
            the connection failed), or None if nothing was sent.
        """
        client = f"{client_address[0]}:{client_address[1]}" if client_address else "-"
        exchange = _Exchange(ResponseWriter(wfile, self.chunk_size), client)
        started = time.perf_counter()

        try:
            self._run(exchange, rfile)
        except IncompleteBodyError as e:
            logger.warning(f"[{client}] Dropping connection: {e}")
        except Exception as e:
            self._fail(exchange, e)
        finally:
            exchange.enter(RequestState.CLOSED)

        if exchange.writer.status is not None:
            self._log_access(exchange, time.perf_counter() - started)
        return exchange.writer.status

    def _run(self, exchange: _Exchange, rfile: ByteSource) -> None:
        try:
            request = self.parser.parse(rfile)
        except HTTPParseError as e:
            logger.info(f"[{exchange.client}] Bad request: {e}")
            exchange.writer.send_status(HTTPStatus(e.status_code))
            return

        if request is None:
            logger.debug(f"[{exchange.client}] Empty request, closing")
            return

        exchange.request = request
        logger.info(f"[{exchange.client}] Request: {request.request_line}")

        exchange.enter(RequestState.DISPATCH)
        action = self._dispatch.get(request.method, self._handle_not_implemented)
        action(exchange, request)

    def _fail(self, exchange: _Exchange, error: Exception) -> None:
        """Answer 500 if the status line is not out yet, else just drop."""
        if exchange.writer.headers_sent:
            logger.warning(
                f"[{exchange.client}] Failure after headers sent, dropping connection: {error}"
            )
            return

        logger.exception(f"[{exchange.client}] Error handling request: {error}")
        try:
            exchange.writer.send_status(HTTPStatus.INTERNAL_SERVER_ERROR)
        except OSError as e:
            logger.warning(f"[{exchange.client}] Could not send 500: {e}")

    # =========================================================================
    # METHODS
    # =========================================================================

    def _handle_get(self, exchange: _Exchange, request: HTTPRequest) -> None:
        exchange.enter(RequestState.SERVE_FILE)
        self._serve_file(exchange, request, parse_parameters(request.query))

    def _handle_head(self, exchange: _Exchange, request: HTTPRequest) -> None:
        exchange.enter(RequestState.SERVE_FILE)
        self._serve_file(exchange, request, head_only=True)

    def _handle_post(self, exchange: _Exchange, request: HTTPRequest) -> None:
        if request.body is None:
            logger.info(f"[{exchange.client}] POST without a valid Content-Length")
            exchange.writer.send_status(HTTPStatus.BAD_REQUEST)
            return

        body_params = parse_parameters(request.body.decode("utf-8", errors="replace"))
        params = merge_parameters(parse_parameters(request.query), body_params)

        if request.path == PARAMS_PAGE_PATH:
            exchange.enter(RequestState.STORE_AND_RENDER_PARAMS)
            html = self.store.append_and_publish(params, self.params_page)
            exchange.writer.send(
                HTTPResponse(HTTPStatus.OK, HTML_TYPE, html.encode("utf-8")),
                chunked=request.wants_chunked,
            )
            return

        exchange.enter(RequestState.SERVE_FILE)
        self._serve_file(exchange, request, body_params)

    def _handle_trace(self, exchange: _Exchange, request: HTTPRequest) -> None:
        exchange.enter(RequestState.ECHO)
        lines = [request.request_line]
        lines.extend(f"{name}: {value}" for name, value in request.headers.items())
        body = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")

        exchange.writer.send(
            HTTPResponse(HTTPStatus.OK, DEFAULT_TYPE, body),
            chunked=request.wants_chunked,
        )

    def _handle_not_implemented(self, exchange: _Exchange, request: HTTPRequest) -> None:
        exchange.enter(RequestState.NOT_IMPLEMENTED)
        exchange.writer.send_status(HTTPStatus.NOT_IMPLEMENTED)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _serve_file(
        self,
        exchange: _Exchange,
        request: HTTPRequest,
        params: Optional[dict] = None,
        head_only: bool = False,
    ) -> None:
        """
        Send the file the target names.

        params are appended to the store once the file has been found
        and read, before the response goes out. A 400 or 404 stores
        nothing.
        """
        try:
            path = self.resolver.resolve(request.target)
        except PathTraversalError:
            exchange.writer.send_status(HTTPStatus.BAD_REQUEST)
            return

        if path is None:
            logger.info(f"[{exchange.client}] Not found: {request.path}")
            exchange.writer.send_status(HTTPStatus.NOT_FOUND)
            return

        body = path.read_bytes()

        if params:
            added = self.store.append(params)
            logger.info(f"[{exchange.client}] Stored parameters: {added}")

        exchange.writer.send(
            HTTPResponse(HTTPStatus.OK, get_content_type(path), body),
            chunked=request.wants_chunked,
            head_only=head_only,
        )

    def _log_access(self, exchange: _Exchange, duration: float) -> None:
        writer = exchange.writer
        request_line = exchange.request.request_line if exchange.request else "-"
        framing = "chunked" if writer.chunked else "fixed"
        access_logger.info(
            f'{exchange.client} "{request_line}" {int(writer.status)} '
            f"{writer.body_bytes} {framing} {duration * 1000:.2f}ms"
        )
