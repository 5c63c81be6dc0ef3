"""
=============================================================================
WEB SERVER
=============================================================================

Wires the pieces together and owns their lifetimes.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                            WebServer                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer ── accept() ──► Connection                            │
    │                                    │                                 │
    │                                    ▼ submit()                        │
    │   ThreadPool  ─────────────►  Worker thread                          │
    │                                    │                                 │
    │                                    ▼                                 │
    │   RequestHandler.handle(conn, conn)                                  │
    │        │              │                                              │
    │        ▼              ▼                                              │
    │   PathResolver   ParameterStore   (one per WebServer, shared by     │
    │                                    every worker)                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

One request per connection: the worker handles it, then closes the
socket.

=============================================================================
"""

import logging
from typing import Optional

from .config import ServerConfig
from .core.connection import Connection
from .core.socket_server import SocketServer
from .core.thread_pool import ThreadPool
from .handler import RequestHandler
from .http.paths import PathResolver
from .http.request import RequestParser
from .params import ParameterStore


logger = logging.getLogger(__name__)


class WebServer:
    """
    A static file server with a parameter store.

    Usage:
        server = WebServer(ServerConfig(port=8080, root="~/www"))
        server.run()    # Blocks until Ctrl+C / SIGTERM / shutdown()

    For tests or embedding, run() can be called from a background thread
    and stopped with shutdown().
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration. Defaults are used if omitted.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        root = self.config.document_root
        if not root.is_dir():
            logger.warning(f"Document root {root} does not exist or is not a directory")

        # ─────────────────────────────────────────────────────────────────
        # SHARED STATE
        # ─────────────────────────────────────────────────────────────────

        self.store = ParameterStore()

        # ─────────────────────────────────────────────────────────────────
        # REQUEST PROCESSING
        # ─────────────────────────────────────────────────────────────────

        self.resolver = PathResolver(root, default_page=self.config.default_page)
        self.handler = RequestHandler(
            resolver=self.resolver,
            store=self.store,
            parser=RequestParser(max_header_bytes=self.config.max_header_bytes),
        )

        # ─────────────────────────────────────────────────────────────────
        # CONCURRENCY
        # ─────────────────────────────────────────────────────────────────

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            workers=self.config.max_threads,
            queue_size=self.config.queue_size,
        )

    @property
    def address(self):
        """(host, port) actually bound, or None when not listening."""
        return self._socket_server.bound_address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def run(self, setup_logging: bool = True):
        """
        Start serving (blocking).

        Args:
            setup_logging: Configure the root logger from config.log_level.
                           Tests pass False to keep pytest's handlers.

        Raises:
            OSError: If the address cannot be bound.
        """
        if setup_logging:
            self._setup_logging()

        self._thread_pool.start()
        logger.info(f"Starting web server on {self.config.host}:{self.config.port}")
        logger.info(f"Serving {self.resolver.document_root}")

        try:
            self._socket_server.start(self._handle_connection, on_ready=self._print_startup_banner)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Stop accepting connections; run() returns once in-flight work is done."""
        self._socket_server.shutdown()

    def _print_startup_banner(self):
        host, port = self.address
        print()
        print("╔══════════════════════════════════════════════════════════════╗")
        print(f"║  {self.config.server_name} running")
        print(f"║  http://{host}:{port}")
        print(f"║  Root:    {self.resolver.document_root}")
        print(f"║  Workers: {self.config.max_threads} threads")
        print("║  Press Ctrl+C to stop")
        print("╚══════════════════════════════════════════════════════════════╝")
        print()

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("webserver").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._thread_pool.shutdown(wait=True, timeout=30.0)
        logger.info("Server stopped")

    def _handle_connection(self, conn: Connection):
        """Queue a connection for a worker (runs on the accept thread)."""
        self._thread_pool.submit(self._process_connection, args=(conn,))

    def _process_connection(self, conn: Connection):
        """Handle the connection's one request, then close it (runs on a worker)."""
        with conn:
            self.handler.handle(conn, conn, conn.address)
