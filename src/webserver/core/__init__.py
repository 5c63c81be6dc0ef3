"""
=============================================================================
TRANSPORT LAYER
=============================================================================

Sockets and threads. Nothing in here knows what HTTP is.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ socket_server.py   bind, listen, accept loop, signal handling       │
    │ connection.py      buffered readline()/read(), write(), close()     │
    │ thread_pool.py     fixed workers, bounded queue, poison-pill stop   │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",     # Accepts TCP connections
    "Connection",       # Buffered wrapper around a client socket
    "ConnectionState",  # Connection lifecycle states
    "ThreadPool",       # Worker threads for concurrency
]
