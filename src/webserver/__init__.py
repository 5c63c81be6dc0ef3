"""
=============================================================================
WEBSERVER - A MULTI-THREADED HTTP/1.1 FILE SERVER
=============================================================================

Serves files from a sandboxed document root over raw sockets, one request
per connection, and remembers every parameter clients submit.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  LAYER 4: CLI             __main__.py, config.py                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │  LAYER 3: SERVER          server.py (WebServer)                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │  LAYER 2: APPLICATION     handler.py (dispatch), params.py (store) │
    ├─────────────────────────────────────────────────────────────────────┤
    │  LAYER 1: HTTP            http/request.py, http/response.py,        │
    │                           http/paths.py, http/mime_types.py         │
    ├─────────────────────────────────────────────────────────────────────┤
    │  LAYER 0: TRANSPORT       core/socket_server.py, core/connection.py │
    │                           core/thread_pool.py                       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHAT IT ANSWERS
=============================================================================

    GET / HEAD      Files under the document root (HEAD: headers only)
    POST            /params_info.html stores parameters and shows them all;
                    any other file is served and its body parameters stored
    TRACE           Echo of the request line and headers
    anything else   501 Not Implemented

A "chunked: yes" request header switches the response to chunked
transfer encoding.

=============================================================================
"""

__version__ = "1.0.0"

from .server import WebServer
from .config import ServerConfig

__all__ = ["WebServer", "ServerConfig", "__version__"]
