"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The handful of status codes this server ever puts on the wire.

    ┌───────┬───────────────────────────┬──────────────────────────────────┐
    │ Code  │ Phrase                    │ When we send it                  │
    ├───────┼───────────────────────────┼──────────────────────────────────┤
    │  200  │ OK                        │ File, params page or TRACE echo  │
    │  400  │ Bad Request               │ Bad request line, no Host,       │
    │       │                           │ path traversal, POST w/o body    │
    │  404  │ Not Found                 │ Resolved path missing            │
    │  500  │ Internal Server Error     │ I/O failure before headers sent  │
    │  501  │ Not Implemented           │ Any method we do not dispatch    │
    └───────┴───────────────────────────┴──────────────────────────────────┘

The reason phrase is what follows the code on the status line:

    HTTP/1.1 404 Not Found
             ─── ─────────
              │      │
              │      └── Reason phrase (HTTPStatus.phrase)
              └───────── Status code  (int(HTTPStatus.NOT_FOUND))

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes with their reason phrases.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200
    BAD_REQUEST = 400
    NOT_FOUND = 404
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501

    @property
    def phrase(self) -> str:
        """Reason phrase used on the status line."""
        return _STATUS_PHRASES[self]


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
}
