"""
=============================================================================
PATH RESOLUTION
=============================================================================

Turns a request target into a file inside the document root, or refuses.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

The request target is attacker-controlled text. Joined naively onto the
document root, ".." segments walk right out of it:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET /../../etc/passwd HTTP/1.1                                     │
    │                                                                      │
    │  root = /home/lab/www/                                              │
    │  naive join → /home/lab/www/../../etc/passwd → /etc/passwd          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

We defend in two layers:

    1. LEXICAL   Tokenize the path on "/" and replay it on a stack.
                 "." and "" are dropped, ".." pops. A ".." that finds the
                 stack already empty is trying to climb above the root:
                 the request is rejected right there.

    2. CANONICAL Join what is left onto the root and resolve() it, which
                 follows symlinks. The result must still be the root or
                 something below it. A symlink pointing outside the root
                 is caught here.

A decoded NUL byte can never name a file, so it is refused up front too.

All of these raise PathTraversalError (→ 400 Bad Request) before any
file is opened. "Not found" is a different outcome (→ 404): the path is
legal, there is just nothing there.

=============================================================================
NORMALIZATION EXAMPLES
=============================================================================

    /a/./b//c        →  /a/b/c
    /a/b/../c        →  /a/c
    /                →  /
    /a/..            →  /
    /../etc/passwd   →  rejected (".." on an empty stack)
    /a/../../etc     →  rejected

=============================================================================
INTERVIEW QUESTIONS ABOUT PATH SAFETY
=============================================================================

Q: "Isn't checking for '..' in the string enough?"
A: "No. Symlinks inside the root can point anywhere, and percent-encoding
   (%2e%2e) hides the dots from a naive substring check. Decode first,
   normalize, then verify the canonical path is still under the root."

Q: "Why reject instead of clamping to the root?"
A: "Clamping silently serves a different file than the one asked for.
   An escape attempt is never a legitimate request, so we say so."

=============================================================================
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import unquote


logger = logging.getLogger(__name__)


class PathTraversalError(ValueError):
    """Raised when a request target would resolve outside the document root."""


def split_target(target: str) -> tuple[str, Optional[str]]:
    """
    Split a request target at the first "?".

    Returns:
        (path, query). query is None when the target has no "?",
        and "" when it ends with one.

    Example:
        >>> split_target("/form.html?name=alice&age=30")
        ('/form.html', 'name=alice&age=30')
        >>> split_target("/index.html")
        ('/index.html', None)
    """
    path, sep, query = target.partition("?")
    return path, (query if sep else None)


def _normalize_segments(path: str) -> tuple[list[str], bool]:
    """
    Replay path segments on a stack.

    Returns the surviving segments and whether a ".." tried to pop
    an empty stack.
    """
    stack: list[str] = []
    escaped = False

    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if stack:
                stack.pop()
            else:
                escaped = True
            continue
        stack.append(segment)

    return stack, escaped


def normalize_path(path: str, strict: bool = False) -> str:
    """
    Lexically normalize a URL path.

    "." and empty segments are dropped and ".." removes the previous
    segment. A ".." at the top is a no-op, so the result never climbs
    above "/".

    Args:
        path: Decoded path component.
        strict: Raise PathTraversalError instead of ignoring a ".."
                that would climb above "/".

    Example:
        >>> normalize_path("/a/./b/../c//d")
        '/a/c/d'
        >>> normalize_path("/../..")
        '/'
    """
    segments, escaped = _normalize_segments(path)
    if strict and escaped:
        raise PathTraversalError(f"Path escapes document root: {path}")
    return "".join("/" + segment for segment in segments) or "/"



class PathResolver:
    """
    Maps request targets to files inside a sandboxed document root.

    =========================================================================
    RESOLUTION FLOW
    =========================================================================

        "/docs/../index.html?x=1"
              │
              ▼
        split_target()          → "/docs/../index.html", "x=1"
              │
              ▼
        unquote + normalize     → "/index.html"   (or PathTraversalError)
              │
              ▼
        root / "index.html"     → resolve()       (follows symlinks)
              │
              ▼
        inside root?            → no: PathTraversalError
              │
              ▼
        directory?              → append default page, re-check
              │
              ▼
        is a file?              → Path  |  None (not found)

    =========================================================================

    Usage:
        resolver = PathResolver("~/www/lab/html", default_page="index.html")
        path = resolver.resolve("/")           # …/www/lab/html/index.html
        resolver.resolve("/missing.html")      # None
        resolver.resolve("/../secret")         # raises PathTraversalError
    """

    def __init__(self, document_root: str | Path, default_page: str = "index.html"):
        """
        Args:
            document_root: Directory to serve from. "~" is expanded and the
                           path is canonicalized once, up front, so every
                           containment check compares like with like.
            default_page: File served when the target names a directory.
        """
        self.document_root = Path(document_root).expanduser().resolve()
        self.default_page = default_page

    def resolve(self, target: str) -> Optional[Path]:
        """
        Resolve a request target to a file under the document root.

        Args:
            target: Raw request target; any query component is ignored.

        Returns:
            Canonical path of an existing regular file, or None if the
            location does not exist or is a directory with no default page.

        Raises:
            PathTraversalError: If the target escapes the document root or
                                decodes to a path holding a NUL byte.
        """
        path, _ = split_target(target)
        decoded = unquote(path)
        if "\x00" in decoded:
            logger.warning(f"NUL byte in request path: {target}")
            raise PathTraversalError(f"NUL byte in path: {target}")

        try:
            normalized = normalize_path(decoded, strict=True)
        except PathTraversalError:
            logger.warning(f"Path traversal attempt: {target}")
            raise

        candidate = self._contain(self.document_root / normalized.lstrip("/"), target)

        if candidate.is_dir():
            candidate = self._contain(candidate / self.default_page, target)

        if not candidate.is_file():
            return None

        return candidate

    def _contain(self, path: Path, target: str) -> Path:
        """Canonicalize path and make sure it stayed inside the root."""
        resolved = path.resolve()
        try:
            resolved.relative_to(self.document_root)
        except ValueError:
            logger.warning(f"Path traversal attempt via symlink: {target}")
            raise PathTraversalError(f"Path escapes document root: {target}")
        return resolved
