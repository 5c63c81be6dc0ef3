"""
=============================================================================
CONTENT TYPES
=============================================================================

Maps a served file's name suffix to the Content-Type we answer with.

The table is deliberately small. Anything we don't recognise is sent as
application/octet-stream, which tells the browser "this is opaque binary
data, download it rather than guess".

    ┌────────────────────────────────────┬──────────────────────────────┐
    │ Suffix (case-insensitive)          │ Content-Type                 │
    ├────────────────────────────────────┼──────────────────────────────┤
    │ .html .htm                         │ text/html                    │
    │ .jpg .jpeg .png .gif .bmp          │ image                        │
    │ .ico                               │ icon                         │
    │ anything else                      │ application/octet-stream     │
    └────────────────────────────────────┴──────────────────────────────┘

No content sniffing: a PNG renamed to notes.txt is octet-stream.

=============================================================================
"""

from pathlib import Path


HTML_TYPE = "text/html"
IMAGE_TYPE = "image"
ICON_TYPE = "icon"
DEFAULT_TYPE = "application/octet-stream"

CONTENT_TYPES = {
    ".html": HTML_TYPE,
    ".htm": HTML_TYPE,
    ".jpg": IMAGE_TYPE,
    ".jpeg": IMAGE_TYPE,
    ".png": IMAGE_TYPE,
    ".gif": IMAGE_TYPE,
    ".bmp": IMAGE_TYPE,
    ".ico": ICON_TYPE,
}


def get_content_type(path: str | Path) -> str:
    """
    Get the Content-Type for a file from its suffix.

    Args:
        path: File path or bare file name.

    Returns:
        The media type string.

    Examples:
        >>> get_content_type("index.HTML")
        'text/html'
        >>> get_content_type("/www/logo.png")
        'image'
        >>> get_content_type("archive.tar.gz")
        'application/octet-stream'
    """
    if isinstance(path, str):
        path = Path(path)

    return CONTENT_TYPES.get(path.suffix.lower(), DEFAULT_TYPE)
