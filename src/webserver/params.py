"""
=============================================================================
SUBMITTED PARAMETERS
=============================================================================

Every parameter a client submits (GET query string or POST body) is
remembered for the lifetime of the server and can be viewed as an HTML
table at /params_info.html.

=============================================================================
STORE SHAPE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  ParameterStore                                                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   "name"  ──►  ["alice", "bob", "alice", "bob"]                      │
    │   "age"   ──►  ["30"]                                                │
    │                                                                      │
    │   Key order    = order names were first submitted                    │
    │   Value order  = order values were submitted                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Append-only. Nothing is ever removed or overwritten; submitting the
same pair twice stores it twice.

=============================================================================
THREAD SAFETY
=============================================================================

Workers share one store. A single lock makes every submission atomic:
a reader sees all of a submission or none of it.

POST /params_info.html needs more than that. Append, render and write
the page must happen as one step, otherwise two concurrent POSTs could
each render the other's half-finished state, or a GET could read a
partly written file. append_and_publish() holds the lock for all three
and writes via a temp file + os.replace(), which is atomic on POSIX and
Windows alike.

=============================================================================
"""

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import parse_qs


logger = logging.getLogger(__name__)

Parameters = Dict[str, List[str]]

PARAMS_PAGE_NAME = "params_info.html"


def parse_parameters(data: Optional[str]) -> Parameters:
    """
    Parse "key=value&key=value" into name → values.

    Each name and value is URL-decoded ("+" is a space). A pair without
    "=" gets an empty value. A name repeated in one string keeps every
    value, in order.

    Example:
        >>> parse_parameters("name=alice&name=bob&flag")
        {'name': ['alice', 'bob'], 'flag': ['']}
        >>> parse_parameters(None)
        {}
    """
    if not data:
        return {}
    return parse_qs(data, keep_blank_values=True)


def merge_parameters(base: Parameters, override: Parameters) -> Parameters:
    """
    Merge two parameter sets; override wins per name.

    Used for POST, where body values replace URL values of the same name.
    """
    merged = {name: list(values) for name, values in base.items()}
    for name, values in override.items():
        merged[name] = list(values)
    return merged


def render_params_page(parameters: Parameters) -> str:
    """
    Render the stored parameters as an HTML page.

    One table row per stored value, repeating the name. Values are
    inserted as-is, not HTML-escaped.
    """
    lines = [
        "<!DOCTYPE html>",
        '<html lang="en">',
        "<head>",
        '    <meta charset="UTF-8">',
        '    <meta name="viewport" content="width=device-width, initial-scale=1.0">',
        "    <title>Submitted Parameters</title>",
        "</head>",
        "<body>",
        "    <h1>Submitted Parameters</h1>",
        '    <table border="1">',
        "        <tr>",
        "            <th>Parameter Name</th>",
        "            <th>Value</th>",
        "        </tr>",
    ]

    for name, values in parameters.items():
        for value in values:
            lines.append("        <tr>")
            lines.append(f"            <td>{name}</td>")
            lines.append(f"            <td>{value}</td>")
            lines.append("        </tr>")

    lines.extend([
        "    </table>",
        "</body>",
        "</html>",
    ])
    return "\n".join(lines)


def write_params_page(path: str | Path, html: str) -> None:
    """
    Atomically replace the file at path with html (UTF-8).

    Readers see either the old file or the new one, never a mix.
    """
    path = Path(path)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".params_", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(html)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class ParameterStore:
    """
    Process-lifetime, append-only record of submitted parameters.

    Usage:
        store = ParameterStore()
        store.append({"name": ["alice"]})
        store.count("name")          # 1
        store.snapshot()             # {'name': ['alice']}
    """

    def __init__(self):
        self._params: Parameters = {}
        self._lock = threading.Lock()

    def append(self, parameters: Parameters) -> Parameters:
        """
        Append every value in parameters, atomically.

        Returns:
            What was added (a copy of the non-empty entries).
        """
        with self._lock:
            return self._append_locked(parameters)

    def _append_locked(self, parameters: Parameters) -> Parameters:
        added: Parameters = {}
        for name, values in parameters.items():
            if not values:
                continue
            self._params.setdefault(name, []).extend(values)
            added[name] = list(values)
        if added:
            logger.debug(f"Stored parameters: {added}")
        return added

    def snapshot(self) -> Parameters:
        """A consistent deep copy of the current contents."""
        with self._lock:
            return {name: list(values) for name, values in self._params.items()}

    def append_and_publish(self, parameters: Parameters, page_path: str | Path) -> str:
        """
        Append, render the whole store and persist the page, as one step.

        Args:
            parameters: Parameter set to add.
            page_path: Where to write the rendered page.

        Returns:
            The rendered HTML (exactly what was written).

        Raises:
            OSError: If the page cannot be written. The parameters stay
                     stored regardless.
        """
        with self._lock:
            self._append_locked(parameters)
            html = render_params_page(self._params)
            write_params_page(page_path, html)
            return html

    def count(self, name: str) -> int:
        """Number of values stored under name."""
        with self._lock:
            return len(self._params.get(name, ()))

    def __len__(self) -> int:
        """Number of distinct names."""
        with self._lock:
            return len(self._params)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._params
