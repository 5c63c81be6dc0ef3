"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All tunables in one dataclass, filled from four layers:

    ┌─────────────────────────────────────────────────────────────────────┐
    │   command line   --port 9000                  (highest priority)    │
    │        ▲                                                             │
    │   environment    WEBSERVER_PORT=9000                                 │
    │        ▲                                                             │
    │   config file    config.ini:  port=9000                              │
    │        ▲                                                             │
    │   defaults       ServerConfig()               (lowest priority)     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONFIG FILE FORMAT
=============================================================================

Java-properties style key/value lines:

    # Lab web server
    port=8080
    root=~/www/lab/html/
    defaultPage=index.html
    maxThreads=10

Lines starting with "#" or "!" are comments. "=" or ":" separates key
from value. A missing file is not an error: the server starts with its
defaults and logs a warning.

=============================================================================
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.ini"


@dataclass
class ServerConfig:
    """
    Configuration for the web server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK      host, port, backlog, buffer_size, read_timeout
    CONTENT      root, default_page
    THREADING    max_threads, queue_size
    PARSING      max_header_bytes
    LOGGING      log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to.
    - "0.0.0.0" - All network interfaces
    - "127.0.0.1" - Localhost only
    """

    port: int = 8080
    """
    The port number to listen on. 0 asks the OS for a free port.
    """

    backlog: int = 128
    """
    Maximum number of connections the kernel queues before accept().
    """

    buffer_size: int = 8192
    """
    Bytes requested per recv() call.
    """

    read_timeout: Optional[float] = None
    """
    Per-connection socket timeout in seconds.
    None = block until the client sends or closes.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    root: str = "~/www/lab/html/"
    """
    Document root. "~" is expanded to the user's home directory.
    Nothing outside this directory is ever served.
    """

    default_page: str = "index.html"
    """
    File served when a request names a directory.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_threads: int = 10
    """
    Number of worker threads. Each handles one connection at a time.
    """

    queue_size: int = 10
    """
    Accepted connections allowed to wait for a free worker. When full,
    the accept loop blocks.
    """

    # ─────────────────────────────────────────────────────────────────────
    # PARSING
    # ─────────────────────────────────────────────────────────────────────

    max_header_bytes: int = 64 * 1024
    """
    Upper bound on request line plus headers, in bytes.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """
    Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    DEBUG also logs every request and response header.
    """

    server_name: str = "PyWebServer/1.0"
    """
    Name shown in the startup banner.
    """

    @property
    def document_root(self) -> Path:
        """root with "~" expanded."""
        return Path(self.root).expanduser()

    @classmethod
    def from_file(cls, path: str | Path = DEFAULT_CONFIG_FILE, base: Optional["ServerConfig"] = None) -> "ServerConfig":
        """
        Load configuration from a properties file.

        =====================================================================
        RECOGNIZED KEYS
        =====================================================================

        host          Bind address
        port          Listen port                     (default: 8080)
        root          Document root                   (default: ~/www/lab/html/)
        defaultPage   Directory index file            (default: index.html)
        maxThreads    Worker threads                  (default: 10)
        readTimeout   Socket timeout in seconds       (default: none)
        logLevel      Logging level                   (default: INFO)

        =====================================================================

        Args:
            path: File to read.
            base: Config to layer the file's values onto (default: defaults).

        Returns:
            The merged config. Unknown keys are logged and ignored.

        Raises:
            ValueError: If a numeric key has a non-numeric value.
        """
        base = base or cls()
        path = Path(path)

        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not read config file {path}: {e}. Using defaults.")
            return base

        values = parse_properties(text)
        overrides = {}

        for key, value in values.items():
            name = _FILE_KEYS.get(key)
            if name is None:
                logger.warning(f"Ignoring unknown config key {key!r} in {path}")
                continue
            overrides[name] = _convert(name, value, source=f"{path}:{key}")

        logger.info(f"Loaded config from {path}")
        return replace(base, **overrides)

    @classmethod
    def from_env(cls, base: Optional["ServerConfig"] = None) -> "ServerConfig":
        """
        Overlay environment variables onto a config.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        WEBSERVER_HOST       Bind address
        WEBSERVER_PORT       Listen port
        WEBSERVER_ROOT       Document root
        WEBSERVER_THREADS    Worker threads
        WEBSERVER_LOG_LEVEL  Logging level

        =====================================================================

        USAGE:
            WEBSERVER_PORT=3000 WEBSERVER_LOG_LEVEL=DEBUG python -m webserver
        """
        base = base or cls()
        overrides = {}

        for env_name, name in _ENV_KEYS.items():
            value = os.getenv(env_name)
            if value is not None and value != "":
                overrides[name] = _convert(name, value, source=env_name)

        return replace(base, **overrides)

    def validate(self) -> None:
        """
        Validate configuration values, failing fast at startup.

        Raises:
            ValueError: On the first invalid value.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.max_threads < 1:
            raise ValueError("max_threads must be >= 1")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ValueError("read_timeout must be > 0")

        if self.max_header_bytes < 1024:
            raise ValueError("max_header_bytes must be >= 1024")

        if not self.default_page or "/" in self.default_page or self.default_page in (".", ".."):
            raise ValueError(f"default_page must be a plain file name, got {self.default_page!r}")

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")


# Config file key → dataclass field
_FILE_KEYS = {
    "host": "host",
    "port": "port",
    "root": "root",
    "defaultPage": "default_page",
    "maxThreads": "max_threads",
    "readTimeout": "read_timeout",
    "logLevel": "log_level",
}

_ENV_KEYS = {
    "WEBSERVER_HOST": "host",
    "WEBSERVER_PORT": "port",
    "WEBSERVER_ROOT": "root",
    "WEBSERVER_THREADS": "max_threads",
    "WEBSERVER_LOG_LEVEL": "log_level",
}

_FIELD_TYPES = {f.name: f.type for f in fields(ServerConfig)}


def _convert(name: str, value: str, source: str):
    """Convert a raw string to the type of field name."""
    kind = _FIELD_TYPES[name]
    try:
        if kind is int:
            return int(value)
        if kind == Optional[float]:
            return float(value)
    except ValueError:
        raise ValueError(f"Invalid value for {source}: {value!r}") from None
    return value


def parse_properties(text: str) -> dict[str, str]:
    """
    Parse Java-properties style text into a dict.

    Supports "#" and "!" comments, "=" or ":" separators and blank lines.
    Whitespace around keys and values is stripped. Later keys win.

    Example:
        >>> parse_properties("# comment\\nport = 9000\\nroot: /srv/www")
        {'port': '9000', 'root': '/srv/www'}
    """
    values: dict[str, str] = {}

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line[0] in "#!":
            continue

        positions = [i for i in (line.find("="), line.find(":")) if i >= 0]
        if not positions:
            values[line] = ""
            continue

        sep = min(positions)
        values[line[:sep].strip()] = line[sep + 1:].strip()

    return values
