"""
=============================================================================
WEB SERVER - COMMAND LINE INTERFACE
=============================================================================

Entry point for running the server from the command line:

    python -m webserver [options]
    webserver [options]                # console script

Settings are layered: defaults, then config.ini, then WEBSERVER_*
environment variables, then these flags.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import DEFAULT_CONFIG_FILE, ServerConfig
from .server import WebServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webserver",
        description="Multi-threaded static file server with a parameter store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m webserver                         # config.ini, or defaults
  python -m webserver --port 3000             # Custom port
  python -m webserver --root ./public         # Serve ./public
  python -m webserver -c lab.ini -w 4         # Other config, 4 workers
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONFIGURATION SOURCE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--config", "-c",
        default=DEFAULT_CONFIG_FILE,
        help=f"Properties file to load (default: {DEFAULT_CONFIG_FILE}, skipped if missing)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # OVERRIDES (default None: keep the file/env value)
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8080)")
    parser.add_argument("--root", "-r", help="Document root (default: ~/www/lab/html/)")
    parser.add_argument("--default-page", help="Directory index file (default: index.html)")
    parser.add_argument("--workers", "-w", type=int, help="Worker threads (default: 10)")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"webserver {__version__}"
    )

    return parser


def load_config(args: argparse.Namespace) -> ServerConfig:
    """Build the effective config: file, then environment, then flags."""
    config = ServerConfig.from_file(args.config)
    config = ServerConfig.from_env(config)

    overrides = {
        "host": args.host,
        "port": args.port,
        "root": args.root,
        "default_page": args.default_page,
        "max_threads": args.workers,
        "log_level": args.log_level,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    return config


def main(argv=None) -> int:
    """
    CLI entry point.

    Returns:
        Process exit code: 0 on clean shutdown, 1 on startup failure.
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        server = WebServer(config)
        server.run()
    except (ValueError, OSError) as e:
        print(f"webserver: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
