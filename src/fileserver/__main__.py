"""
=============================================================================
FILESERVER CLI ENTRY POINT
=============================================================================

    # Serve the current directory on 127.0.0.1:4000
    fileserver

    # Serve ./public on all interfaces
    fileserver -a 0.0.0.0:8000 ./public

    # Same thing without installing the console script
    python -m fileserver -a 0.0.0.0:8000 ./public

Anything not given on the command line falls back to the environment
(HTTP_ADDR, HTTP_ROOT, HTTP_WORKERS, HTTP_TIMEOUT, HTTP_LOG_LEVEL) and then
to the built-in defaults.

=============================================================================
"""

import argparse
import logging
import sys

from . import __version__
from .config import ServerConfig, parse_address
from .server import FileServer


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str) -> None:
    """Configure the root logger. Called once, before the server starts."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def _address(text: str):
    try:
        return parse_address(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fileserver",
        description="A basic HTTP file server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  fileserver                          # Serve . on 127.0.0.1:4000
  fileserver ./public                 # Serve ./public
  fileserver -a 0.0.0.0:8000 ./site   # Listen on all interfaces
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK / CONTENT
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--addr", "-a",
        type=_address,
        default=None,
        metavar="HOST:PORT",
        help="Address to listen on (default: 127.0.0.1:4000)",
    )

    parser.add_argument(
        "root",
        nargs="?",
        default=None,
        metavar="ROOT",
        help="Directory to serve (default: .)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE / DIAGNOSTICS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum number of worker threads (default: 16)",
    )

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"fileserver {__version__}",
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then command-line options on top."""
    config = ServerConfig.from_env()

    host, port = args.addr if args.addr else (None, None)
    min_workers = None
    if args.workers is not None:
        min_workers = min(config.min_workers, args.workers)

    return config.with_overrides(
        root_dir=args.root,
        host=host,
        port=port,
        min_workers=min_workers,
        max_workers=args.workers,
        log_level=args.log_level,
    )


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
        config.validate()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.log_level)

    try:
        FileServer(config).run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
