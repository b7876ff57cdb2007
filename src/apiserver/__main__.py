"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    python -m apiserver                          # :8080, all interfaces
    python -m apiserver --addr 127.0.0.1:9000
    python -m apiserver --workers 8 --log-level DEBUG
    python -m apiserver --routes                 # print the route table

Unset options fall back to the APISERVER_* environment variables, then to
the defaults in ServerConfig. Any startup failure (bad address, port in
use) is printed and the process exits with status 1.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .api import APIServer
from .config import LOG_LEVELS, ServerConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apiserver",
        description="HTTP API server with a composable middleware chain",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m apiserver                       # Listen on :8080
  python -m apiserver --addr :3000          # Custom port
  python -m apiserver -w 8 -l DEBUG         # 8 workers, verbose logs
        """
    )

    parser.add_argument(
        "--addr", "-a",
        default=None,
        help="Listen address host:port (default: $APISERVER_ADDR or :8080)"
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Minimum worker threads; the pool grows to twice this"
    )
    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: $APISERVER_LOG_LEVEL or INFO)"
    )
    parser.add_argument(
        "--routes",
        action="store_true",
        help="Print the route table and exit"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"apiserver {__version__}"
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.workers is not None:
        overrides.update(min_workers=args.workers, max_workers=args.workers * 2)
    if args.log_level is not None:
        overrides["log_level"] = args.log_level

    try:
        config = ServerConfig.from_env(**overrides)
        addr = args.addr if args.addr is not None else config.addr
        server = APIServer(addr, config=config)

        if args.routes:
            server.router.print_routes()
            return 0

        server.run()
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
