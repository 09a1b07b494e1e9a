"""
=============================================================================
CCS SERVER CLI ENTRY POINT
=============================================================================

    python -m ccserver 9876

    python -m ccserver 9876 --log-level DEBUG

    python -m ccserver 9876 --stats-interval 5 --log-format json

The port is the only required argument. A missing or invalid port prints
usage to stderr and exits with status 2 before any socket is created.
A port that cannot be bound prints the error and exits with status 1.

Settings not given on the command line come from CCS_* environment
variables (see ServerConfig.from_env), then from the defaults.

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig, LOG_FORMATS
from .server import CCSServer


def port_number(value: str) -> int:
    """argparse type: an integer in 1-65535."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"port must be an integer, got {value!r}") from None
    if not 0 < port < 65536:
        raise argparse.ArgumentTypeError(f"port must be 1-65535, got {port}")
    return port


def positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ccserver",
        description="Discoverable arithmetic request server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m ccserver 9876                       # Serve on UDP+TCP port 9876
  python -m ccserver 9876 --log-level DEBUG     # Log every request
  python -m ccserver 9876 --log-format json     # JSON statistics reports
        """
    )

    parser.add_argument(
        "port",
        type=port_number,
        help="Port for both UDP discovery and TCP requests (1-65535)"
    )

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Address to bind (default: 0.0.0.0, needed to hear broadcasts)"
    )

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum concurrent sessions (default: 256)"
    )

    parser.add_argument(
        "--session-timeout",
        type=positive_float,
        default=None,
        help="Idle seconds before a session is closed (default: 20)"
    )

    parser.add_argument(
        "--stats-interval",
        type=positive_float,
        default=None,
        help="Seconds between statistics reports (default: 10)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Statistics/access log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"ccserver {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Layer command-line flags over the environment-derived config."""
    config = ServerConfig.from_env(port=args.port)

    if args.host is not None:
        config.host = args.host
    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if args.session_timeout is not None:
        config.session_timeout = args.session_timeout
    if args.stats_interval is not None:
        config.stats_interval = args.stats_interval
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format

    return config


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Process exit status.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
        server = CCSServer(config)
    except ValueError as e:
        parser.print_usage(sys.stderr)
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
