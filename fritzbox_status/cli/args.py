"""
Command Line Argument Parsing Module

This module handles all argument parsing and validation for the Fritz!Box
Status CLI. It defines the command-line interface and validates user inputs.

License: MIT
"""

import argparse
import logging
from typing import Optional

from fritzbox_status.client.main import DEFAULT_HOST, DEFAULT_IDLE_TIMEOUT
from fritzbox_status.client.query import DEFAULT_MAX_CONCURRENCY, DEFAULT_MAX_URL_LENGTH

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="fritzbox-status",
        description="Query Fritz!Box DSL status and output JSON data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --password "your_password"
  %(prog)s --password "password" --host 192.168.178.1
  %(prog)s --password "password" --query sar:status/dsl_train_state logic:status/nspver
  %(prog)s --password "password" --debug

Output:
  Without --query, the full DSL status (firmware, DSLAM, line data and bin
  data) is queried. With --query, the given commands are queried and their
  raw values are returned.
  Summary and progress information is printed to stderr, JSON data to stdout.

Monitoring Integration:
  Use --quiet to suppress stderr output and get pure JSON on stdout.
        """,
    )

    # Connection settings
    parser.add_argument(
        "--host",
        default=DEFAULT_HOST,
        help="Fritz!Box hostname, IP address or base URL (default: %(default)s)",
    )
    parser.add_argument(
        "--username",
        default=None,
        help="Login username, for boxes with user accounts",
    )
    parser.add_argument("--password", required=True, help="Fritz!Box login password (required)")

    # Session settings
    parser.add_argument(
        "--timeout",
        type=float,
        default=12,
        help="Read timeout per request in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--idle-timeout",
        type=float,
        default=DEFAULT_IDLE_TIMEOUT,
        help="Seconds of inactivity before the session is re-checked, 0 disables (default: %(default)s)",
    )
    parser.add_argument(
        "--auto-reconnect",
        action="store_true",
        help="Log in again when the session expired",
    )

    # Query settings
    parser.add_argument(
        "--max-url-length",
        type=int,
        default=DEFAULT_MAX_URL_LENGTH,
        help="Maximum length of a query URL (default: %(default)s)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_MAX_CONCURRENCY,
        help="Number of concurrent query requests, at most 4 (default: %(default)s)",
    )
    parser.add_argument(
        "--query",
        nargs="+",
        metavar="CMD",
        default=None,
        help="Query these commands instead of the DSL status",
    )
    parser.add_argument(
        "--logout",
        action="store_true",
        help="Log out after querying",
    )

    # Output options
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging output to stderr",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress summary and progress output to stderr (JSON only to stdout)",
    )

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Args:
        argv: Arguments to parse (default: sys.argv)

    Returns:
        Parsed arguments namespace
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logger.debug(f"Parsed arguments: host={args.host}, query={args.query}")

    # Validate arguments
    validate_args(args)

    return args


def validate_args(args: argparse.Namespace) -> None:
    """
    Validate parsed arguments.

    Args:
        args: Parsed arguments namespace

    Raises:
        ValueError: If arguments are invalid
    """
    if args.timeout <= 0:
        raise ValueError("Timeout must be greater than 0")

    if args.workers < 1:
        raise ValueError("Workers must be at least 1")

    if args.workers > DEFAULT_MAX_CONCURRENCY:
        raise ValueError(f"Workers cannot exceed {DEFAULT_MAX_CONCURRENCY}")

    if args.max_url_length <= 0:
        raise ValueError("Max URL length must be greater than 0")

    if not args.password:
        raise ValueError("Password must not be empty")

    logger.debug("Arguments validated successfully")
