"""
Main CLI Orchestration Module

This module provides the main entry point and orchestration logic for the
Fritz!Box Status CLI. It coordinates all other CLI modules to provide
a cohesive command-line interface.

License: MIT
"""

import logging
import sys
import time
from datetime import datetime
from typing import Optional

from fritzbox_status import CancellationToken, DslStatusQuery, FritzBoxSession, __version__
from fritzbox_status.marshaller import to_dict

from .args import parse_args
from .formatters import (
    ProgressPrinter,
    format_json_output,
    print_error_suggestions,
    print_json_output,
    print_query_summary_to_stderr,
    print_summary_to_stderr,
)
from .logging_setup import setup_logging

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

CONNECT_TIMEOUT = 3


def run_queries(session: FritzBoxSession, args, cancel: CancellationToken) -> dict:
    """Log in, run the requested query and return the values for output."""
    progress = None if args.quiet else ProgressPrinter()

    session.login(cancel)

    if args.query:
        values = session.query(args.query, cancel, progress)
        data = {"values": dict(zip(args.query, values))}
    else:
        status = session.query_object(DslStatusQuery(), cancel, progress)
        data = to_dict(status)

    if args.logout:
        session.logout(cancel)

    return data


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the CLI application."""
    start_time = time.time()
    args = None
    cancel = CancellationToken()

    try:
        args = parse_args(argv)

        setup_logging(debug=args.debug, quiet=args.quiet)

        if not args.quiet:
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            print(f"Fritz!Box Status Client v{__version__} - {timestamp}", file=sys.stderr)
            user = f" as {args.username}" if args.username else ""
            print(f"Connecting to {args.host}{user} ({args.workers} workers)", file=sys.stderr)

        logger.info(f"Initializing FritzBoxSession for {args.host}")
        session = FritzBoxSession(
            host=args.host,
            username=args.username,
            password=args.password,
            idle_timeout=args.idle_timeout,
            auto_reconnect=args.auto_reconnect,
            max_url_length=args.max_url_length,
            max_concurrency=args.workers,
            timeout=(min(CONNECT_TIMEOUT, args.timeout), args.timeout),
        )

        with session:
            data = run_queries(session, args, cancel)

        elapsed = time.time() - start_time

        if not args.quiet:
            if args.query:
                print_query_summary_to_stderr(data["values"])
            else:
                print_summary_to_stderr(data)

        print_json_output(format_json_output(data, args, elapsed))

        logger.info(f"Fritz!Box status retrieved successfully in {elapsed:.2f}s")

    except KeyboardInterrupt:
        cancel.cancel()
        elapsed = time.time() - start_time
        logger.error(f"Operation cancelled by user after {elapsed:.2f}s")
        print(f"\nOperation cancelled by user after {elapsed:.2f}s", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)

    except Exception as e:
        elapsed = time.time() - start_time
        logger.error(f"Failed to get Fritz!Box status after {elapsed:.2f}s: {e}")

        print(f"Error after {elapsed:.2f}s: {e}", file=sys.stderr)
        print_error_suggestions(debug=bool(args and args.debug))

        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
