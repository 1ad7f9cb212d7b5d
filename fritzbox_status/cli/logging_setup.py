"""
Logging Configuration Module

This module provides logging setup for the Fritz!Box Status CLI. Console
output goes to stderr so stdout carries only JSON.

Query URLs carry the session id (``/query.lua?sid=...``) and urllib3 logs
them verbatim at debug level, so the console handler shortens every
``sid=`` value before it is written.

License: MIT
"""

import logging
import re
import sys

_logging_configured = False

LIBRARY_LOGGER = "fritzbox-status"
HTTP_LOGGERS = ("urllib3", "requests")

DEBUG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(threadName)s - %(funcName)s:%(lineno)d - %(message)s"
DEFAULT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

SESSION_ID_PATTERN = re.compile(r"(sid=)([0-9A-Za-z]{4})[0-9A-Za-z]+")


def mask_session_ids(text: str) -> str:
    """Shorten ``sid=<id>`` occurrences to their first four characters."""
    return SESSION_ID_PATTERN.sub(r"\1\2…", text)


class SessionIdFilter(logging.Filter):
    """Rewrites log records so that no full session id reaches the console."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_session_ids(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def _select_level(debug: bool, quiet: bool) -> int:
    if debug:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(debug: bool = False, quiet: bool = False) -> None:
    """
    Configure logging for the CLI application.

    Only the first call has an effect until reset_logging() is called.

    Args:
        debug: If True, enable debug-level logging including HTTP library output
        quiet: If True, only show warnings and errors
    """
    global _logging_configured

    if _logging_configured:
        return

    _logging_configured = True
    level = _select_level(debug, quiet)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(DEBUG_FORMAT if debug else DEFAULT_FORMAT, datefmt=DATE_FORMAT))
    console_handler.addFilter(SessionIdFilter())

    # Replace any existing handlers
    logging.basicConfig(level=level, handlers=[console_handler], force=True)

    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)

    logging.getLogger("urllib3.connectionpool").setLevel(logging.DEBUG if debug else logging.ERROR)
    logging.getLogger(LIBRARY_LOGGER).setLevel(logging.DEBUG if debug else logging.NOTSET)

    logging.getLogger(__name__).debug(f"Logging configured: level={logging.getLevelName(level)}")


def reset_logging() -> None:
    """Allow setup_logging() to configure logging again."""
    global _logging_configured
    _logging_configured = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
