"""
Custom exceptions for the Fritz!Box Status Client.

This module defines all custom exceptions used throughout the fritzbox-status
library. All exceptions inherit from FritzBoxError for easy catching of
library-specific errors.

Example usage:
    try:
        session = connect("fritz.box", password="wrong")
    except FritzBoxLoginError as e:
        print(f"Login failed: {e}")
    except FritzBoxError as e:
        print(f"Fritz!Box error: {e}")

License: MIT
"""

import socket
from typing import Any, Optional


class FritzBoxError(Exception):
    """
    Base exception for all Fritz!Box Status Client errors.

    Catching this exception will catch all library-specific errors. Every
    exception carries contextual details to help with debugging.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        """
        Initialize FritzBoxError.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class FritzBoxLoginError(FritzBoxError):
    """
    Raised when the device rejects the challenge response.

    The login endpoint answered with an invalid SID after the computed
    response was posted, which means the password (or username) is wrong or
    the device is temporarily blocking logins.
    """

    def __init__(self, message: str = "The login to Fritz!Box-API has failed", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, details)


class FritzBoxSessionError(FritzBoxError):
    """
    Raised when an operation needs a valid session and none is available.

    This happens if the session was never started, or if it idled out and
    automatic reconnection is disabled.
    """


class FritzBoxConverterError(FritzBoxError):
    """
    Raised when a query field references a converter that is not declared,
    or when one object declares two converters under the same name.

    Attributes:
        converter: Name of the missing or duplicated converter
        known_converters: Names visible in the scope of the field
    """

    def __init__(
        self,
        converter: str,
        known_converters: Optional[list[str]] = None,
        details: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
    ) -> None:
        self.converter = converter
        self.known_converters = sorted(known_converters or [])
        merged = {"converter": converter, "known_converters": self.known_converters}
        merged.update(details or {})
        super().__init__(message or f'The converter "{converter}" is missing.', merged)


class FritzBoxProtocolError(FritzBoxError):
    """
    Raised when a device response does not match the expected format.

    This covers malformed login XML, unparsable or duplicate query indices,
    and result counts that do not match the number of requested items.
    """


class FritzBoxQueryError(FritzBoxError):
    """
    Raised when a query cannot be built locally.

    For example a single query item whose encoded form alone exceeds the URL
    length budget.
    """


class FritzBoxCancelledError(FritzBoxError):
    """Raised when an operation is cancelled through its cancellation token."""

    def __init__(self, message: str = "Operation cancelled", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, details)


class FritzBoxTransportError(FritzBoxError):
    """
    Raised when the underlying HTTP exchange fails.

    The original ``requests`` exception is always chained as ``__cause__``.
    """


class FritzBoxConnectionError(FritzBoxTransportError):
    """
    Raised when the device cannot be reached.

    Attributes:
        details: May include 'host', 'error_type', 'original_error'
    """


class FritzBoxTimeoutError(FritzBoxConnectionError):
    """Raised when connecting to or reading from the device times out."""


class FritzBoxHTTPError(FritzBoxTransportError):
    """
    Raised when the device answers with an HTTP error status.

    Attributes:
        status_code: HTTP status code if available
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        if status_code and self.details is not None:
            self.details["status_code"] = status_code


class FritzBoxConfigurationError(FritzBoxError):
    """
    Raised when configuration validation fails.

    Attributes:
        details: May include 'parameter', 'value'
    """


def wrap_connection_error(original_error: Exception, host: str) -> FritzBoxConnectionError:
    """
    Wrap a standard connection exception in FritzBoxConnectionError.

    Args:
        original_error: The original exception
        host: Host that failed to connect

    Returns:
        FritzBoxConnectionError (or FritzBoxTimeoutError) with context
    """
    details = {
        "host": host,
        "error_type": type(original_error).__name__,
        "original_error": str(original_error),
    }

    if isinstance(original_error, socket.timeout) or "timed out" in str(original_error).lower():
        return FritzBoxTimeoutError(f"Connection to {host} timed out", details=details)

    if isinstance(original_error, ConnectionRefusedError):
        return FritzBoxConnectionError(f"Connection refused by {host} - web interface may be disabled", details=details)

    return FritzBoxConnectionError(f"Failed to connect to {host}", details=details)


__all__ = [
    "FritzBoxCancelledError",
    "FritzBoxConfigurationError",
    "FritzBoxConnectionError",
    "FritzBoxConverterError",
    "FritzBoxError",
    "FritzBoxHTTPError",
    "FritzBoxLoginError",
    "FritzBoxProtocolError",
    "FritzBoxQueryError",
    "FritzBoxSessionError",
    "FritzBoxTimeoutError",
    "FritzBoxTransportError",
    "wrap_connection_error",
]
