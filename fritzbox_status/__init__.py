"""
Fritz!Box Status Library
========================

Python library for reading status values from an AVM Fritz!Box
(Fritz!OS 5.50 and newer) through its web interface.

Features:
    * Challenge-response login with idle timeout handling and optional auto reconnect
    * Bulk queries split into URL-length bounded requests, fetched in parallel
    * Declarative query objects filled in one batched query
    * Cancellation of running operations

Quick Start:
    >>> from fritzbox_status import connect, DslStatusQuery
    >>> with connect(password="your_password") as session:
    ...     status = session.query_object(DslStatusQuery())
    ...     print(f"Sync: {status.dsl.ds_data_rate} kbit/s")

Error Handling:
    All operations raise specific exceptions for different failure modes:

    >>> from fritzbox_status import FritzBoxLoginError
    >>> try:
    ...     session = connect(password="wrong_password")
    ... except FritzBoxLoginError as e:
    ...     print(f"Login failed: {e}")

This is an unofficial library not affiliated with AVM.

License: MIT
"""

from .cancellation import CancellationToken
from .client.main import FritzBoxSession, connect
from .converters import StandardConverters, to_bool, to_float, to_int, to_int_list
from .exceptions import (
    FritzBoxCancelledError,
    FritzBoxConfigurationError,
    FritzBoxConnectionError,
    FritzBoxConverterError,
    FritzBoxError,
    FritzBoxHTTPError,
    FritzBoxLoginError,
    FritzBoxProtocolError,
    FritzBoxQueryError,
    FritzBoxSessionError,
    FritzBoxTimeoutError,
    FritzBoxTransportError,
)
from .marshaller import QueryMarshaller, QueryParameter, QueryPropagation, QueryValueConverter, query_converter
from .models import SessionId
from .queries import DslStatusQuery, sync_to_real

# Version information
__version__ = "1.0.0"
__license__ = "MIT"

# Public API
__all__ = [
    "CancellationToken",
    "DslStatusQuery",
    "FritzBoxCancelledError",
    "FritzBoxConfigurationError",
    "FritzBoxConnectionError",
    "FritzBoxConverterError",
    "FritzBoxError",
    "FritzBoxHTTPError",
    "FritzBoxLoginError",
    "FritzBoxProtocolError",
    "FritzBoxQueryError",
    "FritzBoxSession",
    "FritzBoxSessionError",
    "FritzBoxTimeoutError",
    "FritzBoxTransportError",
    "QueryMarshaller",
    "QueryParameter",
    "QueryPropagation",
    "QueryValueConverter",
    "SessionId",
    "StandardConverters",
    "__license__",
    "__version__",
    "connect",
    "query_converter",
    "sync_to_real",
    "to_bool",
    "to_float",
    "to_int",
    "to_int_list",
]
