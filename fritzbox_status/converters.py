"""
Value Converters for Fritz!Box Status Client
============================================

Converters for the raw strings returned by ``query.lua``. The device reports
values it could not read as ``"er"`` (or an empty string); the converters map
those to a fixed "unknown" value instead of failing.

"""

import math
from typing import Optional

from .marshaller import QueryValueConverter

ERROR_VALUE = "er"


def is_error_value(value: Optional[str]) -> bool:
    return not value or value == ERROR_VALUE


def to_int(value: Optional[str]) -> int:
    """Integer, ``-1`` for an error value."""
    if is_error_value(value):
        return -1
    return int(value)


def to_bool(value: Optional[str]) -> bool:
    """Non-zero integer, ``False`` for an error value."""
    if is_error_value(value):
        return False
    return int(value) != 0


def to_float(value: Optional[str]) -> float:
    """Float, ``nan`` for an error value."""
    if is_error_value(value):
        return math.nan
    return float(value)


def to_int_list(value: Optional[str]) -> list[int]:
    """
    Comma separated integers.

    Examples:
        >>> to_int_list("12,14,-3")
        [12, 14, -3]
        >>> to_int_list(None)
        []
    """
    if not value:
        return []
    return [int(part) for part in value.split(",") if part.strip()]


class StandardConverters:
    """Mixin providing the converters used by the DSL status queries."""

    IntConverter = QueryValueConverter(to_int)
    BooleanConverter = QueryValueConverter(to_bool)
    FloatConverter = QueryValueConverter(to_float)
    IntArrayConverter = QueryValueConverter(to_int_list)


__all__ = ["ERROR_VALUE", "StandardConverters", "is_error_value", "to_bool", "to_float", "to_int", "to_int_list"]
