"""
Data Models for Fritz!Box Status Client
=======================================

This module contains the value types shared by the session, the query
engine and the instrumentation.

"""

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

# The device reports "no session" as 16 zero characters
INVALID_SID = "0000000000000000"


@dataclass(frozen=True)
class SessionId:
    """
    Opaque session token issued by the Fritz!Box after a successful login.

    A SessionId is immutable. A session holds exactly one current id and
    replaces it wholesale on login, invalidation and logout.

    Examples:
        >>> SessionId("0000000000000000").is_valid
        False
        >>> SessionId("8d3e1a4c9f0b7e21").is_valid
        True
    """

    value: str = INVALID_SID

    @property
    def is_valid(self) -> bool:
        """True unless the token is empty, the zero sentinel, or numerically zero."""
        sid = self.value
        if not sid or sid == INVALID_SID:
            return False
        digits = sid.strip().lstrip("+")
        if digits.isascii() and digits.isdigit() and int(digits) == 0:
            return False
        return True

    @property
    def short(self) -> str:
        """Shortened form for log output."""
        if len(self.value) <= 4:
            return self.value
        return f"{self.value[:4]}…"

    @classmethod
    def invalid(cls) -> "SessionId":
        """The 'not logged in' id."""
        return cls(INVALID_SID)

    def __str__(self) -> str:
        return self.value


class LastActionTimer:
    """
    Thread-safe holder for the time of the last successful API call.

    Written by every concurrent partition fetch and read by the idle-timeout
    check, so all access goes through a lock. A reset timer reports an
    infinite elapsed time.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Optional[float] = None

    @property
    def value(self) -> Optional[float]:
        with self._lock:
            return self._value

    def set(self, value: Optional[float]) -> None:
        with self._lock:
            self._value = value

    def update(self) -> None:
        """Set to the current clock time."""
        now = self._clock()
        with self._lock:
            self._value = now

    def reset(self) -> None:
        with self._lock:
            self._value = None

    def elapsed(self) -> float:
        """Seconds since the last action."""
        with self._lock:
            value = self._value
        if value is None:
            return float("inf")
        return self._clock() - value


@dataclass
class QueryPartition:
    """
    A batch of indexed query items sent in one request.

    Attributes:
        items: Mapping of argument key (``a<index>``) to command, in request order
        arguments: Percent-encoded ``&a<index>=<command>`` string for the batch
    """

    items: dict[str, str] = field(default_factory=dict)
    arguments: str = ""

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class PartitionPlan:
    """Ordered partitions plus the total number of query items."""

    partitions: list[QueryPartition]
    total: int


@dataclass
class TimingMetrics:
    """Detailed timing metrics for performance analysis."""

    operation: str
    start_time: float
    end_time: float
    duration: float
    success: bool
    error_type: Optional[str] = None
    http_status: Optional[int] = None
    response_size: int = 0

    @property
    def duration_ms(self) -> float:
        """Duration in milliseconds."""
        return self.duration * 1000


__all__ = ["INVALID_SID", "LastActionTimer", "PartitionPlan", "QueryPartition", "SessionId", "TimingMetrics"]
