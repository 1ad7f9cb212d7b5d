"""
Query Engine for Fritz!Box Status Client
========================================

This module turns an ordered list of query commands into length-bounded
``query.lua`` requests, fetches them in parallel and puts the answers back in
request order.

Every command gets its request index as argument key (``a0``, ``a1``, ...).
The device echoes the key next to each value, so the answers can be fetched
in any order and still be matched to their commands.

"""

import logging
import threading
import time
from collections.abc import Iterable, Sequence
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, Optional

from fritzbox_status.cancellation import CancellationToken
from fritzbox_status.client.parser import parse_query_items
from fritzbox_status.exceptions import FritzBoxCancelledError, FritzBoxProtocolError, FritzBoxQueryError
from fritzbox_status.instrumentation import PerformanceInstrumentation
from fritzbox_status.models import LastActionTimer, PartitionPlan, QueryPartition
from fritzbox_status.transport import FritzBoxTransport, encode_parameter

logger = logging.getLogger("fritzbox-status")

URL_QUERY = "/query.lua"

# Used by IE, should be safe limit
DEFAULT_MAX_URL_LENGTH = 2083
DEFAULT_MAX_CONCURRENCY = 4

ProgressCallback = Callable[[int, int], None]


def query_prefix(session_id: str) -> str:
    """The request path every partition starts with, used as length seed."""
    return f"{URL_QUERY}?{encode_parameter('sid', session_id)}"


def partition_query_items(items: Iterable[str], prefix: str, max_length: int = DEFAULT_MAX_URL_LENGTH) -> PartitionPlan:
    """
    Split query commands into partitions whose URL stays below ``max_length``.

    Args:
        items: Query commands in request order
        prefix: Request path including the session argument
        max_length: Exclusive upper bound for ``len(prefix + arguments)``

    Returns:
        PartitionPlan with the partitions in request order

    Raises:
        FritzBoxQueryError: If a single command does not fit into an empty partition
    """
    partitions: list[QueryPartition] = []
    current: Optional[QueryPartition] = None
    parts: list[str] = []
    length = 0
    total = 0

    for index, item in enumerate(items):
        total = index + 1
        key = f"a{index}"
        encoded = f"&{encode_parameter(key, item)}"

        while True:
            if current is None:
                current = QueryPartition()
                parts = []
                length = len(prefix)

            if length + len(encoded) >= max_length:
                if not current.items:
                    raise FritzBoxQueryError(
                        "Query parameter too long",
                        details={"index": index, "encoded_length": len(encoded), "max_length": max_length},
                    )
                current.arguments = "".join(parts)
                partitions.append(current)
                current = None
                continue

            current.items[key] = item
            parts.append(encoded)
            length += len(encoded)
            break

    if current is not None and current.items:
        current.arguments = "".join(parts)
        partitions.append(current)

    return PartitionPlan(partitions=partitions, total=total)


def sequence_results(results: dict[int, str], total: int) -> list[str]:
    """
    Order a result map back into request order.

    Raises:
        FritzBoxProtocolError: If the indices are not exactly ``0..total-1``
    """
    expected = set(range(total))
    received = set(results)

    if received != expected:
        missing = sorted(expected - received)
        unexpected = sorted(received - expected)
        raise FritzBoxProtocolError(
            "Invalid response",
            details={
                "expected": total,
                "received": len(results),
                "missing": missing[:20],
                "unexpected": unexpected[:20],
            },
        )

    return [results[index] for index in range(total)]


class ProgressReporter:
    """
    Forwards ``(done, total)`` reports to a callback, forward progress only.

    Reports arrive from several fetch threads. A report that is not larger
    than the last delivered one is dropped, and delivery happens under the
    same lock so the callback never observes a decreasing value.
    """

    def __init__(self, callback: Optional[ProgressCallback]) -> None:
        self._callback = callback
        self._lock = threading.Lock()
        self._last = 0

    def report(self, done: int, total: int) -> None:
        if self._callback is None:
            return
        with self._lock:
            if done <= self._last:
                return
            self._last = done
            self._callback(done, total)


class ResultCollector:
    """Insert-only index to value map shared by the partition fetches."""

    def __init__(self, total: int, progress: ProgressReporter) -> None:
        self.total = total
        self._progress = progress
        self._lock = threading.Lock()
        self._results: dict[int, str] = {}

    def add(self, index: int, value: str) -> None:
        with self._lock:
            if index in self._results:
                raise FritzBoxProtocolError("Duplicate element", details={"index": index})
            self._results[index] = value
            count = len(self._results)
        self._progress.report(count, self.total)

    def snapshot(self) -> dict[int, str]:
        with self._lock:
            return dict(self._results)


class QueryExecutor:
    """Fetches the partitions of a query with bounded concurrency."""

    def __init__(
        self,
        transport: FritzBoxTransport,
        last_action: LastActionTimer,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        instrumentation: Optional[PerformanceInstrumentation] = None,
    ):
        """
        Initialize the executor.

        Args:
            transport: Transport used for the partition GETs
            last_action: Timer updated after every successful fetch
            max_concurrency: Maximum number of fetches in flight, capped at
                DEFAULT_MAX_CONCURRENCY
            instrumentation: Optional timing collector
        """
        self.transport = transport
        self.last_action = last_action
        self.max_concurrency = max(1, min(max_concurrency, DEFAULT_MAX_CONCURRENCY))
        self.instrumentation = instrumentation

    def execute(
        self,
        plan: PartitionPlan,
        session_id: str,
        cancel: CancellationToken,
        progress: Optional[ProgressCallback] = None,
    ) -> dict[int, str]:
        """
        Fetch every partition and return the combined result map.

        The first failing partition cancels the remaining fetches and its
        error is raised. Nothing is returned unless all partitions succeed.
        """
        cancel.raise_if_cancelled()

        collector = ResultCollector(plan.total, ProgressReporter(progress))
        if not plan.partitions:
            return collector.snapshot()

        fetch_cancel = cancel.create_linked()
        workers = min(self.max_concurrency, len(plan.partitions))
        logger.debug(f"🚀 Fetching {len(plan.partitions)} partition(s) for {plan.total} item(s) with {workers} worker(s)")

        try:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fritzbox-query") as executor:
                futures = [
                    executor.submit(self._load_partition, partition, session_id, collector, fetch_cancel)
                    for partition in plan.partitions
                ]

                done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
                failed = [f for f in futures if f.done() and not f.cancelled() and f.exception() is not None]

                if failed:
                    fetch_cancel.cancel()
                    for future in not_done:
                        future.cancel()
                    wait(not_done)
                    raise self._first_error(failed, cancel)
        finally:
            fetch_cancel.detach()

        cancel.raise_if_cancelled()
        return collector.snapshot()

    @staticmethod
    def _first_error(failed: Sequence, cancel: CancellationToken) -> BaseException:
        # Fetches aborted by a sibling's failure report cancellation; prefer the real cause
        errors = [f.exception() for f in failed]
        for error in errors:
            if not isinstance(error, FritzBoxCancelledError):
                return error
        if cancel.cancelled:
            return FritzBoxCancelledError()
        return errors[0]

    def _load_partition(
        self,
        partition: QueryPartition,
        session_id: str,
        collector: ResultCollector,
        cancel: CancellationToken,
    ) -> None:
        cancel.raise_if_cancelled()

        start_time = self.instrumentation.start_timer("query_partition") if self.instrumentation else time.time()
        query = encode_parameter("sid", session_id) + partition.arguments

        try:
            text = self.transport.get_text(URL_QUERY, query, cancel)
            self.last_action.update()

            for index, value in parse_query_items(text):
                collector.add(index, value)

        except Exception as e:
            if self.instrumentation:
                self.instrumentation.record_timing(
                    "query_partition", start_time, success=False, error_type=type(e).__name__
                )
            raise

        if self.instrumentation:
            self.instrumentation.record_timing("query_partition", start_time, success=True, response_size=len(text))
        logger.debug(f"✅ Partition with {len(partition)} item(s) loaded")


__all__ = [
    "DEFAULT_MAX_CONCURRENCY",
    "DEFAULT_MAX_URL_LENGTH",
    "ProgressReporter",
    "QueryExecutor",
    "ResultCollector",
    "URL_QUERY",
    "partition_query_items",
    "query_prefix",
    "sequence_results",
]
