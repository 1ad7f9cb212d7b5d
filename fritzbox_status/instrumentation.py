"""
Performance Instrumentation for Fritz!Box Status Client
=======================================================

Optional timing instrumentation for the session and the query engine.
Partition fetches record from worker threads, so the metric store is
lock-guarded.

License: MIT
"""

import logging
import threading
import time
from typing import Any, Optional

from .models import TimingMetrics

logger = logging.getLogger("fritzbox-status")


def _percentile(ordered: list[float], fraction: float) -> float:
    """Nearest-rank percentile of an already sorted list (0 when empty)."""
    if not ordered:
        return 0
    return ordered[min(int(len(ordered) * fraction), len(ordered) - 1)]


def _describe(entries: list[TimingMetrics]) -> dict[str, Any]:
    durations = [entry.duration for entry in entries]
    succeeded = sum(1 for entry in entries if entry.success)
    return {
        "count": len(entries),
        "total_time": sum(durations),
        "avg_time": sum(durations) / len(durations),
        "min_time": min(durations),
        "max_time": max(durations),
        "success_rate": succeeded / len(entries),
    }


class PerformanceInstrumentation:
    """
    Collects TimingMetrics for session and query operations.

    Tracked operations:
    - login / invalidate / logout exchanges
    - whole queries and individual partition fetches
    - command submissions
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.timing_metrics: list[TimingMetrics] = []
        self.session_start_time = time.time()

    def start_timer(self, operation: str) -> float:
        return time.time()

    def record_timing(
        self,
        operation: str,
        start_time: float,
        success: bool = True,
        error_type: Optional[str] = None,
        http_status: Optional[int] = None,
        response_size: int = 0,
    ) -> TimingMetrics:
        """Store a metric for ``operation`` measured from ``start_time`` until now."""
        finished = time.time()
        metric = TimingMetrics(
            operation=operation,
            start_time=start_time,
            end_time=finished,
            duration=finished - start_time,
            success=success,
            error_type=error_type,
            http_status=http_status,
            response_size=response_size,
        )

        with self._lock:
            self.timing_metrics.append(metric)

        logger.debug(f"📊 {operation} took {metric.duration_ms:.1f}ms ({'ok' if success else error_type or 'failed'})")
        return metric

    def get_performance_summary(self) -> dict[str, Any]:
        """Per-operation statistics plus response time percentiles of successful operations."""
        with self._lock:
            snapshot = list(self.timing_metrics)

        if not snapshot:
            return {"error": "No timing metrics recorded"}

        grouped: dict[str, list[TimingMetrics]] = {}
        for metric in snapshot:
            grouped.setdefault(metric.operation, []).append(metric)

        ok_durations = sorted(metric.duration for metric in snapshot if metric.success)
        marks = {"p50": 0.5, "p90": 0.9, "p95": 0.95, "p99": 0.99}

        return {
            "session_metrics": {
                "total_session_time": time.time() - self.session_start_time,
                "total_operations": len(snapshot),
                "successful_operations": len(ok_durations),
                "failed_operations": len(snapshot) - len(ok_durations),
            },
            "operation_breakdown": {name: _describe(entries) for name, entries in grouped.items()},
            "response_time_percentiles": {key: _percentile(ok_durations, mark) for key, mark in marks.items()},
        }


__all__ = ["PerformanceInstrumentation"]
