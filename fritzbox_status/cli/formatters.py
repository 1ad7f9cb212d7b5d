"""
Output Formatting Module

This module provides functions for formatting and displaying Fritz!Box
status data: JSON serialization, a human-readable DSL summary and query
progress on stderr.

License: MIT
"""

import json
import logging
import math
import sys
from datetime import datetime
from typing import Any

from fritzbox_status import __version__
from fritzbox_status.queries import sync_to_real

logger = logging.getLogger(__name__)


def sanitize_for_json(value: Any) -> Any:
    """Replace NaN and infinite floats (unknown device values) with None."""
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if isinstance(value, dict):
        return {key: sanitize_for_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_for_json(item) for item in value]
    return value


def _rate(dsl: dict, key: str) -> int:
    """Rate in kbit/s, -1 when unknown or not queried."""
    value = dsl.get(key)
    return value if isinstance(value, int) else -1


def _percent(part: int, whole: int) -> str:
    if whole <= 0 or part < 0:
        return "n/a"
    return f"{part * 100.0 / whole:.2f}%"


def _kbit(value: int) -> str:
    return f"{value:,} kbit/s" if value >= 0 else "n/a"


def print_summary_to_stderr(status: dict) -> None:
    """
    Print a human-readable DSL summary to stderr (so JSON output to stdout is clean).

    Args:
        status: DSL status dictionary as produced by ``marshaller.to_dict``
    """
    logger.debug("Printing status summary to stderr")
    dsl = status.get("dsl") or {}

    def row(label: str, downstream: Any, upstream: Any = "") -> None:
        print(f"{label:<28} {str(downstream):>22} {str(upstream):>22}", file=sys.stderr)

    print("=" * 74, file=sys.stderr)
    print("FRITZ!BOX DSL STATUS SUMMARY", file=sys.stderr)
    print("=" * 74, file=sys.stderr)
    print(f"Firmware: {status.get('firmware') or 'Unknown'}", file=sys.stderr)
    print(f"DSL Driver: {status.get('dsl_driver') or 'Unknown'}", file=sys.stderr)
    print(
        f"DSLAM: {status.get('dslam_vendor') or 'Unknown'} {status.get('dslam_vendor_version') or ''}".rstrip(),
        file=sys.stderr,
    )

    if dsl:
        row("", "Downstream", "Upstream")
        row("DSLAM Max. Rate", _kbit(_rate(dsl, "ds_max_dslam_rate")), _kbit(_rate(dsl, "us_max_dslam_rate")))
        row("DSLAM Min. Rate", _kbit(_rate(dsl, "ds_min_dslam_rate")), _kbit(_rate(dsl, "us_min_dslam_rate")))
        row("Line Capacity", _kbit(_rate(dsl, "ds_capacity")), _kbit(_rate(dsl, "us_capacity")))

        ds_rate = _rate(dsl, "ds_data_rate")
        us_rate = _rate(dsl, "us_data_rate")
        row(
            "Sync",
            f"{_kbit(ds_rate)} ({_percent(ds_rate, _rate(dsl, 'ds_capacity'))})",
            f"{_kbit(us_rate)} ({_percent(us_rate, _rate(dsl, 'us_capacity'))})",
        )
        row(
            "Usable Throughput",
            sync_to_real(ds_rate) if ds_rate > 0 else "n/a",
            sync_to_real(us_rate) if us_rate > 0 else "n/a",
        )
        row("Noise Margin (SNRM)", f"{dsl.get('ds_snrm')} dB", f"{dsl.get('us_snrm')} dB")
        row("Line Attenuation", f"{dsl.get('ds_attenuation')} dB", f"{dsl.get('us_attenuation')} dB")
        row("Power Cutback (PCB)", f"{dsl.get('ds_pcb')} dB", f"{dsl.get('us_pcb')} dB")

    print("=" * 74, file=sys.stderr)


def print_query_summary_to_stderr(values: dict) -> None:
    """Print the raw values of a command query to stderr."""
    print("=" * 60, file=sys.stderr)
    print("FRITZ!BOX QUERY RESULTS", file=sys.stderr)
    print("=" * 60, file=sys.stderr)
    for command, value in values.items():
        print(f"{command}: {value}", file=sys.stderr)
    print("=" * 60, file=sys.stderr)


class ProgressPrinter:
    """Progress callback that rewrites one stderr line per report."""

    def __init__(self, stream=None) -> None:
        self.stream = stream
        self.reports = 0

    def __call__(self, done: int, total: int) -> None:
        stream = self.stream or sys.stderr
        self.reports += 1
        percent = done * 100.0 / total if total else 100.0
        print(f"\rQuerying: {done}/{total} ({percent:.0f}%)", end="", file=stream, flush=True)
        if done >= total:
            print(file=stream)


def format_json_output(data: dict, args, elapsed_time: float) -> dict:
    """
    Format the complete JSON output with metadata.

    Args:
        data: Queried values
        args: Parsed command line arguments
        elapsed_time: Total elapsed time for the operation

    Returns:
        Complete JSON output dictionary
    """
    logger.debug("Formatting complete JSON output")

    json_output = sanitize_for_json(dict(data))

    json_output["query_timestamp"] = datetime.now().isoformat()
    json_output["query_host"] = args.host
    json_output["client_version"] = __version__
    json_output["elapsed_time"] = elapsed_time
    json_output["configuration"] = {
        "max_workers": args.workers,
        "max_url_length": args.max_url_length,
        "timeout": args.timeout,
        "idle_timeout": args.idle_timeout,
        "auto_reconnect": args.auto_reconnect,
    }

    return json_output


def print_json_output(json_data: dict) -> None:
    """
    Print JSON output to stdout.

    Args:
        json_data: Dictionary to output as JSON
    """
    logger.debug("Outputting JSON to stdout")
    print(json.dumps(json_data, indent=2))


def print_error_suggestions(debug: bool = False) -> None:
    """
    Print helpful error suggestions.

    Args:
        debug: Whether debug mode is enabled
    """
    if debug:
        import traceback

        traceback.print_exc(file=sys.stderr)
    else:
        print("\nTroubleshooting suggestions:", file=sys.stderr)
        print("1. Verify the Fritz!Box password (and username, if user accounts are enabled)", file=sys.stderr)
        print("2. Check that the Fritz!Box is reachable (default host: fritz.box)", file=sys.stderr)
        print("3. Wait a moment after failed logins, the box delays further attempts", file=sys.stderr)
        print("4. Try with --debug for more detailed error information", file=sys.stderr)
        print("5. Try --workers 1 if the box drops parallel requests", file=sys.stderr)
