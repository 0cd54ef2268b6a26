"""Utility functions for the cycle engine."""

from cyclearb.utils.time import (
    Deadline,
    LatencyTimer,
    format_duration_us,
    format_timestamp_ms,
    get_timestamp_ms,
    get_timestamp_us,
)


__all__ = [
    "Deadline",
    "LatencyTimer",
    "format_duration_us",
    "format_timestamp_ms",
    "get_timestamp_ms",
    "get_timestamp_us",
]
