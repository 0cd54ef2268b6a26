"""
Time utilities.

Millisecond timestamps drive staleness and cooldowns; microsecond
timestamps are used for latency measurement.
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime

from cyclearb.core.exceptions import PassDeadlineExceeded


def get_timestamp_us() -> int:
    """
    Get current timestamp in microseconds.

    Uses time.time_ns() for maximum precision, then converts to microseconds.

    Returns:
        Current Unix timestamp in microseconds.
    """
    return time.time_ns() // 1000


def get_timestamp_ms() -> int:
    """
    Get current timestamp in milliseconds.

    Default clock for staleness, cooldown and history timestamps.

    Returns:
        Current Unix timestamp in milliseconds.
    """
    return time.time_ns() // 1_000_000


def format_timestamp_ms(timestamp_ms: int) -> str:
    """
    Format a millisecond timestamp as ISO-8601 UTC.

    Example:
        >>> format_timestamp_ms(1704067200123)
        '2024-01-01T00:00:00.123000+00:00'
    """
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC).isoformat()


class LatencyTimer:
    """
    Context manager for measuring operation latency.

    Example:
        >>> with LatencyTimer() as timer:
        ...     do_something()
        >>> print(f"Latency: {timer.latency_us}μs")
    """

    __slots__ = ("start_us", "end_us", "latency_us")

    def __init__(self) -> None:
        self.start_us: int = 0
        self.end_us: int = 0
        self.latency_us: int = 0

    def __enter__(self) -> "LatencyTimer":
        self.start_us = get_timestamp_us()
        return self

    def __exit__(self, *args: object) -> None:
        self.end_us = get_timestamp_us()
        self.latency_us = self.end_us - self.start_us


def format_duration_us(duration_us: int) -> str:
    """
    Format a duration in microseconds for human-readable display.

    Examples:
        >>> format_duration_us(500)
        '500μs'
        >>> format_duration_us(1500)
        '1.50ms'
        >>> format_duration_us(1500000)
        '1.50s'
    """
    if duration_us < 1000:
        return f"{duration_us}μs"
    elif duration_us < 1_000_000:
        return f"{duration_us / 1000:.2f}ms"
    else:
        return f"{duration_us / 1_000_000:.2f}s"


class Deadline:
    """
    Cooperative time budget for one evaluation pass.

    Long-running stages call check() between units of work; nothing is
    interrupted preemptively.

    Example:
        >>> deadline = Deadline(800)
        >>> deadline.check("detect")  # raises PassDeadlineExceeded once expired
    """

    __slots__ = ("_budget_ms", "_expires_at_ms", "_clock")

    def __init__(self, budget_ms: int, clock: Callable[[], int] = get_timestamp_ms) -> None:
        self._budget_ms = budget_ms
        self._clock = clock
        self._expires_at_ms = clock() + budget_ms

    @property
    def budget_ms(self) -> int:
        """Total budget."""
        return self._budget_ms

    @property
    def remaining_ms(self) -> int:
        """Milliseconds left, never negative."""
        return max(0, self._expires_at_ms - self._clock())

    @property
    def expired(self) -> bool:
        """Whether the budget is used up."""
        return self._clock() > self._expires_at_ms

    def check(self, stage: str) -> None:
        """
        Abort the current stage if the budget is used up.

        Raises:
            PassDeadlineExceeded: If the deadline has passed.
        """
        if self.expired:
            raise PassDeadlineExceeded(stage, self._budget_ms)
