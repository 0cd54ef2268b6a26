"""
Metrics collection for performance monitoring.

Tracks pass latencies, counters, and detection statistics
with efficient in-memory storage.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass

from cyclearb.config.constants import METRICS_LATENCY_WINDOW


@dataclass
class LatencyStats:
    """Aggregated latency statistics."""

    min_us: int = 0
    max_us: int = 0
    avg_us: float = 0.0
    p50_us: int = 0
    p95_us: int = 0
    p99_us: int = 0
    count: int = 0


@dataclass
class DetectionStats:
    """Cycle detection statistics."""

    opportunities_scored: int = 0
    opportunities_profitable: int = 0
    opportunities_dispatched: int = 0
    best_net_yield: float = 0.0
    best_z_score: float = 0.0

    @property
    def dispatch_rate(self) -> float:
        """Share of scored opportunities that were dispatched."""
        if self.opportunities_scored == 0:
            return 0.0
        return self.opportunities_dispatched / self.opportunities_scored


class MetricsCollector:
    """
    Collects and aggregates engine metrics.

    Features:
    - Rolling window latency tracking
    - Counter-based event tracking
    - Opportunity statistics

    Counters are incremented from the feed consumer as well as the
    evaluation pass, so mutations are serialized by a lock.
    """

    def __init__(
        self,
        latency_window_size: int = METRICS_LATENCY_WINDOW,
    ) -> None:
        """
        Initialize metrics collector.

        Args:
            latency_window_size: Number of samples to keep for latency stats.
        """
        self._window_size = latency_window_size
        self._latencies: dict[str, deque[int]] = {}
        self._counters: dict[str, int] = {}
        self._detection_stats = DetectionStats()
        self._start_time = time.time()
        self._lock = threading.Lock()

    def record_latency(self, name: str, latency_us: int) -> None:
        """
        Record a latency measurement.

        Args:
            name: Metric name (e.g., "pass_total", "detect").
            latency_us: Latency in microseconds.
        """
        with self._lock:
            if name not in self._latencies:
                self._latencies[name] = deque(maxlen=self._window_size)
            self._latencies[name].append(latency_us)

    def increment_counter(self, name: str, value: int = 1) -> None:
        """
        Increment a counter.

        Args:
            name: Counter name.
            value: Amount to increment.
        """
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def get_counter(self, name: str) -> int:
        """Get counter value."""
        return self._counters.get(name, 0)

    def record_opportunity(
        self,
        net_yield: float,
        z_score: float,
        dispatched: bool = False,
    ) -> None:
        """
        Record a scored opportunity.

        Args:
            net_yield: Multiplicative return after fees.
            z_score: Deviation from the cycle's history.
            dispatched: Whether it was handed to the dispatcher.
        """
        with self._lock:
            stats = self._detection_stats
            stats.opportunities_scored += 1

            if net_yield > 1.0:
                stats.opportunities_profitable += 1

            if net_yield > stats.best_net_yield:
                stats.best_net_yield = net_yield

            if z_score > stats.best_z_score:
                stats.best_z_score = z_score

            if dispatched:
                stats.opportunities_dispatched += 1

    def get_latency_stats(self, name: str) -> LatencyStats:
        """
        Get latency statistics for a metric.

        Args:
            name: Metric name.

        Returns:
            LatencyStats with aggregated values.
        """
        samples = self._latencies.get(name)
        if not samples:
            return LatencyStats()

        sorted_samples = sorted(samples)
        n = len(sorted_samples)

        return LatencyStats(
            min_us=sorted_samples[0],
            max_us=sorted_samples[-1],
            avg_us=sum(sorted_samples) / n,
            p50_us=sorted_samples[n // 2],
            p95_us=sorted_samples[int(n * 0.95)],
            p99_us=sorted_samples[int(n * 0.99)] if n > 1 else sorted_samples[-1],
            count=n,
        )

    def get_all_latency_stats(self) -> dict[str, LatencyStats]:
        """Get latency stats for all metrics."""
        return {name: self.get_latency_stats(name) for name in list(self._latencies)}

    @property
    def detection_stats(self) -> DetectionStats:
        """Get detection statistics."""
        return self._detection_stats

    @property
    def uptime_seconds(self) -> float:
        """Get uptime in seconds."""
        return time.time() - self._start_time

    def to_dict(self) -> dict[str, object]:
        """
        Export all metrics as a dict.

        Returns:
            Dict representation of all metrics.
        """
        stats = self._detection_stats
        return {
            "uptime_seconds": self.uptime_seconds,
            "counters": dict(self._counters),
            "latencies": {
                name: {
                    "min": latency.min_us,
                    "max": latency.max_us,
                    "avg": latency.avg_us,
                    "p50": latency.p50_us,
                    "p99": latency.p99_us,
                    "count": latency.count,
                }
                for name, latency in self.get_all_latency_stats().items()
            },
            "detection": {
                "opportunities_scored": stats.opportunities_scored,
                "opportunities_profitable": stats.opportunities_profitable,
                "opportunities_dispatched": stats.opportunities_dispatched,
                "best_net_yield": stats.best_net_yield,
                "best_z_score": stats.best_z_score,
            },
        }

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._latencies.clear()
            self._counters.clear()
            self._detection_stats = DetectionStats()
            self._start_time = time.time()
