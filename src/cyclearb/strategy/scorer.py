"""
Opportunity scoring.

Turns raw cycles into annotated candidates: fee-adjusted net yield, a
z-score of that yield against the cycle's own history, and a freshness
based confidence. The rolling history lives in a HistoryTable shared
across passes.
"""

import logging
import math
import threading
from collections.abc import Iterable
from dataclasses import replace
from pathlib import Path

import orjson

from cyclearb.config.constants import (
    DEFAULT_MAX_STALENESS_MS,
    DEFAULT_MIN_HISTORY_SAMPLES,
    DEFAULT_STDDEV_FLOOR,
)
from cyclearb.core.exceptions import InsufficientHistoryError
from cyclearb.core.types import Cycle, HistoricalStat, Opportunity


logger = logging.getLogger(__name__)

CHECKPOINT_VERSION = 1


class HistoryTable:
    """
    Per-cycle yield statistics, keyed by canonical cycle identity.

    Entries are created on first observation and evicted after an
    inactivity window. Each key is updated under the table lock, so a
    second writer (another scorer or base asset) stays consistent.
    """

    def __init__(self) -> None:
        self._stats: dict[str, HistoricalStat] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._stats)

    def __contains__(self, key: object) -> bool:
        return key in self._stats

    def get(self, key: str) -> HistoricalStat | None:
        """Get a copy of the statistic for a cycle key."""
        with self._lock:
            stat = self._stats.get(key)
            if stat is None:
                return None
            return replace(stat)

    def require(self, key: str, min_samples: int) -> HistoricalStat:
        """
        Get a statistic that has at least min_samples observations.

        Raises:
            InsufficientHistoryError: If the key has too few samples.
        """
        stat = self.get(key)
        samples = stat.samples if stat else 0
        if stat is None or samples < min_samples:
            raise InsufficientHistoryError(key, samples)
        return stat

    def observe(self, key: str, value: float, alpha: float, timestamp_ms: int) -> HistoricalStat:
        """
        Fold a value into a key's statistic, returning the prior state.

        Args:
            key: Canonical cycle key.
            value: Observed net yield.
            alpha: Decay factor.
            timestamp_ms: Observation time.

        Returns:
            The statistic as it was before this observation.
        """
        with self._lock:
            stat = self._stats.get(key)
            if stat is None:
                stat = HistoricalStat()
                self._stats[key] = stat
            prior = replace(stat)
            stat.update(value, alpha, timestamp_ms)
            return prior

    def evict(self, now_ms: int, inactivity_ms: int) -> int:
        """
        Drop entries not observed within the inactivity window.

        Returns:
            Number of entries evicted.
        """
        with self._lock:
            idle = [
                key
                for key, stat in self._stats.items()
                if now_ms - stat.last_seen_ms > inactivity_ms
            ]
            for key in idle:
                del self._stats[key]

        if idle:
            logger.debug(f"Evicted {len(idle)} idle history entries")
        return len(idle)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._stats.clear()

    def save(self, path: str | Path) -> int:
        """
        Checkpoint the table to a JSON file.

        Writes to a temporary sibling first and renames it into place.

        Returns:
            Number of entries written.
        """
        target = Path(path)
        with self._lock:
            entries = {key: stat.to_dict() for key, stat in self._stats.items()}

        payload = {"version": CHECKPOINT_VERSION, "entries": entries}
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(target.suffix + ".tmp")
        tmp.write_bytes(orjson.dumps(payload, option=orjson.OPT_SORT_KEYS))
        tmp.replace(target)

        logger.info(f"Saved {len(entries)} history entries to {target}")
        return len(entries)

    def load(self, path: str | Path) -> int:
        """
        Restore the table from a checkpoint.

        A missing or unreadable checkpoint leaves the table empty; history
        is only a warm-up aid.

        Returns:
            Number of entries loaded.
        """
        source = Path(path)
        if not source.exists():
            logger.info(f"No history checkpoint at {source}, starting empty")
            return 0

        try:
            payload = orjson.loads(source.read_bytes())
            entries = {
                str(key): HistoricalStat.from_dict(data)
                for key, data in payload["entries"].items()
            }
        except (orjson.JSONDecodeError, OSError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable history checkpoint {source}: {e}")
            return 0

        with self._lock:
            self._stats = entries

        logger.info(f"Loaded {len(entries)} history entries from {source}")
        return len(entries)

    def to_dict(self) -> dict[str, dict[str, float | int]]:
        """Serializable view of all entries."""
        with self._lock:
            return {key: stat.to_dict() for key, stat in self._stats.items()}


class OpportunityScorer:
    """
    Scores cycles against their own yield history.

    The z-score is computed from the history as it stood before the
    current observation, then the observation is folded in.
    """

    def __init__(
        self,
        history: HistoryTable,
        alpha: float,
        min_history_samples: int = DEFAULT_MIN_HISTORY_SAMPLES,
        stddev_floor: float = DEFAULT_STDDEV_FLOOR,
        max_staleness_ms: int = DEFAULT_MAX_STALENESS_MS,
    ) -> None:
        """
        Initialize scorer.

        Args:
            history: Shared history table.
            alpha: Decay factor for the rolling statistics.
            min_history_samples: Samples needed before a z-score counts.
            stddev_floor: Standard deviation below which history is
                treated as insufficient.
            max_staleness_ms: Leg age at which confidence reaches zero.
        """
        self._history = history
        self._alpha = alpha
        self._min_samples = min_history_samples
        self._stddev_floor = stddev_floor
        self._max_staleness_ms = max_staleness_ms

    def score(
        self,
        cycle: Cycle,
        snapshot_time_ms: int,
        as_of_ms: int | None = None,
    ) -> Opportunity:
        """
        Score one cycle.

        Confidence measures the oldest leg against ``as_of_ms``, the
        newest quote in the snapshot, so an unchanged graph scores the
        same confidence on every pass.

        Args:
            cycle: Negative cycle from the detector.
            snapshot_time_ms: Time of the snapshot the cycle came from.
            as_of_ms: Newest quote time in the snapshot (defaults to
                snapshot_time_ms).

        Returns:
            Opportunity with yield, z-score and confidence.
        """
        net_yield = math.exp(-cycle.raw_score)
        prior = self._history.observe(cycle.key, net_yield, self._alpha, snapshot_time_ms)

        stddev = prior.stddev
        sufficient = (
            prior.samples >= self._min_samples
            and stddev > 0.0
            and stddev >= self._stddev_floor
        )

        if sufficient:
            z_score = (net_yield - prior.mean) / stddev
            reference_ms = snapshot_time_ms if as_of_ms is None else as_of_ms
            confidence = self._freshness(cycle, reference_ms)
        else:
            z_score = 0.0
            confidence = 0.0

        return Opportunity(
            cycle=cycle,
            net_yield=net_yield,
            z_score=z_score,
            confidence=confidence,
            history_samples=prior.samples,
            sufficient_history=sufficient,
            timestamp_ms=snapshot_time_ms,
        )

    def score_all(
        self,
        cycles: Iterable[Cycle],
        snapshot_time_ms: int,
        as_of_ms: int | None = None,
    ) -> list[Opportunity]:
        """
        Score every cycle of a pass.

        Returns:
            Opportunities ranked by net yield descending, ties by key.
        """
        opportunities = [self.score(cycle, snapshot_time_ms, as_of_ms) for cycle in cycles]
        opportunities.sort(key=lambda o: (-o.net_yield, o.key))
        return opportunities

    def _freshness(self, cycle: Cycle, reference_ms: int) -> float:
        """1 for an oldest leg as new as the reference, 0 at max staleness."""
        if self._max_staleness_ms <= 0:
            return 1.0
        age = max(0, reference_ms - cycle.oldest_timestamp_ms)
        return min(1.0, max(0.0, 1.0 - age / self._max_staleness_ms))

    @property
    def history(self) -> HistoryTable:
        """Shared history table."""
        return self._history
