"""
Type definitions for the cycle engine.

This module contains the dataclasses and enums shared by the feed,
graph, detector, scorer and gate. Using slots=True for memory
efficiency and faster attribute access.
"""

import math
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


# Type alias for injectable millisecond clocks
Clock = Callable[[], int]


# =============================================================================
# Enums
# =============================================================================


class GateState(str, Enum):
    """Decision gate state of a cycle identity."""

    UNSEEN = "UNSEEN"
    OBSERVED = "OBSERVED"
    COOLDOWN = "COOLDOWN"


# =============================================================================
# Feed Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class Asset:
    """Tradable currency or token. Immutable once registered."""

    symbol: str
    precision: int = 8


@dataclass(slots=True, frozen=True)
class RawRate:
    """
    Rate event as produced by a feed source.

    Mirrors the feed shape ``{from, to, rate, fee, ts}``.
    """

    asset_from: str
    asset_to: str
    rate: float
    fee_rate: float
    timestamp_ms: int


# Feed sources are async streams of raw rates
RateSource = AsyncIterable[RawRate]


@dataclass(slots=True, frozen=True)
class RateUpdate:
    """
    Normalized edge-weight update waiting to be merged into the graph.

    weight = -ln(rate * (1 - fee_rate))
    """

    asset_from: str
    asset_to: str
    rate: float
    fee_rate: float
    timestamp_ms: int
    weight: float

    @property
    def key(self) -> tuple[str, str]:
        """Directed edge key."""
        return (self.asset_from, self.asset_to)

    @property
    def effective_rate(self) -> float:
        """Rate after fees."""
        return self.rate * (1.0 - self.fee_rate)


# =============================================================================
# Rolling Statistics
# =============================================================================


@dataclass(slots=True)
class HistoricalStat:
    """
    Exponentially weighted mean and variance of a series.

    Used both for per-edge weight history and per-cycle yield history.
    """

    mean: float = 0.0
    variance: float = 0.0
    samples: int = 0
    first_seen_ms: int = 0
    last_seen_ms: int = 0

    def update(self, value: float, alpha: float, timestamp_ms: int) -> None:
        """
        Fold a new observation into the statistic.

        Args:
            value: Observed value.
            alpha: Decay factor in (0, 1].
            timestamp_ms: Observation time.
        """
        if self.samples == 0:
            self.mean = value
            self.variance = 0.0
            self.first_seen_ms = timestamp_ms
        else:
            diff = value - self.mean
            increment = alpha * diff
            self.mean += increment
            self.variance = (1.0 - alpha) * (self.variance + diff * increment)

        self.samples += 1
        self.last_seen_ms = timestamp_ms

    @property
    def stddev(self) -> float:
        """Standard deviation."""
        return math.sqrt(self.variance) if self.variance > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for checkpoints."""
        return {
            "mean": self.mean,
            "variance": self.variance,
            "samples": self.samples,
            "first_seen_ms": self.first_seen_ms,
            "last_seen_ms": self.last_seen_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoricalStat":
        """Restore from a checkpoint entry."""
        return cls(
            mean=float(data["mean"]),
            variance=float(data["variance"]),
            samples=int(data["samples"]),
            first_seen_ms=int(data.get("first_seen_ms", 0)),
            last_seen_ms=int(data.get("last_seen_ms", 0)),
        )


# =============================================================================
# Graph Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class EdgeState:
    """
    Directed tradable pair as held by the exchange graph.

    Frozen so snapshots can share instances with the live graph.
    """

    asset_from: str
    asset_to: str
    rate: float
    fee_rate: float
    weight: float
    timestamp_ms: int
    live: bool = True

    @property
    def key(self) -> tuple[str, str]:
        """Directed edge key."""
        return (self.asset_from, self.asset_to)

    @property
    def effective_rate(self) -> float:
        """Rate after fees."""
        return self.rate * (1.0 - self.fee_rate)

    def age_ms(self, now_ms: int) -> int:
        """Age of the last rate update."""
        return now_ms - self.timestamp_ms

    @classmethod
    def from_update(cls, update: RateUpdate) -> "EdgeState":
        """Create a live edge from a normalized update."""
        return cls(
            asset_from=update.asset_from,
            asset_to=update.asset_to,
            rate=update.rate,
            fee_rate=update.fee_rate,
            weight=update.weight,
            timestamp_ms=update.timestamp_ms,
        )

    def __repr__(self) -> str:
        return f"{self.asset_from}->{self.asset_to}(w={self.weight:.6f})"


# =============================================================================
# Cycle Types
# =============================================================================


def canonical_key(assets: tuple[str, ...]) -> str:
    """
    Rotation-normalized identity of a cycle.

    The cycle is rotated to start at its lexicographically smallest
    asset, so B>C>A and A>B>C map to the same key. Direction is kept:
    A>C>B is a different trade sequence.

    Example:
        >>> canonical_key(("BTC", "ETH", "USDT"))
        'BTC>ETH>USDT'
        >>> canonical_key(("USDT", "BTC", "ETH"))
        'BTC>ETH>USDT'
    """
    if not assets:
        return ""
    start = assets.index(min(assets))
    return ">".join(assets[start:] + assets[:start])


@dataclass(slots=True, frozen=True)
class Cycle:
    """
    Negative-weight cycle found in one snapshot.

    ``assets`` lists v0..v(k-1); the closing edge v(k-1) -> v0 is implicit.
    ``edges[i]`` backs the transition assets[i] -> assets[i + 1].
    """

    assets: tuple[str, ...]
    edges: tuple[EdgeState, ...]
    raw_score: float
    key: str = field(init=False)

    def __post_init__(self) -> None:
        """Compute the canonical identity."""
        object.__setattr__(self, "key", canonical_key(self.assets))

    @property
    def length(self) -> int:
        """Number of legs."""
        return len(self.assets)

    @property
    def path(self) -> tuple[str, ...]:
        """Closed asset sequence v0 -> ... -> v0."""
        return self.assets + self.assets[:1]

    @property
    def legs(self) -> frozenset[tuple[str, str]]:
        """Directed pairs traded by this cycle."""
        return frozenset(edge.key for edge in self.edges)

    @property
    def oldest_timestamp_ms(self) -> int:
        """Timestamp of the stalest leg."""
        return min(edge.timestamp_ms for edge in self.edges)

    def contains(self, asset: str) -> bool:
        """Check whether the cycle passes through an asset."""
        return asset in self.assets

    def rotated_to(self, asset: str) -> "Cycle":
        """
        Rotate the cycle to start at an asset on it.

        Raises:
            ValueError: If the asset is not on the cycle.
        """
        start = self.assets.index(asset)
        if start == 0:
            return self
        return replace(
            self,
            assets=self.assets[start:] + self.assets[:start],
            edges=self.edges[start:] + self.edges[:start],
        )

    def __hash__(self) -> int:
        return hash(self.key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cycle):
            return NotImplemented
        return self.key == other.key


# =============================================================================
# Opportunity Types
# =============================================================================


@dataclass(slots=True)
class Opportunity:
    """
    Scored cycle ready for the decision gate.

    Contains all information needed to dispatch the cycle.
    """

    cycle: Cycle
    net_yield: float
    z_score: float
    confidence: float
    history_samples: int
    sufficient_history: bool
    timestamp_ms: int
    route: tuple[str, ...] = ()
    dispatched: bool = False

    def __post_init__(self) -> None:
        """Default the route to the cycle's own path."""
        if not self.route:
            self.route = self.cycle.path

    @property
    def key(self) -> str:
        """Stable cycle identity."""
        return self.cycle.key

    @property
    def surface_rate(self) -> float:
        """Return above break-even (e.g., 0.012 = 1.2%)."""
        return self.net_yield - 1.0

    @property
    def is_profitable(self) -> bool:
        """Check if the cycle returns more than it costs after fees."""
        return self.net_yield > 1.0
