"""
Exchange graph of tradable assets.

Uses a NetworkX directed graph as the live adjacency structure and
hands the detector frozen snapshots that contain only live edges.
"""

import logging
import math
import threading
from dataclasses import dataclass, replace
from typing import Any

import networkx as nx

from cyclearb.config.constants import WEIGHT_CONSISTENCY_TOLERANCE
from cyclearb.core.exceptions import GraphInconsistencyError
from cyclearb.core.types import Asset, Clock, EdgeState, HistoricalStat, RateUpdate
from cyclearb.feed.queue import PendingUpdateQueue
from cyclearb.telemetry.metrics import MetricsCollector
from cyclearb.utils.time import get_timestamp_ms


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class GraphSnapshot:
    """
    Immutable view of the live graph at one evaluation instant.

    Vertices are exactly the assets with at least one live edge.
    ``edges`` is sorted by (source, destination).
    """

    graph: nx.DiGraph
    vertices: tuple[str, ...]
    edges: tuple[EdgeState, ...]
    version: int
    taken_at_ms: int

    def __len__(self) -> int:
        return len(self.vertices)

    def __contains__(self, asset: object) -> bool:
        return asset in self.graph

    def edge(self, asset_from: str, asset_to: str) -> EdgeState | None:
        """Get the live edge between two assets."""
        if not self.graph.has_edge(asset_from, asset_to):
            return None
        return self.graph.edges[asset_from, asset_to]["state"]

    def out_degree(self, asset: str) -> int:
        """Number of live outgoing edges of an asset."""
        if asset not in self.graph:
            return 0
        return int(self.graph.out_degree(asset))

    @property
    def edge_count(self) -> int:
        """Number of live edges."""
        return len(self.edges)

    @property
    def as_of_ms(self) -> int:
        """Timestamp of the newest live quote, or the snapshot time if empty."""
        if not self.edges:
            return self.taken_at_ms
        return max(edge.timestamp_ms for edge in self.edges)


class ExchangeGraph:
    """
    Mutable directed weighted graph of assets and pairs.

    - Nodes are assets (BTC, ETH, USDT, etc.)
    - Edges are directed pairs carrying an EdgeState and a rolling
      statistic of their weight

    All mutation happens under one lock: merging pending updates,
    marking stale edges and taking snapshots.
    """

    def __init__(
        self,
        queue: PendingUpdateQueue,
        max_staleness_ms: int,
        history_alpha: float,
        metrics: MetricsCollector | None = None,
        clock: Clock = get_timestamp_ms,
    ) -> None:
        """
        Initialize exchange graph.

        Args:
            queue: Pending update queue filled by the normalizer.
            max_staleness_ms: Maximum edge age kept in snapshots.
            history_alpha: Decay factor for per-edge weight statistics.
            metrics: Optional metrics collector.
            clock: Millisecond clock.
        """
        self._queue = queue
        self._max_staleness_ms = max_staleness_ms
        self._alpha = history_alpha
        self._metrics = metrics
        self._clock = clock
        self._graph: nx.DiGraph = nx.DiGraph()
        self._assets: dict[str, Asset] = {}
        self._lock = threading.Lock()
        self._version = 0

    def register_asset(self, symbol: str, precision: int = 8) -> Asset:
        """
        Register an asset, keeping the first registration.

        Args:
            symbol: Asset identifier.
            precision: Decimal precision.

        Returns:
            The registered Asset.
        """
        with self._lock:
            return self._register(symbol, precision)

    def _register(self, symbol: str, precision: int = 8) -> Asset:
        asset = self._assets.get(symbol)
        if asset is None:
            asset = Asset(symbol=symbol, precision=precision)
            self._assets[symbol] = asset
            self._graph.add_node(symbol)
        return asset

    def apply_pending_updates(self) -> int:
        """
        Merge every queued update into the live adjacency structure.

        Valid updates replace the stored rate, fee, weight and timestamp
        of their edge (creating it on first sight and reviving it if it
        was stale). Updates older than the stored edge are ignored.

        Returns:
            Number of updates merged.

        Raises:
            GraphInconsistencyError: If any drained update violates an
                edge invariant. Valid updates are merged first.
        """
        updates = self._queue.drain()
        if not updates:
            return 0

        violations: list[str] = []
        merged = 0
        outdated = 0

        with self._lock:
            for update in updates:
                problem = self._validate(update)
                if problem:
                    violations.append(problem)
                    continue

                if self._graph.has_edge(*update.key):
                    data = self._graph.edges[update.key]
                    if update.timestamp_ms < data["state"].timestamp_ms:
                        outdated += 1
                        continue
                    data["state"] = EdgeState.from_update(update)
                    data["stats"].update(update.weight, self._alpha, update.timestamp_ms)
                else:
                    self._register(update.asset_from)
                    self._register(update.asset_to)
                    stats = HistoricalStat()
                    stats.update(update.weight, self._alpha, update.timestamp_ms)
                    self._graph.add_edge(
                        update.asset_from,
                        update.asset_to,
                        state=EdgeState.from_update(update),
                        stats=stats,
                    )
                merged += 1

        if self._metrics:
            self._metrics.increment_counter("updates_applied", merged)
        if outdated:
            logger.debug(f"Ignored {outdated} out-of-order updates")

        if violations:
            if self._metrics:
                self._metrics.increment_counter("updates_inconsistent", len(violations))
            raise GraphInconsistencyError(violations)

        return merged

    @staticmethod
    def _validate(update: RateUpdate) -> str | None:
        """Check edge invariants; return a description of the first violation."""
        edge = f"{update.asset_from}->{update.asset_to}"
        if update.asset_from == update.asset_to:
            return f"{edge}: self-loop"
        if not 0.0 <= update.fee_rate < 1.0:
            return f"{edge}: fee rate {update.fee_rate} outside [0, 1)"
        if not update.rate > 0 or not math.isfinite(update.rate):
            return f"{edge}: rate {update.rate} not positive"
        if not math.isfinite(update.weight):
            return f"{edge}: weight {update.weight} not finite"
        expected = -math.log(update.rate * (1.0 - update.fee_rate))
        if abs(update.weight - expected) > WEIGHT_CONSISTENCY_TOLERANCE * max(1.0, abs(expected)):
            return f"{edge}: weight {update.weight} does not match rate and fee ({expected})"
        return None

    def mark_stale(self, now_ms: int | None = None) -> int:
        """
        Exclude edges older than max_staleness_ms from future snapshots.

        Historical stats of stale edges are kept.

        Args:
            now_ms: Reference time (defaults to the clock).

        Returns:
            Number of edges newly marked stale.
        """
        now = self._clock() if now_ms is None else now_ms
        marked = 0

        with self._lock:
            for _, _, data in self._graph.edges(data=True):
                state: EdgeState = data["state"]
                if state.live and state.age_ms(now) > self._max_staleness_ms:
                    data["state"] = replace(state, live=False)
                    marked += 1

        if marked:
            logger.debug(f"Marked {marked} edges stale")
        return marked

    def snapshot(self, now_ms: int | None = None) -> GraphSnapshot:
        """
        Take an immutable snapshot of the live edges.

        Args:
            now_ms: Snapshot time (defaults to the clock).

        Returns:
            GraphSnapshot independent of later graph mutation.
        """
        taken_at = self._clock() if now_ms is None else now_ms

        with self._lock:
            live = [
                data["state"]
                for _, _, data in self._graph.edges(data=True)
                if data["state"].live
            ]
            self._version += 1
            version = self._version

        live.sort(key=lambda e: e.key)

        view: nx.DiGraph = nx.DiGraph()
        for state in live:
            view.add_edge(state.asset_from, state.asset_to, state=state, weight=state.weight)

        return GraphSnapshot(
            graph=nx.freeze(view),
            vertices=tuple(sorted(view.nodes())),
            edges=tuple(live),
            version=version,
            taken_at_ms=taken_at,
        )

    def edge(self, asset_from: str, asset_to: str) -> EdgeState | None:
        """Get the current state of an edge, live or stale."""
        with self._lock:
            if not self._graph.has_edge(asset_from, asset_to):
                return None
            return self._graph.edges[asset_from, asset_to]["state"]

    def edge_stats(self, asset_from: str, asset_to: str) -> HistoricalStat | None:
        """Get a copy of an edge's rolling weight statistic."""
        with self._lock:
            if not self._graph.has_edge(asset_from, asset_to):
                return None
            stats: HistoricalStat = self._graph.edges[asset_from, asset_to]["stats"]
            return replace(stats)

    @property
    def assets(self) -> dict[str, Asset]:
        """All assets ever seen."""
        return dict(self._assets)

    @property
    def edge_count(self) -> int:
        """Number of edges, live or stale."""
        with self._lock:
            return int(self._graph.number_of_edges())

    @property
    def live_edge_count(self) -> int:
        """Number of live edges."""
        with self._lock:
            return sum(1 for _, _, data in self._graph.edges(data=True) if data["state"].live)

    @property
    def version(self) -> int:
        """Version of the last snapshot taken."""
        return self._version

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        """
        Convert edges to serializable format.

        Returns:
            Dict with edge data.
        """
        with self._lock:
            return {
                "edges": [
                    {
                        "from": u,
                        "to": v,
                        "rate": data["state"].rate,
                        "fee_rate": data["state"].fee_rate,
                        "weight": data["state"].weight,
                        "timestamp_ms": data["state"].timestamp_ms,
                        "live": data["state"].live,
                        "weight_mean": data["stats"].mean,
                        "weight_stddev": data["stats"].stddev,
                    }
                    for u, v, data in sorted(self._graph.edges(data=True), key=lambda e: (e[0], e[1]))
                ]
            }
