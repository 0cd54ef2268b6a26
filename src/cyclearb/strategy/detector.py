"""
Negative cycle detection.

Bellman-Ford relaxation from a base asset over a graph snapshot, with
cycle extraction from every vertex that still relaxes after |V|-1
rounds. Weights are -ln(effective rate), so a negative cycle is a
sequence of trades whose rate product exceeds 1 after fees.
"""

import logging
import math

from cyclearb.config.constants import (
    DEFAULT_MAX_CYCLE_LENGTH,
    DEFAULT_MIN_CYCLE_LENGTH,
    DEFAULT_RELAXATION_EPSILON,
)
from cyclearb.core.exceptions import DisconnectedBaseError
from cyclearb.core.types import Cycle, EdgeState
from cyclearb.strategy.graph import GraphSnapshot
from cyclearb.utils.time import Deadline


logger = logging.getLogger(__name__)


class CycleDetector:
    """
    Finds negative-weight cycles reachable from a base asset.

    Edges are relaxed in (destination, source) order and a distance is
    only replaced on an improvement larger than epsilon, so equal
    improvements resolve to the lexicographically smaller destination
    and then the smaller source. Results are reproducible for a given
    snapshot.

    Example:
        >>> detector = CycleDetector()
        >>> cycles = detector.detect(graph.snapshot(), "USDT")
        >>> for cycle in cycles:
        ...     print(cycle.key, math.exp(-cycle.raw_score))
    """

    __slots__ = ("_epsilon", "_min_length", "_max_length", "_passes", "_cycles_found")

    def __init__(
        self,
        epsilon: float = DEFAULT_RELAXATION_EPSILON,
        min_cycle_length: int = DEFAULT_MIN_CYCLE_LENGTH,
        max_cycle_length: int = DEFAULT_MAX_CYCLE_LENGTH,
    ) -> None:
        """
        Initialize detector.

        Args:
            epsilon: Minimum relaxation improvement, and the margin a
                cycle's summed weight must fall below zero.
            min_cycle_length: Shortest cycle reported (in legs).
            max_cycle_length: Longest cycle reported (in legs).
        """
        self._epsilon = epsilon
        self._min_length = min_cycle_length
        self._max_length = max_cycle_length
        self._passes = 0
        self._cycles_found = 0

    def detect(
        self,
        snapshot: GraphSnapshot,
        base_asset: str,
        deadline: Deadline | None = None,
    ) -> list[Cycle]:
        """
        Run one detection pass.

        Args:
            snapshot: Immutable graph snapshot.
            base_asset: Asset the relaxation starts from.
            deadline: Optional pass budget, checked once per round.

        Returns:
            Distinct negative cycles sorted by raw score, then key.
            Empty when no negative cycle is reachable.

        Raises:
            DisconnectedBaseError: If the base has no live outgoing edge.
            PassDeadlineExceeded: If the deadline passes mid-relaxation.
        """
        if snapshot.out_degree(base_asset) == 0:
            raise DisconnectedBaseError(base_asset)

        self._passes += 1
        vertex_count = len(snapshot.vertices)
        order = sorted(snapshot.edges, key=lambda e: (e.asset_to, e.asset_from))

        distance: dict[str, float] = {v: math.inf for v in snapshot.vertices}
        distance[base_asset] = 0.0
        predecessor: dict[str, EdgeState] = {}

        rounds = 0
        for _ in range(vertex_count - 1):
            if deadline is not None:
                deadline.check("relaxation")
            rounds += 1
            if not self._relax(order, distance, predecessor):
                break

        # Extra round: whatever still relaxes sits on or behind a negative cycle
        flagged = self._still_relaxing(order, distance, predecessor)
        if not flagged:
            logger.debug(f"No negative cycle from {base_asset} after {rounds} rounds")
            return []

        cycles = self._extract_cycles(flagged, predecessor, vertex_count, snapshot)
        self._cycles_found += len(cycles)

        logger.debug(
            f"Detected {len(cycles)} cycles from {base_asset} "
            f"({len(flagged)} flagged vertices, {rounds} rounds)"
        )
        return cycles

    def _relax(
        self,
        order: list[EdgeState],
        distance: dict[str, float],
        predecessor: dict[str, EdgeState],
    ) -> bool:
        """Run one relaxation round. Returns whether anything improved."""
        epsilon = self._epsilon
        changed = False

        for edge in order:
            source_distance = distance[edge.asset_from]
            if source_distance == math.inf:
                continue
            candidate = source_distance + edge.weight
            if candidate < distance[edge.asset_to] - epsilon:
                distance[edge.asset_to] = candidate
                predecessor[edge.asset_to] = edge
                changed = True

        return changed

    def _still_relaxing(
        self,
        order: list[EdgeState],
        distance: dict[str, float],
        predecessor: dict[str, EdgeState],
    ) -> list[str]:
        """Relax once more and return the vertices that improved, in order."""
        epsilon = self._epsilon
        flagged: dict[str, None] = {}

        for edge in order:
            source_distance = distance[edge.asset_from]
            if source_distance == math.inf:
                continue
            candidate = source_distance + edge.weight
            if candidate < distance[edge.asset_to] - epsilon:
                distance[edge.asset_to] = candidate
                predecessor[edge.asset_to] = edge
                flagged[edge.asset_to] = None

        return list(flagged)

    def _extract_cycles(
        self,
        flagged: list[str],
        predecessor: dict[str, EdgeState],
        vertex_count: int,
        snapshot: GraphSnapshot,
    ) -> list[Cycle]:
        """Walk predecessor links from every flagged vertex."""
        found: dict[str, Cycle] = {}
        explored: set[str] = set()

        for vertex in flagged:
            cycle = self._walk_back(vertex, predecessor, vertex_count, explored)
            if cycle is None:
                continue

            assets = tuple(edge.asset_from for edge in cycle)
            if not self._min_length <= len(assets) <= self._max_length:
                continue

            # Score from snapshot weights, not accumulated distances
            edges = tuple(snapshot.edge(e.asset_from, e.asset_to) or e for e in cycle)
            raw_score = math.fsum(e.weight for e in edges)
            if raw_score >= -self._epsilon:
                continue

            candidate = Cycle(assets=assets, edges=edges, raw_score=raw_score)
            if candidate.key not in found:
                found[candidate.key] = candidate

        return sorted(found.values(), key=lambda c: (c.raw_score, c.key))

    @staticmethod
    def _walk_back(
        start: str,
        predecessor: dict[str, EdgeState],
        vertex_count: int,
        explored: set[str],
    ) -> list[EdgeState] | None:
        """
        Recover the predecessor cycle that a flagged vertex leads back into.

        Steps back |V| times to land on the cycle itself, then walks it
        once. Every loop is bounded by the vertex count.

        Returns:
            Cycle edges in forward order, or None if the walk reaches a
            vertex without a predecessor or a cycle already extracted.
        """
        vertex = start
        for _ in range(vertex_count):
            edge = predecessor.get(vertex)
            if edge is None:
                return None
            vertex = edge.asset_from

        if vertex in explored:
            return None

        anchor = vertex
        visited = {anchor}
        backwards: list[EdgeState] = []

        for _ in range(vertex_count):
            edge = predecessor.get(vertex)
            if edge is None:
                return None
            backwards.append(edge)
            vertex = edge.asset_from
            if vertex == anchor:
                break
            if vertex in visited:
                return None
            visited.add(vertex)
        else:
            return None

        explored.update(visited)
        backwards.reverse()
        return backwards

    @property
    def epsilon(self) -> float:
        """Relaxation epsilon."""
        return self._epsilon

    @property
    def passes(self) -> int:
        """Detection passes run."""
        return self._passes

    @property
    def cycles_found(self) -> int:
        """Total cycles reported across passes."""
        return self._cycles_found
