"""
Decision gate.

Applies threshold and risk policy to scored opportunities and picks
the ones handed to execution. Tracks a per-cycle state machine:
UNSEEN -> OBSERVED -> COOLDOWN -> OBSERVED ...
"""

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

from cyclearb.config.constants import (
    DEFAULT_COOLDOWN_MS,
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_MIN_MARGIN,
    DEFAULT_TOP_K,
    DEFAULT_Z_SCORE_THRESHOLD,
)
from cyclearb.core.types import GateState, Opportunity


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GateEntry:
    """Gate bookkeeping for one cycle identity."""

    state: GateState
    last_seen_ms: int
    cooldown_until_ms: int = 0
    dispatches: int = 0


class DecisionGate:
    """
    Filters, deduplicates and ranks opportunities.

    An opportunity passes when:
    - net_yield > 1 + min_margin
    - z_score >= z_score_threshold
    - confidence >= min_confidence
    - its cycle is not cooling down after a dispatch
    - the cycle passes through an asset we hold (when holdings are set)

    Survivors are ranked by net yield; a candidate sharing a directed leg
    with one already selected is skipped, and at most top_k are returned.
    """

    def __init__(
        self,
        min_margin: float = DEFAULT_MIN_MARGIN,
        z_score_threshold: float = DEFAULT_Z_SCORE_THRESHOLD,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        cooldown_ms: int = DEFAULT_COOLDOWN_MS,
        top_k: int = DEFAULT_TOP_K,
        holding_assets: Iterable[str] = (),
        base_asset: str | None = None,
    ) -> None:
        """
        Initialize gate.

        Args:
            min_margin: Required yield above break-even.
            z_score_threshold: Minimum z-score.
            min_confidence: Minimum confidence.
            cooldown_ms: Time a dispatched cycle stays blocked.
            top_k: Maximum approvals per pass.
            holding_assets: Assets a route may start from.
            base_asset: Preferred route start.
        """
        self._min_net_yield = 1.0 + min_margin
        self._z_threshold = z_score_threshold
        self._min_confidence = min_confidence
        self._cooldown_ms = cooldown_ms
        self._top_k = top_k
        self._base_asset = base_asset
        self._holdings = frozenset(holding_assets) | ({base_asset} if base_asset else set())
        self._entries: dict[str, GateEntry] = {}
        self._rejections: Counter[str] = Counter()

    def evaluate(self, opportunities: Iterable[Opportunity], now_ms: int) -> list[Opportunity]:
        """
        Pick the opportunities to dispatch this pass.

        Every opportunity is recorded as observed, whether or not it is
        approved. Returned opportunities carry a route rotated to start
        at a held asset.

        Args:
            opportunities: Scored opportunities of one pass.
            now_ms: Pass time.

        Returns:
            Up to top_k approved opportunities, best first.
        """
        candidates: list[Opportunity] = []

        for opportunity in opportunities:
            state = self.state_of(opportunity.key, now_ms)
            self._observe(opportunity.key, now_ms)

            reason = self._reject_reason(opportunity, state)
            if reason:
                self._rejections[reason] += 1
                continue
            candidates.append(opportunity)

        candidates.sort(key=lambda o: (-o.net_yield, o.key))

        approved: list[Opportunity] = []
        selected_keys: set[str] = set()
        used_legs: set[tuple[str, str]] = set()

        for opportunity in candidates:
            if len(approved) >= self._top_k:
                break
            if opportunity.key in selected_keys:
                self._rejections["duplicate"] += 1
                continue
            legs = opportunity.cycle.legs
            if legs & used_legs:
                self._rejections["overlap"] += 1
                continue

            opportunity.route = self._route(opportunity)
            approved.append(opportunity)
            selected_keys.add(opportunity.key)
            used_legs |= legs

        if approved:
            logger.debug(
                f"Gate approved {len(approved)}/{len(candidates)} candidates: "
                + ", ".join(f"{o.key} ({o.surface_rate:.4%})" for o in approved)
            )
        return approved

    def _reject_reason(self, opportunity: Opportunity, state: GateState) -> str | None:
        """Name of the first filter an opportunity fails, if any."""
        if opportunity.net_yield <= self._min_net_yield:
            return "margin"
        if opportunity.z_score < self._z_threshold:
            return "z_score"
        if opportunity.confidence < self._min_confidence:
            return "confidence"
        if state == GateState.COOLDOWN:
            return "cooldown"
        if self._holdings and not any(opportunity.cycle.contains(a) for a in self._holdings):
            return "holdings"
        return None

    def _route(self, opportunity: Opportunity) -> tuple[str, ...]:
        """Execution order starting at a held asset, base asset first."""
        cycle = opportunity.cycle
        if self._base_asset and cycle.contains(self._base_asset):
            return cycle.rotated_to(self._base_asset).path
        held = sorted(a for a in cycle.assets if a in self._holdings)
        if held:
            return cycle.rotated_to(held[0]).path
        return cycle.path

    def _observe(self, key: str, now_ms: int) -> None:
        entry = self._entries.get(key)
        if entry is None:
            self._entries[key] = GateEntry(state=GateState.OBSERVED, last_seen_ms=now_ms)
        else:
            entry.last_seen_ms = now_ms

    def record_dispatch(self, opportunity: Opportunity, now_ms: int) -> None:
        """
        Enter cooldown for a dispatched cycle.

        Args:
            opportunity: Opportunity handed to execution.
            now_ms: Dispatch time.
        """
        entry = self._entries.get(opportunity.key)
        if entry is None:
            entry = GateEntry(state=GateState.OBSERVED, last_seen_ms=now_ms)
            self._entries[opportunity.key] = entry

        entry.state = GateState.COOLDOWN
        entry.cooldown_until_ms = now_ms + self._cooldown_ms
        entry.dispatches += 1

    def state_of(self, key: str, now_ms: int) -> GateState:
        """
        Current state of a cycle identity.

        An expired cooldown returns the cycle to OBSERVED.
        """
        entry = self._entries.get(key)
        if entry is None:
            return GateState.UNSEEN
        if entry.state == GateState.COOLDOWN and now_ms >= entry.cooldown_until_ms:
            entry.state = GateState.OBSERVED
        return entry.state

    def prune(self, now_ms: int, idle_ms: int) -> int:
        """
        Forget identities idle for longer than idle_ms.

        Cycles still cooling down are kept.

        Returns:
            Number of identities removed.
        """
        idle = [
            key
            for key, entry in self._entries.items()
            if now_ms - entry.last_seen_ms > idle_ms
            and self.state_of(key, now_ms) != GateState.COOLDOWN
        ]
        for key in idle:
            del self._entries[key]
        return len(idle)

    @property
    def holdings(self) -> frozenset[str]:
        """Assets a route may start from."""
        return self._holdings

    @property
    def rejections(self) -> dict[str, int]:
        """Rejection counts by filter name."""
        return dict(self._rejections)

    def __len__(self) -> int:
        return len(self._entries)
