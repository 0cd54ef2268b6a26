"""
Unit tests for DecisionGate.

Tests threshold filters, cooldown, deduplication and ranking.
"""

import math

import pytest

from cyclearb.core.types import Cycle, EdgeState, GateState, Opportunity
from cyclearb.strategy.gate import DecisionGate
from tests.mocks.feed import NOW_MS


def make_opportunity(
    assets: tuple[str, ...],
    net_yield: float = 1.01,
    z_score: float = 3.0,
    confidence: float = 1.0,
) -> Opportunity:
    """Opportunity over ``assets`` with the given scores."""
    rate = net_yield ** (1.0 / len(assets))
    edges = tuple(
        EdgeState(a, assets[(i + 1) % len(assets)], rate, 0.0, -math.log(rate), NOW_MS)
        for i, a in enumerate(assets)
    )
    cycle = Cycle(assets=assets, edges=edges, raw_score=-math.log(net_yield))
    return Opportunity(
        cycle=cycle,
        net_yield=net_yield,
        z_score=z_score,
        confidence=confidence,
        history_samples=10,
        sufficient_history=True,
        timestamp_ms=NOW_MS,
    )


@pytest.fixture
def gate() -> DecisionGate:
    """Gate with a 0.1% margin and a 2-sigma threshold."""
    return DecisionGate(
        min_margin=0.001,
        z_score_threshold=2.0,
        min_confidence=0.5,
        cooldown_ms=30_000,
        top_k=3,
    )


class TestFilters:
    """Tests for per-opportunity filters."""

    def test_passing_opportunity(self, gate: DecisionGate) -> None:
        """Test an opportunity clearing every threshold is approved."""
        approved = gate.evaluate([make_opportunity(("A", "B", "C"))], NOW_MS)

        assert [o.key for o in approved] == ["A>B>C"]

    def test_margin_is_strict(self, gate: DecisionGate) -> None:
        """Test a yield exactly at the margin is rejected."""
        approved = gate.evaluate([make_opportunity(("A", "B", "C"), net_yield=1.0 + 0.001)], NOW_MS)

        assert approved == []
        assert gate.rejections == {"margin": 1}

    def test_z_score_filter(self, gate: DecisionGate) -> None:
        """Test an unremarkable yield is rejected."""
        approved = gate.evaluate([make_opportunity(("A", "B", "C"), z_score=1.5)], NOW_MS)

        assert approved == []
        assert gate.rejections == {"z_score": 1}

    def test_confidence_filter(self, gate: DecisionGate) -> None:
        """Test a stale-leg opportunity is rejected."""
        approved = gate.evaluate([make_opportunity(("A", "B", "C"), confidence=0.2)], NOW_MS)

        assert approved == []
        assert gate.rejections == {"confidence": 1}

    def test_holdings_filter(self) -> None:
        """Test cycles through no held asset are rejected."""
        gate = DecisionGate(z_score_threshold=0.0, holding_assets=["USDT"])

        approved = gate.evaluate(
            [
                make_opportunity(("A", "B", "C")),
                make_opportunity(("BTC", "ETH", "USDT")),
            ],
            NOW_MS,
        )

        assert [o.key for o in approved] == ["BTC>ETH>USDT"]
        assert gate.rejections == {"holdings": 1}

    def test_base_asset_counts_as_holding(self) -> None:
        """Test the base asset is always held."""
        gate = DecisionGate(holding_assets=["ETH"], base_asset="USDT")

        assert gate.holdings == frozenset({"ETH", "USDT"})


class TestSelection:
    """Tests for ranking, deduplication and overlap."""

    def test_ranked_by_yield(self, gate: DecisionGate) -> None:
        """Test the best yield comes first."""
        approved = gate.evaluate(
            [
                make_opportunity(("A", "B", "C"), net_yield=1.01),
                make_opportunity(("X", "Y", "Z"), net_yield=1.05),
            ],
            NOW_MS,
        )

        assert [o.key for o in approved] == ["X>Y>Z", "A>B>C"]

    def test_equal_yield_ties_by_key(self, gate: DecisionGate) -> None:
        """Test equal yields resolve by identity."""
        approved = gate.evaluate(
            [
                make_opportunity(("X", "Y", "Z"), net_yield=1.02),
                make_opportunity(("A", "B", "C"), net_yield=1.02),
            ],
            NOW_MS,
        )

        assert [o.key for o in approved] == ["A>B>C", "X>Y>Z"]

    def test_rotations_deduplicated(self, gate: DecisionGate) -> None:
        """Test rotations of one cycle are approved once."""
        approved = gate.evaluate(
            [
                make_opportunity(("A", "B", "C")),
                make_opportunity(("B", "C", "A")),
            ],
            NOW_MS,
        )

        assert len(approved) == 1
        assert gate.rejections == {"duplicate": 1}

    def test_overlapping_leg_skipped(self, gate: DecisionGate) -> None:
        """Test a cycle reusing a selected directed leg is skipped."""
        approved = gate.evaluate(
            [
                make_opportunity(("A", "B", "C"), net_yield=1.05),
                make_opportunity(("A", "B", "D"), net_yield=1.02),
                make_opportunity(("B", "A", "E"), net_yield=1.01),
            ],
            NOW_MS,
        )

        assert [o.key for o in approved] == ["A>B>C", "A>E>B"]
        assert gate.rejections == {"overlap": 1}

    def test_top_k(self) -> None:
        """Test at most top_k opportunities are approved."""
        gate = DecisionGate(z_score_threshold=0.0, top_k=1)

        approved = gate.evaluate(
            [
                make_opportunity(("A", "B", "C"), net_yield=1.01),
                make_opportunity(("X", "Y", "Z"), net_yield=1.05),
            ],
            NOW_MS,
        )

        assert [o.key for o in approved] == ["X>Y>Z"]

    def test_route_starts_at_base_asset(self) -> None:
        """Test the route is rotated to the base asset."""
        gate = DecisionGate(z_score_threshold=0.0, base_asset="USDT")

        approved = gate.evaluate([make_opportunity(("BTC", "ETH", "USDT"))], NOW_MS)

        assert approved[0].route == ("USDT", "BTC", "ETH", "USDT")

    def test_route_starts_at_smallest_holding(self) -> None:
        """Test the route falls back to a held asset."""
        gate = DecisionGate(z_score_threshold=0.0, holding_assets=["ETH", "SOL"], base_asset="USDT")

        approved = gate.evaluate([make_opportunity(("BTC", "SOL", "ETH"))], NOW_MS)

        assert approved[0].route == ("ETH", "BTC", "SOL", "ETH")


class TestStateMachine:
    """Tests for per-cycle gate state."""

    def test_unseen_then_observed(self, gate: DecisionGate) -> None:
        """Test evaluation records every opportunity, approved or not."""
        assert gate.state_of("A>B>C", NOW_MS) == GateState.UNSEEN

        gate.evaluate([make_opportunity(("A", "B", "C"), z_score=0.0)], NOW_MS)

        assert gate.state_of("A>B>C", NOW_MS) == GateState.OBSERVED
        assert len(gate) == 1

    def test_cooldown_blocks_until_expiry(self, gate: DecisionGate) -> None:
        """Test a dispatched cycle is blocked for cooldown_ms."""
        opportunity = make_opportunity(("A", "B", "C"))
        gate.evaluate([opportunity], NOW_MS)
        gate.record_dispatch(opportunity, NOW_MS)

        assert gate.state_of("A>B>C", NOW_MS + 1000) == GateState.COOLDOWN
        assert gate.evaluate([make_opportunity(("B", "C", "A"))], NOW_MS + 1000) == []
        assert gate.rejections == {"cooldown": 1}

        assert gate.state_of("A>B>C", NOW_MS + 30_000) == GateState.OBSERVED
        assert len(gate.evaluate([make_opportunity(("A", "B", "C"))], NOW_MS + 30_000)) == 1

    def test_prune_keeps_cooling_cycles(self, gate: DecisionGate) -> None:
        """Test idle identities are forgotten unless cooling down."""
        idle = make_opportunity(("A", "B", "C"), z_score=0.0)
        cooling = make_opportunity(("X", "Y", "Z"))
        gate.evaluate([idle, cooling], NOW_MS)
        gate.record_dispatch(cooling, NOW_MS)

        assert gate.prune(NOW_MS + 20_000, idle_ms=10_000) == 1
        assert gate.state_of("A>B>C", NOW_MS + 20_000) == GateState.UNSEEN
        assert gate.state_of("X>Y>Z", NOW_MS + 20_000) == GateState.COOLDOWN
