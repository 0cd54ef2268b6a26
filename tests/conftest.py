"""
Pytest configuration and shared fixtures.

Provides reusable test fixtures for all test modules.
"""

from collections.abc import Callable

import pytest

from cyclearb.config.settings import Settings
from cyclearb.core.types import RawRate
from cyclearb.feed.normalizer import PriceFeedNormalizer
from cyclearb.feed.queue import PendingUpdateQueue
from cyclearb.strategy.graph import ExchangeGraph
from cyclearb.telemetry.metrics import MetricsCollector
from tests.mocks.feed import NOW_MS, FakeClock, MockDispatcher, make_rate


# =============================================================================
# Clock Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock starting at 2024-01-01T00:00:00Z."""
    return FakeClock()


# =============================================================================
# Rate Fixtures
# =============================================================================


@pytest.fixture
def rate_factory() -> Callable[..., RawRate]:
    """Factory for raw rates."""
    return make_rate


@pytest.fixture
def triangle_rates() -> list[RawRate]:
    """A -> B -> C -> A with product 2 * 2 * 0.3 = 1.2."""
    return [
        make_rate("A", "B", 2.0),
        make_rate("B", "C", 2.0),
        make_rate("C", "A", 0.3),
    ]


@pytest.fixture
def fair_rates() -> list[RawRate]:
    """
    Consistent USDT/BTC/ETH market with 0.1% fees.

    Every cycle loses the fees, so no negative cycle exists.
    """
    fee = 0.001
    return [
        make_rate("USDT", "BTC", 1 / 50000.0, fee),
        make_rate("BTC", "USDT", 50000.0, fee),
        make_rate("USDT", "ETH", 1 / 3000.0, fee),
        make_rate("ETH", "USDT", 3000.0, fee),
        make_rate("BTC", "ETH", 50000.0 / 3000.0, fee),
        make_rate("ETH", "BTC", 3000.0 / 50000.0, fee),
    ]


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def metrics() -> MetricsCollector:
    """Fresh metrics collector."""
    return MetricsCollector()


@pytest.fixture
def queue() -> PendingUpdateQueue:
    """Pending update queue."""
    return PendingUpdateQueue(max_size=100)


@pytest.fixture
def normalizer(queue: PendingUpdateQueue, metrics: MetricsCollector) -> PriceFeedNormalizer:
    """Normalizer feeding the shared queue."""
    return PriceFeedNormalizer(queue, metrics)


@pytest.fixture
def graph(
    queue: PendingUpdateQueue,
    metrics: MetricsCollector,
    clock: FakeClock,
) -> ExchangeGraph:
    """Exchange graph draining the shared queue."""
    return ExchangeGraph(
        queue=queue,
        max_staleness_ms=5000,
        history_alpha=0.1,
        metrics=metrics,
        clock=clock,
    )


@pytest.fixture
def load_graph(
    normalizer: PriceFeedNormalizer,
    graph: ExchangeGraph,
) -> Callable[[list[RawRate]], ExchangeGraph]:
    """Submit rates and merge them into the graph."""

    def _load(rates: list[RawRate]) -> ExchangeGraph:
        normalizer.submit_many(rates)
        graph.apply_pending_updates()
        return graph

    return _load


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """
    Settings for a permissive gate over the A/B/C test market.

    The z-score and confidence filters are opened so cycles can be
    approved without warm-up history.
    """
    return Settings(
        _env_file=None,
        base_asset="A",
        max_staleness_ms=5000,
        relaxation_epsilon=1e-9,
        min_margin=0.001,
        z_score_threshold=0.0,
        min_confidence=0.0,
        cooldown_ms=30_000,
        top_k=1,
        history_window=10,
        min_history_samples=5,
        max_pending_queue=1000,
        pass_deadline_ms=10_000,
    )


@pytest.fixture
def dispatcher() -> MockDispatcher:
    """Recording dispatcher."""
    return MockDispatcher()
