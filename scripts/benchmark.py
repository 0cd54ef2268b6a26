#!/usr/bin/env python3
"""
Latency Benchmark Script.

Measures evaluation pass latencies on a synthetic fully connected market.
"""

import random
import statistics
import sys
from pathlib import Path

# Add src to path for direct execution
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cyclearb.config.settings import Settings
from cyclearb.core.engine import ArbitrageEngine
from cyclearb.core.types import RawRate
from cyclearb.execution.dispatcher import LoggingDispatcher
from cyclearb.feed.normalizer import PriceFeedNormalizer
from cyclearb.feed.queue import PendingUpdateQueue
from cyclearb.strategy.detector import CycleDetector
from cyclearb.strategy.graph import ExchangeGraph
from cyclearb.utils.time import format_duration_us, get_timestamp_ms, get_timestamp_us


def synthetic_market(assets: int, seed: int = 7) -> list[RawRate]:
    """
    Fully connected market around consistent prices with small noise.

    Every ordered pair trades at price[b] / price[a] perturbed by up to
    +-0.2%, under a 0.1% fee, so only a few cycles go negative.
    """
    rng = random.Random(seed)
    names = ["USDT"] + [f"A{i:03d}" for i in range(1, assets)]
    prices = {name: rng.uniform(0.5, 50.0) for name in names}
    now = get_timestamp_ms()

    return [
        RawRate(a, b, prices[a] / prices[b] * rng.uniform(0.998, 1.002), 0.001, now)
        for a in names
        for b in names
        if a != b
    ]


def summarize(latencies: list[int]) -> dict[str, float]:
    return {
        "min": min(latencies),
        "max": max(latencies),
        "avg": statistics.mean(latencies),
        "p50": statistics.median(latencies),
        "p99": sorted(latencies)[int(len(latencies) * 0.99)],
    }


def benchmark_merge(rates: list[RawRate], iterations: int = 100) -> dict[str, float]:
    """Benchmark normalizing and merging one full market refresh."""
    queue = PendingUpdateQueue(max_size=len(rates))
    normalizer = PriceFeedNormalizer(queue)
    graph = ExchangeGraph(queue, max_staleness_ms=60_000, history_alpha=0.1)
    latencies: list[int] = []

    for _ in range(iterations):
        start = get_timestamp_us()
        normalizer.submit_many(rates)
        graph.apply_pending_updates()
        latencies.append(get_timestamp_us() - start)

    return summarize(latencies)


def benchmark_detection(rates: list[RawRate], iterations: int = 100) -> dict[str, float]:
    """Benchmark snapshot and Bellman-Ford detection."""
    queue = PendingUpdateQueue(max_size=len(rates))
    PriceFeedNormalizer(queue).submit_many(rates)
    graph = ExchangeGraph(queue, max_staleness_ms=60_000, history_alpha=0.1)
    graph.apply_pending_updates()
    detector = CycleDetector()
    latencies: list[int] = []

    for _ in range(iterations):
        start = get_timestamp_us()
        detector.detect(graph.snapshot(), "USDT")
        latencies.append(get_timestamp_us() - start)

    return summarize(latencies)


def benchmark_full_pass(rates: list[RawRate], iterations: int = 100) -> dict[str, float]:
    """Benchmark a complete evaluation pass including scoring and gating."""
    settings = Settings(_env_file=None, max_staleness_ms=60_000, max_pending_queue=len(rates))
    engine = ArbitrageEngine(settings, dispatcher=LoggingDispatcher())
    latencies: list[int] = []

    for _ in range(iterations):
        for rate in rates:
            engine.submit(rate)
        start = get_timestamp_us()
        engine.run_evaluation_pass()
        latencies.append(get_timestamp_us() - start)

    return summarize(latencies)


def format_stats(stats: dict[str, float]) -> str:
    """Format stats for display."""
    return (
        f"min={format_duration_us(int(stats['min']))}, "
        f"avg={format_duration_us(int(stats['avg']))}, "
        f"p50={format_duration_us(int(stats['p50']))}, "
        f"p99={format_duration_us(int(stats['p99']))}, "
        f"max={format_duration_us(int(stats['max']))}"
    )


def main() -> int:
    """Run all benchmarks."""
    print("=" * 70)
    print("  LATENCY BENCHMARK")
    print("=" * 70)
    print()

    for assets in (10, 30, 60):
        rates = synthetic_market(assets)
        print(f"Market: {assets} assets, {len(rates)} directed edges")

        # Warm up
        benchmark_detection(rates, 5)

        print(f"   Merge:      {format_stats(benchmark_merge(rates))}")
        print(f"   Detect:     {format_stats(benchmark_detection(rates))}")
        print(f"   Full pass:  {format_stats(benchmark_full_pass(rates))}")
        print()

    print("=" * 70)
    print("Target: full pass well inside the default 800ms deadline")
    print()

    return 0


if __name__ == "__main__":
    sys.exit(main())
