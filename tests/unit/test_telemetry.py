"""
Unit tests for metrics, the opportunity recorder and queued logging.
"""

import csv
import logging
import math
from pathlib import Path
from queue import Queue

from cyclearb.core.types import Cycle, EdgeState, Opportunity
from cyclearb.telemetry.logger import AsyncLogger, DroppingQueueHandler
from cyclearb.telemetry.metrics import MetricsCollector
from cyclearb.telemetry.recorder import FIELDNAMES, OpportunityRecorder
from tests.mocks.feed import NOW_MS


def make_opportunity(net_yield: float = 1.2, dispatched: bool = False) -> Opportunity:
    """Scored A->B->C->A opportunity."""
    edges = tuple(
        EdgeState(a, b, 1.0, 0.0, 0.0, NOW_MS) for a, b in (("A", "B"), ("B", "C"), ("C", "A"))
    )
    cycle = Cycle(assets=("A", "B", "C"), edges=edges, raw_score=-math.log(net_yield))
    return Opportunity(
        cycle=cycle,
        net_yield=net_yield,
        z_score=2.5,
        confidence=0.9,
        history_samples=6,
        sufficient_history=True,
        timestamp_ms=NOW_MS,
        dispatched=dispatched,
    )


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_counters(self) -> None:
        """Test counters start at zero and accumulate."""
        metrics = MetricsCollector()

        assert metrics.get_counter("passes") == 0
        metrics.increment_counter("passes")
        metrics.increment_counter("passes", 2)

        assert metrics.get_counter("passes") == 3

    def test_latency_stats(self) -> None:
        """Test percentile aggregation."""
        metrics = MetricsCollector()
        for latency in range(1, 101):
            metrics.record_latency("pass_total", latency)

        stats = metrics.get_latency_stats("pass_total")

        assert stats.count == 100
        assert stats.min_us == 1
        assert stats.max_us == 100
        assert stats.avg_us == 50.5
        assert metrics.get_latency_stats("missing").count == 0

    def test_latency_window(self) -> None:
        """Test only the most recent samples are kept."""
        metrics = MetricsCollector(latency_window_size=3)
        for latency in (100, 1, 2, 3):
            metrics.record_latency("detect", latency)

        assert metrics.get_latency_stats("detect").max_us == 3

    def test_record_opportunity(self) -> None:
        """Test detection statistics."""
        metrics = MetricsCollector()
        metrics.record_opportunity(1.02, 3.0, dispatched=True)
        metrics.record_opportunity(0.99, 0.5)

        stats = metrics.detection_stats
        assert stats.opportunities_scored == 2
        assert stats.opportunities_profitable == 1
        assert stats.opportunities_dispatched == 1
        assert stats.best_net_yield == 1.02
        assert stats.best_z_score == 3.0
        assert stats.dispatch_rate == 0.5

    def test_reset(self) -> None:
        """Test reset clears everything."""
        metrics = MetricsCollector()
        metrics.increment_counter("passes")
        metrics.record_opportunity(1.02, 3.0)

        metrics.reset()

        assert metrics.get_counter("passes") == 0
        assert metrics.to_dict()["detection"]["opportunities_scored"] == 0


class TestOpportunityRecorder:
    """Tests for OpportunityRecorder."""

    def test_header_written_once(self, tmp_path: Path) -> None:
        """Test repeated passes append rows under one header."""
        path = tmp_path / "out" / "opportunities.csv"
        recorder = OpportunityRecorder(path)

        recorder.record([make_opportunity()])
        recorder.record([make_opportunity(1.1, dispatched=True)])

        with path.open(newline="") as f:
            rows = list(csv.DictReader(f))

        assert len(rows) == 2
        assert tuple(rows[0]) == FIELDNAMES
        assert rows[0]["key"] == "A>B>C"
        assert rows[0]["path"] == "A->B->C->A"
        assert rows[1]["dispatched"] == "1"
        assert recorder.rows_written == 2

    def test_empty_pass_writes_nothing(self, tmp_path: Path) -> None:
        """Test no file is created for a pass without opportunities."""
        path = tmp_path / "opportunities.csv"
        recorder = OpportunityRecorder(path)

        assert recorder.record([]) == 0
        assert not path.exists()


class TestAsyncLogger:
    """Tests for queue-based logging."""

    def test_full_queue_drops_instead_of_blocking(self) -> None:
        """Test a saturated queue never blocks the caller."""
        queue: Queue = Queue(maxsize=1)
        handler = DroppingQueueHandler(queue)
        record = logging.LogRecord("cyclearb", logging.INFO, __file__, 1, "msg", None, None)

        handler.enqueue(record)
        handler.enqueue(record)

        assert queue.qsize() == 1
        assert handler.dropped == 1

    def test_records_reach_log_file(self, tmp_path: Path) -> None:
        """Test records written through the listener land in the file."""
        log_file = tmp_path / "logs" / "engine.log"

        with AsyncLogger("cyclearb.test_logger", log_file=log_file) as async_logger:
            assert async_logger.is_running
            async_logger.logger.debug("pass finished")

        assert async_logger.is_running is False
        assert "pass finished" in log_file.read_text()
