"""
Main evaluation engine.

Wires the feed normalizer, exchange graph, cycle detector, scorer and
decision gate into one evaluation pass, and optionally schedules that
pass itself while consuming a feed.
"""

import asyncio
import contextlib
import logging
import signal
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from cyclearb.config.settings import Settings
from cyclearb.core.exceptions import ArbitrageError, PassAbortedError
from cyclearb.core.types import Clock, Opportunity, RateSource, RawRate
from cyclearb.execution.dispatcher import ExecutionDispatcher, LoggingDispatcher
from cyclearb.feed.normalizer import PriceFeedNormalizer
from cyclearb.feed.queue import PendingUpdateQueue
from cyclearb.strategy.detector import CycleDetector
from cyclearb.strategy.gate import DecisionGate
from cyclearb.strategy.graph import ExchangeGraph
from cyclearb.strategy.scorer import HistoryTable, OpportunityScorer
from cyclearb.telemetry.metrics import MetricsCollector
from cyclearb.telemetry.recorder import OpportunityRecorder
from cyclearb.utils.time import Deadline, LatencyTimer, get_timestamp_ms


logger = logging.getLogger(__name__)


class ArbitrageEngine:
    """
    Evaluation pipeline orchestrator.

    One pass:
    - Merge pending feed updates into the graph
    - Mark stale edges and take a snapshot
    - Detect negative cycles from the base asset
    - Score cycles against their history
    - Gate, dispatch and record

    Feed ingestion may run concurrently with a pass; passes themselves
    never overlap.
    """

    def __init__(
        self,
        settings: Settings,
        dispatcher: ExecutionDispatcher | None = None,
        clock: Clock = get_timestamp_ms,
        metrics: MetricsCollector | None = None,
        recorder: OpportunityRecorder | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            settings: Application settings.
            dispatcher: Receiver of approved cycles (dry-run logger if None).
            clock: Millisecond clock.
            metrics: Metrics collector (created if None).
            recorder: Optional CSV recorder of scored opportunities.
        """
        self._settings = settings
        self._clock = clock
        self._metrics = metrics or MetricsCollector()
        self._recorder = recorder
        self._dispatcher: ExecutionDispatcher = dispatcher or LoggingDispatcher()

        self._queue = PendingUpdateQueue(settings.max_pending_queue)
        self._normalizer = PriceFeedNormalizer(self._queue, self._metrics)
        self._graph = ExchangeGraph(
            queue=self._queue,
            max_staleness_ms=settings.max_staleness_ms,
            history_alpha=settings.history_alpha,
            metrics=self._metrics,
            clock=clock,
        )
        self._graph.register_asset(settings.base_asset)

        self._detector = CycleDetector(
            epsilon=settings.relaxation_epsilon,
            min_cycle_length=settings.min_cycle_length,
            max_cycle_length=settings.max_cycle_length,
        )

        self._history = HistoryTable()
        if settings.history_checkpoint_path:
            self._history.load(settings.history_checkpoint_path)

        self._scorer = OpportunityScorer(
            history=self._history,
            alpha=settings.history_alpha,
            min_history_samples=settings.min_history_samples,
            stddev_floor=settings.stddev_floor,
            max_staleness_ms=settings.max_staleness_ms,
        )
        self._gate = DecisionGate(
            min_margin=settings.min_margin,
            z_score_threshold=settings.z_score_threshold,
            min_confidence=settings.min_confidence,
            cooldown_ms=settings.cooldown_ms,
            top_k=settings.top_k,
            holding_assets=settings.effective_holdings,
            base_asset=settings.base_asset,
        )

        self._pass_lock = threading.Lock()
        self._running = False
        self._shutdown_event: asyncio.Event | None = None
        self._last_opportunities: list[Opportunity] = []

    # =========================================================================
    # Feed Input
    # =========================================================================

    def submit(self, raw: RawRate) -> bool:
        """
        Queue one raw rate for the next pass.

        Returns:
            True if the rate was valid and queued.
        """
        return self._normalizer.submit_raw(raw)

    # =========================================================================
    # Evaluation Pass
    # =========================================================================

    def run_evaluation_pass(self, deadline_ms: int | None = None) -> list[Opportunity]:
        """
        Run one full refresh, detect, score and decide pass.

        Args:
            deadline_ms: Optional budget; the pass is abandoned when it
                runs past it. Graph merges already done are kept.

        Returns:
            Every opportunity scored this pass, best net yield first.
            Those handed to the dispatcher have ``dispatched`` set.

        Raises:
            DisconnectedBaseError: Base asset has no live outgoing edge.
            GraphInconsistencyError: A queued update broke an edge invariant.
            PassDeadlineExceeded: The pass ran past its deadline.
        """
        deadline = Deadline(deadline_ms, self._clock) if deadline_ms is not None else None

        with self._pass_lock:
            try:
                with LatencyTimer() as timer:
                    opportunities = self._evaluate(deadline)
            except PassAbortedError as e:
                self._metrics.increment_counter("passes_aborted")
                logger.warning(f"Evaluation pass aborted: {e}")
                raise

            self._metrics.record_latency("pass_total", timer.latency_us)
            self._metrics.increment_counter("passes")
            self._last_opportunities = opportunities

        return opportunities

    def _evaluate(self, deadline: Deadline | None) -> list[Opportunity]:
        settings = self._settings

        merged = self._graph.apply_pending_updates()
        now = self._clock()
        self._graph.mark_stale(now)
        snapshot = self._graph.snapshot(now)

        logger.debug(
            f"Pass snapshot v{snapshot.version}: {len(snapshot)} assets, "
            f"{snapshot.edge_count} live edges, {merged} updates merged"
        )

        with LatencyTimer() as timer:
            cycles = self._detector.detect(snapshot, settings.base_asset, deadline)
        self._metrics.record_latency("detect", timer.latency_us)
        self._metrics.increment_counter("cycles_detected", len(cycles))

        if deadline is not None:
            deadline.check("scoring")

        with LatencyTimer() as timer:
            opportunities = self._scorer.score_all(cycles, now, snapshot.as_of_ms)
        self._metrics.record_latency("score", timer.latency_us)

        self._history.evict(now, settings.history_inactivity_ms)
        self._gate.prune(now, settings.history_inactivity_ms)

        if deadline is not None:
            deadline.check("gate")

        approved = self._gate.evaluate(opportunities, now)
        self._metrics.increment_counter("opportunities_approved", len(approved))

        for opportunity in approved:
            self._dispatch(opportunity, now)

        for opportunity in opportunities:
            self._metrics.record_opportunity(
                opportunity.net_yield,
                opportunity.z_score,
                dispatched=opportunity.dispatched,
            )

        if self._recorder and opportunities:
            try:
                self._recorder.record(opportunities)
            except OSError as e:
                self._metrics.increment_counter("record_errors")
                logger.error(f"Failed to record opportunities: {e}")

        return opportunities

    def _dispatch(self, opportunity: Opportunity, now_ms: int) -> None:
        """Hand one opportunity to the dispatcher without waiting on it."""
        try:
            self._dispatcher.execute(opportunity.route, opportunity.net_yield, opportunity.key)
        except Exception as e:
            self._metrics.increment_counter("dispatch_errors")
            logger.error(f"Dispatch failed for {opportunity.key}: {e}")
            return

        opportunity.dispatched = True
        self._gate.record_dispatch(opportunity, now_ms)
        self._metrics.increment_counter("dispatches")

        logger.info(
            f"Dispatched {' -> '.join(opportunity.route)} "
            f"yield={opportunity.net_yield:.6f} z={opportunity.z_score:.2f} "
            f"confidence={opportunity.confidence:.2f}"
        )

    def tick(self) -> list[Opportunity]:
        """
        Scheduler entry point.

        Runs one pass under the configured deadline. Pass errors are
        logged and counted; the tick then yields no opportunities and the
        next tick runs normally.
        """
        try:
            return self.run_evaluation_pass(self._settings.pass_deadline_ms)
        except PassAbortedError:
            return []
        except ArbitrageError as e:
            self._metrics.increment_counter("passes_aborted")
            logger.error(f"Evaluation pass failed: {e}")
            return []

    # =========================================================================
    # Self-Scheduled Loop
    # =========================================================================

    async def run(self, source: RateSource) -> None:
        """
        Consume a feed and evaluate on a fixed interval.

        Runs until stop() is called, a shutdown signal arrives, or the
        feed ends (after one last pass over its final updates).

        Args:
            source: Async stream of raw rates.
        """
        self._running = True
        self._shutdown_event = asyncio.Event()
        interval = self._settings.evaluation_interval_ms / 1000

        loop = asyncio.get_running_loop()
        installed: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Signal handler for {sig.name} unavailable")

        feed_task = asyncio.create_task(self._normalizer.consume(source), name="feed")
        logger.info(
            f"Starting evaluation loop: base={self._settings.base_asset}, "
            f"interval={self._settings.evaluation_interval_ms}ms"
        )

        try:
            while self._running:
                feed_done = feed_task.done()
                await asyncio.to_thread(self.tick)

                if feed_done:
                    logger.info("Feed finished, stopping evaluation loop")
                    break

                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)

        finally:
            if not feed_task.done():
                feed_task.cancel()
            results = await asyncio.gather(feed_task, return_exceptions=True)
            error = results[0]
            if isinstance(error, Exception):
                logger.error(f"Feed failed: {error}")

            for sig in installed:
                loop.remove_signal_handler(sig)

            self.shutdown()

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal."""
        logger.info("Shutdown signal received")
        self.stop()

    def stop(self) -> None:
        """Stop the evaluation loop after the current pass."""
        self._running = False
        if self._shutdown_event:
            self._shutdown_event.set()

    def shutdown(self) -> None:
        """Persist history and log a final summary."""
        logger.info("Shutting down engine...")
        self._running = False

        checkpoint = self._settings.history_checkpoint_path
        if checkpoint:
            try:
                self._history.save(checkpoint)
            except OSError as e:
                logger.error(f"Failed to save history checkpoint: {e}")

        stats = self._metrics.detection_stats
        logger.info(
            f"Engine shutdown complete: passes={self._metrics.get_counter('passes')}, "
            f"scored={stats.opportunities_scored}, "
            f"dispatched={stats.opportunities_dispatched}"
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_running(self) -> bool:
        """Check if the evaluation loop is running."""
        return self._running

    @property
    def metrics(self) -> MetricsCollector:
        """Get metrics collector."""
        return self._metrics

    @property
    def graph(self) -> ExchangeGraph:
        """Get the exchange graph."""
        return self._graph

    @property
    def gate(self) -> DecisionGate:
        """Get the decision gate."""
        return self._gate

    @property
    def history(self) -> HistoryTable:
        """Get the rolling history table."""
        return self._history

    @property
    def normalizer(self) -> PriceFeedNormalizer:
        """Get the feed normalizer."""
        return self._normalizer

    @property
    def last_opportunities(self) -> list[Opportunity]:
        """Opportunities of the last completed pass."""
        return list(self._last_opportunities)

    def status(self) -> dict[str, Any]:
        """Snapshot of engine state for reporting."""
        return {
            "running": self._running,
            "assets": len(self._graph.assets),
            "edges": self._graph.edge_count,
            "live_edges": self._graph.live_edge_count,
            "pending_updates": len(self._queue),
            "history_entries": len(self._history),
            "gate_rejections": self._gate.rejections,
            "metrics": self._metrics.to_dict(),
        }


@asynccontextmanager
async def create_engine(
    settings: Settings,
    dispatcher: ExecutionDispatcher | None = None,
    metrics: MetricsCollector | None = None,
) -> AsyncIterator[ArbitrageEngine]:
    """
    Create and manage engine lifecycle.

    Usage:
        async with create_engine(settings) as engine:
            await engine.run(feed)
    """
    recorder = OpportunityRecorder(settings.record_path) if settings.record_path else None
    engine = ArbitrageEngine(
        settings,
        dispatcher=dispatcher,
        metrics=metrics,
        recorder=recorder,
    )

    try:
        yield engine
    finally:
        if engine.is_running:
            engine.stop()
