"""
Price feed normalization.

Converts raw exchange rates into log-space edge weights so that
maximizing a product of rates becomes minimizing a sum of weights.
"""

import logging
import math
from collections.abc import Iterable

from cyclearb.core.exceptions import InvalidRateError
from cyclearb.core.types import RateSource, RateUpdate, RawRate
from cyclearb.feed.queue import PendingUpdateQueue
from cyclearb.telemetry.metrics import MetricsCollector


logger = logging.getLogger(__name__)


def edge_weight(rate: float, fee_rate: float) -> float:
    """
    Compute the log-space weight of a directed edge.

    Example:
        >>> edge_weight(2.0, 0.0)
        -0.6931471805599453
    """
    return -math.log(rate * (1.0 - fee_rate))


class PriceFeedNormalizer:
    """
    Validates feed rates and pushes weight updates to the pending queue.

    Never mutates the graph directly, which decouples feed cadence
    from detection cadence.
    """

    def __init__(
        self,
        queue: PendingUpdateQueue,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """
        Initialize normalizer.

        Args:
            queue: Queue drained by the exchange graph.
            metrics: Optional metrics collector.
        """
        self._queue = queue
        self._metrics = metrics
        self._accepted = 0
        self._rejected = 0

    def normalize(
        self,
        asset_from: str,
        asset_to: str,
        rate: float,
        fee_rate: float,
        timestamp_ms: int,
    ) -> RateUpdate:
        """
        Validate a raw rate and compute its edge weight.

        Raises:
            InvalidRateError: If rate <= 0, fee_rate is outside [0, 1),
                a value is not finite, or the assets are malformed.
        """
        if not asset_from or not asset_to:
            raise InvalidRateError("Empty asset identifier", asset_from, asset_to)
        if asset_from == asset_to:
            raise InvalidRateError(f"Self-loop on {asset_from}", asset_from, asset_to)
        if not math.isfinite(rate) or rate <= 0:
            raise InvalidRateError(
                f"Invalid rate {rate} for {asset_from}->{asset_to}", asset_from, asset_to
            )
        if not math.isfinite(fee_rate) or not 0.0 <= fee_rate < 1.0:
            raise InvalidRateError(
                f"Invalid fee rate {fee_rate} for {asset_from}->{asset_to}",
                asset_from,
                asset_to,
            )

        effective_rate = rate * (1.0 - fee_rate)
        if effective_rate <= 0 or not math.isfinite(effective_rate):
            raise InvalidRateError(
                f"Effective rate underflow for {asset_from}->{asset_to}", asset_from, asset_to
            )

        weight = -math.log(effective_rate)
        if not math.isfinite(weight):
            raise InvalidRateError(
                f"Non-finite weight for {asset_from}->{asset_to}", asset_from, asset_to
            )

        return RateUpdate(
            asset_from=asset_from,
            asset_to=asset_to,
            rate=rate,
            fee_rate=fee_rate,
            timestamp_ms=int(timestamp_ms),
            weight=weight,
        )

    def submit(
        self,
        asset_from: str,
        asset_to: str,
        rate: float,
        fee_rate: float,
        timestamp_ms: int,
    ) -> RateUpdate:
        """
        Normalize a rate and queue it for the next pass.

        Raises:
            InvalidRateError: If the rate fails validation.
        """
        update = self.normalize(asset_from, asset_to, rate, fee_rate, timestamp_ms)
        if not self._queue.put(update) and self._metrics:
            self._metrics.increment_counter("updates_evicted")
        self._accepted += 1
        return update

    def submit_raw(self, raw: RawRate) -> bool:
        """
        Queue a feed event, isolating validation errors.

        A bad update is logged and dropped; it never propagates.

        Returns:
            True if the update was queued.
        """
        try:
            self.submit(raw.asset_from, raw.asset_to, raw.rate, raw.fee_rate, raw.timestamp_ms)
        except InvalidRateError as e:
            self._rejected += 1
            if self._metrics:
                self._metrics.increment_counter("updates_rejected")
            logger.warning(f"Dropped feed update: {e}")
            return False
        return True

    def submit_many(self, raws: Iterable[RawRate]) -> int:
        """
        Queue a batch of feed events.

        Returns:
            Number of updates accepted.
        """
        return sum(1 for raw in raws if self.submit_raw(raw))

    async def consume(self, source: RateSource) -> int:
        """
        Drain an async feed into the pending queue until it ends.

        Args:
            source: Async iterable of raw rates.

        Returns:
            Number of updates accepted.
        """
        accepted = 0
        async for raw in source:
            if self.submit_raw(raw):
                accepted += 1
        logger.info(f"Feed ended after {accepted} accepted updates")
        return accepted

    @property
    def queue(self) -> PendingUpdateQueue:
        """Queue receiving normalized updates."""
        return self._queue

    @property
    def accepted(self) -> int:
        """Updates queued since startup."""
        return self._accepted

    @property
    def rejected(self) -> int:
        """Updates dropped by validation since startup."""
        return self._rejected
