"""
Execution dispatch boundary.

The engine hands each approved opportunity to a dispatcher with one
fire-and-forget call and never waits for fills or settlement. Real
order placement lives behind this protocol; LoggingDispatcher is the
dry-run implementation.
"""

import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from cyclearb.config.constants import DISPATCH_HISTORY_SIZE
from cyclearb.utils.time import get_timestamp_ms


logger = logging.getLogger(__name__)


@runtime_checkable
class ExecutionDispatcher(Protocol):
    """Receives approved cycles and performs the trade sequence."""

    def execute(self, cycle: Sequence[str], expected_yield: float, identity_key: str) -> None:
        """
        Start executing a cycle.

        Args:
            cycle: Closed asset sequence in execution order.
            expected_yield: Net rate multiplier after fees.
            identity_key: Canonical cycle identity.
        """
        ...


@dataclass(slots=True, frozen=True)
class DispatchRecord:
    """One dispatched cycle."""

    route: tuple[str, ...]
    expected_yield: float
    identity_key: str
    timestamp_ms: int


class LoggingDispatcher:
    """
    Dry-run dispatcher.

    Logs every approved route and keeps the most recent dispatches in
    a bounded history.
    """

    def __init__(self, history_size: int = DISPATCH_HISTORY_SIZE) -> None:
        """
        Initialize dispatcher.

        Args:
            history_size: Number of recent dispatches kept.
        """
        self._history: deque[DispatchRecord] = deque(maxlen=history_size)
        self._total = 0

    def execute(self, cycle: Sequence[str], expected_yield: float, identity_key: str) -> None:
        """Log the route instead of trading it."""
        record = DispatchRecord(
            route=tuple(cycle),
            expected_yield=expected_yield,
            identity_key=identity_key,
            timestamp_ms=get_timestamp_ms(),
        )
        self._history.append(record)
        self._total += 1

        logger.info(
            f"[DRY RUN] Cycle {' -> '.join(record.route)}: "
            f"Yield={expected_yield:.6f}, Return={(expected_yield - 1.0) * 100:.4f}%"
        )

    @property
    def history(self) -> list[DispatchRecord]:
        """Recent dispatches, oldest first."""
        return list(self._history)

    @property
    def total(self) -> int:
        """Dispatches since startup."""
        return self._total
