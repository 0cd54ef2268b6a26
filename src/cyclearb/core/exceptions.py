"""
Exception taxonomy for the cycle engine.

Per-update errors (InvalidRateError) are isolated by the feed layer.
Per-pass errors (PassAbortedError subclasses) abort a single evaluation
pass and are reported to the caller; the next tick runs normally.
"""

from collections.abc import Sequence


class ArbitrageError(Exception):
    """Base exception for all engine errors."""


class InvalidRateError(ArbitrageError, ValueError):
    """Malformed rate update from the feed."""

    def __init__(
        self,
        message: str,
        asset_from: str = "",
        asset_to: str = "",
    ) -> None:
        super().__init__(message)
        self.asset_from = asset_from
        self.asset_to = asset_to


class InsufficientHistoryError(ArbitrageError):
    """Not enough history to compute a meaningful z-score."""

    def __init__(self, key: str, samples: int) -> None:
        super().__init__(f"Insufficient history for {key}: {samples} samples")
        self.key = key
        self.samples = samples


class PassAbortedError(ArbitrageError):
    """An evaluation pass was abandoned; its output is discarded."""


class DisconnectedBaseError(PassAbortedError):
    """Base asset has no outgoing live edges."""

    def __init__(self, base_asset: str) -> None:
        super().__init__(f"Base asset {base_asset} has no outgoing live edges")
        self.base_asset = base_asset


class GraphInconsistencyError(PassAbortedError):
    """A graph invariant was violated while merging updates."""

    def __init__(self, violations: Sequence[str]) -> None:
        summary = "; ".join(violations[:5])
        if len(violations) > 5:
            summary += f" (+{len(violations) - 5} more)"
        super().__init__(f"Graph inconsistency: {summary}")
        self.violations = tuple(violations)


class PassDeadlineExceeded(PassAbortedError):
    """The pass ran past its scheduling deadline."""

    def __init__(self, stage: str, deadline_ms: int) -> None:
        super().__init__(f"Pass deadline {deadline_ms} exceeded during {stage}")
        self.stage = stage
        self.deadline_ms = deadline_ms
