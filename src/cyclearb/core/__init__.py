"""Core module containing type definitions and the exception taxonomy."""

from cyclearb.core.exceptions import (
    ArbitrageError,
    DisconnectedBaseError,
    GraphInconsistencyError,
    InsufficientHistoryError,
    InvalidRateError,
    PassAbortedError,
    PassDeadlineExceeded,
)
from cyclearb.core.types import (
    Asset,
    Cycle,
    EdgeState,
    GateState,
    HistoricalStat,
    Opportunity,
    RateUpdate,
    RawRate,
    canonical_key,
)


__all__ = [
    "ArbitrageError",
    "Asset",
    "Cycle",
    "DisconnectedBaseError",
    "EdgeState",
    "GateState",
    "GraphInconsistencyError",
    "HistoricalStat",
    "InsufficientHistoryError",
    "InvalidRateError",
    "Opportunity",
    "PassAbortedError",
    "PassDeadlineExceeded",
    "RateUpdate",
    "RawRate",
    "canonical_key",
]
