"""Execution module: dispatch boundary for approved cycles."""

from cyclearb.execution.dispatcher import (
    DispatchRecord,
    ExecutionDispatcher,
    LoggingDispatcher,
)


__all__ = [
    "DispatchRecord",
    "ExecutionDispatcher",
    "LoggingDispatcher",
]
