"""Telemetry module for logging, metrics, and opportunity recording."""

from cyclearb.telemetry.logger import AsyncLogger, setup_logging
from cyclearb.telemetry.metrics import MetricsCollector
from cyclearb.telemetry.recorder import OpportunityRecorder


__all__ = [
    "AsyncLogger",
    "MetricsCollector",
    "OpportunityRecorder",
    "setup_logging",
]
