"""Configuration module for the cycle engine."""

from cyclearb.config.constants import (
    BINANCE_REST_URL,
    DEFAULT_BASE_ASSET,
    DEFAULT_FEE_RATE,
    DEFAULT_RELAXATION_EPSILON,
)
from cyclearb.config.settings import Settings, get_settings


__all__ = [
    "Settings",
    "get_settings",
    "BINANCE_REST_URL",
    "DEFAULT_BASE_ASSET",
    "DEFAULT_FEE_RATE",
    "DEFAULT_RELAXATION_EPSILON",
]
