"""
Engine constants and default configuration values.

This module contains all hardcoded values used throughout the cycle engine.
Values are organized by category for easy maintenance and auditing.
"""

from typing import Final


# =============================================================================
# Binance Public API Endpoints
# =============================================================================

BINANCE_REST_URL: Final[str] = "https://api.binance.com"
BINANCE_REST_TESTNET_URL: Final[str] = "https://testnet.binance.vision"

ENDPOINT_EXCHANGE_INFO: Final[str] = "/api/v3/exchangeInfo"
ENDPOINT_BOOK_TICKER: Final[str] = "/api/v3/ticker/bookTicker"


# =============================================================================
# Trading Fees
# =============================================================================

# Default Binance spot trading fee (0.1%)
DEFAULT_FEE_RATE: Final[float] = 0.001


# =============================================================================
# Graph & Detection
# =============================================================================

DEFAULT_BASE_ASSET: Final[str] = "USDT"

# Edges older than this are excluded from snapshots
DEFAULT_MAX_STALENESS_MS: Final[int] = 5_000

# Minimum relaxation improvement treated as real
DEFAULT_RELAXATION_EPSILON: Final[float] = 1e-9

# Two-leg reciprocations are bid/ask glitches, not cycles
DEFAULT_MIN_CYCLE_LENGTH: Final[int] = 3
DEFAULT_MAX_CYCLE_LENGTH: Final[int] = 8

# Tolerance when re-checking a queued weight against its rate and fee
WEIGHT_CONSISTENCY_TOLERANCE: Final[float] = 1e-9

# Pending update queue bound (distinct edge keys)
DEFAULT_MAX_PENDING_QUEUE: Final[int] = 10_000


# =============================================================================
# Scoring
# =============================================================================

# Rolling window size (>= 1) or decay factor (0 < x < 1)
DEFAULT_HISTORY_WINDOW: Final[float] = 50.0

DEFAULT_MIN_HISTORY_SAMPLES: Final[int] = 5
DEFAULT_STDDEV_FLOOR: Final[float] = 1e-9

# History for a cycle identity is dropped after this much inactivity
DEFAULT_HISTORY_INACTIVITY_MS: Final[int] = 15 * 60 * 1000


# =============================================================================
# Decision Gate
# =============================================================================

# Net yield must exceed 1 + margin (0.1%)
DEFAULT_MIN_MARGIN: Final[float] = 0.001

DEFAULT_Z_SCORE_THRESHOLD: Final[float] = 2.0
DEFAULT_MIN_CONFIDENCE: Final[float] = 0.5
DEFAULT_COOLDOWN_MS: Final[int] = 30_000
DEFAULT_TOP_K: Final[int] = 1


# =============================================================================
# Scheduling
# =============================================================================

DEFAULT_EVALUATION_INTERVAL_MS: Final[int] = 1_000
DEFAULT_PASS_DEADLINE_MS: Final[int] = 800
DEFAULT_FEED_POLL_INTERVAL_MS: Final[int] = 1_000

# Quote assets whose pairs are pulled into the graph
SUPPORTED_QUOTE_ASSETS: Final[frozenset[str]] = frozenset(
    {
        "USDT",
        "BTC",
        "ETH",
        "BNB",
    }
)

# Fiat currencies; pairs touching them are never loaded
FIAT_ASSETS: Final[frozenset[str]] = frozenset(
    {
        "ARS",
        "AUD",
        "BRL",
        "EUR",
        "GBP",
        "JPY",
        "MXN",
        "PLN",
        "RON",
        "RUB",
        "TRY",
        "UAH",
        "USD",
        "ZAR",
    }
)


# =============================================================================
# Logging & Telemetry
# =============================================================================

LOG_FORMAT: Final[str] = "%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

# Maximum log queue size
MAX_LOG_QUEUE_SIZE: Final[int] = 10_000

# Samples kept per latency metric
METRICS_LATENCY_WINDOW: Final[int] = 1_000

# Dispatches remembered by the logging dispatcher
DISPATCH_HISTORY_SIZE: Final[int] = 100
