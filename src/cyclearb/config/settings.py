"""
Application settings with environment variable support.

Uses Pydantic Settings for type-safe configuration with automatic
environment variable loading and validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cyclearb.config.constants import (
    DEFAULT_BASE_ASSET,
    DEFAULT_COOLDOWN_MS,
    DEFAULT_EVALUATION_INTERVAL_MS,
    DEFAULT_FEE_RATE,
    DEFAULT_FEED_POLL_INTERVAL_MS,
    DEFAULT_HISTORY_INACTIVITY_MS,
    DEFAULT_HISTORY_WINDOW,
    DEFAULT_MAX_CYCLE_LENGTH,
    DEFAULT_MAX_PENDING_QUEUE,
    DEFAULT_MAX_STALENESS_MS,
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_MIN_CYCLE_LENGTH,
    DEFAULT_MIN_HISTORY_SAMPLES,
    DEFAULT_MIN_MARGIN,
    DEFAULT_PASS_DEADLINE_MS,
    DEFAULT_RELAXATION_EPSILON,
    DEFAULT_STDDEV_FLOOR,
    DEFAULT_TOP_K,
    DEFAULT_Z_SCORE_THRESHOLD,
    SUPPORTED_QUOTE_ASSETS,
)


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    All settings can be overridden via ``CYCLEARB_``-prefixed
    environment variables or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="CYCLEARB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Network Configuration
    # =========================================================================

    use_testnet: bool = Field(
        default=False,
        description="Poll Binance testnet instead of production",
    )

    quote_assets: list[str] = Field(
        default_factory=lambda: sorted(SUPPORTED_QUOTE_ASSETS),
        description="Quote assets whose pairs are loaded into the graph",
    )

    feed_poll_interval_ms: int = Field(
        default=DEFAULT_FEED_POLL_INTERVAL_MS,
        ge=100,
        description="Interval between book ticker polls",
    )

    fee_rate: float = Field(
        default=DEFAULT_FEE_RATE,
        ge=0.0,
        lt=1.0,
        description="Fee rate applied to every feed rate (e.g., 0.001 = 0.1%)",
    )

    # =========================================================================
    # Graph & Detection
    # =========================================================================

    base_asset: str = Field(
        default=DEFAULT_BASE_ASSET,
        min_length=1,
        description="Asset the Bellman-Ford search starts from",
    )

    max_staleness_ms: int = Field(
        default=DEFAULT_MAX_STALENESS_MS,
        ge=1,
        description="Maximum edge age before it is excluded from snapshots",
    )

    relaxation_epsilon: float = Field(
        default=DEFAULT_RELAXATION_EPSILON,
        ge=0.0,
        le=1e-3,
        description="Minimum relaxation improvement counted as real",
    )

    min_cycle_length: int = Field(
        default=DEFAULT_MIN_CYCLE_LENGTH,
        ge=2,
        description="Shortest cycle reported",
    )

    max_cycle_length: int = Field(
        default=DEFAULT_MAX_CYCLE_LENGTH,
        ge=2,
        description="Longest cycle reported",
    )

    max_pending_queue: int = Field(
        default=DEFAULT_MAX_PENDING_QUEUE,
        ge=1,
        description="Maximum distinct edges waiting in the pending update queue",
    )

    # =========================================================================
    # Scoring
    # =========================================================================

    history_window: float = Field(
        default=DEFAULT_HISTORY_WINDOW,
        gt=0.0,
        description="Rolling window size (>= 1) or decay factor (0 < x < 1)",
    )

    min_history_samples: int = Field(
        default=DEFAULT_MIN_HISTORY_SAMPLES,
        ge=1,
        description="Samples required before a z-score is trusted",
    )

    stddev_floor: float = Field(
        default=DEFAULT_STDDEV_FLOOR,
        ge=0.0,
        description="Historical stddev below this counts as insufficient history",
    )

    history_inactivity_ms: int = Field(
        default=DEFAULT_HISTORY_INACTIVITY_MS,
        ge=1,
        description="Idle time after which a cycle's history is evicted",
    )

    history_checkpoint_path: Path | None = Field(
        default=None,
        description="Optional JSON checkpoint for rolling history",
    )

    # =========================================================================
    # Decision Gate
    # =========================================================================

    min_margin: float = Field(
        default=DEFAULT_MIN_MARGIN,
        ge=0.0,
        le=1.0,
        description="Required net yield above 1.0 (e.g., 0.001 = 0.1%)",
    )

    z_score_threshold: float = Field(
        default=DEFAULT_Z_SCORE_THRESHOLD,
        description="Minimum z-score of the current yield against history",
    )

    min_confidence: float = Field(
        default=DEFAULT_MIN_CONFIDENCE,
        ge=0.0,
        le=1.0,
        description="Minimum confidence of a candidate",
    )

    cooldown_ms: int = Field(
        default=DEFAULT_COOLDOWN_MS,
        ge=0,
        description="Time a dispatched cycle identity is blocked from re-dispatch",
    )

    top_k: int = Field(
        default=DEFAULT_TOP_K,
        ge=1,
        le=50,
        description="Maximum candidates dispatched per pass",
    )

    holding_assets: list[str] = Field(
        default_factory=list,
        description="Assets a route may start from, in addition to the base asset",
    )

    # =========================================================================
    # Operation Mode
    # =========================================================================

    dry_run: bool = Field(
        default=True,
        description="Log approved cycles instead of handing them to an executor",
    )

    evaluation_interval_ms: int = Field(
        default=DEFAULT_EVALUATION_INTERVAL_MS,
        ge=10,
        description="Interval between evaluation passes when self-scheduled",
    )

    pass_deadline_ms: int = Field(
        default=DEFAULT_PASS_DEADLINE_MS,
        ge=1,
        description="Budget for a single evaluation pass before it is abandoned",
    )

    record_path: Path | None = Field(
        default=None,
        description="Optional CSV file receiving every scored opportunity",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )

    log_file: Path | None = Field(
        default=None,
        description="Optional log file path",
    )

    use_uvloop: bool = Field(
        default=True,
        description="Use uvloop for improved async performance",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("base_asset", mode="after")
    @classmethod
    def normalize_base_asset(cls, v: str) -> str:
        """Asset identifiers are upper-case."""
        return v.strip().upper()

    @field_validator("holding_assets", "quote_assets", mode="after")
    @classmethod
    def normalize_assets(cls, v: list[str]) -> list[str]:
        """Upper-case and de-duplicate asset lists."""
        return sorted({asset.strip().upper() for asset in v if asset.strip()})

    @model_validator(mode="after")
    def validate_cycle_bounds(self) -> "Settings":
        """Ensure the cycle length bounds are ordered."""
        if self.min_cycle_length > self.max_cycle_length:
            raise ValueError(
                f"min_cycle_length ({self.min_cycle_length}) exceeds "
                f"max_cycle_length ({self.max_cycle_length})"
            )
        return self

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def history_alpha(self) -> float:
        """Decay factor for rolling statistics."""
        if self.history_window < 1.0:
            return self.history_window
        return 2.0 / (self.history_window + 1.0)

    @property
    def effective_holdings(self) -> frozenset[str]:
        """Assets a dispatched route may start from."""
        return frozenset({self.base_asset, *self.holding_assets})

    @property
    def min_net_yield(self) -> float:
        """Smallest net yield the gate accepts."""
        return 1.0 + self.min_margin


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are loaded only once.
    Clear cache with `get_settings.cache_clear()` if needed.
    """
    return Settings()
