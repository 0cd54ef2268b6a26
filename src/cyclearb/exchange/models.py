"""
Pydantic models for Binance public API responses.

These models provide type-safe parsing of exchange responses
with automatic validation.
"""

from pydantic import BaseModel, Field


class SymbolData(BaseModel):
    """Symbol information from exchange info."""

    symbol: str
    status: str
    base_asset: str = Field(alias="baseAsset")
    base_asset_precision: int = Field(default=8, alias="baseAssetPrecision")
    quote_asset: str = Field(alias="quoteAsset")
    quote_asset_precision: int = Field(default=8, alias="quoteAssetPrecision")
    is_spot_trading_allowed: bool = Field(default=False, alias="isSpotTradingAllowed")

    model_config = {"populate_by_name": True}

    @property
    def is_trading(self) -> bool:
        """Check if the symbol is open for spot trading."""
        return self.status == "TRADING" and self.is_spot_trading_allowed


class ExchangeInfo(BaseModel):
    """Exchange information response (only the fields the feed needs)."""

    timezone: str = "UTC"
    server_time: int = Field(default=0, alias="serverTime")
    symbols: list[SymbolData]

    model_config = {"populate_by_name": True}


class BookTicker(BaseModel):
    """Best bid/ask for one symbol."""

    symbol: str
    bid_price: float = Field(alias="bidPrice")
    bid_qty: float = Field(default=0.0, alias="bidQty")
    ask_price: float = Field(alias="askPrice")
    ask_qty: float = Field(default=0.0, alias="askQty")

    model_config = {"populate_by_name": True}
