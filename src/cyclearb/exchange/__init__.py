"""Exchange market-data client and response models."""

from cyclearb.exchange.client import (
    ExchangeAPIError,
    ExchangeClientError,
    PublicExchangeClient,
)
from cyclearb.exchange.models import BookTicker, ExchangeInfo, SymbolData


__all__ = [
    "BookTicker",
    "ExchangeAPIError",
    "ExchangeClientError",
    "ExchangeInfo",
    "PublicExchangeClient",
    "SymbolData",
]
