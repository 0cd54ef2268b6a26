"""
Book ticker polling feed.

Turns Binance best bid/ask snapshots into directed raw rates:
each symbol BASEQUOTE yields base->quote at the bid and
quote->base at 1/ask.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable

from cyclearb.config.constants import FIAT_ASSETS
from cyclearb.core.types import Clock, RawRate
from cyclearb.exchange.client import ExchangeClientError, PublicExchangeClient
from cyclearb.exchange.models import BookTicker, ExchangeInfo
from cyclearb.utils.time import get_timestamp_ms


logger = logging.getLogger(__name__)


def load_pairs(
    exchange_info: ExchangeInfo,
    quote_assets: Iterable[str] | None = None,
    excluded_assets: Iterable[str] = FIAT_ASSETS,
) -> dict[str, tuple[str, str]]:
    """
    Map spot trading symbols to (base, quote) asset pairs.

    Args:
        exchange_info: Exchange info response.
        quote_assets: Quote assets to include (all when empty).
        excluded_assets: Assets whose pairs are skipped on either side.

    Returns:
        Dict of symbol -> (base_asset, quote_asset).
    """
    allowed = set(quote_assets or ())
    excluded = set(excluded_assets)
    pairs: dict[str, tuple[str, str]] = {}

    for symbol_data in exchange_info.symbols:
        if not symbol_data.is_trading:
            continue
        if allowed and symbol_data.quote_asset not in allowed:
            continue
        if symbol_data.base_asset in excluded or symbol_data.quote_asset in excluded:
            continue
        pairs[symbol_data.symbol] = (symbol_data.base_asset, symbol_data.quote_asset)

    return pairs


def rates_from_book_ticker(
    tickers: Iterable[BookTicker],
    pairs: dict[str, tuple[str, str]],
    fee_rate: float,
    timestamp_ms: int,
) -> list[RawRate]:
    """
    Convert book tickers into directed raw rates.

    Selling base for quote fills at the bid; buying base with quote
    fills at the ask, so the quote->base rate is 1/ask. Sides quoted at
    zero (empty books) produce no rate.

    Example:
        >>> t = BookTicker(symbol="ETHBTC", bidPrice=0.05, askPrice=0.0502)
        >>> [(r.asset_from, r.asset_to) for r in
        ...  rates_from_book_ticker([t], {"ETHBTC": ("ETH", "BTC")}, 0.0, 0)]
        [('ETH', 'BTC'), ('BTC', 'ETH')]
    """
    rates: list[RawRate] = []

    for ticker in tickers:
        pair = pairs.get(ticker.symbol)
        if pair is None:
            continue
        base, quote = pair

        if ticker.bid_price > 0:
            rates.append(RawRate(base, quote, ticker.bid_price, fee_rate, timestamp_ms))
        if ticker.ask_price > 0:
            rates.append(RawRate(quote, base, 1.0 / ticker.ask_price, fee_rate, timestamp_ms))

    return rates


class BinanceTickerFeed:
    """
    Async stream of raw rates polled from the book ticker endpoint.

    Network errors are logged and the poll is retried on the next
    interval; the stream only ends when stop() is called.
    """

    def __init__(
        self,
        client: PublicExchangeClient,
        fee_rate: float,
        poll_interval_ms: int,
        quote_assets: Iterable[str] | None = None,
        clock: Clock = get_timestamp_ms,
    ) -> None:
        """
        Initialize ticker feed.

        Args:
            client: Public exchange client.
            fee_rate: Fee applied to every rate.
            poll_interval_ms: Delay between polls.
            quote_assets: Quote assets whose pairs are streamed.
            clock: Millisecond clock used to stamp rates.
        """
        self._client = client
        self._fee_rate = fee_rate
        self._poll_interval = poll_interval_ms / 1000
        self._quote_assets = list(quote_assets or ())
        self._clock = clock
        self._pairs: dict[str, tuple[str, str]] = {}
        self._running = False
        self._polls = 0
        self._errors = 0

    async def load_pairs(self) -> int:
        """
        Load tradable symbols from exchange info.

        Returns:
            Number of symbols loaded.
        """
        exchange_info = await self._client.get_exchange_info()
        self._pairs = load_pairs(exchange_info, self._quote_assets)
        logger.info(f"Loaded {len(self._pairs)} tradable symbols")
        return len(self._pairs)

    async def poll_once(self) -> list[RawRate]:
        """Fetch one book ticker snapshot and convert it to rates."""
        if not self._pairs:
            await self.load_pairs()

        tickers = await self._client.get_book_tickers()
        self._polls += 1
        return rates_from_book_ticker(tickers, self._pairs, self._fee_rate, self._clock())

    async def __aiter__(self) -> AsyncIterator[RawRate]:
        self._running = True
        while self._running:
            try:
                rates = await self.poll_once()
            except (ExchangeClientError, asyncio.TimeoutError) as e:
                self._errors += 1
                logger.warning(f"Book ticker poll failed: {e}")
            else:
                for rate in rates:
                    yield rate

            await asyncio.sleep(self._poll_interval)

    def stop(self) -> None:
        """Stop the stream after the current poll."""
        self._running = False

    @property
    def pairs(self) -> dict[str, tuple[str, str]]:
        """Loaded symbol -> (base, quote) map."""
        return dict(self._pairs)

    @property
    def polls(self) -> int:
        """Successful polls since startup."""
        return self._polls

    @property
    def errors(self) -> int:
        """Failed polls since startup."""
        return self._errors
