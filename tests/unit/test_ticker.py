"""
Unit tests for the book ticker feed.

Tests symbol loading, bid/ask to rate conversion, and polling.
"""

import asyncio

import pytest

from cyclearb.exchange.client import ExchangeClientError, PublicExchangeClient
from cyclearb.exchange.models import BookTicker, ExchangeInfo, SymbolData
from cyclearb.feed.ticker import BinanceTickerFeed, load_pairs, rates_from_book_ticker
from tests.mocks.exchange import MockExchangeClient
from tests.mocks.feed import NOW_MS, FakeClock


PAIRS = {
    "BTCUSDT": ("BTC", "USDT"),
    "ETHUSDT": ("ETH", "USDT"),
    "ETHBTC": ("ETH", "BTC"),
}


def ticker(symbol: str, bid: float, ask: float) -> BookTicker:
    """Book ticker from raw API field names."""
    return BookTicker.model_validate({"symbol": symbol, "bidPrice": bid, "askPrice": ask})


def symbol(name: str, base: str, quote: str, status: str = "TRADING", spot: bool = True) -> SymbolData:
    """Exchange info symbol entry."""
    return SymbolData(
        symbol=name,
        status=status,
        base_asset=base,
        quote_asset=quote,
        is_spot_trading_allowed=spot,
    )


class TestLoadPairs:
    """Tests for symbol discovery."""

    def test_only_trading_symbols(self) -> None:
        """Test halted symbols are skipped."""
        info = ExchangeInfo(
            symbols=[
                symbol("BTCUSDT", "BTC", "USDT"),
                symbol("LUNAUSDT", "LUNA", "USDT", status="BREAK"),
            ]
        )

        assert load_pairs(info) == {"BTCUSDT": ("BTC", "USDT")}

    def test_only_spot_symbols(self) -> None:
        """Test symbols closed to spot trading are skipped."""
        info = ExchangeInfo(
            symbols=[
                symbol("BTCUSDT", "BTC", "USDT"),
                symbol("ETHUSDT", "ETH", "USDT", spot=False),
            ]
        )

        assert load_pairs(info) == {"BTCUSDT": ("BTC", "USDT")}

    def test_fiat_pairs_excluded(self) -> None:
        """Test pairs with a fiat currency on either side are skipped."""
        info = ExchangeInfo(
            symbols=[
                symbol("BTCEUR", "BTC", "EUR"),
                symbol("EURUSDT", "EUR", "USDT"),
                symbol("ETHBTC", "ETH", "BTC"),
            ]
        )

        assert load_pairs(info) == {"ETHBTC": ("ETH", "BTC")}
        assert set(load_pairs(info, excluded_assets=())) == {"BTCEUR", "EURUSDT", "ETHBTC"}

    def test_quote_filter(self) -> None:
        """Test pairs are limited to the requested quote assets."""
        info = ExchangeInfo(symbols=[symbol(s, b, q) for s, (b, q) in PAIRS.items()])

        assert set(load_pairs(info, ["BTC"])) == {"ETHBTC"}

    def test_parse_api_payload(self) -> None:
        """Test exchange info parses from the camelCase API shape."""
        info = ExchangeInfo.model_validate(
            {
                "timezone": "UTC",
                "serverTime": NOW_MS,
                "symbols": [
                    {
                        "symbol": "ETHBTC",
                        "status": "TRADING",
                        "baseAsset": "ETH",
                        "quoteAsset": "BTC",
                        "isSpotTradingAllowed": True,
                    },
                    {
                        "symbol": "BNBBTC",
                        "status": "TRADING",
                        "baseAsset": "BNB",
                        "quoteAsset": "BTC",
                    },
                ],
            }
        )

        assert info.server_time == NOW_MS
        assert info.symbols[1].is_spot_trading_allowed is False
        assert load_pairs(info) == {"ETHBTC": ("ETH", "BTC")}


class TestRatesFromBookTicker:
    """Tests for bid/ask conversion."""

    def test_both_directions(self) -> None:
        """Test base->quote at the bid and quote->base at 1/ask."""
        rates = rates_from_book_ticker(
            [ticker("BTCUSDT", 50000.0, 50010.0)], PAIRS, 0.001, NOW_MS
        )

        assert len(rates) == 2
        sell, buy = rates
        assert (sell.asset_from, sell.asset_to, sell.rate) == ("BTC", "USDT", 50000.0)
        assert (buy.asset_from, buy.asset_to) == ("USDT", "BTC")
        assert buy.rate == pytest.approx(1 / 50010.0)
        assert sell.fee_rate == buy.fee_rate == 0.001
        assert sell.timestamp_ms == NOW_MS

    def test_unknown_symbol_skipped(self) -> None:
        """Test tickers outside the loaded pairs are ignored."""
        assert rates_from_book_ticker([ticker("DOGEUSDT", 0.1, 0.11)], PAIRS, 0.0, 0) == []

    def test_empty_side_skipped(self) -> None:
        """Test a zero bid or ask produces no rate for that side."""
        rates = rates_from_book_ticker([ticker("ETHBTC", 0.0, 0.05)], PAIRS, 0.0, 0)

        assert [(r.asset_from, r.asset_to) for r in rates] == [("BTC", "ETH")]


class TestBinanceTickerFeed:
    """Tests for the polling feed."""

    @pytest.mark.asyncio
    async def test_poll_once_loads_pairs(self) -> None:
        """Test the first poll discovers symbols, later polls reuse them."""
        client = MockExchangeClient(
            pairs=PAIRS,
            snapshots=[[ticker("BTCUSDT", 50000.0, 50010.0)]],
        )
        feed = BinanceTickerFeed(client, fee_rate=0.001, poll_interval_ms=0, clock=FakeClock())

        first = await feed.poll_once()
        await feed.poll_once()

        assert len(first) == 2
        assert first[0].timestamp_ms == NOW_MS
        assert client.exchange_info_calls == 1
        assert feed.polls == 2
        assert set(feed.pairs) == set(PAIRS)

    @pytest.mark.asyncio
    async def test_stream_retries_after_error(self) -> None:
        """Test a failed poll is logged and the stream keeps going."""
        client = MockExchangeClient(
            pairs=PAIRS,
            snapshots=[[ticker("ETHBTC", 0.05, 0.0502)]],
            fail_polls=2,
        )
        feed = BinanceTickerFeed(client, fee_rate=0.0, poll_interval_ms=0, clock=FakeClock())

        received = []
        async for rate in feed:
            received.append(rate)
            if len(received) == 2:
                feed.stop()

        assert feed.errors == 2
        assert feed.polls == 1
        assert [(r.asset_from, r.asset_to) for r in received] == [("ETH", "BTC"), ("BTC", "ETH")]

    @pytest.mark.asyncio
    async def test_stream_survives_timeout(self) -> None:
        """Test a timed out poll is retried instead of ending the stream."""
        client = MockExchangeClient(
            pairs=PAIRS,
            snapshots=[[ticker("ETHBTC", 0.05, 0.0502)]],
            fail_polls=1,
            error=asyncio.TimeoutError(),
        )
        feed = BinanceTickerFeed(client, fee_rate=0.0, poll_interval_ms=0, clock=FakeClock())

        stream = feed.__aiter__()
        rate = await stream.__anext__()
        await stream.aclose()

        assert (rate.asset_from, rate.asset_to) == ("ETH", "BTC")
        assert feed.errors == 1
        assert client.book_ticker_calls == 2


class TestPublicExchangeClient:
    """Tests for client error mapping."""

    @pytest.mark.asyncio
    async def test_timeout_becomes_client_error(self) -> None:
        """Test a request timeout surfaces as ExchangeClientError."""
        async with PublicExchangeClient(timeout_seconds=1.0) as client:
            with pytest.raises(ExchangeClientError, match="timed out"):
                async with client._request_context():
                    raise asyncio.TimeoutError()

    @pytest.mark.asyncio
    async def test_malformed_book_ticker(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a payload missing prices surfaces as ExchangeClientError."""
        client = PublicExchangeClient()

        async def fake_get(endpoint, params=None):
            return [{"symbol": "ETHBTC"}]

        monkeypatch.setattr(client, "_get", fake_get)

        with pytest.raises(ExchangeClientError, match="Malformed book ticker"):
            await client.get_book_tickers()
