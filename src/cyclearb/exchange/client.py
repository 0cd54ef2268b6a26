"""
Async Binance public REST client.

Only the unauthenticated market-data endpoints the ticker feed needs:
- Connection pooling and keep-alive
- Fast JSON parsing with orjson
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiohttp
import orjson
from pydantic import ValidationError

from cyclearb.config.constants import (
    BINANCE_REST_TESTNET_URL,
    BINANCE_REST_URL,
    ENDPOINT_BOOK_TICKER,
    ENDPOINT_EXCHANGE_INFO,
)
from cyclearb.exchange.models import BookTicker, ExchangeInfo


class ExchangeClientError(Exception):
    """Base exception for exchange client errors."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class ExchangeAPIError(ExchangeClientError):
    """Exception for exchange API error responses."""


class PublicExchangeClient:
    """
    Async client for Binance public market data.

    Features:
    - Single session with connection pooling
    - Keep-alive for reduced latency
    - orjson for fast JSON parsing
    """

    def __init__(
        self,
        use_testnet: bool = False,
        base_url: str | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        """
        Initialize the client.

        Args:
            use_testnet: Whether to use testnet endpoints.
            base_url: Override for the REST base URL.
            timeout_seconds: Total timeout per request.
        """
        default_url = BINANCE_REST_TESTNET_URL if use_testnet else BINANCE_REST_URL
        self._base_url = base_url or default_url
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=10,
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=self._timeout,
                json_serialize=lambda x: orjson.dumps(x).decode(),
            )
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    @asynccontextmanager
    async def _request_context(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Context manager for making requests."""
        session = await self._get_session()
        try:
            yield session
        except aiohttp.ClientError as e:
            raise ExchangeClientError(f"Network error: {e}") from e
        except asyncio.TimeoutError as e:
            raise ExchangeClientError(f"Request timed out after {self._timeout.total}s") from e

    async def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """
        Make a GET request.

        Raises:
            ExchangeAPIError: On API error response.
            ExchangeClientError: On network errors, timeouts or parse errors.
        """
        url = f"{self._base_url}{endpoint}"
        async with self._request_context() as session:
            async with session.get(url, params=params or {}) as response:
                return await self._handle_response(response)

    async def _handle_response(self, response: aiohttp.ClientResponse) -> Any:
        """Parse and validate response."""
        text = await response.text()

        try:
            data = orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise ExchangeClientError(f"Invalid JSON response: {e}") from e

        if response.status >= 400:
            code = data.get("code", response.status) if isinstance(data, dict) else response.status
            msg = data.get("msg", text) if isinstance(data, dict) else text
            raise ExchangeAPIError(f"API error {code}: {msg}", code=code)

        return data

    async def get_exchange_info(self) -> ExchangeInfo:
        """
        Get symbol information.

        Note: This is a heavy request (weight=10), cache the result.
        """
        data = await self._get(ENDPOINT_EXCHANGE_INFO)
        try:
            return ExchangeInfo.model_validate(data)
        except ValidationError as e:
            raise ExchangeClientError(f"Malformed exchange info: {e}") from e

    async def get_book_tickers(self) -> list[BookTicker]:
        """Get best bid/ask prices for all symbols."""
        data = await self._get(ENDPOINT_BOOK_TICKER)
        if isinstance(data, dict):
            data = [data]
        try:
            return [BookTicker.model_validate(item) for item in data]
        except ValidationError as e:
            raise ExchangeClientError(f"Malformed book ticker: {e}") from e

    async def __aenter__(self) -> "PublicExchangeClient":
        """Async context manager entry."""
        await self._get_session()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()
