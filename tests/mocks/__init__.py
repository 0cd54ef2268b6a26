"""Mock implementations for testing."""

from tests.mocks.exchange import MockExchangeClient
from tests.mocks.feed import NOW_MS, FakeClock, MockDispatcher, MockRateSource, make_rate


__all__ = [
    "NOW_MS",
    "FakeClock",
    "MockDispatcher",
    "MockExchangeClient",
    "MockRateSource",
    "make_rate",
]
