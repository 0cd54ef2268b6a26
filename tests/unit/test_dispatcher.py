"""
Unit tests for the dispatch boundary and pass deadlines.
"""

import pytest

from cyclearb.core.exceptions import PassDeadlineExceeded
from cyclearb.execution.dispatcher import ExecutionDispatcher, LoggingDispatcher
from cyclearb.utils.time import Deadline
from tests.mocks.feed import FakeClock, MockDispatcher


class TestLoggingDispatcher:
    """Tests for the dry-run dispatcher."""

    def test_records_dispatch(self) -> None:
        """Test every call is kept in history."""
        dispatcher = LoggingDispatcher()

        dispatcher.execute(["USDT", "BTC", "ETH", "USDT"], 1.004, "BTC>ETH>USDT")

        assert dispatcher.total == 1
        record = dispatcher.history[0]
        assert record.route == ("USDT", "BTC", "ETH", "USDT")
        assert record.identity_key == "BTC>ETH>USDT"

    def test_history_bounded(self) -> None:
        """Test only the most recent dispatches are remembered."""
        dispatcher = LoggingDispatcher(history_size=2)
        for key in ("K1", "K2", "K3"):
            dispatcher.execute(["A", "B", "C", "A"], 1.01, key)

        assert [r.identity_key for r in dispatcher.history] == ["K2", "K3"]
        assert dispatcher.total == 3

    def test_protocol(self) -> None:
        """Test dispatchers satisfy the runtime protocol."""
        assert isinstance(LoggingDispatcher(), ExecutionDispatcher)
        assert isinstance(MockDispatcher(), ExecutionDispatcher)


class TestDeadline:
    """Tests for the cooperative pass deadline."""

    def test_remaining_and_expiry(self) -> None:
        """Test the budget counts down against the clock."""
        clock = FakeClock()
        deadline = Deadline(100, clock=clock)

        assert deadline.remaining_ms == 100
        clock.advance(100)
        assert deadline.expired is False
        clock.advance(1)
        assert deadline.expired is True
        assert deadline.remaining_ms == 0

    def test_check_raises_with_stage(self) -> None:
        """Test check names the stage that overran."""
        clock = FakeClock()
        deadline = Deadline(10, clock=clock)
        deadline.check("detect")

        clock.advance(11)

        with pytest.raises(PassDeadlineExceeded) as exc_info:
            deadline.check("gate")

        assert exc_info.value.stage == "gate"
        assert exc_info.value.deadline_ms == 10
