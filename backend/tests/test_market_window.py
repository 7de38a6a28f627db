"""
Unit tests for ticks and the market window.
"""

import threading
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from backend.core.market_window import MarketWindow
from backend.core.tick import Tick


def make_ticks(*prices):
    return [Tick(price=Decimal(str(price))) for price in prices]


class TestTick:
    """Test cases for Tick validation."""

    def test_tick_coerces_price_to_decimal(self):
        """Numeric and string prices become Decimals."""
        assert Tick(price="100.5").price == Decimal("100.5")
        assert Tick(price=101).price == Decimal("101")

    def test_tick_defaults_to_utc_now(self):
        tick = Tick(price=Decimal("1"))
        assert tick.time.tzinfo == timezone.utc

    @pytest.mark.parametrize("price", ["0", "-5", "NaN", "Infinity"])
    def test_non_positive_or_non_finite_price_rejected(self, price):
        with pytest.raises(ValueError):
            Tick(price=Decimal(price))

    def test_tick_is_immutable(self):
        tick = Tick(price=Decimal("100"))
        with pytest.raises(AttributeError):
            tick.price = Decimal("200")

    def test_to_dict(self):
        time = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert Tick(price=Decimal("99.5"), time=time).to_dict() == {
            "time": "2025-01-01T00:00:00+00:00",
            "price": "99.5",
        }


class TestMarketWindow:
    """Test cases for MarketWindow."""

    def test_empty_window(self):
        window = MarketWindow(maxlen=5)
        assert len(window) == 0
        assert window.snapshot() == ()
        assert window.latest is None
        assert window.prices() == []

    def test_invalid_size_rejected(self):
        with pytest.raises(ValueError):
            MarketWindow(maxlen=0)

    def test_fifo_eviction(self):
        """Window keeps the most recent N ticks in chronological order."""
        window = MarketWindow(maxlen=3)
        for tick in make_ticks(100, 101, 99, 98):
            window.on_tick(tick)

        assert window.prices() == [Decimal("101"), Decimal("99"), Decimal("98")]
        assert len(window) == 3
        assert window.total_ticks == 4
        assert window.latest.price == Decimal("98")

    def test_length_never_exceeds_bound(self):
        window = MarketWindow(maxlen=50)
        for i in range(1, 200):
            window.on_tick(Tick(price=Decimal(i)))
            assert len(window) <= 50
        assert window.prices()[0] == Decimal(150)
        assert window.prices()[-1] == Decimal(199)

    def test_snapshot_is_immutable_copy(self):
        """A snapshot does not change when ticks arrive afterwards."""
        window = MarketWindow(maxlen=2)
        window.on_tick(Tick(price=Decimal("1")))
        snapshot = window.snapshot()

        window.on_tick(Tick(price=Decimal("2")))
        window.on_tick(Tick(price=Decimal("3")))

        assert isinstance(snapshot, tuple)
        assert [tick.price for tick in snapshot] == [Decimal("1")]

    def test_prices_limit(self):
        window = MarketWindow(maxlen=10)
        for tick in make_ticks(*range(1, 11)):
            window.on_tick(tick)

        assert window.prices(limit=3) == [Decimal("8"), Decimal("9"), Decimal("10")]
        assert window.prices(limit=0) == []
        assert len(window.prices(limit=20)) == 10

    def test_concurrent_writers(self):
        """Concurrent appends keep the bound and the tick count exact."""
        window = MarketWindow(maxlen=20)

        def writer():
            for i in range(1, 501):
                window.on_tick(Tick(price=Decimal(i)))

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(window) == 20
        assert window.total_ticks == 2000
