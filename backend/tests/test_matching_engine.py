"""
Unit tests for the paper-trading matching engine.

Covers fill rules per order type, creation-order evaluation, stop triggers,
fill records and events, callbacks and invariant breaches.
"""

import threading
import time

import pytest
from decimal import Decimal
from unittest.mock import patch

from backend.core.event_log import EventLevel, EventLog
from backend.core.market_window import MarketWindow
from backend.core.matching_engine import MatchingEngine
from backend.core.order import OrderSide, OrderStatus, OrderType
from backend.core.order_book import OrderBook
from backend.core.tick import Tick
from backend.utils.exceptions import InvalidStateException, MatchingInvariantError


@pytest.fixture
def engine():
    """Create a fresh matching engine with a 3-tick window."""
    return MatchingEngine(OrderBook("BTCUSDT"), MarketWindow(maxlen=3), EventLog())


def tick(price) -> Tick:
    return Tick(price=Decimal(str(price)))


def success_messages(engine):
    return [e.message for e in engine.event_log.all() if e.level == EventLevel.SUCCESS]


class TestMarketOrders:
    """Test MARKET order matching."""

    def test_market_fills_at_next_tick_price(self, engine):
        order = engine.order_book.place(OrderSide.BUY, OrderType.MARKET, Decimal("0.5"))

        fills = engine.process_tick(tick(100))

        assert len(fills) == 1
        assert fills[0].price == Decimal("100")
        assert fills[0].tick_price == Decimal("100")
        filled = engine.order_book.get_order(order.order_id)
        assert filled.status == OrderStatus.FILLED
        assert filled.fill_price == Decimal("100")

    def test_market_sell_fills_regardless_of_price(self, engine):
        engine.order_book.place(OrderSide.SELL, OrderType.MARKET, Decimal("2"))
        fills = engine.process_tick(tick("0.01"))
        assert fills[0].price == Decimal("0.01")

    def test_fill_event_message(self, engine):
        engine.order_book.place(OrderSide.BUY, OrderType.MARKET, Decimal("0.5"))
        engine.process_tick(tick(98))

        assert success_messages(engine) == ["Market Order FILLED: BUY 0.5 BTCUSDT @ 98"]


class TestLimitOrders:
    """Test LIMIT order matching."""

    def test_limit_buy_fills_at_or_below_limit(self, engine):
        order = engine.order_book.place(OrderSide.BUY, OrderType.LIMIT, Decimal("1"), Decimal("99"))

        assert engine.process_tick(tick(100)) == []
        assert engine.order_book.get_order(order.order_id).is_open

        fills = engine.process_tick(tick("98.5"))
        assert len(fills) == 1
        # Fill price is the limit price, not the tick price
        assert fills[0].price == Decimal("99")
        assert fills[0].tick_price == Decimal("98.5")
        assert engine.order_book.get_order(order.order_id).fill_price == Decimal("99")

    def test_limit_buy_fills_at_exact_limit(self, engine):
        engine.order_book.place(OrderSide.BUY, OrderType.LIMIT, Decimal("1"), Decimal("99"))
        assert len(engine.process_tick(tick(99))) == 1

    def test_limit_sell_fills_at_or_above_limit(self, engine):
        order = engine.order_book.place(OrderSide.SELL, OrderType.LIMIT, Decimal("1"), Decimal("101"))

        assert engine.process_tick(tick(100)) == []
        fills = engine.process_tick(tick(102))

        assert fills[0].price == Decimal("101")
        assert engine.order_book.get_order(order.order_id).status == OrderStatus.FILLED
        assert success_messages(engine) == ["Limit Order FILLED: SELL 1 BTCUSDT @ 101"]

    def test_unsatisfied_limit_stays_open(self, engine):
        order = engine.order_book.place(OrderSide.BUY, OrderType.LIMIT, Decimal("1"), Decimal("50"))
        for price in (100, 90, 80, 70, 60):
            engine.process_tick(tick(price))

        assert engine.order_book.get_order(order.order_id).is_open
        assert engine.statistics["orders_filled"] == 0

    def test_filled_order_never_refills(self, engine):
        engine.order_book.place(OrderSide.BUY, OrderType.LIMIT, Decimal("1"), Decimal("99"))

        assert len(engine.process_tick(tick(98))) == 1
        assert engine.process_tick(tick(97)) == []
        assert len(engine.fill_journal) == 1

    def test_cancelled_order_not_matched(self, engine):
        order = engine.order_book.place(OrderSide.BUY, OrderType.MARKET, Decimal("1"))
        engine.order_book.cancel(order.order_id)

        assert engine.process_tick(tick(100)) == []
        assert engine.order_book.get_order(order.order_id).status == OrderStatus.CANCELLED


class TestStopLimitOrders:
    """Test STOP_LIMIT order matching."""

    def test_stop_limit_without_stop_matches_as_limit(self, engine):
        engine.order_book.place(OrderSide.BUY, OrderType.STOP_LIMIT, Decimal("1"), Decimal("99"))

        fills = engine.process_tick(tick(98))
        assert fills[0].price == Decimal("99")
        assert success_messages(engine) == ["Stop Limit Order FILLED: BUY 1 BTCUSDT @ 99"]

    def test_buy_stop_dormant_until_crossed(self, engine):
        """A BUY stop arms when price rises to the stop, then fills as a limit."""
        order = engine.order_book.place(
            OrderSide.BUY, OrderType.STOP_LIMIT, Decimal("1"),
            limit_price=Decimal("106"), stop_price=Decimal("105")
        )

        # Below the limit but the stop has not been reached: no fill
        assert engine.process_tick(tick(100)) == []
        assert engine.order_book.get_order(order.order_id).triggered_at is None

        # Crossing tick arms the order and is evaluated with limit rules
        fills = engine.process_tick(tick(105))
        assert len(fills) == 1
        assert fills[0].price == Decimal("106")
        assert engine.statistics["stops_triggered"] == 1

        info = [e.message for e in engine.event_log.all() if e.level == EventLevel.INFO]
        assert any(message.startswith("Stop triggered") for message in info)

    def test_sell_stop_triggers_without_immediate_fill(self, engine):
        order = engine.order_book.place(
            OrderSide.SELL, OrderType.STOP_LIMIT, Decimal("1"),
            limit_price=Decimal("97"), stop_price=Decimal("95")
        )

        # Crosses the stop, but 94 < 97 so the limit is not satisfied
        assert engine.process_tick(tick(94)) == []
        armed = engine.order_book.get_order(order.order_id)
        assert armed.is_open
        assert armed.triggered_at is not None

        fills = engine.process_tick(tick(98))
        assert fills[0].price == Decimal("97")


class TestEvaluationOrder:
    """Test creation-order evaluation and the reference scenario."""

    def test_reference_scenario(self, engine):
        """Window N=3, ticks [100, 101, 99, 98], LIMIT BUY @ 99 and a late MARKET SELL."""
        limit = engine.order_book.place(OrderSide.BUY, OrderType.LIMIT, Decimal("1"), Decimal("99"))

        assert engine.process_tick(tick(100)) == []
        assert engine.process_tick(tick(101)) == []

        fills = engine.process_tick(tick(99))
        assert [f.order_id for f in fills] == [limit.order_id]
        assert fills[0].price == Decimal("99")

        market = engine.order_book.place(OrderSide.SELL, OrderType.MARKET, Decimal("1"))
        fills = engine.process_tick(tick(98))
        assert [f.order_id for f in fills] == [market.order_id]
        assert engine.order_book.get_order(market.order_id).fill_price == Decimal("98")

        assert engine.market_window.prices() == [Decimal("101"), Decimal("99"), Decimal("98")]

    def test_fills_in_creation_order(self, engine):
        book = engine.order_book
        first = book.place(OrderSide.SELL, OrderType.LIMIT, Decimal("1"), Decimal("90"))
        second = book.place(OrderSide.BUY, OrderType.MARKET, Decimal("2"))
        third = book.place(OrderSide.BUY, OrderType.LIMIT, Decimal("3"), Decimal("110"))

        fills = engine.process_tick(tick(100))

        assert [f.order_id for f in fills] == [first.order_id, second.order_id, third.order_id]
        assert len(engine.event_log.all()) == 3

    def test_window_updated_before_matching(self, engine):
        engine.process_tick(tick(100))
        assert engine.market_window.latest.price == Decimal("100")


class TestFillRecordsAndCallbacks:
    """Test fill journal, statistics and callbacks."""

    def test_fill_record_fields(self, engine):
        order = engine.order_book.place(OrderSide.BUY, OrderType.MARKET, Decimal("0.25"))
        fill = engine.process_tick(tick(200))[0]

        assert fill.order_id == order.order_id
        assert fill.symbol == "BTCUSDT"
        assert fill.side == OrderSide.BUY
        assert fill.order_type == OrderType.MARKET
        assert fill.quantity == Decimal("0.25")
        assert fill.notional == Decimal("50")
        assert fill.to_dict()["price"] == "200"
        assert engine.recent_fills() == [fill]

    def test_statistics(self, engine):
        engine.order_book.place(OrderSide.BUY, OrderType.MARKET, Decimal("0.5"))
        engine.order_book.place(OrderSide.BUY, OrderType.LIMIT, Decimal("1"), Decimal("1"))
        engine.process_tick(tick(100))

        stats = engine.get_statistics()
        assert stats["ticks_processed"] == 1
        assert stats["orders_filled"] == 1
        assert stats["fill_volume"] == "0.5"
        assert stats["open_orders"] == 1
        assert stats["last_price"] == "100"
        assert "avg_latency_ms" in stats

    def test_fill_callback(self, engine):
        received = []
        engine.register_fill_callback(received.append)
        engine.order_book.place(OrderSide.SELL, OrderType.MARKET, Decimal("1"))

        engine.process_tick(tick(100))
        assert len(received) == 1

        engine.unregister_fill_callback(received.append)
        engine.order_book.place(OrderSide.SELL, OrderType.MARKET, Decimal("1"))
        engine.process_tick(tick(100))
        assert len(received) == 1

    def test_failing_callback_does_not_stop_matching(self, engine):
        def broken(fill):
            raise RuntimeError("boom")

        engine.register_fill_callback(broken)
        engine.order_book.place(OrderSide.SELL, OrderType.MARKET, Decimal("1"))
        engine.order_book.place(OrderSide.SELL, OrderType.MARKET, Decimal("1"))

        assert len(engine.process_tick(tick(100))) == 2

    def test_journal_is_bounded(self):
        engine = MatchingEngine(
            OrderBook("BTCUSDT"), MarketWindow(maxlen=3), EventLog(), max_fill_journal_size=2
        )
        for _ in range(3):
            engine.order_book.place(OrderSide.BUY, OrderType.MARKET, Decimal("1"))
        engine.process_tick(tick(100))

        assert len(engine.fill_journal) == 2
        assert engine.statistics["orders_filled"] == 3


class TestInvariantBreach:
    """Test detection of order book mutation during a tick pass."""

    def test_state_error_raises_invariant_error(self, engine):
        engine.order_book.place(OrderSide.BUY, OrderType.MARKET, Decimal("1"))

        with patch.object(
            engine.order_book, "mark_filled", side_effect=InvalidStateException("not open")
        ):
            with pytest.raises(MatchingInvariantError):
                engine.process_tick(tick(100))

        errors = [e for e in engine.event_log.all() if e.level == EventLevel.ERROR]
        assert len(errors) == 1


class TestSingleWriter:
    """Test that order commands serialise with tick passes."""

    def test_place_during_pass_waits_for_next_tick(self, engine):
        """An order placed from another thread mid-pass is not matched on that tick."""
        engine.order_book.place(OrderSide.BUY, OrderType.MARKET, Decimal("1"))

        pass_in_progress = threading.Event()

        def slow_listener(event):
            if event.level == EventLevel.SUCCESS:
                pass_in_progress.set()
                time.sleep(0.1)
                late["listener_done"] = time.perf_counter()

        late = {}
        engine.event_log.add_listener(slow_listener)

        def place_late_order():
            pass_in_progress.wait(timeout=2.0)
            late["order"] = engine.order_book.place(OrderSide.SELL, OrderType.MARKET, Decimal("2"))
            late["placed_at"] = time.perf_counter()

        placer = threading.Thread(target=place_late_order)
        placer.start()

        fills = engine.process_tick(tick(100))
        placer.join(timeout=2.0)

        assert len(fills) == 1
        assert late["placed_at"] >= late["listener_done"]
        late_order = engine.order_book.get_order(late["order"].order_id)
        assert late_order.status == OrderStatus.OPEN

        # The next tick picks it up
        engine.event_log.remove_listener(slow_listener)
        fills = engine.process_tick(tick(101))
        assert [f.order_id for f in fills] == [late_order.order_id]
