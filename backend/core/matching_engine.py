"""
Paper-trading matching engine.

Consumes price ticks one at a time, updates the market window and evaluates
every OPEN order in the paper book against the new price. Qualifying orders
are filled in full and reported as SUCCESS events and Fill records.
"""

import time
from collections import deque
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from .event_log import EventLevel, EventLog
from .fill import Fill
from .market_window import MarketWindow
from .order import Order, OrderSide, OrderType
from .order_book import OrderBook
from .tick import Tick
from ..utils.exceptions import (
    InvalidStateException,
    MatchingInvariantError,
    OrderNotFoundException,
)
from ..utils.logger import get_logger


ORDER_TYPE_LABELS = {
    OrderType.MARKET: "Market",
    OrderType.LIMIT: "Limit",
    OrderType.STOP_LIMIT: "Stop Limit",
}


class MatchingEngine:
    """
    Matches paper orders against an incoming price stream.

    Matching rules for a tick at price p:
    - MARKET orders fill at p.
    - LIMIT BUY fills when p <= limit price, LIMIT SELL when p >= limit price;
      the fill price is the limit price.
    - STOP_LIMIT orders with a stop price wait until a tick crosses the stop
      (BUY: p >= stop, SELL: p <= stop), then match as LIMIT starting with
      that same tick. Without a stop price they match as LIMIT.

    Ticks must be fed strictly one at a time. A pass holds the order book
    lock from start to end, so placements and cancellations land either
    before or after a tick, never in the middle of one.
    """

    MAX_FILL_JOURNAL_SIZE = 10000  # Rolling window for fill history

    def __init__(
        self,
        order_book: OrderBook,
        market_window: MarketWindow,
        event_log: EventLog,
        max_fill_journal_size: Optional[int] = None,
        log_level: str = "INFO",
    ):
        """
        Initialize the matching engine.

        Args:
            order_book: Paper order book evaluated on every tick
            market_window: Rolling window updated with every tick
            event_log: Destination of fill and trigger events
            max_fill_journal_size: Fills kept in memory (default 10000)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        self.order_book = order_book
        self.market_window = market_window
        self.event_log = event_log
        self.fill_journal: deque = deque(maxlen=max_fill_journal_size or self.MAX_FILL_JOURNAL_SIZE)
        self.fill_callbacks: List[Callable[[Fill], None]] = []
        self.statistics: Dict[str, Any] = {
            "ticks_processed": 0,
            "orders_filled": 0,
            "stops_triggered": 0,
            "fill_volume": Decimal("0"),
        }
        self.logger = get_logger(log_level=log_level)

        # Performance tracking
        self._tick_latencies: List[float] = []

    @property
    def symbol(self) -> str:
        return self.order_book.symbol

    def process_tick(self, tick: Tick) -> List[Fill]:
        """
        Run one matching pass for a new tick.

        Args:
            tick: The newly observed price

        Returns:
            Fills produced by this tick, in order creation order

        Raises:
            MatchingInvariantError: If the book rejects a transition the
                engine just decided on (the book was mutated mid-pass)
        """
        start_time = time.perf_counter()
        fills: List[Fill] = []

        with self.order_book.lock:
            self.market_window.on_tick(tick)

            # Orders placed after this snapshot wait for the next tick
            for order in self.order_book.list_open():
                fill = self._evaluate_order(order, tick)
                if fill is not None:
                    fills.append(fill)

            self.statistics["ticks_processed"] += 1

        latency_ms = (time.perf_counter() - start_time) * 1000
        self._tick_latencies.append(latency_ms)
        if self.statistics["ticks_processed"] % 1000 == 0:
            self._log_performance_metrics()

        for fill in fills:
            self._notify_fill(fill)

        return fills

    def register_fill_callback(self, callback: Callable[[Fill], None]) -> None:
        """
        Register a callback to be invoked for every fill.

        Args:
            callback: Function to call with the Fill
        """
        self.fill_callbacks.append(callback)
        self.logger.info(f"Registered fill callback. Total callbacks: {len(self.fill_callbacks)}")

    def unregister_fill_callback(self, callback: Callable[[Fill], None]) -> None:
        """
        Unregister a fill callback.

        Args:
            callback: Callback function to remove
        """
        if callback in self.fill_callbacks:
            self.fill_callbacks.remove(callback)
            self.logger.info(f"Unregistered fill callback. Total callbacks: {len(self.fill_callbacks)}")

    def recent_fills(self, limit: int = 50) -> List[Fill]:
        """Most recent fills, oldest first."""
        if limit <= 0:
            return []
        return list(self.fill_journal)[-limit:]

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get current engine statistics.

        Returns:
            Dictionary of statistics
        """
        with self.order_book.lock:
            stats = self.statistics.copy()
            stats["open_orders"] = self.order_book.open_count

        stats["fill_volume"] = str(stats["fill_volume"])
        stats["window_size"] = len(self.market_window)

        latest = self.market_window.latest
        stats["last_price"] = str(latest.price) if latest else None

        if self._tick_latencies:
            stats["avg_latency_ms"] = sum(self._tick_latencies) / len(self._tick_latencies)
            stats["max_latency_ms"] = max(self._tick_latencies)

        return stats

    # Private matching methods

    def _evaluate_order(self, order: Order, tick: Tick) -> Optional[Fill]:
        """
        Evaluate one OPEN order against a tick, filling it if it qualifies.

        Returns:
            The Fill, or None if the order stays OPEN
        """
        price = tick.price

        if order.order_type == OrderType.MARKET:
            return self._fill_order(order, fill_price=price, tick=tick)

        if not order.is_stop_armed:
            if not self._stop_crossed(order, price):
                return None
            order = self._trigger_stop(order, tick)

        if self._limit_satisfied(order, price):
            return self._fill_order(order, fill_price=order.limit_price, tick=tick)

        return None

    @staticmethod
    def _stop_crossed(order: Order, price: Decimal) -> bool:
        if order.side == OrderSide.BUY:
            return price >= order.stop_price
        return price <= order.stop_price

    @staticmethod
    def _limit_satisfied(order: Order, price: Decimal) -> bool:
        if order.side == OrderSide.BUY:
            return price <= order.limit_price
        return price >= order.limit_price

    def _trigger_stop(self, order: Order, tick: Tick) -> Order:
        """Arm a STOP_LIMIT order whose stop price was crossed by ``tick``."""
        try:
            triggered = self.order_book.mark_triggered(order.order_id)
        except (InvalidStateException, OrderNotFoundException) as e:
            self._raise_invariant_violation(order, e)

        self.statistics["stops_triggered"] += 1
        self.logger.log_stop_trigger(order.order_id, order.symbol, order.stop_price, tick.price)
        self.event_log.append(
            EventLevel.INFO,
            f"Stop triggered: {order.side.value} {order.quantity} {order.symbol} "
            f"stop {order.stop_price} crossed at {tick.price}, limit {order.limit_price} active"
        )
        return triggered

    def _fill_order(self, order: Order, fill_price: Decimal, tick: Tick) -> Fill:
        """
        Mark an order FILLED and record the fill.

        Args:
            order: Order that satisfied its fill condition
            fill_price: Execution price to record on the order
            tick: Tick that triggered the fill

        Returns:
            Fill record
        """
        try:
            filled = self.order_book.mark_filled(order.order_id, fill_price)
        except (InvalidStateException, OrderNotFoundException) as e:
            self._raise_invariant_violation(order, e)

        fill = Fill(
            order_id=filled.order_id,
            symbol=filled.symbol,
            side=filled.side,
            order_type=filled.order_type,
            quantity=filled.quantity,
            price=fill_price,
            tick_price=tick.price,
            timestamp=filled.filled_at,
        )

        self.fill_journal.append(fill)
        self.statistics["orders_filled"] += 1
        self.statistics["fill_volume"] += filled.quantity

        self.logger.log_fill(
            fill.fill_id,
            fill.order_id,
            fill.symbol,
            fill.side.value,
            fill.quantity,
            fill.price,
            fill.tick_price,
        )
        self.event_log.append(
            EventLevel.SUCCESS,
            f"{ORDER_TYPE_LABELS[filled.order_type]} Order FILLED: "
            f"{filled.side.value} {filled.quantity} {filled.symbol} @ {fill_price}"
        )

        return fill

    def _raise_invariant_violation(self, order: Order, error: Exception) -> None:
        message = f"Order {order.order_id} changed state during a matching pass: {error}"
        self.logger.log_error(message, error)
        self.event_log.append(EventLevel.ERROR, message)
        raise MatchingInvariantError(message, details={"order_id": str(order.order_id)}) from error

    def _notify_fill(self, fill: Fill) -> None:
        """Notify registered callbacks of a fill."""
        for callback in self.fill_callbacks:
            try:
                callback(fill)
            except Exception as e:
                self.logger.log_error("Error in fill callback", e)

    def _log_performance_metrics(self) -> None:
        """Log performance metrics periodically."""
        if not self._tick_latencies:
            return

        avg_latency = sum(self._tick_latencies) / len(self._tick_latencies)
        max_latency = max(self._tick_latencies)

        self.logger.log_performance_metrics(
            self.statistics["ticks_processed"],
            self.statistics["orders_filled"],
            avg_latency,
            max_latency,
        )

        # Reset latency tracking
        self._tick_latencies = []
