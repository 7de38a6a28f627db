"""
Trading Service - owns the paper-trading core and its asyncio tasks.

This service wires the feed adapter, market window, order book, matching
engine and event log together. It runs the single tick-processing task and
the delayed order-acceptance tasks, and is the entry point the API layer uses
for every order operation.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set, Union
from uuid import UUID

from backend.core.event_log import EventLevel, EventLog
from backend.core.market_window import MarketWindow
from backend.core.matching_engine import MatchingEngine
from backend.core.order import Order, OrderSide, OrderStatus, OrderType
from backend.core.order_book import OrderBook
from backend.core.tick import Tick
from backend.services.feed_adapter import BaseFeedAdapter
from backend.utils.exceptions import InvalidStateException, MatchingInvariantError
from backend.utils.logger import get_logger


class TradingService:
    """
    Service class for simulated order handling and tick processing.

    Ticks are queued and consumed by one background task, so the matching
    engine never sees two ticks at once. Order commands run synchronously
    against the order book and serialise with tick passes through the book's
    lock.
    """

    def __init__(
        self,
        symbol: str = "BTCUSDT",
        window_size: int = 50,
        order_acceptance_delay_ms: int = 300,
        max_fill_journal_size: int = 10000,
        feed_adapter: Optional[BaseFeedAdapter] = None,
        log_level: str = "INFO",
    ):
        """
        Initialize trading service.

        Args:
            symbol: Instrument traded by the simulator
            window_size: Ticks kept in the market window
            order_acceptance_delay_ms: Simulated latency before an order
                reaches the book
            max_fill_journal_size: Fills kept by the matching engine
            feed_adapter: Tick source connected on start (None for manual
                tick ingress only)
            log_level: Logging level for the trading logger
        """
        self.order_book = OrderBook(symbol)
        self.symbol = self.order_book.symbol
        self.market_window = MarketWindow(window_size)
        self.event_log = EventLog()
        self.matching_engine = MatchingEngine(
            self.order_book,
            self.market_window,
            self.event_log,
            max_fill_journal_size=max_fill_journal_size,
            log_level=log_level,
        )
        self.feed_adapter = feed_adapter
        self.order_acceptance_delay = order_acceptance_delay_ms / 1000

        self.logger = logging.getLogger(f"{__name__}.TradingService")
        self.trading_logger = get_logger(log_level=log_level)

        self._tick_queue: asyncio.Queue = asyncio.Queue()
        self._tick_task: Optional[asyncio.Task] = None
        self._pending_acceptances: Set[asyncio.Task] = set()
        self._halted = False

        self.logger.info(f"TradingService initialized for {self.symbol}")

    @property
    def is_running(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    @property
    def is_halted(self) -> bool:
        """True once a matching invariant breach has stopped tick processing."""
        return self._halted

    @property
    def pending_acceptances(self) -> int:
        return len(self._pending_acceptances)

    async def start(self) -> None:
        """Start tick processing and connect the feed adapter, if any."""
        if self.is_running:
            return

        self.event_log.append(EventLevel.INFO, "Initializing paper trading engine...")
        self._tick_task = asyncio.create_task(self._process_ticks())

        if self.feed_adapter is not None:
            self.event_log.append(
                EventLevel.INFO,
                f"Connecting to WebSocket stream for {self.symbol}..."
            )
            await self.feed_adapter.connect(self.ingest_tick, self._on_feed_error)

        self.logger.info("Tick processing started")

    async def stop(self) -> None:
        """Disconnect the feed, cancel pending acceptances and stop tick processing."""
        if self.feed_adapter is not None:
            await self.feed_adapter.disconnect()

        await self.cancel_pending_acceptances()

        if self._tick_task and not self._tick_task.done():
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
        self._tick_task = None

        self.logger.info("Tick processing stopped")

    def ingest_tick(self, tick: Tick) -> None:
        """
        Queue a tick for matching.

        Args:
            tick: Tick from the feed adapter or manual ingress
        """
        if self._halted:
            self.logger.warning(f"Matching halted, dropping tick {tick.price}")
            return
        self._tick_queue.put_nowait(tick)

    async def drain(self) -> None:
        """Wait until every queued tick has been matched."""
        await self._tick_queue.join()

    async def submit_order(
        self,
        side: OrderSide,
        order_type: OrderType,
        quantity: Union[str, Decimal],
        limit_price: Optional[Union[str, Decimal]] = None,
        stop_price: Optional[Union[str, Decimal]] = None,
    ) -> Order:
        """
        Submit a new order, placing it after the simulated acceptance delay.

        Parameters are validated before the delay, so a malformed order fails
        immediately and never reaches the book.

        Args:
            side: BUY or SELL
            order_type: MARKET, LIMIT or STOP_LIMIT
            quantity: Order quantity
            limit_price: Limit price (LIMIT and STOP_LIMIT)
            stop_price: Optional stop trigger (STOP_LIMIT)

        Returns:
            The placed order, status OPEN

        Raises:
            ValidationException: If order parameters are invalid
            InvalidStateException: If the acceptance was cancelled before
                the order reached the book
        """
        quantity, limit_price, stop_price = self.order_book.validate_request(
            side, order_type, quantity, limit_price, stop_price
        )

        self.event_log.append(
            EventLevel.INFO,
            f"Sending order: {side.value} {quantity} {self.symbol} ({order_type.value})"
        )

        task = asyncio.create_task(
            self._accept_order(side, order_type, quantity, limit_price, stop_price)
        )
        self._pending_acceptances.add(task)
        task.add_done_callback(self._pending_acceptances.discard)

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise InvalidStateException(
                    "Order acceptance was cancelled before the order reached the book",
                    details={"side": side.value, "order_type": order_type.value}
                )
            raise

    async def cancel_pending_acceptances(self) -> int:
        """
        Cancel every order still waiting out its acceptance delay.

        Returns:
            Number of acceptances cancelled
        """
        pending = [task for task in self._pending_acceptances if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            self.logger.info(f"Cancelled {len(pending)} pending order acceptances")
        return len(pending)

    def cancel_order(self, order_id: UUID) -> Order:
        """
        Cancel an OPEN order.

        Args:
            order_id: ID of the order to cancel

        Returns:
            The cancelled order

        Raises:
            OrderNotFoundException: If the order doesn't exist
            InvalidStateException: If the order is not OPEN
        """
        order = self.order_book.cancel(order_id)

        self.trading_logger.log_order_cancellation(order.order_id, order.symbol, "User requested")
        self.event_log.append(
            EventLevel.INFO,
            f"Order cancelled: {order.side.value} {order.quantity} {order.symbol} "
            f"({order.order_type.value}). ID: {order.order_id}"
        )
        return order

    def get_order(self, order_id: UUID) -> Order:
        """
        Get the current state of an order.

        Raises:
            OrderNotFoundException: If the order doesn't exist
        """
        return self.order_book.get_order(order_id)

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        """All orders in creation order, optionally filtered by status."""
        return self.order_book.list_orders(status)

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get engine and service statistics.

        Returns:
            Dictionary of statistics
        """
        stats = self.matching_engine.get_statistics()
        stats.update({
            "symbol": self.symbol,
            "total_orders": len(self.order_book),
            "pending_acceptances": self.pending_acceptances,
            "queued_ticks": self._tick_queue.qsize(),
            "events": len(self.event_log),
            "feed_connected": bool(self.feed_adapter and self.feed_adapter.is_connected),
            "matching_halted": self._halted,
        })
        return stats

    async def _accept_order(
        self,
        side: OrderSide,
        order_type: OrderType,
        quantity: Decimal,
        limit_price: Optional[Decimal],
        stop_price: Optional[Decimal],
    ) -> Order:
        await asyncio.sleep(self.order_acceptance_delay)

        order = self.order_book.place(side, order_type, quantity, limit_price, stop_price)

        self.trading_logger.log_order_placement(
            order.order_id,
            order.symbol,
            order.order_type.value,
            order.side.value,
            order.quantity,
            order.limit_price,
        )
        self.event_log.append(
            EventLevel.INFO,
            f"Order accepted by matching engine. ID: {order.order_id}"
        )

        if order.stop_price is not None:
            self.event_log.append(
                EventLevel.INFO,
                f"Stop limit order active. Waiting for stop price {order.stop_price}, "
                f"then limit {order.limit_price}..."
            )
        elif order.limit_price is not None:
            self.event_log.append(
                EventLevel.INFO,
                f"Limit order active. Waiting for trigger price {order.limit_price}..."
            )

        return order

    async def _process_ticks(self) -> None:
        """Consume queued ticks one at a time, in arrival order."""
        while True:
            tick = await self._tick_queue.get()
            try:
                self.matching_engine.process_tick(tick)
            except MatchingInvariantError as e:
                self._halted = True
                self.logger.critical(f"Matching halted: {e.message}")
                self._tick_queue.task_done()
                self._discard_queued_ticks()
                return
            except Exception as e:
                self.logger.error(f"Error processing tick {tick.price}: {e}", exc_info=True)
            self._tick_queue.task_done()

    def _discard_queued_ticks(self) -> None:
        while not self._tick_queue.empty():
            self._tick_queue.get_nowait()
            self._tick_queue.task_done()

    def _on_feed_error(self, error: Exception) -> None:
        self.event_log.append(EventLevel.ERROR, f"Price feed unavailable: {error}")
