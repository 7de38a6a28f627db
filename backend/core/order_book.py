"""
Paper order book

This module keeps every simulated order placed with the engine and enforces
the one-way OPEN -> FILLED / OPEN -> CANCELLED lifecycle.
"""

import itertools
import threading
from decimal import Decimal
from typing import Optional, Dict, List, Union
from uuid import UUID
from sortedcontainers import SortedDict

from .order import Order, OrderSide, OrderType, OrderStatus
from ..utils.exceptions import (
    InvalidStateException,
    OrderNotFoundException,
    ValidationException,
)
from ..utils.validators import validate_price, validate_quantity, validate_symbol


class OrderBook:
    """
    Manages the simulated orders for one instrument.

    Orders live in an insertion-ordered registry for display. OPEN orders are
    additionally indexed by placement sequence so matching always walks them
    in creation order without scanning terminal orders.

    All reads and writes go through a re-entrant lock. The matching engine
    holds the same lock for a whole tick pass, which serialises placement and
    cancellation against tick processing.

    Attributes:
        symbol: Instrument symbol
        lock: Re-entrant lock guarding the book
    """

    def __init__(self, symbol: str):
        """
        Initialize an order book for a symbol.

        Args:
            symbol: Instrument symbol (e.g., "BTCUSDT")
        """
        self.symbol: str = validate_symbol(symbol)
        self.lock = threading.RLock()

        # Order registry for O(1) lookup by order ID, in placement order
        self._orders: Dict[UUID, Order] = {}

        # OPEN orders keyed by placement sequence
        self._open: SortedDict = SortedDict()
        self._sequence_by_id: Dict[UUID, int] = {}
        self._sequence = itertools.count()

    @staticmethod
    def validate_request(
        side: OrderSide,
        order_type: OrderType,
        quantity: Union[str, Decimal],
        limit_price: Optional[Union[str, Decimal]] = None,
        stop_price: Optional[Union[str, Decimal]] = None,
    ) -> tuple:
        """
        Validate order parameters without touching the book.

        Returns:
            Tuple of (quantity, limit_price, stop_price) as Decimals

        Raises:
            ValidationException: If any parameter is invalid
        """
        if not isinstance(side, OrderSide):
            raise ValidationException(f"Invalid side: {side}", details={"side": str(side)})

        if not isinstance(order_type, OrderType):
            raise ValidationException(
                f"Invalid order type: {order_type}",
                details={"order_type": str(order_type)}
            )

        quantity = validate_quantity(quantity)

        if order_type == OrderType.MARKET:
            if limit_price is not None:
                raise ValidationException(
                    "MARKET orders must not carry a limit price",
                    details={"limit_price": str(limit_price)}
                )
        limit_price = validate_price(
            limit_price,
            field_name="limit_price",
            required=order_type.requires_limit_price,
        )

        if stop_price is not None and order_type != OrderType.STOP_LIMIT:
            raise ValidationException(
                f"stop_price is only valid for STOP_LIMIT orders, not {order_type.value}",
                details={"stop_price": str(stop_price)}
            )
        stop_price = validate_price(stop_price, field_name="stop_price")

        return quantity, limit_price, stop_price

    def place(
        self,
        side: OrderSide,
        order_type: OrderType,
        quantity: Union[str, Decimal],
        limit_price: Optional[Union[str, Decimal]] = None,
        stop_price: Optional[Union[str, Decimal]] = None,
    ) -> Order:
        """
        Create and store a new OPEN order.

        This is the only way orders enter the book.

        Args:
            side: BUY or SELL
            order_type: MARKET, LIMIT or STOP_LIMIT
            quantity: Requested quantity (positive)
            limit_price: Required and positive for LIMIT and STOP_LIMIT
            stop_price: Optional stop trigger for STOP_LIMIT

        Returns:
            The newly placed order

        Raises:
            ValidationException: If parameters are invalid (book is unchanged)
        """
        quantity, limit_price, stop_price = self.validate_request(
            side, order_type, quantity, limit_price, stop_price
        )

        order = Order(
            symbol=self.symbol,
            side=side,
            order_type=order_type,
            quantity=quantity,
            limit_price=limit_price,
            stop_price=stop_price,
        )

        with self.lock:
            sequence = next(self._sequence)
            self._orders[order.order_id] = order
            self._open[sequence] = order.order_id
            self._sequence_by_id[order.order_id] = sequence

        return order

    def get_order(self, order_id: UUID) -> Order:
        """
        Get the current state of an order.

        Raises:
            OrderNotFoundException: If the order id is unknown
        """
        with self.lock:
            order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundException(
                f"Order {order_id} not found",
                details={"order_id": str(order_id)}
            )
        return order

    def list_open(self) -> List[Order]:
        """All OPEN orders, in creation order."""
        with self.lock:
            return [self._orders[order_id] for order_id in self._open.values()]

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        """
        All orders in creation order.

        Args:
            status: Only return orders in this status
        """
        with self.lock:
            orders = list(self._orders.values())
        if status is not None:
            orders = [order for order in orders if order.status == status]
        return orders

    def cancel(self, order_id: UUID) -> Order:
        """
        Cancel an OPEN order.

        Raises:
            OrderNotFoundException: If the order id is unknown
            InvalidStateException: If the order is not OPEN
        """
        with self.lock:
            order = self._require_open(order_id, action="cancel")
            cancelled = order.with_cancellation()
            self._close(cancelled)
            return cancelled

    def mark_filled(self, order_id: UUID, fill_price: Decimal) -> Order:
        """
        Transition an OPEN order to FILLED.

        Only the matching engine calls this.

        Raises:
            OrderNotFoundException: If the order id is unknown
            InvalidStateException: If the order is not OPEN
        """
        with self.lock:
            order = self._require_open(order_id, action="fill")
            filled = order.with_fill(fill_price)
            self._close(filled)
            return filled

    def mark_triggered(self, order_id: UUID) -> Order:
        """
        Record that a STOP_LIMIT order's stop price has been crossed.

        The order stays OPEN and is matched with limit rules from then on.

        Raises:
            OrderNotFoundException: If the order id is unknown
            InvalidStateException: If the order is not OPEN, is not a
                STOP_LIMIT order with a stop price, or was already triggered
        """
        with self.lock:
            order = self._require_open(order_id, action="trigger")
            if order.stop_price is None or order.triggered_at is not None:
                raise InvalidStateException(
                    f"Order {order_id} has no pending stop trigger",
                    details={"order_id": str(order_id)}
                )
            triggered = order.with_trigger()
            self._orders[order_id] = triggered
            return triggered

    @property
    def open_count(self) -> int:
        with self.lock:
            return len(self._open)

    def __len__(self) -> int:
        with self.lock:
            return len(self._orders)

    def __contains__(self, order_id: UUID) -> bool:
        with self.lock:
            return order_id in self._orders

    def _require_open(self, order_id: UUID, action: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundException(
                f"Order {order_id} not found",
                details={"order_id": str(order_id)}
            )
        if order.status != OrderStatus.OPEN:
            raise InvalidStateException(
                f"Cannot {action} order {order_id}: status is {order.status.value}",
                details={"order_id": str(order_id), "status": order.status.value}
            )
        return order

    def _close(self, order: Order) -> None:
        """Store a terminal order and drop it from the OPEN index."""
        self._orders[order.order_id] = order
        sequence = self._sequence_by_id.pop(order.order_id)
        del self._open[sequence]

    def __repr__(self) -> str:
        """String representation of the order book."""
        return f"OrderBook({self.symbol}, orders={len(self)}, open={self.open_count})"
