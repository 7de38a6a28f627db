"""
Order domain model with enums

This module defines the Order class and related enums representing
simulated orders in the paper-trading book.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any
from uuid import UUID, uuid4


class OrderType(Enum):
    """Order type enumeration."""
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LIMIT = "STOP_LIMIT"

    def __str__(self) -> str:
        return self.value

    @property
    def requires_limit_price(self) -> bool:
        return self in (OrderType.LIMIT, OrderType.STOP_LIMIT)


class OrderSide(Enum):
    """Order side enumeration."""
    BUY = "BUY"
    SELL = "SELL"

    def __str__(self) -> str:
        return self.value


class OrderStatus(Enum):
    """Order status enumeration."""
    OPEN = "OPEN"            # Waiting for a qualifying tick
    FILLED = "FILLED"        # Filled in full (terminal)
    CANCELLED = "CANCELLED"  # Cancelled by the user (terminal)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Order:
    """
    Represents a simulated order in the paper-trading book.

    Orders are immutable: every lifecycle transition returns a new instance
    which the order book stores in place of the old one. Orders fill in full
    or not at all.

    Attributes:
        symbol: Instrument symbol (e.g., "BTCUSDT")
        side: Buy or sell
        order_type: MARKET, LIMIT or STOP_LIMIT
        quantity: Requested quantity
        limit_price: Limit price (required for LIMIT and STOP_LIMIT)
        stop_price: Stop trigger price (STOP_LIMIT only, optional)
        order_id: Unique identifier for the order
        status: Current lifecycle status
        fill_price: Execution price once filled
        created_at: Placement time
        triggered_at: Time the stop price was crossed (STOP_LIMIT only)
        filled_at: Fill time
        cancelled_at: Cancellation time
    """

    symbol: str
    side: OrderSide
    order_type: OrderType
    quantity: Decimal
    limit_price: Optional[Decimal] = None
    stop_price: Optional[Decimal] = None
    order_id: UUID = field(default_factory=uuid4)
    status: OrderStatus = OrderStatus.OPEN
    fill_price: Optional[Decimal] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    triggered_at: Optional[datetime] = None
    filled_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        """Check if the order can still be matched or cancelled."""
        return self.status == OrderStatus.OPEN

    @property
    def is_buy(self) -> bool:
        """Check if this is a buy order."""
        return self.side == OrderSide.BUY

    @property
    def is_sell(self) -> bool:
        """Check if this is a sell order."""
        return self.side == OrderSide.SELL

    @property
    def is_stop_armed(self) -> bool:
        """
        Check if a STOP_LIMIT order is live for limit matching.

        Orders without a stop price are always armed.
        """
        return self.stop_price is None or self.triggered_at is not None

    def with_fill(self, fill_price: Decimal, filled_at: Optional[datetime] = None) -> "Order":
        """Return a FILLED copy of this order."""
        return replace(
            self,
            status=OrderStatus.FILLED,
            fill_price=fill_price,
            filled_at=filled_at or datetime.now(timezone.utc),
        )

    def with_cancellation(self, cancelled_at: Optional[datetime] = None) -> "Order":
        """Return a CANCELLED copy of this order."""
        return replace(
            self,
            status=OrderStatus.CANCELLED,
            cancelled_at=cancelled_at or datetime.now(timezone.utc),
        )

    def with_trigger(self, triggered_at: Optional[datetime] = None) -> "Order":
        """Return a copy of this order with its stop trigger recorded."""
        return replace(self, triggered_at=triggered_at or datetime.now(timezone.utc))

    def __repr__(self) -> str:
        """String representation of the order."""
        price_str = f"{self.limit_price}" if self.limit_price is not None else "MARKET"
        return (
            f"Order(id={str(self.order_id)[:8]}..., "
            f"{self.side.value} {self.quantity} {self.symbol} @ {price_str}, "
            f"type={self.order_type.value}, status={self.status.value})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert order to dictionary for API serialization."""

        def _str(value):
            return str(value) if value is not None else None

        def _iso(value):
            return value.isoformat() if value is not None else None

        return {
            "order_id": str(self.order_id),
            "symbol": self.symbol,
            "side": self.side.value,
            "order_type": self.order_type.value,
            "quantity": str(self.quantity),
            "limit_price": _str(self.limit_price),
            "stop_price": _str(self.stop_price),
            "status": self.status.value,
            "fill_price": _str(self.fill_price),
            "created_at": _iso(self.created_at),
            "triggered_at": _iso(self.triggered_at),
            "filled_at": _iso(self.filled_at),
            "cancelled_at": _iso(self.cancelled_at),
        }
