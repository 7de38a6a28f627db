"""
Fill domain model

This module defines the Fill class, the audit record written each time the
matching engine fills a paper order against a tick.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from .order import OrderSide, OrderType


@dataclass(frozen=True, slots=True)
class Fill:
    """
    Represents a completed paper fill.

    This class is immutable (frozen=True) to ensure audit integrity.

    Attributes:
        order_id: ID of the filled order
        symbol: Instrument symbol
        side: Side of the filled order
        order_type: Type of the filled order
        quantity: Filled quantity (always the full order quantity)
        price: Execution price recorded on the order
        tick_price: Price of the tick that triggered the fill
        fill_id: Unique identifier for the fill
        timestamp: Fill time
    """

    order_id: UUID
    symbol: str
    side: OrderSide
    order_type: OrderType
    quantity: Decimal
    price: Decimal
    tick_price: Decimal
    fill_id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        """
        Post-initialization validation.

        Raises:
            ValueError: If fill parameters are invalid
        """
        if self.price <= 0:
            raise ValueError(f"Price must be positive, got {self.price}")

        if self.quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {self.quantity}")

    @property
    def notional(self) -> Decimal:
        """Calculate fill value (price * quantity)."""
        return self.price * self.quantity

    def to_dict(self) -> dict:
        """
        Convert fill to dictionary for API serialization.

        Returns:
            Dictionary representation of the fill
        """
        return {
            "fill_id": str(self.fill_id),
            "order_id": str(self.order_id),
            "symbol": self.symbol,
            "side": self.side.value,
            "order_type": self.order_type.value,
            "quantity": str(self.quantity),
            "price": str(self.price),
            "tick_price": str(self.tick_price),
            "notional": str(self.notional),
            "timestamp": self.timestamp.isoformat(),
        }

    def __repr__(self) -> str:
        """String representation of the fill."""
        return (
            f"Fill(id={str(self.fill_id)[:8]}..., "
            f"{self.side.value} {self.quantity} {self.symbol} @ {self.price}, "
            f"tick={self.tick_price})"
        )
