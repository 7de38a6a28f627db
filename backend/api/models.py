"""
Pydantic models for API request/response validation.

This module defines all data models used in the REST API and WebSocket
communications, ensuring type safety and validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Dict, Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, ConfigDict

from backend.core.event_log import Event
from backend.core.order import Order, OrderType, OrderSide
from backend.core.tick import Tick


DECIMAL_PATTERN = r'^\d+(\.\d+)?$'


# ============================================================================
# Request Models
# ============================================================================

class OrderRequest(BaseModel):
    """Request model for submitting a new paper order."""

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "side": "BUY",
            "order_type": "LIMIT",
            "quantity": "0.5",
            "limit_price": "98000.00"
        }
    })

    side: str = Field(
        ...,
        description="Order side: BUY or SELL"
    )
    order_type: str = Field(
        ...,
        description="Order type: MARKET, LIMIT or STOP_LIMIT"
    )
    quantity: str = Field(
        ...,
        description="Order quantity as decimal string",
        pattern=DECIMAL_PATTERN
    )
    limit_price: Optional[str] = Field(
        None,
        description="Limit price (required for LIMIT and STOP_LIMIT, forbidden for MARKET)",
        pattern=DECIMAL_PATTERN
    )
    stop_price: Optional[str] = Field(
        None,
        description="Stop trigger price (STOP_LIMIT only)",
        pattern=DECIMAL_PATTERN
    )

    @field_validator('side')
    @classmethod
    def validate_side(cls, v: str) -> str:
        """Normalise and check the side."""
        v = v.strip().upper()
        if v not in OrderSide.__members__:
            raise ValueError("Side must be BUY or SELL")
        return v

    @field_validator('order_type')
    @classmethod
    def validate_order_type(cls, v: str) -> str:
        """Normalise and check the order type."""
        v = v.strip().upper().replace("-", "_")
        if v not in OrderType.__members__:
            raise ValueError("Order type must be MARKET, LIMIT or STOP_LIMIT")
        return v

    @field_validator('quantity')
    @classmethod
    def validate_quantity(cls, v: str) -> str:
        """Validate quantity is positive."""
        if Decimal(v) <= 0:
            raise ValueError("Quantity must be positive")
        return v

    def to_order_params(self) -> Dict[str, Any]:
        """Convert to parameters for order submission."""
        return {
            "side": OrderSide[self.side],
            "order_type": OrderType[self.order_type],
            "quantity": Decimal(self.quantity),
            "limit_price": Decimal(self.limit_price) if self.limit_price is not None else None,
            "stop_price": Decimal(self.stop_price) if self.stop_price is not None else None,
        }


class CodeGenerationRequest(OrderRequest):
    """Request model for generating an order script."""


class TickRequest(BaseModel):
    """Request model for manually ingesting a price tick."""

    model_config = ConfigDict(json_schema_extra={
        "example": {"price": "98123.45"}
    })

    price: str = Field(..., description="Tick price as decimal string", pattern=DECIMAL_PATTERN)
    time: Optional[datetime] = Field(None, description="Observation time (defaults to now)")

    @field_validator('price')
    @classmethod
    def validate_price(cls, v: str) -> str:
        """Validate price is positive."""
        if Decimal(v) <= 0:
            raise ValueError("Price must be positive")
        return v

    def to_tick(self) -> Tick:
        if self.time is None:
            return Tick(price=Decimal(self.price))
        return Tick(price=Decimal(self.price), time=self.time)


# ============================================================================
# Response Models
# ============================================================================

class OrderResponse(BaseModel):
    """Response model for a paper order."""

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "order_id": "550e8400-e29b-41d4-a716-446655440000",
            "symbol": "BTCUSDT",
            "side": "BUY",
            "order_type": "LIMIT",
            "quantity": "0.5",
            "limit_price": "98000.00",
            "stop_price": None,
            "status": "OPEN",
            "fill_price": None,
            "created_at": "2025-10-25T10:30:45.123456+00:00"
        }
    })

    order_id: UUID = Field(..., description="Unique order identifier")
    symbol: str = Field(..., description="Instrument symbol")
    side: str = Field(..., description="BUY or SELL")
    order_type: str = Field(..., description="MARKET, LIMIT or STOP_LIMIT")
    quantity: str = Field(..., description="Order quantity")
    limit_price: Optional[str] = Field(None, description="Limit price")
    stop_price: Optional[str] = Field(None, description="Stop trigger price")
    status: str = Field(..., description="OPEN, FILLED or CANCELLED")
    fill_price: Optional[str] = Field(None, description="Execution price once filled")
    created_at: datetime = Field(..., description="Placement timestamp")
    triggered_at: Optional[datetime] = Field(None, description="Stop trigger timestamp")
    filled_at: Optional[datetime] = Field(None, description="Fill timestamp")
    cancelled_at: Optional[datetime] = Field(None, description="Cancellation timestamp")

    @classmethod
    def from_order(cls, order: Order) -> 'OrderResponse':
        """Create from Order object."""

        def _str(value):
            return str(value) if value is not None else None

        return cls(
            order_id=order.order_id,
            symbol=order.symbol,
            side=order.side.value,
            order_type=order.order_type.value,
            quantity=str(order.quantity),
            limit_price=_str(order.limit_price),
            stop_price=_str(order.stop_price),
            status=order.status.value,
            fill_price=_str(order.fill_price),
            created_at=order.created_at,
            triggered_at=order.triggered_at,
            filled_at=order.filled_at,
            cancelled_at=order.cancelled_at,
        )


class OrderListResponse(BaseModel):
    """Response model for order listings."""

    orders: List[OrderResponse] = Field(default_factory=list, description="Orders in creation order")
    count: int = Field(..., description="Number of orders returned")


class CancelOrderResponse(BaseModel):
    """Response model for order cancellation."""

    order_id: UUID = Field(..., description="Cancelled order ID")
    cancelled: bool = Field(..., description="Cancellation success status")
    message: str = Field(..., description="Cancellation message")
    order: OrderResponse = Field(..., description="Order after cancellation")


class TickResponse(BaseModel):
    """Response model for a single tick."""

    time: datetime = Field(..., description="Observation time")
    price: str = Field(..., description="Observed price")

    @classmethod
    def from_tick(cls, tick: Tick) -> 'TickResponse':
        return cls(time=tick.time, price=str(tick.price))


class MarketWindowResponse(BaseModel):
    """Response model for the market window snapshot."""

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "symbol": "BTCUSDT",
            "window_size": 50,
            "total_ticks": 120,
            "last_price": "98010.5",
            "ticks": [
                {"time": "2025-10-25T10:30:45.123456+00:00", "price": "98000.1"},
                {"time": "2025-10-25T10:30:45.523456+00:00", "price": "98010.5"}
            ]
        }
    })

    symbol: str = Field(..., description="Instrument symbol")
    window_size: int = Field(..., description="Maximum number of ticks retained")
    total_ticks: int = Field(..., description="Ticks ever received")
    last_price: Optional[str] = Field(None, description="Most recent price")
    ticks: List[TickResponse] = Field(default_factory=list, description="Ticks, oldest first")


class EventResponse(BaseModel):
    """Response model for an event log entry."""

    event_id: UUID = Field(..., description="Unique event identifier")
    timestamp: datetime = Field(..., description="Append time")
    level: str = Field(..., description="INFO, WARN, ERROR or SUCCESS")
    message: str = Field(..., description="Event text")

    @classmethod
    def from_event(cls, event: Event) -> 'EventResponse':
        return cls(
            event_id=event.event_id,
            timestamp=event.timestamp,
            level=event.level.value,
            message=event.message,
        )


class EventListResponse(BaseModel):
    """Response model for event log listings."""

    events: List[EventResponse] = Field(default_factory=list, description="Events, oldest first")
    total: int = Field(..., description="Total number of events in the log")


class AnalysisResponse(BaseModel):
    """Response model for market trend commentary."""

    symbol: str = Field(..., description="Instrument symbol")
    analysis: str = Field(..., description="Commentary or explanatory message")
    sample_size: int = Field(..., description="Number of prices the commentary is based on")
    timestamp: datetime = Field(..., description="Response timestamp")


class CodeGenerationResponse(BaseModel):
    """Response model for generated order scripts."""

    symbol: str = Field(..., description="Instrument symbol")
    code: str = Field(..., description="Generated Python source")
    timestamp: datetime = Field(..., description="Response timestamp")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Check timestamp")
    version: str = Field(..., description="API version")
    matching_engine: Dict[str, Any] = Field(..., description="Matching engine statistics")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    timestamp: datetime = Field(..., description="Error timestamp")
