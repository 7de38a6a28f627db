"""
REST API endpoints for paper order operations.

Provides endpoints for order submission, cancellation, listing and status
queries. Domain exceptions are mapped to HTTP responses by the handlers in
``backend.main``.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends, Query, status

from backend.api.models import (
    OrderRequest,
    OrderResponse,
    OrderListResponse,
    CancelOrderResponse,
    ErrorResponse
)
from backend.core.order import OrderStatus
from backend.services.trading_service import TradingService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


# Dependency injection for TradingService
# This will be overridden in main.py with actual instance
_trading_service: TradingService = None


def get_trading_service() -> TradingService:
    """Dependency to get TradingService instance."""
    if _trading_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Trading service not initialized"
        )
    return _trading_service


def set_trading_service(service: TradingService) -> None:
    """Set the global TradingService instance."""
    global _trading_service
    _trading_service = service


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a new order",
    description="Submit a simulated order. The order reaches the paper book "
                "after the configured acceptance delay and is matched "
                "against subsequent ticks.",
    responses={
        201: {"description": "Order accepted", "model": OrderResponse},
        409: {"description": "Acceptance cancelled during shutdown", "model": ErrorResponse},
        422: {"description": "Validation error", "model": ErrorResponse},
        503: {"description": "Service unavailable"}
    }
)
async def submit_order(
    order_request: OrderRequest,
    trading_service: TradingService = Depends(get_trading_service)
) -> OrderResponse:
    """
    Submit a new order.

    **Request Body:**
    - `side`: BUY or SELL
    - `order_type`: MARKET, LIMIT or STOP_LIMIT
    - `quantity`: Order quantity (positive decimal)
    - `limit_price`: Required for LIMIT and STOP_LIMIT, rejected for MARKET
    - `stop_price`: Optional stop trigger for STOP_LIMIT

    **Example:**
    ```json
    {
      "side": "BUY",
      "order_type": "LIMIT",
      "quantity": "0.5",
      "limit_price": "98000.00"
    }
    ```
    """
    logger.info(
        f"Received order request: {order_request.order_type} {order_request.side} "
        f"{order_request.quantity}"
    )

    order = await trading_service.submit_order(**order_request.to_order_params())

    logger.info(f"Order accepted: {order.order_id}, status={order.status.value}")
    return OrderResponse.from_order(order)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
    description="List orders in creation order, optionally filtered by status"
)
async def list_orders(
    status_filter: Optional[str] = Query(
        default=None,
        alias="status",
        pattern=r'^(open|filled|cancelled|OPEN|FILLED|CANCELLED)$',
        description="Only return orders in this status"
    ),
    trading_service: TradingService = Depends(get_trading_service)
) -> OrderListResponse:
    """
    List paper orders.

    **Example:**
    ```
    GET /api/v1/orders?status=open
    ```
    """
    order_status = OrderStatus[status_filter.upper()] if status_filter else None
    orders = trading_service.list_orders(order_status)

    return OrderListResponse(
        orders=[OrderResponse.from_order(order) for order in orders],
        count=len(orders)
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order status",
    description="Retrieve current status and details of an order",
    responses={
        200: {"description": "Order details retrieved successfully", "model": OrderResponse},
        404: {"description": "Order not found", "model": ErrorResponse}
    }
)
async def get_order_status(
    order_id: UUID,
    trading_service: TradingService = Depends(get_trading_service)
) -> OrderResponse:
    """Get order status and details."""
    logger.debug(f"Getting status for order {order_id}")
    return OrderResponse.from_order(trading_service.get_order(order_id))


@router.delete(
    "/{order_id}",
    response_model=CancelOrderResponse,
    summary="Cancel an order",
    description="Cancel an OPEN order by ID",
    responses={
        200: {"description": "Order cancelled successfully", "model": CancelOrderResponse},
        404: {"description": "Order not found", "model": ErrorResponse},
        409: {"description": "Order is not OPEN", "model": ErrorResponse}
    }
)
async def cancel_order(
    order_id: UUID,
    trading_service: TradingService = Depends(get_trading_service)
) -> CancelOrderResponse:
    """
    Cancel an existing order.

    **Example:**
    ```
    DELETE /api/v1/orders/550e8400-e29b-41d4-a716-446655440000
    ```
    """
    logger.info(f"Cancelling order {order_id}")

    order = trading_service.cancel_order(order_id)

    return CancelOrderResponse(
        order_id=order_id,
        cancelled=True,
        message="Order cancelled successfully",
        order=OrderResponse.from_order(order)
    )
