"""
REST API endpoints for market data and the event log.

Provides the market window snapshot, manual tick ingress for offline
simulation, engine statistics and the terminal event history.
"""

import logging

from fastapi import APIRouter, HTTPException, Depends, Query, status

from backend.api.models import (
    EventListResponse,
    EventResponse,
    MarketWindowResponse,
    TickRequest,
    TickResponse,
)
from backend.services.trading_service import TradingService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["market-data"])


# Dependency injection for TradingService
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


@router.get(
    "/market/window",
    response_model=MarketWindowResponse,
    summary="Get market window",
    description="Retrieve the most recent ticks, oldest first"
)
async def get_market_window(
    trading_service: TradingService = Depends(get_trading_service)
) -> MarketWindowResponse:
    """
    Get the current market window.

    **Example:**
    ```
    GET /api/v1/market/window
    ```
    """
    window = trading_service.market_window
    ticks = window.snapshot()

    return MarketWindowResponse(
        symbol=trading_service.symbol,
        window_size=window.maxlen,
        total_ticks=window.total_ticks,
        last_price=str(ticks[-1].price) if ticks else None,
        ticks=[TickResponse.from_tick(tick) for tick in ticks]
    )


@router.post(
    "/market/ticks",
    response_model=TickResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Ingest a tick",
    description="Queue a price tick for matching, as if it came from the feed"
)
async def ingest_tick(
    tick_request: TickRequest,
    trading_service: TradingService = Depends(get_trading_service)
) -> TickResponse:
    """
    Queue a manual tick.

    **Example:**
    ```json
    {"price": "98123.45"}
    ```
    """
    tick = tick_request.to_tick()
    trading_service.ingest_tick(tick)
    logger.debug(f"Manual tick queued at {tick.price}")
    return TickResponse.from_tick(tick)


@router.get(
    "/market/statistics",
    summary="Get engine statistics",
    description="Matching engine and trading service statistics"
)
async def get_statistics(
    trading_service: TradingService = Depends(get_trading_service)
) -> dict:
    """Get engine statistics."""
    return trading_service.get_statistics()


@router.get(
    "/events",
    response_model=EventListResponse,
    summary="Get event log",
    description="Retrieve the most recent events, oldest first"
)
async def get_events(
    limit: int = Query(default=100, ge=1, le=1000, description="Number of events to return"),
    trading_service: TradingService = Depends(get_trading_service)
) -> EventListResponse:
    """
    Get recent events.

    **Example:**
    ```
    GET /api/v1/events?limit=50
    ```
    """
    event_log = trading_service.event_log
    return EventListResponse(
        events=[EventResponse.from_event(event) for event in event_log.tail(limit)],
        total=len(event_log)
    )
