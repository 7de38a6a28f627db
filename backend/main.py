"""
FastAPI Application - Main Entry Point

REST and WebSocket API for the paper-trading simulator.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from backend.config import settings
from backend.services.advisory_service import AdvisoryService, GeminiClient
from backend.services.event_stream_service import EventStreamService
from backend.services.feed_adapter import BinanceFeedAdapter
from backend.services.market_data_service import MarketDataService
from backend.services.trading_service import TradingService
from backend.utils.exceptions import (
    BasePaperTradingException,
    InvalidStateException,
    MatchingInvariantError,
    OrderNotFoundException,
    UpstreamUnavailableException,
    ValidationException
)
from backend.utils.logger import get_logger

# Import routers
from backend.api.routes import advisory, market_data, orders
from backend.api.websocket import events_ws, market_data_ws
from backend.api.models import HealthResponse, ErrorResponse

API_VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Global instances
trading_service: Optional[TradingService] = None
market_data_service: Optional[MarketDataService] = None
event_stream_service: Optional[EventStreamService] = None
advisory_service: Optional[AdvisoryService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Initializes global services on startup and cleans up on shutdown.
    """
    logger.info(f"Starting Paper Trading Simulator API for {settings.symbol}")

    global trading_service, market_data_service, event_stream_service, advisory_service

    get_logger(
        log_level=settings.log_level,
        log_dir=settings.log_dir,
        use_json=settings.log_json,
    )

    feed_adapter = None
    if settings.feed_enabled:
        feed_adapter = BinanceFeedAdapter(
            settings.symbol,
            base_url=settings.feed_base_url,
            max_reconnect_attempts=settings.feed_max_reconnect_attempts,
            reconnect_base_delay=settings.feed_reconnect_base_delay,
        )
    else:
        logger.info("Live feed disabled, ticks must be posted to /api/v1/market/ticks")

    logger.info("Initializing services...")
    trading_service = TradingService(
        symbol=settings.symbol,
        window_size=settings.window_size,
        order_acceptance_delay_ms=settings.order_acceptance_delay_ms,
        max_fill_journal_size=settings.max_fill_journal_size,
        feed_adapter=feed_adapter,
        log_level=settings.log_level,
    )
    market_data_service = MarketDataService(
        trading_service.market_window,
        trading_service.symbol,
        poll_interval=settings.stream_poll_interval,
    )
    event_stream_service = EventStreamService(
        trading_service.event_log,
        history_size=settings.event_history_size,
    )
    advisory_service = AdvisoryService(
        GeminiClient(
            settings.gemini_api_key,
            base_url=settings.advisory_base_url,
            model=settings.advisory_model,
            timeout=settings.advisory_timeout,
        ),
        trading_service.market_window,
        trading_service.event_log,
        symbol=trading_service.symbol,
        min_ticks=settings.analysis_min_ticks,
        sample_size=settings.analysis_sample_size,
        timeout=settings.advisory_timeout,
    )

    # Set service instances in routers
    orders.set_trading_service(trading_service)
    market_data.set_trading_service(trading_service)
    advisory.set_advisory_service(advisory_service)
    market_data_ws.set_market_data_service(market_data_service)
    events_ws.set_event_stream_service(event_stream_service)

    # Start background tasks
    logger.info("Starting background tasks...")
    await trading_service.start()
    await market_data_service.start_broadcasting()
    await event_stream_service.start_broadcasting()

    logger.info("API startup complete!")
    logger.info(f"Swagger UI available at: http://{settings.backend_host}:{settings.backend_port}/docs")

    yield

    logger.info("Shutting down API...")

    logger.info("Stopping background tasks...")
    await market_data_service.stop_broadcasting()
    await trading_service.stop()
    await event_stream_service.stop_broadcasting()
    event_stream_service.close()

    logger.info("API shutdown complete!")


# Create FastAPI application
app = FastAPI(
    title="Paper Trading Simulator API",
    description="""
    Paper-trading simulator matching simulated orders against a live price feed.

    ## Features
    * **Order Types**: Market, Limit, Stop-Limit
    * **Live Prices**: Binance aggregated-trade stream with a rolling market window
    * **Real-time Streams**: WebSocket market window and event feeds
    * **Advisor**: Trend commentary and python-binance script generation

    ## Endpoints
    * **POST /api/v1/orders**: Submit new order
    * **GET /api/v1/orders**: List orders
    * **GET /api/v1/orders/{order_id}**: Get order status
    * **DELETE /api/v1/orders/{order_id}**: Cancel order
    * **GET /api/v1/market/window**: Market window snapshot
    * **POST /api/v1/market/ticks**: Manual tick ingress
    * **GET /api/v1/events**: Event log
    * **POST /api/v1/advisory/analysis**: Trend commentary
    * **POST /api/v1/advisory/code**: Order script generation
    * **WS /ws/market**: Real-time market window stream
    * **WS /ws/events**: Real-time event feed
    """,
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests and responses."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.info(
        f"Request [{request_id}]: {request.method} {request.url.path} "
        f"from {request.client.host if request.client else 'unknown'}"
    )

    response = await call_next(request)

    logger.info(f"Response [{request_id}]: {response.status_code}")

    return response


# Request ID middleware (registered after log_requests so it runs outermost)
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add unique request ID to each request for tracking."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


def _error_response(
    status_code: int,
    error: str,
    message: str,
    detail: Optional[str] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            message=message,
            detail=detail,
            timestamp=datetime.now(timezone.utc)
        ).model_dump(mode='json')
    )


# Domain exception -> (HTTP status, error name, log level)
EXCEPTION_STATUS = {
    ValidationException: (status.HTTP_422_UNPROCESSABLE_ENTITY, "ValidationError", logging.WARNING),
    OrderNotFoundException: (status.HTTP_404_NOT_FOUND, "OrderNotFoundException", logging.WARNING),
    InvalidStateException: (status.HTTP_409_CONFLICT, "InvalidStateException", logging.WARNING),
    MatchingInvariantError: (
        status.HTTP_500_INTERNAL_SERVER_ERROR, "MatchingInvariantError", logging.CRITICAL
    ),
    UpstreamUnavailableException: (
        status.HTTP_503_SERVICE_UNAVAILABLE, "UpstreamUnavailable", logging.ERROR
    ),
}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.warning(f"Validation error [{request_id}]: {exc.errors()}")

    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "Request validation failed",
        str(exc.errors())
    )


async def domain_exception_handler(request: Request, exc: BasePaperTradingException):
    """Map paper-trading exceptions to their HTTP status."""
    status_code, error, level = next(
        EXCEPTION_STATUS[cls] for cls in type(exc).__mro__ if cls in EXCEPTION_STATUS
    )
    request_id = getattr(request.state, "request_id", "unknown")
    logger.log(level, f"{error} [{request_id}]: {exc.message}")

    detail = str(exc.details) if exc.details else None
    return _error_response(status_code, error, exc.message, detail)


for exception_class in EXCEPTION_STATUS:
    app.add_exception_handler(exception_class, domain_exception_handler)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error(f"Unhandled exception [{request_id}]: {str(exc)}", exc_info=True)

    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An internal error occurred",
        "Contact support with request ID: " + request_id
    )


# Health check endpoint
@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Check API and matching engine health status"
)
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns service status and matching engine statistics.
    """
    stats = trading_service.get_statistics() if trading_service else {}
    healthy = trading_service is not None and not trading_service.is_halted

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=API_VERSION,
        matching_engine=stats
    )


# Include routers
app.include_router(orders.router)
app.include_router(market_data.router)
app.include_router(advisory.router)
app.include_router(market_data_ws.router)
app.include_router(events_ws.router)


# Root endpoint
@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Paper Trading Simulator API",
        "version": API_VERSION,
        "symbol": settings.symbol,
        "status": "operational",
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "backend.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=True,
        log_level=settings.log_level.lower()
    )
