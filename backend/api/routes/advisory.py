"""
REST API endpoints for the advisory panel.

Provides market trend commentary and order-script generation. Both are
read-only with respect to the paper order book.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Depends, status

from backend.api.models import (
    AnalysisResponse,
    CodeGenerationRequest,
    CodeGenerationResponse,
    ErrorResponse,
)
from backend.services.advisory_service import AdvisoryService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api/v1/advisory", tags=["advisory"])


# Dependency injection for AdvisoryService
_advisory_service: AdvisoryService = None


def get_advisory_service() -> AdvisoryService:
    """Dependency to get AdvisoryService instance."""
    if _advisory_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Advisory service not initialized"
        )
    return _advisory_service


def set_advisory_service(service: AdvisoryService) -> None:
    """Set the global AdvisoryService instance."""
    global _advisory_service
    _advisory_service = service


@router.post(
    "/analysis",
    response_model=AnalysisResponse,
    summary="Analyze market trend",
    description="Two-sentence sentiment commentary with a suggested short-term "
                "action, based on the most recent window prices"
)
async def analyze_market(
    advisory_service: AdvisoryService = Depends(get_advisory_service)
) -> AnalysisResponse:
    """Request trend commentary for the latest prices."""
    analysis = await advisory_service.analyze_market_trend()

    return AnalysisResponse(
        symbol=advisory_service.symbol,
        analysis=analysis,
        sample_size=min(len(advisory_service.market_window), advisory_service.sample_size),
        timestamp=datetime.now(timezone.utc)
    )


@router.post(
    "/code",
    response_model=CodeGenerationResponse,
    summary="Generate order script",
    description="Generate a python-binance script placing the given order on "
                "the Binance Futures Testnet",
    responses={
        422: {"description": "Validation error", "model": ErrorResponse}
    }
)
async def generate_code(
    code_request: CodeGenerationRequest,
    advisory_service: AdvisoryService = Depends(get_advisory_service)
) -> CodeGenerationResponse:
    """
    Generate an order script.

    **Example:**
    ```json
    {
      "side": "SELL",
      "order_type": "LIMIT",
      "quantity": "0.01",
      "limit_price": "99000"
    }
    ```
    """
    code = await advisory_service.generate_order_script(**code_request.to_order_params())

    return CodeGenerationResponse(
        symbol=advisory_service.symbol,
        code=code,
        timestamp=datetime.now(timezone.utc)
    )
