"""
WebSocket endpoint for real-time market window streaming.
"""

import logging
import asyncio
from fastapi import WebSocket, WebSocketDisconnect, APIRouter

from backend.config import settings
from backend.services.market_data_service import MarketDataService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

# Global service instance
_market_data_service: MarketDataService = None


def set_market_data_service(service: MarketDataService) -> None:
    """Set the global MarketDataService instance."""
    global _market_data_service
    _market_data_service = service


@router.websocket("/ws/market")
async def market_websocket(websocket: WebSocket):
    """
    WebSocket endpoint for real-time market window updates.

    Sends the current window on connection, then a fresh snapshot whenever
    new ticks arrive. Sends a ping every ``ws_heartbeat_interval`` seconds.
    """
    await websocket.accept()
    logger.info("WebSocket connected for market window")

    try:
        await _market_data_service.subscribe(websocket)

        loop = asyncio.get_running_loop()
        last_ping = loop.time()

        while True:
            current_time = loop.time()
            if current_time - last_ping > settings.ws_heartbeat_interval:
                await websocket.send_json({"type": "ping"})
                last_ping = current_time

            # Wait for messages from client (like pong)
            try:
                data = await asyncio.wait_for(websocket.receive_json(), timeout=1.0)
                if data.get("type") == "pong":
                    logger.debug("Received pong from market subscriber")
            except asyncio.TimeoutError:
                pass

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected for market window")
    except Exception as e:
        logger.error(f"Error in market WebSocket: {e}", exc_info=True)
    finally:
        await _market_data_service.unsubscribe(websocket)
