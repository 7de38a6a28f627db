"""
WebSocket endpoint for the real-time event feed.
"""

import logging
import asyncio
from fastapi import WebSocket, WebSocketDisconnect, APIRouter

from backend.config import settings
from backend.services.event_stream_service import EventStreamService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

# Global service instance
_event_stream_service: EventStreamService = None


def set_event_stream_service(service: EventStreamService) -> None:
    """Set the global EventStreamService instance."""
    global _event_stream_service
    _event_stream_service = service


@router.websocket("/ws/events")
async def events_websocket(websocket: WebSocket):
    """
    WebSocket endpoint for the terminal event feed.

    Sends the recent event history on connection, then streams each new
    event as it is appended.
    """
    await websocket.accept()
    logger.info("WebSocket connected for event feed")

    try:
        await _event_stream_service.subscribe(websocket)

        # Keep connection alive
        while True:
            try:
                await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=settings.ws_heartbeat_interval
                )
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "heartbeat"})

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected for event feed")
    except Exception as e:
        logger.error(f"Error in event WebSocket: {e}", exc_info=True)
    finally:
        await _event_stream_service.unsubscribe(websocket)
