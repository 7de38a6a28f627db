"""
Market Data Service - WebSocket streaming of the market window.

This service manages WebSocket subscriptions for the price chart, sends the
current window on subscribe and broadcasts a fresh snapshot whenever new
ticks have arrived.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from backend.core.market_window import MarketWindow


class MarketDataService:
    """
    Service class for managing real-time market window streams.

    Polls the market window and pushes a snapshot to every subscriber when
    the window has changed since the last broadcast.
    """

    def __init__(self, market_window: MarketWindow, symbol: str, poll_interval: float = 0.25):
        """
        Initialize market data service.

        Args:
            market_window: Window streamed to subscribers
            symbol: Instrument symbol included in messages
            poll_interval: Seconds between change checks
        """
        self.market_window = market_window
        self.symbol = symbol
        self.poll_interval = poll_interval
        self.logger = logging.getLogger(f"{__name__}.MarketDataService")

        self.subscribers: Set[WebSocket] = set()

        # Tick count at the last broadcast, for change detection
        self._last_broadcast_total: Optional[int] = None

        self._broadcast_task: Optional[asyncio.Task] = None

        self.logger.info("MarketDataService initialized")

    async def subscribe(self, websocket: WebSocket) -> None:
        """
        Subscribe a WebSocket connection to window updates.

        Args:
            websocket: WebSocket connection to subscribe
        """
        self.subscribers.add(websocket)
        self.logger.info(f"WebSocket subscribed to market window. Total subscribers: {len(self.subscribers)}")

        await self._send_to_websocket(websocket, self.generate_window_snapshot())

    async def unsubscribe(self, websocket: WebSocket) -> None:
        """
        Unsubscribe a WebSocket connection from window updates.

        Args:
            websocket: WebSocket connection to unsubscribe
        """
        self.subscribers.discard(websocket)
        if not self.subscribers:
            self._last_broadcast_total = None
        self.logger.info(f"WebSocket unsubscribed from market window. Remaining subscribers: {len(self.subscribers)}")

    def generate_window_snapshot(self) -> Dict[str, Any]:
        """
        Generate a complete market window message.

        Returns:
            Dictionary with the window ticks, oldest first
        """
        ticks = self.market_window.snapshot()
        return {
            "type": "market_window",
            "symbol": self.symbol,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "window_size": self.market_window.maxlen,
            "total_ticks": self.market_window.total_ticks,
            "last_price": str(ticks[-1].price) if ticks else None,
            "ticks": [tick.to_dict() for tick in ticks],
        }

    async def broadcast(self, message: Dict[str, Any]) -> None:
        """
        Broadcast a message to all subscribers.

        Args:
            message: Message to broadcast
        """
        dead_connections = []
        for ws in list(self.subscribers):
            try:
                await ws.send_json(message)
            except Exception as e:
                self.logger.warning(f"Failed to send to WebSocket: {e}")
                dead_connections.append(ws)

        # Clean up dead connections
        for ws in dead_connections:
            await self.unsubscribe(ws)

    async def start_broadcasting(self) -> None:
        """Start background task for polling and broadcasting window updates."""
        if self._broadcast_task is None or self._broadcast_task.done():
            self._broadcast_task = asyncio.create_task(self._poll_and_broadcast())
            self.logger.info("Market window broadcasting task started")

    async def stop_broadcasting(self) -> None:
        """Stop background broadcasting task."""
        if self._broadcast_task and not self._broadcast_task.done():
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self.logger.info("Market window broadcasting task stopped")

    async def _poll_and_broadcast(self) -> None:
        """Broadcast a snapshot whenever ticks arrived since the last one."""
        while True:
            try:
                await asyncio.sleep(self.poll_interval)

                if not self.subscribers:
                    continue

                total = self.market_window.total_ticks
                if total != self._last_broadcast_total:
                    await self.broadcast(self.generate_window_snapshot())
                    self._last_broadcast_total = total

            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in poll_and_broadcast: {e}", exc_info=True)

    async def _send_to_websocket(self, websocket: WebSocket, data: Dict[str, Any]) -> None:
        try:
            await websocket.send_json(data)
        except Exception as e:
            self.logger.warning(f"Failed to send to WebSocket: {e}")
