"""
Event Stream Service - real-time event log broadcasting.

This service listens to the event log and pushes every new event to
WebSocket subscribers, after sending each new subscriber the recent history.
Events are queued and sent by one broadcasting task, so every subscriber
receives them in append order.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from backend.core.event_log import Event, EventLog


class EventStreamService:
    """
    Service class for the terminal event feed.

    Registers a listener with the event log and broadcasts events to
    WebSocket subscribers.
    """

    def __init__(self, event_log: EventLog, history_size: int = 100):
        """
        Initialize event stream service.

        Args:
            event_log: Event log to follow
            history_size: Recent events sent to a new subscriber
        """
        self.event_log = event_log
        self.history_size = history_size
        self.logger = logging.getLogger(f"{__name__}.EventStreamService")

        self.subscribers: Set[WebSocket] = set()
        self._loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()

        # Single consumer keeps every subscriber in append order
        self._queue: asyncio.Queue = asyncio.Queue()
        self._broadcast_task: Optional[asyncio.Task] = None

        self.event_log.add_listener(self._on_event_appended)

        self.logger.info("EventStreamService initialized and registered with event log")

    def close(self) -> None:
        """Detach from the event log."""
        self.event_log.remove_listener(self._on_event_appended)

    async def subscribe(self, websocket: WebSocket) -> None:
        """
        Subscribe a WebSocket connection to the event feed.

        Args:
            websocket: WebSocket connection to subscribe
        """
        self.subscribers.add(websocket)
        self.logger.info(f"WebSocket subscribed to events. Total subscribers: {len(self.subscribers)}")

        history = self.get_recent_events(self.history_size)
        if history:
            await websocket.send_json({
                "type": "event_history",
                "events": history,
            })

    async def unsubscribe(self, websocket: WebSocket) -> None:
        """
        Unsubscribe a WebSocket connection from the event feed.

        Args:
            websocket: WebSocket connection to unsubscribe
        """
        self.subscribers.discard(websocket)
        self.logger.info(f"WebSocket unsubscribed from events. Remaining subscribers: {len(self.subscribers)}")

    async def broadcast_event(self, event: Event) -> None:
        """
        Broadcast an event to all subscribers.

        Args:
            event: Event to broadcast
        """
        message = {"type": "event", **event.to_dict()}

        dead_connections = []
        for ws in list(self.subscribers):
            try:
                await ws.send_json(message)
            except Exception as e:
                self.logger.warning(f"Failed to send to WebSocket: {e}")
                dead_connections.append(ws)

        # Clean up dead connections
        for ws in dead_connections:
            self.subscribers.discard(ws)

    async def start_broadcasting(self) -> None:
        """Start the task that forwards queued events to subscribers."""
        if self._broadcast_task is None or self._broadcast_task.done():
            self._broadcast_task = asyncio.create_task(self._broadcast_queued_events())
            self.logger.info("Event broadcasting task started")

    async def stop_broadcasting(self) -> None:
        """Stop the broadcasting task. Events still queued are dropped."""
        if self._broadcast_task and not self._broadcast_task.done():
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self.logger.info("Event broadcasting task stopped")
        self._broadcast_task = None

    async def drain(self) -> None:
        """Wait until every queued event has been sent."""
        await self._queue.join()

    def get_recent_events(self, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Get recent events, oldest first.

        Args:
            limit: Maximum number of events to return
        """
        return [event.to_dict() for event in self.event_log.tail(limit)]

    async def _broadcast_queued_events(self) -> None:
        """Send queued events one at a time, in append order."""
        while True:
            event = await self._queue.get()
            try:
                await self.broadcast_event(event)
            except Exception as e:
                self.logger.error(f"Error broadcasting event: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    def _on_event_appended(self, event: Event) -> None:
        """
        Listener called by the event log after each append.

        Events may be appended from worker threads, so they are handed to
        the service's event loop before queueing.
        """
        if not self.subscribers:
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
