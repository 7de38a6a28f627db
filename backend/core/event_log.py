"""
Append-only event log

Ordered record of order lifecycle changes and notable conditions (feed
warnings, advisory failures). Consumed by the terminal panel of the
dashboard through REST and WebSocket.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Tuple
from uuid import UUID, uuid4


class EventLevel(Enum):
    """Event severity enumeration."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    SUCCESS = "SUCCESS"

    def __str__(self) -> str:
        return self.value

    @property
    def logging_level(self) -> int:
        """Standard logging level used when the event is mirrored to the logger."""
        return {
            EventLevel.INFO: logging.INFO,
            EventLevel.SUCCESS: logging.INFO,
            EventLevel.WARN: logging.WARNING,
            EventLevel.ERROR: logging.ERROR,
        }[self]


@dataclass(frozen=True, slots=True)
class Event:
    """
    One entry of the event log. Never mutated once appended.

    Attributes:
        level: Severity
        message: Human-readable description
        event_id: Unique identifier
        timestamp: Append time (UTC)
    """

    level: EventLevel
    message: str
    event_id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Convert event to dictionary for API serialization."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
        }


EventListener = Callable[[Event], None]


class EventLog:
    """
    Thread-safe, append-only sequence of events.

    Listeners are invoked after each append, outside the lock. A failing
    listener is logged and never affects the append or other listeners.
    """

    def __init__(self):
        self._events: List[Event] = []
        self._listeners: List[EventListener] = []
        self._lock = threading.Lock()
        self.logger = logging.getLogger(f"{__name__}.EventLog")

    def append(self, level: EventLevel, message: str) -> Event:
        """
        Append a new event stamped with a fresh id and the current time.

        Args:
            level: Event severity
            message: Event text

        Returns:
            The appended event
        """
        event = Event(level=level, message=message)
        with self._lock:
            self._events.append(event)
            listeners = list(self._listeners)

        self.logger.log(level.logging_level, f"[{level.value}] {message}")

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                self.logger.error(f"Error in event listener: {e}", exc_info=True)

        return event

    def all(self) -> Tuple[Event, ...]:
        """Full ordered history."""
        with self._lock:
            return tuple(self._events)

    def tail(self, limit: int) -> Tuple[Event, ...]:
        """The ``limit`` most recent events, oldest first."""
        if limit <= 0:
            return ()
        with self._lock:
            return tuple(self._events[-limit:])

    def since(self, index: int) -> Tuple[Event, ...]:
        """Events appended at or after position ``index``."""
        with self._lock:
            return tuple(self._events[max(index, 0):])

    def add_listener(self, listener: EventListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
