"""
Core domain models and paper-trading matching logic
"""

from .tick import Tick
from .market_window import MarketWindow
from .order import Order, OrderType, OrderSide, OrderStatus
from .fill import Fill
from .order_book import OrderBook
from .event_log import Event, EventLevel, EventLog
from .matching_engine import MatchingEngine

__all__ = [
    "Tick",
    "MarketWindow",
    "Order",
    "OrderType",
    "OrderSide",
    "OrderStatus",
    "Fill",
    "OrderBook",
    "Event",
    "EventLevel",
    "EventLog",
    "MatchingEngine",
]
