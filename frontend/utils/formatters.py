"""Formatting Utilities for UI Display"""
import html
from decimal import Decimal, InvalidOperation
from datetime import datetime
from typing import Optional, Union

LEVEL_COLORS = {
    "INFO": "#60a5fa",
    "WARN": "#f59e0b",
    "ERROR": "#ef4444",
    "SUCCESS": "#10b981",
}

STATUS_COLORS = {
    "OPEN": "#f59e0b",
    "FILLED": "#10b981",
    "CANCELLED": "#6b7280",
}


def format_price(price: Union[str, Decimal, float, None], decimals: int = 2) -> str:
    if price is None:
        return "N/A"
    try:
        return f"{Decimal(str(price)):,.{decimals}f}"
    except (InvalidOperation, ValueError):
        return str(price)


def format_quantity(qty: Union[str, Decimal, float, None], decimals: int = 4) -> str:
    if qty is None:
        return "N/A"
    try:
        return f"{Decimal(str(qty)):,.{decimals}f}"
    except (InvalidOperation, ValueError):
        return str(qty)


def to_decimal_string(value: Union[str, Decimal, float], places: int = 8) -> str:
    """Plain decimal string (no exponent) accepted by the order API."""
    text = f"{Decimal(str(value)):.{places}f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def format_timestamp(ts: Union[str, datetime, None], fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    if ts is None:
        return "N/A"
    try:
        dt = datetime.fromisoformat(ts.replace('Z', '+00:00')) if isinstance(ts, str) else ts
        return dt.strftime(fmt)
    except (TypeError, ValueError):
        return str(ts)


def color_by_side(side: str) -> str:
    side_upper = (side or "").upper()
    if side_upper == "BUY":
        return "#10b981"
    elif side_upper == "SELL":
        return "#ef4444"
    else:
        return "#6b7280"


def color_by_status(status: str) -> str:
    return STATUS_COLORS.get((status or "").upper(), "#888888")


def format_event_line(event: dict) -> str:
    """Render an event as a colored terminal line (HTML)."""
    level = event.get("level", "INFO")
    color = LEVEL_COLORS.get(level, "#d1d5db")
    time_str = format_timestamp(event.get("timestamp"), "%H:%M:%S")
    return (
        f"<span style='color:#6b7280'>[{time_str}]</span> "
        f"<span style='color:{color}'>{level:<7}</span> "
        f"{html.escape(event.get('message', ''))}"
    )


def format_order_id(order_id: Optional[str]) -> str:
    order_id = str(order_id) if order_id is not None else "N/A"
    if len(order_id) > 16:
        return f"{order_id[:8]}...{order_id[-4:]}"
    return order_id
