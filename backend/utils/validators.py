"""
Input validation utilities

This module provides validation functions for order parameters, prices and
quantities. Every check raises ValidationException so callers can reject a
request before any order book state is touched.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from .exceptions import ValidationException


def sanitize_decimal(value: Union[str, int, float, Decimal], field_name: str = "value") -> Decimal:
    """
    Convert a value to Decimal with proper error handling.

    Args:
        value: Value to convert to Decimal
        field_name: Name of the field, used in the error message

    Returns:
        Decimal representation of the value

    Raises:
        ValidationException: If value cannot be converted to a finite Decimal
    """
    if isinstance(value, bool):
        raise ValidationException(
            f"Invalid {field_name}: {value}",
            details={field_name: value}
        )
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValidationException(
            f"Invalid {field_name}: {value}",
            details={field_name: value, "error": str(e)}
        )
    if not result.is_finite():
        raise ValidationException(
            f"{field_name.capitalize()} must be a finite number, got {value}",
            details={field_name: str(value)}
        )
    return result


def validate_price(
    price: Optional[Decimal],
    field_name: str = "price",
    required: bool = False,
) -> Optional[Decimal]:
    """
    Validate a price value.

    Args:
        price: Price to validate (None allowed unless required)
        field_name: Name of the price field (limit_price, stop_price, ...)
        required: Whether the price must be present

    Returns:
        The price as a Decimal, or None if absent and optional

    Raises:
        ValidationException: If price is missing when required or not positive
    """
    if price is None:
        if required:
            raise ValidationException(
                f"{field_name} is required for this order type",
                details={"field": field_name}
            )
        return None

    price = sanitize_decimal(price, field_name)
    if price <= 0:
        raise ValidationException(
            f"{field_name} must be positive, got {price}",
            details={"field": field_name, "value": str(price)}
        )
    return price


def validate_quantity(quantity: Union[str, Decimal]) -> Decimal:
    """
    Validate an order quantity.

    Args:
        quantity: Quantity to validate

    Returns:
        The quantity as a Decimal

    Raises:
        ValidationException: If quantity is not a positive number
    """
    if quantity is None:
        raise ValidationException("quantity is required", details={"field": "quantity"})

    quantity = sanitize_decimal(quantity, "quantity")
    if quantity <= 0:
        raise ValidationException(
            f"Quantity must be positive, got {quantity}",
            details={"quantity": str(quantity)}
        )
    return quantity


def validate_symbol(symbol: str) -> str:
    """
    Validate and normalize an instrument symbol such as BTCUSDT.

    Returns:
        Upper-cased symbol

    Raises:
        ValidationException: If symbol is empty or not alphanumeric
    """
    if not symbol or not isinstance(symbol, str):
        raise ValidationException(f"Invalid symbol: {symbol}", details={"symbol": symbol})

    symbol = symbol.strip().upper()
    if len(symbol) < 3 or not symbol.isalnum():
        raise ValidationException(
            f"Invalid symbol format: {symbol}",
            details={"symbol": symbol}
        )
    return symbol
