"""
Custom exceptions for the paper-trading engine

This module defines a hierarchy of exceptions used throughout the simulator
to handle invalid requests, unknown orders, illegal state transitions and
unreachable upstream collaborators in a structured way.
"""


class BasePaperTradingException(Exception):
    """Base exception class for all paper-trading exceptions."""

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationException(BasePaperTradingException):
    """Raised when order parameters fail validation, before any state changes."""
    pass


class OrderNotFoundException(BasePaperTradingException):
    """Raised when an operation references an order id the book doesn't know."""
    pass


class InvalidStateException(BasePaperTradingException):
    """Raised when an order is not in the state an operation requires."""
    pass


class UpstreamUnavailableException(BasePaperTradingException):
    """Raised when the price feed or the advisory gateway cannot be reached."""
    pass


class MatchingInvariantError(InvalidStateException):
    """Raised when a tick pass finds the order book mutated behind its back."""
    pass
