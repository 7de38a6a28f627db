"""
Logging configuration and utilities for the paper-trading engine.

Provides structured logging with JSON format for production environments
and human-readable format for development.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from decimal import Decimal
from uuid import UUID


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.

    Converts log records to JSON format with additional context fields.
    """

    EXTRA_FIELDS = ("order_id", "fill_id", "symbol")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in self.EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value if isinstance(value, (int, float)) else str(value)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


class TradingLogger:
    """
    Centralized logger for the paper-trading engine.

    Wraps a standard library logger with helpers for order, fill and feed
    events. Supports both JSON (production) and console (development) formats.
    """

    def __init__(
        self,
        name: str = "PaperTrading",
        log_level: str = "INFO",
        log_dir: Optional[Path] = None,
        use_json: bool = False,
    ):
        """
        Initialize the trading logger.

        Args:
            name: Logger name
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (None for console only)
            use_json: Use JSON formatting (for production)
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level.upper()))
        self.logger.handlers.clear()
        self.logger.propagate = False

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(self._create_formatter(use_json))
        self.logger.addHandler(console_handler)

        if log_dir:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)

            self.logger.addHandler(self._create_file_handler(log_dir / "application.log", use_json))

            # Fills get their own audit file
            self.fill_logger = logging.getLogger(f"{name}.fills")
            self.fill_logger.setLevel(logging.INFO)
            self.fill_logger.addHandler(self._create_file_handler(log_dir / "fills.log", use_json))

            self.order_logger = logging.getLogger(f"{name}.orders")
            self.order_logger.setLevel(logging.INFO)
            self.order_logger.addHandler(self._create_file_handler(log_dir / "orders.log", use_json))

            error_handler = self._create_file_handler(log_dir / "errors.log", use_json)
            error_handler.setLevel(logging.ERROR)
            self.logger.addHandler(error_handler)
        else:
            self.fill_logger = self.logger
            self.order_logger = self.logger

    @staticmethod
    def _create_formatter(use_json: bool) -> logging.Formatter:
        if use_json:
            return JSONFormatter()
        return logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def _create_file_handler(self, filepath: Path, use_json: bool) -> logging.FileHandler:
        """Create a file handler with appropriate formatter."""
        handler = logging.FileHandler(filepath)
        handler.setFormatter(self._create_formatter(use_json))
        return handler

    def log_order_placement(
        self,
        order_id: UUID,
        symbol: str,
        order_type: str,
        side: str,
        quantity: Decimal,
        limit_price: Optional[Decimal] = None,
    ):
        """Log order placement."""
        extra = {"order_id": order_id, "symbol": symbol}

        if limit_price is not None:
            msg = f"Order placed: {side} {quantity} {symbol} @ {limit_price} ({order_type})"
        else:
            msg = f"Order placed: {side} {quantity} {symbol} MARKET ({order_type})"

        self.order_logger.info(msg, extra=extra)

    def log_fill(
        self,
        fill_id: UUID,
        order_id: UUID,
        symbol: str,
        side: str,
        quantity: Decimal,
        price: Decimal,
        tick_price: Decimal,
    ):
        """Log an order fill."""
        extra = {"fill_id": fill_id, "order_id": order_id, "symbol": symbol}
        msg = f"Order filled: {side} {quantity} {symbol} @ {price} (tick {tick_price}, order {order_id})"
        self.fill_logger.info(msg, extra=extra)

    def log_order_cancellation(
        self,
        order_id: UUID,
        symbol: str,
        reason: str = "User requested",
    ):
        """Log order cancellation."""
        extra = {"order_id": order_id, "symbol": symbol}
        self.order_logger.info(f"Order cancelled: {order_id} ({reason})", extra=extra)

    def log_stop_trigger(
        self,
        order_id: UUID,
        symbol: str,
        stop_price: Decimal,
        tick_price: Decimal,
    ):
        """Log a STOP_LIMIT order arming on a crossing tick."""
        extra = {"order_id": order_id, "symbol": symbol}
        self.order_logger.info(
            f"Stop armed: order {order_id} stop {stop_price} crossed at {tick_price}", extra=extra
        )

    def log_tick_dropped(self, raw: object, reason: str):
        """Log a malformed feed message that was not turned into a tick."""
        self.logger.warning(f"Dropped malformed tick {raw!r}: {reason}")

    def log_performance_metrics(
        self,
        ticks_processed: int,
        orders_filled: int,
        avg_latency_ms: float,
        max_latency_ms: float,
    ):
        """Log performance metrics."""
        msg = (
            f"Performance: {ticks_processed} ticks, {orders_filled} fills, "
            f"avg latency: {avg_latency_ms:.3f}ms, max latency: {max_latency_ms:.3f}ms"
        )
        self.logger.debug(msg)

    def log_error(
        self,
        message: str,
        exception: Optional[Exception] = None,
        **kwargs
    ):
        """Log error with optional exception."""
        if exception:
            self.logger.error(message, exc_info=exception, extra=kwargs)
        else:
            self.logger.error(message, extra=kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug message."""
        self.logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs):
        """Log info message."""
        self.logger.info(message, extra=kwargs)



# Global logger instance
_logger: Optional[TradingLogger] = None


def get_logger(
    name: str = "PaperTrading",
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
    use_json: bool = False,
) -> TradingLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        log_level: Logging level
        log_dir: Directory for log files
        use_json: Use JSON formatting

    Returns:
        TradingLogger instance
    """
    global _logger

    if _logger is None:
        _logger = TradingLogger(name, log_level, log_dir, use_json)

    return _logger
