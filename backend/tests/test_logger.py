"""
Unit tests for structured log formatting.
"""

import json
import logging
from uuid import uuid4

from backend.utils.logger import JSONFormatter


def make_record(**extra):
    record = logging.LogRecord(
        "PaperTrading", logging.INFO, __file__, 1, "Order filled", None, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test cases for JSONFormatter."""

    def test_known_extra_fields_emitted(self):
        order_id = uuid4()
        data = json.loads(JSONFormatter().format(make_record(order_id=order_id, symbol="BTCUSDT")))

        assert data["message"] == "Order filled"
        assert data["level"] == "INFO"
        assert data["order_id"] == str(order_id)
        assert data["symbol"] == "BTCUSDT"
        assert "fill_id" not in data

    def test_unknown_extra_fields_ignored(self):
        data = json.loads(JSONFormatter().format(make_record(request_id="abc", latency_ms=1.5)))

        assert "request_id" not in data
        assert "latency_ms" not in data
