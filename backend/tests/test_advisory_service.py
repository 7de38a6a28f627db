"""
Tests for the advisory service and its Gemini client.

HTTP traffic is replaced with mocks; nothing leaves the process.
"""

import asyncio
import time
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from backend.core.event_log import EventLevel, EventLog
from backend.core.market_window import MarketWindow
from backend.core.order import OrderSide, OrderType
from backend.core.tick import Tick
from backend.services.advisory_service import (
    ANALYSIS_ERROR_MESSAGE,
    ANALYST_SYSTEM_INSTRUCTION,
    CODE_ERROR_MESSAGE,
    INSUFFICIENT_DATA_MESSAGE,
    AdvisoryService,
    GeminiClient,
    strip_code_fences,
)
from backend.utils.exceptions import UpstreamUnavailableException, ValidationException


def gemini_payload(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_client(api_key="test-key", payload=None, error=None):
    client = GeminiClient(api_key, base_url="https://gemini.test/v1beta", model="gemini-test")
    response = MagicMock()
    response.json.return_value = payload if payload is not None else gemini_payload("")
    client.session = MagicMock()
    if error is not None:
        client.session.post.side_effect = error
    else:
        client.session.post.return_value = response
    return client


def make_service(client, ticks=0, **kwargs):
    window = MarketWindow(maxlen=50)
    for i in range(ticks):
        window.on_tick(Tick(price=Decimal(100 + i)))
    return AdvisoryService(client, window, EventLog(), symbol="BTCUSDT", **kwargs)


class TestStripCodeFences:
    """Test markdown fence removal."""

    def test_removes_language_fence(self):
        text = "```python\nprint('hi')\n```"
        assert strip_code_fences(text) == "print('hi')"

    def test_plain_code_untouched(self):
        assert strip_code_fences("x = 1") == "x = 1"


class TestGeminiClient:
    """Test the REST client."""

    def test_request_body(self):
        client = make_client(payload=gemini_payload("Bullish."))

        text = client.generate("prompt", system_instruction="be brief", temperature=0.3)

        assert text == "Bullish."
        args, kwargs = client.session.post.call_args
        assert args[0] == "https://gemini.test/v1beta/models/gemini-test:generateContent"
        assert kwargs["params"] == {"key": "test-key"}
        body = kwargs["json"]
        assert body["contents"][0]["parts"][0]["text"] == "prompt"
        assert body["systemInstruction"]["parts"][0]["text"] == "be brief"
        assert body["generationConfig"]["temperature"] == 0.3

    def test_missing_key(self):
        client = make_client(api_key=None)
        with pytest.raises(UpstreamUnavailableException):
            client.generate("prompt")
        client.session.post.assert_not_called()

    def test_request_failure(self):
        client = make_client(error=requests.exceptions.ConnectionError("refused"))
        with pytest.raises(UpstreamUnavailableException):
            client.generate("prompt")

    def test_unexpected_payload_returns_empty(self):
        client = make_client(payload={"promptFeedback": {}})
        assert client.generate("prompt") == ""


class TestMarketAnalysis:
    """Test market trend commentary."""

    def test_insufficient_data(self):
        client = make_client()
        service = make_service(client, ticks=5)

        result = asyncio.run(service.analyze_market_trend())

        assert result == INSUFFICIENT_DATA_MESSAGE
        client.session.post.assert_not_called()
        events = service.event_log.all()
        assert [e.level for e in events] == [EventLevel.WARN]

    def test_analysis_success(self):
        client = make_client(payload=gemini_payload("Bullish momentum. Consider a small long.\n"))
        service = make_service(client, ticks=30, sample_size=20)

        result = asyncio.run(service.analyze_market_trend())

        assert result == "Bullish momentum. Consider a small long."
        body = client.session.post.call_args.kwargs["json"]
        prompt = body["contents"][0]["parts"][0]["text"]
        # Only the latest sample_size prices, oldest first
        sent = prompt.split("[")[1].split("]")[0].split(", ")
        assert sent == [str(price) for price in range(110, 130)]
        assert body["systemInstruction"]["parts"][0]["text"] == ANALYST_SYSTEM_INSTRUCTION
        assert body["generationConfig"]["temperature"] == 0.3

        levels = [e.level for e in service.event_log.all()]
        assert levels == [EventLevel.INFO, EventLevel.SUCCESS]

    def test_missing_key_degrades(self):
        service = make_service(make_client(api_key=""), ticks=10)

        result = asyncio.run(service.analyze_market_trend())

        assert result == ANALYSIS_ERROR_MESSAGE
        assert service.event_log.all()[-1].level == EventLevel.ERROR

    def test_timeout_degrades(self):
        client = make_client()

        def slow_generate(*args):
            time.sleep(0.3)
            return "too late"

        client.generate = slow_generate
        service = make_service(client, ticks=10, timeout=0.05)

        result = asyncio.run(service.analyze_market_trend())

        assert result == ANALYSIS_ERROR_MESSAGE
        assert "timed out" in service.event_log.all()[-1].message


class TestOrderScript:
    """Test order-script generation."""

    def test_generates_script_without_fences(self):
        client = make_client(payload=gemini_payload("```python\nfrom binance.client import Client\n```"))
        service = make_service(client)

        code = asyncio.run(service.generate_order_script(
            OrderSide.BUY, OrderType.LIMIT, Decimal("0.01"), Decimal("95000")
        ))

        assert code == "from binance.client import Client"
        prompt = client.session.post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
        assert "- Side: BUY" in prompt
        assert "- Type: LIMIT" in prompt
        assert "- Price: 95000" in prompt
        assert service.event_log.all()[-1].message == "Code snippet generated."

    def test_invalid_order_rejected_before_request(self):
        client = make_client()
        service = make_service(client)

        with pytest.raises(ValidationException):
            asyncio.run(service.generate_order_script(OrderSide.BUY, OrderType.LIMIT, Decimal("1")))

        client.session.post.assert_not_called()
        assert len(service.event_log) == 0

    def test_upstream_failure_returns_error_comment(self):
        client = make_client(error=requests.exceptions.Timeout("slow"))
        service = make_service(client)

        code = asyncio.run(service.generate_order_script(
            OrderSide.SELL, OrderType.MARKET, Decimal("1")
        ))

        assert code == CODE_ERROR_MESSAGE
        assert service.event_log.all()[-1].level == EventLevel.ERROR

    def test_empty_response_returns_error_comment(self):
        service = make_service(make_client(payload=gemini_payload("```\n```")))

        code = asyncio.run(service.generate_order_script(
            OrderSide.SELL, OrderType.MARKET, Decimal("1")
        ))

        assert code == CODE_ERROR_MESSAGE
