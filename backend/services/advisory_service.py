"""
Advisory Service - text-generation commentary and order-script generation.

Calls the Gemini ``generateContent`` REST endpoint for two read-only
features: a short trend commentary over the latest market window prices and
a python-binance script reproducing an order on the Futures Testnet. Neither
feature touches the order book; failures degrade to an explanatory message
and an ERROR event.
"""

import asyncio
import logging
import re
from decimal import Decimal
from typing import Any, Dict, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from backend.core.event_log import EventLevel, EventLog
from backend.core.market_window import MarketWindow
from backend.core.order import OrderSide, OrderType
from backend.core.order_book import OrderBook
from backend.utils.exceptions import UpstreamUnavailableException


ANALYST_SYSTEM_INSTRUCTION = (
    "You are an expert cryptocurrency trading bot analyst. Be concise and technical."
)

INSUFFICIENT_DATA_MESSAGE = "Insufficient data for analysis. Collecting more price points..."
ANALYSIS_ERROR_MESSAGE = "Error connecting to AI analyst."
CODE_ERROR_MESSAGE = "# Error generating Python code via Gemini."

_CODE_FENCE = re.compile(r"```[a-zA-Z0-9_+-]*")


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (```python ... ```) from generated text."""
    return _CODE_FENCE.sub("", text).strip()


class GeminiClient:
    """Minimal client for the Gemini generateContent REST API."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        model: str = "gemini-2.5-flash",
        timeout: float = 15.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.logger = logging.getLogger(f"{__name__}.GeminiClient")
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create requests session with retry logic."""
        session = requests.Session()

        retry_strategy = Retry(
            total=2,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["POST"]
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        return session

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Generate text for a prompt.

        Args:
            prompt: User prompt
            system_instruction: Optional system instruction
            temperature: Optional sampling temperature

        Returns:
            Generated text (empty string if the model returned none)

        Raises:
            UpstreamUnavailableException: If the API key is missing, the
                request fails, or the response cannot be read
        """
        if not self.api_key:
            raise UpstreamUnavailableException("Advisory API key is not configured")

        body: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if temperature is not None:
            body["generationConfig"] = {"temperature": temperature}

        try:
            response = self.session.post(
                self.endpoint,
                params={"key": self.api_key},
                json=body,
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as e:
            raise UpstreamUnavailableException(
                f"Advisory request failed: {e}",
                details={"model": self.model}
            ) from e
        except ValueError as e:
            raise UpstreamUnavailableException("Advisory response is not JSON") from e

        return self._extract_text(payload)

    @staticmethod
    def _extract_text(payload: Dict[str, Any]) -> str:
        try:
            parts = payload["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return ""
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class AdvisoryService:
    """
    Service class for the advisory panel.

    Reads market window snapshots only. Blocking HTTP calls run in a worker
    thread and are bounded by ``timeout``.
    """

    def __init__(
        self,
        client: GeminiClient,
        market_window: MarketWindow,
        event_log: EventLog,
        symbol: str = "BTCUSDT",
        min_ticks: int = 10,
        sample_size: int = 20,
        timeout: float = 15.0,
    ):
        """
        Initialize advisory service.

        Args:
            client: Text-generation client
            market_window: Source of recent prices
            event_log: Destination of progress and failure events
            symbol: Instrument named in prompts
            min_ticks: Ticks required before analysis is attempted
            sample_size: Most recent prices included in the analysis prompt
            timeout: Upper bound in seconds for one advisory call
        """
        self.client = client
        self.market_window = market_window
        self.event_log = event_log
        self.symbol = symbol
        self.min_ticks = min_ticks
        self.sample_size = sample_size
        self.timeout = timeout
        self.logger = logging.getLogger(f"{__name__}.AdvisoryService")

    async def analyze_market_trend(self) -> str:
        """
        Produce a two-sentence sentiment commentary with a suggested action.

        Returns:
            Commentary text, or an explanatory message when the window is too
            short or the upstream call fails
        """
        if len(self.market_window) < self.min_ticks:
            self.event_log.append(EventLevel.WARN, INSUFFICIENT_DATA_MESSAGE)
            return INSUFFICIENT_DATA_MESSAGE

        prices = self.market_window.prices(limit=self.sample_size)
        prompt = self.build_analysis_prompt(prices)

        self.event_log.append(
            EventLevel.INFO,
            f"Requesting market analysis from {self.client.model}..."
        )

        try:
            text = await self._generate(prompt, ANALYST_SYSTEM_INSTRUCTION, 0.3)
        except UpstreamUnavailableException as e:
            self.logger.warning(f"Market analysis failed: {e.message}")
            self.event_log.append(EventLevel.ERROR, f"Market analysis failed: {e.message}")
            return ANALYSIS_ERROR_MESSAGE

        self.event_log.append(EventLevel.SUCCESS, "Analysis received.")
        return text.strip() or "Unable to generate analysis."

    async def generate_order_script(
        self,
        side: OrderSide,
        order_type: OrderType,
        quantity: Union[str, Decimal],
        limit_price: Optional[Union[str, Decimal]] = None,
        stop_price: Optional[Union[str, Decimal]] = None,
    ) -> str:
        """
        Generate a python-binance script that places the given order on the
        Binance Futures Testnet.

        Returns:
            Script source with markdown fences removed, or an error comment
            when the upstream call fails

        Raises:
            ValidationException: If the order specification is invalid
        """
        quantity, limit_price, stop_price = OrderBook.validate_request(
            side, order_type, quantity, limit_price, stop_price
        )
        prompt = self.build_code_prompt(side, order_type, quantity, limit_price, stop_price)

        self.event_log.append(EventLevel.INFO, "Generating Python-Binance code via Gemini...")

        try:
            text = await self._generate(prompt)
        except UpstreamUnavailableException as e:
            self.logger.warning(f"Code generation failed: {e.message}")
            self.event_log.append(EventLevel.ERROR, f"Code generation failed: {e.message}")
            return CODE_ERROR_MESSAGE

        code = strip_code_fences(text)
        if not code:
            self.event_log.append(EventLevel.ERROR, "Code generation returned no content")
            return CODE_ERROR_MESSAGE

        self.event_log.append(EventLevel.SUCCESS, "Code snippet generated.")
        return code

    def build_analysis_prompt(self, prices) -> str:
        recent_prices = ", ".join(str(price) for price in prices)
        return (
            f"Analyze the following recent price trend for {self.symbol}.\n"
            f"Prices (oldest to newest): [{recent_prices}].\n"
            "Provide a concise 2-sentence market sentiment analysis "
            "(Bullish/Bearish/Neutral) and a suggested short-term action."
        )

    def build_code_prompt(
        self,
        side: OrderSide,
        order_type: OrderType,
        quantity: Decimal,
        limit_price: Optional[Decimal] = None,
        stop_price: Optional[Decimal] = None,
    ) -> str:
        lines = [
            "Generate a Python script using the 'python-binance' library to place a "
            "specific order on the Binance Futures Testnet.",
            "",
            "Parameters:",
            f"- Symbol: {self.symbol}",
            f"- Side: {side.value}",
            f"- Type: {order_type.value}",
            f"- Quantity: {quantity}",
        ]
        if limit_price is not None:
            lines.append(f"- Price: {limit_price}")
        if stop_price is not None:
            lines.append(f"- Stop price: {stop_price}")
        lines += [
            "",
            "Requirements:",
            "- Include authentication setup (placeholders for API_KEY/SECRET).",
            "- Use the Testnet URL.",
            "- Add error handling.",
            "- Return ONLY the python code block, no markdown formatting like ```.",
        ]
        return "\n".join(lines)

    async def _generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.client.generate, prompt, system_instruction, temperature),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableException(
                f"Advisory call timed out after {self.timeout}s"
            ) from e
