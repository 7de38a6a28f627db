"""
Price Feed Adapters - deliver ticks for the simulated instrument.

The live adapter follows the Binance futures aggregated-trade stream over a
WebSocket and turns each message into a Tick. The replay adapter plays back a
fixed price sequence for offline simulation and tests.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import InvalidOperation
from typing import Any, Callable, Iterable, List, Optional, Union

import websockets

from backend.core.tick import Tick
from backend.utils.exceptions import UpstreamUnavailableException
from backend.utils.logger import get_logger


TickCallback = Callable[[Tick], None]
ErrorCallback = Callable[[Exception], None]


def parse_agg_trade(message: Union[str, bytes, dict]) -> Optional[Tick]:
    """
    Convert one aggregated-trade message into a Tick.

    Reads ``p`` (price) and ``T`` (trade time in milliseconds). Malformed
    messages are logged and dropped.

    Args:
        message: Raw socket frame or already decoded payload

    Returns:
        Tick, or None if the message was dropped
    """
    logger = get_logger()

    try:
        payload = json.loads(message) if isinstance(message, (str, bytes)) else message
    except (TypeError, ValueError) as e:
        logger.log_tick_dropped(message, f"not JSON ({e})")
        return None

    if not isinstance(payload, dict) or "p" not in payload:
        logger.log_tick_dropped(message, "missing price field 'p'")
        return None

    trade_time = datetime.now(timezone.utc)
    if payload.get("T") is not None:
        try:
            trade_time = datetime.fromtimestamp(int(payload["T"]) / 1000, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            logger.debug(f"Ignoring unreadable trade time {payload['T']!r}")

    try:
        return Tick(price=payload["p"], time=trade_time)
    except (InvalidOperation, TypeError, ValueError) as e:
        logger.log_tick_dropped(message, str(e))
        return None


class BaseFeedAdapter(ABC):
    """
    Source of ticks for one instrument.

    Subclasses deliver ticks to the ``on_tick`` callback one at a time, in
    arrival order, and report unrecoverable failures through ``on_error``.
    """

    def __init__(self, symbol: str):
        self.symbol = symbol.upper()
        self._on_tick: Optional[TickCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._task: Optional[asyncio.Task] = None
        self._connected = False
        self.ticks_delivered = 0
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def connect(self, on_tick: TickCallback, on_error: Optional[ErrorCallback] = None) -> None:
        """
        Start delivering ticks in a background task.

        Args:
            on_tick: Called with every parsed tick
            on_error: Called once if the feed gives up
        """
        if self.is_running:
            self.logger.warning("Feed already running, ignoring connect")
            return

        self._on_tick = on_tick
        self._on_error = on_error
        self._task = asyncio.create_task(self._run())
        self.logger.info(f"Feed started for {self.symbol}")

    async def disconnect(self) -> None:
        """Stop the feed and wait for the background task to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._connected = False
        self.logger.info(f"Feed stopped for {self.symbol}")

    async def wait_closed(self) -> None:
        """Wait until the feed stops on its own."""
        if self._task is not None:
            await asyncio.shield(self._task)

    @abstractmethod
    async def _run(self) -> None:
        """Produce ticks until cancelled or exhausted."""

    def _emit(self, tick: Tick) -> None:
        self.ticks_delivered += 1
        if self._on_tick is not None:
            self._on_tick(tick)

    def _report_error(self, error: Exception) -> None:
        self.logger.error(f"Feed failure: {error}")
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception as e:
                self.logger.error(f"Error in feed error callback: {e}", exc_info=True)


class BinanceFeedAdapter(BaseFeedAdapter):
    """
    Live aggregated-trade feed.

    Reconnects with exponential backoff when the socket drops. After
    ``max_reconnect_attempts`` consecutive failures the feed reports
    UpstreamUnavailableException and stops.
    """

    def __init__(
        self,
        symbol: str,
        base_url: str = "wss://fstream.binance.com/ws",
        max_reconnect_attempts: int = 5,
        reconnect_base_delay: float = 1.0,
    ):
        super().__init__(symbol)
        self.base_url = base_url.rstrip("/")
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_base_delay = reconnect_base_delay

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.symbol.lower()}@aggTrade"

    async def _run(self) -> None:
        failures = 0

        while True:
            try:
                async with websockets.connect(self.url) as socket:
                    self._connected = True
                    failures = 0
                    self.logger.info(f"Connected to {self.url}")

                    async for message in socket:
                        tick = parse_agg_trade(message)
                        if tick is not None:
                            self._emit(tick)

                self.logger.warning("Feed socket closed by server")

            except asyncio.CancelledError:
                self._connected = False
                raise
            except (websockets.exceptions.WebSocketException, OSError, asyncio.TimeoutError) as e:
                self.logger.warning(f"Feed connection error: {e}")

            self._connected = False
            failures += 1

            if failures > self.max_reconnect_attempts:
                self._report_error(UpstreamUnavailableException(
                    f"Price feed unavailable after {self.max_reconnect_attempts} reconnect attempts",
                    details={"url": self.url}
                ))
                return

            delay = self.reconnect_base_delay * (2 ** (failures - 1))
            self.logger.info(
                f"Reconnecting in {delay:.1f}s "
                f"(attempt {failures}/{self.max_reconnect_attempts})"
            )
            await asyncio.sleep(delay)


class ReplayFeedAdapter(BaseFeedAdapter):
    """
    Plays back a fixed sequence of prices, one tick per ``interval`` seconds.

    Entries may be prices or raw aggregated-trade messages (dicts or JSON
    objects); malformed entries are dropped exactly like live messages.
    """

    def __init__(self, symbol: str, prices: Iterable[Any], interval: float = 0.0):
        super().__init__(symbol)
        self.prices: List[Any] = list(prices)
        self.interval = interval

    async def _run(self) -> None:
        self._connected = True
        try:
            for entry in self.prices:
                message = entry if self._is_raw_message(entry) else {"p": entry}
                tick = parse_agg_trade(message)
                if tick is not None:
                    self._emit(tick)
                await asyncio.sleep(self.interval)
        finally:
            self._connected = False

        self.logger.info(f"Replay finished after {self.ticks_delivered} ticks")

    @staticmethod
    def _is_raw_message(entry: Any) -> bool:
        if isinstance(entry, dict):
            return True
        if isinstance(entry, bytes):
            entry = entry.decode(errors="replace")
        return isinstance(entry, str) and entry.lstrip().startswith("{")
