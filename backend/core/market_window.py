"""
Rolling window of the most recent price ticks.

Feeds the matching loop and any analytics consumer (charts, advisory
commentary) with a bounded, chronologically ordered view of the market.
"""

import threading
from collections import deque
from decimal import Decimal
from typing import Deque, List, Optional, Tuple

from .tick import Tick


class MarketWindow:
    """
    Bounded FIFO buffer of recent ticks.

    Holds at most ``maxlen`` ticks; appending beyond the bound evicts the
    oldest entry. Readers get immutable snapshots, so a snapshot never
    changes while it is being read.
    """

    def __init__(self, maxlen: int = 50):
        """
        Initialize the market window.

        Args:
            maxlen: Maximum number of ticks retained
        """
        if maxlen < 1:
            raise ValueError(f"Window size must be positive, got {maxlen}")

        self._ticks: Deque[Tick] = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self._total_ticks = 0

    @property
    def maxlen(self) -> int:
        return self._ticks.maxlen

    @property
    def total_ticks(self) -> int:
        """Number of ticks ever fed into the window, evicted ones included."""
        return self._total_ticks

    def on_tick(self, tick: Tick) -> None:
        """Append a tick, evicting the oldest one when the bound is exceeded."""
        with self._lock:
            self._ticks.append(tick)
            self._total_ticks += 1

    def snapshot(self) -> Tuple[Tick, ...]:
        """Return the current ticks, oldest first."""
        with self._lock:
            return tuple(self._ticks)

    def prices(self, limit: Optional[int] = None) -> List[Decimal]:
        """
        Return window prices, oldest first.

        Args:
            limit: Only return the most recent ``limit`` prices
        """
        ticks = self.snapshot()
        if limit is not None:
            ticks = ticks[-limit:] if limit > 0 else ()
        return [tick.price for tick in ticks]

    @property
    def latest(self) -> Optional[Tick]:
        """Most recent tick, or None before the first tick arrives."""
        with self._lock:
            return self._ticks[-1] if self._ticks else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._ticks)
