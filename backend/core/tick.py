"""
Price tick domain model

A tick is one observed price update for the simulated instrument.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class Tick:
    """
    One price observation delivered by the feed adapter.

    Immutable once created. Prices must be positive; a malformed feed
    message is rejected here and dropped by the adapter.

    Attributes:
        price: Observed price
        time: Observation time (UTC)
    """

    price: Decimal
    time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not isinstance(self.price, Decimal):
            object.__setattr__(self, "price", Decimal(str(self.price)))

        if not self.price.is_finite() or self.price <= 0:
            raise ValueError(f"Tick price must be positive, got {self.price}")

    def to_dict(self) -> dict:
        """Convert tick to dictionary for API serialization."""
        return {
            "time": self.time.isoformat(),
            "price": str(self.price),
        }
