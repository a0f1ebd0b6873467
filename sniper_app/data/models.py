"""
Canonical data models for instruments and price data.

Instruments are immutable once discovered. Price samples are kept in a
bounded, append-only rolling window per instrument.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sniper_app.config.defaults import SignalParams


@dataclass(frozen=True, eq=False)
class Instrument:
    """
    Tradable unit on a venue.

    Identity is ``(venue, token_address)`` for on-chain tokens and
    ``(venue, symbol)`` otherwise; name and network are descriptive.
    """
    venue: str
    symbol: str
    token_address: Optional[str] = None
    network: Optional[str] = None
    name: Optional[str] = None

    @property
    def identity(self) -> tuple[str, str]:
        if self.token_address:
            return (self.venue, self.token_address.lower())
        return (self.venue, self.symbol)

    @property
    def key(self) -> str:
        """Stable string key used in logs, events and storage."""
        return f"{self.identity[0]}:{self.identity[1]}"

    def assets(self, default_quote: str) -> tuple[str, str]:
        """Split into (base, quote); symbols without a quote trade against ``default_quote``."""
        if "/" in self.symbol:
            base, quote = self.symbol.split("/", 1)
            return base, quote
        return self.symbol, default_quote

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Instrument):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    def to_dict(self) -> dict:
        return {
            "venue": self.venue,
            "symbol": self.symbol,
            "token_address": self.token_address,
            "network": self.network,
            "name": self.name,
        }


@dataclass(frozen=True)
class PriceSample:
    """OHLCV sample with a UTC timestamp."""
    instrument: Instrument
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def from_price(cls, instrument: Instrument, price: float, timestamp: datetime) -> "PriceSample":
        """Sample built from a single last-trade price."""
        return cls(instrument=instrument, timestamp=timestamp,
                   open=price, high=price, low=price, close=price)


@dataclass
class PriceWindow:
    """Bounded rolling window of price samples for one instrument."""

    instrument: Instrument
    max_len: int = SignalParams.window_size
    samples: deque = field(init=False)

    def __post_init__(self):
        self.samples = deque(maxlen=self.max_len)

    def append(self, sample: PriceSample) -> bool:
        """
        Append a sample, keeping timestamps non-decreasing.

        Returns:
            False when the sample is older than the newest sample and was dropped
        """
        if self.samples and sample.timestamp < self.samples[-1].timestamp:
            return False
        self.samples.append(sample)
        return True

    def extend(self, samples: Iterable[PriceSample]) -> int:
        """Append samples in timestamp order; returns how many were kept."""
        kept = 0
        for sample in sorted(samples, key=lambda s: s.timestamp):
            if self.append(sample):
                kept += 1
        return kept

    def closes(self) -> list[float]:
        return [sample.close for sample in self.samples]

    @property
    def last_price(self) -> Optional[float]:
        return self.samples[-1].close if self.samples else None

    @property
    def last_update(self) -> Optional[datetime]:
        return self.samples[-1].timestamp if self.samples else None

    def __len__(self) -> int:
        return len(self.samples)
