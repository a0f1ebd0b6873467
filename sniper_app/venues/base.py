"""
Venue capability interfaces.

A ``VenueConnector`` quotes, holds balances and executes orders on one
exchange or DEX. A ``PairRegistry`` enumerates the pairs listed on a venue so
the scanner can discover new instruments. Concrete connectors come from
``ConnectorFactory`` keyed by the venue's configured ``kind``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..data.models import Instrument, PriceSample


class OrderSide(str, Enum):
    """Order side."""
    BUY = "buy"
    SELL = "sell"


class OrderStatus(str, Enum):
    """Venue-reported order state."""
    PENDING = "pending"
    FILLED = "filled"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @property
    def is_final(self) -> bool:
        return self in (OrderStatus.FILLED, OrderStatus.FAILED, OrderStatus.CANCELLED)


@dataclass(frozen=True)
class Balance:
    """Balance of one asset."""
    asset: str
    free: float
    locked: float = 0.0

    @property
    def total(self) -> float:
        return self.free + self.locked


@dataclass(frozen=True)
class OrderHandle:
    """Reference to a submitted order; ``client_order_id`` survives timeouts."""
    venue: str
    client_order_id: str
    order_id: Optional[str] = None


@dataclass(frozen=True)
class OrderUpdate:
    """Order state as reported by the venue."""
    handle: OrderHandle
    status: OrderStatus
    filled_price: Optional[float] = None
    filled_quantity: float = 0.0
    message: Optional[str] = None


@dataclass(frozen=True)
class TokenMetadata:
    """Descriptive token data from a pair registry."""
    address: str
    symbol: str
    name: Optional[str] = None
    decimals: Optional[int] = None
    network: Optional[str] = None


@dataclass(frozen=True)
class PairListing:
    """One entry of a venue's pair registry."""
    pair_id: str
    tokens: tuple[str, ...]
    created_at: Optional[datetime] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VolumeBreakdown:
    """Buy and sell volume over the venue's reporting window."""
    buy_volume: float = 0.0
    sell_volume: float = 0.0

    @property
    def total(self) -> float:
        return self.buy_volume + self.sell_volume


class VenueConnector(ABC):
    """Trading capability of a single venue."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def get_price(self, instrument: Instrument) -> float:
        """Latest traded price of the instrument."""
        pass

    @abstractmethod
    def get_balance(self, asset: str) -> Balance:
        """Free and locked balance of an asset."""
        pass

    @abstractmethod
    def place_order(
        self,
        instrument: Instrument,
        side: OrderSide,
        quantity: float,
        price: Optional[float] = None,
        client_order_id: Optional[str] = None
    ) -> OrderHandle:
        """
        Submit an order.

        Args:
            instrument: Instrument to trade
            side: Buy or sell
            quantity: Base asset quantity
            price: Limit price, market order when None
            client_order_id: Caller-generated id used to re-query the order

        Returns:
            Handle identifying the order on the venue
        """
        pass

    @abstractmethod
    def get_order_status(self, handle: OrderHandle) -> OrderUpdate:
        """Current state of a previously placed order."""
        pass

    @abstractmethod
    def cancel_order(self, handle: OrderHandle) -> bool:
        """Cancel an open order; False when it could not be cancelled."""
        pass

    # Optional market data. Venues that cannot provide a metric report the
    # neutral value and scoring treats it as missing.

    def get_liquidity(self, instrument: Instrument) -> float:
        return 0.0

    def get_holder_count(self, instrument: Instrument) -> int:
        return 0

    def get_market_cap(self, instrument: Instrument) -> float:
        return 0.0

    def get_transaction_volume(self, instrument: Instrument) -> VolumeBreakdown:
        return VolumeBreakdown()

    def get_price_history(self, instrument: Instrument, limit: int) -> list[PriceSample]:
        """Most recent ``limit`` samples in chronological order."""
        return []

    def close(self) -> None:
        """Release connections held by the connector."""
        pass


class PairRegistry(ABC):
    """Enumerable list of pairs created on a venue."""

    @abstractmethod
    def pair_count(self) -> int:
        """Number of pairs currently registered."""
        pass

    @abstractmethod
    def pair_at(self, index: int) -> PairListing:
        """Pair at a registry index; indexes are stable and append-only."""
        pass

    @abstractmethod
    def token_metadata(self, address: str) -> TokenMetadata:
        """Symbol, name and decimals of a token."""
        pass
