"""Venue connectors, pair registries and their construction"""

from .base import (
    Balance,
    OrderHandle,
    OrderSide,
    OrderStatus,
    OrderUpdate,
    PairListing,
    PairRegistry,
    TokenMetadata,
    VenueConnector,
    VolumeBreakdown,
)
from .factory import ConnectorFactory, default_factory
from .guard import GuardedVenue
from .paper import PaperVenue

__all__ = [
    "Balance",
    "OrderHandle",
    "OrderSide",
    "OrderStatus",
    "OrderUpdate",
    "PairListing",
    "PairRegistry",
    "TokenMetadata",
    "VenueConnector",
    "VolumeBreakdown",
    "ConnectorFactory",
    "default_factory",
    "GuardedVenue",
    "PaperVenue",
]
