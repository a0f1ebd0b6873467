"""
Error classification for the discovery and trading pipeline.

Exceptions are grouped by how the engine reacts to them: venue and
instrument failures are isolated to a single venue or instrument, system
failures are fatal or indicate a programming error.
"""

from .venue import (
    VenueError,
    TransientVenueError,
    InsufficientFundsError,
    InvalidInstrumentError,
    ReconciliationRequired,
)
from .system_failures import (
    SystemFailureError,
    ConfigurationError,
    StateTransitionError,
    PersistenceError,
)
from .recovery import (
    RecoverableError,
)

__all__ = [
    # Venue / instrument errors
    "VenueError",
    "TransientVenueError",
    "InsufficientFundsError",
    "InvalidInstrumentError",
    "ReconciliationRequired",
    # System failures
    "SystemFailureError",
    "ConfigurationError",
    "StateTransitionError",
    "PersistenceError",
    # Recovery categories
    "RecoverableError",
]
