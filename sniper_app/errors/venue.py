"""
Venue and instrument error classifications.

Raised by or on behalf of VenueConnector / PairRegistry calls. None of these
abort a cycle for other venues or instruments.
"""

from typing import Optional, Dict, Any

from .recovery import RecoverableError


class VenueError(Exception):
    """Base class for failures attributable to a single venue."""

    def __init__(self, message: str, venue: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.venue = venue
        self.context = context or {}
        self.recoverable = True


class TransientVenueError(VenueError, RecoverableError):
    """Network failure or timeout talking to a venue; retried next cycle."""

    def __init__(self, message: str, venue: Optional[str] = None,
                 operation: Optional[str] = None, timed_out: bool = False, **kwargs):
        VenueError.__init__(self, message, venue=venue, context=kwargs.get("context"))
        self.operation = operation
        self.timed_out = timed_out
        self.retry_count = kwargs.get("retry_count", 0)


class InsufficientFundsError(VenueError):
    """Free balance does not cover the requested order; the signal is rejected."""

    def __init__(self, message: str, asset: Optional[str] = None,
                 required: Optional[float] = None, available: Optional[float] = None,
                 **kwargs):
        super().__init__(message, **kwargs)
        self.asset = asset
        self.required = required
        self.available = available
        self.recoverable = False


class InvalidInstrumentError(VenueError):
    """Instrument metadata could not be fetched; the instrument is skipped."""

    def __init__(self, message: str, address: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.address = address


class ReconciliationRequired(VenueError):
    """
    Order outcome unknown after a timeout.

    The instrument accepts no further transitions until the order status has
    been re-queried and resolved.
    """

    def __init__(self, message: str, client_order_id: Optional[str] = None,
                 attempts: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.client_order_id = client_order_id
        self.attempts = attempts
