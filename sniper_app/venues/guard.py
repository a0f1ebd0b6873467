"""
Bounded venue calls.

``GuardedVenue`` wraps a connector (and its pair registry, if any) so every
call runs on a worker thread with a timeout. Timeouts and network failures
surface as ``TransientVenueError``; venue errors pass through unchanged.
"""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional

from ..data.models import Instrument, PriceSample
from ..errors import TransientVenueError, VenueError
from ..logging.config import get_venue_logger
from .base import (
    Balance,
    OrderHandle,
    OrderSide,
    OrderUpdate,
    PairListing,
    PairRegistry,
    TokenMetadata,
    VenueConnector,
    VolumeBreakdown,
)


class GuardedVenue(VenueConnector, PairRegistry):
    """Timeout-bounded view of a venue connector."""

    def __init__(self, connector: VenueConnector, registry: Optional[PairRegistry] = None,
                 timeout_seconds: float = 10.0, max_workers: int = 4):
        super().__init__(connector.name)
        self.connector = connector
        self.registry = registry
        self.timeout_seconds = timeout_seconds
        self.logger = get_venue_logger(__name__, connector.name)
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix=f"venue-{connector.name}")

    @property
    def has_registry(self) -> bool:
        return self.registry is not None

    def _call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        future = self._executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError as e:
            future.cancel()
            self.logger.warning("Venue call timed out", operation=operation,
                                timeout_seconds=self.timeout_seconds)
            raise TransientVenueError(
                f"{operation} timed out after {self.timeout_seconds}s",
                venue=self.name, operation=operation, timed_out=True
            ) from e
        except VenueError:
            raise
        except OSError as e:
            raise TransientVenueError(
                f"{operation} failed: {e}", venue=self.name, operation=operation
            ) from e

    def get_price(self, instrument: Instrument) -> float:
        return self._call("get_price", self.connector.get_price, instrument)

    def get_balance(self, asset: str) -> Balance:
        return self._call("get_balance", self.connector.get_balance, asset)

    def place_order(
        self,
        instrument: Instrument,
        side: OrderSide,
        quantity: float,
        price: Optional[float] = None,
        client_order_id: Optional[str] = None
    ) -> OrderHandle:
        return self._call("place_order", self.connector.place_order, instrument, side,
                          quantity, price=price, client_order_id=client_order_id)

    def get_order_status(self, handle: OrderHandle) -> OrderUpdate:
        return self._call("get_order_status", self.connector.get_order_status, handle)

    def cancel_order(self, handle: OrderHandle) -> bool:
        return self._call("cancel_order", self.connector.cancel_order, handle)

    def get_liquidity(self, instrument: Instrument) -> float:
        return self._call("get_liquidity", self.connector.get_liquidity, instrument)

    def get_holder_count(self, instrument: Instrument) -> int:
        return self._call("get_holder_count", self.connector.get_holder_count, instrument)

    def get_market_cap(self, instrument: Instrument) -> float:
        return self._call("get_market_cap", self.connector.get_market_cap, instrument)

    def get_transaction_volume(self, instrument: Instrument) -> VolumeBreakdown:
        return self._call("get_transaction_volume", self.connector.get_transaction_volume,
                          instrument)

    def get_price_history(self, instrument: Instrument, limit: int) -> list[PriceSample]:
        return self._call("get_price_history", self.connector.get_price_history,
                          instrument, limit)

    def _require_registry(self) -> PairRegistry:
        if self.registry is None:
            raise VenueError("Venue has no pair registry", venue=self.name)
        return self.registry

    def pair_count(self) -> int:
        return self._call("pair_count", self._require_registry().pair_count)

    def pair_at(self, index: int) -> PairListing:
        return self._call("pair_at", self._require_registry().pair_at, index)

    def token_metadata(self, address: str) -> TokenMetadata:
        return self._call("token_metadata", self._require_registry().token_metadata, address)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.connector.close()
