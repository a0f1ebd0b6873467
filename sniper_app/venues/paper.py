"""
In-memory paper trading venue.

Implements both ``VenueConnector`` and ``PairRegistry`` against local state so
the engine can run end to end without an exchange. Prices, balances, market
data and listed pairs are set directly; failures can be injected per
operation.
"""

import threading
import uuid
from datetime import timedelta
from typing import Any, Optional

import structlog

from ..config.defaults import VenueSettings
from ..data.models import Instrument, PriceSample
from ..errors import InsufficientFundsError, InvalidInstrumentError, TransientVenueError, VenueError
from ..utils.time import utc_now
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

logger = structlog.get_logger(__name__)


class PaperVenue(VenueConnector, PairRegistry):
    """Simulated venue with immediate fills at the current price."""

    def __init__(self, name: str, quote_asset: str = "USDT",
                 balances: Optional[dict[str, float]] = None,
                 prices: Optional[dict[str, float]] = None):
        super().__init__(name)
        self.quote_asset = quote_asset
        self._lock = threading.RLock()

        self._prices: dict[tuple[str, str], float] = {}
        self._symbol_prices: dict[str, float] = dict(prices or {})
        self._balances: dict[str, Balance] = {
            asset: Balance(asset=asset, free=float(amount))
            for asset, amount in (balances or {}).items()
        }
        self._market_data: dict[tuple[str, str], dict[str, Any]] = {}
        self._history: dict[tuple[str, str], list[PriceSample]] = {}

        self._pairs: list[PairListing] = []
        self._tokens: dict[str, TokenMetadata] = {}

        self._orders: dict[str, OrderUpdate] = {}
        self._order_requests: dict[str, dict[str, Any]] = {}

        # Fault injection
        self._failures: dict[str, Exception] = {}
        self._bad_tokens: set[str] = set()
        self.order_status = OrderStatus.FILLED
        self.timeout_on_submit = False

        self.calls: dict[str, int] = {}

    @classmethod
    def from_settings(cls, settings: VenueSettings) -> "PaperVenue":
        """Build from venue settings; ``options`` may seed balances and prices."""
        options = settings.options or {}
        return cls(
            name=settings.name,
            quote_asset=options.get("quote_asset", "USDT"),
            balances=options.get("balances"),
            prices=options.get("prices"),
        )

    # ------------------------------------------------------------------
    # Simulation controls

    def set_price(self, instrument: Instrument, price: float) -> None:
        with self._lock:
            self._prices[instrument.identity] = float(price)

    def set_balance(self, asset: str, free: float, locked: float = 0.0) -> None:
        with self._lock:
            self._balances[asset] = Balance(asset=asset, free=float(free), locked=float(locked))

    def set_market_data(self, instrument: Instrument, **values: Any) -> None:
        """Set liquidity, holders, market_cap, buy_volume or sell_volume."""
        with self._lock:
            self._market_data.setdefault(instrument.identity, {}).update(values)

    def set_price_history(self, instrument: Instrument, closes: list[float]) -> None:
        """Replace history with one sample per minute ending now."""
        now = utc_now()
        count = len(closes)
        samples = [
            PriceSample.from_price(instrument, price, now - timedelta(minutes=count - i))
            for i, price in enumerate(closes)
        ]
        with self._lock:
            self._history[instrument.identity] = samples

    def add_pair(self, tokens: tuple[TokenMetadata, ...], pair_id: Optional[str] = None) -> PairListing:
        """List a new pair; its tokens become resolvable through ``token_metadata``."""
        with self._lock:
            for token in tokens:
                self._tokens[token.address.lower()] = token
            listing = PairListing(
                pair_id=pair_id or f"pair-{len(self._pairs)}",
                tokens=tuple(token.address for token in tokens),
                created_at=utc_now(),
            )
            self._pairs.append(listing)
            return listing

    def fail(self, operation: str, error: Exception) -> None:
        """Raise ``error`` from every call to ``operation`` until cleared."""
        with self._lock:
            self._failures[operation] = error

    def clear_failure(self, operation: Optional[str] = None) -> None:
        with self._lock:
            if operation is None:
                self._failures.clear()
            else:
                self._failures.pop(operation, None)

    def break_token(self, address: str) -> None:
        """Make metadata lookups for a token fail."""
        with self._lock:
            self._bad_tokens.add(address.lower())

    def resolve_order(self, client_order_id: str, status: OrderStatus,
                      price: Optional[float] = None) -> None:
        """Move a pending order to a final state."""
        with self._lock:
            request = self._order_requests[client_order_id]
            if status == OrderStatus.FILLED:
                fill_price = price if price is not None else request["price"]
                self._settle(request["instrument"], request["side"], request["quantity"], fill_price)
                update = OrderUpdate(
                    handle=request["handle"],
                    status=status,
                    filled_price=fill_price,
                    filled_quantity=request["quantity"],
                )
            else:
                update = OrderUpdate(handle=request["handle"], status=status,
                                     message="Resolved by simulation")
            self._orders[client_order_id] = update

    # ------------------------------------------------------------------
    # VenueConnector

    def _enter(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        error = self._failures.get(operation)
        if error is not None:
            raise error

    def get_price(self, instrument: Instrument) -> float:
        with self._lock:
            self._enter("get_price")
            if instrument.identity in self._prices:
                return self._prices[instrument.identity]
            if instrument.symbol in self._symbol_prices:
                return float(self._symbol_prices[instrument.symbol])
            raise VenueError(f"No price for {instrument.symbol}", venue=self.name,
                             context={"instrument": instrument.key})

    def get_balance(self, asset: str) -> Balance:
        with self._lock:
            self._enter("get_balance")
            return self._balances.get(asset, Balance(asset=asset, free=0.0))

    def place_order(
        self,
        instrument: Instrument,
        side: OrderSide,
        quantity: float,
        price: Optional[float] = None,
        client_order_id: Optional[str] = None
    ) -> OrderHandle:
        with self._lock:
            self._enter("place_order")
            client_order_id = client_order_id or uuid.uuid4().hex
            if client_order_id in self._orders:
                return self._orders[client_order_id].handle

            fill_price = price if price is not None else self.get_price(instrument)
            handle = OrderHandle(venue=self.name, client_order_id=client_order_id,
                                 order_id=f"paper-{len(self._orders) + 1}")

            if self.order_status == OrderStatus.FILLED:
                self._settle(instrument, side, quantity, fill_price)
                update = OrderUpdate(handle=handle, status=OrderStatus.FILLED,
                                     filled_price=fill_price, filled_quantity=quantity)
            else:
                update = OrderUpdate(handle=handle, status=self.order_status)

            self._orders[client_order_id] = update
            self._order_requests[client_order_id] = {
                "instrument": instrument,
                "side": side,
                "quantity": quantity,
                "price": fill_price,
                "handle": handle,
            }
            logger.debug("Paper order placed", venue=self.name, instrument=instrument.key,
                         side=side.value, quantity=quantity, status=update.status.value)

            if self.timeout_on_submit:
                raise TransientVenueError("Order submission timed out", venue=self.name,
                                          operation="place_order", timed_out=True)
            return handle

    def get_order_status(self, handle: OrderHandle) -> OrderUpdate:
        with self._lock:
            self._enter("get_order_status")
            update = self._orders.get(handle.client_order_id)
            if update is None:
                return OrderUpdate(handle=handle, status=OrderStatus.UNKNOWN,
                                   message="Order not found")
            return update

    def cancel_order(self, handle: OrderHandle) -> bool:
        with self._lock:
            self._enter("cancel_order")
            update = self._orders.get(handle.client_order_id)
            if update is None or update.status.is_final:
                return False
            self._orders[handle.client_order_id] = OrderUpdate(
                handle=update.handle, status=OrderStatus.CANCELLED)
            return True

    def _settle(self, instrument: Instrument, side: OrderSide, quantity: float, price: float) -> None:
        base, quote = instrument.assets(self.quote_asset)
        notional = quantity * price
        base_balance = self._balances.get(base, Balance(asset=base, free=0.0))
        quote_balance = self._balances.get(quote, Balance(asset=quote, free=0.0))

        if side == OrderSide.BUY:
            if quote_balance.free < notional:
                raise InsufficientFundsError(
                    f"Insufficient {quote} balance", venue=self.name,
                    asset=quote, required=notional, available=quote_balance.free)
            self._balances[quote] = Balance(quote, quote_balance.free - notional, quote_balance.locked)
            self._balances[base] = Balance(base, base_balance.free + quantity, base_balance.locked)
        else:
            if base_balance.free < quantity:
                raise InsufficientFundsError(
                    f"Insufficient {base} balance", venue=self.name,
                    asset=base, required=quantity, available=base_balance.free)
            self._balances[base] = Balance(base, base_balance.free - quantity, base_balance.locked)
            self._balances[quote] = Balance(quote, quote_balance.free + notional, quote_balance.locked)

    # Market data

    def _metric(self, instrument: Instrument, name: str, operation: str, default: Any) -> Any:
        with self._lock:
            self._enter(operation)
            return self._market_data.get(instrument.identity, {}).get(name, default)

    def get_liquidity(self, instrument: Instrument) -> float:
        return float(self._metric(instrument, "liquidity", "get_liquidity", 0.0))

    def get_holder_count(self, instrument: Instrument) -> int:
        return int(self._metric(instrument, "holders", "get_holder_count", 0))

    def get_market_cap(self, instrument: Instrument) -> float:
        return float(self._metric(instrument, "market_cap", "get_market_cap", 0.0))

    def get_transaction_volume(self, instrument: Instrument) -> VolumeBreakdown:
        with self._lock:
            self._enter("get_transaction_volume")
            data = self._market_data.get(instrument.identity, {})
            return VolumeBreakdown(buy_volume=float(data.get("buy_volume", 0.0)),
                                   sell_volume=float(data.get("sell_volume", 0.0)))

    def get_price_history(self, instrument: Instrument, limit: int) -> list[PriceSample]:
        with self._lock:
            self._enter("get_price_history")
            return list(self._history.get(instrument.identity, [])[-limit:])

    # ------------------------------------------------------------------
    # PairRegistry

    def pair_count(self) -> int:
        with self._lock:
            self._enter("pair_count")
            return len(self._pairs)

    def pair_at(self, index: int) -> PairListing:
        with self._lock:
            self._enter("pair_at")
            if index < 0 or index >= len(self._pairs):
                raise VenueError(f"Pair index out of range: {index}", venue=self.name)
            return self._pairs[index]

    def token_metadata(self, address: str) -> TokenMetadata:
        with self._lock:
            self._enter("token_metadata")
            key = address.lower()
            if key in self._bad_tokens or key not in self._tokens:
                raise InvalidInstrumentError(f"Metadata unavailable for {address}",
                                             venue=self.name, address=address)
            return self._tokens[key]
