"""
Position lifecycle management.

The ``PositionManager`` owns the live position map. It turns signals into
entry orders, watches open positions for stop-loss / take-profit crossings,
places exit orders and reconciles orders whose outcome is unknown after a
timeout. At most one transition per instrument is in flight at a time.
"""

import threading
import uuid
from collections import deque
from typing import TYPE_CHECKING, Any, Optional

from ..config.defaults import TradingParams
from ..data.models import Instrument
from ..errors import (
    InsufficientFundsError,
    PersistenceError,
    ReconciliationRequired,
    TransientVenueError,
    VenueError,
)
from ..events.bus import EventBus, EventType
from ..logging.config import get_state_logger, log_state_transition
from ..utils.time import utc_now
from ..venues.base import OrderHandle, OrderStatus, OrderUpdate, VenueConnector
from .models import (
    ClosedTrade,
    Direction,
    ExitReason,
    PendingAction,
    Position,
    PositionState,
    Signal,
)
from .transitions import (
    calculate_exit_levels,
    check_exit,
    position_quantity,
    profit_loss_pct,
    validate_transition,
)

if TYPE_CHECKING:
    from ..persistence.trade_store import TradeStore

state_logger = get_state_logger(__name__)


class PositionManager:
    """Owns every live position and the closed trade history."""

    def __init__(
        self,
        venues: dict[str, VenueConnector],
        params: TradingParams,
        event_bus: EventBus,
        trade_store: Optional["TradeStore"] = None
    ):
        self.venues = venues
        self.params = params
        self.event_bus = event_bus
        self.trade_store = trade_store
        self.logger = state_logger

        self._positions: dict[Instrument, Position] = {}
        self._map_lock = threading.Lock()
        self._instrument_locks: dict[Instrument, threading.Lock] = {}
        self._last_prices: dict[Instrument, float] = {}

        self._closed: deque[ClosedTrade] = deque(maxlen=params.closed_trades_retention)
        self._total_trades = 0
        self._winning_trades = 0
        self._losing_trades = 0
        self._total_pnl_pct = 0.0

        if trade_store is not None:
            self._load_history()

    def _load_history(self) -> None:
        try:
            trades = self.trade_store.load_closed_trades(limit=self.params.closed_trades_retention)
        except PersistenceError as e:
            self.logger.error("Failed to load closed trades", error=str(e))
            self.event_bus.error(str(e), stage="startup", error=e)
            return

        for trade in trades:
            self._record_closed(trade)
        self.logger.info("Closed trades loaded", count=len(trades))

    def _instrument_lock(self, instrument: Instrument) -> threading.Lock:
        with self._map_lock:
            lock = self._instrument_locks.get(instrument)
            if lock is None:
                lock = threading.Lock()
                self._instrument_locks[instrument] = lock
            return lock

    # ------------------------------------------------------------------
    # Accessors

    def has_position(self, instrument: Instrument) -> bool:
        with self._map_lock:
            return instrument in self._positions

    def get_position(self, instrument: Instrument) -> Optional[Position]:
        with self._map_lock:
            return self._positions.get(instrument)

    def get_active_positions(self) -> list[Position]:
        """Snapshot of every non-flat position."""
        with self._map_lock:
            return list(self._positions.values())

    def get_closed_trades(self, limit: Optional[int] = None) -> list[ClosedTrade]:
        """Most recent closed trades, oldest first."""
        with self._map_lock:
            trades = list(self._closed)
        if limit is not None:
            trades = trades[-limit:] if limit > 0 else []
        return trades

    def get_unrealized_pnl(self, instrument: Instrument) -> Optional[float]:
        """Unrealized profit/loss percent at the last observed price."""
        with self._map_lock:
            position = self._positions.get(instrument)
            price = self._last_prices.get(instrument)
        if position is None or price is None:
            return None
        return position.unrealized_pnl_pct(price)

    def get_stats(self) -> dict[str, Any]:
        """Trading statistics over every closed trade seen."""
        with self._map_lock:
            by_state: dict[str, int] = {}
            for position in self._positions.values():
                by_state[position.status.value] = by_state.get(position.status.value, 0) + 1
            total = self._total_trades
            return {
                "active_positions": len(self._positions),
                "positions_by_state": by_state,
                "total_trades": total,
                "winning_trades": self._winning_trades,
                "losing_trades": self._losing_trades,
                "win_rate": self._winning_trades / total * 100.0 if total else 0.0,
                "total_profit_loss_pct": self._total_pnl_pct,
            }

    # ------------------------------------------------------------------
    # Entry

    def submit(self, signal: Signal) -> Optional[Position]:
        """
        Open a position for a signal.

        Args:
            signal: Buy or sell signal

        Returns:
            The resulting position (OPEN or RECONCILING), None when the signal
            was rejected or the entry order failed
        """
        instrument = signal.instrument

        with self._instrument_lock(instrument):
            existing = self.get_position(instrument)
            if existing is not None and existing.status == PositionState.RECONCILING:
                order_id = existing.pending_order.client_order_id
                self._reject(
                    signal,
                    "Pending order must be reconciled first",
                    error=ReconciliationRequired(
                        f"Order {order_id} unresolved",
                        client_order_id=order_id,
                        attempts=existing.reconcile_attempts,
                        venue=instrument.venue,
                    ),
                    client_order_id=order_id
                )
                return None
            if existing is not None:
                self._reject(signal, "Position already exists for instrument")
                return None

            if len(self.get_active_positions()) >= self.params.max_open_positions:
                self._reject(signal, "Maximum open positions reached",
                             max_open_positions=self.params.max_open_positions)
                return None

            venue = self.venues.get(instrument.venue)
            if venue is None:
                self._reject(signal, f"Unknown venue: {instrument.venue}")
                return None

            try:
                price = signal.price if signal.price else venue.get_price(instrument)
                quantity = position_quantity(self.params.position_size, price)
                if quantity <= 0:
                    self._reject(signal, "Order quantity rounds to zero", price=price)
                    return None
                self._check_balance(venue, instrument, signal.direction, quantity, price)
            except InsufficientFundsError as e:
                self._reject(signal, str(e), error=e, asset=e.asset,
                             required=e.required, available=e.available)
                return None
            except VenueError as e:
                self._reject(signal, f"Entry pre-check failed: {e}", error=e)
                return None
            except Exception as e:
                self.logger.exception("Unexpected entry pre-check failure",
                                      instrument=instrument.key)
                self._reject(signal, f"Entry pre-check failed: {e}", error=e)
                return None

            client_order_id = uuid.uuid4().hex
            now = utc_now()
            entering = Position(
                instrument=instrument,
                direction=signal.direction,
                status=PositionState.ENTERING,
                quantity=quantity,
                pending_order=OrderHandle(venue=venue.name, client_order_id=client_order_id),
                pending_action=PendingAction.ENTRY,
                updated_at=now,
            )
            if not self._reserve(entering):
                self._reject(signal, "Maximum open positions reached",
                             max_open_positions=self.params.max_open_positions)
                return None
            log_state_transition(
                self.logger,
                instrument=instrument.key,
                from_state=PositionState.FLAT.value,
                to_state=PositionState.ENTERING.value,
                trigger="signal",
                context={"direction": signal.direction.value, "quantity": quantity,
                         "price": price, "reason": signal.reason}
            )

            try:
                handle = venue.place_order(instrument, signal.direction.entry_side, quantity,
                                           client_order_id=client_order_id)
            except TransientVenueError as e:
                if e.timed_out:
                    return self._to_reconciling(entering, "entry_timeout", str(e))
                self._entry_failed(entering, e)
                return None
            except VenueError as e:
                self._entry_failed(entering, e)
                return None
            except Exception as e:
                self.logger.exception("Unexpected entry order failure", instrument=instrument.key)
                self._entry_failed(entering, e)
                return None

            entering = entering.with_pending_order(PositionState.ENTERING, handle,
                                                   PendingAction.ENTRY, utc_now())
            self._put(entering)
            # The order exists on the venue from here on; only its reported
            # status may send the position back to FLAT.
            try:
                update = venue.get_order_status(handle)
            except Exception as e:
                self.logger.warning("Entry order status unavailable", instrument=instrument.key,
                                    client_order_id=handle.client_order_id, error=str(e))
                return self._to_reconciling(entering, "entry_status_unknown", str(e))

            return self._apply_entry_update(entering, update, price)

    def _check_balance(self, venue: VenueConnector, instrument: Instrument,
                       direction: Direction, quantity: float, price: float) -> None:
        base, quote = instrument.assets(self.params.quote_asset)
        if direction == Direction.BUY:
            asset, required = quote, quantity * price
        else:
            asset, required = base, quantity

        balance = venue.get_balance(asset)
        if balance.free < required:
            raise InsufficientFundsError(
                f"Insufficient {asset} balance: {balance.free} < {required}",
                venue=venue.name, asset=asset, required=required, available=balance.free
            )

    def _apply_entry_update(self, position: Position, update: OrderUpdate,
                            fallback_price: Optional[float]) -> Optional[Position]:
        if update.status == OrderStatus.FILLED:
            entry_price = update.filled_price or fallback_price
            quantity = update.filled_quantity or position.quantity
            stop_loss, take_profit = calculate_exit_levels(
                entry_price, position.direction,
                self.params.stop_loss_pct, self.params.take_profit_pct
            )
            opened = position.with_entry_fill(entry_price, quantity, stop_loss,
                                              take_profit, utc_now())
            self._transition(position, opened, "entry_filled",
                             entry_price=entry_price, stop_loss=stop_loss,
                             take_profit=take_profit)
            with self._map_lock:
                self._last_prices[position.instrument] = entry_price
            self.event_bus.emit(EventType.POSITION_OPENED, opened)
            return opened

        if update.status in (OrderStatus.FAILED, OrderStatus.CANCELLED):
            self._entry_failed(position, VenueError(
                update.message or f"Entry order {update.status.value}",
                venue=position.instrument.venue))
            return None

        return self._to_reconciling(position, "entry_unconfirmed", update.status.value)

    def _entry_failed(self, position: Position, error: Exception) -> None:
        flat = position.with_status(PositionState.FLAT, utc_now())
        self._transition(position, flat, "entry_failed", error=str(error))
        self.event_bus.error(
            f"Entry order failed: {error}",
            stage="entry",
            instrument=position.instrument.key,
            venue=position.instrument.venue,
            error=error
        )

    # ------------------------------------------------------------------
    # Monitoring and exit

    def monitor(self) -> int:
        """
        Run one monitoring cycle over every live position.

        Returns:
            Number of positions closed during the cycle
        """
        closed = 0
        for position in self.get_active_positions():
            instrument = position.instrument
            with self._instrument_lock(instrument):
                current = self.get_position(instrument)
                if current is None:
                    continue
                try:
                    if current.status == PositionState.OPEN:
                        closed += self._check_open(current)
                    elif current.status == PositionState.RECONCILING:
                        closed += self._reconcile(current)
                except Exception as e:
                    self.logger.exception("Position monitoring failed", instrument=instrument.key)
                    self.event_bus.error(
                        f"Monitoring failed: {e}",
                        stage="monitor",
                        instrument=instrument.key,
                        venue=instrument.venue,
                        error=e
                    )
        return closed

    def _check_open(self, position: Position) -> int:
        venue = self.venues[position.instrument.venue]
        try:
            price = venue.get_price(position.instrument)
        except VenueError as e:
            self.logger.warning("Price fetch failed", instrument=position.instrument.key, error=str(e))
            self.event_bus.error(
                f"Price fetch failed: {e}",
                stage="monitor",
                instrument=position.instrument.key,
                venue=position.instrument.venue,
                error=e
            )
            return 0

        with self._map_lock:
            self._last_prices[position.instrument] = price

        reason = check_exit(position, price)
        if reason is None:
            return 0
        return self._close(position, reason, price)

    def _close(self, position: Position, reason: str, price: float) -> int:
        venue = self.venues[position.instrument.venue]
        client_order_id = uuid.uuid4().hex
        closing = position.with_pending_order(
            PositionState.CLOSING,
            OrderHandle(venue=venue.name, client_order_id=client_order_id),
            PendingAction.EXIT,
            utc_now(),
            exit_reason=reason,
        )
        self._transition(position, closing, "exit_triggered", exit_reason=reason, price=price)

        try:
            handle = venue.place_order(position.instrument, position.direction.exit_side,
                                       position.quantity, client_order_id=client_order_id)
        except TransientVenueError as e:
            if e.timed_out:
                self._to_reconciling(closing, "exit_timeout", str(e))
                return 0
            self._exit_failed(closing, e)
            return 0
        except VenueError as e:
            self._exit_failed(closing, e)
            return 0
        except Exception as e:
            self.logger.exception("Unexpected exit order failure", instrument=position.instrument.key)
            self._exit_failed(closing, e)
            return 0

        closing = closing.with_pending_order(PositionState.CLOSING, handle,
                                             PendingAction.EXIT, utc_now())
        self._put(closing)
        try:
            update = venue.get_order_status(handle)
        except Exception as e:
            self.logger.warning("Exit order status unavailable",
                                instrument=position.instrument.key,
                                client_order_id=handle.client_order_id, error=str(e))
            self._to_reconciling(closing, "exit_status_unknown", str(e))
            return 0

        return self._apply_exit_update(closing, update, price)

    def _apply_exit_update(self, position: Position, update: OrderUpdate,
                           fallback_price: float) -> int:
        if update.status == OrderStatus.FILLED:
            exit_price = update.filled_price or fallback_price
            now = utc_now()
            trade = ClosedTrade(
                instrument=position.instrument,
                direction=position.direction,
                entry_price=position.entry_price,
                exit_price=exit_price,
                quantity=position.quantity,
                profit_loss_pct=profit_loss_pct(position.entry_price, exit_price,
                                                position.direction),
                opened_at=position.opened_at,
                closed_at=now,
                exit_reason=position.exit_reason,
            )
            self._transition(position, position.with_status(PositionState.FLAT, now),
                             "exit_filled", exit_price=exit_price,
                             profit_loss_pct=trade.profit_loss_pct)
            with self._map_lock:
                self._record_closed(trade)
                self._last_prices.pop(position.instrument, None)
            self._persist(trade)
            self.event_bus.emit(EventType.POSITION_CLOSED, trade)
            return 1

        if update.status in (OrderStatus.FAILED, OrderStatus.CANCELLED):
            self._exit_failed(position, VenueError(
                update.message or f"Exit order {update.status.value}",
                venue=position.instrument.venue))
            return 0

        self._to_reconciling(position, "exit_unconfirmed", update.status.value)
        return 0

    def _exit_failed(self, position: Position, error: Exception) -> None:
        reopened = position.reopened(utc_now())
        self._transition(position, reopened, "exit_failed", error=str(error))
        self.event_bus.error(
            f"Exit order failed, retrying next cycle: {error}",
            stage="exit",
            instrument=position.instrument.key,
            venue=position.instrument.venue,
            error=error
        )

    def close_all(self, reason: str = ExitReason.SHUTDOWN) -> int:
        """
        Close every open position at the current price.

        Returns:
            Number of positions closed
        """
        closed = 0
        for position in self.get_active_positions():
            instrument = position.instrument
            with self._instrument_lock(instrument):
                current = self.get_position(instrument)
                if current is None:
                    continue
                if current.status != PositionState.OPEN:
                    self.logger.warning("Position not closable on shutdown",
                                        instrument=instrument.key, status=current.status.value)
                    continue
                try:
                    price = self.venues[instrument.venue].get_price(instrument)
                    closed += self._close(current, reason, price)
                except Exception as e:
                    if not isinstance(e, VenueError):
                        self.logger.exception("Unexpected close failure on shutdown",
                                              instrument=instrument.key)
                    self.event_bus.error(
                        f"Close on shutdown failed: {e}",
                        stage="shutdown",
                        instrument=instrument.key,
                        venue=instrument.venue,
                        error=e
                    )
        return closed

    # ------------------------------------------------------------------
    # Reconciliation

    def _to_reconciling(self, position: Position, trigger: str, detail: str) -> Position:
        reconciling = position.with_status(PositionState.RECONCILING, utc_now())
        self._transition(position, reconciling, trigger, detail=detail)
        self.logger.warning(
            "Order outcome unknown, reconciling next cycle",
            instrument=position.instrument.key,
            client_order_id=position.pending_order.client_order_id if position.pending_order else None,
            action=position.pending_action.value if position.pending_action else None
        )
        return reconciling

    def _reconcile(self, position: Position) -> int:
        venue = self.venues[position.instrument.venue]
        update: Optional[OrderUpdate] = None
        try:
            update = venue.get_order_status(position.pending_order)
        except Exception as e:
            self.logger.warning("Order status query failed", instrument=position.instrument.key,
                                error=str(e))

        if update is None or not update.status.is_final:
            attempt = position.with_reconcile_attempt(utc_now())
            self._put(attempt)
            if attempt.reconcile_attempts >= self.params.stuck_after_attempts:
                order_id = position.pending_order.client_order_id
                self.event_bus.error(
                    "Position stuck in reconciliation",
                    stage="reconcile",
                    instrument=position.instrument.key,
                    venue=position.instrument.venue,
                    error=ReconciliationRequired(
                        f"Order {order_id} unresolved after {attempt.reconcile_attempts} attempts",
                        client_order_id=order_id,
                        attempts=attempt.reconcile_attempts,
                        venue=position.instrument.venue,
                    ),
                    client_order_id=order_id,
                    attempts=attempt.reconcile_attempts,
                    action=position.pending_action.value
                )
            return 0

        if position.pending_action == PendingAction.ENTRY:
            fallback = update.filled_price
            if fallback is None and update.status == OrderStatus.FILLED:
                fallback = venue.get_price(position.instrument)
            self._apply_entry_update(position, update, fallback)
            return 0

        with self._map_lock:
            fallback = self._last_prices.get(position.instrument, position.entry_price)
        return self._apply_exit_update(position, update, fallback)

    # ------------------------------------------------------------------
    # Map mutation

    def _reserve(self, position: Position) -> bool:
        with self._map_lock:
            if position.instrument in self._positions:
                return False
            if len(self._positions) >= self.params.max_open_positions:
                return False
            self._positions[position.instrument] = position
            return True

    def _put(self, position: Position) -> None:
        with self._map_lock:
            self._positions[position.instrument] = position

    def _transition(self, current: Position, new: Position, trigger: str, **context: Any) -> None:
        validate_transition(current.status, new.status)
        with self._map_lock:
            if new.status == PositionState.FLAT:
                self._positions.pop(new.instrument, None)
            else:
                self._positions[new.instrument] = new

        log_state_transition(
            self.logger,
            instrument=new.instrument.key,
            from_state=current.status.value,
            to_state=new.status.value,
            trigger=trigger,
            context=context or None
        )

    def _record_closed(self, trade: ClosedTrade) -> None:
        self._closed.append(trade)
        self._total_trades += 1
        self._total_pnl_pct += trade.profit_loss_pct
        if trade.is_win:
            self._winning_trades += 1
        elif trade.profit_loss_pct < 0:
            self._losing_trades += 1

    def _persist(self, trade: ClosedTrade) -> None:
        if self.trade_store is None:
            return
        try:
            self.trade_store.save_closed_trade(trade)
        except PersistenceError as e:
            self.event_bus.error(
                f"Closed trade not persisted: {e}",
                stage="persistence",
                instrument=trade.instrument.key,
                venue=trade.instrument.venue,
                error=e
            )

    def _reject(self, signal: Signal, message: str, error: Optional[Exception] = None,
                **context: Any) -> None:
        self.logger.warning("Signal rejected", instrument=signal.instrument.key,
                            direction=signal.direction.value, reason=message)
        self.event_bus.error(
            f"Signal rejected: {message}",
            stage="entry",
            instrument=signal.instrument.key,
            venue=signal.instrument.venue,
            error=error,
            direction=signal.direction.value,
            **context
        )
