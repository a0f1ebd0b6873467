"""
Position lifecycle data models.

Positions are immutable: every transition produces a new ``Position`` that
replaces the previous one in the manager's map. Closed trades are
append-only records.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..data.models import Instrument
from ..utils.time import format_time
from ..venues.base import OrderHandle, OrderSide


class PositionState(str, Enum):
    """Position lifecycle states."""
    FLAT = "flat"
    ENTERING = "entering"
    OPEN = "open"
    CLOSING = "closing"
    RECONCILING = "reconciling"


class Direction(str, Enum):
    """Trade direction; a sell entry is a short position."""
    BUY = "buy"
    SELL = "sell"

    @property
    def sign(self) -> int:
        return 1 if self == Direction.BUY else -1

    @property
    def entry_side(self) -> OrderSide:
        return OrderSide.BUY if self == Direction.BUY else OrderSide.SELL

    @property
    def exit_side(self) -> OrderSide:
        return OrderSide.SELL if self == Direction.BUY else OrderSide.BUY


class PendingAction(str, Enum):
    """Order a reconciling position is waiting on."""
    ENTRY = "entry"
    EXIT = "exit"


class ExitReason:
    """Exit reason labels carried on positions and closed trades."""
    STOP_LOSS = "Stop Loss"
    TAKE_PROFIT = "Take Profit"
    SHUTDOWN = "Shutdown"


@dataclass(frozen=True)
class Signal:
    """Entry or exit intent for one instrument; consumed once."""
    instrument: Instrument
    direction: Direction
    reason: str
    generated_at: datetime
    rsi: float
    macd_histogram: float
    price: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "instrument": self.instrument.to_dict(),
            "direction": self.direction.value,
            "reason": self.reason,
            "generated_at": format_time(self.generated_at),
            "rsi": self.rsi,
            "macd_histogram": self.macd_histogram,
            "price": self.price,
        }


@dataclass(frozen=True)
class Position:
    """Live position on one instrument."""

    instrument: Instrument
    direction: Direction
    status: PositionState
    quantity: float

    # Set once the entry fills
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    opened_at: Optional[datetime] = None

    # Order in flight
    pending_order: Optional[OrderHandle] = None
    pending_action: Optional[PendingAction] = None
    reconcile_attempts: int = 0

    exit_reason: Optional[str] = None
    updated_at: Optional[datetime] = None

    def with_status(self, status: PositionState, timestamp: Optional[datetime] = None) -> "Position":
        """Create new position with an updated lifecycle state."""
        return replace(self, status=status, updated_at=timestamp or self.updated_at)

    def with_entry_fill(self, entry_price: float, quantity: float, stop_loss: float,
                        take_profit: float, opened_at: datetime) -> "Position":
        """Position after its entry order filled."""
        return Position(
            instrument=self.instrument,
            direction=self.direction,
            status=PositionState.OPEN,
            quantity=quantity,
            entry_price=entry_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            opened_at=opened_at,
            pending_order=None,
            pending_action=None,
            reconcile_attempts=0,
            exit_reason=None,
            updated_at=opened_at
        )

    def with_pending_order(self, status: PositionState, handle: Optional[OrderHandle],
                           action: PendingAction, timestamp: datetime,
                           exit_reason: Optional[str] = None) -> "Position":
        """Position waiting on an entry or exit order."""
        return replace(
            self,
            status=status,
            pending_order=handle,
            pending_action=action,
            reconcile_attempts=0,
            exit_reason=exit_reason if exit_reason is not None else self.exit_reason,
            updated_at=timestamp,
        )

    def with_reconcile_attempt(self, timestamp: datetime) -> "Position":
        """Count one more unresolved reconciliation cycle."""
        return replace(self, reconcile_attempts=self.reconcile_attempts + 1, updated_at=timestamp)

    def reopened(self, timestamp: datetime) -> "Position":
        """Back to OPEN after a failed exit; the exit is retried next cycle."""
        return replace(
            self,
            status=PositionState.OPEN,
            pending_order=None,
            pending_action=None,
            reconcile_attempts=0,
            updated_at=timestamp,
        )

    @property
    def is_open(self) -> bool:
        return self.status == PositionState.OPEN

    def unrealized_pnl_pct(self, price: float) -> Optional[float]:
        """Unrealized profit/loss in percent at ``price``."""
        if not self.entry_price:
            return None
        return (price - self.entry_price) / self.entry_price * self.direction.sign * 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "instrument": self.instrument.to_dict(),
            "direction": self.direction.value,
            "status": self.status.value,
            "quantity": self.quantity,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "opened_at": format_time(self.opened_at),
            "pending_order": self.pending_order.client_order_id if self.pending_order else None,
            "pending_action": self.pending_action.value if self.pending_action else None,
            "reconcile_attempts": self.reconcile_attempts,
            "exit_reason": self.exit_reason,
        }


@dataclass(frozen=True)
class ClosedTrade:
    """Completed round trip."""
    instrument: Instrument
    direction: Direction
    entry_price: float
    exit_price: float
    quantity: float
    profit_loss_pct: float
    opened_at: datetime
    closed_at: datetime
    exit_reason: str

    @property
    def is_win(self) -> bool:
        return self.profit_loss_pct > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "instrument": self.instrument.to_dict(),
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "quantity": self.quantity,
            "profit_loss_pct": self.profit_loss_pct,
            "opened_at": format_time(self.opened_at),
            "closed_at": format_time(self.closed_at),
            "exit_reason": self.exit_reason,
        }
