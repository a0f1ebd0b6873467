"""
Pure position lifecycle rules.

Exit levels, exit detection, profit/loss and the table of permitted state
transitions. No I/O; the position manager applies these results.
"""

from typing import Optional

from ..errors import StateTransitionError
from .models import Direction, ExitReason, Position, PositionState

ALLOWED_TRANSITIONS: dict[PositionState, frozenset[PositionState]] = {
    PositionState.FLAT: frozenset({PositionState.ENTERING}),
    PositionState.ENTERING: frozenset({
        PositionState.OPEN, PositionState.FLAT, PositionState.RECONCILING
    }),
    PositionState.OPEN: frozenset({PositionState.CLOSING}),
    PositionState.CLOSING: frozenset({
        PositionState.FLAT, PositionState.OPEN, PositionState.RECONCILING
    }),
    PositionState.RECONCILING: frozenset({
        PositionState.OPEN, PositionState.FLAT, PositionState.RECONCILING
    }),
}

QUANTITY_DECIMALS = 8


def validate_transition(current: PositionState, target: PositionState) -> None:
    """
    Check a transition against the lifecycle table.

    Raises:
        StateTransitionError: If ``target`` is not reachable from ``current``
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise StateTransitionError(
            f"Transition {current.value} -> {target.value} is not allowed",
            current_state=current.value,
            attempted_transition=target.value
        )


def calculate_exit_levels(entry_price: float, direction: Direction,
                          stop_loss_pct: float, take_profit_pct: float) -> tuple[float, float]:
    """
    Stop-loss and take-profit prices for a fill.

    Args:
        entry_price: Entry fill price
        direction: Position direction
        stop_loss_pct: Stop distance in percent
        take_profit_pct: Target distance in percent

    Returns:
        (stop_loss, take_profit)
    """
    sign = direction.sign
    stop_loss = entry_price * (1 - sign * stop_loss_pct / 100.0)
    take_profit = entry_price * (1 + sign * take_profit_pct / 100.0)
    return stop_loss, take_profit


def check_exit(position: Position, price: float) -> Optional[str]:
    """Exit reason when ``price`` crosses a level of an open position."""
    if position.status != PositionState.OPEN:
        return None
    if position.stop_loss is None or position.take_profit is None:
        return None

    if position.direction == Direction.BUY:
        if price <= position.stop_loss:
            return ExitReason.STOP_LOSS
        if price >= position.take_profit:
            return ExitReason.TAKE_PROFIT
    else:
        if price >= position.stop_loss:
            return ExitReason.STOP_LOSS
        if price <= position.take_profit:
            return ExitReason.TAKE_PROFIT

    return None


def profit_loss_pct(entry_price: float, exit_price: float, direction: Direction) -> float:
    """Realized profit/loss in percent of the entry price."""
    if entry_price == 0:
        return 0.0
    return (exit_price - entry_price) / entry_price * direction.sign * 100.0


def position_quantity(position_size: float, price: float) -> float:
    """Base quantity bought with ``position_size`` units of the quote asset."""
    if price <= 0:
        return 0.0
    return round(position_size / price, QUANTITY_DECIMALS)
