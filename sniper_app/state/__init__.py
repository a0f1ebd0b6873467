"""
Position lifecycle state machine.

Immutable position models, pure transition rules and the manager that owns
the live position map.
"""

from .models import (
    ClosedTrade,
    Direction,
    ExitReason,
    PendingAction,
    Position,
    PositionState,
    Signal,
)
from .positions import PositionManager
from .transitions import (
    ALLOWED_TRANSITIONS,
    calculate_exit_levels,
    check_exit,
    position_quantity,
    profit_loss_pct,
    validate_transition,
)

__all__ = [
    "ClosedTrade",
    "Direction",
    "ExitReason",
    "PendingAction",
    "Position",
    "PositionState",
    "Signal",
    "PositionManager",
    "ALLOWED_TRANSITIONS",
    "calculate_exit_levels",
    "check_exit",
    "position_quantity",
    "profit_loss_pct",
    "validate_transition",
]
