"""
Ledger - Trade and Withdrawal State Machines.

============================================================
PURPOSE
============================================================
Strict lifecycle transitions for trades and reward withdrawals.

TRADE:
    OPEN ──► CLOSED
      └────► CANCELED

WITHDRAWAL:
    PENDING ──► CONFIRMED
       └──────► FAILED ──► REFUNDED

INVARIANTS:
- Terminal states are final
- A state never transitions to itself
- All transitions are logged

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Set

from .errors import InvalidTransitionError, TradeNotOpenError
from .types import (
    RewardWithdrawal,
    Trade,
    TradeStatus,
    WithdrawalStatus,
    utc_now,
)


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

TRADE_TRANSITIONS: Dict[TradeStatus, Set[TradeStatus]] = {
    TradeStatus.OPEN: {
        TradeStatus.CLOSED,
        TradeStatus.CANCELED,
    },
    # Terminal states - no transitions out
    TradeStatus.CLOSED: set(),
    TradeStatus.CANCELED: set(),
}


WITHDRAWAL_TRANSITIONS: Dict[WithdrawalStatus, Set[WithdrawalStatus]] = {
    WithdrawalStatus.PENDING: {
        WithdrawalStatus.CONFIRMED,
        WithdrawalStatus.FAILED,
    },
    WithdrawalStatus.FAILED: {
        WithdrawalStatus.REFUNDED,
    },
    WithdrawalStatus.CONFIRMED: set(),
    WithdrawalStatus.REFUNDED: set(),
}


# ============================================================
# STATE TRANSITION EVENT
# ============================================================

@dataclass
class StateTransitionEvent:
    """Event representing a state transition."""

    record_id: str
    """Trade or withdrawal ID."""

    from_state: str
    to_state: str

    timestamp: datetime = field(default_factory=utc_now)
    reason: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


# ============================================================
# GUARD
# ============================================================

def can_transition(from_state, to_state) -> tuple[bool, str]:
    """
    Check if transition is allowed.

    Args:
        from_state: Current TradeStatus or WithdrawalStatus
        to_state: Target state of the same type

    Returns:
        Tuple of (allowed, reason)
    """
    table = TRADE_TRANSITIONS if isinstance(from_state, TradeStatus) else WITHDRAWAL_TRANSITIONS

    if to_state in table.get(from_state, set()):
        return True, "Valid transition"

    if from_state.is_terminal():
        return False, f"Cannot transition from terminal state {from_state.value}"

    return False, f"Invalid transition: {from_state.value} -> {to_state.value}"


def transition_trade(
    trade: Trade,
    to_state: TradeStatus,
    reason: str = "",
    now: Optional[datetime] = None,
) -> StateTransitionEvent:
    """
    Move a trade to a terminal state.

    Raises:
        TradeNotOpenError: If the trade is not open
    """
    allowed, why = can_transition(trade.status, to_state)
    if not allowed:
        raise TradeNotOpenError(
            f"Trade {trade.trade_id} is {trade.status.value}: {why}",
            context={"trade_id": trade.trade_id, "status": trade.status.value},
        )

    event = StateTransitionEvent(
        record_id=trade.trade_id,
        from_state=trade.status.value,
        to_state=to_state.value,
        reason=reason,
    )
    trade.status = to_state
    trade.closed_at = now or utc_now()

    logger.info(
        f"Trade transition: trade_id={trade.trade_id} "
        f"{event.from_state} -> {event.to_state} ({reason})"
    )
    return event


def transition_withdrawal(
    withdrawal: RewardWithdrawal,
    to_state: WithdrawalStatus,
    reason: str = "",
) -> StateTransitionEvent:
    """
    Move a withdrawal along its lifecycle.

    Raises:
        InvalidTransitionError: If the transition is not allowed
    """
    allowed, why = can_transition(withdrawal.status, to_state)
    if not allowed:
        raise InvalidTransitionError(
            f"Withdrawal {withdrawal.withdrawal_id}: {why}",
            context={
                "withdrawal_id": withdrawal.withdrawal_id,
                "status": withdrawal.status.value,
            },
        )

    event = StateTransitionEvent(
        record_id=withdrawal.withdrawal_id,
        from_state=withdrawal.status.value,
        to_state=to_state.value,
        reason=reason,
    )
    withdrawal.status = to_state
    withdrawal.updated_at = utc_now()

    logger.info(
        f"Withdrawal transition: withdrawal_id={withdrawal.withdrawal_id} "
        f"{event.from_state} -> {event.to_state} ({reason})"
    )
    return event
