"""
Escrow Contract - Core Types.

Configuration, transaction results, outbound messages and events
produced by the escrow contract state machine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .address import TonAddress


FEE_BPS_DENOMINATOR = 10_000


class ContractEventType(Enum):
    """Events recorded by the contract."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    AWARD = "award"
    PAUSE = "pause"
    EMERGENCY_WITHDRAWAL = "emergency_withdrawal"
    BOUNCE = "bounce"


@dataclass
class ContractConfig:
    """Contract-level settings and flags."""

    owner: TonAddress
    """Only address allowed to send owner-only messages."""

    jetton_master: TonAddress
    """Reward token master that receives award instructions."""

    withdraw_fee_bps: int = 0
    """Withdrawal fee in basis points, fixed at construction."""

    paused: bool = False
    """Blocks Deposit and Withdraw while set."""


@dataclass(frozen=True)
class OutMessage:
    """Outbound transfer emitted by a transaction."""

    to: TonAddress
    value: int
    body: bytes = b""
    bounced: bool = False


@dataclass(frozen=True)
class ContractEvent:
    """Single entry in the contract's event log."""

    event_type: ContractEventType
    logical_time: int
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None


@dataclass
class TransactionResult:
    """Outcome of processing one inbound message."""

    success: bool
    exit_code: int
    logical_time: int
    out_messages: List[OutMessage] = field(default_factory=list)
    events: List[ContractEvent] = field(default_factory=list)

    @property
    def total_out_value(self) -> int:
        return sum(message.value for message in self.out_messages)
