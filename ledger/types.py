"""
Ledger - Types.

============================================================
PURPOSE
============================================================
Domain records for the off-chain trading ledger.

BALANCES PER ACCOUNT:
- custody_balance: last on-chain ledger entry observed (nanoton)
- trading_balance: virtual base asset (TON), >= 0
- quote_balance: virtual quote asset (USDT), in [0, max_quote]
- reward_balance: reward tokens, >= 0

============================================================
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import List, Optional


def utc_now() -> datetime:
    """Get current UTC time (naive, as stored in the database)."""
    return datetime.utcnow()


ZERO = Decimal("0")

AMOUNT_PLACES = 8
"""Decimal places stored for every ledger amount."""


def quantize(value: Decimal, rounding: str = ROUND_DOWN) -> Decimal:
    """Round to the stored precision (truncating by default)."""
    return value.quantize(Decimal(1).scaleb(-AMOUNT_PLACES), rounding=rounding)


# ============================================================
# ENUMS
# ============================================================

class TradeSide(Enum):
    """Trade side."""

    BUY = "buy"
    SELL = "sell"


class TradeStatus(Enum):
    """
    Trade lifecycle state.

        OPEN ──► CLOSED
          └────► CANCELED
    """

    OPEN = "open"
    CLOSED = "closed"
    CANCELED = "canceled"

    def is_terminal(self) -> bool:
        return self in {TradeStatus.CLOSED, TradeStatus.CANCELED}


class WithdrawalStatus(Enum):
    """
    Reward withdrawal lifecycle state.

        PENDING ──► CONFIRMED
           └──────► FAILED ──► REFUNDED
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REFUNDED = "refunded"

    def is_terminal(self) -> bool:
        return self in {WithdrawalStatus.CONFIRMED, WithdrawalStatus.REFUNDED}


class StatsPeriod(Enum):
    """History window for trade statistics."""

    DAY = "1d"
    WEEK = "1w"

    @property
    def window(self) -> timedelta:
        return timedelta(days=1) if self is StatsPeriod.DAY else timedelta(weeks=1)


# ============================================================
# RECORDS
# ============================================================

@dataclass
class Account:
    """Per-user ledger account."""

    identity: str
    """Wallet address the user authenticates with."""

    account_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    custody_balance: int = 0
    """Last observed on-chain escrow entry, nanoton."""

    trading_balance: Decimal = ZERO
    quote_balance: Decimal = ZERO
    reward_balance: Decimal = ZERO

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class Trade:
    """Virtual trade against an oracle price."""

    account_id: str
    instrument: str
    side: TradeSide
    amount: Decimal
    entry_price: Decimal

    trade_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    exit_price: Optional[Decimal] = None
    status: TradeStatus = TradeStatus.OPEN
    profit_loss: Decimal = ZERO
    created_at: datetime = field(default_factory=utc_now)
    closed_at: Optional[datetime] = None


@dataclass
class DailyVolumeCounter:
    """Per-account trading volume for one UTC day."""

    account_id: str
    day: date
    volume: Decimal = ZERO
    """Cumulative traded value in quote terms."""

    rewards_issued: int = 0
    """Reward tokens already granted for this day."""

    expires_at: datetime = field(default_factory=lambda: utc_now() + timedelta(hours=24))

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class RewardWithdrawal:
    """Reward token withdrawal to the user's wallet."""

    account_id: str
    identity: str
    amount: Decimal

    withdrawal_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: WithdrawalStatus = WithdrawalStatus.PENDING
    submission_ref: Optional[str] = None
    """Transaction hash of the award submission."""

    error: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


# ============================================================
# RESULTS
# ============================================================

@dataclass
class BalanceView:
    """Read-only snapshot of an account's balances."""

    identity: str
    trading_balance: Decimal
    quote_balance: Decimal
    reward_balance: Decimal
    custody_balance: int

    @classmethod
    def from_account(cls, account: Account) -> "BalanceView":
        return cls(
            identity=account.identity,
            trading_balance=account.trading_balance,
            quote_balance=account.quote_balance,
            reward_balance=account.reward_balance,
            custody_balance=account.custody_balance,
        )


@dataclass
class PlaceTradeResult:
    trade: Trade
    account: Account
    rewards_granted: int = 0


@dataclass
class CancelTradeResult:
    trade: Trade
    account: Account


@dataclass
class RewardWithdrawalResult:
    account: Account
    withdrawal: RewardWithdrawal
    submission_ref: Optional[str] = None


@dataclass
class CustodySyncResult:
    """Outcome of comparing the on-chain entry with the stored one."""

    identity: str
    previous_custody: int
    current_custody: int
    trading_delta: Decimal
    account: Account

    @property
    def changed(self) -> bool:
        return self.previous_custody != self.current_custody


@dataclass
class TradeSummary:
    """Aggregate statistics for a period."""

    period: StatsPeriod
    trade_count: int
    base_volume: Decimal
    """Buy amounts, in base units."""

    quote_volume: Decimal
    """Sell amounts, in quote units."""

    total_volume_quote: Decimal
    total_profit_loss_quote: Decimal
    trades: List[Trade] = field(default_factory=list)
