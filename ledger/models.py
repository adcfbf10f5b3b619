"""
Ledger - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM models for ledger persistence.

TABLES:
- accounts: Per-user balances
- trades: Virtual trades
- daily_volume_counters: Reward accrual counters per UTC day
- reward_withdrawals: Reward token withdrawals

============================================================
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


MONEY_EXPONENT = Decimal("0.00000001")


# ============================================================
# COLUMN TYPES
# ============================================================

class Money(TypeDecorator):
    """
    Fixed-point amount with 8 decimal places.

    NUMERIC(24, 8) on PostgreSQL. SQLite has no exact decimal storage
    (NUMERIC columns come back as floats), so there the value is kept
    as its decimal string.
    """

    impl = Numeric(24, 8)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(32))
        return dialect.type_descriptor(Numeric(24, 8))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = Decimal(value).quantize(MONEY_EXPONENT)
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))


# ============================================================
# BASE
# ============================================================

class Base(DeclarativeBase):
    """Base class for ORM models."""
    pass


# ============================================================
# ACCOUNT MODEL
# ============================================================

class AccountModel(Base):
    """Persisted account balances."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    account_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    identity: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)

    # Balances
    custody_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    trading_balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    quote_balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    reward_balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Account {self.identity}>"


# ============================================================
# TRADE MODEL
# ============================================================

class TradeModel(Base):
    """Persisted virtual trade."""

    __tablename__ = "trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    trade_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    account_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("accounts.account_id"), nullable=False, index=True,
    )

    instrument: Mapped[str] = mapped_column(String(32), nullable=False)
    side: Mapped[str] = mapped_column(String(8), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    entry_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    exit_price: Mapped[Optional[Decimal]] = mapped_column(Money)

    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    profit_loss: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_trades_account_created", "account_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Trade {self.trade_id} {self.side} {self.amount} {self.status}>"


# ============================================================
# DAILY VOLUME COUNTER MODEL
# ============================================================

class DailyVolumeCounterModel(Base):
    """Persisted reward accrual counter."""

    __tablename__ = "daily_volume_counters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    account_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("accounts.account_id"), nullable=False,
    )
    day: Mapped[date] = mapped_column(Date, nullable=False)
    volume: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    rewards_issued: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "day", name="uq_daily_volume_account_day"),
    )

    def __repr__(self) -> str:
        return f"<DailyVolume {self.account_id} {self.day} {self.volume}>"


# ============================================================
# REWARD WITHDRAWAL MODEL
# ============================================================

class RewardWithdrawalModel(Base):
    """Persisted reward withdrawal."""

    __tablename__ = "reward_withdrawals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    withdrawal_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    account_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("accounts.account_id"), nullable=False, index=True,
    )
    identity: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    submission_ref: Mapped[Optional[str]] = mapped_column(String(128))
    error: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<RewardWithdrawal {self.withdrawal_id} {self.amount} {self.status}>"
