"""
Ledger - Repository.

============================================================
PURPOSE
============================================================
Database operations for ledger persistence.

RESPONSIBILITIES:
- Open units of work (one SQL transaction each)
- Save/load accounts, trades, counters, withdrawals
- Map dataclasses to ORM models and back

CRITICAL REQUIREMENTS:
- Commit on clean exit, rollback on exception
- Account rows can be read FOR UPDATE (row lock on PostgreSQL)

============================================================
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncIterator, List, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from .config import DatabaseConfig
from .models import (
    AccountModel,
    Base,
    DailyVolumeCounterModel,
    RewardWithdrawalModel,
    TradeModel,
)
from .types import (
    Account,
    DailyVolumeCounter,
    RewardWithdrawal,
    Trade,
    TradeSide,
    TradeStatus,
    WithdrawalStatus,
    utc_now,
)


logger = logging.getLogger(__name__)


def _decimal(value) -> Decimal:
    return Decimal("0") if value is None else Decimal(str(value))


def _optional_decimal(value) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


# ============================================================
# ACCOUNT REPOSITORY
# ============================================================

class AccountRepository:
    """Account persistence."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, identity: str, for_update: bool = False) -> Optional[AccountModel]:
        stmt = select(AccountModel).where(AccountModel.identity == identity)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, identity: str, for_update: bool = False) -> Optional[Account]:
        """
        Load an account by wallet identity.

        Args:
            identity: Wallet address
            for_update: Lock the row until the unit of work ends

        Returns:
            Account or None
        """
        model = await self._get_model(identity, for_update)
        return self._model_to_account(model) if model else None

    async def get_by_id(self, account_id: str) -> Optional[Account]:
        stmt = select(AccountModel).where(AccountModel.account_id == account_id)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_account(model) if model else None

    async def save(self, account: Account) -> Account:
        """Insert or update an account."""
        account.updated_at = utc_now()
        existing = await self._get_model(account.identity)

        if existing:
            existing.custody_balance = account.custody_balance
            existing.trading_balance = account.trading_balance
            existing.quote_balance = account.quote_balance
            existing.reward_balance = account.reward_balance
            existing.updated_at = account.updated_at
        else:
            self._session.add(AccountModel(
                account_id=account.account_id,
                identity=account.identity,
                custody_balance=account.custody_balance,
                trading_balance=account.trading_balance,
                quote_balance=account.quote_balance,
                reward_balance=account.reward_balance,
                created_at=account.created_at,
                updated_at=account.updated_at,
            ))

        await self._session.flush()
        logger.debug(
            f"Persist accounts: identity={account.identity}, "
            f"trading={account.trading_balance}, quote={account.quote_balance}, "
            f"reward={account.reward_balance}, custody={account.custody_balance}"
        )
        return account

    async def find(self, limit: Optional[int] = None) -> List[Account]:
        """List accounts, oldest first."""
        stmt = select(AccountModel).order_by(AccountModel.id)
        if limit:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return [self._model_to_account(m) for m in result.scalars().all()]

    @staticmethod
    def _model_to_account(model: AccountModel) -> Account:
        return Account(
            account_id=model.account_id,
            identity=model.identity,
            custody_balance=int(model.custody_balance or 0),
            trading_balance=_decimal(model.trading_balance),
            quote_balance=_decimal(model.quote_balance),
            reward_balance=_decimal(model.reward_balance),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


# ============================================================
# TRADE REPOSITORY
# ============================================================

class TradeRepository:
    """Trade persistence."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, trade_id: str, for_update: bool = False) -> Optional[TradeModel]:
        stmt = select(TradeModel).where(TradeModel.trade_id == trade_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, trade_id: str, for_update: bool = False) -> Optional[Trade]:
        model = await self._get_model(trade_id, for_update)
        return self._model_to_trade(model) if model else None

    async def save(self, trade: Trade) -> Trade:
        """Insert or update a trade."""
        existing = await self._get_model(trade.trade_id)

        if existing:
            existing.status = trade.status.value
            existing.exit_price = trade.exit_price
            existing.profit_loss = trade.profit_loss
            existing.closed_at = trade.closed_at
        else:
            self._session.add(TradeModel(
                trade_id=trade.trade_id,
                account_id=trade.account_id,
                instrument=trade.instrument,
                side=trade.side.value,
                amount=trade.amount,
                entry_price=trade.entry_price,
                exit_price=trade.exit_price,
                status=trade.status.value,
                profit_loss=trade.profit_loss,
                created_at=trade.created_at,
                closed_at=trade.closed_at,
            ))

        await self._session.flush()
        logger.debug(
            f"Persist trades: trade_id={trade.trade_id}, side={trade.side.value}, "
            f"amount={trade.amount}, status={trade.status.value}"
        )
        return trade

    async def find(
        self,
        account_id: str,
        since: Optional[datetime] = None,
        status: Optional[TradeStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Trade]:
        """
        Query an account's trades, newest first.

        Args:
            account_id: Owning account
            since: Only trades created at or after this time
            status: Only trades in this status
            limit: Maximum records
        """
        stmt = select(TradeModel).where(TradeModel.account_id == account_id)
        if since is not None:
            stmt = stmt.where(TradeModel.created_at >= since)
        if status is not None:
            stmt = stmt.where(TradeModel.status == status.value)
        stmt = stmt.order_by(desc(TradeModel.created_at), desc(TradeModel.id))
        if limit:
            stmt = stmt.limit(limit)

        result = await self._session.execute(stmt)
        return [self._model_to_trade(m) for m in result.scalars().all()]

    @staticmethod
    def _model_to_trade(model: TradeModel) -> Trade:
        return Trade(
            trade_id=model.trade_id,
            account_id=model.account_id,
            instrument=model.instrument,
            side=TradeSide(model.side),
            amount=_decimal(model.amount),
            entry_price=_decimal(model.entry_price),
            exit_price=_optional_decimal(model.exit_price),
            status=TradeStatus(model.status),
            profit_loss=_decimal(model.profit_loss),
            created_at=model.created_at,
            closed_at=model.closed_at,
        )


# ============================================================
# DAILY VOLUME COUNTER REPOSITORY
# ============================================================

class CounterRepository:
    """Daily volume counter persistence."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(
        self, account_id: str, day: date, for_update: bool = False,
    ) -> Optional[DailyVolumeCounterModel]:
        stmt = select(DailyVolumeCounterModel).where(
            DailyVolumeCounterModel.account_id == account_id,
            DailyVolumeCounterModel.day == day,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(
        self, account_id: str, day: date, for_update: bool = False,
    ) -> Optional[DailyVolumeCounter]:
        model = await self._get_model(account_id, day, for_update)
        return self._model_to_counter(model) if model else None

    async def save(self, counter: DailyVolumeCounter) -> DailyVolumeCounter:
        existing = await self._get_model(counter.account_id, counter.day)

        if existing:
            existing.volume = counter.volume
            existing.rewards_issued = counter.rewards_issued
            existing.expires_at = counter.expires_at
        else:
            self._session.add(DailyVolumeCounterModel(
                account_id=counter.account_id,
                day=counter.day,
                volume=counter.volume,
                rewards_issued=counter.rewards_issued,
                expires_at=counter.expires_at,
            ))

        await self._session.flush()
        logger.debug(
            f"Persist daily_volume_counters: account_id={counter.account_id}, "
            f"day={counter.day}, volume={counter.volume}, issued={counter.rewards_issued}"
        )
        return counter

    async def find(self, account_id: str) -> List[DailyVolumeCounter]:
        stmt = (
            select(DailyVolumeCounterModel)
            .where(DailyVolumeCounterModel.account_id == account_id)
            .order_by(desc(DailyVolumeCounterModel.day))
        )
        result = await self._session.execute(stmt)
        return [self._model_to_counter(m) for m in result.scalars().all()]

    @staticmethod
    def _model_to_counter(model: DailyVolumeCounterModel) -> DailyVolumeCounter:
        return DailyVolumeCounter(
            account_id=model.account_id,
            day=model.day,
            volume=_decimal(model.volume),
            rewards_issued=int(model.rewards_issued or 0),
            expires_at=model.expires_at,
        )


# ============================================================
# REWARD WITHDRAWAL REPOSITORY
# ============================================================

class WithdrawalRepository:
    """Reward withdrawal persistence."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(
        self, withdrawal_id: str, for_update: bool = False,
    ) -> Optional[RewardWithdrawalModel]:
        stmt = select(RewardWithdrawalModel).where(
            RewardWithdrawalModel.withdrawal_id == withdrawal_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, withdrawal_id: str, for_update: bool = False) -> Optional[RewardWithdrawal]:
        model = await self._get_model(withdrawal_id, for_update)
        return self._model_to_withdrawal(model) if model else None

    async def save(self, withdrawal: RewardWithdrawal) -> RewardWithdrawal:
        existing = await self._get_model(withdrawal.withdrawal_id)

        if existing:
            existing.status = withdrawal.status.value
            existing.submission_ref = withdrawal.submission_ref
            existing.error = withdrawal.error
            existing.updated_at = withdrawal.updated_at
        else:
            self._session.add(RewardWithdrawalModel(
                withdrawal_id=withdrawal.withdrawal_id,
                account_id=withdrawal.account_id,
                identity=withdrawal.identity,
                amount=withdrawal.amount,
                status=withdrawal.status.value,
                submission_ref=withdrawal.submission_ref,
                error=withdrawal.error,
                created_at=withdrawal.created_at,
                updated_at=withdrawal.updated_at,
            ))

        await self._session.flush()
        logger.debug(
            f"Persist reward_withdrawals: withdrawal_id={withdrawal.withdrawal_id}, "
            f"amount={withdrawal.amount}, status={withdrawal.status.value}"
        )
        return withdrawal

    async def find(
        self,
        status: Optional[WithdrawalStatus] = None,
        account_id: Optional[str] = None,
        created_before: Optional[datetime] = None,
    ) -> List[RewardWithdrawal]:
        """Query withdrawals, oldest first."""
        stmt = select(RewardWithdrawalModel)
        if status is not None:
            stmt = stmt.where(RewardWithdrawalModel.status == status.value)
        if account_id is not None:
            stmt = stmt.where(RewardWithdrawalModel.account_id == account_id)
        if created_before is not None:
            stmt = stmt.where(RewardWithdrawalModel.created_at < created_before)
        stmt = stmt.order_by(RewardWithdrawalModel.created_at, RewardWithdrawalModel.id)

        result = await self._session.execute(stmt)
        return [self._model_to_withdrawal(m) for m in result.scalars().all()]

    @staticmethod
    def _model_to_withdrawal(model: RewardWithdrawalModel) -> RewardWithdrawal:
        return RewardWithdrawal(
            withdrawal_id=model.withdrawal_id,
            account_id=model.account_id,
            identity=model.identity,
            amount=_decimal(model.amount),
            status=WithdrawalStatus(model.status),
            submission_ref=model.submission_ref,
            error=model.error,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


# ============================================================
# UNIT OF WORK / STORE
# ============================================================

class UnitOfWork:
    """One SQL transaction with a repository per table."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.accounts = AccountRepository(session)
        self.trades = TradeRepository(session)
        self.counters = CounterRepository(session)
        self.withdrawals = WithdrawalRepository(session)


class LedgerStore:
    """
    Entry point to ledger persistence.

    Usage:
        async with store.unit_of_work() as uow:
            account = await uow.accounts.get(identity, for_update=True)
            ...
            await uow.accounts.save(account)
    """

    def __init__(self, config: Optional[DatabaseConfig] = None, engine: Optional[AsyncEngine] = None):
        self._config = config or DatabaseConfig()
        self._engine = engine or self._create_engine(self._config)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @staticmethod
    def _create_engine(config: DatabaseConfig) -> AsyncEngine:
        url = config.url
        logger.info(f"Creating database engine for: {url.split('@')[-1]}")

        if url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in url or url.endswith("://"):
                kwargs["poolclass"] = StaticPool
            return create_async_engine(url, echo=config.echo, **kwargs)

        return create_async_engine(
            url,
            echo=config.echo,
            pool_size=config.pool_size,
            pool_pre_ping=True,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create all ledger tables."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Ledger tables created")

    async def drop_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[UnitOfWork]:
        """Open a transaction; commit on clean exit, rollback on error."""
        async with self._session_factory() as session:
            try:
                yield UnitOfWork(session)
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    async def close(self) -> None:
        await self._engine.dispose()
