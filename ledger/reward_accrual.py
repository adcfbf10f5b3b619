"""
Ledger - Reward Accrual Engine.

============================================================
PURPOSE
============================================================
Grants reward tokens for trading volume.

RULES:
- Volume is counted per account per UTC calendar day, in quote
  terms (buy: amount * price, sell: amount)
- One token per ``volume_threshold`` of volume
- At most ``daily_reward_cap`` tokens per account per day
- grant = max(0, min(eligible - issued, cap - issued))
- A grant of 0 is a valid outcome

The day bucket is a calendar day, not a rolling 24h window. The
counter expires 24h after its last write; an expired counter reads
as empty.

============================================================
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from price_oracle import PriceOracle

from .accounts import fetch_price
from .config import RewardConfig
from .errors import AccountNotFoundError
from .locks import KeyedLock
from .repository import LedgerStore, UnitOfWork
from .types import Account, DailyVolumeCounter, Trade, TradeSide, quantize, utc_now


logger = logging.getLogger(__name__)


class RewardAccrualEngine:
    """Per-day volume counters and reward grants."""

    def __init__(
        self,
        store: LedgerStore,
        oracle: PriceOracle,
        config: Optional[RewardConfig] = None,
        locks: Optional[KeyedLock] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._oracle = oracle
        self._config = config or RewardConfig()
        self._locks = locks or KeyedLock()
        self._clock = clock

    async def accrue(self, trade: Trade) -> int:
        """
        Count a trade's volume and grant any rewards it unlocks.

        Callers accrue each trade once; repeated calls count the
        volume again.

        Returns:
            Number of tokens granted (possibly 0)
        """
        price = await fetch_price(self._oracle, trade.instrument)

        async with self._store.unit_of_work() as uow:
            owner = await uow.accounts.get_by_id(trade.account_id)
        if owner is None:
            raise AccountNotFoundError(
                f"No account {trade.account_id}", context={"account_id": trade.account_id}
            )

        async with self._locks.acquire(owner.identity):
            async with self._store.unit_of_work() as uow:
                account = await uow.accounts.get(owner.identity, for_update=True)
                granted = await self.apply(uow, account, trade, price)
                await uow.accounts.save(account)
        return granted

    async def apply(
        self,
        uow: UnitOfWork,
        account: Account,
        trade: Trade,
        price: Decimal,
    ) -> int:
        """
        Accrue inside an open unit of work, caller holding the account lock.

        Mutates ``account.reward_balance`` only after the counter is saved;
        the caller persists the account.
        """
        now = self._clock()
        day = now.date()
        # Sell amounts are already quote.
        value = trade.amount * price if trade.side is TradeSide.BUY else trade.amount

        counter = await uow.counters.get(account.account_id, day, for_update=True)
        if counter is None or counter.is_expired(now):
            counter = DailyVolumeCounter(account_id=account.account_id, day=day)

        counter.volume = quantize(counter.volume + value)
        counter.expires_at = now + timedelta(hours=self._config.counter_ttl_hours)

        eligible = int(counter.volume // self._config.volume_threshold)
        issued = counter.rewards_issued
        grant = max(0, min(eligible - issued, self._config.daily_reward_cap - issued))
        counter.rewards_issued += grant

        await uow.counters.save(counter)

        if grant > 0:
            account.reward_balance += grant
            logger.info(
                f"Rewards granted: identity={account.identity}, grant={grant}, "
                f"day={day}, volume={counter.volume}, issued={counter.rewards_issued}"
            )
        return grant
