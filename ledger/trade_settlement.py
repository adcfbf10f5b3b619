"""
Ledger - Trade Settlement Engine.

============================================================
PURPOSE
============================================================
Places and cancels virtual trades against oracle prices.

PLACE (buy):  trading -= amount, quote += amount * price
PLACE (sell): quote -= amount,  trading += amount / price
CANCEL:       P/L credited to the trade's own currency
              (buy -> trading, sell -> quote)

FLOW:
1. Validate request
2. Fetch price (before the account lock)
3. Under the account lock, one unit of work:
   check balances, mutate, record trade, accrue rewards
4. Commit all or nothing

INVARIANTS:
- trading_balance >= 0
- 0 <= quote_balance <= max_quote_balance
- A trade leaves OPEN exactly once

============================================================
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Callable, Optional, Union

from price_oracle import PriceOracle

from .accounts import fetch_price, normalize_identity
from .config import TradingConfig
from .errors import (
    AccountNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidSideError,
    QuoteBalanceCeilingError,
    TradeLimitExceededError,
    TradeNotFoundError,
    TradeNotOpenError,
)
from .locks import KeyedLock
from .repository import LedgerStore
from .reward_accrual import RewardAccrualEngine
from .state_machine import transition_trade
from .types import (
    ZERO,
    Account,
    CancelTradeResult,
    PlaceTradeResult,
    Trade,
    TradeSide,
    TradeStatus,
    quantize,
    utc_now,
)


logger = logging.getLogger(__name__)


def _parse_side(side: Union[str, TradeSide]) -> TradeSide:
    if isinstance(side, TradeSide):
        return side
    try:
        return TradeSide(str(side).lower())
    except ValueError:
        raise InvalidSideError(f"Invalid trade side: {side!r}", context={"side": side})


def _parse_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError(f"Amount must be positive: {amount}", context={"amount": str(amount)})
    if quantize(value) != value:
        raise InvalidAmountError(
            f"Amount has more than 8 decimal places: {amount}",
            context={"amount": str(amount)},
        )
    return value


def calculate_profit_loss(trade: Trade, exit_price: Decimal) -> Decimal:
    """
    Realized P/L of a trade closed at ``exit_price``.

    buy:  (exit - entry) / entry * amount
    sell: (entry - exit) / entry * amount
    """
    change = (exit_price - trade.entry_price) / trade.entry_price
    if trade.side is TradeSide.SELL:
        change = -change
    return quantize(change * trade.amount, rounding=ROUND_HALF_EVEN)


class TradeSettlementEngine:
    """
    Virtual trade placement and cancellation.

    Every balance mutation runs under the per-account lock inside a
    single unit of work.
    """

    def __init__(
        self,
        store: LedgerStore,
        oracle: PriceOracle,
        config: Optional[TradingConfig] = None,
        reward_engine: Optional[RewardAccrualEngine] = None,
        locks: Optional[KeyedLock] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._oracle = oracle
        self._config = config or TradingConfig()
        self._rewards = reward_engine
        self._locks = locks or KeyedLock()
        self._clock = clock

    # --------------------------------------------------------
    # PLACE
    # --------------------------------------------------------

    async def place_trade(
        self,
        identity: str,
        instrument: str,
        side: Union[str, TradeSide],
        amount,
    ) -> PlaceTradeResult:
        """
        Open a virtual trade at the current oracle price.

        Args:
            identity: Wallet address of the account
            instrument: Instrument id, e.g. ``TON-USDT``
            side: ``buy`` or ``sell``
            amount: Base amount (buy) or quote amount (sell)

        Raises:
            InvalidAmountError, InvalidSideError, PriceUnavailableError,
            TradeLimitExceededError, AccountNotFoundError,
            InsufficientBalanceError, QuoteBalanceCeilingError
        """
        identity = normalize_identity(identity)
        amount = _parse_amount(amount)
        side = _parse_side(side)

        price = await fetch_price(self._oracle, instrument)
        self._check_trade_limit(side, amount, price)

        async with self._locks.acquire(identity):
            async with self._store.unit_of_work() as uow:
                account = await uow.accounts.get(identity, for_update=True)
                if account is None:
                    raise AccountNotFoundError(
                        f"No account for {identity}", context={"identity": identity}
                    )

                if side is TradeSide.BUY:
                    self._apply_buy(account, amount, price)
                else:
                    self._apply_sell(account, amount, price)

                trade = Trade(
                    account_id=account.account_id,
                    instrument=instrument,
                    side=side,
                    amount=amount,
                    entry_price=price,
                    created_at=self._clock(),
                )
                await uow.trades.save(trade)

                granted = await self._accrue(uow, account, trade, price)
                await uow.accounts.save(account)

        logger.info(
            f"Trade placed: identity={identity}, trade_id={trade.trade_id}, "
            f"{side.value} {amount} {instrument} @ {price}, rewards={granted}"
        )
        return PlaceTradeResult(trade=trade, account=account, rewards_granted=granted)

    def _check_trade_limit(self, side: TradeSide, amount: Decimal, price: Decimal) -> None:
        limit = self._config.max_trade_value_quote
        if limit is None:
            return
        value = amount * price if side is TradeSide.BUY else amount
        if value > limit:
            raise TradeLimitExceededError(
                f"Trade value {value} exceeds limit {limit}",
                context={"value": str(value), "limit": str(limit)},
            )

    def _apply_buy(self, account: Account, amount: Decimal, price: Decimal) -> None:
        cost = quantize(amount * price)
        if account.trading_balance < amount:
            raise InsufficientBalanceError(
                "Insufficient trading balance",
                asset="base",
                required=amount,
                available=account.trading_balance,
            )
        ceiling = self._config.max_quote_balance
        if account.quote_balance + cost > ceiling:
            raise QuoteBalanceCeilingError(
                f"Quote balance would exceed {ceiling}",
                context={
                    "quote_balance": str(account.quote_balance),
                    "cost": str(cost),
                    "ceiling": str(ceiling),
                },
            )
        account.trading_balance -= amount
        account.quote_balance += cost

    def _apply_sell(self, account: Account, amount: Decimal, price: Decimal) -> None:
        if account.quote_balance < amount:
            raise InsufficientBalanceError(
                "Insufficient quote balance",
                asset="quote",
                required=amount,
                available=account.quote_balance,
            )
        account.quote_balance -= amount
        account.trading_balance += quantize(amount / price)

    async def _accrue(self, uow, account: Account, trade: Trade, price: Decimal) -> int:
        if self._rewards is None:
            return 0
        reward_before = account.reward_balance
        try:
            # Savepoint: a failed counter write rolls back alone, the trade stays.
            async with uow.session.begin_nested():
                return await self._rewards.apply(uow, account, trade, price)
        except Exception as e:
            account.reward_balance = reward_before
            logger.warning(
                f"Reward accrual failed, trade kept: trade_id={trade.trade_id}, "
                f"identity={account.identity}, error={e}"
            )
            return 0

    # --------------------------------------------------------
    # CANCEL
    # --------------------------------------------------------

    async def cancel_trade(self, identity: str, trade_id: str) -> CancelTradeResult:
        """
        Cancel an open trade at the current price and settle its P/L.

        Raises:
            AccountNotFoundError, TradeNotFoundError, TradeNotOpenError,
            PriceUnavailableError
        """
        identity = normalize_identity(identity)

        async with self._store.unit_of_work() as uow:
            account = await uow.accounts.get(identity)
            trade = await uow.trades.get(trade_id)
        self._check_ownership(identity, account, trade, trade_id)
        if trade.status is not TradeStatus.OPEN:
            raise TradeNotOpenError(
                f"Trade {trade_id} is {trade.status.value}",
                context={"trade_id": trade_id, "status": trade.status.value},
            )

        exit_price = await fetch_price(self._oracle, trade.instrument)

        async with self._locks.acquire(identity):
            async with self._store.unit_of_work() as uow:
                account = await uow.accounts.get(identity, for_update=True)
                trade = await uow.trades.get(trade_id, for_update=True)
                self._check_ownership(identity, account, trade, trade_id)

                profit_loss = calculate_profit_loss(trade, exit_price)
                transition_trade(trade, TradeStatus.CANCELED, reason="user cancel", now=self._clock())
                trade.exit_price = exit_price
                trade.profit_loss = profit_loss

                self._credit_profit_loss(account, trade)
                await uow.trades.save(trade)
                await uow.accounts.save(account)

        logger.info(
            f"Trade canceled: identity={identity}, trade_id={trade_id}, "
            f"exit_price={exit_price}, profit_loss={profit_loss}"
        )
        return CancelTradeResult(trade=trade, account=account)

    @staticmethod
    def _check_ownership(
        identity: str,
        account: Optional[Account],
        trade: Optional[Trade],
        trade_id: str,
    ) -> None:
        if account is None:
            raise AccountNotFoundError(f"No account for {identity}", context={"identity": identity})
        if trade is None or trade.account_id != account.account_id:
            raise TradeNotFoundError(f"Trade {trade_id} not found", context={"trade_id": trade_id})

    def _credit_profit_loss(self, account: Account, trade: Trade) -> None:
        profit_loss = trade.profit_loss

        if trade.side is TradeSide.BUY:
            target = account.trading_balance + profit_loss
            clamped = max(ZERO, target)
            account.trading_balance = clamped
        else:
            target = account.quote_balance + profit_loss
            clamped = min(max(ZERO, target), self._config.max_quote_balance)
            account.quote_balance = clamped

        if clamped != target:
            logger.warning(
                f"Profit/loss clamped: trade_id={trade.trade_id}, "
                f"identity={account.identity}, profit_loss={profit_loss}, "
                f"target={target}, applied={clamped}"
            )
