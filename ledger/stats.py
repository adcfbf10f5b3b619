"""
Ledger - Trade Statistics.

Trade history and period summaries (1d / 1w) with totals
converted into quote terms at current instrument prices.
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, List, Union

from price_oracle import PriceOracle

from .accounts import fetch_price, normalize_identity
from .errors import AccountNotFoundError, InvalidPeriodError
from .repository import LedgerStore
from .types import ZERO, StatsPeriod, Trade, TradeSide, TradeStatus, TradeSummary, utc_now


logger = logging.getLogger(__name__)


CENT = Decimal("0.01")


def parse_period(period: Union[str, StatsPeriod]) -> StatsPeriod:
    if isinstance(period, StatsPeriod):
        return period
    try:
        return StatsPeriod(period)
    except ValueError:
        raise InvalidPeriodError(
            f"Invalid period {period!r}, expected 1d or 1w",
            context={"period": period},
        )


class TradeStatsService:
    """Read-only trade history and summaries."""

    def __init__(
        self,
        store: LedgerStore,
        oracle: PriceOracle,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._oracle = oracle
        self._clock = clock

    async def get_trade_history(
        self,
        identity: str,
        period: Union[str, StatsPeriod] = StatsPeriod.DAY,
    ) -> List[Trade]:
        """Trades created within the period, newest first."""
        period = parse_period(period)
        identity = normalize_identity(identity)
        since = self._clock() - period.window

        async with self._store.unit_of_work() as uow:
            account = await uow.accounts.get(identity)
            if account is None:
                raise AccountNotFoundError(
                    f"No account for {identity}", context={"identity": identity}
                )
            return await uow.trades.find(account.account_id, since=since)

    async def get_summary(
        self,
        identity: str,
        period: Union[str, StatsPeriod] = StatsPeriod.DAY,
    ) -> TradeSummary:
        """
        Total volume and realized P/L for the period, in quote terms.

        Buy amounts and buy P/L are base units and are converted at the
        current price of the trade's instrument; sell amounts and sell
        P/L are already quote. Realized P/L counts canceled trades only.
        Quote totals are rounded to cents.
        """
        period = parse_period(period)
        trades = await self.get_trade_history(identity, period)

        prices: Dict[str, Decimal] = {}
        for trade in trades:
            if trade.side is TradeSide.BUY and trade.instrument not in prices:
                prices[trade.instrument] = await fetch_price(self._oracle, trade.instrument)

        def in_quote(trade: Trade, value: Decimal) -> Decimal:
            if trade.side is TradeSide.BUY:
                return value * prices[trade.instrument]
            return value

        volume_quote = sum((in_quote(t, t.amount) for t in trades), ZERO)
        profit_loss_quote = sum(
            (in_quote(t, t.profit_loss) for t in trades if t.status is TradeStatus.CANCELED),
            ZERO,
        )

        summary = TradeSummary(
            period=period,
            trade_count=len(trades),
            base_volume=sum((t.amount for t in trades if t.side is TradeSide.BUY), ZERO),
            quote_volume=sum((t.amount for t in trades if t.side is TradeSide.SELL), ZERO),
            total_volume_quote=volume_quote.quantize(CENT, rounding=ROUND_HALF_UP),
            total_profit_loss_quote=profit_loss_quote.quantize(CENT, rounding=ROUND_HALF_UP),
            trades=trades,
        )
        logger.debug(
            f"Trade summary: identity={identity}, period={period.value}, "
            f"trades={summary.trade_count}, volume_quote={summary.total_volume_quote}, "
            f"pl_quote={summary.total_profit_loss_quote}"
        )
        return summary
