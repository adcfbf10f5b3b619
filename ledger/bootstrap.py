"""
Ledger - Service Wiring.

Builds the store, oracle and services from a LedgerConfig so every
service shares one KeyedLock.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from escrow_contract import ContractError, ContractGateway, TonAddress
from price_oracle import OkxPriceOracle, PriceOracle

from .accounts import AccountService
from .config import LedgerConfig
from .errors import ConfigurationError
from .locks import KeyedLock
from .reconciliation import ReconciliationService
from .repository import LedgerStore
from .reward_accrual import RewardAccrualEngine
from .reward_withdrawal import RewardWithdrawalService
from .stats import TradeStatsService
from .trade_settlement import TradeSettlementEngine


logger = logging.getLogger(__name__)


@dataclass
class LedgerServices:
    """All ledger services sharing one store and lock table."""

    config: LedgerConfig
    store: LedgerStore
    oracle: PriceOracle
    locks: KeyedLock
    accounts: AccountService
    trading: TradeSettlementEngine
    rewards: RewardAccrualEngine
    withdrawals: RewardWithdrawalService
    reconciliation: ReconciliationService
    stats: TradeStatsService

    async def close(self) -> None:
        await self.store.close()
        close = getattr(self.oracle, "close", None)
        if close is not None:
            await close()


def create_services(
    config: LedgerConfig,
    gateway: ContractGateway,
    oracle: Optional[PriceOracle] = None,
    store: Optional[LedgerStore] = None,
) -> LedgerServices:
    """
    Wire ledger services.

    Raises:
        ConfigurationError: If the operator address is missing or invalid
    """
    if not config.gateway.operator_address:
        raise ConfigurationError("OPERATOR_ADDRESS is required", config_key="OPERATOR_ADDRESS")
    try:
        operator = TonAddress.parse(config.gateway.operator_address)
    except ContractError as e:
        raise ConfigurationError(
            "OPERATOR_ADDRESS is not a valid address",
            config_key="OPERATOR_ADDRESS",
            actual_value=config.gateway.operator_address,
            cause=e,
        )

    if oracle is None:
        oracle = OkxPriceOracle(
            api_key=config.oracle.api_key,
            base_url=config.oracle.api_url,
            timeout=config.oracle.timeout_seconds,
            cache_ttl=config.oracle.cache_ttl_seconds,
            allow_stale=config.oracle.allow_stale,
        )
    store = store or LedgerStore(config.database)
    locks = KeyedLock()

    rewards = RewardAccrualEngine(store, oracle, config.reward, locks)
    services = LedgerServices(
        config=config,
        store=store,
        oracle=oracle,
        locks=locks,
        accounts=AccountService(store, locks),
        trading=TradeSettlementEngine(store, oracle, config.trading, rewards, locks),
        rewards=rewards,
        withdrawals=RewardWithdrawalService(store, gateway, operator, config.reward, locks),
        reconciliation=ReconciliationService(store, gateway, config.reward, locks),
        stats=TradeStatsService(store, oracle),
    )
    logger.info(f"Ledger services created: operator={operator}, oracle={oracle!r}")
    return services
