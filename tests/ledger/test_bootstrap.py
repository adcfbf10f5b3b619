"""
Service Wiring Tests.

Tests for create_services and one end-to-end flow through the
wired services: deposit, sync, trade, reward, withdraw.
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from escrow_contract import ContractEventType, Deposit, TonAddress
from ledger import (
    ConfigurationError,
    DatabaseConfig,
    GatewayConfig,
    LedgerConfig,
    LedgerStore,
    TradeLimitExceededError,
    TradingConfig,
    create_services,
)
from price_oracle import OkxPriceOracle


OPERATOR = "0:" + "01" * 32


def make_config(tmp_path, operator=OPERATOR, trading=None):
    return LedgerConfig(
        trading=trading or TradingConfig(
            max_quote_balance=Decimal("100"), max_trade_value_quote=None,
        ),
        database=DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path}/ledger.db"),
        gateway=GatewayConfig(operator_address=operator),
    )


@pytest_asyncio.fixture
async def services(tmp_path, gateway, oracle):
    services = create_services(make_config(tmp_path), gateway, oracle=oracle)
    await services.store.create_all()
    yield services
    await services.close()


class TestCreateServices:
    """Tests for create_services."""

    def test_missing_operator(self, tmp_path, gateway, oracle):
        with pytest.raises(ConfigurationError) as exc_info:
            create_services(make_config(tmp_path, operator=None), gateway, oracle=oracle)

        assert exc_info.value.context["config_key"] == "OPERATOR_ADDRESS"

    def test_invalid_operator(self, tmp_path, gateway, oracle):
        with pytest.raises(ConfigurationError):
            create_services(make_config(tmp_path, operator="nope"), gateway, oracle=oracle)

    @pytest.mark.asyncio
    async def test_default_oracle_is_okx(self, tmp_path, gateway):
        """Test an OKX oracle is built from config when none is given."""
        services = create_services(make_config(tmp_path), gateway)
        try:
            assert isinstance(services.oracle, OkxPriceOracle)
        finally:
            await services.close()

    @pytest.mark.asyncio
    async def test_shared_lock_table(self, services):
        """Test services share one lock table."""
        assert isinstance(services.store, LedgerStore)
        assert services.trading._locks is services.locks
        assert services.withdrawals._locks is services.locks
        assert services.reconciliation._locks is services.locks

    @pytest.mark.asyncio
    async def test_default_trade_limit_wired(self, tmp_path, gateway, oracle, alice):
        """Test the default per-trade ceiling reaches the trading engine."""
        services = create_services(
            make_config(tmp_path, trading=TradingConfig()), gateway, oracle=oracle,
        )
        try:
            await services.store.create_all()
            await services.accounts.open_account(alice)
            await gateway.send(TonAddress.parse(alice), 10**9, Deposit())
            await services.reconciliation.sync_custody(alice)

            with pytest.raises(TradeLimitExceededError):
                await services.trading.place_trade(alice, "TON-USDT", "buy", "1")
        finally:
            await services.close()


class TestEndToEnd:
    """One user's full flow through the wired services."""

    @pytest.mark.asyncio
    async def test_deposit_trade_reward_withdraw(self, services, gateway, contract, alice):
        await services.accounts.open_account(alice)
        await gateway.send(TonAddress.parse(alice), 4 * 10**9, Deposit())

        synced = await services.reconciliation.sync_custody(alice)
        assert synced.trading_delta == Decimal("4")

        placed = await services.trading.place_trade(alice, "TON-USDT", "buy", "2")
        assert placed.rewards_granted == 1

        result = await services.withdrawals.withdraw_reward(alice, 1)
        assert result.submission_ref

        balances = await services.accounts.get_balances(alice)
        assert balances.trading_balance == Decimal("2")
        assert balances.quote_balance == Decimal("10")
        assert balances.reward_balance == Decimal("0")
        assert len(contract.get_events(ContractEventType.AWARD)) == 1

        summary = await services.stats.get_summary(alice, "1d")
        assert summary.trade_count == 1
        assert summary.total_volume_quote == Decimal("10.00")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
