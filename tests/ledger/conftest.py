"""
Shared fixtures for ledger tests.

Each test gets its own SQLite file database so units of work see
committed data the way they would on PostgreSQL.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from escrow_contract import EscrowContract, LocalContractGateway, TonAddress
from ledger import Account, DatabaseConfig, KeyedLock, LedgerStore
from price_oracle import MockOracleConfig, MockPriceOracle


ALICE = "0:" + "a1" * 32
BOB = "0:" + "b0" * 32
OPERATOR = "0:" + "01" * 32
JETTON_MASTER = "0:" + "33" * 32


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime = datetime(2026, 3, 10, 12, 0, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest_asyncio.fixture
async def store(tmp_path):
    store = LedgerStore(DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path}/ledger.db"))
    await store.create_all()
    yield store
    await store.close()


@pytest.fixture
def oracle():
    return MockPriceOracle(MockOracleConfig(prices={
        "TON-USDT": Decimal("5"),
        "BTC-USDT": Decimal("50000"),
    }))


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def contract():
    return EscrowContract(
        owner=TonAddress.parse(OPERATOR),
        jetton_master=TonAddress.parse(JETTON_MASTER),
    )


@pytest.fixture
def gateway(contract):
    return LocalContractGateway(contract)


@pytest.fixture
def alice():
    return ALICE


@pytest.fixture
def bob():
    return BOB


@pytest.fixture
def operator():
    return TonAddress.parse(OPERATOR)


@pytest.fixture
def seed(store):
    """Insert an account with the given balances."""

    async def _seed(identity=ALICE, trading="0", quote="0", reward="0", custody=0) -> Account:
        account = Account(
            identity=identity,
            custody_balance=custody,
            trading_balance=Decimal(trading),
            quote_balance=Decimal(quote),
            reward_balance=Decimal(reward),
        )
        async with store.unit_of_work() as uow:
            await uow.accounts.save(account)
        return account

    return _seed


@pytest.fixture
def load(store):
    """Read an account back from the store."""

    async def _load(identity=ALICE) -> Account:
        async with store.unit_of_work() as uow:
            return await uow.accounts.get(identity)

    return _load
