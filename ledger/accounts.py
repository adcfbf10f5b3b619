"""
Ledger - Accounts.

Account creation on first contact, balance lookups, and the helpers
every service uses to normalize identities and fetch prices.
"""

import logging
from decimal import Decimal
from typing import Optional

from escrow_contract import ContractError, TonAddress
from price_oracle import OracleError, PriceOracle

from .errors import AccountNotFoundError, InvalidIdentityError, PriceUnavailableError
from .locks import KeyedLock
from .repository import LedgerStore
from .types import Account, BalanceView


logger = logging.getLogger(__name__)


def normalize_identity(identity: str) -> str:
    """
    Canonical (raw ``wc:hex``) form of a wallet address.

    Raises:
        InvalidIdentityError: If ``identity`` is not a standard address
    """
    try:
        return TonAddress.parse(identity).to_raw()
    except ContractError as e:
        raise InvalidIdentityError(
            f"Invalid wallet address: {identity!r}",
            context={"identity": identity},
            cause=e,
        )


async def fetch_price(oracle: PriceOracle, instrument: str) -> Decimal:
    """
    Get a strictly positive price, mapping oracle failures.

    Raises:
        PriceUnavailableError: On any oracle failure or non-positive price
    """
    try:
        price = await oracle.get_price(instrument)
    except OracleError as e:
        raise PriceUnavailableError(
            f"Price unavailable for {instrument}",
            context={"instrument": instrument},
            cause=e,
        )
    if price is None or price <= 0:
        raise PriceUnavailableError(
            f"Non-positive price for {instrument}: {price}",
            context={"instrument": instrument, "price": str(price)},
        )
    return price


class AccountService:
    """Get-or-create accounts and read balances."""

    def __init__(self, store: LedgerStore, locks: Optional[KeyedLock] = None):
        self._store = store
        self._locks = locks or KeyedLock()

    async def open_account(self, identity: str) -> Account:
        """Return the account for ``identity``, creating it with zero balances."""
        identity = normalize_identity(identity)

        async with self._locks.acquire(identity):
            async with self._store.unit_of_work() as uow:
                account = await uow.accounts.get(identity, for_update=True)
                if account is not None:
                    return account

                account = Account(identity=identity)
                await uow.accounts.save(account)

        logger.info(f"Account opened: identity={identity}, account_id={account.account_id}")
        return account

    async def get_account(self, identity: str) -> Account:
        identity = normalize_identity(identity)
        async with self._store.unit_of_work() as uow:
            account = await uow.accounts.get(identity)
        if account is None:
            raise AccountNotFoundError(
                f"No account for {identity}", context={"identity": identity}
            )
        return account

    async def get_balances(self, identity: str) -> BalanceView:
        """
        Current balances of an account.

        Raises:
            AccountNotFoundError: If the identity has no account
        """
        return BalanceView.from_account(await self.get_account(identity))
