"""
Ledger - Reward Withdrawal Service.

============================================================
PURPOSE
============================================================
Moves reward tokens from the off-chain ledger to the user's
wallet through an AwardJetton message to the escrow contract.

FLOW:
1. Under the account lock: check and deduct the reward balance,
   persist a PENDING withdrawal (same transaction)
2. Outside the lock: submit AwardJetton from the operator address
3. Mark CONFIRMED with the transaction hash, or FAILED

A FAILED withdrawal is neither retried nor refunded here; the
reconciliation job refunds it exactly once.

============================================================
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from escrow_contract import AwardJetton, ContractError, ContractGateway, GatewayError, TonAddress

from .accounts import normalize_identity
from .config import RewardConfig
from .errors import (
    AccountNotFoundError,
    InsufficientRewardBalanceError,
    InvalidAmountError,
    SubmissionError,
)
from .locks import KeyedLock
from .repository import LedgerStore
from .state_machine import transition_withdrawal
from .types import (
    RewardWithdrawal,
    RewardWithdrawalResult,
    WithdrawalStatus,
)


logger = logging.getLogger(__name__)


class RewardWithdrawalService:
    """Reward token withdrawals to the user's wallet."""

    def __init__(
        self,
        store: LedgerStore,
        gateway: ContractGateway,
        operator: TonAddress,
        config: Optional[RewardConfig] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self._store = store
        self._gateway = gateway
        self._operator = operator
        self._config = config or RewardConfig()
        self._locks = locks or KeyedLock()

    def _to_jetton_units(self, amount: Decimal) -> int:
        units = amount.scaleb(self._config.jetton_decimals)
        if units != units.to_integral_value():
            raise InvalidAmountError(
                f"Amount {amount} has more than {self._config.jetton_decimals} decimals",
                context={"amount": str(amount)},
            )
        return int(units)

    async def withdraw_reward(self, identity: str, amount) -> RewardWithdrawalResult:
        """
        Withdraw ``amount`` reward tokens to the account's wallet.

        Raises:
            InvalidAmountError: Non-positive or too precise amount
            AccountNotFoundError: Unknown identity
            InsufficientRewardBalanceError: Reward balance too low
            SubmissionError: Contract submission failed (withdrawal FAILED)
        """
        identity = normalize_identity(identity)
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise InvalidAmountError(f"Invalid amount: {amount!r}")
        if not amount.is_finite() or amount <= 0:
            raise InvalidAmountError(f"Amount must be positive: {amount}")
        jetton_units = self._to_jetton_units(amount)

        async with self._locks.acquire(identity):
            async with self._store.unit_of_work() as uow:
                account = await uow.accounts.get(identity, for_update=True)
                if account is None:
                    raise AccountNotFoundError(
                        f"No account for {identity}", context={"identity": identity}
                    )
                if account.reward_balance < amount:
                    raise InsufficientRewardBalanceError(
                        "Insufficient reward balance",
                        asset="reward",
                        required=amount,
                        available=account.reward_balance,
                    )

                account.reward_balance -= amount
                withdrawal = RewardWithdrawal(
                    account_id=account.account_id,
                    identity=identity,
                    amount=amount,
                )
                await uow.accounts.save(account)
                await uow.withdrawals.save(withdrawal)

        logger.info(
            f"Reward withdrawal pending: identity={identity}, "
            f"withdrawal_id={withdrawal.withdrawal_id}, amount={amount}"
        )

        message = AwardJetton(user=TonAddress.parse(identity), amount=jetton_units)
        try:
            receipt = await self._gateway.send(self._operator, 0, message)
        except (GatewayError, ContractError) as e:
            await self._finish(withdrawal, WithdrawalStatus.FAILED, error=str(e))
            logger.error(
                f"Reward withdrawal failed: identity={identity}, "
                f"withdrawal_id={withdrawal.withdrawal_id}, error={e}"
            )
            raise SubmissionError(
                f"Reward withdrawal submission failed: {e}",
                context={"withdrawal_id": withdrawal.withdrawal_id, "identity": identity},
                cause=e,
            )

        await self._finish(
            withdrawal, WithdrawalStatus.CONFIRMED, submission_ref=receipt.tx_hash,
        )
        logger.info(
            f"Reward withdrawal confirmed: identity={identity}, "
            f"withdrawal_id={withdrawal.withdrawal_id}, tx={receipt.tx_hash}"
        )
        return RewardWithdrawalResult(
            account=account,
            withdrawal=withdrawal,
            submission_ref=receipt.tx_hash,
        )

    async def _finish(
        self,
        withdrawal: RewardWithdrawal,
        status: WithdrawalStatus,
        submission_ref: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        async with self._store.unit_of_work() as uow:
            transition_withdrawal(withdrawal, status, reason=error or "submitted")
            withdrawal.submission_ref = submission_ref
            withdrawal.error = error
            await uow.withdrawals.save(withdrawal)
