"""
Ledger - Reconciliation.

============================================================
PURPOSE
============================================================
Brings the off-chain ledger back in line with the escrow
contract and settles withdrawals the bridge left behind.

RESPONSIBILITIES:
- Custody sync: apply on-chain ledger entry changes
  (deposits / withdrawals) to the trading balance
- Refund FAILED reward withdrawals exactly once
- Report PENDING withdrawals that stay pending too long

CRITICAL INVARIANT:
    "The contract's ledger entry is authoritative for custody."

============================================================
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional

from escrow_contract import ContractGateway, TonAddress

from .accounts import normalize_identity
from .config import RewardConfig
from .errors import AccountNotFoundError
from .locks import KeyedLock
from .repository import LedgerStore
from .state_machine import transition_withdrawal
from .types import (
    ZERO,
    CustodySyncResult,
    RewardWithdrawal,
    WithdrawalStatus,
    quantize,
    utc_now,
)


logger = logging.getLogger(__name__)


NANOTON = Decimal(10) ** 9


# ============================================================
# RECONCILIATION TYPES
# ============================================================

class MismatchType(Enum):
    """Types of reconciliation mismatches."""

    FAILED_WITHDRAWAL = "FAILED_WITHDRAWAL"
    """Withdrawal submission failed; reward balance refunded."""

    STALE_WITHDRAWAL = "STALE_WITHDRAWAL"
    """Withdrawal pending longer than allowed."""


class MismatchSeverity(Enum):
    """Severity of mismatch."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass
class ReconciliationMismatch:
    """A detected mismatch."""

    mismatch_type: MismatchType
    severity: MismatchSeverity

    withdrawal_id: Optional[str] = None
    identity: Optional[str] = None

    expected_value: Optional[str] = None
    actual_value: Optional[str] = None

    message: str = ""

    auto_resolved: bool = False
    """Whether mismatch was auto-resolved."""

    resolution: Optional[str] = None

    detected_at: datetime = field(default_factory=utc_now)

    @property
    def error_code(self) -> str:
        """Registered consistency error code."""
        return f"CON_{self.mismatch_type.value}"


@dataclass
class ReconciliationResult:
    """Result of a reconciliation run."""

    run_id: str
    started_at: datetime
    completed_at: datetime = field(default_factory=utc_now)

    withdrawals_checked: int = 0
    withdrawals_refunded: int = 0

    mismatches: List[ReconciliationMismatch] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    @property
    def unresolved_count(self) -> int:
        return sum(1 for m in self.mismatches if not m.auto_resolved)


# ============================================================
# RECONCILIATION SERVICE
# ============================================================

class ReconciliationService:
    """
    Custody sync and withdrawal reconciliation.

    Both operations are idempotent: running them again without new
    on-chain activity or new failures changes nothing.
    """

    def __init__(
        self,
        store: LedgerStore,
        gateway: ContractGateway,
        config: Optional[RewardConfig] = None,
        locks: Optional[KeyedLock] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._gateway = gateway
        self._config = config or RewardConfig()
        self._locks = locks or KeyedLock()
        self._clock = clock

    # --------------------------------------------------------
    # CUSTODY SYNC
    # --------------------------------------------------------

    async def sync_custody(self, identity: str) -> CustodySyncResult:
        """
        Apply the change in the on-chain ledger entry to the trading balance.

        A positive delta (deposit) credits ``delta / 1e9`` TON, a negative
        delta (withdrawal) debits it, floored at zero.
        """
        identity = normalize_identity(identity)
        on_chain = await self._gateway.balance_of(TonAddress.parse(identity))

        async with self._locks.acquire(identity):
            async with self._store.unit_of_work() as uow:
                account = await uow.accounts.get(identity, for_update=True)
                if account is None:
                    raise AccountNotFoundError(
                        f"No account for {identity}", context={"identity": identity}
                    )

                previous = account.custody_balance
                delta = quantize(Decimal(on_chain - previous) / NANOTON)
                if on_chain == previous:
                    return CustodySyncResult(
                        identity=identity,
                        previous_custody=previous,
                        current_custody=on_chain,
                        trading_delta=ZERO,
                        account=account,
                    )

                target = account.trading_balance + delta
                if target < 0:
                    logger.warning(
                        f"Custody debit floored at zero: identity={identity}, "
                        f"trading={account.trading_balance}, delta={delta}"
                    )
                    target = ZERO
                applied = target - account.trading_balance
                account.trading_balance = target
                account.custody_balance = on_chain
                await uow.accounts.save(account)

        logger.info(
            f"Custody synced: identity={identity}, custody {previous} -> {on_chain}, "
            f"trading_delta={applied}"
        )
        return CustodySyncResult(
            identity=identity,
            previous_custody=previous,
            current_custody=on_chain,
            trading_delta=applied,
            account=account,
        )

    # --------------------------------------------------------
    # WITHDRAWAL RECONCILIATION
    # --------------------------------------------------------

    async def reconcile_withdrawals(self) -> ReconciliationResult:
        """Refund failed withdrawals and report stale pending ones."""
        now = self._clock()
        result = ReconciliationResult(
            run_id=str(uuid.uuid4()),
            started_at=now,
        )
        stale_before = now - timedelta(seconds=self._config.stale_withdrawal_seconds)

        async with self._store.unit_of_work() as uow:
            failed = await uow.withdrawals.find(status=WithdrawalStatus.FAILED)
            stale = await uow.withdrawals.find(
                status=WithdrawalStatus.PENDING,
                created_before=stale_before,
            )

        for withdrawal in failed:
            result.withdrawals_checked += 1
            try:
                refunded = await self._refund(withdrawal)
            except AccountNotFoundError as e:
                result.errors.append(f"{withdrawal.withdrawal_id}: {e.message}")
                continue
            if refunded:
                result.withdrawals_refunded += 1
                result.mismatches.append(ReconciliationMismatch(
                    mismatch_type=MismatchType.FAILED_WITHDRAWAL,
                    severity=MismatchSeverity.WARNING,
                    withdrawal_id=withdrawal.withdrawal_id,
                    identity=withdrawal.identity,
                    expected_value=str(withdrawal.amount),
                    message=f"Refunded {withdrawal.amount} after failed submission",
                    auto_resolved=True,
                    resolution="refunded",
                ))

        for withdrawal in stale:
            result.withdrawals_checked += 1
            age = now - withdrawal.created_at
            logger.warning(
                f"Stale reward withdrawal: withdrawal_id={withdrawal.withdrawal_id}, "
                f"identity={withdrawal.identity}, age={age}"
            )
            result.mismatches.append(ReconciliationMismatch(
                mismatch_type=MismatchType.STALE_WITHDRAWAL,
                severity=MismatchSeverity.ERROR,
                withdrawal_id=withdrawal.withdrawal_id,
                identity=withdrawal.identity,
                expected_value=WithdrawalStatus.CONFIRMED.value,
                actual_value=WithdrawalStatus.PENDING.value,
                message=f"Pending for {int(age.total_seconds())}s",
            ))

        result.completed_at = self._clock()
        logger.info(
            f"Withdrawal reconciliation done: run_id={result.run_id}, "
            f"checked={result.withdrawals_checked}, refunded={result.withdrawals_refunded}, "
            f"unresolved={result.unresolved_count}"
        )
        return result

    async def _refund(self, withdrawal: RewardWithdrawal) -> bool:
        async with self._locks.acquire(withdrawal.identity):
            async with self._store.unit_of_work() as uow:
                current = await uow.withdrawals.get(withdrawal.withdrawal_id, for_update=True)
                if current is None or current.status is not WithdrawalStatus.FAILED:
                    return False

                account = await uow.accounts.get(current.identity, for_update=True)
                if account is None:
                    raise AccountNotFoundError(
                        f"No account for {current.identity}",
                        context={"identity": current.identity},
                    )

                account.reward_balance += current.amount
                transition_withdrawal(current, WithdrawalStatus.REFUNDED, reason="reconciliation refund")
                await uow.accounts.save(account)
                await uow.withdrawals.save(current)

        logger.info(
            f"Reward withdrawal refunded: withdrawal_id={withdrawal.withdrawal_id}, "
            f"identity={withdrawal.identity}, amount={withdrawal.amount}"
        )
        return True
