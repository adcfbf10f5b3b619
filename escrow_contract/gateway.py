"""
Escrow Contract - Gateway.

============================================================
PURPOSE
============================================================
Boundary the off-chain ledger uses to talk to the contract:
submit typed messages and read getters.

IMPLEMENTATIONS:
- ContractGateway: abstract interface
- LocalContractGateway: hosts an EscrowContract in-process,
  encodes each message and delivers it through ``receive``

A rejected transaction raises ContractExecutionError. Submissions
are never retried here.

============================================================
"""

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .address import TonAddress
from .contract import EscrowContract
from .errors import ContractExecutionError
from .messages import ContractMessage
from .types import TransactionResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionReceipt:
    """Reference to a submitted, successful transaction."""

    tx_hash: str
    result: TransactionResult


class ContractGateway(ABC):
    """Interface to the escrow contract."""

    @abstractmethod
    async def send(
        self,
        sender: TonAddress,
        value: int,
        message: ContractMessage,
    ) -> SubmissionReceipt:
        """Submit a message from ``sender`` with ``value`` nanoton attached."""
        pass

    @abstractmethod
    async def balance_of(self, address: TonAddress) -> int:
        pass

    @abstractmethod
    async def is_paused(self) -> bool:
        pass

    @abstractmethod
    async def get_owner(self) -> TonAddress:
        pass


class LocalContractGateway(ContractGateway):
    """Gateway backed by an in-process EscrowContract."""

    def __init__(self, contract: EscrowContract) -> None:
        self._contract = contract

    @property
    def contract(self) -> EscrowContract:
        return self._contract

    async def send(
        self,
        sender: TonAddress,
        value: int,
        message: ContractMessage,
    ) -> SubmissionReceipt:
        body = message.encode()
        result = await asyncio.to_thread(self._contract.receive, sender, value, body)
        tx_hash = self._tx_hash(result.logical_time, sender, body)

        if not result.success:
            logger.error(
                f"Contract transaction failed: tx={tx_hash}, "
                f"message={type(message).__name__}, exit_code={result.exit_code}"
            )
            raise ContractExecutionError(result.exit_code, tx_hash)

        logger.info(
            f"Contract transaction ok: tx={tx_hash}, "
            f"message={type(message).__name__}, sender={sender}"
        )
        return SubmissionReceipt(tx_hash=tx_hash, result=result)

    async def balance_of(self, address: TonAddress) -> int:
        return self._contract.balance_of(address)

    async def is_paused(self) -> bool:
        return self._contract.is_paused()

    async def get_owner(self) -> TonAddress:
        return self._contract.get_owner()

    @staticmethod
    def _tx_hash(logical_time: int, sender: TonAddress, body: bytes) -> str:
        digest = hashlib.sha256()
        digest.update(logical_time.to_bytes(8, "big"))
        digest.update(sender.to_raw().encode("ascii"))
        digest.update(body)
        return digest.hexdigest()
