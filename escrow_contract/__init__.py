"""
Escrow Contract Module.

============================================================
PURPOSE
============================================================
Custody of user deposits in an escrow contract, modelled as an
in-process state machine with the same binary message ABI and
exit codes as the deployed contract.

COMPONENTS:
- address: TonAddress (raw and user-friendly forms)
- cells: bit-level builder/reader
- messages: inbound message variants and decode_message
- contract: EscrowContract state machine
- gateway: ContractGateway interface and local implementation

============================================================
"""

from .address import TonAddress
from .cells import BitBuilder, BitReader
from .contract import EscrowContract
from .errors import (
    AccessDeniedError,
    CellOverflowError,
    CellUnderflowError,
    CodecError,
    ContractError,
    ContractExecutionError,
    GatewayError,
    InsufficientBalanceError,
    InsufficientCustodyError,
    InvalidAddressError,
    InvalidArgumentError,
    InvalidMessageError,
    InvalidPrefixError,
    PausedError,
    ZeroDepositError,
    ZeroWithdrawError,
    describe_exit_code,
)
from .gateway import ContractGateway, LocalContractGateway, SubmissionReceipt
from .messages import (
    AwardJetton,
    ContractMessage,
    Deposit,
    EmergencyWithdraw,
    Opcode,
    Pause,
    Withdraw,
    decode_message,
)
from .types import (
    ContractConfig,
    ContractEvent,
    ContractEventType,
    OutMessage,
    TransactionResult,
)


__all__ = [
    # Address / codec
    "TonAddress",
    "BitBuilder",
    "BitReader",
    "Opcode",
    "Deposit",
    "Withdraw",
    "AwardJetton",
    "Pause",
    "EmergencyWithdraw",
    "ContractMessage",
    "decode_message",
    # Contract
    "EscrowContract",
    "ContractConfig",
    "ContractEvent",
    "ContractEventType",
    "OutMessage",
    "TransactionResult",
    # Gateway
    "ContractGateway",
    "LocalContractGateway",
    "SubmissionReceipt",
    # Errors
    "ContractError",
    "CodecError",
    "CellOverflowError",
    "CellUnderflowError",
    "InvalidPrefixError",
    "InvalidMessageError",
    "InvalidAddressError",
    "InvalidArgumentError",
    "ZeroDepositError",
    "ZeroWithdrawError",
    "PausedError",
    "InsufficientBalanceError",
    "AccessDeniedError",
    "InsufficientCustodyError",
    "GatewayError",
    "ContractExecutionError",
    "describe_exit_code",
]
