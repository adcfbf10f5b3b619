"""
Escrow Contract - Error Taxonomy.

============================================================
PURPOSE
============================================================
Typed failures raised while the escrow contract processes an
inbound message. Every error carries the numeric exit code the
deployed contract reports for the same failure, so a failed
transaction can be matched against chain explorers.

EXIT CODES:
- 8      Cell overflow
- 9      Cell underflow
- 37     Not enough Toncoin
- 129    Invalid serialization prefix
- 130    Invalid incoming message
- 134    Invalid argument
- 136    Invalid standard address
- 7870   zero withdraw
- 41067  paused
- 44835  zero deposit
- 50707  insufficient
- 58772  only owner

============================================================
"""

from typing import Any, Dict, Optional


# ============================================================
# EXIT CODES
# ============================================================

EXIT_CELL_OVERFLOW = 8
EXIT_CELL_UNDERFLOW = 9
EXIT_NOT_ENOUGH_TON = 37
EXIT_INVALID_PREFIX = 129
EXIT_INVALID_MESSAGE = 130
EXIT_INVALID_ARGUMENT = 134
EXIT_INVALID_ADDRESS = 136
EXIT_ZERO_WITHDRAW = 7870
EXIT_PAUSED = 41067
EXIT_ZERO_DEPOSIT = 44835
EXIT_INSUFFICIENT = 50707
EXIT_ONLY_OWNER = 58772


EXIT_CODE_MESSAGES: Dict[int, str] = {
    EXIT_CELL_OVERFLOW: "Cell overflow",
    EXIT_CELL_UNDERFLOW: "Cell underflow",
    EXIT_NOT_ENOUGH_TON: "Not enough Toncoin",
    EXIT_INVALID_PREFIX: "Invalid serialization prefix",
    EXIT_INVALID_MESSAGE: "Invalid incoming message",
    EXIT_INVALID_ARGUMENT: "Invalid argument",
    EXIT_INVALID_ADDRESS: "Invalid standard address",
    EXIT_ZERO_WITHDRAW: "zero withdraw",
    EXIT_PAUSED: "paused",
    EXIT_ZERO_DEPOSIT: "zero deposit",
    EXIT_INSUFFICIENT: "insufficient",
    EXIT_ONLY_OWNER: "only owner",
}


def describe_exit_code(exit_code: int) -> str:
    """Human-readable description for a contract exit code."""
    return EXIT_CODE_MESSAGES.get(exit_code, f"Unknown exit code {exit_code}")


# ============================================================
# BASE ERROR
# ============================================================

class ContractError(Exception):
    """Base exception for escrow contract failures."""

    exit_code: int = EXIT_INVALID_ARGUMENT

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or describe_exit_code(self.exit_code)
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "exit_code": self.exit_code,
            "message": self.message,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.exit_code}): {self.message}"


# ============================================================
# CODEC ERRORS
# ============================================================

class CodecError(ContractError):
    """Message body could not be encoded or decoded."""
    pass


class CellOverflowError(CodecError):
    """Too many bits stored in a single cell."""

    exit_code = EXIT_CELL_OVERFLOW


class CellUnderflowError(CodecError):
    """Read past the end of a message body."""

    exit_code = EXIT_CELL_UNDERFLOW


class InvalidPrefixError(CodecError):
    """Opcode does not match the expected message type."""

    exit_code = EXIT_INVALID_PREFIX


class InvalidMessageError(CodecError):
    """Unknown opcode or malformed body."""

    exit_code = EXIT_INVALID_MESSAGE


class InvalidAddressError(CodecError):
    """Address is not a standard internal address."""

    exit_code = EXIT_INVALID_ADDRESS


# ============================================================
# STATE MACHINE ERRORS
# ============================================================

class InvalidArgumentError(ContractError):
    """Constructor or message argument out of range."""

    exit_code = EXIT_INVALID_ARGUMENT


class ZeroDepositError(ContractError):
    """Deposit carried no value."""

    exit_code = EXIT_ZERO_DEPOSIT


class ZeroWithdrawError(ContractError):
    """Withdraw requested a zero amount."""

    exit_code = EXIT_ZERO_WITHDRAW


class PausedError(ContractError):
    """User operation attempted while the contract is paused."""

    exit_code = EXIT_PAUSED


class InsufficientBalanceError(ContractError):
    """Per-user ledger entry is below the requested amount."""

    exit_code = EXIT_INSUFFICIENT


class AccessDeniedError(ContractError):
    """Owner-only message sent by someone else."""

    exit_code = EXIT_ONLY_OWNER


class InsufficientCustodyError(ContractError):
    """Contract does not hold enough coins for the outbound transfer."""

    exit_code = EXIT_NOT_ENOUGH_TON


# ============================================================
# GATEWAY ERRORS
# ============================================================

class GatewayError(Exception):
    """Submission to the contract failed before or during delivery."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ContractExecutionError(GatewayError):
    """Contract rejected the message (transaction with success=false)."""

    def __init__(self, exit_code: int, tx_hash: str) -> None:
        super().__init__(
            f"Contract rejected message: {describe_exit_code(exit_code)} "
            f"(exit_code={exit_code}, tx={tx_hash})"
        )
        self.exit_code = exit_code
        self.tx_hash = tx_hash
