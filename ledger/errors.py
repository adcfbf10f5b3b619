"""
Ledger - Error Taxonomy.

============================================================
PURPOSE
============================================================
Error classification for the off-chain trading ledger.

ERROR CATEGORIES:
1. Validation Errors - Bad request, detected before any mutation
2. Invariant Errors - Request would break a balance rule
3. External Errors - Oracle or contract submission failed
4. Consistency Errors - Gaps found by reconciliation
5. Configuration Errors - Invalid settings

RETRYABLE vs NON-RETRYABLE:
- Retryable: oracle outages
- Non-retryable: everything else, including contract submission

============================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set


# ============================================================
# ERROR CATEGORIES
# ============================================================

class ErrorCategory(Enum):
    """Error category classification."""

    VALIDATION = "VALIDATION"
    """Request rejected before any mutation."""

    INVARIANT = "INVARIANT"
    """Request would violate a balance or state invariant."""

    EXTERNAL = "EXTERNAL"
    """Collaborator (oracle, contract) failed."""

    CONSISTENCY = "CONSISTENCY"
    """Off-chain and on-chain state disagree."""

    CONFIGURATION = "CONFIGURATION"
    """Invalid configuration."""

    INTERNAL = "INTERNAL"
    """Unexpected internal error."""


class ErrorSeverity(Enum):
    """Error severity levels."""

    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ============================================================
# ERROR CODE REGISTRY
# ============================================================

@dataclass
class ErrorCodeInfo:
    """Information about an error code."""

    code: str
    """Error code."""

    category: ErrorCategory
    """Error category."""

    severity: ErrorSeverity
    """Error severity."""

    is_retryable: bool
    """Whether the same request may succeed later."""

    description: str
    """Human-readable description."""


ERROR_CODES: Dict[str, ErrorCodeInfo] = {
    # ========== VALIDATION ERRORS ==========
    "VAL_INVALID_AMOUNT": ErrorCodeInfo(
        code="VAL_INVALID_AMOUNT",
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Amount must be strictly positive",
    ),
    "VAL_INVALID_SIDE": ErrorCodeInfo(
        code="VAL_INVALID_SIDE",
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Trade side must be buy or sell",
    ),
    "VAL_INVALID_PERIOD": ErrorCodeInfo(
        code="VAL_INVALID_PERIOD",
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Statistics period must be 1d or 1w",
    ),
    "VAL_TRADE_LIMIT_EXCEEDED": ErrorCodeInfo(
        code="VAL_TRADE_LIMIT_EXCEEDED",
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Trade value exceeds the per-trade ceiling",
    ),
    "VAL_ACCOUNT_NOT_FOUND": ErrorCodeInfo(
        code="VAL_ACCOUNT_NOT_FOUND",
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="No account for this identity",
    ),
    "VAL_TRADE_NOT_FOUND": ErrorCodeInfo(
        code="VAL_TRADE_NOT_FOUND",
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Trade does not exist or belongs to another account",
    ),
    "VAL_INVALID_IDENTITY": ErrorCodeInfo(
        code="VAL_INVALID_IDENTITY",
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Identity is not a valid wallet address",
    ),

    # ========== INVARIANT ERRORS ==========
    "INV_INSUFFICIENT_BALANCE": ErrorCodeInfo(
        code="INV_INSUFFICIENT_BALANCE",
        category=ErrorCategory.INVARIANT,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Balance too low for this operation",
    ),
    "INV_INSUFFICIENT_REWARD": ErrorCodeInfo(
        code="INV_INSUFFICIENT_REWARD",
        category=ErrorCategory.INVARIANT,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Reward balance too low for withdrawal",
    ),
    "INV_QUOTE_CEILING": ErrorCodeInfo(
        code="INV_QUOTE_CEILING",
        category=ErrorCategory.INVARIANT,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Quote balance would exceed its ceiling",
    ),
    "INV_TRADE_NOT_OPEN": ErrorCodeInfo(
        code="INV_TRADE_NOT_OPEN",
        category=ErrorCategory.INVARIANT,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Trade is already closed or canceled",
    ),
    "INV_INVALID_TRANSITION": ErrorCodeInfo(
        code="INV_INVALID_TRANSITION",
        category=ErrorCategory.INVARIANT,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description="Lifecycle transition not allowed",
    ),

    # ========== EXTERNAL ERRORS ==========
    "EXT_PRICE_UNAVAILABLE": ErrorCodeInfo(
        code="EXT_PRICE_UNAVAILABLE",
        category=ErrorCategory.EXTERNAL,
        severity=ErrorSeverity.ERROR,
        is_retryable=True,
        description="Price oracle did not return a usable price",
    ),
    "EXT_SUBMISSION_FAILED": ErrorCodeInfo(
        code="EXT_SUBMISSION_FAILED",
        category=ErrorCategory.EXTERNAL,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description="Contract submission failed; settled by reconciliation",
    ),

    # ========== CONSISTENCY ERRORS ==========
    "CON_STALE_WITHDRAWAL": ErrorCodeInfo(
        code="CON_STALE_WITHDRAWAL",
        category=ErrorCategory.CONSISTENCY,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description="Reward withdrawal pending for too long",
    ),
    "CON_FAILED_WITHDRAWAL": ErrorCodeInfo(
        code="CON_FAILED_WITHDRAWAL",
        category=ErrorCategory.CONSISTENCY,
        severity=ErrorSeverity.WARNING,
        is_retryable=False,
        description="Reward withdrawal failed and was refunded",
    ),

    # ========== CONFIGURATION ERRORS ==========
    "CFG_INVALID": ErrorCodeInfo(
        code="CFG_INVALID",
        category=ErrorCategory.CONFIGURATION,
        severity=ErrorSeverity.CRITICAL,
        is_retryable=False,
        description="Configuration value is missing or invalid",
    ),
}


def get_error_info(code: str) -> ErrorCodeInfo:
    """
    Get error info for a code.

    Args:
        code: Error code

    Returns:
        ErrorCodeInfo or default unknown error
    """
    return ERROR_CODES.get(code, ErrorCodeInfo(
        code=code,
        category=ErrorCategory.INTERNAL,
        severity=ErrorSeverity.ERROR,
        is_retryable=False,
        description=f"Unknown error: {code}",
    ))


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    return get_error_info(code).is_retryable


RETRYABLE_ERROR_CODES: Set[str] = {
    code for code, info in ERROR_CODES.items() if info.is_retryable
}


# ============================================================
# EXCEPTIONS
# ============================================================

class LedgerError(Exception):
    """
    Base exception for ledger operations.

    Carries a registered error code plus free-form context.
    """

    default_code: str = "INTERNAL"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context or {}
        self.cause = cause

    @property
    def info(self) -> ErrorCodeInfo:
        return get_error_info(self.code)

    @property
    def category(self) -> ErrorCategory:
        return self.info.category

    @property
    def is_retryable(self) -> bool:
        return self.info.is_retryable

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "code": self.code,
            "category": self.category.value,
            "retryable": self.is_retryable,
            "message": self.message,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
        }


class InvalidAmountError(LedgerError):
    default_code = "VAL_INVALID_AMOUNT"


class InvalidSideError(LedgerError):
    default_code = "VAL_INVALID_SIDE"


class InvalidPeriodError(LedgerError):
    default_code = "VAL_INVALID_PERIOD"


class TradeLimitExceededError(LedgerError):
    default_code = "VAL_TRADE_LIMIT_EXCEEDED"


class AccountNotFoundError(LedgerError):
    default_code = "VAL_ACCOUNT_NOT_FOUND"


class TradeNotFoundError(LedgerError):
    default_code = "VAL_TRADE_NOT_FOUND"


class InvalidIdentityError(LedgerError):
    default_code = "VAL_INVALID_IDENTITY"


class InsufficientBalanceError(LedgerError):
    """Not enough balance for operation."""

    default_code = "INV_INSUFFICIENT_BALANCE"

    def __init__(
        self,
        message: str,
        asset: Optional[str] = None,
        required: Any = None,
        available: Any = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if asset:
            context["asset"] = asset
        if required is not None:
            context["required"] = str(required)
        if available is not None:
            context["available"] = str(available)
        super().__init__(message, context=context, **kwargs)


class InsufficientRewardBalanceError(InsufficientBalanceError):
    default_code = "INV_INSUFFICIENT_REWARD"


class QuoteBalanceCeilingError(LedgerError):
    default_code = "INV_QUOTE_CEILING"


class TradeNotOpenError(LedgerError):
    default_code = "INV_TRADE_NOT_OPEN"


class InvalidTransitionError(LedgerError):
    """Lifecycle state change not allowed."""

    default_code = "INV_INVALID_TRANSITION"


class PriceUnavailableError(LedgerError):
    default_code = "EXT_PRICE_UNAVAILABLE"


class SubmissionError(LedgerError):
    """Contract submission failed; the withdrawal stays failed until reconciled."""

    default_code = "EXT_SUBMISSION_FAILED"


class ConfigurationError(LedgerError):
    """Error in configuration."""

    default_code = "CFG_INVALID"

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Any = None,
        **kwargs,
    ) -> None:
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]
        super().__init__(message, context=context, **kwargs)
