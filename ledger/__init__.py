"""
Ledger Module.

============================================================
PURPOSE
============================================================
Off-chain virtual trading ledger backed by escrow custody.

COMPONENTS:
- accounts: account creation and balances
- trade_settlement: place / cancel virtual trades
- reward_accrual: volume-based reward grants
- reward_withdrawal: reward tokens to the user's wallet
- reconciliation: custody sync, failed withdrawal refunds
- stats: trade history and summaries
- repository: SQLAlchemy persistence and units of work

============================================================
"""

from .accounts import AccountService, fetch_price, normalize_identity
from .bootstrap import LedgerServices, create_services
from .config import (
    DatabaseConfig,
    GatewayConfig,
    LedgerConfig,
    OracleConfig,
    RewardConfig,
    TradingConfig,
)
from .errors import (
    ERROR_CODES,
    AccountNotFoundError,
    ConfigurationError,
    ErrorCategory,
    InsufficientBalanceError,
    InsufficientRewardBalanceError,
    InvalidAmountError,
    InvalidIdentityError,
    InvalidPeriodError,
    InvalidSideError,
    InvalidTransitionError,
    LedgerError,
    PriceUnavailableError,
    QuoteBalanceCeilingError,
    SubmissionError,
    TradeLimitExceededError,
    TradeNotFoundError,
    TradeNotOpenError,
    get_error_info,
    is_retryable,
)
from .locks import KeyedLock
from .reconciliation import (
    MismatchSeverity,
    MismatchType,
    ReconciliationMismatch,
    ReconciliationResult,
    ReconciliationService,
)
from .repository import LedgerStore, UnitOfWork
from .reward_accrual import RewardAccrualEngine
from .reward_withdrawal import RewardWithdrawalService
from .stats import TradeStatsService
from .trade_settlement import TradeSettlementEngine, calculate_profit_loss
from .types import (
    Account,
    BalanceView,
    CancelTradeResult,
    CustodySyncResult,
    DailyVolumeCounter,
    PlaceTradeResult,
    RewardWithdrawal,
    RewardWithdrawalResult,
    StatsPeriod,
    Trade,
    TradeSide,
    TradeStatus,
    TradeSummary,
    WithdrawalStatus,
)


__all__ = [
    # Services
    "AccountService",
    "TradeSettlementEngine",
    "RewardAccrualEngine",
    "RewardWithdrawalService",
    "ReconciliationService",
    "TradeStatsService",
    "LedgerServices",
    "create_services",
    "calculate_profit_loss",
    "fetch_price",
    "normalize_identity",
    # Persistence
    "LedgerStore",
    "UnitOfWork",
    "KeyedLock",
    # Config
    "LedgerConfig",
    "TradingConfig",
    "RewardConfig",
    "OracleConfig",
    "DatabaseConfig",
    "GatewayConfig",
    # Types
    "Account",
    "Trade",
    "TradeSide",
    "TradeStatus",
    "DailyVolumeCounter",
    "RewardWithdrawal",
    "WithdrawalStatus",
    "StatsPeriod",
    "BalanceView",
    "PlaceTradeResult",
    "CancelTradeResult",
    "RewardWithdrawalResult",
    "CustodySyncResult",
    "TradeSummary",
    "ReconciliationResult",
    "ReconciliationMismatch",
    "MismatchType",
    "MismatchSeverity",
    # Errors
    "ErrorCategory",
    "ERROR_CODES",
    "get_error_info",
    "is_retryable",
    "LedgerError",
    "InvalidAmountError",
    "InvalidSideError",
    "InvalidPeriodError",
    "InvalidIdentityError",
    "TradeLimitExceededError",
    "AccountNotFoundError",
    "TradeNotFoundError",
    "InsufficientBalanceError",
    "InsufficientRewardBalanceError",
    "QuoteBalanceCeilingError",
    "TradeNotOpenError",
    "InvalidTransitionError",
    "PriceUnavailableError",
    "SubmissionError",
    "ConfigurationError",
]
