"""
Ledger - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the trading ledger, reward accrual,
price oracle, persistence and contract gateway.

ENVIRONMENT VARIABLES (loaded from .env via python-dotenv):
- DATABASE_URL
- OKX_API_URL, OKX_API_KEY
- PRICE_CACHE_TTL_SECONDS, PRICE_TIMEOUT_SECONDS
- WALLET_CONTRACT_ADDRESS, OPERATOR_ADDRESS, JETTON_MASTER_ADDRESS
- WITHDRAW_FEE_BPS
- MAX_QUOTE_BALANCE
- MAX_TRADE_VALUE_QUOTE ("none" disables the per-trade ceiling)
- REWARD_VOLUME_THRESHOLD, DAILY_REWARD_CAP
- STALE_WITHDRAWAL_SECONDS

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, TypeVar

from dotenv import load_dotenv

from .errors import ConfigurationError


T = TypeVar("T")


def _optional_decimal(raw: str) -> Optional[Decimal]:
    if raw.strip().lower() == "none":
        return None
    return Decimal(raw)


def _env(key: str, default: Optional[str], parse: Callable[[str], T]) -> Optional[T]:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return parse(default) if default is not None else None
    try:
        return parse(raw)
    except (ValueError, InvalidOperation) as e:
        raise ConfigurationError(
            f"Invalid value for {key}: {raw!r}",
            config_key=key,
            actual_value=raw,
            cause=e,
        )


# ============================================================
# TRADING CONFIGURATION
# ============================================================

@dataclass
class TradingConfig:
    """Virtual trading rules."""

    max_quote_balance: Decimal = Decimal("10.00")
    """Ceiling on an account's quote balance."""

    max_trade_value_quote: Optional[Decimal] = Decimal("1.00")
    """Per-trade value ceiling in quote terms, checked at the request-time price (None disables)."""


# ============================================================
# REWARD CONFIGURATION
# ============================================================

@dataclass
class RewardConfig:
    """Reward accrual and withdrawal rules."""

    volume_threshold: Decimal = Decimal("10")
    """Quote volume per reward token."""

    daily_reward_cap: int = 10
    """Maximum reward tokens per account per UTC day."""

    counter_ttl_hours: int = 24
    """Daily volume counter lifetime after last write."""

    jetton_decimals: int = 9
    """Reward token decimals on chain."""

    stale_withdrawal_seconds: int = 600
    """Pending withdrawals older than this are reported."""


# ============================================================
# ORACLE CONFIGURATION
# ============================================================

@dataclass
class OracleConfig:
    """Price oracle settings."""

    api_url: str = "https://www.okx.com"
    """OKX REST base URL."""

    api_key: Optional[str] = None
    """OKX API key (sent as OK-ACCESS-KEY)."""

    cache_ttl_seconds: float = 60.0
    """Price cache lifetime."""

    timeout_seconds: float = 10.0
    """Upper bound on one price fetch, retries included."""

    allow_stale: bool = False
    """Serve an expired cached price when the provider fails."""


# ============================================================
# DATABASE CONFIGURATION
# ============================================================

@dataclass
class DatabaseConfig:
    """Persistence settings."""

    url: str = "sqlite+aiosqlite:///ledger.db"
    """Async SQLAlchemy URL (postgresql+asyncpg://... or sqlite+aiosqlite://...)."""

    echo: bool = False
    """Log SQL statements."""

    pool_size: int = 10
    """Connection pool size (ignored for SQLite)."""


# ============================================================
# GATEWAY CONFIGURATION
# ============================================================

@dataclass
class GatewayConfig:
    """Escrow contract settings."""

    contract_address: Optional[str] = None
    """Escrow contract address."""

    operator_address: Optional[str] = None
    """Owner wallet that signs award and admin messages."""

    jetton_master_address: Optional[str] = None
    """Reward token master."""

    withdraw_fee_bps: int = 100
    """Withdrawal fee the contract is deployed with."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class LedgerConfig:
    """Master configuration for the ledger."""

    trading: TradingConfig = field(default_factory=TradingConfig)
    reward: RewardConfig = field(default_factory=RewardConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(errors)}",
                context={"errors": errors},
            )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []
        if self.trading.max_quote_balance <= 0:
            errors.append("max_quote_balance must be positive")
        if (
            self.trading.max_trade_value_quote is not None
            and self.trading.max_trade_value_quote <= 0
        ):
            errors.append("max_trade_value_quote must be positive when set")
        if self.reward.volume_threshold <= 0:
            errors.append("volume_threshold must be positive")
        if self.reward.daily_reward_cap < 0:
            errors.append("daily_reward_cap must be non-negative")
        if self.oracle.cache_ttl_seconds < 0:
            errors.append("cache_ttl_seconds must be non-negative")
        if self.oracle.timeout_seconds <= 0:
            errors.append("timeout_seconds must be positive")
        if not 0 <= self.gateway.withdraw_fee_bps <= 10_000:
            errors.append("withdraw_fee_bps must be within 0..10000")
        return errors

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "LedgerConfig":
        """Load configuration from environment variables and .env."""
        load_dotenv(dotenv_path)

        return cls(
            trading=TradingConfig(
                max_quote_balance=_env("MAX_QUOTE_BALANCE", "10.00", Decimal),
                max_trade_value_quote=_env("MAX_TRADE_VALUE_QUOTE", "1.00", _optional_decimal),
            ),
            reward=RewardConfig(
                volume_threshold=_env("REWARD_VOLUME_THRESHOLD", "10", Decimal),
                daily_reward_cap=_env("DAILY_REWARD_CAP", "10", int),
                stale_withdrawal_seconds=_env("STALE_WITHDRAWAL_SECONDS", "600", int),
            ),
            oracle=OracleConfig(
                api_url=os.getenv("OKX_API_URL", "https://www.okx.com"),
                api_key=os.getenv("OKX_API_KEY") or None,
                cache_ttl_seconds=_env("PRICE_CACHE_TTL_SECONDS", "60", float),
                timeout_seconds=_env("PRICE_TIMEOUT_SECONDS", "10", float),
                allow_stale=os.getenv("PRICE_ALLOW_STALE", "false").lower() == "true",
            ),
            database=DatabaseConfig(
                url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///ledger.db"),
                echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
            ),
            gateway=GatewayConfig(
                contract_address=os.getenv("WALLET_CONTRACT_ADDRESS") or None,
                operator_address=os.getenv("OPERATOR_ADDRESS") or None,
                jetton_master_address=os.getenv("JETTON_MASTER_ADDRESS") or None,
                withdraw_fee_bps=_env("WITHDRAW_FEE_BPS", "100", int),
            ),
        )

    @classmethod
    def for_testing(cls, database_url: str = "sqlite+aiosqlite:///:memory:") -> "LedgerConfig":
        """Get configuration for testing."""
        return cls(
            oracle=OracleConfig(cache_ttl_seconds=0, timeout_seconds=2.0),
            database=DatabaseConfig(url=database_url),
            reward=RewardConfig(stale_withdrawal_seconds=60),
        )
