"""
Price Oracle Module.

Current prices for trading instruments, with TTL caching,
timeouts and limited retries.

Oracles:
- OkxPriceOracle: OKX public ticker
- MockPriceOracle: in-memory prices for tests and local runs
"""

from price_oracle.base import BasePriceOracle, CacheEntry, PriceOracle
from price_oracle.exceptions import (
    FetchError,
    NormalizationError,
    OracleError,
    PriceUnavailableError,
    RateLimitError,
)
from price_oracle.mock import MockOracleConfig, MockPriceOracle
from price_oracle.okx import OKX_BASE_URL, OkxPriceOracle


__all__ = [
    "PriceOracle",
    "BasePriceOracle",
    "CacheEntry",
    "OkxPriceOracle",
    "OKX_BASE_URL",
    "MockPriceOracle",
    "MockOracleConfig",
    "OracleError",
    "FetchError",
    "RateLimitError",
    "NormalizationError",
    "PriceUnavailableError",
]
