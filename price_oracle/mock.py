"""
Mock Price Oracle.

============================================================
PURPOSE
============================================================
Deterministic oracle for tests and local runs.

FEATURES:
- Fixed prices per instrument, changeable at runtime
- Forced failures per instrument
- Optional artificial latency
- Call counting

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Set

from price_oracle.base import BasePriceOracle
from price_oracle.exceptions import FetchError, NormalizationError


logger = logging.getLogger(__name__)


@dataclass
class MockOracleConfig:
    """Configuration for mock oracle behaviour."""

    prices: Dict[str, Decimal] = field(default_factory=lambda: {
        "TON-USDT": Decimal("5"),
    })
    """Initial prices per instrument."""

    latency_seconds: float = 0.0
    """Artificial delay per fetch."""

    cache_ttl: float = 0.0
    """Cache TTL; zero disables caching so price changes apply at once."""

    timeout: float = BasePriceOracle.DEFAULT_TIMEOUT
    """Upper bound on one fetch."""


class MockPriceOracle(BasePriceOracle):
    """In-memory price oracle."""

    def __init__(self, config: Optional[MockOracleConfig] = None) -> None:
        self._config = config or MockOracleConfig()
        super().__init__(
            timeout=self._config.timeout,
            cache_ttl=self._config.cache_ttl,
        )
        self._prices: Dict[str, Decimal] = dict(self._config.prices)
        self._failing: Set[str] = set()
        self.call_count = 0

    @property
    def name(self) -> str:
        return "mock"

    def set_price(self, instrument: str, price) -> None:
        self._prices[instrument] = Decimal(str(price))
        self._cache.pop(instrument, None)

    def fail(self, instrument: str) -> None:
        """Make every fetch for ``instrument`` fail."""
        self._failing.add(instrument)

    def recover(self, instrument: str) -> None:
        self._failing.discard(instrument)

    async def fetch_raw(self, instrument: str) -> dict[str, Any]:
        self.call_count += 1
        if self._config.latency_seconds:
            await asyncio.sleep(self._config.latency_seconds)
        if instrument in self._failing:
            # 4xx so the base class does not retry
            raise FetchError(
                message="Simulated outage",
                oracle_name=self.name,
                instrument=instrument,
                status_code=400,
            )
        return {"instrument": instrument, "last": self._prices.get(instrument)}

    def normalize(self, raw_data: dict[str, Any], instrument: str) -> Decimal:
        price = raw_data.get("last")
        if price is None:
            raise NormalizationError(
                message="No price configured",
                oracle_name=self.name,
                instrument=instrument,
                field_name="last",
            )
        return Decimal(price)
