"""
Base Price Oracle - Abstract interface for all price providers.

All oracles MUST:
- Return a strictly positive Decimal price or raise PriceUnavailableError
- Cache prices for a short TTL
- Bound every fetch with a timeout
- Retry transient failures only
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional

import aiohttp

from price_oracle.exceptions import (
    FetchError,
    NormalizationError,
    OracleError,
    PriceUnavailableError,
    RateLimitError,
)


logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached price with its creation time."""

    price: Decimal
    created_at: float
    ttl_seconds: float
    hits: int = 0

    def age_seconds(self, now: float) -> float:
        return now - self.created_at

    def is_expired(self, now: float) -> bool:
        return self.age_seconds(now) >= self.ttl_seconds


class PriceOracle(ABC):
    """Source of current prices for instruments such as ``TON-USDT``."""

    @abstractmethod
    async def get_price(self, instrument: str) -> Decimal:
        """
        Get the current price of ``instrument``.

        Raises:
            PriceUnavailableError: If no positive price can be obtained
        """
        pass


class BasePriceOracle(PriceOracle):
    """
    Abstract base class for HTTP-backed price oracles.

    Each oracle must:
    1. Implement fetch_raw() - Get raw ticker data from provider
    2. Implement normalize() - Extract the price

    Features:
    - TTL cache with hit/miss counters
    - Timeout around the whole fetch
    - Limited retries with backoff, never on 4xx or rate limits
    - Optional stale-cache fallback
    """

    # Configuration defaults
    DEFAULT_TIMEOUT = 10.0
    DEFAULT_CACHE_TTL = 60
    MAX_RETRIES = 2
    RETRY_BACKOFF_BASE = 1.5

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        allow_stale: bool = False,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._cache_ttl = cache_ttl
        self._allow_stale = allow_stale
        self._session = session
        self._owns_session = session is None
        self._clock = clock or time.monotonic

        # Cache storage
        self._cache: dict[str, CacheEntry] = {}
        self._cache_hits = 0
        self._cache_misses = 0

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this oracle."""
        pass

    @abstractmethod
    async def fetch_raw(self, instrument: str) -> dict[str, Any]:
        """
        Fetch raw ticker data from the provider API.

        Raises:
            FetchError: If fetch fails
        """
        pass

    @abstractmethod
    def normalize(self, raw_data: dict[str, Any], instrument: str) -> Decimal:
        """
        Extract the last traded price from raw provider data.

        Raises:
            NormalizationError: If the price is missing or malformed
        """
        pass

    async def get_price(self, instrument: str, force_refresh: bool = False) -> Decimal:
        """
        Get the current price (main entry point).

        Args:
            instrument: Instrument id, e.g. ``TON-USDT``
            force_refresh: Bypass cache

        Returns:
            Strictly positive price

        Raises:
            PriceUnavailableError: On timeout, fetch failure or bad price
        """
        if not force_refresh:
            cached = self._get_from_cache(instrument)
            if cached is not None:
                self._cache_hits += 1
                logger.debug(f"[{self.name}] Cache hit for {instrument}")
                return cached
            self._cache_misses += 1

        try:
            raw_data = await asyncio.wait_for(
                self._fetch_with_retry(instrument),
                timeout=self._timeout,
            )
            price = self.normalize(raw_data, instrument)
            if price <= 0:
                raise NormalizationError(
                    message=f"Non-positive price: {price}",
                    oracle_name=self.name,
                    instrument=instrument,
                    field_name="last",
                )
        except asyncio.TimeoutError as e:
            logger.warning(f"[{self.name}] Fetch timeout for {instrument}")
            return self._fallback(instrument, FetchError(
                "Timeout", self.name, instrument, original_error=e,
            ))
        except OracleError as e:
            logger.warning(f"[{self.name}] Price fetch failed for {instrument}: {e}")
            return self._fallback(instrument, e)

        self._put_in_cache(instrument, price)
        logger.debug(f"[{self.name}] Fetched {instrument}={price}")
        return price

    async def _fetch_with_retry(self, instrument: str) -> dict[str, Any]:
        """Fetch with limited retries."""
        last_error: Optional[Exception] = None

        for attempt in range(self.MAX_RETRIES):
            try:
                return await self.fetch_raw(instrument)

            except RateLimitError:
                # Don't retry on rate limit
                raise

            except FetchError as e:
                if e.is_client_error:
                    raise

                wait_time = self.RETRY_BACKOFF_BASE ** attempt
                logger.warning(
                    f"[{self.name}] Retry {attempt + 1}/{self.MAX_RETRIES} "
                    f"in {wait_time:.1f}s: {e}"
                )
                await asyncio.sleep(wait_time)
                last_error = e

        raise FetchError(
            message=f"Failed after {self.MAX_RETRIES} retries",
            oracle_name=self.name,
            instrument=instrument,
            original_error=last_error,
        )

    def _fallback(self, instrument: str, error: OracleError) -> Decimal:
        if self._allow_stale:
            entry = self._cache.get(instrument)
            if entry is not None:
                logger.warning(
                    f"[{self.name}] Using stale cache data for {instrument} "
                    f"(age={entry.age_seconds(self._clock()):.1f}s)"
                )
                return entry.price
        raise PriceUnavailableError(
            message=f"Price unavailable: {error.message}",
            oracle_name=self.name,
            instrument=instrument,
            original_error=error,
        )

    # ─────────────────────────────────────────────────────────────
    # Cache Management
    # ─────────────────────────────────────────────────────────────

    def _get_from_cache(self, instrument: str) -> Optional[Decimal]:
        """Get from cache if valid."""
        entry = self._cache.get(instrument)
        if entry is None or entry.is_expired(self._clock()):
            return None
        entry.hits += 1
        return entry.price

    def _put_in_cache(self, instrument: str, price: Decimal) -> None:
        """Store in cache."""
        self._cache[instrument] = CacheEntry(
            price=price,
            created_at=self._clock(),
            ttl_seconds=self._cache_ttl,
        )

    def clear_cache(self) -> None:
        """Clear all cache entries."""
        self._cache.clear()
        logger.info(f"[{self.name}] Cache cleared")

    def get_cache_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total_requests = self._cache_hits + self._cache_misses
        hit_rate = (self._cache_hits / total_requests * 100) if total_requests > 0 else 0

        return {
            "entries": len(self._cache),
            "hits": self._cache_hits,
            "misses": self._cache_misses,
            "hit_rate_percent": round(hit_rate, 2),
        }

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def _make_request(
        self,
        url: str,
        instrument: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        """GET a JSON document with error mapping."""
        session = await self._get_session()

        try:
            async with session.get(url, params=params, headers=headers) as response:
                if response.status == 429:
                    retry_after = response.headers.get("Retry-After", "")
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        oracle_name=self.name,
                        instrument=instrument,
                        retry_after_seconds=int(retry_after) if retry_after.isdigit() else 60,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        oracle_name=self.name,
                        instrument=instrument,
                        status_code=response.status,
                        response_body=body[:500],
                        request_url=url,
                    )

                try:
                    return await response.json()
                except ValueError as e:
                    raise FetchError(
                        message="Malformed JSON body",
                        oracle_name=self.name,
                        instrument=instrument,
                        status_code=response.status,
                        request_url=url,
                        original_error=e,
                    )

        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"Connection error: {e}",
                oracle_name=self.name,
                instrument=instrument,
                request_url=url,
                original_error=e,
            )

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BasePriceOracle":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name})>"
