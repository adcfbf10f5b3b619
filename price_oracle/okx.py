"""
OKX Price Oracle.

============================================================
PURPOSE
============================================================
Last traded price from the OKX public market ticker:

    GET {base_url}/api/v5/market/ticker?instId=TON-USDT

Response shape:
    {"code": "0", "msg": "", "data": [{"instId": "TON-USDT", "last": "5.21", ...}]}

A non-zero ``code`` is a provider-side rejection (e.g. unknown
instrument) and is not retried.

============================================================
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import aiohttp

from price_oracle.base import BasePriceOracle
from price_oracle.exceptions import NormalizationError


logger = logging.getLogger(__name__)


OKX_BASE_URL = "https://www.okx.com"
TICKER_PATH = "/api/v5/market/ticker"


class OkxPriceOracle(BasePriceOracle):
    """Price oracle backed by the OKX ticker endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = OKX_BASE_URL,
        timeout: float = BasePriceOracle.DEFAULT_TIMEOUT,
        cache_ttl: float = BasePriceOracle.DEFAULT_CACHE_TTL,
        allow_stale: bool = False,
        session: Optional[aiohttp.ClientSession] = None,
        clock=None,
    ) -> None:
        super().__init__(
            api_key=api_key,
            timeout=timeout,
            cache_ttl=cache_ttl,
            allow_stale=allow_stale,
            session=session,
            clock=clock,
        )
        self._base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "okx"

    async def fetch_raw(self, instrument: str) -> dict[str, Any]:
        headers = {}
        if self._api_key:
            headers["OK-ACCESS-KEY"] = self._api_key

        return await self._make_request(
            f"{self._base_url}{TICKER_PATH}",
            instrument,
            params={"instId": instrument},
            headers=headers,
        )

    def normalize(self, raw_data: dict[str, Any], instrument: str) -> Decimal:
        if not isinstance(raw_data, dict):
            raise NormalizationError(
                message=f"Unexpected response type: {type(raw_data).__name__}",
                oracle_name=self.name,
                instrument=instrument,
                field_name="body",
            )

        code = str(raw_data.get("code", "0"))
        if code != "0":
            raise NormalizationError(
                message=f"OKX error {code}: {raw_data.get('msg', '')}",
                oracle_name=self.name,
                instrument=instrument,
                raw_data=raw_data,
                field_name="code",
            )

        data = raw_data.get("data") or []
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise NormalizationError(
                message="Missing or malformed ticker data",
                oracle_name=self.name,
                instrument=instrument,
                raw_data=raw_data,
                field_name="data",
            )

        last = data[0].get("last")
        try:
            price = Decimal(str(last))
        except (InvalidOperation, TypeError) as e:
            raise NormalizationError(
                message=f"Invalid last price: {last!r}",
                oracle_name=self.name,
                instrument=instrument,
                raw_data=raw_data,
                field_name="last",
                original_error=e,
            )
        if not price.is_finite():
            raise NormalizationError(
                message=f"Invalid last price: {last!r}",
                oracle_name=self.name,
                instrument=instrument,
                raw_data=raw_data,
                field_name="last",
            )
        return price
