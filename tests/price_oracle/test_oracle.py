"""
Price Oracle Tests.

============================================================
PURPOSE
============================================================
Tests for the OKX oracle and the shared base behaviour.

TEST CATEGORIES:
- Response parsing
- Request shape
- Caching
- Retry policy
- Failure mapping and stale fallback
- Mock oracle

============================================================
"""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from price_oracle import (
    FetchError,
    MockOracleConfig,
    MockPriceOracle,
    NormalizationError,
    OkxPriceOracle,
    PriceUnavailableError,
)


# ============================================================
# HELPERS
# ============================================================

def ticker(last="5.21", code="0"):
    return {"code": code, "msg": "", "data": [{"instId": "TON-USDT", "last": last}]}


def make_response(status=200, payload=None, headers=None):
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.json = AsyncMock(return_value=payload)
    response.text = AsyncMock(return_value="error body")
    return response


def make_session(*responses):
    """Session whose successive GETs yield ``responses``."""
    session = MagicMock()
    session.closed = False
    contexts = []
    for response in responses:
        context = MagicMock()
        context.__aenter__.return_value = response
        context.__aexit__.return_value = False
        contexts.append(context)
    session.get.side_effect = contexts
    return session


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def no_backoff():
    with patch("price_oracle.base.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


# ============================================================
# OKX PARSING
# ============================================================

class TestOkxOracle:
    """Tests for OkxPriceOracle."""

    @pytest.mark.asyncio
    async def test_parses_last_price(self):
        """Test last price is returned as Decimal."""
        session = make_session(make_response(payload=ticker("5.21")))
        oracle = OkxPriceOracle(session=session)

        price = await oracle.get_price("TON-USDT")

        assert price == Decimal("5.21")
        assert isinstance(price, Decimal)

    @pytest.mark.asyncio
    async def test_request_shape(self):
        """Test URL, instId param and API key header."""
        session = make_session(make_response(payload=ticker()))
        oracle = OkxPriceOracle(
            api_key="secret",
            base_url="https://okx.example/",
            session=session,
        )

        await oracle.get_price("TON-USDT")

        args, kwargs = session.get.call_args
        assert args[0] == "https://okx.example/api/v5/market/ticker"
        assert kwargs["params"] == {"instId": "TON-USDT"}
        assert kwargs["headers"] == {"OK-ACCESS-KEY": "secret"}

    @pytest.mark.asyncio
    async def test_no_key_header_without_api_key(self):
        """Test public requests carry no key header."""
        session = make_session(make_response(payload=ticker()))
        oracle = OkxPriceOracle(session=session)

        await oracle.get_price("TON-USDT")

        assert session.get.call_args.kwargs["headers"] == {}

    @pytest.mark.asyncio
    async def test_provider_error_code(self):
        """Test non-zero OKX code is unavailable and not retried."""
        session = make_session(make_response(payload=ticker(code="51001")))
        oracle = OkxPriceOracle(session=session)

        with pytest.raises(PriceUnavailableError):
            await oracle.get_price("NOPE-USDT")

        assert session.get.call_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("last", ["0", "-1", "abc", None, "NaN"])
    async def test_invalid_price(self, last):
        """Test zero, negative and malformed prices are unavailable."""
        session = make_session(make_response(payload=ticker(last=last)))
        oracle = OkxPriceOracle(session=session)

        with pytest.raises(PriceUnavailableError):
            await oracle.get_price("TON-USDT")

    @pytest.mark.asyncio
    async def test_empty_data(self):
        """Test empty ticker list is unavailable."""
        session = make_session(make_response(payload={"code": "0", "data": []}))
        oracle = OkxPriceOracle(session=session)

        with pytest.raises(PriceUnavailableError):
            await oracle.get_price("TON-USDT")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        [],
        ["TON-USDT"],
        {"code": "0", "data": "5.2"},
        {"code": "0", "data": [5.2]},
    ])
    async def test_unexpected_body_shape(self, payload):
        """Test bodies of the wrong shape are unavailable, not crashes."""
        session = make_session(make_response(payload=payload))
        oracle = OkxPriceOracle(session=session)

        with pytest.raises(PriceUnavailableError) as exc_info:
            await oracle.get_price("TON-USDT")

        assert isinstance(exc_info.value.original_error, NormalizationError)
        assert session.get.call_count == 1


# ============================================================
# CACHING
# ============================================================

class TestCaching:
    """Tests for the TTL cache."""

    @pytest.mark.asyncio
    async def test_cache_hit(self):
        """Test second call within TTL does not hit the network."""
        session = make_session(make_response(payload=ticker("5")))
        oracle = OkxPriceOracle(session=session, cache_ttl=60, clock=FakeClock())

        first = await oracle.get_price("TON-USDT")
        second = await oracle.get_price("TON-USDT")

        assert first == second == Decimal("5")
        assert session.get.call_count == 1
        stats = oracle.get_cache_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    @pytest.mark.asyncio
    async def test_cache_expiry(self):
        """Test entry is refetched once TTL has elapsed."""
        clock = FakeClock()
        session = make_session(
            make_response(payload=ticker("5")),
            make_response(payload=ticker("6")),
        )
        oracle = OkxPriceOracle(session=session, cache_ttl=60, clock=clock)

        await oracle.get_price("TON-USDT")
        clock.now += 60
        price = await oracle.get_price("TON-USDT")

        assert price == Decimal("6")
        assert session.get.call_count == 2

    @pytest.mark.asyncio
    async def test_force_refresh(self):
        """Test force_refresh bypasses the cache."""
        session = make_session(
            make_response(payload=ticker("5")),
            make_response(payload=ticker("7")),
        )
        oracle = OkxPriceOracle(session=session, clock=FakeClock())

        await oracle.get_price("TON-USDT")
        price = await oracle.get_price("TON-USDT", force_refresh=True)

        assert price == Decimal("7")

    @pytest.mark.asyncio
    async def test_clear_cache(self):
        """Test clearing drops entries."""
        session = make_session(make_response(payload=ticker()))
        oracle = OkxPriceOracle(session=session, clock=FakeClock())
        await oracle.get_price("TON-USDT")

        oracle.clear_cache()

        assert oracle.get_cache_stats()["entries"] == 0


# ============================================================
# RETRIES AND FAILURES
# ============================================================

class TestRetryPolicy:
    """Tests for retry and failure mapping."""

    @pytest.mark.asyncio
    async def test_server_error_retried(self, no_backoff):
        """Test a 5xx is retried and the next success is used."""
        session = make_session(
            make_response(status=502),
            make_response(payload=ticker("5.5")),
        )
        oracle = OkxPriceOracle(session=session)

        price = await oracle.get_price("TON-USDT")

        assert price == Decimal("5.5")
        assert session.get.call_count == 2
        no_backoff.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, no_backoff):
        """Test repeated 5xx ends as unavailable."""
        session = make_session(make_response(status=500), make_response(status=503))
        oracle = OkxPriceOracle(session=session)

        with pytest.raises(PriceUnavailableError):
            await oracle.get_price("TON-USDT")

        assert session.get.call_count == OkxPriceOracle.MAX_RETRIES

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, no_backoff):
        """Test a 4xx fails immediately."""
        session = make_session(make_response(status=404))
        oracle = OkxPriceOracle(session=session)

        with pytest.raises(PriceUnavailableError):
            await oracle.get_price("TON-USDT")

        assert session.get.call_count == 1
        no_backoff.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rate_limit_not_retried(self, no_backoff):
        """Test a 429 fails immediately."""
        session = make_session(make_response(status=429, headers={"Retry-After": "3"}))
        oracle = OkxPriceOracle(session=session)

        with pytest.raises(PriceUnavailableError) as exc_info:
            await oracle.get_price("TON-USDT")

        assert session.get.call_count == 1
        assert exc_info.value.original_error.retry_after_seconds == 3

    @pytest.mark.asyncio
    async def test_malformed_json_retried(self, no_backoff):
        """Test an undecodable body is a fetch error and retried."""
        broken = make_response()
        broken.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "<html>", 0))
        session = make_session(broken, make_response(payload=ticker("5.5")))
        oracle = OkxPriceOracle(session=session)

        price = await oracle.get_price("TON-USDT")

        assert price == Decimal("5.5")
        assert session.get.call_count == 2

    @pytest.mark.asyncio
    async def test_malformed_json_exhausted(self, no_backoff):
        """Test repeated undecodable bodies end as unavailable."""
        responses = []
        for _ in range(OkxPriceOracle.MAX_RETRIES):
            response = make_response()
            response.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "", 0))
            responses.append(response)
        oracle = OkxPriceOracle(session=make_session(*responses))

        with pytest.raises(PriceUnavailableError) as exc_info:
            await oracle.get_price("TON-USDT")

        assert isinstance(exc_info.value.original_error, FetchError)

    @pytest.mark.asyncio
    async def test_rate_limit_http_date_retry_after(self, no_backoff):
        """Test a non-numeric Retry-After falls back to 60 seconds."""
        session = make_session(make_response(
            status=429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"},
        ))
        oracle = OkxPriceOracle(session=session)

        with pytest.raises(PriceUnavailableError) as exc_info:
            await oracle.get_price("TON-USDT")

        assert exc_info.value.original_error.retry_after_seconds == 60

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test a slow provider is unavailable after the timeout."""
        oracle = MockPriceOracle(MockOracleConfig(latency_seconds=0.5, timeout=0.05))

        with pytest.raises(PriceUnavailableError):
            await oracle.get_price("TON-USDT")

    @pytest.mark.asyncio
    async def test_stale_fallback(self, no_backoff):
        """Test an expired cache entry is served when allowed."""
        clock = FakeClock()
        session = make_session(make_response(payload=ticker("5")), make_response(status=404))
        oracle = OkxPriceOracle(session=session, cache_ttl=1, allow_stale=True, clock=clock)

        await oracle.get_price("TON-USDT")
        clock.now += 10
        price = await oracle.get_price("TON-USDT")

        assert price == Decimal("5")

    @pytest.mark.asyncio
    async def test_no_stale_fallback_by_default(self):
        """Test an expired entry is not served unless allowed."""
        clock = FakeClock()
        session = make_session(make_response(payload=ticker("5")), make_response(status=404))
        oracle = OkxPriceOracle(session=session, cache_ttl=1, clock=clock)

        await oracle.get_price("TON-USDT")
        clock.now += 10

        with pytest.raises(PriceUnavailableError):
            await oracle.get_price("TON-USDT")


# ============================================================
# MOCK ORACLE
# ============================================================

class TestMockOracle:
    """Tests for MockPriceOracle."""

    @pytest.mark.asyncio
    async def test_default_price(self):
        """Test default TON price."""
        oracle = MockPriceOracle()

        assert await oracle.get_price("TON-USDT") == Decimal("5")

    @pytest.mark.asyncio
    async def test_set_price(self):
        """Test set_price applies immediately."""
        oracle = MockPriceOracle()
        await oracle.get_price("TON-USDT")

        oracle.set_price("TON-USDT", "6.5")

        assert await oracle.get_price("TON-USDT") == Decimal("6.5")

    @pytest.mark.asyncio
    async def test_fail_and_recover(self):
        """Test forced failures and recovery."""
        oracle = MockPriceOracle()
        oracle.fail("TON-USDT")

        with pytest.raises(PriceUnavailableError):
            await oracle.get_price("TON-USDT")

        oracle.recover("TON-USDT")
        assert await oracle.get_price("TON-USDT") == Decimal("5")

    @pytest.mark.asyncio
    async def test_unknown_instrument(self):
        """Test unconfigured instruments are unavailable."""
        oracle = MockPriceOracle()

        with pytest.raises(PriceUnavailableError):
            await oracle.get_price("DOGE-USDT")

        assert oracle.call_count == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
