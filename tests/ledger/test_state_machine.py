"""
Ledger State Machine, Error Registry and Lock Tests.
"""

import asyncio
from decimal import Decimal

import pytest

from ledger import (
    ERROR_CODES,
    ErrorCategory,
    InsufficientBalanceError,
    InvalidTransitionError,
    KeyedLock,
    LedgerError,
    RewardWithdrawal,
    Trade,
    TradeNotOpenError,
    TradeSide,
    TradeStatus,
    WithdrawalStatus,
    get_error_info,
    is_retryable,
)
from ledger.state_machine import can_transition, transition_trade, transition_withdrawal


def open_trade():
    return Trade(
        account_id="acc",
        instrument="TON-USDT",
        side=TradeSide.BUY,
        amount=Decimal("1"),
        entry_price=Decimal("5"),
    )


def pending_withdrawal():
    return RewardWithdrawal(account_id="acc", identity="0:" + "a1" * 32, amount=Decimal("1"))


# ============================================================
# TRANSITIONS
# ============================================================

class TestTradeTransitions:
    """Tests for trade lifecycle."""

    def test_open_to_canceled(self):
        trade = open_trade()

        event = transition_trade(trade, TradeStatus.CANCELED, reason="user cancel")

        assert trade.status is TradeStatus.CANCELED
        assert trade.closed_at is not None
        assert event.from_state == "open"
        assert event.to_state == "canceled"

    @pytest.mark.parametrize("terminal", [TradeStatus.CLOSED, TradeStatus.CANCELED])
    def test_terminal_states_are_final(self, terminal):
        """Test no transition leaves a terminal state."""
        trade = open_trade()
        transition_trade(trade, terminal)

        with pytest.raises(TradeNotOpenError):
            transition_trade(trade, TradeStatus.CANCELED)

    def test_self_transition_rejected(self):
        allowed, reason = can_transition(TradeStatus.OPEN, TradeStatus.OPEN)

        assert not allowed
        assert "open -> open" in reason


class TestWithdrawalTransitions:
    """Tests for withdrawal lifecycle."""

    def test_failed_then_refunded(self):
        withdrawal = pending_withdrawal()

        transition_withdrawal(withdrawal, WithdrawalStatus.FAILED)
        transition_withdrawal(withdrawal, WithdrawalStatus.REFUNDED)

        assert withdrawal.status is WithdrawalStatus.REFUNDED

    def test_refund_only_once(self):
        withdrawal = pending_withdrawal()
        transition_withdrawal(withdrawal, WithdrawalStatus.FAILED)
        transition_withdrawal(withdrawal, WithdrawalStatus.REFUNDED)

        with pytest.raises(InvalidTransitionError):
            transition_withdrawal(withdrawal, WithdrawalStatus.REFUNDED)

    def test_confirmed_cannot_be_refunded(self):
        withdrawal = pending_withdrawal()
        transition_withdrawal(withdrawal, WithdrawalStatus.CONFIRMED)

        allowed, reason = can_transition(withdrawal.status, WithdrawalStatus.REFUNDED)

        assert not allowed
        assert "terminal" in reason

    def test_pending_cannot_skip_to_refunded(self):
        with pytest.raises(InvalidTransitionError):
            transition_withdrawal(pending_withdrawal(), WithdrawalStatus.REFUNDED)


# ============================================================
# ERROR REGISTRY
# ============================================================

class TestErrorRegistry:
    """Tests for error codes."""

    def test_only_price_unavailable_is_retryable(self):
        retryable = {code for code, info in ERROR_CODES.items() if info.is_retryable}

        assert retryable == {"EXT_PRICE_UNAVAILABLE"}
        assert is_retryable("EXT_PRICE_UNAVAILABLE")
        assert not is_retryable("INV_INSUFFICIENT_BALANCE")

    def test_unknown_code(self):
        info = get_error_info("NOPE")

        assert info.category is ErrorCategory.INTERNAL
        assert not info.is_retryable

    def test_error_serialization(self):
        error = InsufficientBalanceError(
            "Insufficient trading balance",
            asset="base",
            required=Decimal("2"),
            available=Decimal("1"),
        )

        data = error.to_dict()

        assert data["type"] == "InsufficientBalanceError"
        assert data["code"] == "INV_INSUFFICIENT_BALANCE"
        assert data["category"] == "INVARIANT"
        assert data["context"] == {"asset": "base", "required": "2", "available": "1"}
        assert isinstance(error, LedgerError)


# ============================================================
# KEYED LOCK
# ============================================================

class TestKeyedLock:
    """Tests for KeyedLock."""

    @pytest.mark.asyncio
    async def test_same_key_serialized(self):
        """Test critical sections on one key never overlap."""
        locks = KeyedLock()
        active = 0
        peak = 0

        async def worker():
            nonlocal active, peak
            async with locks.acquire("alice"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(worker() for _ in range(5)))

        assert peak == 1

    @pytest.mark.asyncio
    async def test_different_keys_parallel(self):
        """Test another key is not blocked."""
        locks = KeyedLock()

        async with locks.acquire("alice"):
            assert locks.locked("alice")
            assert not locks.locked("bob")
            async with locks.acquire("bob"):
                assert len(locks) == 2

    @pytest.mark.asyncio
    async def test_released_locks_dropped(self):
        locks = KeyedLock()

        async with locks.acquire("alice"):
            pass

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = KeyedLock()

        with pytest.raises(RuntimeError):
            async with locks.acquire("alice"):
                raise RuntimeError("boom")

        assert not locks.locked("alice")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
