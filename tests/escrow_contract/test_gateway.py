"""
Contract Gateway Tests.

Tests for LocalContractGateway submission and getters.
"""

import pytest

from escrow_contract import (
    AwardJetton,
    ContractExecutionError,
    Deposit,
    EscrowContract,
    LocalContractGateway,
    Pause,
    TonAddress,
    Withdraw,
)


TON = 1_000_000_000


@pytest.fixture
def owner():
    return TonAddress(0, b"\x01" * 32)


@pytest.fixture
def alice():
    return TonAddress(0, b"\xa1" * 32)


@pytest.fixture
def gateway(owner):
    contract = EscrowContract(owner=owner, jetton_master=TonAddress(0, b"\x33" * 32))
    return LocalContractGateway(contract)


class TestLocalContractGateway:
    """Tests for LocalContractGateway."""

    @pytest.mark.asyncio
    async def test_send_returns_receipt(self, gateway, alice):
        """Test successful submission returns a hex tx hash."""
        receipt = await gateway.send(alice, TON, Deposit())

        assert len(receipt.tx_hash) == 64
        int(receipt.tx_hash, 16)
        assert receipt.result.success
        assert await gateway.balance_of(alice) == TON

    @pytest.mark.asyncio
    async def test_rejected_message_raises(self, gateway, alice):
        """Test a failed transaction raises with exit code and tx hash."""
        with pytest.raises(ContractExecutionError) as exc_info:
            await gateway.send(alice, 0, Withdraw(amount=TON))

        assert exc_info.value.exit_code == 50707
        assert len(exc_info.value.tx_hash) == 64

    @pytest.mark.asyncio
    async def test_identical_messages_get_distinct_hashes(self, gateway, alice):
        """Test logical time makes repeated submissions distinguishable."""
        first = await gateway.send(alice, TON, Deposit())
        second = await gateway.send(alice, TON, Deposit())

        assert first.tx_hash != second.tx_hash

    @pytest.mark.asyncio
    async def test_owner_messages(self, gateway, owner, alice):
        """Test owner getters and award submission through the gateway."""
        assert await gateway.get_owner() == owner

        await gateway.send(owner, 0, Pause(flag=True))
        assert await gateway.is_paused()

        receipt = await gateway.send(owner, 0, AwardJetton(user=alice, amount=TON))
        assert receipt.result.out_messages[0].value == 0

    @pytest.mark.asyncio
    async def test_unknown_address_balance_is_zero(self, gateway, alice):
        """Test balance getter defaults to zero."""
        assert await gateway.balance_of(alice) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
