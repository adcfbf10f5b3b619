"""
Escrow Contract Codec Tests.

============================================================
PURPOSE
============================================================
Tests for the bit-level cell codec, message layouts and
TON address parsing.

TEST CATEGORIES:
- Bit builder / reader primitives
- Message byte layouts
- Decode errors and exit codes
- Address forms

============================================================
"""

import pytest

from escrow_contract import (
    AwardJetton,
    BitBuilder,
    BitReader,
    CellOverflowError,
    CellUnderflowError,
    Deposit,
    EmergencyWithdraw,
    InvalidAddressError,
    InvalidArgumentError,
    InvalidMessageError,
    InvalidPrefixError,
    Opcode,
    Pause,
    TonAddress,
    Withdraw,
    decode_message,
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def user():
    return TonAddress(0, bytes(range(32)))


@pytest.fixture
def masterchain_user():
    return TonAddress(-1, b"\xab" * 32)


# ============================================================
# BIT PRIMITIVES
# ============================================================

class TestBitBuilder:
    """Tests for BitBuilder and BitReader."""

    def test_byte_aligned_has_no_completion_tag(self):
        """Test 32-bit payload serializes to exactly 4 bytes."""
        data = BitBuilder().store_uint(0xDEADBEEF, 32).to_bytes()

        assert data == b"\xde\xad\xbe\xef"

    def test_completion_tag_appended(self):
        """Test a single bit is followed by the 1-then-zeros tag."""
        assert BitBuilder().store_bit(True).to_bytes() == b"\xc0"
        assert BitBuilder().store_bit(False).to_bytes() == b"\x40"

    def test_signed_int_two_complement(self):
        """Test negative ints read back correctly."""
        data = BitBuilder().store_int(-1, 8).store_int(-128, 8).to_bytes()
        reader = BitReader(data)

        assert data == b"\xff\x80"
        assert reader.load_int(8) == -1
        assert reader.load_int(8) == -128

    def test_zero_coins_is_four_bits(self):
        """Test zero coins store only the length nibble."""
        builder = BitBuilder().store_coins(0)

        assert builder.bit_length == 4

    def test_coins_too_large_rejected(self):
        """Test coins over 15 bytes are rejected."""
        with pytest.raises(InvalidArgumentError):
            BitBuilder().store_coins(1 << 120)

    def test_cell_overflow(self):
        """Test storing more than 1023 bits raises."""
        builder = BitBuilder().store_uint(0, 1000)

        with pytest.raises(CellOverflowError) as exc_info:
            builder.store_uint(0, 24)

        assert exc_info.value.exit_code == 8

    def test_reader_underflow(self):
        """Test reading past the end raises."""
        reader = BitReader(b"\x01")

        with pytest.raises(CellUnderflowError) as exc_info:
            reader.load_uint(9)

        assert exc_info.value.exit_code == 9


# ============================================================
# MESSAGE LAYOUTS
# ============================================================

class TestMessageLayouts:
    """Tests for exact message byte layouts."""

    def test_deposit_is_bare_opcode(self):
        """Test Deposit encodes to the 32-bit opcode only."""
        assert Deposit().encode() == b"\x00\x00\x00\x01"

    def test_withdraw_one_ton(self):
        """Test Withdraw of 1 TON: opcode, length 4, value, tag."""
        data = Withdraw(amount=1_000_000_000).encode()

        assert data == b"\x00\x00\x00\x02\x43\xb9\xac\xa0\x08"

    def test_withdraw_zero_amount(self):
        """Test Withdraw(0) still encodes (rejected by the contract, not codec)."""
        assert Withdraw(amount=0).encode() == b"\x00\x00\x00\x02\x08"

    def test_pause_flag_bit(self):
        """Test Pause encodes a single flag bit after the opcode."""
        assert Pause(flag=True).encode() == b"\x00\x00\x00\x04\xc0"
        assert Pause(flag=False).encode() == b"\x00\x00\x00\x04\x40"

    def test_award_jetton_round_trip(self, user):
        """Test AwardJetton decodes to the same address and amount."""
        message = AwardJetton(user=user, amount=3_000_000_000)

        decoded = AwardJetton.decode(message.encode())

        assert decoded == message

    def test_emergency_withdraw_masterchain_address(self, masterchain_user):
        """Test negative workchain survives encoding."""
        message = EmergencyWithdraw(to=masterchain_user, amount=42)

        decoded = decode_message(message.encode())

        assert isinstance(decoded, EmergencyWithdraw)
        assert decoded.to.workchain == -1
        assert decoded.amount == 42

    def test_decode_message_dispatches_by_opcode(self):
        """Test dispatch picks the right variant."""
        assert isinstance(decode_message(Deposit().encode()), Deposit)
        assert decode_message(Withdraw(amount=7).encode()) == Withdraw(amount=7)
        assert decode_message(Pause(flag=True).encode()) == Pause(flag=True)


# ============================================================
# DECODE ERRORS
# ============================================================

class TestDecodeErrors:
    """Tests for malformed bodies."""

    def test_unknown_opcode(self):
        """Test unknown opcode maps to exit 130."""
        body = (99).to_bytes(4, "big")

        with pytest.raises(InvalidMessageError) as exc_info:
            decode_message(body)

        assert exc_info.value.exit_code == 130

    def test_empty_body(self):
        """Test empty body is an invalid message."""
        with pytest.raises(InvalidMessageError):
            decode_message(b"")

    def test_wrong_prefix_for_variant(self):
        """Test variant decoder rejects another opcode with exit 129."""
        with pytest.raises(InvalidPrefixError) as exc_info:
            Withdraw.decode(Deposit().encode())

        assert exc_info.value.exit_code == 129

    def test_trailing_data_rejected(self):
        """Test extra bytes after the layout are rejected."""
        with pytest.raises(InvalidMessageError):
            decode_message(Deposit().encode() + b"\x00")

    def test_bad_completion_tag_rejected(self):
        """Test padding that is not 1-then-zeros is rejected."""
        with pytest.raises(InvalidMessageError):
            decode_message(b"\x00\x00\x00\x04\xc1")

    def test_truncated_withdraw(self):
        """Test missing coins field underflows."""
        body = int(Opcode.WITHDRAW).to_bytes(4, "big")

        with pytest.raises(CellUnderflowError):
            decode_message(body)


# ============================================================
# ADDRESSES
# ============================================================

class TestTonAddress:
    """Tests for TonAddress parsing and rendering."""

    def test_raw_round_trip(self, user):
        """Test raw form parses back to the same address."""
        raw = user.to_raw()

        assert raw.startswith("0:")
        assert TonAddress.parse(raw) == user

    def test_friendly_round_trip(self, masterchain_user):
        """Test both base64 alphabets parse to the same address."""
        url_safe = masterchain_user.to_friendly(url_safe=True)
        standard = masterchain_user.to_friendly(url_safe=False)

        assert len(url_safe) == 48
        assert TonAddress.parse(url_safe) == masterchain_user
        assert TonAddress.parse(standard) == masterchain_user

    def test_non_bounceable_and_testnet_flags(self, user):
        """Test flag variants still parse."""
        text = user.to_friendly(bounceable=False, test_only=True)

        assert TonAddress.parse(text) == user

    def test_checksum_mismatch(self, user):
        """Test a corrupted friendly address is rejected."""
        text = user.to_friendly()
        corrupted = text[:-2] + ("AA" if text[-2:] != "AA" else "BB")

        with pytest.raises(InvalidAddressError):
            TonAddress.parse(corrupted)

    def test_invalid_raw(self):
        """Test malformed raw address is rejected."""
        with pytest.raises(InvalidAddressError):
            TonAddress.parse("0:xyz")

    def test_hash_length_checked(self):
        """Test account hash must be 32 bytes."""
        with pytest.raises(InvalidAddressError):
            TonAddress(0, b"\x00" * 31)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
