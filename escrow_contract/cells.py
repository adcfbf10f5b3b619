"""
Escrow Contract - Bit-Level Cell Codec.

============================================================
PURPOSE
============================================================
Pack and unpack message bodies bit by bit, MSB first.

The encoder appends the standard completion tag (a single 1 bit
followed by zeros) when the bit length is not a multiple of 8, so
the byte form is unambiguous for a reader that knows the layout.

PRIMITIVES:
- uint / int of N bits (two's complement for int)
- single bit
- Coins (VarUInteger 16): 4-bit byte length, then value bytes
- MsgAddress (std): 0b10, anycast bit 0, int8 workchain, 256-bit hash

============================================================
"""

from .address import TonAddress
from .errors import (
    CellOverflowError,
    CellUnderflowError,
    InvalidAddressError,
    InvalidArgumentError,
    InvalidMessageError,
)


# ============================================================
# CONSTANTS
# ============================================================

CELL_MAX_BITS = 1023
"""Maximum data bits in a single cell."""

COINS_MAX_BYTES = 15
"""VarUInteger 16 carries at most 15 value bytes."""

ADDRESS_STD_TAG = 0b10


# ============================================================
# BUILDER
# ============================================================

class BitBuilder:
    """Append-only bit buffer."""

    def __init__(self) -> None:
        self._value = 0
        self._length = 0

    @property
    def bit_length(self) -> int:
        return self._length

    def _append(self, value: int, bits: int) -> "BitBuilder":
        if self._length + bits > CELL_MAX_BITS:
            raise CellOverflowError(
                f"Cannot store {bits} bits, {CELL_MAX_BITS - self._length} left"
            )
        self._value = (self._value << bits) | value
        self._length += bits
        return self

    def store_uint(self, value: int, bits: int) -> "BitBuilder":
        if bits < 0 or value < 0 or value >= (1 << bits):
            raise InvalidArgumentError(f"Value {value} does not fit uint{bits}")
        return self._append(value, bits)

    def store_int(self, value: int, bits: int) -> "BitBuilder":
        low = -(1 << (bits - 1))
        high = (1 << (bits - 1)) - 1
        if not low <= value <= high:
            raise InvalidArgumentError(f"Value {value} does not fit int{bits}")
        return self._append(value & ((1 << bits) - 1), bits)

    def store_bit(self, flag: bool) -> "BitBuilder":
        return self._append(1 if flag else 0, 1)

    def store_coins(self, amount: int) -> "BitBuilder":
        if amount < 0:
            raise InvalidArgumentError(f"Coins amount must be non-negative: {amount}")
        byte_len = (amount.bit_length() + 7) // 8
        if byte_len > COINS_MAX_BYTES:
            raise InvalidArgumentError(f"Coins amount too large: {amount}")
        self.store_uint(byte_len, 4)
        if byte_len:
            self.store_uint(amount, byte_len * 8)
        return self

    def store_address(self, address: TonAddress) -> "BitBuilder":
        self.store_uint(ADDRESS_STD_TAG, 2)
        self.store_bit(False)
        self.store_int(address.workchain, 8)
        self.store_uint(int.from_bytes(address.hash_part, "big"), 256)
        return self

    def to_bytes(self) -> bytes:
        """Serialize to bytes, appending the completion tag if needed."""
        value = self._value
        length = self._length
        remainder = length % 8
        if remainder:
            pad = 8 - remainder
            value = (value << pad) | (1 << (pad - 1))
            length += pad
        return value.to_bytes(length // 8, "big")


# ============================================================
# READER
# ============================================================

class BitReader:
    """Sequential reader over a byte-encoded bit string."""

    def __init__(self, data: bytes) -> None:
        self._value = int.from_bytes(data, "big")
        self._total = len(data) * 8
        self._pos = 0

    @property
    def remaining_bits(self) -> int:
        return self._total - self._pos

    def load_uint(self, bits: int) -> int:
        if bits > self.remaining_bits:
            raise CellUnderflowError(
                f"Cannot read {bits} bits, {self.remaining_bits} left"
            )
        if bits == 0:
            return 0
        shift = self._total - self._pos - bits
        self._pos += bits
        return (self._value >> shift) & ((1 << bits) - 1)

    def load_int(self, bits: int) -> int:
        raw = self.load_uint(bits)
        if raw >= (1 << (bits - 1)):
            raw -= 1 << bits
        return raw

    def load_bit(self) -> bool:
        return self.load_uint(1) == 1

    def load_coins(self) -> int:
        byte_len = self.load_uint(4)
        return self.load_uint(byte_len * 8)

    def load_address(self) -> TonAddress:
        tag = self.load_uint(2)
        if tag != ADDRESS_STD_TAG:
            raise InvalidAddressError(f"Unsupported address tag: {tag:#04b}")
        if self.load_bit():
            raise InvalidAddressError("Anycast addresses are not supported")
        workchain = self.load_int(8)
        hash_part = self.load_uint(256).to_bytes(32, "big")
        return TonAddress(workchain, hash_part)

    def end_parse(self) -> None:
        """Reject anything but an optional completion tag after the last field."""
        left = self.remaining_bits
        if left == 0:
            return
        if left >= 8:
            raise InvalidMessageError(f"Trailing data: {left} bits")
        tail = self.load_uint(left)
        if tail != 1 << (left - 1):
            raise InvalidMessageError(f"Invalid completion tag: {tail:#0{left + 2}b}")
