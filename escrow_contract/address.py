"""
Escrow Contract - TON Addresses.

Standard internal addresses in raw (``0:<hex>``) and user-friendly
(base64, 36 bytes with CRC16) forms.
"""

import base64
import binascii
from dataclasses import dataclass

from .errors import InvalidAddressError


# User-friendly address flags
_BOUNCEABLE_TAG = 0x11
_NON_BOUNCEABLE_TAG = 0x51
_TEST_FLAG = 0x80


def _crc16(data: bytes) -> bytes:
    # CRC16-XMODEM (poly 0x1021, init 0)
    return binascii.crc_hqx(data, 0).to_bytes(2, "big")


@dataclass(frozen=True)
class TonAddress:
    """Standard internal address: workchain + 256-bit account hash."""

    workchain: int
    hash_part: bytes

    def __post_init__(self) -> None:
        if not -128 <= self.workchain <= 127:
            raise InvalidAddressError(f"Workchain out of range: {self.workchain}")
        if len(self.hash_part) != 32:
            raise InvalidAddressError(
                f"Account hash must be 32 bytes, got {len(self.hash_part)}"
            )

    @classmethod
    def parse(cls, text: str) -> "TonAddress":
        """Parse a raw or user-friendly address string."""
        text = text.strip()
        if ":" in text:
            return cls._parse_raw(text)
        return cls._parse_friendly(text)

    @classmethod
    def _parse_raw(cls, text: str) -> "TonAddress":
        workchain_part, _, hash_hex = text.partition(":")
        try:
            workchain = int(workchain_part)
            hash_part = bytes.fromhex(hash_hex)
        except ValueError as e:
            raise InvalidAddressError(f"Invalid raw address: {text}") from e
        return cls(workchain, hash_part)

    @classmethod
    def _parse_friendly(cls, text: str) -> "TonAddress":
        if len(text) != 48:
            raise InvalidAddressError(f"Invalid address length: {text}")
        normalized = text.replace("-", "+").replace("_", "/")
        try:
            data = base64.b64decode(normalized, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidAddressError(f"Invalid base64 address: {text}") from e

        if len(data) != 36:
            raise InvalidAddressError(f"Invalid address payload: {text}")
        if _crc16(data[:34]) != data[34:]:
            raise InvalidAddressError(f"Address checksum mismatch: {text}")

        tag = data[0] & ~_TEST_FLAG
        if tag not in (_BOUNCEABLE_TAG, _NON_BOUNCEABLE_TAG):
            raise InvalidAddressError(f"Unknown address tag: {data[0]:#x}")

        workchain = int.from_bytes(data[1:2], "big", signed=True)
        return cls(workchain, data[2:34])

    def to_raw(self) -> str:
        return f"{self.workchain}:{self.hash_part.hex()}"

    def to_friendly(
        self,
        bounceable: bool = True,
        test_only: bool = False,
        url_safe: bool = True,
    ) -> str:
        tag = _BOUNCEABLE_TAG if bounceable else _NON_BOUNCEABLE_TAG
        if test_only:
            tag |= _TEST_FLAG
        payload = (
            bytes([tag])
            + self.workchain.to_bytes(1, "big", signed=True)
            + self.hash_part
        )
        payload += _crc16(payload)
        if url_safe:
            return base64.urlsafe_b64encode(payload).decode("ascii")
        return base64.b64encode(payload).decode("ascii")

    def __str__(self) -> str:
        return self.to_raw()
