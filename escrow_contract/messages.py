"""
Escrow Contract - Inbound Message Types.

============================================================
PURPOSE
============================================================
Tagged union of messages the escrow contract accepts. Each
variant has a 32-bit opcode prefix and a fixed field layout:

    Deposit            op=1
    Withdraw           op=2  amount:Coins
    AwardJetton        op=3  user:MsgAddress amount:Coins
    Pause              op=4  flag:bit
    EmergencyWithdraw  op=5  to:MsgAddress amount:Coins

Every variant exposes ``encode()`` and ``decode(body)``;
``decode_message`` dispatches on the opcode.

============================================================
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Type, Union

from .address import TonAddress
from .cells import BitBuilder, BitReader
from .errors import CellUnderflowError, InvalidMessageError, InvalidPrefixError


OPCODE_BITS = 32


class Opcode(IntEnum):
    """32-bit message prefixes."""

    DEPOSIT = 1
    WITHDRAW = 2
    AWARD_JETTON = 3
    PAUSE = 4
    EMERGENCY_WITHDRAW = 5


def _open(body: bytes, expected: Opcode) -> BitReader:
    reader = BitReader(body)
    try:
        opcode = reader.load_uint(OPCODE_BITS)
    except CellUnderflowError as e:
        raise InvalidPrefixError("Body too short for opcode") from e
    if opcode != expected:
        raise InvalidPrefixError(
            f"Expected opcode {int(expected)}, got {opcode}"
        )
    return reader


def _start(opcode: Opcode) -> BitBuilder:
    return BitBuilder().store_uint(int(opcode), OPCODE_BITS)


# ============================================================
# VARIANTS
# ============================================================

@dataclass(frozen=True)
class Deposit:
    """Credit the sender's ledger entry with the attached value."""

    OPCODE = Opcode.DEPOSIT

    def encode(self) -> bytes:
        return _start(self.OPCODE).to_bytes()

    @classmethod
    def decode(cls, body: bytes) -> "Deposit":
        reader = _open(body, cls.OPCODE)
        reader.end_parse()
        return cls()


@dataclass(frozen=True)
class Withdraw:
    """Withdraw ``amount`` nanoton from the sender's ledger entry."""

    amount: int

    OPCODE = Opcode.WITHDRAW

    def encode(self) -> bytes:
        return _start(self.OPCODE).store_coins(self.amount).to_bytes()

    @classmethod
    def decode(cls, body: bytes) -> "Withdraw":
        reader = _open(body, cls.OPCODE)
        amount = reader.load_coins()
        reader.end_parse()
        return cls(amount=amount)


@dataclass(frozen=True)
class AwardJetton:
    """Owner instructs a reward token award to ``user``."""

    user: TonAddress
    amount: int

    OPCODE = Opcode.AWARD_JETTON

    def encode(self) -> bytes:
        return (
            _start(self.OPCODE)
            .store_address(self.user)
            .store_coins(self.amount)
            .to_bytes()
        )

    @classmethod
    def decode(cls, body: bytes) -> "AwardJetton":
        reader = _open(body, cls.OPCODE)
        user = reader.load_address()
        amount = reader.load_coins()
        reader.end_parse()
        return cls(user=user, amount=amount)


@dataclass(frozen=True)
class Pause:
    """Owner sets the paused flag."""

    flag: bool

    OPCODE = Opcode.PAUSE

    def encode(self) -> bytes:
        return _start(self.OPCODE).store_bit(self.flag).to_bytes()

    @classmethod
    def decode(cls, body: bytes) -> "Pause":
        reader = _open(body, cls.OPCODE)
        flag = reader.load_bit()
        reader.end_parse()
        return cls(flag=flag)


@dataclass(frozen=True)
class EmergencyWithdraw:
    """Owner moves ``amount`` from total custody to ``to``."""

    to: TonAddress
    amount: int

    OPCODE = Opcode.EMERGENCY_WITHDRAW

    def encode(self) -> bytes:
        return (
            _start(self.OPCODE)
            .store_address(self.to)
            .store_coins(self.amount)
            .to_bytes()
        )

    @classmethod
    def decode(cls, body: bytes) -> "EmergencyWithdraw":
        reader = _open(body, cls.OPCODE)
        to = reader.load_address()
        amount = reader.load_coins()
        reader.end_parse()
        return cls(to=to, amount=amount)


ContractMessage = Union[Deposit, Withdraw, AwardJetton, Pause, EmergencyWithdraw]


MESSAGE_TYPES: Dict[int, Type] = {
    Opcode.DEPOSIT: Deposit,
    Opcode.WITHDRAW: Withdraw,
    Opcode.AWARD_JETTON: AwardJetton,
    Opcode.PAUSE: Pause,
    Opcode.EMERGENCY_WITHDRAW: EmergencyWithdraw,
}


OWNER_ONLY_MESSAGES = (AwardJetton, Pause, EmergencyWithdraw)


def decode_message(body: bytes) -> ContractMessage:
    """Decode an inbound body by its opcode."""
    if len(body) < OPCODE_BITS // 8:
        raise InvalidMessageError("Body too short for opcode")
    opcode = int.from_bytes(body[:4], "big")
    message_type = MESSAGE_TYPES.get(opcode)
    if message_type is None:
        raise InvalidMessageError(f"Unknown opcode: {opcode}")
    return message_type.decode(body)
