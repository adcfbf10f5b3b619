"""
Escrow Contract - State Machine.

============================================================
PURPOSE
============================================================
In-process model of the on-chain escrow contract that holds
user deposits in custody.

STATES:
- ACTIVE: paused = False, all messages accepted
- PAUSED: paused = True, Deposit and Withdraw rejected

RULES:
- Owner guard runs before any other check on owner-only messages
- Handlers validate fully before mutating
- A failed message leaves ledger, flag and custody unchanged and
  bounces its attached value back to the sender
- Integer nanoton arithmetic only, fee floor-rounded
- One message at a time (instance lock)

============================================================
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from .address import TonAddress
from .errors import (
    AccessDeniedError,
    ContractError,
    InsufficientBalanceError,
    InsufficientCustodyError,
    InvalidArgumentError,
    PausedError,
    ZeroDepositError,
    ZeroWithdrawError,
)
from .messages import (
    OWNER_ONLY_MESSAGES,
    AwardJetton,
    ContractMessage,
    Deposit,
    EmergencyWithdraw,
    Pause,
    Withdraw,
    decode_message,
)
from .types import (
    FEE_BPS_DENOMINATOR,
    ContractConfig,
    ContractEvent,
    ContractEventType,
    OutMessage,
    TransactionResult,
)


logger = logging.getLogger(__name__)


EXIT_SUCCESS = 0


def _utc_now() -> datetime:
    return datetime.utcnow()


@dataclass
class _Context:
    sender: TonAddress
    value: int
    logical_time: int


# Handler output: outbound messages and events
_Effects = Tuple[List[OutMessage], List[ContractEvent]]


class EscrowContract:
    """
    Escrow contract state machine.

    Holds the per-user ledger (nanoton), the paused flag and the
    total custody balance. ``receive`` is the single entry point.
    """

    def __init__(
        self,
        owner: TonAddress,
        jetton_master: TonAddress,
        withdraw_fee_bps: int = 0,
        initial_custody: int = 0,
    ) -> None:
        if not 0 <= withdraw_fee_bps <= FEE_BPS_DENOMINATOR:
            raise InvalidArgumentError(
                f"withdraw_fee_bps must be within 0..{FEE_BPS_DENOMINATOR}, "
                f"got {withdraw_fee_bps}"
            )
        if initial_custody < 0:
            raise InvalidArgumentError("initial_custody must be non-negative")

        self._config = ContractConfig(
            owner=owner,
            jetton_master=jetton_master,
            withdraw_fee_bps=withdraw_fee_bps,
        )
        self._balances: Dict[TonAddress, int] = {}
        self._custody = initial_custody
        self._logical_time = 0
        self._events: List[ContractEvent] = []
        self._lock = threading.Lock()

        self._handlers: Dict[type, Callable[[_Context, ContractMessage], _Effects]] = {
            Deposit: self._handle_deposit,
            Withdraw: self._handle_withdraw,
            AwardJetton: self._handle_award_jetton,
            Pause: self._handle_pause,
            EmergencyWithdraw: self._handle_emergency_withdraw,
        }

        logger.info(
            f"EscrowContract initialized: owner={owner}, "
            f"jetton_master={jetton_master}, fee_bps={withdraw_fee_bps}"
        )

    # --------------------------------------------------------
    # ENTRY POINT
    # --------------------------------------------------------

    def receive(self, sender: TonAddress, value: int, body: bytes) -> TransactionResult:
        """
        Process one inbound message.

        Args:
            sender: Message source address
            value: Attached nanoton
            body: Encoded message body

        Returns:
            TransactionResult with exit code, out messages and events
        """
        if value < 0:
            raise InvalidArgumentError(f"Attached value must be non-negative: {value}")

        with self._lock:
            self._logical_time += 1
            ctx = _Context(sender=sender, value=value, logical_time=self._logical_time)

            try:
                message = decode_message(body)
                out_messages, events = self._dispatch(ctx, message)
            except ContractError as e:
                return self._bounce(ctx, e)

            self._custody += value - sum(m.value for m in out_messages)
            self._events.extend(events)
            for event in events:
                logger.info(
                    f"Contract event: {event.event_type.value} "
                    f"lt={event.logical_time} {event.data}"
                )

            return TransactionResult(
                success=True,
                exit_code=EXIT_SUCCESS,
                logical_time=ctx.logical_time,
                out_messages=out_messages,
                events=events,
            )

    def _dispatch(self, ctx: _Context, message: ContractMessage) -> _Effects:
        if isinstance(message, OWNER_ONLY_MESSAGES) and ctx.sender != self._config.owner:
            raise AccessDeniedError(
                f"{type(message).__name__} requires owner",
                context={"sender": str(ctx.sender)},
            )
        handler = self._handlers[type(message)]
        return handler(ctx, message)

    def _bounce(self, ctx: _Context, error: ContractError) -> TransactionResult:
        logger.warning(
            f"Contract rejected message: sender={ctx.sender}, value={ctx.value}, "
            f"exit_code={error.exit_code}, reason={error.message}"
        )
        out_messages: List[OutMessage] = []
        events: List[ContractEvent] = []
        if ctx.value > 0:
            out_messages.append(OutMessage(to=ctx.sender, value=ctx.value, bounced=True))
            events.append(self._event(
                ContractEventType.BOUNCE,
                ctx,
                sender=str(ctx.sender),
                value=ctx.value,
                exit_code=error.exit_code,
            ))
            self._events.extend(events)
        return TransactionResult(
            success=False,
            exit_code=error.exit_code,
            logical_time=ctx.logical_time,
            out_messages=out_messages,
            events=events,
        )

    # --------------------------------------------------------
    # HANDLERS
    # --------------------------------------------------------

    def _require_active(self) -> None:
        if self._config.paused:
            raise PausedError()

    def _handle_deposit(self, ctx: _Context, message: Deposit) -> _Effects:
        if ctx.value <= 0:
            raise ZeroDepositError()
        self._require_active()

        self._balances[ctx.sender] = self._balances.get(ctx.sender, 0) + ctx.value
        return [], [self._event(
            ContractEventType.DEPOSIT,
            ctx,
            user=str(ctx.sender),
            amount=ctx.value,
            balance=self._balances[ctx.sender],
        )]

    def _handle_withdraw(self, ctx: _Context, message: Withdraw) -> _Effects:
        self._require_active()
        if message.amount <= 0:
            raise ZeroWithdrawError()
        balance = self._balances.get(ctx.sender, 0)
        if balance < message.amount:
            raise InsufficientBalanceError(
                context={"balance": balance, "requested": message.amount}
            )

        fee = message.amount * self._config.withdraw_fee_bps // FEE_BPS_DENOMINATOR
        payout = message.amount - fee
        if self._custody + ctx.value < payout:
            raise InsufficientCustodyError(
                context={"custody": self._custody, "payout": payout}
            )

        self._balances[ctx.sender] = balance - message.amount
        out = OutMessage(to=ctx.sender, value=payout)
        return [out], [self._event(
            ContractEventType.WITHDRAWAL,
            ctx,
            user=str(ctx.sender),
            amount=message.amount,
            fee=fee,
            payout=payout,
            balance=self._balances[ctx.sender],
        )]

    def _handle_award_jetton(self, ctx: _Context, message: AwardJetton) -> _Effects:
        out = OutMessage(to=self._config.jetton_master, value=0, body=message.encode())
        return [out], [self._event(
            ContractEventType.AWARD,
            ctx,
            user=str(message.user),
            amount=message.amount,
        )]

    def _handle_pause(self, ctx: _Context, message: Pause) -> _Effects:
        self._config.paused = message.flag
        return [], [self._event(ContractEventType.PAUSE, ctx, paused=message.flag)]

    def _handle_emergency_withdraw(
        self, ctx: _Context, message: EmergencyWithdraw
    ) -> _Effects:
        if self._custody + ctx.value < message.amount:
            raise InsufficientCustodyError(
                context={"custody": self._custody, "requested": message.amount}
            )
        out = OutMessage(to=message.to, value=message.amount)
        return [out], [self._event(
            ContractEventType.EMERGENCY_WITHDRAWAL,
            ctx,
            to=str(message.to),
            amount=message.amount,
        )]

    def _event(self, event_type: ContractEventType, ctx: _Context, **data) -> ContractEvent:
        return ContractEvent(
            event_type=event_type,
            logical_time=ctx.logical_time,
            data=data,
            timestamp=_utc_now(),
        )

    # --------------------------------------------------------
    # GETTERS
    # --------------------------------------------------------

    def balance_of(self, address: TonAddress) -> int:
        return self._balances.get(address, 0)

    def is_paused(self) -> bool:
        return self._config.paused

    def get_owner(self) -> TonAddress:
        return self._config.owner

    @property
    def config(self) -> ContractConfig:
        return self._config

    @property
    def custody(self) -> int:
        """Total nanoton held by the contract."""
        return self._custody

    @property
    def logical_time(self) -> int:
        return self._logical_time

    @property
    def events(self) -> List[ContractEvent]:
        return list(self._events)

    def ledger_total(self) -> int:
        """Sum of all per-user ledger entries."""
        return sum(self._balances.values())

    def has_entry(self, address: TonAddress) -> bool:
        return address in self._balances

    def get_events(
        self,
        event_type: Optional[ContractEventType] = None,
    ) -> List[ContractEvent]:
        if event_type is None:
            return list(self._events)
        return [e for e in self._events if e.event_type == event_type]
