"""
Payment Types

Standardized results shared by the payment coordinator and the HTTP layer.

Instant methods (cash, card, direct transfer) settle in one call and return
a PaymentOutcome straight away. Asynchronous methods (QR bank transfer) open
a PaymentSession whose poll task watches the remote order until the bank
confirms it, the poll times out, or the session is cancelled.
"""

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Optional


class PollResult(str, enum.Enum):
    """Value delivered on a session's result channel."""
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class PaymentAction(str, enum.Enum):
    """What the "complete payment" action ended up doing."""
    INSTANT_PAID = "instant_paid"
    SESSION_STARTED = "session_started"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    FAILED = "failed"


@dataclass
class PaymentSession:
    """
    Live asynchronous payment of one table.

    Attributes:
        table_id: Table being paid
        order_id: Remote order watched by the poll
        method_id: Asynchronous method chosen for the payment
        amount: Cart total when the session started
        qr_payload: QR image URL encoding amount and reference
        payment_url: Hosted payment page
        confirmed: Remote order observed paid; never reverts
        completed: Finalization done; the session is inert afterwards
        task: Poll task owned by the coordinator
        result: Result channel, resolved exactly once with a PollResult
    """
    table_id: int
    order_id: int
    method_id: int
    amount: float
    qr_payload: str
    payment_url: str
    confirmed: bool = False
    completed: bool = False
    completing: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    result: Optional[asyncio.Future] = field(default=None, repr=False)

    @property
    def status(self) -> str:
        if self.completed:
            return "completed"
        if self.confirmed:
            return PollResult.CONFIRMED.value
        if self.result is not None and self.result.done() and not self.result.cancelled():
            return self.result.result().value
        return "pending"

    @property
    def is_live(self) -> bool:
        """Still waiting for, or holding, a confirmation to complete."""
        return not self.completed and self.status in ("pending", PollResult.CONFIRMED.value)

    def resolve(self, outcome: PollResult) -> None:
        if self.result is not None and not self.result.done():
            self.result.set_result(outcome)

    def to_dict(self) -> dict:
        return {
            "table_id": self.table_id,
            "order_id": self.order_id,
            "amount": self.amount,
            "qr_payload": self.qr_payload,
            "payment_url": self.payment_url,
            "status": self.status,
            "confirmed": self.confirmed,
            "completed": self.completed,
        }


@dataclass
class PaymentOutcome:
    """
    Result of a payment action.

    Failures caused by the order API are reported here rather than raised,
    with a message fit to show to staff. The cart is left intact on failure.
    """
    success: bool
    action: PaymentAction
    message: str
    order_id: Optional[int] = None
    session: Optional[PaymentSession] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "action": self.action.value,
            "message": self.message,
            "order_id": self.order_id,
            "session": self.session.to_dict() if self.session else None,
        }
