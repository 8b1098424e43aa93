"""
Order State Machine

The lifecycle of a table's order as an explicit tagged union:

    Draft      cart exists, no remote order yet
    Placed     remote status 1
    InService  remote status 2 (paid / occupied)
    Reserved   remote status 3, valid until its reservation deadline
    Cancelled  remote status 4 (terminal)
    Completed  paid and cart cleared (terminal)

Transitions are listed in ``TRANSITIONS``; any other (state, event) pair
raises InvalidTransitionError. Reservation expiry is detected lazily, when
an order is read, never by a background sweep.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, time
from typing import Optional, Union

from backoffice.core.exceptions import InvalidTransitionError
from backoffice.models import OrderRecord, OrderStatus, PendingCart, Table

END_OF_DAY = time(23, 59, 59)


class OrderEvent(str, enum.Enum):
    CONFIRM = "confirm"
    PAY = "pay"
    EXPIRE = "expire"
    CANCEL = "cancel"
    COMPLETE = "complete"


# =============================================================================
# STATES
# =============================================================================

@dataclass(frozen=True)
class Draft:
    table_id: int
    name = "draft"
    terminal = False


@dataclass(frozen=True)
class Placed:
    order_id: int
    name = "placed"
    terminal = False


@dataclass(frozen=True)
class InService:
    order_id: int
    name = "in_service"
    terminal = False


@dataclass(frozen=True)
class Reserved:
    order_id: int
    name = "reserved"
    terminal = False


@dataclass(frozen=True)
class Cancelled:
    order_id: Optional[int] = None
    name = "cancelled"
    terminal = True


@dataclass(frozen=True)
class Completed:
    order_id: int
    name = "completed"
    terminal = True


OrderState = Union[Draft, Placed, InService, Reserved, Cancelled, Completed]

TRANSITIONS: dict[tuple[type, OrderEvent], type] = {
    (Draft, OrderEvent.CONFIRM): Placed,
    (Placed, OrderEvent.CONFIRM): Placed,
    (Draft, OrderEvent.PAY): InService,
    (Placed, OrderEvent.PAY): InService,
    (Reserved, OrderEvent.PAY): InService,
    (Reserved, OrderEvent.EXPIRE): Cancelled,
    (Draft, OrderEvent.CANCEL): Cancelled,
    (Placed, OrderEvent.CANCEL): Cancelled,
    (InService, OrderEvent.CANCEL): Cancelled,
    (Reserved, OrderEvent.CANCEL): Cancelled,
    (InService, OrderEvent.COMPLETE): Completed,
}


def can_transition(state: OrderState, event: OrderEvent) -> bool:
    return (type(state), event) in TRANSITIONS


def transition(
    state: OrderState,
    event: OrderEvent,
    order_id: Optional[int] = None,
) -> OrderState:
    """
    Apply an event to a state.

    Args:
        state: Current state
        event: Event to apply
        order_id: Remote id to carry into the new state; required when
            leaving Draft for Placed or InService

    Raises:
        InvalidTransitionError: the state does not accept the event
    """
    target = TRANSITIONS.get((type(state), event))
    if target is None:
        raise InvalidTransitionError(
            f"Cannot {event.value} an order that is {state.name}",
            state=state,
            event=event,
        )

    current_id = getattr(state, "order_id", None)
    new_id = order_id if order_id is not None else current_id
    if target is Cancelled:
        return Cancelled(order_id=new_id)
    if new_id is None:
        raise ValueError(f"{target.__name__} requires an order id")
    return target(order_id=new_id)


def state_from_cart(cart: Optional[PendingCart]) -> Optional[OrderState]:
    """Local view of a table: Draft until the cart is linked to an order."""
    if cart is None:
        return None
    if cart.order_id is None:
        return Draft(table_id=cart.table_id)
    return Placed(order_id=cart.order_id)


def state_from_record(record: OrderRecord, has_cart: bool) -> OrderState:
    """
    State of a remote order.

    A paid order whose cart is gone has been completed.
    """
    status = record.status
    if status == OrderStatus.PLACED:
        return Placed(order_id=record.id)
    if status == OrderStatus.IN_SERVICE:
        if has_cart:
            return InService(order_id=record.id)
        return Completed(order_id=record.id)
    if status == OrderStatus.RESERVED:
        return Reserved(order_id=record.id)
    if status == OrderStatus.CANCELLED:
        return Cancelled(order_id=record.id)
    raise ValueError(f"Unknown order status {status!r}")


# =============================================================================
# RESERVATION EXPIRY
# =============================================================================

def _naive(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        return moment.astimezone().replace(tzinfo=None)
    return moment


def reservation_deadline(
    record: OrderRecord,
    table: Optional[Table] = None,
) -> Optional[datetime]:
    """
    End of a reservation.

    The reserved date plus the reserved time (end of day when no time was
    given); without a date, the table's end time.
    """
    if record.reserved_date is not None:
        reserved_date = record.reserved_date
        if isinstance(reserved_date, datetime):
            reserved_date = reserved_date.date()
        return datetime.combine(reserved_date, record.reserved_time or END_OF_DAY)
    if table is not None and table.end_time is not None:
        return _naive(table.end_time)
    return None


def is_expired(
    record: OrderRecord,
    now: datetime,
    table: Optional[Table] = None,
) -> bool:
    """True for a reservation whose deadline has passed."""
    if record.status != OrderStatus.RESERVED:
        return False
    deadline = reservation_deadline(record, table)
    if deadline is None:
        return False
    return _naive(now) > deadline

