"""
Domain Models

Plain data shapes shared by every service of the order engine:
- Pending carts and their line items (client-held, durable)
- Remote order records and tables (owned by the back-office API)
- Payment methods and the staff user placing orders

Numeric status codes follow the back-office API contract.
"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Optional


class OrderStatus(enum.IntEnum):
    """Remote order status codes."""
    PLACED = 1
    IN_SERVICE = 2  # paid / occupied
    RESERVED = 3
    CANCELLED = 4


class TableStatus(enum.IntEnum):
    """Remote table status codes."""
    AVAILABLE = 1
    OCCUPIED = 2
    RESERVED = 3
    DISABLED = 4


class DepositStatus(enum.IntEnum):
    """Deposit flag stored on the order."""
    UNPAID = 1
    PAID = 2


@dataclass
class OrderLineItem:
    """One product line of a pending cart."""
    product_id: int
    name: str
    unit_price: float
    quantity: int = 1
    image_ref: Optional[str] = None
    availability_label: Optional[str] = None

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


@dataclass
class PendingCart:
    """
    In-progress order of a single table.

    The total is derived from the items on every read and is never
    stored independently of them.
    """
    table_id: int
    items: list[OrderLineItem] = field(default_factory=list)
    order_id: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def total_amount(self) -> float:
        return sum(item.line_total for item in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, product_id: int) -> Optional[OrderLineItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None


@dataclass
class OrderRecord:
    """Remote, authoritative order."""
    id: int
    table_id: int
    user_id: Optional[int]
    status: OrderStatus
    total_payment: float = 0.0
    deposit_status: DepositStatus = DepositStatus.UNPAID
    payment_method_id: Optional[int] = None
    created_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    reserved_date: Optional[date] = None
    reserved_time: Optional[time] = None

    @property
    def is_paid(self) -> bool:
        return self.status == OrderStatus.IN_SERVICE


@dataclass
class Table:
    """Dining table as reported by the back-office API."""
    id: int
    number: int
    capacity: int
    persisted_status: int = TableStatus.AVAILABLE
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    description: Optional[str] = None
    name: Optional[str] = None


@dataclass
class PaymentMethod:
    """A configured payment method."""
    id: int
    label: str
    is_active: bool = True
    is_asynchronous: bool = False


@dataclass
class StaffUser:
    """Staff member placing orders at a table."""
    id: int
    name: Optional[str] = None
    phone: Optional[str] = None
