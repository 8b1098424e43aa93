"""
Pydantic Schemas

Three families of schemas live here:
- Cart cache documents (the durable per-table JSON shape)
- Remote order API payloads (wire names of the back-office API)
- Request/response bodies of this application's HTTP surface
"""

from datetime import date, datetime, time
from typing import Any, Optional, List

from pydantic import BaseModel, Field, AliasChoices, field_validator

from backoffice.models import (
    DepositStatus,
    OrderLineItem,
    OrderRecord,
    OrderStatus,
    PaymentMethod,
    PendingCart,
    Table,
    TableStatus,
)


# =============================================================================
# CART CACHE DOCUMENT
# =============================================================================

class CartItemDocument(BaseModel):
    """Line item as stored in the cart cache."""
    id: int
    name: str
    quantity: int
    price: float
    image_ref: Optional[str] = None
    availability_label: Optional[str] = None


class CartDocument(BaseModel):
    """
    Durable cache entry of one table.

    ``total_amount`` is written for readers of the raw document but is
    recomputed from the items whenever the document is loaded.
    """
    order_id: Optional[int] = None
    table_id: int
    items: List[CartItemDocument] = Field(default_factory=list)
    created_at: datetime
    total_amount: float = 0.0

    @classmethod
    def from_cart(cls, cart: PendingCart) -> "CartDocument":
        return cls(
            order_id=cart.order_id,
            table_id=cart.table_id,
            items=[
                CartItemDocument(
                    id=item.product_id,
                    name=item.name,
                    quantity=item.quantity,
                    price=item.unit_price,
                    image_ref=item.image_ref,
                    availability_label=item.availability_label,
                )
                for item in cart.items
            ],
            created_at=cart.created_at,
            total_amount=cart.total_amount,
        )

    def to_cart(self) -> PendingCart:
        return PendingCart(
            table_id=self.table_id,
            order_id=self.order_id,
            created_at=self.created_at,
            items=[
                OrderLineItem(
                    product_id=item.id,
                    name=item.name,
                    unit_price=item.price,
                    quantity=item.quantity,
                    image_ref=item.image_ref,
                    availability_label=item.availability_label,
                )
                # Lines at or below zero are never kept
                for item in self.items
                if item.quantity > 0
            ],
        )


# =============================================================================
# REMOTE ORDER API - OUTGOING
# =============================================================================

class OrderCreate(BaseModel):
    """Create-order request."""
    table_id: int
    user_id: Optional[int] = None
    table_number: int
    capacity: int = Field(..., ge=1)
    customer_name: str
    order_date: date
    phone: Optional[str] = None
    total_payment: float = Field(default=0.0, ge=0)
    status: OrderStatus = OrderStatus.PLACED

    def to_wire(self) -> dict[str, Any]:
        return {
            "id_table": self.table_id,
            "id_user": self.user_id,
            "number_table": self.table_number,
            "capacity": self.capacity,
            "name_user": self.customer_name,
            "date": self.order_date.isoformat(),
            "phone": self.phone,
            "total_payment": self.total_payment or None,
            "status": int(self.status),
        }


class OrderUpdate(BaseModel):
    """Partial order update; unset fields are not sent."""
    status: Optional[OrderStatus] = None
    payment_method_id: Optional[int] = None
    deposit_status: Optional[DepositStatus] = None
    total_payment: Optional[float] = None

    def to_wire(self) -> dict[str, Any]:
        wire = {}
        if self.status is not None:
            wire["status"] = int(self.status)
        if self.payment_method_id is not None:
            wire["id_payment"] = self.payment_method_id
        if self.deposit_status is not None:
            wire["status_deposit"] = int(self.deposit_status)
        if self.total_payment is not None:
            wire["total_payment"] = self.total_payment
        return wire


class SyncItem(BaseModel):
    """One entry of a full item-list sync."""
    product_id: int
    quantity: int = Field(..., ge=1)

    def to_wire(self) -> dict[str, int]:
        return {"id_product": self.product_id, "quantity": self.quantity}


class TableUpdate(BaseModel):
    """Table update; every field is sent, including explicit nulls."""
    status: TableStatus
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    description: Optional[str] = None
    table_number: int
    capacity: int
    name: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "status": int(self.status),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "description": self.description,
            "number_table": self.table_number,
            "capacity": self.capacity,
            "name": self.name,
        }


# =============================================================================
# REMOTE ORDER API - INCOMING
# =============================================================================

class RemoteOrder(BaseModel):
    """Order as returned by the back-office API."""
    id: int
    id_table: Optional[int] = None
    id_user: Optional[int] = None
    status: OrderStatus = OrderStatus.PLACED
    total_payment: Optional[float] = None
    status_deposit: Optional[DepositStatus] = None
    id_payment: Optional[int] = None
    created_at: Optional[datetime] = None
    name_user: Optional[str] = None
    phone: Optional[str] = None
    reserved_date: Optional[date] = Field(default=None, validation_alias="date")
    reserved_time: Optional[time] = Field(default=None, validation_alias="time")

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> Any:
        # The API sometimes sends numeric codes as strings
        if isinstance(v, str) and v.isdigit():
            return int(v)
        return v

    def to_record(self) -> OrderRecord:
        return OrderRecord(
            id=self.id,
            table_id=self.id_table or 0,
            user_id=self.id_user,
            status=self.status,
            total_payment=float(self.total_payment or 0),
            deposit_status=self.status_deposit or DepositStatus.UNPAID,
            payment_method_id=self.id_payment,
            created_at=self.created_at,
            customer_name=self.name_user,
            phone=self.phone,
            reserved_date=self.reserved_date,
            reserved_time=self.reserved_time,
        )


class RemoteTable(BaseModel):
    """Table as returned by the back-office API."""
    id: int
    table_number: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("table_number", "number_table"),
    )
    status: int = TableStatus.AVAILABLE
    capacity: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    description: Optional[str] = None
    name: Optional[str] = None

    def to_table(self, default_capacity: int) -> Table:
        return Table(
            id=self.id,
            number=self.table_number or self.id,
            capacity=self.capacity or default_capacity,
            persisted_status=self.status or TableStatus.AVAILABLE,
            start_time=self.start_time,
            end_time=self.end_time,
            description=self.description,
            name=self.name,
        )


class RemotePaymentMethod(BaseModel):
    """Payment method as returned by the back-office API."""
    id: int
    payment_method: str
    payment_status: int = 1

    def to_method(self, async_keywords: list[str]) -> PaymentMethod:
        label = self.payment_method.lower()
        return PaymentMethod(
            id=self.id,
            label=self.payment_method,
            is_active=self.payment_status == 1,
            is_asynchronous=any(k in label for k in async_keywords),
        )


# =============================================================================
# HTTP SURFACE - REQUESTS
# =============================================================================

class CartItemRequest(BaseModel):
    """Add a product to the cart, or change its quantity by ``delta``."""
    product_id: int = Field(..., ge=1, examples=[7])
    name: str = Field(..., min_length=1, max_length=200, examples=["Ribeye steak"])
    unit_price: float = Field(..., ge=0, examples=[100000])
    delta: int = Field(default=1, examples=[1, -1])
    image_ref: Optional[str] = None
    availability_label: Optional[str] = Field(None, examples=["In stock"])

    def to_item(self) -> OrderLineItem:
        return OrderLineItem(
            product_id=self.product_id,
            name=self.name,
            unit_price=self.unit_price,
            image_ref=self.image_ref,
            availability_label=self.availability_label,
        )


class SelectMethodRequest(BaseModel):
    """Choose the payment method for a table."""
    method_id: int = Field(..., ge=1)


# =============================================================================
# HTTP SURFACE - RESPONSES
# =============================================================================

class CartItemResponse(BaseModel):
    product_id: int
    name: str
    unit_price: float
    quantity: int
    line_total: float
    image_ref: Optional[str] = None
    availability_label: Optional[str] = None


class CartResponse(BaseModel):
    """Current pending cart of a table."""
    table_id: int
    order_id: Optional[int] = None
    items: List[CartItemResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    total_amount: float = 0.0
    state: str

    @classmethod
    def build(cls, table_id: int, cart: Optional[PendingCart], state: str) -> "CartResponse":
        if cart is None:
            return cls(table_id=table_id, state=state)
        return cls(
            table_id=table_id,
            order_id=cart.order_id,
            created_at=cart.created_at,
            total_amount=cart.total_amount,
            state=state,
            items=[
                CartItemResponse(
                    product_id=item.product_id,
                    name=item.name,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    line_total=item.line_total,
                    image_ref=item.image_ref,
                    availability_label=item.availability_label,
                )
                for item in cart.items
            ],
        )


class TableResponse(BaseModel):
    """Table with its projected display status."""
    id: int
    number: int
    capacity: int
    persisted_status: int
    status: int
    label: str
    has_pending_items: bool
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    description: Optional[str] = None


class OrderResponse(BaseModel):
    """Order detail."""
    id: int
    table_id: int
    user_id: Optional[int] = None
    status: int
    state: str
    total_payment: float
    deposit_status: int
    payment_method_id: Optional[int] = None
    created_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    expired_on_read: bool = False


class PaymentMethodResponse(BaseModel):
    id: int
    label: str
    is_asynchronous: bool


class PaymentSessionResponse(BaseModel):
    """Live asynchronous payment session of a table."""
    table_id: int
    order_id: int
    amount: float
    qr_payload: str
    payment_url: str
    status: str
    confirmed: bool
    completed: bool


class PaymentOutcomeResponse(BaseModel):
    """Result of the "complete payment" action."""
    success: bool
    action: str
    message: str
    order_id: Optional[int] = None
    session: Optional[PaymentSessionResponse] = None


class ConfirmOrderResponse(BaseModel):
    success: bool = True
    order_id: int
    table_id: int
    state: str
    total_amount: float


class CancelOrderResponse(BaseModel):
    success: bool = True
    table_id: int
    order_id: Optional[int] = None
    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    order_service: str
    cart_store: str
    timestamp: datetime
