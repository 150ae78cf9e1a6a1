"""Order model type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict


# Status values matching the database check constraints
OrderStatus = Literal["pending", "confirmed", "preparing", "ready", "completed", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]


class SelectedAddOn(TypedDict):
    """A customization frozen into an order line."""

    ref: str
    name: str
    unit_price: str
    kind: str


class OrderLineItem(TypedDict):
    """Structure for a single line item in an order.

    Stored as part of the line_items JSONB array. Money is serialized
    as decimal strings so the snapshot is exact.
    """

    product_ref: str
    product_name: str
    quantity: int
    unit_base_price: str
    selected_add_ons: list[SelectedAddOn]
    computed_total: str
    special_instructions: str | None


class Order(TypedDict):
    """Order table row representation.

    Represents an order stored in the orders table.
    Maps directly to the database schema.
    """

    id: str
    user_ref: str | None
    payment_reference: str
    status: OrderStatus
    payment_status: PaymentStatus
    line_items: list[OrderLineItem]
    subtotal: str
    total: str
    currency: str
    customer_name: str
    customer_email: str
    customer_phone: str
    special_instructions: str | None
    pickup_time: str
    transaction_id: str | None
    payment_channel: str | None
    paid_at: datetime | None
    assigned_staff: str | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    cancelled_by: str | None
    cancel_reason: str | None
    refund_amount: str | None
    refund_reason: str | None
    refund_transaction_id: str | None
    refunded_at: datetime | None
    refunded_by: str | None
    refund_requested_at: datetime | None
    created_at: datetime
    updated_at: datetime


class OrderCreate(TypedDict, total=False):
    """Data required to create a new order.

    Used when inserting a new order at checkout, before payment.
    """

    user_ref: str | None
    payment_reference: str
    status: OrderStatus
    payment_status: PaymentStatus
    line_items: list[OrderLineItem]
    subtotal: str
    total: str
    currency: str
    customer_name: str
    customer_email: str
    customer_phone: str
    special_instructions: str | None
    pickup_time: str
    created_at: str
    updated_at: str


class OrderUpdate(TypedDict, total=False):
    """Fields a transition may change on an order."""

    status: OrderStatus
    payment_status: PaymentStatus
    transaction_id: str
    payment_channel: str
    paid_at: str
    assigned_staff: str
    completed_at: str
    cancelled_at: str
    cancelled_by: str
    cancel_reason: str
    refund_amount: str
    refund_reason: str
    refund_transaction_id: str
    refunded_at: str
    refunded_by: str
    refund_requested_at: str | None
    updated_at: str
