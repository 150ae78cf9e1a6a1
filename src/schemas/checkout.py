"""Checkout, payment and order Pydantic schemas for API request/response models.

The storefront speaks camelCase JSON; fields are snake_case in Python and
aliased on the wire.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Order status literal types for validation
OrderStatus = Literal["pending", "confirmed", "preparing", "ready", "completed", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CamelModel(BaseModel):
    """Base model with camelCase aliases that also accepts field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _check_email(value: str) -> str:
    value = value.strip()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


class CustomizationOption(CamelModel):
    """A selected topping, side or beverage."""

    id: str = Field(min_length=1, description="Add-on identifier")
    name: str = Field(min_length=1, description="Add-on display name")
    price: Decimal = Field(ge=0, description="Unit price excluding tax")


class CheckoutItem(CamelModel):
    """A cart line submitted at checkout."""

    meal_id: str = Field(min_length=1, description="Meal identifier")
    meal_name: str = Field(min_length=1, description="Meal name")
    quantity: int = Field(ge=1, description="Quantity ordered")
    price: Decimal = Field(ge=0, description="Line total excluding tax")
    toppings: list[CustomizationOption] = Field(default_factory=list)
    sides: list[CustomizationOption] = Field(default_factory=list)
    beverages: list[CustomizationOption] = Field(default_factory=list)
    special_instructions: str | None = Field(default=None, description="Per-item instructions")


class CustomerInfo(CamelModel):
    name: str = Field(min_length=1, description="Customer full name")
    email: str = Field(description="Customer email")
    phone: str = Field(min_length=1, description="Customer phone number")
    special_instructions: str | None = Field(default=None, description="Order-level instructions")
    user_id: str | None = Field(default=None, description="Signed-in user reference")

    @field_validator("name", "phone")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Field cannot be blank")
        return value

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: str) -> str:
        return _check_email(value)


class CheckoutRequest(CamelModel):
    """Schema for POST /payment/initialize."""

    amount: Decimal = Field(gt=0, description="Tax-inclusive total in Rand")
    email: str = Field(description="Email the payment provider bills")
    customer_info: CustomerInfo
    items: list[CheckoutItem] = Field(min_length=1, description="Cart lines")
    pickup_time: str | None = Field(default=None, description="Requested pickup time (default asap)")

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: str) -> str:
        return _check_email(value)


class CheckoutResponse(CamelModel):
    success: bool = True
    authorization_url: str = Field(description="Hosted payment page to redirect to")
    reference: str = Field(description="Payment reference")
    order_id: str = Field(description="Created order ID")


class ReferenceRequest(CamelModel):
    """Body carrying a payment reference."""

    reference: str = Field(min_length=1, description="Payment reference")

    @field_validator("reference")
    @classmethod
    def strip_reference(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Payment reference is required")
        return value


class VerificationData(CamelModel):
    reference: str
    amount: float = Field(description="Amount paid in Rand")
    status: str = Field(description="Provider status: success, failed, abandoned, ...")
    paid_at: str | None = None
    channel: str | None = None
    order_id: str | None = None


class VerificationResponse(CamelModel):
    success: bool
    data: VerificationData


class WebhookAck(BaseModel):
    status: str = "ok"


class AddOnSchema(CamelModel):
    ref: str
    name: str
    unit_price: float
    kind: str


class OrderLineItemSchema(CamelModel):
    """Schema for a single frozen line item in an order."""

    product_ref: str = Field(description="Meal identifier")
    product_name: str = Field(description="Meal name")
    quantity: int = Field(ge=1, description="Quantity ordered")
    unit_base_price: float = Field(description="Meal unit price excluding tax")
    selected_add_ons: list[AddOnSchema] = Field(default_factory=list)
    computed_total: float = Field(description="Line total excluding tax")
    special_instructions: str | None = None


class OrderResponse(CamelModel):
    """Schema for order API responses."""

    id: str = Field(description="Order unique identifier")
    user_ref: str | None = None
    payment_reference: str
    status: OrderStatus
    payment_status: PaymentStatus
    line_items: list[OrderLineItemSchema]
    subtotal: float
    total: float = Field(description="Tax-inclusive total in Rand")
    currency: str = "ZAR"
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    special_instructions: str | None = None
    pickup_time: str | None = None
    transaction_id: str | None = None
    payment_channel: str | None = None
    paid_at: datetime | None = None
    assigned_staff: str | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    cancel_reason: str | None = None
    refund_amount: float | None = None
    refund_reason: str | None = None
    refund_transaction_id: str | None = None
    refunded_at: datetime | None = None
    refunded_by: str | None = None
    refund_requested_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "OrderResponse":
        return cls.model_validate(row)


class OrderListResponse(CamelModel):
    """Schema for a page of orders."""

    items: list[OrderResponse]
    limit: int
    offset: int


class OrderStatusUpdate(CamelModel):
    status: Literal["preparing", "ready", "completed"]
    assigned_staff: str | None = None


class OrderCancelRequest(CamelModel):
    reason: str | None = None


class RefundRequest(CamelModel):
    amount: Decimal | None = Field(default=None, gt=0, description="Rand to refund; full total when omitted")
    reason: str | None = None
