"""Order state machine.

Two independent axes live on every order:

    status:          pending -> confirmed -> preparing -> ready -> completed
                     pending|confirmed|preparing -> cancelled
    payment_status:  pending -> paid | failed, failed -> paid, paid -> refunded

The functions here are pure: they look at a current order row and return the
``OrderUpdate`` to write, ``None`` when the event has already been applied, or
raise ``InvalidTransitionError`` for staff actions the state forbids.
Persistence and atomicity are handled by ``OrderService``.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from src.models.order import OrderStatus, OrderUpdate
from src.services.pricing import as_money, round_money

NEXT_STATUS: dict[str, OrderStatus] = {
    "pending": "confirmed",
    "confirmed": "preparing",
    "preparing": "ready",
    "ready": "completed",
}
STAFF_ADVANCE_TARGETS = frozenset({"preparing", "ready", "completed"})
CANCELLABLE_STATUSES = frozenset({"pending", "confirmed", "preparing"})


class InvalidTransitionError(Exception):
    """Raised when an order cannot move to the requested state."""


@dataclass(frozen=True)
class PaymentOutcome:
    """Authoritative result of a payment, from a webhook or a verify call."""

    succeeded: bool
    transaction_id: str | None = None
    channel: str | None = None
    paid_at: str | None = None


def payment_transition(order: dict[str, Any], outcome: PaymentOutcome, now: datetime) -> OrderUpdate | None:
    """Compute the reconciliation update for a payment outcome.

    Success marks the payment paid and confirms a pending order in the same
    update. Re-delivered or stale events return ``None``: a paid or refunded
    payment is never moved back, and a repeated failure changes nothing.
    """
    payment_status = order.get("payment_status")

    if outcome.succeeded:
        if payment_status in ("paid", "refunded"):
            return None
        update: OrderUpdate = {
            "payment_status": "paid",
            "updated_at": now.isoformat(),
        }
        if outcome.transaction_id:
            update["transaction_id"] = outcome.transaction_id
        if outcome.channel:
            update["payment_channel"] = outcome.channel
        update["paid_at"] = outcome.paid_at or now.isoformat()
        if order.get("status") == "pending":
            update["status"] = "confirmed"
        return update

    if payment_status != "pending":
        return None
    return {"payment_status": "failed", "updated_at": now.isoformat()}


def advance_transition(
    order: dict[str, Any],
    target: OrderStatus,
    now: datetime,
    assigned_staff: str | None = None,
) -> OrderUpdate:
    """Staff move to the next kitchen status."""
    current = order.get("status")
    if target not in STAFF_ADVANCE_TARGETS:
        raise InvalidTransitionError(f"Orders cannot be moved to '{target}' manually")
    if NEXT_STATUS.get(current) != target:
        raise InvalidTransitionError(f"Cannot move order from '{current}' to '{target}'")

    update: OrderUpdate = {"status": target, "updated_at": now.isoformat()}
    if target == "completed":
        update["completed_at"] = now.isoformat()
    if assigned_staff:
        update["assigned_staff"] = assigned_staff
    return update


def cancel_transition(
    order: dict[str, Any],
    now: datetime,
    cancelled_by: str | None = None,
    reason: str | None = None,
) -> OrderUpdate:
    current = order.get("status")
    if current not in CANCELLABLE_STATUSES:
        raise InvalidTransitionError(f"Cannot cancel an order that is '{current}'")

    update: OrderUpdate = {
        "status": "cancelled",
        "cancelled_at": now.isoformat(),
        "updated_at": now.isoformat(),
    }
    if cancelled_by:
        update["cancelled_by"] = cancelled_by
    if reason:
        update["cancel_reason"] = reason
    return update


def refund_transition(
    order: dict[str, Any],
    now: datetime,
    amount: Decimal | None = None,
    reason: str | None = None,
    refund_transaction_id: str | None = None,
    refunded_by: str | None = None,
) -> OrderUpdate:
    """Record a refund. Only paid orders can be refunded, and never for more than the total."""
    if order.get("payment_status") != "paid":
        raise InvalidTransitionError("Can only refund paid orders")

    total = as_money(order["total"])
    refund_amount = total if amount is None else round_money(as_money(amount))
    if refund_amount <= 0 or refund_amount > total:
        raise InvalidTransitionError("Refund amount must be positive and not exceed the order total")

    update: OrderUpdate = {
        "payment_status": "refunded",
        "refund_amount": str(refund_amount),
        "refunded_at": now.isoformat(),
        "updated_at": now.isoformat(),
    }
    if reason:
        update["refund_reason"] = reason
    if refund_transaction_id:
        update["refund_transaction_id"] = refund_transaction_id
    if refunded_by:
        update["refunded_by"] = refunded_by
    return update
