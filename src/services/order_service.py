"""Order persistence and state transitions against the Supabase ``orders`` table."""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from postgrest.exceptions import APIError as PostgrestAPIError

from src.core.config import get_settings
from src.core.supabase import get_supabase_client
from src.models.order import OrderCreate, OrderLineItem, OrderStatus, OrderUpdate
from src.services.order_transitions import (
    PaymentOutcome,
    advance_transition,
    cancel_transition,
    payment_transition,
    refund_transition,
)
from src.services.pricing import as_money

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"

# Conditional updates retried after losing a race with another writer
MAX_TRANSITION_ATTEMPTS = 5
MAX_REFERENCE_ATTEMPTS = 3

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

UNIQUE_VIOLATION = "23505"


class OrderValidationError(Exception):
    """Order input rejected before anything was written."""

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class OrderNotFoundError(Exception):
    """No order matches the given ID or payment reference."""


class OrderConflictError(Exception):
    """A transition kept losing races with concurrent writers."""


class ReconcileStatus(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    ORDER_MISMATCH = "order_mismatch"
    AMOUNT_MISMATCH = "amount_mismatch"


@dataclass(frozen=True)
class ReconciliationResult:
    status: ReconcileStatus
    order: dict[str, Any] | None = None

    @property
    def applied(self) -> bool:
        return self.status == ReconcileStatus.APPLIED


def generate_payment_reference(prefix: str) -> str:
    """``{prefix}_{epoch millis}_{random}``; the random part makes same-millisecond references distinct."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """Service for creating orders and moving them through their lifecycle.

    Every state change is a single conditional update keyed on the order ID
    and the status pair the transition was computed from, so a webhook and a
    verification call racing on the same order cannot overwrite each other.
    """

    def __init__(self) -> None:
        """Initialize order service with clients."""
        self.client = get_supabase_client()
        self.settings = get_settings()

    async def create_order(
        self,
        line_items: list[OrderLineItem],
        subtotal: Decimal,
        total: Decimal,
        customer_name: str,
        customer_email: str,
        customer_phone: str,
        pickup_time: str | None = None,
        special_instructions: str | None = None,
        user_ref: str | None = None,
    ) -> dict[str, Any]:
        """Insert a pending order with a fresh payment reference.

        Raises:
            OrderValidationError: Empty items, non-positive total, or missing customer fields.
        """
        if not line_items:
            raise OrderValidationError("Order must contain at least one item")
        if total <= 0:
            raise OrderValidationError("Order total must be positive")
        missing = [
            name
            for name, value in (
                ("name", customer_name),
                ("email", customer_email),
                ("phone", customer_phone),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise OrderValidationError("Missing required customer fields", details=", ".join(missing))

        now = _utcnow().isoformat()
        order_data: OrderCreate = {
            "user_ref": user_ref,
            "status": "pending",
            "payment_status": "pending",
            "line_items": line_items,
            "subtotal": str(subtotal),
            "total": str(total),
            "currency": self.settings.paystack_currency,
            "customer_name": customer_name.strip(),
            "customer_email": customer_email.strip(),
            "customer_phone": customer_phone.strip(),
            "special_instructions": special_instructions or None,
            "pickup_time": pickup_time or "asap",
            "created_at": now,
            "updated_at": now,
        }

        for attempt in range(1, MAX_REFERENCE_ATTEMPTS + 1):
            payload: OrderCreate = {
                **order_data,
                "payment_reference": generate_payment_reference(self.settings.payment_reference_prefix),
            }
            try:
                response = self.client.table(ORDERS_TABLE).insert(payload).execute()
            except PostgrestAPIError as e:
                if e.code == UNIQUE_VIOLATION and attempt < MAX_REFERENCE_ATTEMPTS:
                    logger.warning("Payment reference collision, regenerating (attempt %d)", attempt)
                    continue
                raise
            order = response.data[0]
            logger.info(
                "Created order %s with reference %s (total %s)",
                order["id"],
                order["payment_reference"],
                order_data["total"],
            )
            return order

        raise OrderConflictError("Could not allocate a unique payment reference")

    async def get_order(self, order_id: str) -> dict[str, Any] | None:
        """Get an order by ID.

        Args:
            order_id: The order's ID.

        Returns:
            dict | None: The order data or None if not found.
        """
        response = (
            self.client.table(ORDERS_TABLE)
            .select("*")
            .eq("id", order_id)
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def get_order_by_reference(self, reference: str) -> dict[str, Any] | None:
        """Get an order by its payment reference.

        Args:
            reference: Payment reference assigned at creation.

        Returns:
            dict | None: The order data or None if not found.
        """
        response = (
            self.client.table(ORDERS_TABLE)
            .select("*")
            .eq("payment_reference", reference)
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def list_orders(
        self,
        status: OrderStatus | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List orders newest first, optionally filtered by status.

        Args:
            status: Only return orders in this status.
            limit: Maximum number of orders to return.
            offset: Number of orders to skip.

        Returns:
            list[dict]: List of order data.
        """
        query = self.client.table(ORDERS_TABLE).select("*")
        if status:
            query = query.eq("status", status)
        response = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()

        return response.data or []

    async def list_orders_for_user(
        self,
        user_ref: str,
        status: OrderStatus | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Get a customer's order history, newest first.

        Args:
            user_ref: The customer's user reference.
            status: Only return orders in this status.
            limit: Maximum number of orders to return.
            offset: Number of orders to skip.

        Returns:
            list[dict]: List of order data.
        """
        query = self.client.table(ORDERS_TABLE).select("*").eq("user_ref", user_ref)
        if status:
            query = query.eq("status", status)
        response = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()

        return response.data or []

    async def _apply(
        self,
        order: dict[str, Any],
        compute: Callable[[dict[str, Any]], OrderUpdate | None],
    ) -> tuple[dict[str, Any], bool]:
        """Atomically apply ``compute(order)`` as a compare-and-set update.

        Returns the resulting row and whether anything was written. When the
        row changed underneath us, it is re-read and the transition recomputed
        from the fresh state.
        """
        current = order
        for _ in range(MAX_TRANSITION_ATTEMPTS):
            update = compute(current)
            if update is None:
                return current, False

            response = (
                self.client.table(ORDERS_TABLE)
                .update(update)
                .eq("id", current["id"])
                .eq("status", current["status"])
                .eq("payment_status", current["payment_status"])
                .execute()
            )
            if response.data:
                return response.data[0], True

            logger.info("Order %s changed concurrently, re-reading", current["id"])
            refreshed = await self.get_order(current["id"])
            if refreshed is None:
                raise OrderNotFoundError(f"Order {current['id']} disappeared during update")
            current = refreshed

        raise OrderConflictError(f"Order {order['id']} is being modified concurrently")

    async def reconcile_payment(
        self,
        reference: str,
        outcome: PaymentOutcome,
        order_id: str | None = None,
        amount_paid: Decimal | None = None,
    ) -> ReconciliationResult:
        """Apply an authoritative payment outcome to the order behind ``reference``.

        Safe under at-least-once delivery: repeating an outcome that was
        already applied is reported as ``DUPLICATE`` and writes nothing. An
        unknown reference is reported, never turned into a new order.

        Args:
            reference: Payment reference, the correlation key with the provider.
            outcome: Success or failure reported by the provider.
            order_id: Order ID echoed in the provider metadata, cross-checked when given.
            amount_paid: Amount the provider captured (Rand), checked on success.
        """
        order = await self.get_order_by_reference(reference)
        if order is None:
            logger.warning("Payment for unknown reference %s ignored", reference)
            return ReconciliationResult(ReconcileStatus.NOT_FOUND)

        if order_id and str(order["id"]) != str(order_id):
            logger.warning(
                "Payment reference %s belongs to order %s, not %s; ignored",
                reference,
                order["id"],
                order_id,
            )
            return ReconciliationResult(ReconcileStatus.ORDER_MISMATCH, order)

        if outcome.succeeded and amount_paid is not None and amount_paid != as_money(order["total"]):
            logger.error(
                "Amount mismatch on %s: paid %s, order total %s; payment not applied",
                reference,
                amount_paid,
                order["total"],
            )
            return ReconciliationResult(ReconcileStatus.AMOUNT_MISMATCH, order)

        now = _utcnow()
        row, applied = await self._apply(order, lambda current: payment_transition(current, outcome, now))
        if not applied:
            logger.info(
                "Payment %s for %s already reconciled (payment_status=%s)",
                "success" if outcome.succeeded else "failure",
                reference,
                row.get("payment_status"),
            )
            return ReconciliationResult(ReconcileStatus.DUPLICATE, row)

        logger.info(
            "Order %s reconciled: status=%s payment_status=%s",
            row["id"],
            row.get("status"),
            row.get("payment_status"),
        )
        return ReconciliationResult(ReconcileStatus.APPLIED, row)

    async def _require(self, order_id: str) -> dict[str, Any]:
        order = await self.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    async def advance_status(
        self,
        order_id: str,
        target: OrderStatus,
        assigned_staff: str | None = None,
    ) -> dict[str, Any]:
        """Move an order to the next kitchen status (staff action)."""
        order = await self._require(order_id)
        now = _utcnow()
        row, _ = await self._apply(
            order, lambda current: advance_transition(current, target, now, assigned_staff)
        )
        logger.info("Order %s moved to %s", order_id, target)
        return row

    async def cancel_order(
        self,
        order_id: str,
        cancelled_by: str | None = None,
        reason: str | None = None,
    ) -> dict[str, Any]:
        order = await self._require(order_id)
        return await self.cancel(order, cancelled_by=cancelled_by, reason=reason)

    async def cancel(
        self,
        order: dict[str, Any],
        cancelled_by: str | None = None,
        reason: str | None = None,
    ) -> dict[str, Any]:
        now = _utcnow()
        row, _ = await self._apply(
            order, lambda current: cancel_transition(current, now, cancelled_by, reason)
        )
        logger.info("Order %s cancelled (%s)", order["id"], reason or "no reason given")
        return row

    async def claim_refund(self, order: dict[str, Any]) -> dict[str, Any] | None:
        """Mark a paid order as having a refund in flight.

        Only one caller can claim an order; the others get None and must not
        call the provider.
        """
        now = _utcnow().isoformat()
        response = (
            self.client.table(ORDERS_TABLE)
            .update({"refund_requested_at": now, "updated_at": now})
            .eq("id", order["id"])
            .eq("payment_status", "paid")
            .is_("refund_requested_at", "null")
            .execute()
        )
        if not response.data:
            logger.warning("Refund for order %s already in progress", order["id"])
            return None
        return response.data[0]

    async def release_refund_claim(self, order: dict[str, Any]) -> None:
        """Clear the in-flight marker after the provider rejected a refund."""
        self.client.table(ORDERS_TABLE).update(
            {"refund_requested_at": None, "updated_at": _utcnow().isoformat()}
        ).eq("id", order["id"]).execute()
        logger.info("Released refund claim on order %s", order["id"])

    async def record_refund(
        self,
        order: dict[str, Any],
        amount: Decimal | None = None,
        reason: str | None = None,
        refund_transaction_id: str | None = None,
        refunded_by: str | None = None,
    ) -> dict[str, Any]:
        now = _utcnow()
        row, _ = await self._apply(
            order,
            lambda current: refund_transition(
                current,
                now,
                amount=amount,
                reason=reason,
                refund_transaction_id=refund_transaction_id,
                refunded_by=refunded_by,
            ),
        )
        logger.info("Order %s refunded %s", order["id"], row.get("refund_amount"))
        return row
