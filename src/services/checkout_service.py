"""Checkout and payment reconciliation business logic service."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from src.core.config import get_settings
from src.core.paystack import (
    PaymentConfigurationError,
    PaymentGatewayError,
    PaystackClient,
    VerifiedPayment,
    from_minor_units,
    get_paystack_client,
)
from src.models.order import OrderLineItem, SelectedAddOn
from src.schemas.checkout import CheckoutItem, CheckoutRequest
from src.services.email_service import EmailService
from src.services.order_service import (
    OrderNotFoundError,
    OrderService,
    OrderValidationError,
    ReconciliationResult,
)
from src.services.order_transitions import InvalidTransitionError, PaymentOutcome, refund_transition
from src.services.pricing import CENT, charge_amount, round_money

logger = logging.getLogger(__name__)

CHARGE_SUCCESS = "charge.success"
CHARGE_FAILED = "charge.failed"

INITIALIZATION_FAILED_REASON = "payment_initialization_failed"


def freeze_line_items(items: list[CheckoutItem]) -> tuple[list[OrderLineItem], Decimal]:
    """Snapshot submitted cart lines as order line items.

    The submitted ``price`` is the line total. The meal's unit price is derived
    from it so that ``(unit_base_price + add-ons) * quantity`` reproduces the
    line total exactly.

    Returns:
        tuple: Frozen line items and their tax-exclusive subtotal.

    Raises:
        OrderValidationError: If a line total cannot be split into whole-cent unit prices.
    """
    frozen: list[OrderLineItem] = []
    subtotal = Decimal("0")
    for item in items:
        add_ons: list[SelectedAddOn] = [
            {"ref": option.id, "name": option.name, "unit_price": str(round_money(option.price)), "kind": kind}
            for kind, options in (("topping", item.toppings), ("side", item.sides), ("beverage", item.beverages))
            for option in options
        ]
        add_on_total = sum((Decimal(add_on["unit_price"]) for add_on in add_ons), Decimal("0"))

        unit_price = (item.price / item.quantity).quantize(CENT)
        if unit_price * item.quantity != item.price:
            raise OrderValidationError(
                "Invalid line total",
                details=f"{item.meal_name}: {item.price} is not a whole-cent multiple of quantity {item.quantity}",
            )
        unit_base_price = unit_price - add_on_total
        if unit_base_price < 0:
            raise OrderValidationError(
                "Invalid line total",
                details=f"{item.meal_name}: line total is lower than its add-ons",
            )

        frozen.append(
            {
                "product_ref": item.meal_id,
                "product_name": item.meal_name,
                "quantity": item.quantity,
                "unit_base_price": str(unit_base_price),
                "selected_add_ons": add_ons,
                "computed_total": str(round_money(item.price)),
                "special_instructions": item.special_instructions,
            }
        )
        subtotal += round_money(item.price)
    return frozen, subtotal


def _metadata(data: dict[str, Any]) -> dict[str, Any]:
    metadata = data.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


class CheckoutService:
    """Service for Paystack checkout and payment reconciliation.

    Webhook events and client verification calls both end in
    ``apply_payment_outcome``, so whichever arrives first decides the state
    and the other is a no-op.
    """

    def __init__(
        self,
        order_service: OrderService | None = None,
        gateway: PaystackClient | None = None,
        email_service: EmailService | None = None,
    ) -> None:
        """Initialize checkout service with clients."""
        self.settings = get_settings()
        self.orders = order_service or OrderService()
        self.gateway = gateway or get_paystack_client()
        self.email = email_service or EmailService()

    async def start_checkout(self, request: CheckoutRequest) -> dict[str, Any]:
        """Create a pending order and open a hosted Paystack payment session.

        Args:
            request: Validated checkout body.

        Returns:
            dict: Contains authorization_url, reference and order_id.

        Raises:
            OrderValidationError: If the items or amount are inconsistent.
            PaymentConfigurationError: If Paystack is not configured.
            PaymentGatewayError: If Paystack rejects the initialization.
        """
        if not self.settings.paystack_secret_key:
            raise PaymentConfigurationError(
                "Paystack is not configured. Please set PAYSTACK_SECRET_KEY environment variable."
            )

        line_items, subtotal = freeze_line_items(request.items)
        total = charge_amount(subtotal)
        if round_money(request.amount) != total:
            raise OrderValidationError(
                "Amount does not match order total",
                details=f"Expected {total} for a subtotal of {subtotal}, got {request.amount}",
            )

        customer = request.customer_info
        order = await self.orders.create_order(
            line_items=line_items,
            subtotal=subtotal,
            total=total,
            customer_name=customer.name,
            customer_email=customer.email,
            customer_phone=customer.phone,
            pickup_time=request.pickup_time,
            special_instructions=customer.special_instructions,
            user_ref=customer.user_id,
        )
        order_id = str(order["id"])
        reference = order["payment_reference"]

        first_name, _, last_name = customer.name.partition(" ")
        try:
            payment = await self.gateway.initialize(
                email=request.email,
                amount=total,
                reference=reference,
                callback_url=f"{self.settings.public_base_url}/order-confirmation?reference={reference}",
                metadata={
                    "orderId": order_id,
                    "userId": customer.user_id,
                    "items": [
                        {
                            "id": item.meal_id,
                            "name": item.meal_name,
                            "quantity": item.quantity,
                            "price": str(round_money(item.price)),
                        }
                        for item in request.items
                    ],
                },
                customer={
                    "email": request.email,
                    "first_name": first_name,
                    "last_name": last_name or first_name,
                    "phone": customer.phone,
                },
            )
        except (PaymentGatewayError, PaymentConfigurationError) as e:
            logger.error("Payment initialization failed for order %s: %s", order_id, str(e))
            await self.orders.cancel(order, reason=INITIALIZATION_FAILED_REASON)
            raise

        return {
            "authorization_url": payment.authorization_url,
            "reference": payment.reference,
            "order_id": order_id,
        }

    async def apply_payment_outcome(
        self,
        reference: str,
        outcome: PaymentOutcome,
        order_id: str | None = None,
        amount_paid: Decimal | None = None,
    ) -> ReconciliationResult:
        """Reconcile a payment outcome; shared by the webhook and the verify endpoint."""
        result = await self.orders.reconcile_payment(
            reference,
            outcome,
            order_id=order_id,
            amount_paid=amount_paid,
        )
        if result.applied and result.order and result.order.get("payment_status") == "paid":
            await self.email.send_order_confirmation(result.order)
        return result

    async def handle_charge_success(self, data: dict[str, Any]) -> ReconciliationResult | None:
        """Process a ``charge.success`` webhook event.

        Args:
            data: The event's ``data`` object.

        Returns:
            ReconciliationResult | None: None when correlation data was missing.
        """
        reference = data.get("reference")
        order_id = _metadata(data).get("orderId")

        if not reference or not order_id:
            logger.warning("Missing orderId or reference in successful charge event")
            return None

        transaction_id = data.get("id")
        outcome = PaymentOutcome(
            succeeded=True,
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            channel=data.get("channel"),
            paid_at=data.get("paid_at") or data.get("paidAt"),
        )
        amount_paid = from_minor_units(data["amount"]) if data.get("amount") is not None else None
        return await self.apply_payment_outcome(reference, outcome, order_id=order_id, amount_paid=amount_paid)

    async def handle_charge_failed(self, data: dict[str, Any]) -> ReconciliationResult | None:
        """Process a ``charge.failed`` webhook event."""
        reference = data.get("reference")
        if not reference:
            logger.warning("Missing reference in failed charge event")
            return None

        return await self.apply_payment_outcome(
            reference,
            PaymentOutcome(succeeded=False),
            order_id=_metadata(data).get("orderId"),
        )

    async def handle_webhook_event(self, event: dict[str, Any]) -> ReconciliationResult | None:
        """Dispatch a verified webhook event by type. Unknown types are ignored."""
        event_type = event.get("event", "")
        data = event.get("data") or {}
        if not isinstance(data, dict):
            logger.warning("Webhook event %s has no data object", event_type)
            return None

        if event_type == CHARGE_SUCCESS:
            return await self.handle_charge_success(data)
        if event_type == CHARGE_FAILED:
            return await self.handle_charge_failed(data)

        logger.info("Unhandled payment webhook event: %s", event_type)
        return None

    async def verify_payment(self, reference: str) -> tuple[VerifiedPayment, dict[str, Any]]:
        """Poll Paystack for a reference and reconcile the order with the result.

        Used after the customer is redirected back, in case the webhook has
        not arrived yet.

        Returns:
            tuple: The provider's view of the payment and the (possibly updated) order.

        Raises:
            OrderNotFoundError: If no order carries this reference.
            PaymentGatewayError: If Paystack cannot be queried.
        """
        order = await self.orders.get_order_by_reference(reference)
        if order is None:
            raise OrderNotFoundError(f"No order for reference {reference}")

        verified = await self.gateway.verify(reference)

        if verified.status in ("success", "failed"):
            outcome = PaymentOutcome(
                succeeded=verified.succeeded,
                transaction_id=verified.transaction_id,
                channel=verified.channel,
                paid_at=verified.paid_at,
            )
            result = await self.apply_payment_outcome(
                reference,
                outcome,
                order_id=str(order["id"]),
                amount_paid=verified.amount if verified.succeeded else None,
            )
            if result.order:
                order = result.order
        else:
            logger.info("Payment %s not settled yet (status=%s)", reference, verified.status)

        return verified, order

    async def refund_order(
        self,
        order_id: str,
        amount: Decimal | None = None,
        reason: str | None = None,
        refunded_by: str | None = None,
    ) -> dict[str, Any]:
        """Refund a paid order through Paystack and record it.

        Raises:
            OrderNotFoundError: If the order does not exist.
            InvalidTransitionError: If the order is not paid, the amount is invalid, or a refund is in flight.
            PaymentGatewayError: If Paystack rejects the refund.
        """
        order = await self.orders.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")

        # Validate before touching the provider
        refund_transition(order, now=datetime.now(timezone.utc), amount=amount)

        claimed = await self.orders.claim_refund(order)
        if claimed is None:
            raise InvalidTransitionError("A refund is already in progress for this order")

        try:
            result = await self.gateway.refund(order["payment_reference"], amount)
        except (PaymentGatewayError, PaymentConfigurationError):
            await self.orders.release_refund_claim(claimed)
            raise
        logger.info("Paystack refund for order %s: %s", order_id, result.message)

        return await self.orders.record_refund(
            claimed,
            amount=amount,
            reason=reason,
            refund_transaction_id=result.transaction_id,
            refunded_by=refunded_by,
        )
