"""Checkout and payment verification API routes."""

import logging

from fastapi import APIRouter, status

from src.api.middleware.error_handler import APIError, NotFoundError, UpstreamServiceError, ValidationError
from src.core.paystack import PaymentConfigurationError, PaymentGatewayError
from src.schemas.checkout import (
    CheckoutRequest,
    CheckoutResponse,
    ReferenceRequest,
    VerificationData,
    VerificationResponse,
)
from src.services.checkout_service import CheckoutService
from src.services.order_service import OrderNotFoundError, OrderValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["payments"])


@router.post(
    "/initialize",
    response_model=CheckoutResponse,
    status_code=status.HTTP_200_OK,
    summary="Start checkout",
    description="Creates a pending order and a Paystack payment session for the submitted cart.",
)
async def initialize_payment(data: CheckoutRequest) -> CheckoutResponse:
    """Create the order and return the hosted payment page URL.

    The frontend should redirect to the returned authorization URL.

    Args:
        data: Checkout body (amount, customer and cart items).

    Returns:
        CheckoutResponse: Authorization URL, payment reference and order ID.

    Raises:
        ValidationError: 400 if the cart or amount is invalid.
        UpstreamServiceError: 500 if Paystack is unavailable.
    """
    service = CheckoutService()

    try:
        result = await service.start_checkout(data)
    except OrderValidationError as e:
        raise ValidationError(e.message, details=e.details) from e
    except PaymentConfigurationError as e:
        logger.error("Checkout rejected: %s", str(e))
        raise APIError("Failed to initialize payment") from e
    except PaymentGatewayError as e:
        raise UpstreamServiceError("Failed to initialize payment") from e

    return CheckoutResponse(
        authorization_url=result["authorization_url"],
        reference=result["reference"],
        order_id=result["order_id"],
    )


@router.post(
    "/verify",
    response_model=VerificationResponse,
    summary="Verify a payment",
    description="Checks a payment reference with Paystack and reconciles the order. "
    "Fallback for when the webhook has not arrived yet.",
)
async def verify_payment(data: ReferenceRequest) -> VerificationResponse:
    """Verify a payment after the customer returns from the payment page.

    Args:
        data: Body with the payment reference.

    Returns:
        VerificationResponse: Provider status and amount in Rand.

    Raises:
        NotFoundError: 404 if no order has this reference.
        UpstreamServiceError: 500 if Paystack cannot be queried.
    """
    service = CheckoutService()

    try:
        verified, order = await service.verify_payment(data.reference)
    except OrderNotFoundError as e:
        raise NotFoundError("Order not found") from e
    except PaymentConfigurationError as e:
        logger.error("Verification rejected: %s", str(e))
        raise APIError("Failed to verify payment") from e
    except PaymentGatewayError as e:
        raise UpstreamServiceError("Failed to verify payment") from e

    return VerificationResponse(
        success=verified.succeeded,
        data=VerificationData(
            reference=verified.reference,
            amount=float(verified.amount),
            status=verified.status,
            paid_at=verified.paid_at,
            channel=verified.channel,
            order_id=str(order["id"]),
        ),
    )
