"""Webhook API routes for external service integrations."""

import logging

from fastapi import APIRouter, Request, status

from src.api.middleware.error_handler import APIError, AuthenticationError, ValidationError
from src.core.webhooks import (
    WebhookConfigurationError,
    WebhookPayloadError,
    WebhookVerificationError,
    get_payment_webhook_verifier,
)
from src.schemas.checkout import WebhookAck
from src.services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["webhooks"])


@router.post(
    "/webhook",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Handle Paystack webhooks",
    description="Receives and processes signed Paystack payment events.",
)
async def payment_webhook(request: Request) -> WebhookAck:
    """Handle payment provider webhook events.

    The signature is checked against the raw body before anything is parsed.

    Handles:
    - charge.success: marks the order paid and confirms it
    - charge.failed: marks the order's payment failed

    Other event types, duplicates and events for unknown orders are
    acknowledged with 200 so the provider stops redelivering them.

    Args:
        request: FastAPI request object for reading raw body and headers.

    Returns:
        WebhookAck: ``{"status": "ok"}``.

    Raises:
        AuthenticationError: 401 if the signature is missing or invalid.
        APIError: 500 if processing fails, so the provider retries.
    """
    payload = await request.body()
    logger.debug("Payment webhook payload size: %d bytes", len(payload))

    try:
        verifier = get_payment_webhook_verifier()
        event = verifier.verify(payload, request.headers)
    except WebhookConfigurationError as e:
        logger.error("Payment webhook cannot be verified: %s", str(e))
        raise APIError("Webhook processing failed") from e
    except WebhookVerificationError as e:
        logger.warning("Rejected payment webhook: %s", str(e))
        raise AuthenticationError("Invalid signature") from e
    except WebhookPayloadError as e:
        logger.warning("Signed payment webhook with unusable body: %s", str(e))
        raise ValidationError("Invalid payload") from e

    event_type = event.get("event", "")
    logger.info("Processing payment webhook event: %s (scheme=%s)", event_type, verifier.scheme)

    try:
        service = CheckoutService()
        result = await service.handle_webhook_event(event)
    except Exception as e:
        logger.exception("Payment webhook processing failed for %s", event_type)
        raise APIError("Webhook processing failed") from e

    if result is not None:
        logger.info("Payment webhook %s: %s", event_type, result.status.value)

    return WebhookAck(status="ok")
