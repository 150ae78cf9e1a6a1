"""Signed webhook verification.

Payment events reach the service either straight from Paystack (hex
HMAC-SHA512 of the raw body in ``x-paystack-signature``) or relayed through
Svix (``svix-id``/``svix-timestamp``/``svix-signature``). Both schemes sit
behind ``SignedWebhookVerifier`` and are selected by configuration.

Verification always runs over the exact bytes received. The body is parsed
only after the signature matches.
"""

import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping

from svix.webhooks import Webhook
from svix.webhooks import WebhookVerificationError as SvixVerificationError

from src.core.config import get_settings

logger = logging.getLogger(__name__)

PAYSTACK_SIGNATURE_HEADER = "x-paystack-signature"
SVIX_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


class WebhookVerificationError(Exception):
    """Signature missing or does not match the payload."""


class WebhookConfigurationError(Exception):
    """The signing secret for the selected scheme is not configured."""


class WebhookPayloadError(Exception):
    """Verified payload is not a JSON object."""


def _parse_event(payload: bytes) -> dict[str, Any]:
    try:
        event = json.loads(payload)
    except ValueError as e:
        raise WebhookPayloadError("Webhook body is not valid JSON") from e
    if not isinstance(event, dict):
        raise WebhookPayloadError("Webhook body must be a JSON object")
    return event


class SignedWebhookVerifier(ABC):
    """Verifies a raw webhook body against its signature headers."""

    scheme: str

    @abstractmethod
    def verify(self, payload: bytes, headers: Mapping[str, str]) -> dict[str, Any]:
        """Return the parsed event if the signature is valid.

        Raises:
            WebhookVerificationError: Missing or mismatched signature.
            WebhookConfigurationError: No secret configured.
            WebhookPayloadError: Signature valid but body is not a JSON object.
        """


class HmacWebhookVerifier(SignedWebhookVerifier):
    """Hex HMAC over the raw body, compared in constant time."""

    scheme = "hmac-sha512"

    def __init__(
        self,
        secret: str,
        header: str = PAYSTACK_SIGNATURE_HEADER,
        digestmod: Callable[..., Any] = hashlib.sha512,
    ) -> None:
        self._secret = secret
        self.header = header.lower()
        self.digestmod = digestmod

    def sign(self, payload: bytes) -> str:
        if not self._secret:
            raise WebhookConfigurationError(
                "Payment webhook secret is not configured. Please set PAYSTACK_SECRET_KEY environment variable."
            )
        return hmac.new(self._secret.encode("utf-8"), payload, self.digestmod).hexdigest()

    def verify(self, payload: bytes, headers: Mapping[str, str]) -> dict[str, Any]:
        expected = self.sign(payload)
        lowered = {key.lower(): value for key, value in headers.items()}
        signature = lowered.get(self.header)
        if not signature:
            raise WebhookVerificationError(f"Missing {self.header} header")
        if not hmac.compare_digest(expected.encode("ascii"), signature.strip().lower().encode("ascii", "replace")):
            raise WebhookVerificationError("Invalid signature")
        return _parse_event(payload)


class SvixWebhookVerifier(SignedWebhookVerifier):
    """Svix-signed relay (timestamped, with replay protection)."""

    scheme = "svix"

    def __init__(self, secret: str) -> None:
        if not secret:
            raise WebhookConfigurationError(
                "Svix webhook secret is not configured. Please set SVIX_WEBHOOK_SECRET environment variable."
            )
        self._webhook = Webhook(secret)

    def verify(self, payload: bytes, headers: Mapping[str, str]) -> dict[str, Any]:
        lowered = {key.lower(): value for key, value in headers.items()}
        if not all(lowered.get(name) for name in SVIX_HEADERS):
            raise WebhookVerificationError("Missing Svix signature headers")
        try:
            self._webhook.verify(payload, {name: lowered[name] for name in SVIX_HEADERS})
        except SvixVerificationError as e:
            raise WebhookVerificationError("Invalid signature") from e
        return _parse_event(payload)


def get_payment_webhook_verifier() -> SignedWebhookVerifier:
    """Build the verifier for the configured payment webhook scheme."""
    settings = get_settings()
    if settings.payment_webhook_scheme == "svix":
        return SvixWebhookVerifier(settings.svix_webhook_secret)
    return HmacWebhookVerifier(settings.webhook_hmac_secret)
