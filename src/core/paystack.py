"""Paystack payment gateway client.

This module is the only place that converts between major currency units
(Rand, as used everywhere else in the application) and the minor units
(cents) the Paystack API expects.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.core.config import get_settings

logger = logging.getLogger(__name__)

# Latency thresholds for logging (milliseconds)
SLOW_CALL_THRESHOLD_MS = 2000

MAX_RETRY_WAIT_SECONDS = 4


class PaymentConfigurationError(Exception):
    """Raised when Paystack credentials are missing."""


class PaymentGatewayError(Exception):
    """Raised when Paystack rejects a request or cannot be reached.

    ``message`` carries the provider's own message for server-side logs.
    """

    def __init__(self, message: str, operation: str, status_code: int | None = None) -> None:
        self.message = message
        self.operation = operation
        self.status_code = status_code
        super().__init__(f"Paystack {operation} failed: {message}")


@dataclass(frozen=True)
class InitializedPayment:
    authorization_url: str
    reference: str
    access_code: str | None = None


@dataclass(frozen=True)
class VerifiedPayment:
    """Normalized transaction status. ``amount`` is in major units."""

    reference: str
    status: str
    amount: Decimal
    currency: str | None = None
    paid_at: str | None = None
    channel: str | None = None
    transaction_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


@dataclass(frozen=True)
class RefundResult:
    status: bool
    message: str
    transaction_id: str | None = None


def to_minor_units(amount: Decimal | int | float) -> int:
    """Convert a major-unit amount to whole cents, half-up."""
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int | str | None) -> Decimal:
    """Convert cents returned by Paystack back to major units."""
    if amount in (None, ""):
        return Decimal("0.00")
    return (Decimal(str(amount)) / 100).quantize(Decimal("0.01"))


def _normalize_metadata(metadata: Any) -> dict[str, Any]:
    # Paystack returns metadata as an object, a JSON string, or "" when unset
    if isinstance(metadata, dict):
        return metadata
    if isinstance(metadata, str) and metadata:
        try:
            parsed = json.loads(metadata)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


class PaystackClient:
    """Async client for the Paystack transaction and refund APIs.

    ``initialize`` and ``refund`` are never retried, since a blind retry can
    open a second payment session or refund twice. ``verify`` is
    read-only and retried on transport errors.
    """

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        currency: str = "ZAR",
        timeout: float = 10.0,
        read_attempts: int = 3,
        backoff_multiplier: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.currency = currency
        self.timeout = timeout
        self.read_attempts = read_attempts
        self.backoff_multiplier = backoff_multiplier
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        if not self._secret_key:
            raise PaymentConfigurationError(
                "Paystack is not configured. Please set PAYSTACK_SECRET_KEY environment variable."
            )
        return {
            "Authorization": f"Bearer {self._secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one request and return the ``data`` object of a successful response."""
        headers = self._headers()
        start_time = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=payload, headers=headers)
        finally:
            latency_ms = (time.perf_counter() - start_time) * 1000
            if latency_ms > SLOW_CALL_THRESHOLD_MS:
                logger.warning("Paystack %s slow: %.2fms", operation, latency_ms)
            else:
                logger.debug("Paystack %s took %.2fms", operation, latency_ms)

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.is_success:
            message = body.get("message") if isinstance(body, dict) else None
            logger.error(
                "Paystack %s returned HTTP %d: %s",
                operation,
                response.status_code,
                message or response.text[:500],
            )
            raise PaymentGatewayError(
                message or f"HTTP {response.status_code}",
                operation=operation,
                status_code=response.status_code,
            )

        if not isinstance(body, dict) or not body.get("status"):
            message = body.get("message", "Unexpected response") if isinstance(body, dict) else "Unexpected response"
            logger.error("Paystack %s reported failure: %s", operation, message)
            raise PaymentGatewayError(message, operation=operation, status_code=response.status_code)

        return body.get("data") or {}

    async def _send_once(self, operation: str, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            return await self._request(operation, method, path, payload)
        except httpx.TransportError as e:
            logger.error("Paystack %s transport error: %s", operation, str(e))
            raise PaymentGatewayError("Payment provider unreachable", operation=operation) from e

    async def _send_with_retry(self, operation: str, method: str, path: str) -> dict[str, Any]:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self.read_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=MAX_RETRY_WAIT_SECONDS),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._request(operation, method, path)
        except httpx.TransportError as e:
            logger.error(
                "Paystack %s failed after %d attempts: %s",
                operation,
                self.read_attempts,
                str(e),
            )
            raise PaymentGatewayError("Payment provider unreachable", operation=operation) from e
        raise PaymentGatewayError("Payment provider unreachable", operation=operation)

    async def initialize(
        self,
        email: str,
        amount: Decimal,
        reference: str,
        callback_url: str | None = None,
        metadata: dict[str, Any] | None = None,
        customer: dict[str, Any] | None = None,
    ) -> InitializedPayment:
        """Open a hosted payment session for ``amount`` (major units)."""
        payload: dict[str, Any] = {
            "email": email,
            "amount": to_minor_units(amount),
            "currency": self.currency,
            "reference": reference,
        }
        if callback_url:
            payload["callback_url"] = callback_url
        if metadata:
            payload["metadata"] = metadata
        if customer:
            payload["customer"] = customer

        data = await self._send_once("initialize", "POST", "/transaction/initialize", payload)
        authorization_url = data.get("authorization_url")
        if not authorization_url:
            raise PaymentGatewayError("Paystack returned no authorization URL", operation="initialize")
        logger.info("Initialized Paystack transaction %s", reference)
        return InitializedPayment(
            authorization_url=authorization_url,
            reference=data.get("reference", reference),
            access_code=data.get("access_code"),
        )

    async def verify(self, reference: str) -> VerifiedPayment:
        """Look up the authoritative status of a transaction."""
        data = await self._send_with_retry("verify", "GET", f"/transaction/verify/{reference}")
        return self._to_verified(reference, data)

    async def refund(self, reference: str, amount: Decimal | None = None) -> RefundResult:
        """Refund a transaction, fully when ``amount`` (major units) is omitted."""
        payload: dict[str, Any] = {"transaction": reference}
        if amount is not None:
            payload["amount"] = to_minor_units(amount)

        data = await self._send_once("refund", "POST", "/refund", payload)
        logger.info("Refund requested for Paystack transaction %s", reference)
        refund_id = data.get("id")
        return RefundResult(
            status=True,
            message=data.get("status") or "Refund has been queued for processing",
            transaction_id=str(refund_id) if refund_id is not None else None,
        )

    @staticmethod
    def _to_verified(reference: str, data: dict[str, Any]) -> VerifiedPayment:
        transaction_id = data.get("id")
        return VerifiedPayment(
            reference=data.get("reference") or reference,
            status=data.get("status", "failed"),
            amount=from_minor_units(data.get("amount")),
            currency=data.get("currency"),
            paid_at=data.get("paid_at") or data.get("paidAt"),
            channel=data.get("channel"),
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            metadata=_normalize_metadata(data.get("metadata")),
        )


def get_paystack_client() -> PaystackClient:
    """Build a Paystack client from settings."""
    settings = get_settings()
    return PaystackClient(
        secret_key=settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        currency=settings.paystack_currency,
        timeout=settings.paystack_timeout_seconds,
        read_attempts=settings.paystack_verify_max_attempts,
    )


def check_paystack_configuration() -> None:
    """Log configuration problems once at startup.

    Gateway calls still fail loudly at request time if keys are missing.
    """
    settings = get_settings()
    if not settings.paystack_secret_key:
        logger.warning("Paystack secret key not configured. Payment features will not work.")
    elif settings.is_paystack_test_mode and settings.is_production:
        logger.error("Paystack test key in use in production. Customers will not be charged.")
    elif settings.is_paystack_test_mode:
        logger.info("Paystack configured in test mode")
