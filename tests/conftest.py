"""Pytest configuration and fixtures."""

import hashlib
import hmac
import os
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_paystack_secret")
os.environ.setdefault("PAYSTACK_PUBLIC_KEY", "pk_test_paystack_public")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("PUBLIC_BASE_URL", "https://shop.example.com")

TEST_PAYSTACK_SECRET = os.environ["PAYSTACK_SECRET_KEY"]
TEST_ADMIN_KEY = os.environ["ADMIN_API_KEY"]

ORDER_ID = "660e8400-e29b-41d4-a716-446655440000"
REFERENCE = "order_1718000000000_a1b2c3d4e5f60718"


def sign_payload(payload: bytes, secret: str = TEST_PAYSTACK_SECRET) -> str:
    """Compute the Paystack webhook signature for a raw body."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha512).hexdigest()


@pytest.fixture
def webhook_signer() -> Callable[[bytes], str]:
    """Sign raw webhook bodies with the test Paystack secret."""
    return sign_payload


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def make_order() -> Callable[..., dict[str, Any]]:
    """Factory for order rows as Supabase returns them."""

    def _make(**overrides: Any) -> dict[str, Any]:
        order = {
            "id": ORDER_ID,
            "user_ref": None,
            "payment_reference": REFERENCE,
            "status": "pending",
            "payment_status": "pending",
            "line_items": [
                {
                    "product_ref": "meal-burger",
                    "product_name": "Classic Burger",
                    "quantity": 2,
                    "unit_base_price": "100.00",
                    "selected_add_ons": [
                        {"ref": "top-cheese", "name": "Cheese", "unit_price": "20.00", "kind": "topping"}
                    ],
                    "computed_total": "240.00",
                    "special_instructions": None,
                }
            ],
            "subtotal": "240.00",
            "total": "276.00",
            "currency": "ZAR",
            "customer_name": "Thandi Mokoena",
            "customer_email": "thandi@example.com",
            "customer_phone": "+27821234567",
            "special_instructions": None,
            "pickup_time": "asap",
            "transaction_id": None,
            "payment_channel": None,
            "paid_at": None,
            "assigned_staff": None,
            "completed_at": None,
            "cancelled_at": None,
            "cancelled_by": None,
            "cancel_reason": None,
            "refund_amount": None,
            "refund_reason": None,
            "refund_transaction_id": None,
            "refunded_at": None,
            "refunded_by": None,
            "refund_requested_at": None,
            "created_at": "2024-06-10T12:00:00+00:00",
            "updated_at": "2024-06-10T12:00:00+00:00",
        }
        order.update(overrides)
        return order

    return _make


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Patched where the health check and the order service look it up.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    # Configure default mock responses
    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client), \
         patch("src.services.order_service.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client
