"""Integration tests for the payment webhook endpoint."""

import json
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

WEBHOOK_URL = "/api/v1/payments/webhook"

ORDER_ID = "660e8400-e29b-41d4-a716-446655440000"
REFERENCE = "order_1718000000000_a1b2c3d4e5f60718"


def select_execute(mock_supabase: MagicMock) -> MagicMock:
    return mock_supabase.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute


def update_mock(mock_supabase: MagicMock) -> MagicMock:
    return mock_supabase.table.return_value.update


def update_execute(mock_supabase: MagicMock) -> MagicMock:
    return update_mock(mock_supabase).return_value.eq.return_value.eq.return_value.eq.return_value.execute


def rows(data: Any) -> MagicMock:
    result = MagicMock()
    result.data = data
    return result


def charge_event(event: str = "charge.success", **data: Any) -> bytes:
    payload = {
        "event": event,
        "data": {
            "id": 4099260516,
            "status": "success",
            "reference": REFERENCE,
            "amount": 27600,
            "currency": "ZAR",
            "channel": "card",
            "paid_at": "2024-06-10T12:29:00.000Z",
            "metadata": {"orderId": ORDER_ID},
            **data,
        },
    }
    return json.dumps(payload).encode("utf-8")


@pytest.fixture
def post_signed(client: TestClient, webhook_signer: Callable[[bytes], str]) -> Callable[[bytes], Any]:
    def _post(body: bytes) -> Any:
        return client.post(
            WEBHOOK_URL,
            content=body,
            headers={"x-paystack-signature": webhook_signer(body), "content-type": "application/json"},
        )

    return _post


class TestPaymentWebhook:
    """Tests for POST /api/v1/payments/webhook."""

    def test_charge_success_confirms_order(
        self,
        post_signed: Callable[[bytes], Any],
        mock_supabase_client: MagicMock,
        make_order: Callable[..., dict[str, Any]],
    ) -> None:
        select_execute(mock_supabase_client).return_value = rows(make_order())
        update_execute(mock_supabase_client).return_value = rows(
            [make_order(status="confirmed", payment_status="paid")]
        )

        response = post_signed(charge_event())

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        update = update_mock(mock_supabase_client).call_args[0][0]
        assert update["status"] == "confirmed"
        assert update["payment_status"] == "paid"
        assert update["transaction_id"] == "4099260516"
        assert update["payment_channel"] == "card"

    def test_redelivered_event_changes_nothing(
        self,
        post_signed: Callable[[bytes], Any],
        mock_supabase_client: MagicMock,
        make_order: Callable[..., dict[str, Any]],
    ) -> None:
        select_execute(mock_supabase_client).return_value = rows(
            make_order(status="confirmed", payment_status="paid")
        )

        response = post_signed(charge_event())

        assert response.status_code == 200
        update_mock(mock_supabase_client).assert_not_called()

    def test_charge_failed_marks_payment_failed(
        self,
        post_signed: Callable[[bytes], Any],
        mock_supabase_client: MagicMock,
        make_order: Callable[..., dict[str, Any]],
    ) -> None:
        select_execute(mock_supabase_client).return_value = rows(make_order())
        update_execute(mock_supabase_client).return_value = rows([make_order(payment_status="failed")])

        response = post_signed(charge_event("charge.failed", status="failed"))

        assert response.status_code == 200
        update = update_mock(mock_supabase_client).call_args[0][0]
        assert update["payment_status"] == "failed"
        assert "status" not in update

    def test_tampered_body_is_rejected(
        self,
        client: TestClient,
        webhook_signer: Callable[[bytes], str],
        mock_supabase_client: MagicMock,
    ) -> None:
        body = charge_event()
        signature = webhook_signer(body)
        tampered = body.replace(b"27600", b"27601")

        response = client.post(WEBHOOK_URL, content=tampered, headers={"x-paystack-signature": signature})

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid signature"
        update_mock(mock_supabase_client).assert_not_called()
        select_execute(mock_supabase_client).assert_not_called()

    def test_missing_signature_is_rejected(self, client: TestClient) -> None:
        response = client.post(WEBHOOK_URL, content=charge_event())

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid signature"

    def test_unknown_event_is_acknowledged(
        self, post_signed: Callable[[bytes], Any], mock_supabase_client: MagicMock
    ) -> None:
        body = json.dumps({"event": "subscription.create", "data": {"code": "SUB_1"}}).encode("utf-8")

        response = post_signed(body)

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        update_mock(mock_supabase_client).assert_not_called()

    def test_success_without_order_id_is_acknowledged(
        self, post_signed: Callable[[bytes], Any], mock_supabase_client: MagicMock
    ) -> None:
        response = post_signed(charge_event(metadata={}))

        assert response.status_code == 200
        update_mock(mock_supabase_client).assert_not_called()

    def test_unknown_reference_is_acknowledged(
        self, post_signed: Callable[[bytes], Any], mock_supabase_client: MagicMock
    ) -> None:
        select_execute(mock_supabase_client).return_value = rows(None)

        response = post_signed(charge_event(reference="order_0_unknown"))

        assert response.status_code == 200
        update_mock(mock_supabase_client).assert_not_called()
        mock_supabase_client.table.return_value.insert.assert_not_called()

    def test_malformed_signed_body_returns_400(self, post_signed: Callable[[bytes], Any]) -> None:
        response = post_signed(b"not json")

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid payload"

    def test_processing_failure_returns_500(
        self, post_signed: Callable[[bytes], Any], mock_supabase_client: MagicMock
    ) -> None:
        """Test that a database outage makes the provider retry the event."""
        select_execute(mock_supabase_client).side_effect = ConnectionError("database unavailable")

        response = post_signed(charge_event())

        assert response.status_code == 500
        assert response.json()["error"] == "Webhook processing failed"
