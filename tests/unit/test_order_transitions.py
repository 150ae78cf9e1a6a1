"""Unit tests for the order state machine."""

from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest

from src.services.order_transitions import (
    InvalidTransitionError,
    PaymentOutcome,
    advance_transition,
    cancel_transition,
    payment_transition,
    refund_transition,
)

NOW = datetime(2024, 6, 10, 12, 30, tzinfo=timezone.utc)

SUCCESS = PaymentOutcome(succeeded=True, transaction_id="4099260516", channel="card", paid_at="2024-06-10T12:29:00Z")
FAILURE = PaymentOutcome(succeeded=False)


class TestPaymentTransition:
    """Tests for payment_transition."""

    def test_success_confirms_pending_order(self, make_order: Callable[..., dict[str, Any]]) -> None:
        update = payment_transition(make_order(), SUCCESS, NOW)

        assert update is not None
        assert update["status"] == "confirmed"
        assert update["payment_status"] == "paid"
        assert update["transaction_id"] == "4099260516"
        assert update["payment_channel"] == "card"
        assert update["paid_at"] == "2024-06-10T12:29:00Z"

    def test_success_without_paid_at_uses_now(self, make_order: Callable[..., dict[str, Any]]) -> None:
        update = payment_transition(make_order(), PaymentOutcome(succeeded=True), NOW)

        assert update["paid_at"] == NOW.isoformat()
        assert "transaction_id" not in update

    def test_success_on_paid_order_is_noop(self, make_order: Callable[..., dict[str, Any]]) -> None:
        order = make_order(status="confirmed", payment_status="paid")

        assert payment_transition(order, SUCCESS, NOW) is None

    def test_success_does_not_undo_refund(self, make_order: Callable[..., dict[str, Any]]) -> None:
        order = make_order(status="confirmed", payment_status="refunded")

        assert payment_transition(order, SUCCESS, NOW) is None

    def test_success_after_failure_is_applied(self, make_order: Callable[..., dict[str, Any]]) -> None:
        update = payment_transition(make_order(payment_status="failed"), SUCCESS, NOW)

        assert update["payment_status"] == "paid"
        assert update["status"] == "confirmed"

    def test_success_on_cancelled_order_keeps_status(self, make_order: Callable[..., dict[str, Any]]) -> None:
        update = payment_transition(make_order(status="cancelled"), SUCCESS, NOW)

        assert update["payment_status"] == "paid"
        assert "status" not in update

    def test_failure_marks_pending_payment_failed(self, make_order: Callable[..., dict[str, Any]]) -> None:
        update = payment_transition(make_order(), FAILURE, NOW)

        assert update == {"payment_status": "failed", "updated_at": NOW.isoformat()}

    @pytest.mark.parametrize("payment_status", ["paid", "failed", "refunded"])
    def test_failure_never_overrides_settled_payment(
        self, make_order: Callable[..., dict[str, Any]], payment_status: str
    ) -> None:
        order = make_order(status="confirmed", payment_status=payment_status)

        assert payment_transition(order, FAILURE, NOW) is None


class TestAdvanceTransition:
    """Tests for staff status changes."""

    @pytest.mark.parametrize(
        ("current", "target"),
        [("confirmed", "preparing"), ("preparing", "ready"), ("ready", "completed")],
    )
    def test_moves_to_next_status(self, make_order: Callable[..., dict[str, Any]], current: str, target: str) -> None:
        update = advance_transition(make_order(status=current, payment_status="paid"), target, NOW)

        assert update["status"] == target

    def test_completion_sets_completed_at(self, make_order: Callable[..., dict[str, Any]]) -> None:
        update = advance_transition(make_order(status="ready"), "completed", NOW, assigned_staff="staff-7")

        assert update["completed_at"] == NOW.isoformat()
        assert update["assigned_staff"] == "staff-7"

    def test_cannot_skip_a_status(self, make_order: Callable[..., dict[str, Any]]) -> None:
        with pytest.raises(InvalidTransitionError):
            advance_transition(make_order(status="confirmed"), "ready", NOW)

    def test_cannot_confirm_manually(self, make_order: Callable[..., dict[str, Any]]) -> None:
        """Test that only a successful payment confirms an order."""
        with pytest.raises(InvalidTransitionError):
            advance_transition(make_order(status="pending"), "confirmed", NOW)

    def test_cannot_leave_terminal_status(self, make_order: Callable[..., dict[str, Any]]) -> None:
        with pytest.raises(InvalidTransitionError):
            advance_transition(make_order(status="cancelled"), "preparing", NOW)


class TestCancelTransition:
    """Tests for cancel_transition."""

    @pytest.mark.parametrize("current", ["pending", "confirmed", "preparing"])
    def test_cancels_open_orders(self, make_order: Callable[..., dict[str, Any]], current: str) -> None:
        update = cancel_transition(make_order(status=current), NOW, cancelled_by="staff-1", reason="Out of stock")

        assert update["status"] == "cancelled"
        assert update["cancelled_at"] == NOW.isoformat()
        assert update["cancelled_by"] == "staff-1"
        assert update["cancel_reason"] == "Out of stock"

    @pytest.mark.parametrize("current", ["ready", "completed", "cancelled"])
    def test_rejects_late_cancellation(self, make_order: Callable[..., dict[str, Any]], current: str) -> None:
        with pytest.raises(InvalidTransitionError):
            cancel_transition(make_order(status=current), NOW)


class TestRefundTransition:
    """Tests for refund_transition."""

    def test_full_refund_defaults_to_total(self, make_order: Callable[..., dict[str, Any]]) -> None:
        update = refund_transition(make_order(status="completed", payment_status="paid"), NOW, reason="Cold food")

        assert update["payment_status"] == "refunded"
        assert update["refund_amount"] == "276.00"
        assert update["refund_reason"] == "Cold food"
        assert "status" not in update

    def test_partial_refund(self, make_order: Callable[..., dict[str, Any]]) -> None:
        update = refund_transition(make_order(payment_status="paid"), NOW, amount=Decimal("50"))

        assert update["refund_amount"] == "50.00"

    def test_rejects_unpaid_order(self, make_order: Callable[..., dict[str, Any]]) -> None:
        with pytest.raises(InvalidTransitionError):
            refund_transition(make_order(), NOW)

    def test_rejects_amount_above_total(self, make_order: Callable[..., dict[str, Any]]) -> None:
        with pytest.raises(InvalidTransitionError):
            refund_transition(make_order(payment_status="paid"), NOW, amount=Decimal("276.01"))
