"""Order lookup and back-office order management routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Query

from src.api.deps import StaffAuth
from src.api.middleware.error_handler import ConflictError, NotFoundError, UpstreamServiceError
from src.core.paystack import PaymentConfigurationError, PaymentGatewayError
from src.schemas.checkout import (
    OrderCancelRequest,
    OrderListResponse,
    OrderResponse,
    OrderStatus,
    OrderStatusUpdate,
    ReferenceRequest,
    RefundRequest,
)
from src.services.checkout_service import CheckoutService
from src.services.order_service import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    OrderConflictError,
    OrderNotFoundError,
    OrderService,
)
from src.services.order_transitions import InvalidTransitionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "/by-reference",
    response_model=OrderResponse,
    summary="Get order by payment reference",
    description="Returns the order behind a payment reference, e.g. on the order confirmation page.",
)
async def get_order_by_reference(data: ReferenceRequest) -> OrderResponse:
    """Look up an order by its payment reference.

    Args:
        data: Body with the payment reference.

    Returns:
        OrderResponse: The order document.

    Raises:
        NotFoundError: 404 if no order has this reference.
    """
    service = OrderService()
    order = await service.get_order_by_reference(data.reference)
    if not order:
        raise NotFoundError("Order not found")
    return OrderResponse.from_row(order)


# Back-office router - mounted separately at /admin/orders
admin_router = APIRouter(prefix="/admin/orders", tags=["admin"])


@admin_router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
    description="Returns orders newest first, filtered by status or by customer.",
)
async def list_orders(
    staff: StaffAuth,
    status: OrderStatus | None = None,
    user_ref: Annotated[str | None, Query(alias="userRef")] = None,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> OrderListResponse:
    """List orders for the back office.

    Args:
        staff: Authenticated staff context.
        status: Only return orders in this status.
        user_ref: Only return this customer's orders.
        limit: Page size.
        offset: Number of orders to skip.

    Returns:
        OrderListResponse: A page of orders.
    """
    service = OrderService()
    if user_ref:
        orders = await service.list_orders_for_user(user_ref, status=status, limit=limit, offset=offset)
    else:
        orders = await service.list_orders(status=status, limit=limit, offset=offset)

    return OrderListResponse(
        items=[OrderResponse.from_row(order) for order in orders],
        limit=limit,
        offset=offset,
    )


@admin_router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
)
async def get_order(order_id: str, staff: StaffAuth) -> OrderResponse:
    service = OrderService()
    order = await service.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")
    return OrderResponse.from_row(order)


@admin_router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Advance order status",
    description="Moves a confirmed order through preparing, ready and completed.",
)
async def update_order_status(order_id: str, data: OrderStatusUpdate, staff: StaffAuth) -> OrderResponse:
    """Advance an order to its next kitchen status.

    Raises:
        NotFoundError: 404 if the order does not exist.
        ConflictError: 409 if the order is not in the preceding status.
    """
    service = OrderService()
    try:
        order = await service.advance_status(order_id, data.status, assigned_staff=data.assigned_staff)
    except OrderNotFoundError as e:
        raise NotFoundError("Order not found") from e
    except (InvalidTransitionError, OrderConflictError) as e:
        raise ConflictError(str(e)) from e
    return OrderResponse.from_row(order)


@admin_router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel order",
    description="Cancels an order that is pending, confirmed or preparing.",
)
async def cancel_order(order_id: str, data: OrderCancelRequest, staff: StaffAuth) -> OrderResponse:
    service = OrderService()
    try:
        order = await service.cancel_order(order_id, cancelled_by=staff.staff_id, reason=data.reason)
    except OrderNotFoundError as e:
        raise NotFoundError("Order not found") from e
    except (InvalidTransitionError, OrderConflictError) as e:
        raise ConflictError(str(e)) from e
    return OrderResponse.from_row(order)


@admin_router.post(
    "/{order_id}/refund",
    response_model=OrderResponse,
    summary="Refund order",
    description="Refunds a paid order through Paystack, fully or partially, and records the refund.",
)
async def refund_order(order_id: str, data: RefundRequest, staff: StaffAuth) -> OrderResponse:
    """Refund a paid order.

    Raises:
        NotFoundError: 404 if the order does not exist.
        ConflictError: 409 if the order is not paid or the amount is invalid.
        UpstreamServiceError: 500 if Paystack rejects the refund.
    """
    service = CheckoutService()
    try:
        order = await service.refund_order(
            order_id,
            amount=data.amount,
            reason=data.reason,
            refunded_by=staff.staff_id,
        )
    except OrderNotFoundError as e:
        raise NotFoundError("Order not found") from e
    except (InvalidTransitionError, OrderConflictError) as e:
        raise ConflictError(str(e)) from e
    except (PaymentGatewayError, PaymentConfigurationError) as e:
        logger.error("Refund for order %s failed: %s", order_id, str(e))
        raise UpstreamServiceError("Failed to process refund") from e
    return OrderResponse.from_row(order)
