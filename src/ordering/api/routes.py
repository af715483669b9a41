"""FastAPI routes for orders.

Routes translate HTTP to commands and queries. Every status change,
whether from the admin screen or the customer's cancel button, goes
through ``TransitionOrder``.
"""

from itertools import islice

from fastapi import APIRouter, Query
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    AddressSchema,
    CancelOrderRequest,
    NextStatusesResponse,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    PlaceOrderRequest,
    UpdateStatusRequest,
)
from ordering.order.creation import create_order
from ordering.order.errors import NotFound
from ordering.order.order import CancellationActor, Order, OrderStatus, TransitionContext
from ordering.order.repository import OrderScope
from ordering.order.transition import transition
from ordering.reporting.rollup import order_stats

order_router = APIRouter(prefix="/orders", tags=["orders"])


def _address(value):
    return AddressSchema(**value.to_dict()) if value else None


def _to_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        customer_id=str(order.customer_id),
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        items=[
            OrderItemResponse(
                product_id=str(item.product_id),
                variant_id=str(item.variant_id) if item.variant_id else None,
                size_id=str(item.size_id) if item.size_id else None,
                sku=item.sku,
                product_name=item.product_name,
                size_label=item.size_label,
                color=item.color,
                unit_price=item.unit_price,
                quantity=item.quantity,
                line_total=item.line_total,
                rental_days=item.rental_days,
                start_date=item.start_date,
                end_date=item.end_date,
            )
            for item in order.ordered_items
        ],
        item_count=order.item_count,
        subtotal=order.subtotal,
        shipping_charge=order.shipping_charge,
        discount=order.discount,
        tax=order.tax,
        total_amount=order.total_amount,
        currency=order.currency,
        shipping_address=_address(order.shipping_address),
        billing_address=_address(order.billing_address),
        tracking_number=order.tracking_number,
        courier=order.courier,
        expected_delivery=order.expected_delivery,
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
        paid_at=order.paid_at,
        cancelled_at=order.cancelled_at,
        cancellation_reason=order.cancellation_reason,
        cancelled_by=order.cancelled_by,
        refunded_at=order.refunded_at,
        customer_note=order.customer_note,
        admin_note=order.admin_note,
        delivery_date=order.delivery_date,
        return_date=order.return_date,
        rental_duration=order.rental_duration,
        is_active=order.is_active,
        created_at=order.created_at,
        updated_at=order.updated_at,
        version=order.version,
        next_statuses=order.next_statuses,
    )


def _repo():
    return current_domain.repository_for(Order)


@order_router.post("", status_code=201, response_model=OrderResponse)
async def place_order(body: PlaceOrderRequest) -> OrderResponse:
    order = create_order(
        customer_id=body.customer_id,
        items=[line.model_dump() for line in body.items],
        shipping_address=body.shipping_address.model_dump(),
        billing_address=body.billing_address.model_dump() if body.billing_address else None,
        shipping_charge=body.shipping_charge,
        discount=body.discount,
        tax=body.tax,
        payment_method=body.payment_method,
        customer_note=body.customer_note,
        delivery_date=body.delivery_date,
        return_date=body.return_date,
    )
    return _to_response(order)


@order_router.get("", response_model=OrderListResponse)
async def list_orders(
    customer_id: str | None = None,
    status: list[str] = Query(default=[]),
    payment_status: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
) -> OrderListResponse:
    scope = OrderScope(customer_id=customer_id, statuses=tuple(status), payment_status=payment_status)
    orders = [_to_response(order) for order in islice(_repo().query_orders(scope), limit)]
    return OrderListResponse(orders=orders, count=len(orders))


@order_router.get("/stats")
async def get_order_stats(customer_id: str | None = None, period: str = Query("30d", alias="range")) -> dict:
    return order_stats(OrderScope(customer_id=customer_id), period=period).to_dict()


@order_router.get("/active-rentals", response_model=OrderListResponse)
async def list_active_rentals(customer_id: str) -> OrderListResponse:
    """A customer's rentals that are out, or about to go out, and not yet due back."""
    orders = [_to_response(order) for order in _repo().active_rentals(customer_id)]
    return OrderListResponse(orders=orders, count=len(orders))


@order_router.get("/track", response_model=OrderResponse)
async def track_order(order_number: str) -> OrderResponse:
    order = _repo().find_by_order_number(order_number)
    if order is None:
        raise NotFound(f"No order with number {order_number}", order_number=order_number)
    return _to_response(order)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return _to_response(_repo().get_order(order_id))


@order_router.get("/{order_id}/next-statuses", response_model=NextStatusesResponse)
async def get_next_statuses(order_id: str) -> NextStatusesResponse:
    order = _repo().get_order(order_id)
    return NextStatusesResponse(order_id=str(order.id), status=order.status, next_statuses=order.next_statuses)


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(order_id: str, body: UpdateStatusRequest) -> OrderResponse:
    context = TransitionContext(
        reason=body.reason,
        cancelled_by=body.cancelled_by,
        tracking_number=body.tracking_number,
        courier=body.courier,
        expected_delivery=body.expected_delivery,
        admin_note=body.admin_note,
        expected_status=body.expected_status,
        expected_version=body.expected_version,
    )
    return _to_response(transition(order_id, body.status, context))


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest) -> OrderResponse:
    """Customer-initiated cancellation; only allowed before the order ships."""
    order = _repo().get_order(order_id)
    # Someone else's order is reported as missing
    if str(order.customer_id) != body.customer_id:
        raise NotFound(f"Order {order_id} does not exist", order_id=order_id)
    context = TransitionContext(
        reason=body.reason,
        cancelled_by=CancellationActor.CUSTOMER.value,
        expected_version=body.expected_version,
    )
    return _to_response(transition(order_id, OrderStatus.CANCELLED, context))
