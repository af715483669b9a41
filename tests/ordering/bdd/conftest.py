"""Shared BDD fixtures and step definitions for the order lifecycle."""

import pytest
from ordering.order.errors import OrderingError
from ordering.order.order import Order, OrderStatus, TransitionContext
from ordering.order.transition import transition
from protean import current_domain
from pytest_bdd import given, parsers, then, when


def _reload(order):
    return current_domain.repository_for(Order).get_order(order.id)


@pytest.fixture()
def outcome():
    """Container for the error a When step ran into."""
    return {"error": None}


def _attempt(order, outcome, status, context=None):
    try:
        return transition(order.id, status, context)
    except OrderingError as exc:
        outcome["error"] = exc
        return _reload(order)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("the catalog sells shirts at 500 and blazers at 1000")
def _(catalog):
    return catalog


@given(
    parsers.cfparse("an order was placed for {shirts:d} shirts and {blazers:d} blazer with shipping {shipping:g}"),
    target_fixture="order",
)
def _(place, shirts, blazers, shipping):
    return place(
        items=[
            {"product_id": "prod-shirt", "quantity": shirts},
            {"product_id": "prod-blazer", "quantity": blazers},
        ],
        shipping_charge=shipping,
    )


@given("a pending order", target_fixture="order")
def _(place):
    return place()


@given(parsers.cfparse('a pending order was moved through "{path}"'), target_fixture="order")
def _(place, move, path):
    return move(place(), *[step.strip() for step in path.split(",")])


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the order is moved to "{status}"'), target_fixture="order")
def _(order, outcome, status):
    return _attempt(order, outcome, status)


@when(parsers.cfparse('the order is shipped with tracking number "{tracking}"'), target_fixture="order")
def _(order, outcome, tracking):
    return _attempt(order, outcome, "shipped", TransitionContext(tracking_number=tracking, courier="BlueDart"))


@when(parsers.cfparse('the {actor} cancels the order because "{reason}"'), target_fixture="order")
def _(order, outcome, actor, reason):
    return _attempt(order, outcome, "cancelled", TransitionContext(reason=reason, cancelled_by=actor))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(order, status):
    assert _reload(order).status == status


@then(parsers.cfparse('the payment status is "{status}"'))
def _(order, status):
    assert _reload(order).payment_status == status


@then(parsers.cfparse("the subtotal is {amount:g}"))
def _(order, amount):
    assert order.subtotal == amount


@then(parsers.cfparse("the total is {amount:g}"))
def _(order, amount):
    assert order.total_amount == amount


@then(parsers.cfparse("the transition fails with {kind}"))
def _(outcome, kind):
    assert outcome["error"] is not None, "Expected the transition to fail"
    assert outcome["error"].kind == kind


@then("the transition succeeds")
def _(outcome):
    assert outcome["error"] is None, f"Unexpected failure: {outcome['error']}"


@then("the delivery time is recorded")
def _(order):
    assert _reload(order).delivered_at is not None


@then("every further transition fails with invalid_transition")
def _(order, outcome):
    for status in OrderStatus:
        if status.value == order.status:
            continue
        outcome["error"] = None
        _attempt(order, outcome, status.value, TransitionContext(reason="r", tracking_number="t"))
        assert outcome["error"] is not None and outcome["error"].kind == "invalid_transition"
