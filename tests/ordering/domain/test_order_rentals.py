"""Tests for the rental window carried by orders and their lines."""

import json
from datetime import UTC, date, datetime, timedelta

import pytest
from ordering.order.events import OrderPlaced
from ordering.order.order import Order, TransitionContext
from ordering.order.pricing import compute_totals
from protean.exceptions import ValidationError

ADDRESS = {"street": "12 MG Road", "city": "Bengaluru", "state": "Karnataka", "postal_code": "560001", "country": "India"}

NOV_1 = date(2026, 11, 1)
NOV_4 = date(2026, 11, 4)
NOV_6 = date(2026, 11, 6)


def _line(product_id="prod-sherwani", start=NOV_1, end=NOV_4, days=3):
    return {
        "product_id": product_id,
        "product_name": "Silk Sherwani",
        "unit_price": 2500.0,
        "quantity": 1,
        "rental_days": days,
        "start_date": start,
        "end_date": end,
    }


def _order(lines=None, **kwargs):
    lines = lines if lines is not None else [_line()]
    return Order.create(
        order_number="ORD-20261019-R00001",
        customer_id="cust-001",
        lines=lines,
        totals=compute_totals(lines),
        shipping_address=ADDRESS,
        **kwargs,
    )


class TestRentalWindow:
    def test_window_taken_from_the_lines(self):
        order = _order([_line(), _line("prod-lehenga", start=date(2026, 11, 2), end=NOV_6, days=4)])
        assert order.delivery_date == NOV_1
        assert order.return_date == NOV_6
        assert order.rental_duration == 5

    def test_explicit_window_wins(self):
        order = _order(delivery_date=date(2026, 10, 31), return_date=date(2026, 11, 5))
        assert order.delivery_date == date(2026, 10, 31)
        assert order.rental_duration == 5

    def test_line_keeps_its_window(self):
        item = _order().ordered_items[0]
        assert item.rental_days == 3
        assert item.start_date == NOV_1
        assert item.end_date == NOV_4

    def test_purchase_has_no_window(self):
        lines = [{"product_id": "prod-shirt", "product_name": "Linen Shirt", "unit_price": 500.0, "quantity": 2}]
        order = _order(lines)
        assert order.delivery_date is None
        assert order.return_date is None
        assert order.rental_duration == 0
        assert order.is_active_on(NOV_1) is False

    @pytest.mark.parametrize("end", [NOV_1, date(2026, 10, 30)])
    def test_line_must_end_after_it_starts(self, end):
        with pytest.raises(ValidationError) as exc:
            _order([_line(end=end, days=None)])
        assert "end_date" in exc.value.messages

    def test_order_must_be_returned_after_delivery(self):
        with pytest.raises(ValidationError) as exc:
            _order(delivery_date=NOV_6, return_date=NOV_4)
        assert "return_date" in exc.value.messages

    def test_placed_event_carries_the_window(self):
        event = _order()._events[-1]
        assert isinstance(event, OrderPlaced)
        assert event.delivery_date == NOV_1
        assert event.return_date == NOV_4
        assert json.loads(event.items)[0]["start_date"] == "2026-11-01"


class TestActiveRental:
    def test_pending_rental_is_not_active(self):
        assert _order().is_active_on(NOV_1) is False

    def test_confirmed_rental_is_active_until_return(self):
        order = _order()
        order.transition_to("confirmed")
        assert order.is_active_on(date(2026, 10, 20)) is True
        assert order.is_active_on(NOV_4) is True
        assert order.is_active_on(date(2026, 11, 5)) is False

    def test_delivered_rental_stays_active(self):
        order = _order()
        for step in ("confirmed", "processing", "shipped", "delivered"):
            order.transition_to(step, TransitionContext(tracking_number="TRK-9"))
        assert order.is_active_on(date(2026, 11, 2)) is True

    def test_cancelled_rental_is_not_active(self):
        order = _order()
        order.transition_to("cancelled", TransitionContext(reason="Event postponed"))
        assert order.is_active_on(date(2026, 10, 20)) is False

    def test_accepts_a_datetime(self):
        order = _order()
        order.transition_to("confirmed")
        assert order.is_active_on(datetime(2026, 11, 4, 23, 0, tzinfo=UTC)) is True

    def test_is_active_uses_today(self):
        today = datetime.now(UTC).date()
        order = _order([_line(start=today + timedelta(days=1), end=today + timedelta(days=4))])
        order.transition_to("confirmed")
        assert order.is_active is True
