"""Application tests for rental orders: placement, active rentals and their figures."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from ordering.reporting.rollup import order_stats, rollup
from protean.exceptions import ValidationError

BEFORE_WINDOWS = datetime(2030, 4, 20, tzinfo=UTC)


def _rental(product_id="prod-blazer", start="2030-05-01", end="2030-05-04", **extra):
    return {"product_id": product_id, "quantity": 1, "start_date": start, "end_date": end, **extra}


class TestPlacingRentals:
    def test_window_is_stored(self, place, repo):
        order = place(items=[_rental(rental_days=3)])
        stored = repo.get_order(order.id)

        item = stored.ordered_items[0]
        assert item.start_date == date(2030, 5, 1)
        assert item.end_date == date(2030, 5, 4)
        assert item.rental_days == 3
        assert stored.delivery_date == date(2030, 5, 1)
        assert stored.return_date == date(2030, 5, 4)
        assert stored.rental_duration == 3

    def test_rental_days_follow_the_dates(self, place):
        order = place(items=[_rental(end="2030-05-08")])
        assert order.ordered_items[0].rental_days == 7

    def test_order_window_given_explicitly(self, place):
        order = place(
            items=[_rental()],
            delivery_date=date(2030, 4, 30),
            return_date=date(2030, 5, 5),
        )
        assert order.delivery_date == date(2030, 4, 30)
        assert order.rental_duration == 5

    def test_prices_are_not_scaled_by_rental_days(self, place):
        order = place(items=[_rental(rental_days=3)])
        assert order.subtotal == 1000.0

    def test_end_before_start_is_rejected(self, place, repo):
        with pytest.raises(ValidationError):
            place(items=[_rental(start="2030-05-04", end="2030-05-01")])
        assert list(repo.query_orders()) == []

    def test_unreadable_date(self, place):
        with pytest.raises(ValidationError) as exc:
            place(items=[_rental(start="first of May")])
        assert "start_date" in exc.value.messages

    def test_rental_days_must_be_positive(self, place):
        with pytest.raises(ValidationError) as exc:
            place(items=[_rental(rental_days=0)])
        assert "rental_days" in exc.value.messages


class TestActiveRentals:
    def test_only_confirmed_onwards(self, place, move, repo):
        place(items=[_rental()])
        confirmed = move(place(items=[_rental()]), "confirmed")
        move(place(items=[_rental()]), "cancelled")

        active = repo.active_rentals("cust-001", BEFORE_WINDOWS)
        assert [order.id for order in active] == [confirmed.id]

    def test_delivered_rental_is_active_until_due_back(self, place, move, repo):
        order = move(place(items=[_rental()]), "confirmed", "processing", "shipped", "delivered")

        assert [o.id for o in repo.active_rentals("cust-001", datetime(2030, 5, 4, 12, tzinfo=UTC))] == [order.id]
        assert repo.active_rentals("cust-001", datetime(2030, 5, 5, tzinfo=UTC)) == []

    def test_scoped_to_the_customer(self, place, move, repo):
        move(place("cust-A", items=[_rental()]), "confirmed")
        move(place("cust-B", items=[_rental()]), "confirmed")

        active = repo.active_rentals("cust-B", BEFORE_WINDOWS)
        assert [str(order.customer_id) for order in active] == ["cust-B"]

    def test_soonest_delivery_first(self, place, move, repo):
        later = move(place(items=[_rental(start="2030-06-01", end="2030-06-03")]), "confirmed")
        sooner = move(place(items=[_rental()]), "confirmed")

        active = repo.active_rentals("cust-001", BEFORE_WINDOWS)
        assert [order.id for order in active] == [sooner.id, later.id]

    def test_purchases_are_never_active_rentals(self, place, move, repo):
        move(place(), "confirmed")
        assert repo.active_rentals("cust-001", BEFORE_WINDOWS) == []


class TestRentalFigures:
    def test_rollup_counts_active_rentals_and_spend(self, place, move, repo):
        move(place(items=[_rental()]), "confirmed")
        move(place(items=[_rental()]), "confirmed", "processing", "shipped", "delivered")
        move(place(items=[_rental()]), "cancelled")
        place()

        stats = rollup(repo.query_orders(), now=BEFORE_WINDOWS)
        assert stats.active_rentals == 2
        assert stats.total_spent == Decimal("1100.00")

        data = stats.to_dict()
        assert data["active_rentals"] == 2
        assert data["total_spent"] == 1100.0

    def test_returned_rentals_are_no_longer_active(self, place, move, repo):
        move(place(items=[_rental()]), "confirmed")
        assert rollup(repo.query_orders(), now=datetime(2030, 6, 1, tzinfo=UTC)).active_rentals == 0

    def test_refunded_orders_are_not_spend(self, place, move, repo):
        move(place(), "confirmed", "processing", "shipped", "delivered", "refunded")
        assert rollup(repo.query_orders()).total_spent == Decimal("0.00")

    def test_dashboard_figures(self, place, move):
        move(place(items=[_rental(start="2099-01-01", end="2099-01-05")]), "confirmed")
        result = order_stats(period="7d")
        assert result.stats.active_rentals == 1
        assert result.to_dict()["total_spent"] == 0.0
