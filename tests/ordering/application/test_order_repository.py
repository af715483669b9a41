"""Application tests for OrderRepository — compare-and-set saves, lookups and time bounds."""

import itertools
from datetime import UTC, datetime, timedelta

import pytest
from ordering.order.errors import InvalidTransition, NotFound, PersistenceError, PersistenceTimeout, StaleState
from ordering.order.order import Order, TransitionContext
from ordering.order.pricing import compute_totals
from ordering.order.repository import OrderRepository, OrderScope
from ordering.order.transition import transition
from protean import atomic_change
from protean.exceptions import ValidationError

ADDRESS = {"street": "12 MG Road", "city": "Bengaluru", "state": "Karnataka", "postal_code": "560001", "country": "India"}


class TestCompareAndSet:
    def test_second_writer_from_same_read_is_rejected(self, place, repo):
        order = place()
        first = repo.get_order(order.id)
        second = repo.get_order(order.id)

        first.transition_to("confirmed")
        repo.save_order(first, 0)

        second.transition_to("cancelled", TransitionContext(reason="Duplicate"))
        with pytest.raises(StaleState) as exc:
            repo.save_order(second, 0)
        assert exc.value.details["stored_version"] == 1

        stored = repo.get_order(order.id)
        assert stored.status == "confirmed"
        assert stored.version == 1

    def test_insert_of_existing_order_rejected(self, place, repo):
        order = place()
        with pytest.raises(StaleState):
            repo.save_order(repo.get_order(order.id), None)

    def test_update_of_missing_order_rejected(self, repo):
        lines = [{"product_id": "p1", "product_name": "Widget", "unit_price": 10.0, "quantity": 1}]
        order = Order.create(
            order_number="ORD-20261019-FFFFFF",
            customer_id="cust-001",
            lines=lines,
            totals=compute_totals(lines),
            shipping_address=ADDRESS,
        )
        with pytest.raises(NotFound):
            repo.save_order(order, 0)

    def test_amounts_are_frozen(self, place, repo):
        order = repo.get_order(place().id)
        with atomic_change(order):
            order.shipping_charge = 200.0
            order.total_amount = 2200.0
        with pytest.raises(ValidationError) as exc:
            repo.save_order(order, 0)
        assert "shipping_charge" in exc.value.messages


class TestLookup:
    def test_get_unknown_order(self, repo):
        with pytest.raises(NotFound) as exc:
            repo.get_order("missing")
        assert exc.value.details["order_id"] == "missing"

    def test_find_by_order_number_ignores_case(self, place, repo):
        order = place()
        found = repo.find_by_order_number(f"  {order.order_number.lower()} ")
        assert found.id == order.id

    def test_find_unknown_number(self, repo):
        assert repo.find_by_order_number("ORD-19990101-000000") is None
        assert repo.find_by_order_number("") is None

    def test_query_pages_through_everything(self, place, repo):
        placed = {place().id for _ in range(7)}
        query = repo.query_orders(page_size=3)
        assert {order.id for order in query} == placed

    def test_query_is_restartable(self, place, repo):
        for _ in range(3):
            place()
        query = repo.query_orders(page_size=2)
        assert len(list(query)) == 3
        assert len(list(query)) == 3

    def test_query_scope(self, place, move, repo):
        mine = place(customer_id="cust-A")
        move(place(customer_id="cust-A"), "confirmed")
        place(customer_id="cust-B")

        pending_for_a = list(repo.query_orders(OrderScope(customer_id="cust-A", statuses=("pending",))))
        assert [order.id for order in pending_for_a] == [mine.id]

    def test_query_created_range(self, place, repo):
        place()
        later = datetime.now(UTC) + timedelta(days=1)
        assert list(repo.query_orders(OrderScope(created_from=later))) == []

    def test_scope_rejects_unknown_status(self):
        with pytest.raises(InvalidTransition):
            OrderScope(statuses=("lost",))


class TestPersistenceBounds:
    def test_slow_call_times_out_and_writes_nothing(self, place, repo, monkeypatch):
        order = place()
        ticks = itertools.count(step=10)

        with monkeypatch.context() as patch:
            patch.setattr(OrderRepository, "clock", staticmethod(lambda: next(ticks)))
            with pytest.raises(PersistenceTimeout) as exc:
                transition(order.id, "confirmed")
            assert exc.value.details["timeout"] == 5.0

        stored = repo.get_order(order.id)
        assert stored.status == "pending"
        assert stored.version == 0

    def test_provider_timeout_is_reported(self, place, repo, monkeypatch):
        order = place()

        def stalled(self, *args, **kwargs):
            raise TimeoutError("socket timed out")

        monkeypatch.setattr(OrderRepository, "add", stalled)
        with pytest.raises(PersistenceTimeout):
            transition(order.id, "confirmed")

    def test_unexpected_failure_is_wrapped(self, place, repo, monkeypatch):
        order = place()

        def broken(self, *args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(OrderRepository, "add", broken)
        with pytest.raises(PersistenceError) as exc:
            transition(order.id, "confirmed")
        assert isinstance(exc.value.__cause__, RuntimeError)
        assert exc.value.details["operation"] == "save_order"
