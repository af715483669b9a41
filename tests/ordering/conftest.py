import pytest
from protean.integrations.pytest import DomainFixture

ADDRESS = {
    "name": "Asha Rao",
    "phone": "9800000000",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "postal_code": "560001",
    "country": "India",
}

DEFAULT_ITEMS = [
    {"product_id": "prod-shirt", "quantity": 2},
    {"product_id": "prod-blazer", "quantity": 1},
]


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()


@pytest.fixture()
def address():
    return dict(ADDRESS)


@pytest.fixture()
def catalog():
    """The process catalog seeded with a shirt and a blazer."""
    from ordering.catalog import get_catalog

    catalog = get_catalog()
    catalog.add_product(
        "prod-shirt", "Linen Shirt", 500, inventory=50, sku="SH-001", size_label="M", color="White"
    )
    catalog.add_product("prod-blazer", "Wool Blazer", 1000, inventory=10, sku="BL-001")
    return catalog


@pytest.fixture()
def repo():
    from ordering.order.order import Order
    from protean import current_domain

    return current_domain.repository_for(Order)


@pytest.fixture()
def place(catalog, address):
    """Place the standard two-line order (2 x 500 + 1 x 1000, shipping 100)."""
    from ordering.order.creation import create_order

    def _place(customer_id="cust-001", items=None, **overrides):
        return create_order(
            customer_id=customer_id,
            items=items if items is not None else DEFAULT_ITEMS,
            shipping_address=overrides.pop("shipping_address", address),
            shipping_charge=overrides.pop("shipping_charge", 100.0),
            **overrides,
        )

    return _place


@pytest.fixture()
def move():
    """Walk an order through a sequence of statuses."""
    from ordering.order.order import TransitionContext
    from ordering.order.transition import transition

    contexts = {
        "shipped": TransitionContext(tracking_number="TRK-1001", courier="BlueDart"),
        "cancelled": TransitionContext(reason="Customer changed plans"),
    }

    def _move(order, *statuses):
        for status in statuses:
            order = transition(order.id, status, contexts.get(status))
        return order

    return _move
