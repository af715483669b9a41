"""BDD tests for order statistics."""

from ordering.reporting.rollup import order_stats
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/order_statistics.feature")


@given("no orders were placed")
def _():
    pass


@when("the statistics are rolled up", target_fixture="stats")
def _():
    return order_stats(period="all").to_dict()


@then(parsers.cfparse("the {figure} figure is {value:d}"))
def _(stats, figure, value):
    assert stats[figure] == value
