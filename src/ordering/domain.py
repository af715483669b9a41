"""Ordering bounded context — order lifecycle for the catalog back-office.

Owns the Order aggregate, its status/payment state machine, order placement
against the catalog, and on-demand reporting over persisted orders.
"""

from protean.domain import Domain

from ordering.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

ordering = Domain(name="ordering")
