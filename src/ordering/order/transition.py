"""Status transitions — the single entry point every caller goes through.

Admin screens, the customer cancel button and background jobs all move
orders by issuing ``TransitionOrder``. The handler reads the order, checks
the caller's view of it is still current, applies the transition on the
aggregate and saves with a compare-and-set on ``version``.
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.errors import StaleState
from ordering.order.order import CancellationActor, Order, OrderStatus, TransitionContext, parse_status
from ordering.settings import get_settings

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class TransitionOrder:
    order_id = Identifier(required=True)
    target_status = String(required=True, max_length=20)
    reason = String(max_length=500)
    cancelled_by = String(max_length=20, default=CancellationActor.ADMIN.value)
    tracking_number = String(max_length=255)
    courier = String(max_length=100)
    expected_delivery = String(max_length=10)
    admin_note = String(max_length=1000)
    expected_status = String(max_length=20)
    expected_version = Integer()


def _check_not_stale(order, context):
    if context.expected_status and parse_status(context.expected_status) != OrderStatus(order.status):
        raise StaleState(
            f"Order {order.order_number} is now {order.status}, not {context.expected_status}; reload and retry",
            order_id=str(order.id),
            expected_status=context.expected_status,
            stored_status=order.status,
            stored_version=order.version,
        )
    if context.expected_version is not None and context.expected_version != order.version:
        raise StaleState(
            f"Order {order.order_number} is at version {order.version}, not {context.expected_version}; "
            "reload and retry",
            order_id=str(order.id),
            expected_version=context.expected_version,
            stored_version=order.version,
            stored_status=order.status,
        )


@ordering.command_handler(part_of=Order)
class TransitionOrderHandler:
    @handle(TransitionOrder)
    def transition_order(self, command):
        context = TransitionContext(
            reason=command.reason,
            cancelled_by=command.cancelled_by or CancellationActor.ADMIN.value,
            tracking_number=command.tracking_number,
            courier=command.courier,
            expected_delivery=command.expected_delivery,
            admin_note=command.admin_note,
            expected_status=command.expected_status,
            expected_version=command.expected_version,
        )
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        target = parse_status(command.target_status)

        # A retried request that already took effect succeeds without writing
        if OrderStatus(order.status) == target:
            logger.info(
                "Order already in requested status",
                order_id=str(order.id),
                order_number=order.order_number,
                status=order.status,
            )
            return str(order.id)

        _check_not_stale(order, context)

        version_read = order.version
        from_status = order.status
        order.transition_to(target, context, require_tracking=get_settings().require_tracking_on_ship)
        repo.save_order(order, version_read)

        logger.info(
            "Order status changed",
            order_id=str(order.id),
            order_number=order.order_number,
            from_status=from_status,
            to_status=order.status,
            payment_status=order.payment_status,
            version=order.version,
        )
        return str(order.id)


def transition(order_id, target_status, context: TransitionContext | None = None) -> Order:
    """Move an order to ``target_status`` and return it as stored."""
    context = context or TransitionContext()
    current_domain.process(
        TransitionOrder(
            order_id=order_id,
            target_status=str(target_status.value if isinstance(target_status, OrderStatus) else target_status),
            reason=context.reason,
            cancelled_by=context.cancelled_by,
            tracking_number=context.tracking_number,
            courier=context.courier,
            expected_delivery=context.expected_delivery,
            admin_note=context.admin_note,
            expected_status=context.expected_status,
            expected_version=context.expected_version,
        ),
        asynchronous=False,
    )
    return current_domain.repository_for(Order).get_order(order_id)
