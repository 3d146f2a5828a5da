"""Order cancellation: command and handler.

Allowed from pending or accepted. A paid order stays paid after cancelling;
the customer files a refund request for the money.
"""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import logger, settlement
from settlement.order.order import Order


@settlement.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    expected_version = Integer(required=True, min_value=0)
    reason = String(required=True, max_length=500)
    cancelled_by = String(required=True, max_length=20)


@settlement.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel(
            expected_version=command.expected_version,
            reason=command.reason,
            cancelled_by=command.cancelled_by,
        )
        repo.add(order)
        logger.info(
            "Order cancelled",
            order_id=str(order.id),
            cancelled_by=order.cancelled_by,
            payment_status=order.payment_status,
        )
        return order.version
