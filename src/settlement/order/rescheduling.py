"""Order rescheduling: command and handler."""

from protean import handle
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement
from settlement.order.order import Order


@settlement.command(part_of="Order")
class RescheduleOrder:
    order_id = Identifier(required=True)
    expected_version = Integer(required=True, min_value=0)
    scheduled_at = DateTime(required=True)
    scheduled_slot = String(max_length=50)
    rescheduled_by = String(required=True, max_length=20)
    reason = String(max_length=500)


@settlement.command_handler(part_of=Order)
class RescheduleOrderHandler:
    @handle(RescheduleOrder)
    def reschedule_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.reschedule(
            expected_version=command.expected_version,
            scheduled_at=command.scheduled_at,
            rescheduled_by=command.rescheduled_by,
            scheduled_slot=command.scheduled_slot,
            reason=command.reason,
        )
        repo.add(order)
        return order.version
