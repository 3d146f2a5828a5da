"""Vendor-driven order transitions: commands and handler.

Every command carries the version the caller last read. A stale version is
rejected with ``ConcurrentModification`` and nothing is written.
"""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import logger, settlement
from settlement.order.order import Order


@settlement.command(part_of="Order")
class AcceptOrder:
    order_id = Identifier(required=True)
    expected_version = Integer(required=True, min_value=0)


@settlement.command(part_of="Order")
class RejectOrder:
    order_id = Identifier(required=True)
    expected_version = Integer(required=True, min_value=0)
    reason = String(required=True, max_length=500)


@settlement.command(part_of="Order")
class StartOrder:
    order_id = Identifier(required=True)
    expected_version = Integer(required=True, min_value=0)


@settlement.command(part_of="Order")
class CompleteOrder:
    order_id = Identifier(required=True)
    expected_version = Integer(required=True, min_value=0)


@settlement.command_handler(part_of=Order)
class OrderTransitionHandler:
    @handle(AcceptOrder)
    def accept_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.accept(command.expected_version)
        repo.add(order)
        logger.info("Order accepted", order_id=str(order.id), version=order.version)
        return order.version

    @handle(RejectOrder)
    def reject_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.reject(command.expected_version, command.reason)
        repo.add(order)
        logger.info("Order rejected", order_id=str(order.id), reason=command.reason)
        return order.version

    @handle(StartOrder)
    def start_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.start(command.expected_version)
        repo.add(order)
        return order.version

    @handle(CompleteOrder)
    def complete_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.complete(command.expected_version)
        repo.add(order)
        logger.info("Order completed", order_id=str(order.id), total_amount=order.total_amount)
        return order.version
