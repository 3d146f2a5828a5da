"""Refund workflow: commands, handler and the RefundWorkflow facade.

Customers request, admins approve or reject. Approval refunds through the
originating payment's gateway and posts the refund to the ledger; the
refundable balance is checked again at that point.
"""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from settlement.domain import logger, settlement
from settlement.gateway import get_gateway
from settlement.ledger.ledger import TransactionLedger
from settlement.order.order import Order, PaymentStatus
from settlement.refund.refund import Refund, RefundStatus
from settlement.shared.errors import BusinessRuleViolation, GatewayFailure
from settlement.shared.money import quantize, to_decimal
from settlement.shared.results import capture

_REFUNDABLE_PAYMENT_STATES = {PaymentStatus.PAID.value, PaymentStatus.PARTIALLY_REFUNDED.value}


@settlement.command(part_of="Refund")
class RequestRefund:
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String(required=True, max_length=1000)


@settlement.command(part_of="Refund")
class ApproveRefund:
    refund_id = Identifier(required=True)
    admin_id = Identifier(required=True)


@settlement.command(part_of="Refund")
class RejectRefund:
    refund_id = Identifier(required=True)
    admin_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@settlement.command_handler(part_of=Refund)
class RefundHandler:
    @handle(RequestRefund)
    def request_refund(self, command):
        order = current_domain.repository_for(Order).get(command.order_id)
        if str(order.customer_id) != str(command.customer_id):
            raise ValidationError({"customer_id": ["Only the customer who placed the order can request a refund"]})
        if order.payment_status not in _REFUNDABLE_PAYMENT_STATES:
            raise BusinessRuleViolation(
                {"order_id": [f"Order payment is {order.payment_status}; nothing to refund"]},
                code="not_refundable",
            )
        if to_decimal(command.amount) <= 0:
            raise ValidationError({"amount": ["Refund amount must be positive"]})
        if quantize(command.amount) > quantize(order.total_amount):
            raise ValidationError({"amount": ["Refund amount cannot exceed the order total"]})

        refund = Refund.request(order, command.customer_id, command.amount, command.reason)
        current_domain.repository_for(Refund).add(refund)
        logger.info("Refund requested", refund_id=str(refund.id), order_id=str(order.id), amount=refund.amount)
        return str(refund.id)

    @handle(ApproveRefund)
    def approve_refund(self, command):
        refund_repo = current_domain.repository_for(Refund)
        refund = refund_repo.get(command.refund_id)
        refund.approve(command.admin_id)

        ledger = TransactionLedger()
        order = current_domain.repository_for(Order).get(refund.order_id)
        ledger.check_refund(order, refund.amount)

        payment = ledger.get_transaction(order.payment_transaction_id)
        verdict = get_gateway(payment.payment_method).refund(
            payment.gateway_transaction_id or payment.external_reference,
            refund.amount,
            refund.reason,
        )
        if not verdict.success:
            raise GatewayFailure(payment.payment_method, verdict.failure_reason or "Refund declined")

        refund_txn = ledger.post_refund(
            order,
            refund.amount,
            refund_id=refund.id,
            external_reference=verdict.gateway_transaction_id,
        )
        refund.mark_processed(refund_txn.id)
        refund_repo.add(refund)

        logger.info(
            "Refund processed",
            refund_id=str(refund.id),
            order_id=str(order.id),
            amount=refund.amount,
            payment_status=order.payment_status,
        )
        return str(refund_txn.id)

    @handle(RejectRefund)
    def reject_refund(self, command):
        repo = current_domain.repository_for(Refund)
        refund = repo.get(command.refund_id)
        refund.reject(command.admin_id, command.reason)
        repo.add(refund)
        logger.info("Refund rejected", refund_id=str(refund.id), reason=command.reason)
        return str(refund.id)


class RefundWorkflow:
    def request(self, order_id, customer_id, amount, reason):
        return self._run(
            lambda: RequestRefund(order_id=order_id, customer_id=customer_id, amount=amount, reason=reason)
        )

    def approve(self, refund_id, admin_id):
        return self._run(lambda: ApproveRefund(refund_id=refund_id, admin_id=admin_id), refund_id)

    def reject(self, refund_id, admin_id, reason):
        return self._run(lambda: RejectRefund(refund_id=refund_id, admin_id=admin_id, reason=reason), refund_id)

    def refunds_for_order(self, order_id) -> list[Refund]:
        return current_domain.repository_for(Refund)._dao.query.filter(order_id=str(order_id)).all().items

    def pending(self) -> list[Refund]:
        return (
            current_domain.repository_for(Refund)._dao.query.filter(status=RefundStatus.REQUESTED.value).all().items
        )

    @staticmethod
    def _run(build_command, refund_id=None):
        def run():
            result = current_domain.process(build_command(), asynchronous=False)
            return current_domain.repository_for(Refund).get(refund_id or result)

        return capture(run)
