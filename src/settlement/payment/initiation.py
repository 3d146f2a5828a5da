"""Payment initiation: command and handler.

Opens an ``initiated`` payment transaction with a fresh external reference
and asks the method's gateway what the client must do next.
"""

from datetime import UTC, datetime, timedelta

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from settlement.config import get_settings
from settlement.domain import logger, settlement
from settlement.gateway import get_gateway, resolve_method
from settlement.ledger.ledger import TransactionLedger
from settlement.ledger.transaction import Transaction
from settlement.order.order import Order
from settlement.payment.results import PaymentInitiation, TransactionResult
from settlement.shared.errors import BusinessRuleViolation, GatewayFailure


@settlement.command(part_of="Transaction")
class InitiatePayment:
    order_id = Identifier(required=True)
    payment_method = String(required=True, max_length=50)


@settlement.command_handler(part_of=Transaction)
class InitiatePaymentHandler:
    @handle(InitiatePayment)
    def initiate_payment(self, command):
        method = resolve_method(command.payment_method)
        order = current_domain.repository_for(Order).get(command.order_id)
        if not order.is_payable():
            raise BusinessRuleViolation(
                {"order_id": [f"Order {order.id} is not awaiting payment ({order.status}, {order.payment_status})"]},
                code="not_payable",
            )
        if not TransactionLedger().coupon_redeemable(order):
            raise BusinessRuleViolation(
                {"coupon_code": [f"Coupon {order.coupon_code} can no longer be redeemed"]},
                code="usage_limit_reached",
            )

        gateway = get_gateway(method)
        reference = gateway.new_reference()
        expires_at = datetime.now(UTC) + timedelta(minutes=get_settings().payment_expiry_minutes)
        attempt = Transaction.initiate_payment(order, method.value, reference, expires_at=expires_at)

        repo = current_domain.repository_for(Transaction)
        try:
            action = gateway.initiate(order, reference, expires_at=expires_at)
        except GatewayFailure as exc:
            attempt.fail(exc.reason)
            repo.add(attempt)
            logger.warning(
                "Payment initiation failed",
                order_id=str(order.id),
                payment_method=method.value,
                reason=exc.reason,
            )
            return PaymentInitiation(transaction=TransactionResult.of(attempt))

        repo.add(attempt)
        logger.info(
            "Payment initiated",
            order_id=str(order.id),
            transaction_id=str(attempt.id),
            payment_method=method.value,
            amount=attempt.amount,
        )
        return PaymentInitiation(transaction=TransactionResult.of(attempt), action=action)
