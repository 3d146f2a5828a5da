"""Payment confirmation: command and handler.

Callbacks and webhooks may arrive late and more than once. The external
reference is the idempotency key: once an attempt is terminal, every
further confirmation replays its result without touching the ledger.
"""

import json

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import String, Text
from protean.utils.globals import current_domain

from settlement.domain import logger, settlement
from settlement.gateway import get_gateway
from settlement.gateway.port import GatewayOutcome
from settlement.ledger.ledger import TransactionLedger
from settlement.ledger.transaction import Transaction
from settlement.order.order import Order
from settlement.payment.results import TransactionResult
from settlement.shared.errors import BusinessRuleViolation, GatewayFailure
from settlement.shared.money import quantize


@settlement.command(part_of="Transaction")
class ConfirmPayment:
    external_reference = String(required=True, max_length=255)
    outcome = Text()  # JSON: gateway callback payload


def _fail(attempt: Transaction, reason: str, verified_by=None) -> TransactionResult:
    attempt.fail(reason, verified_by=verified_by)
    current_domain.repository_for(Transaction).add(attempt)
    logger.warning(
        "Payment failed",
        transaction_id=str(attempt.id),
        order_id=str(attempt.order_id),
        external_reference=attempt.external_reference,
        reason=reason,
    )
    return TransactionResult.of(attempt)


def settle_attempt(external_reference: str, outcome: dict) -> TransactionResult:
    """Apply a gateway verdict to an open attempt. Shared by callbacks and admin verification."""
    ledger = TransactionLedger()
    attempt = ledger.by_external_reference(external_reference)
    if attempt is None:
        raise ObjectNotFoundError(f"No payment attempt with reference {external_reference}")

    if attempt.is_terminal:
        logger.info("Duplicate payment confirmation", external_reference=external_reference, status=attempt.status)
        return TransactionResult.of(attempt, replayed=True)

    gateway = get_gateway(attempt.payment_method)
    if gateway.requires_manual_verification:
        if not outcome.get("verified_by"):
            raise BusinessRuleViolation(
                {"external_reference": ["Manual payments are confirmed by an admin after proof review"]},
                code="manual_verification_required",
            )
        if outcome.get("approved") and not attempt.proof_reference:
            raise BusinessRuleViolation(
                {"external_reference": ["No payment proof has been submitted for this attempt"]},
                code="proof_missing",
            )

    try:
        verdict: GatewayOutcome = gateway.confirm(external_reference, outcome)
    except GatewayFailure as exc:
        return _fail(attempt, exc.reason)

    if not verdict.success:
        return _fail(attempt, verdict.failure_reason or "Payment declined", verified_by=verdict.verified_by)

    if verdict.amount is not None and quantize(verdict.amount) != quantize(attempt.amount):
        return _fail(attempt, f"Captured amount {quantize(verdict.amount)} does not match {quantize(attempt.amount)}")

    order = current_domain.repository_for(Order).get(attempt.order_id)
    if quantize(attempt.amount) != quantize(order.total_amount):
        # The order was re-priced after this attempt opened; the capture needs a manual reversal
        logger.error(
            "Payment captured for a stale order total",
            order_id=str(order.id),
            transaction_id=str(attempt.id),
            attempt_amount=attempt.amount,
            order_total=order.total_amount,
        )
        return _fail(
            attempt,
            f"Attempt amount {quantize(attempt.amount)} does not match the order total {quantize(order.total_amount)}",
        )

    if not order.can_record_payment():
        # Captured twice; the second capture needs a manual reversal
        logger.error(
            "Payment captured for an already paid order",
            order_id=str(order.id),
            transaction_id=str(attempt.id),
            paid_by=str(order.payment_transaction_id),
        )
        return _fail(attempt, f"Order already paid by transaction {order.payment_transaction_id}")

    if not ledger.coupon_redeemable(order):
        logger.error("Coupon exhausted before payment posted", order_id=str(order.id), coupon_code=order.coupon_code)
        return _fail(attempt, f"Coupon {order.coupon_code} reached its usage limit")

    ledger.post_payment(
        order,
        attempt,
        gateway_transaction_id=verdict.gateway_transaction_id,
        verified_by=verdict.verified_by,
    )
    return TransactionResult.of(attempt)


@settlement.command_handler(part_of=Transaction)
class ConfirmPaymentHandler:
    @handle(ConfirmPayment)
    def confirm_payment(self, command):
        outcome = json.loads(command.outcome) if command.outcome else {}
        return settle_attempt(command.external_reference, outcome)
