"""Manual (cash / bank transfer) payments: proof submission and admin verification."""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from settlement.domain import logger, settlement
from settlement.gateway import get_gateway
from settlement.ledger.ledger import TransactionLedger
from settlement.ledger.transaction import Transaction
from settlement.payment.confirmation import settle_attempt
from settlement.payment.results import TransactionResult
from settlement.shared.errors import BusinessRuleViolation


@settlement.command(part_of="Transaction")
class SubmitPaymentProof:
    external_reference = String(required=True, max_length=255)
    proof_reference = String(required=True, max_length=500)
    upload_token = String(max_length=64)


@settlement.command(part_of="Transaction")
class VerifyManualPayment:
    external_reference = String(required=True, max_length=255)
    admin_id = Identifier(required=True)
    approved = Boolean(required=True)
    note = String(max_length=500)


@settlement.command_handler(part_of=Transaction)
class ManualPaymentHandler:
    @handle(SubmitPaymentProof)
    def submit_payment_proof(self, command):
        attempt = TransactionLedger().by_external_reference(command.external_reference)
        if attempt is None:
            raise ObjectNotFoundError(f"No payment attempt with reference {command.external_reference}")

        gateway = get_gateway(attempt.payment_method)
        if not gateway.requires_manual_verification:
            raise BusinessRuleViolation(
                {"payment_method": [f"{attempt.payment_method} payments do not accept uploaded proof"]},
                code="proof_not_supported",
            )
        if command.upload_token and command.upload_token != gateway.upload_token(attempt.external_reference):
            raise BusinessRuleViolation({"upload_token": ["Upload token does not match"]}, code="invalid_token")

        attempt.attach_proof(command.proof_reference)
        current_domain.repository_for(Transaction).add(attempt)
        logger.info("Payment proof submitted", transaction_id=str(attempt.id), order_id=str(attempt.order_id))
        return TransactionResult.of(attempt)

    @handle(VerifyManualPayment)
    def verify_manual_payment(self, command):
        result = settle_attempt(
            command.external_reference,
            {"verified_by": str(command.admin_id), "approved": command.approved, "note": command.note},
        )
        logger.info(
            "Manual payment verified",
            external_reference=command.external_reference,
            admin_id=str(command.admin_id),
            approved=command.approved,
            status=result.status,
        )
        return result
