"""PaymentCapture: result-returning facade over the payment commands."""

import json

from protean.utils.globals import current_domain

from settlement.domain import logger
from settlement.ledger.ledger import TransactionLedger
from settlement.payment.confirmation import ConfirmPayment
from settlement.payment.initiation import InitiatePayment
from settlement.payment.manual import SubmitPaymentProof, VerifyManualPayment
from settlement.payment.results import TransactionResult
from settlement.shared.results import Err, ErrorKind, capture


def _failed(result: TransactionResult) -> Err:
    return Err(
        ErrorKind.GATEWAY_FAILURE,
        result.failure_reason or "Payment failed",
        {"transaction_id": result.transaction_id, "external_reference": result.external_reference},
        "payment_failed",
    )


class PaymentCapture:
    def initiate(self, order_id, method):
        """``Ok(PaymentInitiation)`` carrying the client action, or an ``Err``."""
        result = capture(
            lambda: current_domain.process(InitiatePayment(order_id=order_id, payment_method=method), asynchronous=False)
        )
        if result.is_ok and result.value.action is None:
            return _failed(result.value.transaction)
        return result

    def confirm(self, external_reference, outcome: dict | None = None):
        """Idempotent. ``Ok(TransactionResult)`` for completed or replayed attempts."""

        def run():
            command = ConfirmPayment(external_reference=external_reference, outcome=json.dumps(outcome or {}))
            return current_domain.process(command, asynchronous=False)

        result = capture(run)
        if not result.is_ok and result.kind == ErrorKind.CONCURRENT_MODIFICATION:
            # A concurrent delivery won; the retry resolves to a replay
            logger.info("Retrying payment confirmation after conflict", external_reference=external_reference)
            result = capture(run)
        return self._as_result(result)

    def submit_proof(self, external_reference, proof_reference, upload_token=None):
        return capture(
            lambda: current_domain.process(
                SubmitPaymentProof(
                    external_reference=external_reference,
                    proof_reference=proof_reference,
                    upload_token=upload_token,
                ),
                asynchronous=False,
            )
        )

    def verify_manual_payment(self, external_reference, admin_id, approved: bool, note=None):
        result = capture(
            lambda: current_domain.process(
                VerifyManualPayment(
                    external_reference=external_reference,
                    admin_id=admin_id,
                    approved=approved,
                    note=note,
                ),
                asynchronous=False,
            )
        )
        if result.is_ok and not approved:
            return result
        return self._as_result(result)

    def pending_verifications(self) -> list[TransactionResult]:
        return [TransactionResult.of(txn) for txn in TransactionLedger().pending_manual_verifications()]

    @staticmethod
    def _as_result(result):
        if result.is_ok and result.value.status == "failed":
            return _failed(result.value)
        return result
