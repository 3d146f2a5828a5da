"""Manual proof gateway for cash and bank-transfer payments.

There is no automatic callback: the customer uploads a proof against an
upload token and an admin approves or rejects it. ``confirm`` only accepts
an admin decision.
"""

from settlement.gateway.port import ActionKind, ClientAction, GatewayOutcome, PaymentGatewayAdapter


class ManualProofGateway(PaymentGatewayAdapter):
    name = "manual_proof"
    reference_prefix = "mp"
    requires_manual_verification = True

    def __init__(self, signing_secret: str) -> None:
        self.signing_secret = signing_secret

    def upload_token(self, external_reference: str) -> str:
        return self.sign(self.signing_secret, external_reference)[:32]

    def initiate(self, order, external_reference, expires_at=None) -> ClientAction:
        return ClientAction(
            kind=ActionKind.UPLOAD_PROOF,
            external_reference=external_reference,
            amount=order.total_amount,
            currency=order.pricing.currency,
            upload_token=self.upload_token(external_reference),
            expires_at=expires_at,
        )

    def confirm(self, external_reference, outcome) -> GatewayOutcome:
        verified_by = outcome.get("verified_by")
        if not verified_by:
            return GatewayOutcome(
                success=False,
                gateway_status="unverified",
                failure_reason="Manual payments must be verified by an admin",
            )
        if outcome.get("approved"):
            return GatewayOutcome(
                success=True,
                gateway_transaction_id=external_reference,
                gateway_status="verified",
                verified_by=str(verified_by),
            )
        return GatewayOutcome(
            success=False,
            gateway_status="rejected",
            failure_reason=outcome.get("note") or "Payment proof rejected",
            verified_by=str(verified_by),
        )

    def refund(self, external_reference, amount, reason) -> GatewayOutcome:
        # Disbursed offline by the admin who approved the refund
        return GatewayOutcome(success=True, gateway_transaction_id=f"{external_reference}_refund", amount=amount)

    def verify_webhook_signature(self, payload, signature) -> bool:
        return False
