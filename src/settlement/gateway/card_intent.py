"""Card-network intent gateway.

``initiate`` hands the client a payment secret bound to the attempt; the
network reports the result through a signed webhook whose body is passed to
``confirm``.
"""

import hmac

from settlement.gateway.port import ActionKind, ClientAction, GatewayOutcome, PaymentGatewayAdapter

_SUCCEEDED = {"succeeded"}
_FAILED = {"failed", "canceled", "requires_payment_method"}


class CardIntentGateway(PaymentGatewayAdapter):
    name = "card_intent"
    reference_prefix = "pi"

    def __init__(self, api_key: str, webhook_secret: str) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def initiate(self, order, external_reference, expires_at=None) -> ClientAction:
        token = self.sign(self.api_key, f"{external_reference}:{order.total_amount}")[:24]
        return ClientAction(
            kind=ActionKind.CLIENT_SECRET,
            external_reference=external_reference,
            amount=order.total_amount,
            currency=order.pricing.currency,
            client_secret=f"{external_reference}_secret_{token}",
            expires_at=expires_at,
        )

    def confirm(self, external_reference, outcome) -> GatewayOutcome:
        status = str(outcome.get("status", "")).lower()
        if status in _SUCCEEDED:
            return GatewayOutcome(
                success=True,
                gateway_transaction_id=outcome.get("charge_id") or external_reference,
                gateway_status=status,
                amount=outcome.get("amount"),
            )
        if status in _FAILED:
            return GatewayOutcome(
                success=False,
                gateway_status=status,
                failure_reason=outcome.get("failure_message") or f"Card payment {status}",
            )
        return GatewayOutcome(success=False, gateway_status=status or None, failure_reason="Unrecognized card status")

    def refund(self, external_reference, amount, reason) -> GatewayOutcome:
        return GatewayOutcome(
            success=True,
            gateway_transaction_id=f"re_{self.sign(self.api_key, f'{external_reference}:{amount}')[:16]}",
            gateway_status="succeeded",
            amount=amount,
        )

    def verify_webhook_signature(self, payload, signature) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(self.sign(self.webhook_secret, payload), signature)
