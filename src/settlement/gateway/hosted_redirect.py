"""Hosted-checkout redirect gateway.

The customer is sent to a signed checkout URL. The hosted page posts back an
IPN/success callback carrying ``status`` (``VALID`` / ``FAILED`` /
``CANCELLED``), ``val_id`` and the captured ``amount``.
"""

import hmac
from urllib.parse import urlencode

from settlement.gateway.port import ActionKind, ClientAction, GatewayOutcome, PaymentGatewayAdapter

_VALID_STATUSES = {"VALID", "VALIDATED"}


class HostedRedirectGateway(PaymentGatewayAdapter):
    name = "hosted_redirect"
    reference_prefix = "hc"

    def __init__(self, base_url: str, store_id: str, store_secret: str) -> None:
        self.base_url = base_url.rstrip("/")
        self.store_id = store_id
        self.store_secret = store_secret

    def initiate(self, order, external_reference, expires_at=None) -> ClientAction:
        params = {
            "store_id": self.store_id,
            "tran_id": external_reference,
            "amount": f"{order.total_amount:.2f}",
            "currency": order.pricing.currency,
        }
        params["signature"] = self.sign(self.store_secret, urlencode(params))
        return ClientAction(
            kind=ActionKind.REDIRECT,
            external_reference=external_reference,
            amount=order.total_amount,
            currency=order.pricing.currency,
            redirect_url=f"{self.base_url}?{urlencode(params)}",
            expires_at=expires_at,
        )

    def confirm(self, external_reference, outcome) -> GatewayOutcome:
        status = str(outcome.get("status", "")).upper()
        if outcome.get("tran_id") and outcome["tran_id"] != external_reference:
            return GatewayOutcome(success=False, gateway_status=status, failure_reason="Callback reference mismatch")
        if status in _VALID_STATUSES:
            return GatewayOutcome(
                success=True,
                gateway_transaction_id=outcome.get("val_id"),
                gateway_status=status,
                amount=float(outcome["amount"]) if outcome.get("amount") is not None else None,
            )
        return GatewayOutcome(
            success=False,
            gateway_status=status or None,
            failure_reason=outcome.get("error") or f"Hosted checkout {status.lower() or 'unknown'}",
        )

    def refund(self, external_reference, amount, reason) -> GatewayOutcome:
        return GatewayOutcome(
            success=True,
            gateway_transaction_id=f"rf_{self.sign(self.store_secret, f'{external_reference}:{amount}')[:16]}",
            gateway_status="REFUNDED",
            amount=amount,
        )

    def verify_webhook_signature(self, payload, signature) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(self.sign(self.store_secret, payload), signature)
