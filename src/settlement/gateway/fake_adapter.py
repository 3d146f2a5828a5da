"""Configurable fake payment gateway for development and testing.

Simulates a card-style gateway without external calls. Tests configure it
to succeed, fail, or raise a transport error and inspect ``calls``.
"""

from uuid import uuid4

from settlement.gateway.port import ActionKind, ClientAction, GatewayOutcome, PaymentGatewayAdapter
from settlement.shared.errors import GatewayFailure


class FakeGateway(PaymentGatewayAdapter):
    """Configurable fake payment gateway."""

    name = "fake"
    reference_prefix = "fake"

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.unavailable: bool = False
        self.captured_amount: float | None = None
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Card declined",
        unavailable: bool = False,
        captured_amount: float | None = None,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.unavailable = unavailable
        self.captured_amount = captured_amount

    def _check_available(self, operation: str) -> None:
        if self.unavailable:
            raise GatewayFailure(self.name, f"{operation} timed out")

    def initiate(self, order, external_reference, expires_at=None) -> ClientAction:
        self.calls.append({"method": "initiate", "order_id": str(order.id), "external_reference": external_reference})
        self._check_available("initiate")
        return ClientAction(
            kind=ActionKind.CLIENT_SECRET,
            external_reference=external_reference,
            amount=order.total_amount,
            currency=order.pricing.currency,
            client_secret=f"{external_reference}_secret_test",
            expires_at=expires_at,
        )

    def confirm(self, external_reference, outcome) -> GatewayOutcome:
        self.calls.append({"method": "confirm", "external_reference": external_reference, "outcome": outcome})
        self._check_available("confirm")
        if self.should_succeed:
            return GatewayOutcome(
                success=True,
                gateway_transaction_id=f"fake_txn_{uuid4().hex[:12]}",
                gateway_status="succeeded",
                amount=self.captured_amount,
            )
        return GatewayOutcome(success=False, gateway_status="failed", failure_reason=self.failure_reason)

    def refund(self, external_reference, amount, reason) -> GatewayOutcome:
        self.calls.append({"method": "refund", "external_reference": external_reference, "amount": amount})
        self._check_available("refund")
        if self.should_succeed:
            return GatewayOutcome(
                success=True,
                gateway_transaction_id=f"fake_ref_{uuid4().hex[:12]}",
                gateway_status="refunded",
                amount=amount,
            )
        return GatewayOutcome(success=False, gateway_status="failed", failure_reason=self.failure_reason)

    def verify_webhook_signature(self, payload, signature) -> bool:
        return signature == "test-signature"
