"""Payment gateway port (abstract interface).

Every payment path (card intent, hosted redirect, manual proof) implements
the same capability set so the capture flow never branches on the method.
"""

import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import uuid4


class PaymentMethod(Enum):
    CARD = "card"
    HOSTED_CHECKOUT = "hosted_checkout"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"


class ActionKind(Enum):
    CLIENT_SECRET = "client_secret"
    REDIRECT = "redirect"
    UPLOAD_PROOF = "upload_proof"


@dataclass(frozen=True)
class ClientAction:
    """What the payment UI must do next to complete the attempt."""

    kind: ActionKind
    external_reference: str
    amount: float
    currency: str
    redirect_url: str | None = None
    client_secret: str | None = None
    upload_token: str | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class GatewayOutcome:
    """A gateway's verdict on a confirmation or refund."""

    success: bool
    gateway_transaction_id: str | None = None
    gateway_status: str | None = None
    amount: float | None = None
    failure_reason: str | None = None
    verified_by: str | None = None


class PaymentGatewayAdapter(ABC):
    """Abstract payment gateway interface."""

    name: str = "gateway"
    reference_prefix: str = "pay"
    requires_manual_verification: bool = False

    def new_reference(self) -> str:
        """A fresh idempotency key for one payment attempt."""
        return f"{self.reference_prefix}_{uuid4().hex}"

    @staticmethod
    def sign(secret: str, payload: str) -> str:
        return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()

    @abstractmethod
    def initiate(self, order, external_reference: str, expires_at: datetime | None = None) -> ClientAction:
        """Open the attempt on the gateway side and tell the client what to do."""
        ...

    @abstractmethod
    def confirm(self, external_reference: str, outcome: dict) -> GatewayOutcome:
        """Interpret a callback, webhook or admin decision for the attempt."""
        ...

    @abstractmethod
    def refund(self, external_reference: str, amount: float, reason: str) -> GatewayOutcome:
        """Return money for a previously confirmed attempt."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
