"""Payout aggregate (CQRS): a vendor's withdrawal of earned balance.

State Machine:
    PENDING → APPROVED → PAID
    PENDING → REJECTED

The ledger row is written on approval; ``PAID`` records that the money has
actually left the platform.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text, ValueObject

from settlement.domain import settlement
from settlement.payout.events import PayoutApproved, PayoutPaid, PayoutRejected, PayoutRequested
from settlement.shared.errors import BusinessRuleViolation


class PayoutStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class PayoutMethod(Enum):
    BANK_TRANSFER = "bank_transfer"
    MOBILE_BANKING = "mobile_banking"
    PAYPAL = "paypal"
    CARD_NETWORK = "card_network"


_VALID_TRANSITIONS = {
    PayoutStatus.PENDING: {PayoutStatus.APPROVED, PayoutStatus.REJECTED},
    PayoutStatus.APPROVED: {PayoutStatus.PAID},
    PayoutStatus.REJECTED: set(),  # Terminal
    PayoutStatus.PAID: set(),  # Terminal
}


@settlement.value_object(part_of="Payout")
class PayoutDestination:
    """Where the vendor wants the money sent."""

    method = String(choices=PayoutMethod, required=True)
    account_name = String(max_length=255)
    account_number = String(max_length=50)
    bank_name = String(max_length=255)
    routing_number = String(max_length=50)
    mobile_provider = String(max_length=50)
    mobile_number = String(max_length=20)
    email = String(max_length=255)

    @invariant.post
    def destination_must_be_reachable(self):
        method = PayoutMethod(self.method)
        if method == PayoutMethod.BANK_TRANSFER and not (self.account_number and self.bank_name):
            raise ValidationError({"account_number": ["Bank transfers need an account number and bank name"]})
        if method == PayoutMethod.MOBILE_BANKING and not (self.mobile_provider and self.mobile_number):
            raise ValidationError({"mobile_number": ["Mobile banking needs a provider and number"]})
        if method == PayoutMethod.PAYPAL and not self.email:
            raise ValidationError({"email": ["PayPal payouts need an email"]})


@settlement.aggregate
class Payout:
    vendor_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.01)
    currency = String(max_length=3, default="USD")
    destination = ValueObject(PayoutDestination)
    status = String(choices=PayoutStatus, default=PayoutStatus.PENDING.value)
    notes = Text()
    decided_by = Identifier()
    decided_at = DateTime()
    rejection_reason = String(max_length=500)
    transaction_id = Identifier()
    payout_reference = String(max_length=255)
    requested_at = DateTime()
    paid_at = DateTime()

    @invariant.post
    def approved_payout_must_reference_transaction(self):
        if self.status in (PayoutStatus.APPROVED.value, PayoutStatus.PAID.value) and not self.transaction_id:
            raise ValidationError({"transaction_id": ["An approved payout must reference its ledger transaction"]})

    @invariant.post
    def rejected_payout_must_have_reason(self):
        if self.status == PayoutStatus.REJECTED.value and not self.rejection_reason:
            raise ValidationError({"rejection_reason": ["A rejected payout must record a reason"]})

    @classmethod
    def request(cls, vendor_id, amount, destination: dict, currency="USD", notes=None):
        now = datetime.now(UTC)
        payout = cls(
            vendor_id=vendor_id,
            amount=amount,
            currency=currency,
            destination=PayoutDestination(**destination),
            status=PayoutStatus.PENDING.value,
            notes=notes,
            requested_at=now,
        )
        payout.raise_(
            PayoutRequested(
                payout_id=str(payout.id),
                vendor_id=str(vendor_id),
                amount=payout.amount,
                method=payout.destination.method,
                requested_at=now,
            )
        )
        return payout

    def _assert_can_transition(self, target_status):
        current = PayoutStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise BusinessRuleViolation(
                {"status": [f"Cannot transition payout from {current.value} to {target_status.value}"]},
                code="invalid_transition",
            )

    def approve(self, admin_id, transaction_id):
        self._assert_can_transition(PayoutStatus.APPROVED)

        now = datetime.now(UTC)
        self.transaction_id = transaction_id
        self.decided_by = admin_id
        self.decided_at = now
        self.status = PayoutStatus.APPROVED.value
        self.raise_(
            PayoutApproved(
                payout_id=str(self.id),
                vendor_id=str(self.vendor_id),
                amount=self.amount,
                transaction_id=str(transaction_id),
                approved_by=str(admin_id),
                approved_at=now,
            )
        )

    def reject(self, reason, admin_id=None):
        self._assert_can_transition(PayoutStatus.REJECTED)
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A rejection reason is required"]})

        now = datetime.now(UTC)
        self.rejection_reason = reason
        self.decided_by = admin_id
        self.decided_at = now
        self.status = PayoutStatus.REJECTED.value
        self.raise_(
            PayoutRejected(payout_id=str(self.id), vendor_id=str(self.vendor_id), reason=reason, rejected_at=now)
        )

    def mark_paid(self, payout_reference):
        self._assert_can_transition(PayoutStatus.PAID)
        if not payout_reference:
            raise ValidationError({"payout_reference": ["A payout reference is required"]})

        now = datetime.now(UTC)
        self.payout_reference = payout_reference
        self.paid_at = now
        self.status = PayoutStatus.PAID.value
        self.raise_(
            PayoutPaid(
                payout_id=str(self.id),
                vendor_id=str(self.vendor_id),
                amount=self.amount,
                payout_reference=payout_reference,
                paid_at=now,
            )
        )
