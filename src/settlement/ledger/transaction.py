"""Transaction aggregate (CQRS): one row of the append-only money ledger.

Payment rows are opened as ``initiated`` attempts and settle exactly once
into ``completed`` or ``failed``. Refund and payout rows are written already
completed. A terminal row is never edited; corrections are new rows.

For every completed row ``commission_amount + vendor_amount == amount``.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String

from settlement.domain import settlement
from settlement.ledger.events import (
    PaymentCompleted,
    PaymentFailed,
    PaymentInitiated,
    PaymentProofSubmitted,
    PayoutPosted,
    RefundPosted,
)
from settlement.shared.errors import BusinessRuleViolation
from settlement.shared.money import ZERO, percent_of, quantize, to_decimal, to_float


class TransactionType(Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    PAYOUT = "payout"


class TransactionStatus(Enum):
    INITIATED = "initiated"
    COMPLETED = "completed"
    FAILED = "failed"


_VALID_TRANSITIONS = {
    TransactionStatus.INITIATED: {TransactionStatus.COMPLETED, TransactionStatus.FAILED},
    TransactionStatus.COMPLETED: set(),  # Terminal
    TransactionStatus.FAILED: set(),  # Terminal
}


def split_commission(amount, commission_percent):
    """Return ``(commission_amount, vendor_amount)`` as Decimals summing to ``amount``."""
    amount = quantize(amount)
    commission = percent_of(amount, commission_percent)
    return commission, amount - commission


def refund_split(amount, originating, refunded_commission=ZERO, refunded_vendor=ZERO):
    """Return ``(commission_amount, vendor_amount)`` to give back for a refund.

    Shares follow the originating payment's rate but never exceed what is
    left of that payment's commission and vendor amounts. The refund that
    clears the payment takes exactly the remaining shares.
    """
    amount = quantize(amount)
    commission_left = quantize(originating.commission_amount) - quantize(refunded_commission)
    vendor_left = quantize(originating.vendor_amount) - quantize(refunded_vendor)
    if amount == commission_left + vendor_left:
        return commission_left, vendor_left

    commission, vendor_share = split_commission(amount, originating.commission_percent)
    if commission > commission_left:
        commission, vendor_share = commission_left, amount - commission_left
    if vendor_share > vendor_left:
        commission, vendor_share = amount - vendor_left, vendor_left
    return commission, vendor_share


@settlement.aggregate
class Transaction:
    order_id = Identifier()  # Empty for payouts
    customer_id = Identifier()
    vendor_id = Identifier(required=True)
    transaction_type = String(choices=TransactionType, required=True)
    status = String(choices=TransactionStatus, default=TransactionStatus.INITIATED.value)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    commission_percent = Float(default=0.0)
    commission_amount = Float(default=0.0)
    vendor_amount = Float(default=0.0)
    payment_method = String(max_length=50)
    external_reference = String(max_length=255)
    gateway_transaction_id = String(max_length=255)
    originating_transaction_id = Identifier()
    refund_id = Identifier()
    payout_id = Identifier()
    proof_reference = String(max_length=500)
    proof_submitted_at = DateTime()
    verified_by = Identifier()
    failure_reason = String(max_length=500)
    expires_at = DateTime()
    created_at = DateTime()
    completed_at = DateTime()
    failed_at = DateTime()

    @invariant.post
    def completed_split_must_balance(self):
        if self.status != TransactionStatus.COMPLETED.value:
            return
        if quantize(self.commission_amount) + quantize(self.vendor_amount) != quantize(self.amount):
            raise ValidationError({"amount": ["Commission and vendor share must add up to the amount"]})

    @invariant.post
    def failed_transaction_must_have_reason(self):
        if self.status == TransactionStatus.FAILED.value and not self.failure_reason:
            raise ValidationError({"failure_reason": ["A failed transaction must record why"]})

    # -------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------
    @classmethod
    def initiate_payment(cls, order, payment_method, external_reference, expires_at=None):
        """Open a payment attempt for the order's current total."""
        now = datetime.now(UTC)
        if to_decimal(order.total_amount) <= 0:
            raise ValidationError({"amount": ["Payment amount must be positive"]})

        txn = cls(
            order_id=order.id,
            customer_id=order.customer_id,
            vendor_id=order.vendor_id,
            transaction_type=TransactionType.PAYMENT.value,
            status=TransactionStatus.INITIATED.value,
            amount=order.total_amount,
            currency=order.pricing.currency,
            payment_method=payment_method,
            external_reference=external_reference,
            expires_at=expires_at,
            created_at=now,
        )
        txn.raise_(
            PaymentInitiated(
                transaction_id=str(txn.id),
                order_id=str(order.id),
                customer_id=str(order.customer_id),
                amount=txn.amount,
                currency=txn.currency,
                payment_method=payment_method,
                external_reference=external_reference,
                expires_at=expires_at,
                initiated_at=now,
            )
        )
        return txn

    @classmethod
    def post_refund(
        cls,
        order,
        originating,
        amount,
        refund_id,
        external_reference=None,
        refunded_commission=ZERO,
        refunded_vendor=ZERO,
    ):
        """A completed refund row. The vendor gives back its share at the original rate."""
        amount = quantize(amount)
        if amount <= 0:
            raise ValidationError({"amount": ["Refund amount must be positive"]})

        commission, vendor_share = refund_split(amount, originating, refunded_commission, refunded_vendor)
        now = datetime.now(UTC)
        txn = cls(
            order_id=order.id,
            customer_id=order.customer_id,
            vendor_id=order.vendor_id,
            transaction_type=TransactionType.REFUND.value,
            status=TransactionStatus.COMPLETED.value,
            amount=to_float(amount),
            currency=originating.currency,
            commission_percent=originating.commission_percent,
            commission_amount=to_float(commission),
            vendor_amount=to_float(vendor_share),
            payment_method=originating.payment_method,
            external_reference=external_reference,
            originating_transaction_id=originating.id,
            refund_id=refund_id,
            created_at=now,
            completed_at=now,
        )
        txn.raise_(
            RefundPosted(
                transaction_id=str(txn.id),
                order_id=str(order.id),
                vendor_id=str(order.vendor_id),
                refund_id=str(refund_id),
                amount=txn.amount,
                commission_amount=txn.commission_amount,
                vendor_amount=txn.vendor_amount,
                posted_at=now,
            )
        )
        return txn

    @classmethod
    def post_payout(cls, vendor_id, amount, payout_id, currency, payout_method):
        """A completed payout row. The whole amount leaves the vendor's balance."""
        amount = quantize(amount)
        if amount <= 0:
            raise ValidationError({"amount": ["Payout amount must be positive"]})

        now = datetime.now(UTC)
        txn = cls(
            vendor_id=vendor_id,
            transaction_type=TransactionType.PAYOUT.value,
            status=TransactionStatus.COMPLETED.value,
            amount=to_float(amount),
            currency=currency,
            commission_amount=0.0,
            vendor_amount=to_float(amount),
            payment_method=payout_method,
            payout_id=payout_id,
            created_at=now,
            completed_at=now,
        )
        txn.raise_(
            PayoutPosted(
                transaction_id=str(txn.id),
                vendor_id=str(vendor_id),
                payout_id=str(payout_id),
                amount=txn.amount,
                posted_at=now,
            )
        )
        return txn

    # -------------------------------------------------------------------
    # State helpers
    # -------------------------------------------------------------------
    @property
    def is_terminal(self) -> bool:
        return TransactionStatus(self.status) != TransactionStatus.INITIATED

    def _assert_can_transition(self, target_status):
        current = TransactionStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise BusinessRuleViolation(
                {"status": [f"Transaction {self.id} is {current.value} and cannot become {target_status.value}"]},
                code="transaction_immutable",
            )

    # -------------------------------------------------------------------
    # Payment attempt lifecycle
    # -------------------------------------------------------------------
    def attach_proof(self, proof_reference):
        if TransactionStatus(self.status) != TransactionStatus.INITIATED:
            raise BusinessRuleViolation(
                {"status": ["Proof can only be attached to an open payment attempt"]},
                code="transaction_immutable",
            )
        if not proof_reference:
            raise ValidationError({"proof_reference": ["Proof reference is required"]})

        now = datetime.now(UTC)
        self.proof_reference = proof_reference
        self.proof_submitted_at = now
        self.raise_(
            PaymentProofSubmitted(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                customer_id=str(self.customer_id),
                amount=self.amount,
                payment_method=self.payment_method,
                external_reference=self.external_reference,
                proof_reference=proof_reference,
                submitted_at=now,
            )
        )

    def complete_payment(self, commission_percent, gateway_transaction_id=None, verified_by=None):
        self._assert_can_transition(TransactionStatus.COMPLETED)

        commission, vendor_share = split_commission(self.amount, commission_percent)
        now = datetime.now(UTC)
        self.commission_percent = float(commission_percent)
        self.commission_amount = to_float(commission)
        self.vendor_amount = to_float(vendor_share)
        self.gateway_transaction_id = gateway_transaction_id
        self.verified_by = verified_by
        self.completed_at = now
        self.status = TransactionStatus.COMPLETED.value
        self.raise_(
            PaymentCompleted(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                vendor_id=str(self.vendor_id),
                amount=self.amount,
                commission_amount=self.commission_amount,
                vendor_amount=self.vendor_amount,
                payment_method=self.payment_method,
                external_reference=self.external_reference,
                completed_at=now,
            )
        )

    def fail(self, reason, verified_by=None):
        self._assert_can_transition(TransactionStatus.FAILED)

        now = datetime.now(UTC)
        self.failure_reason = reason or "Payment failed"
        self.verified_by = verified_by
        self.failed_at = now
        self.status = TransactionStatus.FAILED.value
        self.raise_(
            PaymentFailed(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                payment_method=self.payment_method,
                external_reference=self.external_reference,
                reason=self.failure_reason,
                failed_at=now,
            )
        )
