"""VendorBalance aggregate: materialized per-vendor balance counter.

Written in the same unit of work as every completed ledger row that affects
the vendor, so concurrent refunds and payouts serialize on this aggregate.
The ledger scan remains the source of truth; ``TransactionLedger.reconcile_vendor``
compares the two.
"""

from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String

from settlement.domain import settlement
from settlement.shared.errors import BusinessRuleViolation
from settlement.shared.money import quantize, to_float


@settlement.aggregate
class VendorBalance:
    vendor_id = Identifier(identifier=True)
    currency = String(max_length=3, default="USD")
    total_earned = Float(default=0.0)
    total_refunded = Float(default=0.0)
    total_paid_out = Float(default=0.0)
    available = Float(default=0.0)
    updated_at = DateTime()

    @invariant.post
    def available_must_not_be_negative(self):
        if quantize(self.available) < 0:
            raise ValidationError({"available": ["Vendor balance cannot go negative"]})

    @invariant.post
    def available_must_match_totals(self):
        expected = (
            quantize(self.total_earned) - quantize(self.total_refunded) - quantize(self.total_paid_out)
        )
        if quantize(self.available) != expected:
            raise ValidationError({"available": ["Available balance must equal earnings minus refunds and payouts"]})

    @classmethod
    def open(cls, vendor_id, currency="USD"):
        return cls(vendor_id=vendor_id, currency=currency, updated_at=datetime.now(UTC))

    def _apply(self, earned=0, refunded=0, paid_out=0):
        with atomic_change(self):
            self.total_earned = to_float(quantize(self.total_earned) + quantize(earned))
            self.total_refunded = to_float(quantize(self.total_refunded) + quantize(refunded))
            self.total_paid_out = to_float(quantize(self.total_paid_out) + quantize(paid_out))
            self.available = to_float(
                quantize(self.total_earned) - quantize(self.total_refunded) - quantize(self.total_paid_out)
            )
            self.updated_at = datetime.now(UTC)

    def _assert_covers(self, amount, purpose):
        available = quantize(self.available)
        if quantize(amount) > available:
            raise BusinessRuleViolation(
                {"amount": [f"Vendor balance {available} does not cover {purpose} of {quantize(amount)}"]},
                code="insufficient_balance",
            )

    def credit_earnings(self, amount):
        self._apply(earned=amount)

    def debit_refund(self, amount):
        self._assert_covers(amount, "refund share")
        self._apply(refunded=amount)

    def debit_payout(self, amount):
        self._assert_covers(amount, "payout")
        self._apply(paid_out=amount)
