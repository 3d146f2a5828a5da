"""Refund aggregate (CQRS): a customer's request to get money back.

State Machine:
    REQUESTED → APPROVED → PROCESSED
    REQUESTED → REJECTED

Approval and processing happen in the same unit of work as the ledger
posting, so a stored refund is never left ``approved``.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String

from settlement.domain import settlement
from settlement.refund.events import RefundProcessed, RefundRejected, RefundRequested
from settlement.shared.errors import BusinessRuleViolation


class RefundStatus(Enum):
    REQUESTED = "requested"
    APPROVED = "approved"
    PROCESSED = "processed"
    REJECTED = "rejected"


_VALID_TRANSITIONS = {
    RefundStatus.REQUESTED: {RefundStatus.APPROVED, RefundStatus.REJECTED},
    RefundStatus.APPROVED: {RefundStatus.PROCESSED},
    RefundStatus.PROCESSED: set(),  # Terminal
    RefundStatus.REJECTED: set(),  # Terminal
}


@settlement.aggregate
class Refund:
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.01)
    reason = String(required=True, max_length=1000)
    status = String(choices=RefundStatus, default=RefundStatus.REQUESTED.value)
    decided_by = Identifier()
    decided_at = DateTime()
    rejection_reason = String(max_length=500)
    transaction_id = Identifier()
    requested_at = DateTime()
    processed_at = DateTime()

    @invariant.post
    def processed_refund_must_reference_transaction(self):
        if self.status == RefundStatus.PROCESSED.value and not self.transaction_id:
            raise ValidationError({"transaction_id": ["A processed refund must reference its ledger transaction"]})

    @invariant.post
    def rejected_refund_must_have_reason(self):
        if self.status == RefundStatus.REJECTED.value and not self.rejection_reason:
            raise ValidationError({"rejection_reason": ["A rejected refund must record a reason"]})

    @classmethod
    def request(cls, order, customer_id, amount, reason):
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A refund reason is required"]})

        now = datetime.now(UTC)
        refund = cls(
            order_id=order.id,
            customer_id=customer_id,
            vendor_id=order.vendor_id,
            amount=amount,
            reason=reason,
            status=RefundStatus.REQUESTED.value,
            requested_at=now,
        )
        refund.raise_(
            RefundRequested(
                refund_id=str(refund.id),
                order_id=str(order.id),
                customer_id=str(customer_id),
                amount=refund.amount,
                reason=reason,
                requested_at=now,
            )
        )
        return refund

    def _assert_can_transition(self, target_status):
        current = RefundStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise BusinessRuleViolation(
                {"status": [f"Cannot transition refund from {current.value} to {target_status.value}"]},
                code="invalid_transition",
            )

    def approve(self, admin_id):
        self._assert_can_transition(RefundStatus.APPROVED)
        self.decided_by = admin_id
        self.decided_at = datetime.now(UTC)
        self.status = RefundStatus.APPROVED.value

    def mark_processed(self, transaction_id):
        self._assert_can_transition(RefundStatus.PROCESSED)

        now = datetime.now(UTC)
        self.transaction_id = transaction_id
        self.processed_at = now
        self.status = RefundStatus.PROCESSED.value
        self.raise_(
            RefundProcessed(
                refund_id=str(self.id),
                order_id=str(self.order_id),
                amount=self.amount,
                transaction_id=str(transaction_id),
                approved_by=str(self.decided_by),
                processed_at=now,
            )
        )

    def reject(self, admin_id, reason):
        self._assert_can_transition(RefundStatus.REJECTED)
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A rejection reason is required"]})

        now = datetime.now(UTC)
        self.rejection_reason = reason
        self.decided_by = admin_id
        self.decided_at = now
        self.status = RefundStatus.REJECTED.value
        self.raise_(
            RefundRejected(
                refund_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                rejected_by=str(admin_id),
                rejected_at=now,
            )
        )
