"""Domain events for ledger transactions."""

from protean.fields import DateTime, Float, Identifier, String

from settlement.domain import settlement


@settlement.event(part_of="Transaction")
class PaymentInitiated:
    """A payment attempt was opened with a gateway."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(default="USD")
    payment_method = String(required=True)
    external_reference = String(required=True)
    expires_at = DateTime()
    initiated_at = DateTime(required=True)


@settlement.event(part_of="Transaction")
class PaymentProofSubmitted:
    """A customer uploaded proof of a cash or bank-transfer payment."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Float(required=True)
    payment_method = String(required=True)
    external_reference = String(required=True)
    proof_reference = String(required=True)
    submitted_at = DateTime(required=True)


@settlement.event(part_of="Transaction")
class PaymentCompleted:
    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    amount = Float(required=True)
    commission_amount = Float(required=True)
    vendor_amount = Float(required=True)
    payment_method = String(required=True)
    external_reference = String(required=True)
    completed_at = DateTime(required=True)


@settlement.event(part_of="Transaction")
class PaymentFailed:
    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_method = String(required=True)
    external_reference = String()
    reason = String(required=True)
    failed_at = DateTime(required=True)


@settlement.event(part_of="Transaction")
class RefundPosted:
    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    refund_id = Identifier(required=True)
    amount = Float(required=True)
    commission_amount = Float(required=True)
    vendor_amount = Float(required=True)
    posted_at = DateTime(required=True)


@settlement.event(part_of="Transaction")
class PayoutPosted:
    __version__ = 1

    transaction_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    payout_id = Identifier(required=True)
    amount = Float(required=True)
    posted_at = DateTime(required=True)
