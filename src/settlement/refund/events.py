"""Domain events for refund requests."""

from protean.fields import DateTime, Float, Identifier, String

from settlement.domain import settlement


@settlement.event(part_of="Refund")
class RefundRequested:
    __version__ = 1

    refund_id = Identifier(required=True)
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String(required=True)
    requested_at = DateTime(required=True)


@settlement.event(part_of="Refund")
class RefundProcessed:
    """An approved refund was posted to the ledger."""

    __version__ = 1

    refund_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    transaction_id = Identifier(required=True)
    approved_by = Identifier(required=True)
    processed_at = DateTime(required=True)


@settlement.event(part_of="Refund")
class RefundRejected:
    __version__ = 1

    refund_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    rejected_by = Identifier(required=True)
    rejected_at = DateTime(required=True)
