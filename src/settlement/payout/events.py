"""Domain events for vendor payouts."""

from protean.fields import DateTime, Float, Identifier, String

from settlement.domain import settlement


@settlement.event(part_of="Payout")
class PayoutRequested:
    __version__ = 1

    payout_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    amount = Float(required=True)
    method = String(required=True)
    requested_at = DateTime(required=True)


@settlement.event(part_of="Payout")
class PayoutApproved:
    __version__ = 1

    payout_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    amount = Float(required=True)
    transaction_id = Identifier(required=True)
    approved_by = Identifier(required=True)
    approved_at = DateTime(required=True)


@settlement.event(part_of="Payout")
class PayoutRejected:
    __version__ = 1

    payout_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    reason = String(required=True)
    rejected_at = DateTime(required=True)


@settlement.event(part_of="Payout")
class PayoutPaid:
    __version__ = 1

    payout_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    amount = Float(required=True)
    payout_reference = String(required=True)
    paid_at = DateTime(required=True)
