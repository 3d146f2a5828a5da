"""Daily settlement: money in and out of the platform per day."""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import Float, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement
from settlement.ledger.events import PaymentCompleted, PayoutPosted, RefundPosted
from settlement.ledger.transaction import Transaction
from settlement.shared.money import quantize, to_float


@settlement.projection
class DailySettlement:
    date = String(identifier=True, max_length=10, required=True)  # "YYYY-MM-DD"
    gross_payments = Float(default=0.0)
    commission_earned = Float(default=0.0)
    refunded = Float(default=0.0)
    commission_returned = Float(default=0.0)
    paid_out = Float(default=0.0)
    payment_count = Integer(default=0)
    refund_count = Integer(default=0)
    payout_count = Integer(default=0)


def _day(date_key):
    repo = current_domain.repository_for(DailySettlement)
    try:
        return repo.get(date_key)
    except ObjectNotFoundError:
        return DailySettlement(date=date_key)


def _add(current, amount):
    return to_float(quantize(current or 0.0) + quantize(amount))


@settlement.projector(projector_for=DailySettlement, aggregates=[Transaction])
class DailySettlementProjector:
    @on(PaymentCompleted)
    def on_payment_completed(self, event):
        record = _day(event.completed_at.date().isoformat())
        record.gross_payments = _add(record.gross_payments, event.amount)
        record.commission_earned = _add(record.commission_earned, event.commission_amount)
        record.payment_count = (record.payment_count or 0) + 1
        current_domain.repository_for(DailySettlement).add(record)

    @on(RefundPosted)
    def on_refund_posted(self, event):
        record = _day(event.posted_at.date().isoformat())
        record.refunded = _add(record.refunded, event.amount)
        record.commission_returned = _add(record.commission_returned, event.commission_amount)
        record.refund_count = (record.refund_count or 0) + 1
        current_domain.repository_for(DailySettlement).add(record)

    @on(PayoutPosted)
    def on_payout_posted(self, event):
        record = _day(event.posted_at.date().isoformat())
        record.paid_out = _add(record.paid_out, event.amount)
        record.payout_count = (record.payout_count or 0) + 1
        current_domain.repository_for(DailySettlement).add(record)
