"""Domain events for the Order aggregate.

Raised by the aggregate and dispatched when the unit of work commits.
Notification and invoicing collaborators subscribe to these.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String

from settlement.domain import settlement


@settlement.event(part_of="Order")
class OrderCreated:
    """A booking was priced and recorded as a pending order."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    service_id = Identifier(required=True)
    total_amount = Float(required=True)
    currency = String(default="USD")
    coupon_code = String()
    scheduled_at = DateTime(required=True)
    created_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderAccepted:
    __version__ = 1

    order_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    version = Integer(required=True)
    accepted_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderRejected:
    __version__ = 1

    order_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    reason = String(required=True)
    version = Integer(required=True)
    rejected_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderStarted:
    __version__ = 1

    order_id = Identifier(required=True)
    version = Integer(required=True)
    started_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderCompleted:
    __version__ = 1

    order_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    total_amount = Float(required=True)
    version = Integer(required=True)
    completed_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_by = String(required=True)
    payment_status = String(required=True)
    version = Integer(required=True)
    cancelled_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderRescheduled:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_scheduled_at = DateTime(required=True)
    scheduled_at = DateTime(required=True)
    scheduled_slot = String()
    rescheduled_by = String(required=True)
    reason = String()
    version = Integer(required=True)


@settlement.event(part_of="Order")
class OrderCouponApplied:
    __version__ = 1

    order_id = Identifier(required=True)
    coupon_code = String(required=True)
    coupon_discount = Float(required=True)
    total_amount = Float(required=True)
    version = Integer(required=True)


@settlement.event(part_of="Order")
class OrderPaid:
    """The order's payment was posted to the ledger."""

    __version__ = 1

    order_id = Identifier(required=True)
    transaction_id = Identifier(required=True)
    amount = Float(required=True)
    payment_method = String(required=True)
    paid_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    refund_amount = Float(required=True)
    refunded_total = Float(required=True)
    payment_status = String(required=True)
    refunded_at = DateTime(required=True)
