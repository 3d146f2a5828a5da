"""Domain events for the Coupon aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from settlement.domain import settlement


@settlement.event(part_of="Coupon")
class CouponCreated:
    __version__ = 1

    code = String(required=True)
    coupon_type = String(required=True)
    value = Float(required=True)
    usage_limit = Integer()
    starts_at = DateTime()
    ends_at = DateTime()


@settlement.event(part_of="Coupon")
class CouponUpdated:
    __version__ = 1

    code = String(required=True)
    changed_fields = String()  # Comma separated
    updated_at = DateTime(required=True)


@settlement.event(part_of="Coupon")
class CouponStatusChanged:
    __version__ = 1

    code = String(required=True)
    is_active = Boolean(required=True)
    changed_at = DateTime(required=True)


@settlement.event(part_of="Coupon")
class CouponRedeemed:
    """A coupon use was reserved by a completed payment."""

    __version__ = 1

    code = String(required=True)
    user_id = Identifier(required=True)
    order_id = Identifier(required=True)
    transaction_id = Identifier()
    usage_count = Integer(required=True)
    redeemed_at = DateTime(required=True)
