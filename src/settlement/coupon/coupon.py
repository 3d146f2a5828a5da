"""Coupon aggregate (CQRS): discount codes with global and per-user usage limits.

``usage_count`` only moves when a payment transaction completes: the ledger
calls ``redeem()`` inside the same unit of work that posts the payment.
Validation at checkout never reserves anything.
"""

import json
from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text

from settlement.coupon.events import CouponCreated, CouponRedeemed, CouponStatusChanged, CouponUpdated
from settlement.domain import settlement
from settlement.pricing.engine import CouponTerms, CouponType
from settlement.shared.errors import BusinessRuleViolation
from settlement.shared.clock import as_utc
from settlement.shared.money import to_decimal

# Fields an admin may change after creation
_EDITABLE_FIELDS = {
    "name",
    "description",
    "value",
    "max_discount_amount",
    "min_order_amount",
    "usage_limit",
    "user_usage_limit",
    "starts_at",
    "ends_at",
    "applicable_service_ids",
    "applicable_vendor_ids",
    "applicable_user_ids",
    "first_order_only",
}

_LIST_FIELDS = {"applicable_service_ids", "applicable_vendor_ids", "applicable_user_ids"}


@settlement.entity(part_of="Coupon")
class CouponRedemption:
    user_id = Identifier(required=True)
    order_id = Identifier(required=True)
    transaction_id = Identifier()
    redeemed_at = DateTime()


@settlement.aggregate
class Coupon:
    code = String(identifier=True, max_length=50)
    name = String(required=True, max_length=100)
    description = String(max_length=500)
    coupon_type = String(choices=CouponType, required=True)
    value = Float(required=True, min_value=0.0)
    max_discount_amount = Float(default=0.0, min_value=0.0)  # 0 = uncapped
    min_order_amount = Float(default=0.0, min_value=0.0)
    usage_limit = Integer(default=0, min_value=0)  # 0 = unlimited
    user_usage_limit = Integer(default=1, min_value=1)
    usage_count = Integer(default=0, min_value=0)
    starts_at = DateTime(required=True)
    ends_at = DateTime(required=True)
    is_active = Boolean(default=True)
    applicable_service_ids = Text()  # JSON array, empty = all services
    applicable_vendor_ids = Text()  # JSON array, empty = all vendors
    applicable_user_ids = Text()  # JSON array, empty = all users
    first_order_only = Boolean(default=False)
    redemptions = HasMany(CouponRedemption)
    created_by = Identifier()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def usage_must_stay_within_global_limit(self):
        if self.usage_limit and self.usage_count > self.usage_limit:
            raise ValidationError({"usage_count": ["Coupon usage cannot exceed its usage limit"]})

    @invariant.post
    def usage_must_stay_within_user_limit(self):
        per_user: dict[str, int] = {}
        for redemption in self.redemptions or []:
            key = str(redemption.user_id)
            per_user[key] = per_user.get(key, 0) + 1
        if any(count > self.user_usage_limit for count in per_user.values()):
            raise ValidationError({"redemptions": ["A user cannot redeem a coupon more than its per-user limit"]})

    @invariant.post
    def validity_window_must_be_ordered(self):
        if self.starts_at and self.ends_at and self.ends_at <= self.starts_at:
            raise ValidationError({"ends_at": ["End date must be after start date"]})

    @invariant.post
    def percentage_must_not_exceed_hundred(self):
        if self.coupon_type == CouponType.PERCENTAGE.value and self.value > 100:
            raise ValidationError({"value": ["Percentage coupons cannot exceed 100%"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        code,
        name,
        coupon_type,
        value,
        starts_at,
        ends_at,
        description=None,
        max_discount_amount=0.0,
        min_order_amount=0.0,
        usage_limit=0,
        user_usage_limit=1,
        applicable_service_ids=None,
        applicable_vendor_ids=None,
        applicable_user_ids=None,
        first_order_only=False,
        created_by=None,
    ):
        if not code or not code.strip():
            raise ValidationError({"code": ["Coupon code is required"]})
        now = datetime.now(UTC)
        coupon = cls(
            code=code.strip().upper(),
            name=name,
            description=description,
            coupon_type=CouponType(coupon_type).value,
            value=value,
            max_discount_amount=max_discount_amount or 0.0,
            min_order_amount=min_order_amount or 0.0,
            usage_limit=usage_limit or 0,
            user_usage_limit=user_usage_limit or 1,
            usage_count=0,
            starts_at=starts_at,
            ends_at=ends_at,
            is_active=True,
            applicable_service_ids=json.dumps([str(i) for i in applicable_service_ids or []]),
            applicable_vendor_ids=json.dumps([str(i) for i in applicable_vendor_ids or []]),
            applicable_user_ids=json.dumps([str(i) for i in applicable_user_ids or []]),
            first_order_only=first_order_only,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        coupon.raise_(
            CouponCreated(
                code=coupon.code,
                coupon_type=coupon.coupon_type,
                value=coupon.value,
                usage_limit=coupon.usage_limit,
                starts_at=coupon.starts_at,
                ends_at=coupon.ends_at,
            )
        )
        return coupon

    # -------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------
    def update(self, **changes):
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError({"fields": [f"Cannot update: {', '.join(sorted(unknown))}"]})

        with atomic_change(self):
            for field_name, value in changes.items():
                if field_name in _LIST_FIELDS:
                    value = json.dumps([str(i) for i in value or []])
                setattr(self, field_name, value)

        now = datetime.now(UTC)
        self.updated_at = now
        self.raise_(CouponUpdated(code=self.code, changed_fields=",".join(sorted(changes)), updated_at=now))

    def set_active(self, is_active: bool):
        now = datetime.now(UTC)
        self.is_active = is_active
        self.updated_at = now
        self.raise_(CouponStatusChanged(code=self.code, is_active=is_active, changed_at=now))

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def terms(self) -> CouponTerms:
        return CouponTerms(
            code=self.code,
            coupon_type=CouponType(self.coupon_type),
            value=to_decimal(self.value),
            max_discount_amount=to_decimal(self.max_discount_amount),
            min_order_amount=to_decimal(self.min_order_amount),
        )

    def is_within_window(self, at: datetime) -> bool:
        return as_utc(self.starts_at) <= as_utc(at) <= as_utc(self.ends_at)

    def service_ids(self) -> list[str]:
        return json.loads(self.applicable_service_ids or "[]")

    def vendor_ids(self) -> list[str]:
        return json.loads(self.applicable_vendor_ids or "[]")

    def user_ids(self) -> list[str]:
        return json.loads(self.applicable_user_ids or "[]")

    def global_limit_reached(self) -> bool:
        return bool(self.usage_limit) and self.usage_count >= self.usage_limit

    def redemptions_by(self, user_id) -> int:
        return sum(1 for r in self.redemptions or [] if str(r.user_id) == str(user_id))

    def user_limit_reached(self, user_id) -> bool:
        return self.redemptions_by(user_id) >= self.user_usage_limit

    def can_redeem(self, user_id) -> bool:
        return not self.global_limit_reached() and not self.user_limit_reached(user_id)

    # -------------------------------------------------------------------
    # Reservation
    # -------------------------------------------------------------------
    def redeem(self, user_id, order_id, transaction_id=None):
        """Count one use of the coupon, only if it is still under both limits."""
        if self.global_limit_reached():
            raise BusinessRuleViolation(
                {"coupon_code": [f"Coupon {self.code} has reached its usage limit"]},
                code="usage_limit_reached",
            )
        if self.user_limit_reached(user_id):
            raise BusinessRuleViolation(
                {"coupon_code": [f"Coupon {self.code} already used the maximum number of times"]},
                code="user_limit_reached",
            )

        now = datetime.now(UTC)
        self.add_redemptions(
            CouponRedemption(
                user_id=user_id,
                order_id=order_id,
                transaction_id=transaction_id,
                redeemed_at=now,
            )
        )
        self.usage_count += 1
        self.updated_at = now
        self.raise_(
            CouponRedeemed(
                code=self.code,
                user_id=str(user_id),
                order_id=str(order_id),
                transaction_id=str(transaction_id) if transaction_id else None,
                usage_count=self.usage_count,
                redeemed_at=now,
            )
        )
