"""Coupon validation and reservation.

``validate`` is a read-only check used when an order is priced. ``reserve``
is the conditional increment executed by the ledger when a payment posts.
"""

from datetime import datetime
from enum import Enum

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from settlement.coupon.coupon import Coupon
from settlement.domain import logger
from settlement.shared.clock import as_utc, utcnow
from settlement.shared.money import quantize, to_decimal
from settlement.shared.results import Err, ErrorKind, Ok


class CouponRejection(Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"
    MIN_ORDER_NOT_MET = "min_order_not_met"
    SERVICE_NOT_ELIGIBLE = "service_not_eligible"
    VENDOR_NOT_ELIGIBLE = "vendor_not_eligible"
    USER_NOT_ELIGIBLE = "user_not_eligible"
    FIRST_ORDER_ONLY = "first_order_only"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    USER_LIMIT_REACHED = "user_limit_reached"


def _reject(reason: CouponRejection, message: str, code: str) -> Err:
    kind = ErrorKind.NOT_FOUND if reason == CouponRejection.NOT_FOUND else ErrorKind.BUSINESS_RULE
    return Err(kind, message, {"coupon_code": code, "reason": reason.value}, reason.value)


def normalize_code(code: str | None) -> str | None:
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


class CouponValidator:
    def validate(
        self,
        code: str,
        order_amount,
        user_id,
        service_id=None,
        vendor_id=None,
        prior_paid_orders: int = 0,
        at: datetime | None = None,
    ) -> Ok | Err:
        """Return ``Ok(coupon)`` if ``code`` may be applied, else the first failing rule."""
        code = normalize_code(code)
        if code is None:
            return _reject(CouponRejection.NOT_FOUND, "Coupon code is required", "")

        try:
            coupon = current_domain.repository_for(Coupon).get(code)
        except ObjectNotFoundError:
            return _reject(CouponRejection.NOT_FOUND, f"Coupon {code} does not exist", code)

        if not coupon.is_active:
            return _reject(CouponRejection.INACTIVE, f"Coupon {code} is not active", code)

        now = as_utc(at) or utcnow()
        if now < as_utc(coupon.starts_at):
            return _reject(CouponRejection.NOT_STARTED, f"Coupon {code} is not valid yet", code)
        if now > as_utc(coupon.ends_at):
            return _reject(CouponRejection.EXPIRED, f"Coupon {code} has expired", code)

        if to_decimal(order_amount) < to_decimal(coupon.min_order_amount):
            return _reject(
                CouponRejection.MIN_ORDER_NOT_MET,
                f"Minimum order amount for {code} is {quantize(coupon.min_order_amount)}",
                code,
            )

        if coupon.service_ids() and str(service_id) not in coupon.service_ids():
            return _reject(CouponRejection.SERVICE_NOT_ELIGIBLE, f"Coupon {code} does not apply to this service", code)
        if coupon.vendor_ids() and str(vendor_id) not in coupon.vendor_ids():
            return _reject(CouponRejection.VENDOR_NOT_ELIGIBLE, f"Coupon {code} does not apply to this vendor", code)
        if coupon.user_ids() and str(user_id) not in coupon.user_ids():
            return _reject(CouponRejection.USER_NOT_ELIGIBLE, f"Coupon {code} is not available to this user", code)
        if coupon.first_order_only and prior_paid_orders > 0:
            return _reject(CouponRejection.FIRST_ORDER_ONLY, f"Coupon {code} is only valid on a first order", code)

        if coupon.global_limit_reached():
            return _reject(CouponRejection.USAGE_LIMIT_REACHED, f"Coupon {code} has reached its usage limit", code)
        if coupon.user_limit_reached(user_id):
            return _reject(
                CouponRejection.USER_LIMIT_REACHED,
                f"Coupon {code} already used the maximum number of times",
                code,
            )

        return Ok(coupon)

    def reserve(self, code: str, user_id, order_id, transaction_id=None) -> Coupon:
        """Record one redemption. Must run inside the payment-posting unit of work.

        Raises ``BusinessRuleViolation`` if the coupon filled up since validation.
        """
        repo = current_domain.repository_for(Coupon)
        coupon = repo.get(normalize_code(code))
        coupon.redeem(user_id=user_id, order_id=order_id, transaction_id=transaction_id)
        repo.add(coupon)

        logger.info(
            "Coupon redeemed",
            code=coupon.code,
            order_id=str(order_id),
            usage_count=coupon.usage_count,
            usage_limit=coupon.usage_limit,
        )
        return coupon

    def available_for(self, user_id, at: datetime | None = None) -> list[Coupon]:
        """Active, in-window coupons the user can still redeem."""
        now = as_utc(at) or utcnow()
        coupons = current_domain.repository_for(Coupon)._dao.query.filter(is_active=True).all().items
        return [
            c
            for c in coupons
            if c.is_within_window(now)
            and (not c.user_ids() or str(user_id) in c.user_ids())
            and c.can_redeem(user_id)
        ]
