"""Pricing engine: pure computation of an order's itemized total.

The steps are applied in a fixed order:

    1. service discount on the base price
    2. coupon on the discounted price
    3. tax on the post-coupon subtotal
    4. platform fee (flat, or a percentage of the post-coupon subtotal)
    5. total = subtotal + tax + fee

Each component is rounded to the minor unit (half to even) before it is
summed, so ``total == base - service_discount - coupon_discount + tax + fee``
holds exactly on the stored values.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from settlement.config import FeeKind, get_settings
from settlement.shared.money import HUNDRED, ZERO, percent_of, quantize, to_decimal
from settlement.shared.results import Err, ErrorKind, Ok


class CouponType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_DELIVERY = "free_delivery"


@dataclass(frozen=True)
class CouponTerms:
    """The parts of a coupon that affect price."""

    code: str
    coupon_type: CouponType
    value: Decimal
    max_discount_amount: Decimal = ZERO
    min_order_amount: Decimal = ZERO


@dataclass(frozen=True)
class FeeRule:
    kind: FeeKind
    value: Decimal

    @classmethod
    def flat(cls, amount) -> "FeeRule":
        return cls(FeeKind.FLAT, to_decimal(amount))

    @classmethod
    def percentage(cls, percent) -> "FeeRule":
        return cls(FeeKind.PERCENTAGE, to_decimal(percent))


@dataclass(frozen=True)
class PriceBreakdown:
    base_price: Decimal
    service_discount_percent: Decimal
    service_discount: Decimal
    coupon_code: str | None
    coupon_discount: Decimal
    tax_percent: Decimal
    tax_amount: Decimal
    platform_fee: Decimal
    total_amount: Decimal
    currency: str

    @property
    def discounted_price(self) -> Decimal:
        return self.base_price - self.service_discount

    @property
    def subtotal(self) -> Decimal:
        return self.discounted_price - self.coupon_discount


class PricingEngine:
    """Computes price breakdowns. Holds configuration only, never state."""

    def __init__(
        self,
        tax_percent=None,
        fee_rule: FeeRule | None = None,
        delivery_fee=None,
        currency: str | None = None,
    ):
        settings = get_settings()
        self.tax_percent = to_decimal(settings.tax_percent if tax_percent is None else tax_percent)
        self.fee_rule = fee_rule or FeeRule(settings.platform_fee_kind, settings.platform_fee_value)
        self.delivery_fee = to_decimal(settings.delivery_fee if delivery_fee is None else delivery_fee)
        self.currency = currency or settings.currency

    def quote(self, base_price, service_discount_percent=0, coupon: CouponTerms | None = None) -> Ok | Err:
        """Return ``Ok(PriceBreakdown)`` or an ``Err`` describing the bad input."""
        base = to_decimal(base_price)
        discount_percent = to_decimal(service_discount_percent)

        if base < 0:
            return Err(ErrorKind.VALIDATION, "Base price must not be negative", {"base_price": str(base)}, "negative_amount")
        for name, percent in (("service_discount_percent", discount_percent), ("tax_percent", self.tax_percent)):
            if percent < 0 or percent > HUNDRED:
                return Err(ErrorKind.VALIDATION, f"{name} must be between 0 and 100", {name: str(percent)}, "invalid_percentage")
        if self.fee_rule.value < 0 or self.delivery_fee < 0:
            return Err(ErrorKind.VALIDATION, "Fees must not be negative", {}, "negative_amount")
        if self.fee_rule.kind == FeeKind.PERCENTAGE and self.fee_rule.value > HUNDRED:
            return Err(ErrorKind.VALIDATION, "Platform fee percentage must be at most 100", {}, "invalid_percentage")

        base = quantize(base)
        service_discount = percent_of(base, discount_percent)
        discounted = base - service_discount

        coupon_discount = ZERO
        if coupon is not None:
            result = self.coupon_discount(coupon, discounted)
            if not result.is_ok:
                return result
            coupon_discount = result.value

        subtotal = discounted - coupon_discount
        tax_amount = percent_of(subtotal, self.tax_percent)
        if self.fee_rule.kind == FeeKind.FLAT:
            platform_fee = quantize(self.fee_rule.value)
        else:
            platform_fee = percent_of(subtotal, self.fee_rule.value)

        total = subtotal + tax_amount + platform_fee
        if total < 0:
            return Err(ErrorKind.VALIDATION, "Total must not be negative", {"total_amount": str(total)}, "negative_amount")

        return Ok(
            PriceBreakdown(
                base_price=base,
                service_discount_percent=discount_percent,
                service_discount=service_discount,
                coupon_code=coupon.code if coupon else None,
                coupon_discount=coupon_discount,
                tax_percent=self.tax_percent,
                tax_amount=tax_amount,
                platform_fee=platform_fee,
                total_amount=quantize(total),
                currency=self.currency,
            )
        )

    def coupon_discount(self, coupon: CouponTerms, discounted) -> Ok | Err:
        """Discount a coupon grants on an already service-discounted amount."""
        discounted = quantize(discounted)
        if discounted < to_decimal(coupon.min_order_amount):
            return Err(
                ErrorKind.BUSINESS_RULE,
                f"Minimum order amount for {coupon.code} is {quantize(coupon.min_order_amount)}",
                {"coupon_code": coupon.code, "min_order_amount": str(coupon.min_order_amount)},
                "min_order_not_met",
            )

        value = to_decimal(coupon.value)
        if value < 0:
            return Err(ErrorKind.VALIDATION, "Coupon value must not be negative", {"coupon_code": coupon.code}, "negative_amount")

        if coupon.coupon_type == CouponType.PERCENTAGE:
            amount = percent_of(discounted, min(value, HUNDRED))
            cap = to_decimal(coupon.max_discount_amount)
            if cap > 0:
                amount = min(amount, quantize(cap))
        elif coupon.coupon_type == CouponType.FIXED:
            amount = quantize(value)
        else:
            amount = quantize(self.delivery_fee)

        return Ok(min(amount, discounted))
