"""Order creation: command and handler.

Looks up the service listing, prices it (validating any coupon without
reserving it) and records a pending, unpaid order.
"""

from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from settlement.catalog import get_catalog
from settlement.coupon.validator import CouponValidator, normalize_code
from settlement.domain import logger, settlement
from settlement.order.order import SETTLED_PAYMENT_STATES, Order
from settlement.pricing.engine import PriceBreakdown, PricingEngine
from settlement.shared.clock import as_utc
from settlement.shared.errors import BusinessRuleViolation
from settlement.shared.results import raise_for


@settlement.command(part_of="Order")
class CreateOrder:
    customer_id = Identifier(required=True)
    service_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    scheduled_at = DateTime(required=True)
    scheduled_slot = String(max_length=50)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=100)
    coupon_code = String(max_length=50)
    notes = Text()


def prior_paid_orders(customer_id) -> int:
    orders = current_domain.repository_for(Order)._dao.query.filter(customer_id=str(customer_id)).all().items
    settled = {s.value for s in SETTLED_PAYMENT_STATES}
    return sum(1 for o in orders if o.payment_status in settled)


def price_with_coupon(
    engine: PricingEngine,
    base_price,
    discount_percent,
    coupon_code,
    customer_id,
    service_id,
    vendor_id,
) -> PriceBreakdown:
    """Quote a price, validating ``coupon_code`` first. Raises on any rejection."""
    coupon_terms = None
    if coupon_code:
        plain = engine.quote(base_price, discount_percent)
        if not plain.is_ok:
            raise_for(plain)

        validation = CouponValidator().validate(
            coupon_code,
            order_amount=plain.value.discounted_price,
            user_id=customer_id,
            service_id=service_id,
            vendor_id=vendor_id,
            prior_paid_orders=prior_paid_orders(customer_id),
        )
        if not validation.is_ok:
            raise_for(validation)
        coupon_terms = validation.value.terms()

    quote = engine.quote(base_price, discount_percent, coupon_terms)
    if not quote.is_ok:
        raise_for(quote)
    return quote.value


@settlement.command_handler(part_of=Order)
class CreateOrderHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        listing = get_catalog().get_listing(command.service_id)
        if listing is None:
            raise ValidationError({"service_id": [f"Service {command.service_id} does not exist"]})
        if str(listing.vendor_id) != str(command.vendor_id):
            raise ValidationError({"vendor_id": ["Service is not offered by this vendor"]})
        if not listing.is_available:
            raise BusinessRuleViolation(
                {"service_id": [f"Service {command.service_id} is not available for booking"]},
                code="service_unavailable",
            )
        if as_utc(command.scheduled_at) <= datetime.now(UTC):
            raise ValidationError({"scheduled_at": ["Scheduled date must be in the future"]})

        breakdown = price_with_coupon(
            PricingEngine(),
            listing.price,
            listing.discount_percent,
            normalize_code(command.coupon_code),
            command.customer_id,
            command.service_id,
            command.vendor_id,
        )

        order = Order.create(
            customer_id=command.customer_id,
            vendor_id=command.vendor_id,
            service_id=command.service_id,
            breakdown=breakdown,
            scheduled_at=command.scheduled_at,
            scheduled_slot=command.scheduled_slot,
            address={
                "street": command.street,
                "city": command.city,
                "state": command.state,
                "postal_code": command.postal_code,
                "country": command.country,
            },
            notes=command.notes,
        )
        current_domain.repository_for(Order).add(order)

        logger.info(
            "Order created",
            order_id=str(order.id),
            customer_id=str(command.customer_id),
            total_amount=order.total_amount,
            coupon_code=order.coupon_code,
        )
        return str(order.id)
