"""Applying a coupon to an existing pending order: command and handler.

The order is re-priced from its locked base price and service discount. The
coupon is validated here and only reserved when the payment posts.
"""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.coupon.validator import normalize_code
from settlement.domain import logger, settlement
from settlement.ledger.ledger import TransactionLedger
from settlement.ledger.transaction import Transaction
from settlement.order.creation import price_with_coupon
from settlement.order.order import Order
from settlement.pricing.engine import PricingEngine


@settlement.command(part_of="Order")
class ApplyCouponToOrder:
    order_id = Identifier(required=True)
    expected_version = Integer(required=True, min_value=0)
    coupon_code = String(required=True, max_length=50)


@settlement.command_handler(part_of=Order)
class ApplyCouponHandler:
    @handle(ApplyCouponToOrder)
    def apply_coupon(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.assert_version(command.expected_version)

        breakdown = price_with_coupon(
            PricingEngine(tax_percent=order.pricing.tax_percent, currency=order.pricing.currency),
            order.pricing.base_price,
            order.pricing.service_discount_percent,
            normalize_code(command.coupon_code),
            order.customer_id,
            order.service_id,
            order.vendor_id,
        )
        order.apply_coupon(command.expected_version, breakdown)
        repo.add(order)

        # Open attempts were priced at the old total
        transactions = current_domain.repository_for(Transaction)
        for attempt in TransactionLedger().open_payment_attempts(order.id):
            attempt.fail("Order was re-priced after this attempt was opened")
            transactions.add(attempt)
            logger.info(
                "Payment attempt superseded by re-pricing",
                order_id=str(order.id),
                transaction_id=str(attempt.id),
                external_reference=attempt.external_reference,
            )

        logger.info(
            "Coupon applied to order",
            order_id=str(order.id),
            coupon_code=order.coupon_code,
            total_amount=order.total_amount,
        )
        return order.version
