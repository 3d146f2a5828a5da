"""Order aggregate (CQRS): a priced service booking.

State Machine:
    PENDING → ACCEPTED → IN_PROGRESS → COMPLETED
    PENDING → REJECTED
    PENDING | ACCEPTED → CANCELLED

``status`` changes only through the transition methods below, each of which
compares the caller's ``expected_version`` and bumps ``version`` on success.
``payment_status`` is owned by the ledger (``record_payment`` /
``record_refund``) and also bumps ``version``.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String, Text, ValueObject

from settlement.domain import settlement
from settlement.order.events import (
    OrderAccepted,
    OrderCancelled,
    OrderCompleted,
    OrderCouponApplied,
    OrderCreated,
    OrderPaid,
    OrderRefunded,
    OrderRejected,
    OrderRescheduled,
    OrderStarted,
)
from settlement.pricing.engine import PriceBreakdown
from settlement.shared.clock import as_utc
from settlement.shared.errors import BusinessRuleViolation, ConcurrentModification
from settlement.shared.money import quantize, to_decimal, to_float


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class Actor(Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"
    ADMIN = "admin"
    SYSTEM = "system"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.ACCEPTED, OrderStatus.REJECTED, OrderStatus.CANCELLED},
    OrderStatus.ACCEPTED: {OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED},
    OrderStatus.IN_PROGRESS: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),  # Terminal
    OrderStatus.REJECTED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

_RESCHEDULABLE_STATES = {OrderStatus.PENDING, OrderStatus.ACCEPTED}

# Payment states in which money has been captured for the order
SETTLED_PAYMENT_STATES = {
    PaymentStatus.PAID,
    PaymentStatus.PARTIALLY_REFUNDED,
    PaymentStatus.REFUNDED,
}

_PAYABLE_PAYMENT_STATES = {PaymentStatus.PENDING, PaymentStatus.FAILED}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@settlement.value_object(part_of="Order")
class ServiceAddress:
    """Where the service is delivered. Captured once at booking time."""

    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=100)


@settlement.value_object(part_of="Order")
class OrderPricing:
    """Itemized price locked when the order is created or a coupon is applied."""

    base_price = Float(required=True, min_value=0.0)
    service_discount_percent = Float(default=0.0)
    service_discount = Float(default=0.0)
    coupon_code = String(max_length=50)
    coupon_discount = Float(default=0.0)
    tax_percent = Float(default=0.0)
    tax_amount = Float(default=0.0)
    platform_fee = Float(default=0.0)
    total_amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")

    @classmethod
    def from_breakdown(cls, breakdown: PriceBreakdown) -> "OrderPricing":
        return cls(
            base_price=to_float(breakdown.base_price),
            service_discount_percent=float(breakdown.service_discount_percent),
            service_discount=to_float(breakdown.service_discount),
            coupon_code=breakdown.coupon_code,
            coupon_discount=to_float(breakdown.coupon_discount),
            tax_percent=float(breakdown.tax_percent),
            tax_amount=to_float(breakdown.tax_amount),
            platform_fee=to_float(breakdown.platform_fee),
            total_amount=to_float(breakdown.total_amount),
            currency=breakdown.currency,
        )

    def components_total(self):
        return quantize(
            to_decimal(self.base_price)
            - to_decimal(self.service_discount)
            - to_decimal(self.coupon_discount)
            + to_decimal(self.tax_amount)
            + to_decimal(self.platform_fee)
        )


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@settlement.aggregate
class Order:
    customer_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    service_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    pricing = ValueObject(OrderPricing)
    address = ValueObject(ServiceAddress)
    scheduled_at = DateTime(required=True)
    scheduled_slot = String(max_length=50)
    notes = Text()
    version = Integer(default=0, min_value=0)
    payment_method = String(max_length=50)
    payment_transaction_id = Identifier()
    rejection_reason = String(max_length=500)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(choices=Actor)
    rescheduled_from = DateTime()
    reschedule_count = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()
    accepted_at = DateTime()
    started_at = DateTime()
    completed_at = DateTime()
    cancelled_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def settled_payment_must_reference_transaction(self):
        if PaymentStatus(self.payment_status) in SETTLED_PAYMENT_STATES and not self.payment_transaction_id:
            raise ValidationError({"payment_transaction_id": ["A paid order must reference its payment transaction"]})

    @invariant.post
    def rejected_order_must_have_reason(self):
        if self.status == OrderStatus.REJECTED.value and not self.rejection_reason:
            raise ValidationError({"rejection_reason": ["A rejected order must record a reason"]})

    @invariant.post
    def cancelled_order_must_record_reason_and_actor(self):
        if self.status == OrderStatus.CANCELLED.value and not (self.cancellation_reason and self.cancelled_by):
            raise ValidationError({"cancellation_reason": ["A cancelled order must record a reason and actor"]})

    @invariant.post
    def completed_order_must_be_paid(self):
        if (
            self.status == OrderStatus.COMPLETED.value
            and PaymentStatus(self.payment_status) not in SETTLED_PAYMENT_STATES
        ):
            raise ValidationError({"payment_status": ["A completed order must have been paid"]})

    @invariant.post
    def total_must_match_components(self):
        if self.pricing is None:
            return
        if to_decimal(self.pricing.total_amount) != self.pricing.components_total():
            raise ValidationError({"pricing": ["Total must equal price minus discounts plus tax and fee"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        customer_id,
        vendor_id,
        service_id,
        breakdown: PriceBreakdown,
        scheduled_at,
        address,
        scheduled_slot=None,
        notes=None,
    ):
        """Create a pending order from a price breakdown.

        Args:
            address: Dict with street, city, state, postal_code, country.
        """
        now = datetime.now(UTC)
        order = cls(
            customer_id=customer_id,
            vendor_id=vendor_id,
            service_id=service_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            pricing=OrderPricing.from_breakdown(breakdown),
            address=ServiceAddress(**address),
            scheduled_at=as_utc(scheduled_at),
            scheduled_slot=scheduled_slot,
            notes=notes,
            version=0,
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderCreated(
                order_id=str(order.id),
                customer_id=str(customer_id),
                vendor_id=str(vendor_id),
                service_id=str(service_id),
                total_amount=order.pricing.total_amount,
                currency=order.pricing.currency,
                coupon_code=order.pricing.coupon_code,
                scheduled_at=order.scheduled_at,
                created_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def coupon_code(self):
        return self.pricing.coupon_code if self.pricing else None

    @property
    def total_amount(self):
        return self.pricing.total_amount if self.pricing else 0.0

    def is_settled(self) -> bool:
        return PaymentStatus(self.payment_status) in SETTLED_PAYMENT_STATES

    def is_payable(self) -> bool:
        return PaymentStatus(self.payment_status) in _PAYABLE_PAYMENT_STATES and OrderStatus(self.status) not in {
            OrderStatus.REJECTED,
            OrderStatus.CANCELLED,
        }

    def can_record_payment(self) -> bool:
        """Money may still arrive for a cancelled or rejected order; it is then refundable."""
        return PaymentStatus(self.payment_status) in _PAYABLE_PAYMENT_STATES

    def assert_version(self, expected_version):
        """Reject writes from callers holding a stale copy."""
        if expected_version is not None and expected_version != self.version:
            raise ConcurrentModification("Order", self.id, expected_version, self.version)

    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise BusinessRuleViolation(
                {"status": [f"Cannot transition from {current.value} to {target_status.value}"]},
                code="invalid_transition",
            )

    def _touch(self, now):
        self.version += 1
        self.updated_at = now

    # -------------------------------------------------------------------
    # Vendor transitions
    # -------------------------------------------------------------------
    def accept(self, expected_version):
        self.assert_version(expected_version)
        self._assert_can_transition(OrderStatus.ACCEPTED)

        now = datetime.now(UTC)
        self.status = OrderStatus.ACCEPTED.value
        self.accepted_at = now
        self._touch(now)
        self.raise_(
            OrderAccepted(order_id=str(self.id), vendor_id=str(self.vendor_id), version=self.version, accepted_at=now)
        )

    def reject(self, expected_version, reason):
        self.assert_version(expected_version)
        self._assert_can_transition(OrderStatus.REJECTED)
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A rejection reason is required"]})

        now = datetime.now(UTC)
        self.rejection_reason = reason
        self.status = OrderStatus.REJECTED.value
        self._touch(now)
        self.raise_(
            OrderRejected(
                order_id=str(self.id),
                vendor_id=str(self.vendor_id),
                reason=reason,
                version=self.version,
                rejected_at=now,
            )
        )

    def start(self, expected_version):
        self.assert_version(expected_version)
        self._assert_can_transition(OrderStatus.IN_PROGRESS)

        now = datetime.now(UTC)
        self.status = OrderStatus.IN_PROGRESS.value
        self.started_at = now
        self._touch(now)
        self.raise_(OrderStarted(order_id=str(self.id), version=self.version, started_at=now))

    def complete(self, expected_version):
        self.assert_version(expected_version)
        self._assert_can_transition(OrderStatus.COMPLETED)
        if PaymentStatus(self.payment_status) != PaymentStatus.PAID:
            raise BusinessRuleViolation(
                {"payment_status": ["Order can only be completed once it is paid"]},
                code="payment_required",
            )

        now = datetime.now(UTC)
        self.status = OrderStatus.COMPLETED.value
        self.completed_at = now
        self._touch(now)
        self.raise_(
            OrderCompleted(
                order_id=str(self.id),
                vendor_id=str(self.vendor_id),
                total_amount=self.total_amount,
                version=self.version,
                completed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Cancellation / rescheduling
    # -------------------------------------------------------------------
    def cancel(self, expected_version, reason, cancelled_by):
        """Cancel before work starts. Refunding a paid order is a separate request."""
        self.assert_version(expected_version)
        self._assert_can_transition(OrderStatus.CANCELLED)
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A cancellation reason is required"]})

        now = datetime.now(UTC)
        self.cancellation_reason = reason
        self.cancelled_by = Actor(cancelled_by).value
        self.status = OrderStatus.CANCELLED.value
        self.cancelled_at = now
        self._touch(now)
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason,
                cancelled_by=self.cancelled_by,
                payment_status=self.payment_status,
                version=self.version,
                cancelled_at=now,
            )
        )

    def reschedule(self, expected_version, scheduled_at, rescheduled_by, scheduled_slot=None, reason=None):
        self.assert_version(expected_version)
        current = OrderStatus(self.status)
        if current not in _RESCHEDULABLE_STATES:
            raise BusinessRuleViolation(
                {"status": [f"Cannot reschedule an order that is {current.value}"]},
                code="invalid_transition",
            )

        now = datetime.now(UTC)
        scheduled_at = as_utc(scheduled_at)
        if scheduled_at <= now:
            raise ValidationError({"scheduled_at": ["New schedule must be in the future"]})

        previous = self.scheduled_at
        self.rescheduled_from = previous
        self.scheduled_at = scheduled_at
        if scheduled_slot:
            self.scheduled_slot = scheduled_slot
        self.reschedule_count = (self.reschedule_count or 0) + 1
        self._touch(now)
        self.raise_(
            OrderRescheduled(
                order_id=str(self.id),
                previous_scheduled_at=previous,
                scheduled_at=scheduled_at,
                scheduled_slot=self.scheduled_slot,
                rescheduled_by=Actor(rescheduled_by).value,
                reason=reason,
                version=self.version,
            )
        )

    def apply_coupon(self, expected_version, breakdown: PriceBreakdown):
        """Replace the pricing with a coupon-bearing breakdown."""
        self.assert_version(expected_version)
        if OrderStatus(self.status) != OrderStatus.PENDING or not self.is_payable():
            raise BusinessRuleViolation(
                {"status": ["Coupons can only be applied to pending, unpaid orders"]},
                code="invalid_transition",
            )
        if self.coupon_code:
            raise BusinessRuleViolation(
                {"coupon_code": [f"Order already has coupon {self.coupon_code}"]},
                code="coupon_already_applied",
            )

        now = datetime.now(UTC)
        self.pricing = OrderPricing.from_breakdown(breakdown)
        self._touch(now)
        self.raise_(
            OrderCouponApplied(
                order_id=str(self.id),
                coupon_code=self.pricing.coupon_code,
                coupon_discount=self.pricing.coupon_discount,
                total_amount=self.pricing.total_amount,
                version=self.version,
            )
        )

    # -------------------------------------------------------------------
    # Payment status (ledger owned)
    # -------------------------------------------------------------------
    def record_payment(self, transaction_id, payment_method, amount):
        if not self.can_record_payment():
            raise BusinessRuleViolation(
                {"payment_status": [f"Order {self.id} cannot accept a payment ({self.status}, {self.payment_status})"]},
                code="not_payable",
            )

        now = datetime.now(UTC)
        self.payment_transaction_id = transaction_id
        self.payment_method = payment_method
        self.payment_status = PaymentStatus.PAID.value
        self._touch(now)
        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                transaction_id=str(transaction_id),
                amount=amount,
                payment_method=payment_method,
                paid_at=now,
            )
        )

    def record_refund(self, refund_amount, refunded_total, paid_total):
        if not self.is_settled() or PaymentStatus(self.payment_status) == PaymentStatus.REFUNDED:
            raise BusinessRuleViolation(
                {"payment_status": ["Only paid orders with a refundable balance can be refunded"]},
                code="not_refundable",
            )

        now = datetime.now(UTC)
        if quantize(refunded_total) >= quantize(paid_total):
            self.payment_status = PaymentStatus.REFUNDED.value
        else:
            self.payment_status = PaymentStatus.PARTIALLY_REFUNDED.value
        self._touch(now)
        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                refund_amount=to_float(refund_amount),
                refunded_total=to_float(refunded_total),
                payment_status=self.payment_status,
                refunded_at=now,
            )
        )
