"""Transaction ledger: posting operations and read-only balance queries.

Posting methods add every affected aggregate to the current unit of work and
must be called from inside a command handler, so a posting either commits in
full or not at all. All checks run before the first repository write.
"""

from dataclasses import dataclass
from decimal import Decimal

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from settlement.config import get_settings
from settlement.coupon.coupon import Coupon
from settlement.coupon.validator import CouponValidator, normalize_code
from settlement.domain import logger
from settlement.ledger.transaction import Transaction, TransactionStatus, TransactionType, refund_split
from settlement.ledger.vendor_balance import VendorBalance
from settlement.order.order import Order
from settlement.shared.errors import BusinessRuleViolation
from settlement.shared.money import ZERO, quantize, to_decimal


@dataclass(frozen=True)
class ReconciliationReport:
    vendor_id: str
    ledger_balance: Decimal
    counter_balance: Decimal

    @property
    def drift(self) -> Decimal:
        return self.counter_balance - self.ledger_balance

    @property
    def is_balanced(self) -> bool:
        return self.drift == ZERO


def _completed(rows, transaction_type: TransactionType):
    return [
        r
        for r in rows
        if r.transaction_type == transaction_type.value and r.status == TransactionStatus.COMPLETED.value
    ]


class TransactionLedger:
    def __init__(self, coupons: CouponValidator | None = None):
        self.coupons = coupons or CouponValidator()

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get_transaction(self, transaction_id) -> Transaction:
        return current_domain.repository_for(Transaction).get(transaction_id)

    def by_external_reference(self, external_reference) -> Transaction | None:
        rows = (
            current_domain.repository_for(Transaction)
            ._dao.query.filter(external_reference=external_reference, transaction_type=TransactionType.PAYMENT.value)
            .all()
            .items
        )
        return rows[0] if rows else None

    def transactions_for_order(self, order_id) -> list[Transaction]:
        rows = current_domain.repository_for(Transaction)._dao.query.filter(order_id=str(order_id)).all().items
        return sorted(rows, key=lambda r: r.created_at)

    def transactions_for_vendor(self, vendor_id) -> list[Transaction]:
        rows = current_domain.repository_for(Transaction)._dao.query.filter(vendor_id=str(vendor_id)).all().items
        return sorted(rows, key=lambda r: r.created_at)

    def pending_manual_verifications(self) -> list[Transaction]:
        """Open manual payment attempts that already carry a proof."""
        rows = (
            current_domain.repository_for(Transaction)
            ._dao.query.filter(
                transaction_type=TransactionType.PAYMENT.value,
                status=TransactionStatus.INITIATED.value,
            )
            .all()
            .items
        )
        return sorted((r for r in rows if r.proof_reference), key=lambda r: r.proof_submitted_at)

    def paid_total(self, order_id) -> Decimal:
        rows = _completed(self.transactions_for_order(order_id), TransactionType.PAYMENT)
        return quantize(sum((to_decimal(r.amount) for r in rows), ZERO))

    def refunded_total(self, order_id) -> Decimal:
        rows = _completed(self.transactions_for_order(order_id), TransactionType.REFUND)
        return quantize(sum((to_decimal(r.amount) for r in rows), ZERO))

    def remaining_refundable(self, order_id) -> Decimal:
        return self.paid_total(order_id) - self.refunded_total(order_id)

    def refunded_shares(self, order_id) -> tuple[Decimal, Decimal]:
        """Commission and vendor amounts already given back for the order."""
        rows = _completed(self.transactions_for_order(order_id), TransactionType.REFUND)
        commission = sum((to_decimal(r.commission_amount) for r in rows), ZERO)
        vendor = sum((to_decimal(r.vendor_amount) for r in rows), ZERO)
        return quantize(commission), quantize(vendor)

    def open_payment_attempts(self, order_id) -> list[Transaction]:
        return [
            r
            for r in self.transactions_for_order(order_id)
            if r.transaction_type == TransactionType.PAYMENT.value and r.status == TransactionStatus.INITIATED.value
        ]

    def vendor_available_balance(self, vendor_id) -> Decimal:
        """Earnings minus refunded shares minus payouts, from a full ledger scan."""
        rows = self.transactions_for_vendor(vendor_id)
        earned = sum((to_decimal(r.vendor_amount) for r in _completed(rows, TransactionType.PAYMENT)), ZERO)
        refunded = sum((to_decimal(r.vendor_amount) for r in _completed(rows, TransactionType.REFUND)), ZERO)
        paid_out = sum((to_decimal(r.amount) for r in _completed(rows, TransactionType.PAYOUT)), ZERO)
        return quantize(earned - refunded - paid_out)

    def balance_for(self, vendor_id) -> VendorBalance:
        repo = current_domain.repository_for(VendorBalance)
        try:
            return repo.get(str(vendor_id))
        except ObjectNotFoundError:
            return VendorBalance.open(vendor_id=str(vendor_id), currency=get_settings().currency)

    def reconcile_vendor(self, vendor_id) -> ReconciliationReport:
        report = ReconciliationReport(
            vendor_id=str(vendor_id),
            ledger_balance=self.vendor_available_balance(vendor_id),
            counter_balance=quantize(self.balance_for(vendor_id).available),
        )
        if not report.is_balanced:
            logger.warning(
                "Vendor balance drift detected",
                vendor_id=report.vendor_id,
                ledger_balance=str(report.ledger_balance),
                counter_balance=str(report.counter_balance),
            )
        return report

    def coupon_redeemable(self, order: Order) -> bool:
        """Whether the order's coupon, if any, still has room for this customer."""
        if not order.coupon_code:
            return True
        try:
            coupon = current_domain.repository_for(Coupon).get(normalize_code(order.coupon_code))
        except ObjectNotFoundError:
            return False
        return coupon.can_redeem(order.customer_id)

    # -------------------------------------------------------------------
    # Postings
    # -------------------------------------------------------------------
    def post_payment(self, order: Order, attempt: Transaction, commission_percent=None, **confirmation) -> Transaction:
        """Complete a payment attempt, mark the order paid and reserve its coupon."""
        if commission_percent is None:
            commission_percent = get_settings().commission_percent

        if not order.can_record_payment():
            raise BusinessRuleViolation(
                {"order_id": [f"Order {order.id} is already paid"]},
                code="not_payable",
            )

        attempt.complete_payment(commission_percent, **confirmation)
        order.record_payment(attempt.id, attempt.payment_method, attempt.amount)
        balance = self.balance_for(order.vendor_id)
        balance.credit_earnings(attempt.vendor_amount)

        if order.coupon_code:
            self.coupons.reserve(
                order.coupon_code,
                user_id=order.customer_id,
                order_id=order.id,
                transaction_id=attempt.id,
            )

        current_domain.repository_for(Transaction).add(attempt)
        current_domain.repository_for(Order).add(order)
        current_domain.repository_for(VendorBalance).add(balance)

        logger.info(
            "Payment posted",
            transaction_id=str(attempt.id),
            order_id=str(order.id),
            amount=attempt.amount,
            commission_amount=attempt.commission_amount,
            vendor_amount=attempt.vendor_amount,
        )
        return attempt

    def check_refund(self, order: Order, amount):
        """Raise unless ``amount`` can be refunded now. Returns the vendor share to debit."""
        amount = quantize(amount)
        remaining = self.remaining_refundable(order.id)
        if amount > remaining:
            raise BusinessRuleViolation(
                {"amount": [f"Refund {amount} exceeds the refundable balance {remaining}"]},
                code="exceeds_refundable",
            )

        originating = self.get_transaction(order.payment_transaction_id)
        _, vendor_share = refund_split(amount, originating, *self.refunded_shares(order.id))
        available = quantize(self.balance_for(order.vendor_id).available)
        if vendor_share > available:
            raise BusinessRuleViolation(
                {"amount": [f"Vendor balance {available} cannot cover the refund share {vendor_share}"]},
                code="insufficient_balance",
            )
        return vendor_share

    def post_refund(self, order: Order, amount, refund_id, external_reference=None) -> Transaction:
        """Append a refund row against the order's payment."""
        amount = quantize(amount)
        vendor_share = self.check_refund(order, amount)
        paid = self.paid_total(order.id)
        refunded = self.refunded_total(order.id)
        refunded_commission, refunded_vendor = self.refunded_shares(order.id)

        originating = self.get_transaction(order.payment_transaction_id)
        balance = self.balance_for(order.vendor_id)
        balance.debit_refund(vendor_share)

        refund_txn = Transaction.post_refund(
            order=order,
            originating=originating,
            amount=amount,
            refund_id=refund_id,
            external_reference=external_reference,
            refunded_commission=refunded_commission,
            refunded_vendor=refunded_vendor,
        )
        order.record_refund(amount, refunded + amount, paid)

        current_domain.repository_for(Transaction).add(refund_txn)
        current_domain.repository_for(Order).add(order)
        current_domain.repository_for(VendorBalance).add(balance)

        logger.info(
            "Refund posted",
            transaction_id=str(refund_txn.id),
            order_id=str(order.id),
            amount=refund_txn.amount,
            vendor_amount=refund_txn.vendor_amount,
            payment_status=order.payment_status,
        )
        return refund_txn

    def post_payout(self, vendor_id, amount, payout_id, payout_method) -> Transaction:
        """Append a payout row after re-checking the vendor's balance."""
        amount = quantize(amount)
        available = self.vendor_available_balance(vendor_id)
        if amount > available:
            raise BusinessRuleViolation(
                {"amount": [f"Payout {amount} exceeds available balance {available}"]},
                code="insufficient_balance",
            )

        balance = self.balance_for(vendor_id)
        balance.debit_payout(amount)
        payout_txn = Transaction.post_payout(
            vendor_id=vendor_id,
            amount=amount,
            payout_id=payout_id,
            currency=balance.currency,
            payout_method=payout_method,
        )

        current_domain.repository_for(Transaction).add(payout_txn)
        current_domain.repository_for(VendorBalance).add(balance)

        logger.info(
            "Payout posted",
            transaction_id=str(payout_txn.id),
            vendor_id=str(vendor_id),
            amount=payout_txn.amount,
        )
        return payout_txn
