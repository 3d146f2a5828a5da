"""Tests for the refund request / approval workflow."""

from decimal import Decimal

import pytest
from protean import current_domain

from settlement.ledger.ledger import TransactionLedger
from settlement.ledger.transaction import TransactionType
from settlement.order.order import Order, PaymentStatus
from settlement.refund.refund import RefundStatus
from settlement.refund.workflow import RefundWorkflow
from settlement.shared.results import ErrorKind

CUSTOMER_ID = "cust-001"
ADMIN_ID = "admin-001"


@pytest.fixture
def workflow():
    return RefundWorkflow()


@pytest.fixture
def discounted_paid_order(create_order, pay_order, save20):
    order = create_order(coupon_code="SAVE20")
    pay_order(order)
    return current_domain.repository_for(Order).get(order.id)


class TestRequestRefund:
    def test_request_is_pending(self, workflow, paid_order):
        refund = workflow.request(paid_order.id, CUSTOMER_ID, 200.0, "Arrived late").unwrap()
        assert refund.status == RefundStatus.REQUESTED.value
        assert [r.id for r in workflow.pending()] == [refund.id]

    def test_unpaid_order_is_not_refundable(self, workflow, create_order):
        order = create_order()
        assert workflow.request(order.id, CUSTOMER_ID, 10.0, "Changed mind").code == "not_refundable"

    def test_only_ordering_customer(self, workflow, paid_order):
        result = workflow.request(paid_order.id, "cust-999", 10.0, "Not mine")
        assert result.kind == ErrorKind.VALIDATION

    def test_amount_cannot_exceed_total(self, workflow, paid_order):
        result = workflow.request(paid_order.id, CUSTOMER_ID, 1000.0, "Everything")
        assert result.kind == ErrorKind.VALIDATION


class TestApproveRefund:
    def test_partial_refund(self, workflow, discounted_paid_order):
        order = discounted_paid_order
        refund = workflow.request(order.id, CUSTOMER_ID, 200.0, "Half the rooms skipped").unwrap()

        refund = workflow.approve(refund.id, ADMIN_ID).unwrap()

        assert refund.status == RefundStatus.PROCESSED.value
        assert str(refund.decided_by) == ADMIN_ID
        ledger = TransactionLedger()
        txn = ledger.get_transaction(refund.transaction_id)
        assert txn.transaction_type == TransactionType.REFUND.value
        assert (txn.commission_amount, txn.vendor_amount) == (20.0, 180.0)
        assert ledger.remaining_refundable(order.id) == Decimal("607.50")
        assert ledger.vendor_available_balance(order.vendor_id) == Decimal("546.75")
        assert ledger.reconcile_vendor(order.vendor_id).is_balanced
        stored = current_domain.repository_for(Order).get(order.id)
        assert stored.payment_status == PaymentStatus.PARTIALLY_REFUNDED.value

    def test_full_refund_in_two_steps(self, workflow, discounted_paid_order):
        order = discounted_paid_order
        first = workflow.request(order.id, CUSTOMER_ID, 200.0, "Partial").unwrap()
        workflow.approve(first.id, ADMIN_ID).unwrap()
        rest = workflow.request(order.id, CUSTOMER_ID, 607.5, "Remainder").unwrap()
        workflow.approve(rest.id, ADMIN_ID).unwrap()

        stored = current_domain.repository_for(Order).get(order.id)
        assert stored.payment_status == PaymentStatus.REFUNDED.value
        assert TransactionLedger().vendor_available_balance(order.vendor_id) == Decimal("0.00")

    def test_many_small_refunds_settle_exact_shares(self, workflow, paid_order):
        # 965.00 paid: 96.50 commission, 868.50 vendor
        for amount in (0.05, 0.05, 964.90):
            refund = workflow.request(paid_order.id, CUSTOMER_ID, amount, "Split refund").unwrap()
            workflow.approve(refund.id, ADMIN_ID).unwrap()

        ledger = TransactionLedger()
        assert ledger.refunded_shares(paid_order.id) == (Decimal("96.50"), Decimal("868.50"))
        assert ledger.remaining_refundable(paid_order.id) == Decimal("0.00")
        assert ledger.vendor_available_balance(paid_order.vendor_id) == Decimal("0.00")
        assert ledger.reconcile_vendor(paid_order.vendor_id).is_balanced
        stored = current_domain.repository_for(Order).get(paid_order.id)
        assert stored.payment_status == PaymentStatus.REFUNDED.value

    def test_exceeding_refundable_balance(self, workflow, discounted_paid_order):
        order = discounted_paid_order
        first = workflow.request(order.id, CUSTOMER_ID, 700.0, "Most of it").unwrap()
        second = workflow.request(order.id, CUSTOMER_ID, 200.0, "And more").unwrap()
        workflow.approve(first.id, ADMIN_ID).unwrap()

        result = workflow.approve(second.id, ADMIN_ID)

        assert result.code == "exceeds_refundable"
        assert [r.id for r in workflow.pending()] == [second.id]

    def test_gateway_decline_keeps_refund_requested(self, workflow, paid_order, fake_gateway):
        refund = workflow.request(paid_order.id, CUSTOMER_ID, 100.0, "Late").unwrap()
        fake_gateway.configure(should_succeed=False, failure_reason="Refund window closed")

        result = workflow.approve(refund.id, ADMIN_ID)

        assert result.kind == ErrorKind.GATEWAY_FAILURE
        assert workflow.refunds_for_order(paid_order.id)[0].status == RefundStatus.REQUESTED.value
        assert TransactionLedger().refunded_total(paid_order.id) == Decimal("0.00")

    def test_reject(self, workflow, paid_order):
        refund = workflow.request(paid_order.id, CUSTOMER_ID, 100.0, "Late").unwrap()

        refund = workflow.reject(refund.id, ADMIN_ID, "Vendor arrived on time").unwrap()

        assert refund.status == RefundStatus.REJECTED.value
        assert workflow.approve(refund.id, ADMIN_ID).code == "invalid_transition"
