"""Tests for vendor payout requests and admin decisions."""

from decimal import Decimal

import pytest

from settlement.ledger.ledger import TransactionLedger
from settlement.ledger.transaction import TransactionType
from settlement.payout.batching import PayoutBatcher
from settlement.payout.payout import PayoutStatus
from settlement.refund.workflow import RefundWorkflow
from settlement.shared.results import ErrorKind

VENDOR_ID = "vendor-001"
ADMIN_ID = "admin-001"
BANK = {"method": "bank_transfer", "account_name": "Acme Cleaning", "account_number": "0012345", "bank_name": "First Bank"}


@pytest.fixture
def batcher():
    return PayoutBatcher()


class TestRequestPayout:
    def test_request_within_balance(self, batcher, paid_order):
        payout = batcher.request(VENDOR_ID, 500.0, BANK, notes="Weekly").unwrap()
        assert payout.status == PayoutStatus.PENDING.value
        assert [p.id for p in batcher.pending()] == [payout.id]
        # Nothing leaves the balance until approval
        assert TransactionLedger().vendor_available_balance(VENDOR_ID) == Decimal("868.50")

    def test_exceeding_balance(self, batcher, paid_order):
        result = batcher.request(VENDOR_ID, 900.0, BANK)
        assert result.kind == ErrorKind.BUSINESS_RULE
        assert result.code == "insufficient_balance"

    def test_below_minimum(self, batcher, paid_order):
        assert batcher.request(VENDOR_ID, 5.0, BANK).code == "below_minimum"

    def test_non_positive_amount(self, batcher, paid_order):
        assert batcher.request(VENDOR_ID, 0.0, BANK).kind == ErrorKind.VALIDATION

    def test_unreachable_destination(self, batcher, paid_order):
        result = batcher.request(VENDOR_ID, 100.0, {"method": "paypal"})
        assert result.kind == ErrorKind.VALIDATION


class TestPayoutDecisions:
    def test_approve_posts_to_ledger(self, batcher, paid_order):
        payout = batcher.request(VENDOR_ID, 500.0, BANK).unwrap()

        payout = batcher.approve(payout.id, ADMIN_ID).unwrap()

        assert payout.status == PayoutStatus.APPROVED.value
        ledger = TransactionLedger()
        txn = ledger.get_transaction(payout.transaction_id)
        assert txn.transaction_type == TransactionType.PAYOUT.value
        assert txn.payment_method == "bank_transfer"
        assert ledger.vendor_available_balance(VENDOR_ID) == Decimal("368.50")
        assert ledger.reconcile_vendor(VENDOR_ID).is_balanced

    def test_balance_rechecked_on_approval(self, batcher, paid_order):
        payout = batcher.request(VENDOR_ID, 800.0, BANK).unwrap()
        refund = RefundWorkflow().request(paid_order.id, "cust-001", 300.0, "Partial redo").unwrap()
        RefundWorkflow().approve(refund.id, ADMIN_ID).unwrap()

        result = batcher.approve(payout.id, ADMIN_ID)

        assert result.code == "insufficient_balance"
        stored = batcher.payouts_for_vendor(VENDOR_ID)[0]
        assert stored.status == PayoutStatus.REJECTED.value
        assert stored.rejection_reason == "insufficient balance"
        assert TransactionLedger().vendor_available_balance(VENDOR_ID) == Decimal("598.50")

    def test_two_payouts_cannot_overdraw(self, batcher, paid_order):
        first = batcher.request(VENDOR_ID, 600.0, BANK).unwrap()
        second = batcher.request(VENDOR_ID, 600.0, BANK).unwrap()

        batcher.approve(first.id, ADMIN_ID).unwrap()

        assert batcher.approve(second.id, ADMIN_ID).code == "insufficient_balance"
        assert TransactionLedger().vendor_available_balance(VENDOR_ID) == Decimal("268.50")

    def test_reject(self, batcher, paid_order):
        payout = batcher.request(VENDOR_ID, 100.0, BANK).unwrap()
        payout = batcher.reject(payout.id, ADMIN_ID, "Verify bank details first").unwrap()
        assert payout.status == PayoutStatus.REJECTED.value
        assert batcher.pending() == []

    def test_mark_paid(self, batcher, paid_order):
        payout = batcher.request(VENDOR_ID, 100.0, BANK).unwrap()
        batcher.approve(payout.id, ADMIN_ID).unwrap()

        payout = batcher.mark_paid(payout.id, "BANK-REF-42").unwrap()

        assert payout.status == PayoutStatus.PAID.value
        assert payout.paid_at is not None

    def test_cannot_pay_unapproved(self, batcher, paid_order):
        payout = batcher.request(VENDOR_ID, 100.0, BANK).unwrap()
        assert batcher.mark_paid(payout.id, "BANK-REF-42").code == "invalid_transition"

    def test_cannot_approve_twice(self, batcher, paid_order):
        payout = batcher.request(VENDOR_ID, 100.0, BANK).unwrap()
        batcher.approve(payout.id, ADMIN_ID).unwrap()
        assert batcher.approve(payout.id, ADMIN_ID).code == "invalid_transition"

    def test_payouts_for_vendor_in_request_order(self, batcher, paid_order):
        first = batcher.request(VENDOR_ID, 100.0, BANK).unwrap()
        second = batcher.request(VENDOR_ID, 200.0, BANK).unwrap()
        assert [p.id for p in batcher.payouts_for_vendor(VENDOR_ID)] == [first.id, second.id]
