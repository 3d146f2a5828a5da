"""BDD tests for payment posting, refunds and payouts."""

from datetime import UTC, datetime, timedelta

from protean import current_domain
from pytest_bdd import given, parsers, scenarios, then, when

from settlement.coupon.management import CouponAdmin
from settlement.payment.capture import PaymentCapture
from settlement.payout.batching import PayoutBatcher
from settlement.payout.payout import Payout
from settlement.refund.refund import Refund
from settlement.refund.workflow import RefundWorkflow

scenarios("features/payment_settlement.feature")

BANK = {"method": "bank_transfer", "account_name": "Acme Cleaning", "account_number": "0012345", "bank_name": "First Bank"}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('the coupon "{code}" gives {percent:d}% off up to {cap:f}'))
def _percentage_coupon(code, percent, cap):
    CouponAdmin().create(
        code,
        f"{percent}% off",
        "percentage",
        float(percent),
        datetime.now(UTC) - timedelta(days=1),
        datetime.now(UTC) + timedelta(days=30),
        max_discount_amount=cap,
        usage_limit=100,
    ).unwrap()


@given(parsers.cfparse('the card gateway declines with "{reason}"'))
def _declining_gateway(fake_gateway, reason):
    fake_gateway.configure(should_succeed=False, failure_reason=reason)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the gateway delivers the same confirmation again")
def _redeliver(context):
    context["replay"] = PaymentCapture().confirm(context["external_reference"], {"status": "succeeded"}).unwrap()


@when("the card payment is confirmed")
def _confirm_declined(context, fake_gateway):
    capture = PaymentCapture()
    reference = capture.initiate(context["order_id"], "card").unwrap().action.external_reference
    context["result"] = capture.confirm(reference, {"status": "failed"})


@when(parsers.cfparse("the customer requests a refund of {amount:f}"))
def _request_refund(context, amount):
    context["result"] = RefundWorkflow().request(context["order_id"], "cust-001", amount, "Two rooms skipped")
    context["refund_id"] = context["result"].unwrap().id


@when("an admin approves the refund")
def _approve_refund(context):
    context["result"] = RefundWorkflow().approve(context["refund_id"], "admin-001")


@when(parsers.cfparse('vendor "{vendor_id}" requests a payout of {amount:f}'))
def _request_payout(context, vendor_id, amount):
    context["result"] = PayoutBatcher().request(vendor_id, amount, BANK)
    if context["result"].is_ok:
        context["payout_id"] = context["result"].value.id


@when("an admin approves the payout")
def _approve_payout(context):
    context["result"] = PayoutBatcher().approve(context["payout_id"], "admin-001")


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the second confirmation is a replay")
def _is_replay(context):
    assert context["replay"].replayed is True
    assert context["replay"].transaction_id == context["confirmation"].transaction_id


@then(parsers.cfparse("the platform commission is {amount:f}"))
def _commission(context, amount):
    assert context["confirmation"].commission_amount == amount


@then(parsers.cfparse('coupon "{code}" has been used {count:d} time'))
def _coupon_usage(code, count):
    assert CouponAdmin().get(code).unwrap().usage_count == count


@then(parsers.cfparse('the refund is "{status}"'))
def _refund_status(context, status):
    assert current_domain.repository_for(Refund).get(context["refund_id"]).status == status


@then(parsers.cfparse('the payout is "{status}"'))
def _payout_status(context, status):
    assert current_domain.repository_for(Payout).get(context["payout_id"]).status == status
