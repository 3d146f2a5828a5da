"""Shared BDD fixtures and step definitions for settlement scenarios.

Steps drive the public facades and keep what they produced in ``context``:
the order under test, the last operation result and any refund or payout.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then, when

from settlement.catalog import set_catalog
from settlement.catalog.in_memory import InMemoryCatalog
from settlement.ledger.ledger import TransactionLedger
from settlement.order.lifecycle import OrderLifecycleManager
from settlement.order.order import Order
from settlement.payment.capture import PaymentCapture

ADDRESS = {"street": "12 Harbour Road", "city": "Springfield", "country": "US"}


@pytest.fixture()
def context():
    return {}


def _order(context) -> Order:
    return current_domain.repository_for(Order).get(context["order_id"])


def _book(context, customer_id, service_id, coupon_code=None):
    listing = context["listings"][service_id]
    result = OrderLifecycleManager().create_order(
        customer_id=customer_id,
        service_id=service_id,
        vendor_id=listing.vendor_id,
        scheduled_at=datetime.now(UTC) + timedelta(days=3),
        address=ADDRESS,
        coupon_code=coupon_code,
    )
    context["result"] = result
    if result.is_ok:
        context["order_id"] = result.value.id
    return result


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('the catalog lists "{service_id}" by "{vendor_id}" at {price:f} with a {discount:d}% discount'))
def _catalog_listing(context, service_id, vendor_id, price, discount):
    catalog = InMemoryCatalog()
    listing = catalog.register(service_id, vendor_id, price=price, discount_percent=discount)
    set_catalog(catalog)
    context["listings"] = {service_id: listing}


@given(parsers.re(r'customer "(?P<customer_id>[^"]+)" has booked "(?P<service_id>[^"]+)"$'))
def _booked(context, customer_id, service_id):
    _book(context, customer_id, service_id).unwrap()


@given(parsers.re(r'customer "(?P<customer_id>[^"]+)" has booked "(?P<service_id>[^"]+)" with coupon "(?P<code>[^"]+)"$'))
def _booked_with_coupon(context, customer_id, service_id, code):
    _book(context, customer_id, service_id, coupon_code=code).unwrap()


@given("the card payment succeeds")
@when("the card payment succeeds")
def _card_payment_succeeds(context, fake_gateway):
    capture = PaymentCapture()
    action = capture.initiate(context["order_id"], "card").unwrap().action
    context["external_reference"] = action.external_reference
    context["result"] = capture.confirm(action.external_reference, {"status": "succeeded"})
    context["confirmation"] = context["result"].unwrap()


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.re(r'customer "(?P<customer_id>[^"]+)" books "(?P<service_id>[^"]+)"$'))
def _books(context, customer_id, service_id):
    _book(context, customer_id, service_id)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the order total is {total:f}"))
def _order_total(context, total):
    assert _order(context).total_amount == pytest.approx(total)


@then(parsers.cfparse('the order status is "{status}"'))
def _order_status(context, status):
    assert _order(context).status == status


@then(parsers.cfparse('the order payment status is "{status}"'))
def _order_payment_status(context, status):
    assert _order(context).payment_status == status


@then(parsers.cfparse("the order version is {version:d}"))
def _order_version(context, version):
    assert _order(context).version == version


@then(parsers.cfparse('the operation fails as "{kind}"'))
def _operation_fails(context, kind):
    result = context["result"]
    assert not result.is_ok
    assert result.kind.value == kind


@then(parsers.cfparse('the operation is refused with code "{code}"'))
def _operation_refused(context, code):
    result = context["result"]
    assert not result.is_ok
    assert result.kind.value == "business_rule"
    assert result.code == code


@then(parsers.cfparse('vendor "{vendor_id}" has {amount} available'))
def _vendor_available(vendor_id, amount):
    assert TransactionLedger().vendor_available_balance(vendor_id) == Decimal(amount)


@then("the vendor ledger is balanced")
def _ledger_balanced(context):
    assert TransactionLedger().reconcile_vendor(_order(context).vendor_id).is_balanced
