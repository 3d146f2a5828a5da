"""Shared fixtures for the settlement test suite.

Pricing settings used throughout: 5% tax, a flat platform fee of 20 and a
10% platform commission. The catalog lists one service priced 1000 with a
10% service discount, so an order without a coupon totals 965.00.
"""

from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from settlement.catalog import reset_catalog, set_catalog
from settlement.catalog.in_memory import InMemoryCatalog
from settlement.config import get_settings
from settlement.coupon.management import CouponAdmin
from settlement.gateway import reset_gateway, set_gateway
from settlement.gateway.fake_adapter import FakeGateway
from settlement.order.lifecycle import OrderLifecycleManager
from settlement.order.order import Order
from settlement.payment.capture import PaymentCapture

CUSTOMER_ID = "cust-001"
VENDOR_ID = "vendor-001"
SERVICE_ID = "svc-001"
ADMIN_ID = "admin-001"

ADDRESS = {"street": "12 Harbour Road", "city": "Springfield", "postal_code": "12345", "country": "US"}


@pytest.fixture(scope="session")
def settlement_bed():
    from settlement.domain import settlement

    bed = DomainFixture(settlement)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session", autouse=True)
def setup_db(settlement_bed):
    from settlement.domain import settlement
    from settlement.utils.db import drop_db, setup_db

    setup_db(settlement)

    yield

    drop_db(settlement)


@pytest.fixture(autouse=True)
def marketplace_settings(monkeypatch):
    monkeypatch.setenv("SETTLEMENT_TAX_PERCENT", "5")
    monkeypatch.setenv("SETTLEMENT_PLATFORM_FEE_KIND", "flat")
    monkeypatch.setenv("SETTLEMENT_PLATFORM_FEE_VALUE", "20")
    monkeypatch.setenv("SETTLEMENT_COMMISSION_PERCENT", "10")
    monkeypatch.setenv("SETTLEMENT_MINIMUM_PAYOUT_AMOUNT", "10")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _ctx(settlement_bed, marketplace_settings):
    with settlement_bed.domain_context():
        yield

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()

    reset_gateway()
    reset_catalog()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
@pytest.fixture()
def catalog():
    catalog = InMemoryCatalog()
    catalog.register(SERVICE_ID, VENDOR_ID, price=1000.0, discount_percent=10.0, title="Deep clean")
    set_catalog(catalog)
    return catalog


@pytest.fixture()
def fake_gateway():
    gateway = FakeGateway()
    set_gateway("card", gateway)
    return gateway


# ---------------------------------------------------------------------------
# Scenario helpers
# ---------------------------------------------------------------------------
@pytest.fixture()
def future():
    return datetime.now(UTC) + timedelta(days=3)


@pytest.fixture()
def save20():
    """20% off, capped at 150."""
    return (
        CouponAdmin()
        .create(
            "SAVE20",
            "Twenty percent off",
            "percentage",
            20.0,
            datetime.now(UTC) - timedelta(days=1),
            datetime.now(UTC) + timedelta(days=30),
            max_discount_amount=150.0,
            usage_limit=100,
        )
        .unwrap()
    )


@pytest.fixture()
def create_order(catalog, future):
    def _create(customer_id=CUSTOMER_ID, coupon_code=None, **overrides):
        params = {
            "customer_id": customer_id,
            "service_id": SERVICE_ID,
            "vendor_id": VENDOR_ID,
            "scheduled_at": future,
            "address": ADDRESS,
            "scheduled_slot": "10:00-12:00",
            "coupon_code": coupon_code,
        }
        params.update(overrides)
        return OrderLifecycleManager().create_order(**params).unwrap()

    return _create


@pytest.fixture()
def pay_order(fake_gateway):
    """Initiate and confirm a card payment; returns the confirmation result."""

    def _pay(order):
        capture = PaymentCapture()
        initiation = capture.initiate(order.id, "card").unwrap()
        return capture.confirm(initiation.action.external_reference, {"status": "succeeded"}).unwrap()

    return _pay


@pytest.fixture()
def paid_order(create_order, pay_order):
    order = create_order()
    pay_order(order)
    return current_domain.repository_for(Order).get(order.id)
