from datetime import UTC, datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from settlement.api import (
    coupon_router,
    ledger_router,
    order_router,
    payment_router,
    payout_router,
    refund_router,
)


@pytest.fixture()
def client():
    app = FastAPI()
    for router in (order_router, payment_router, refund_router, payout_router, coupon_router, ledger_router):
        app.include_router(router)
    return TestClient(app)


@pytest.fixture()
def order_payload(catalog):
    return {
        "customer_id": "cust-001",
        "service_id": "svc-001",
        "vendor_id": "vendor-001",
        "scheduled_at": (datetime.now(UTC) + timedelta(days=3)).isoformat(),
        "scheduled_slot": "10:00-12:00",
        "address": {"street": "12 Harbour Road", "city": "Springfield", "country": "US"},
    }


@pytest.fixture()
def place_order(client, order_payload):
    def _place(**overrides):
        response = client.post("/orders", json={**order_payload, **overrides})
        assert response.status_code == 201, response.text
        return response.json()

    return _place


@pytest.fixture()
def pay_via_api(client, fake_gateway):
    """Initiate a card payment and deliver a signed success webhook."""

    def _pay(order_id):
        initiation = client.post("/payments", json={"order_id": order_id, "payment_method": "card"}).json()
        response = client.post(
            "/payments/webhook/card",
            json={"external_reference": initiation["action"]["external_reference"], "outcome": {"status": "succeeded"}},
            headers={"X-Gateway-Signature": "test-signature"},
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _pay
