"""Integration tests for payment initiation, webhooks and manual verification."""

import json

from settlement.config import get_settings
from settlement.gateway.port import PaymentGatewayAdapter


def _initiate(client, order_id, method="card"):
    response = client.post("/payments", json={"order_id": order_id, "payment_method": method})
    assert response.status_code == 201, response.text
    return response.json()


def _webhook(client, reference, outcome, signature="test-signature", method="card"):
    return client.post(
        f"/payments/webhook/{method}",
        json={"external_reference": reference, "outcome": outcome},
        headers={"X-Gateway-Signature": signature},
    )


class TestInitiatePayment:
    def test_returns_attempt_and_action(self, client, place_order, fake_gateway):
        order = place_order()
        data = _initiate(client, order["order_id"])

        assert data["transaction"]["status"] == "initiated"
        assert data["transaction"]["amount"] == 965.0
        assert data["action"]["kind"] == "client_secret"
        assert data["action"]["external_reference"] == data["transaction"]["external_reference"]

    def test_hosted_checkout_redirect(self, client, place_order):
        order = place_order()
        data = _initiate(client, order["order_id"], "hosted_checkout")
        assert data["action"]["kind"] == "redirect"
        assert data["action"]["redirect_url"].startswith("https://checkout.example.com/pay?")

    def test_unsupported_method(self, client, place_order):
        order = place_order()
        response = client.post("/payments", json={"order_id": order["order_id"], "payment_method": "barter"})
        assert response.status_code == 400

    def test_gateway_outage_is_bad_gateway(self, client, place_order, fake_gateway):
        order = place_order()
        fake_gateway.configure(unavailable=True)
        response = client.post("/payments", json={"order_id": order["order_id"], "payment_method": "card"})
        assert response.status_code == 502
        assert response.json()["detail"]["kind"] == "gateway_failure"


class TestPaymentWebhook:
    def test_success(self, client, place_order, fake_gateway):
        order = place_order()
        reference = _initiate(client, order["order_id"])["action"]["external_reference"]

        response = _webhook(client, reference, {"status": "succeeded"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["commission_amount"] == 96.5
        assert data["vendor_amount"] == 868.5
        assert client.get(f"/orders/{order['order_id']}").json()["payment_status"] == "paid"

    def test_redelivery_is_replayed(self, client, place_order, fake_gateway):
        order = place_order()
        reference = _initiate(client, order["order_id"])["action"]["external_reference"]

        first = _webhook(client, reference, {"status": "succeeded"}).json()
        second = _webhook(client, reference, {"status": "succeeded"}).json()

        assert second["replayed"] is True
        assert second["transaction_id"] == first["transaction_id"]
        rows = client.get(f"/ledger/orders/{order['order_id']}").json()
        assert [r["status"] for r in rows] == ["completed"]

    def test_card_webhook_cannot_settle_hosted_checkout(self, client, place_order, fake_gateway):
        order = place_order()
        reference = _initiate(client, order["order_id"], "hosted_checkout")["action"]["external_reference"]

        response = _webhook(client, reference, {"status": "VALID"})

        assert response.status_code == 401
        rows = client.get(f"/ledger/orders/{order['order_id']}").json()
        assert [r["status"] for r in rows] == ["initiated"]
        assert client.get(f"/orders/{order['order_id']}").json()["payment_status"] == "pending"

    def test_invalid_signature(self, client, place_order, fake_gateway):
        order = place_order()
        reference = _initiate(client, order["order_id"])["action"]["external_reference"]
        assert _webhook(client, reference, {"status": "succeeded"}, signature="forged").status_code == 401

    def test_malformed_body(self, client, fake_gateway):
        response = client.post(
            "/payments/webhook/card",
            content="not json",
            headers={"X-Gateway-Signature": "test-signature", "Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_declined_payment(self, client, place_order, fake_gateway):
        order = place_order()
        fake_gateway.configure(should_succeed=False, failure_reason="Card declined")
        reference = _initiate(client, order["order_id"])["action"]["external_reference"]

        response = _webhook(client, reference, {"status": "failed"})

        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "payment_failed"
        assert client.get(f"/orders/{order['order_id']}").json()["payment_status"] == "pending"

    def test_unknown_reference(self, client, fake_gateway):
        assert _webhook(client, "pi_missing", {"status": "succeeded"}).status_code == 404

    def test_card_network_signature(self, client, place_order):
        order = place_order()
        reference = _initiate(client, order["order_id"])["action"]["external_reference"]
        body = json.dumps({"external_reference": reference, "outcome": {"status": "succeeded"}})
        signature = PaymentGatewayAdapter.sign(get_settings().card_webhook_secret, body)

        response = client.post(
            "/payments/webhook/card",
            content=body,
            headers={"X-Gateway-Signature": signature, "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "completed"


class TestManualPayments:
    def test_proof_then_verification(self, client, place_order):
        order = place_order()
        action = _initiate(client, order["order_id"], "bank_transfer")["action"]
        reference = action["external_reference"]
        assert action["kind"] == "upload_proof"

        proof = client.post(
            f"/payments/{reference}/proof",
            json={"proof_reference": "receipts/bt-001.pdf", "upload_token": action["upload_token"]},
        )
        assert proof.status_code == 200
        pending = client.get("/payments/pending-verification").json()
        assert [p["external_reference"] for p in pending] == [reference]

        verified = client.post(f"/payments/{reference}/verify", json={"admin_id": "admin-001", "approved": True})

        assert verified.status_code == 200
        assert verified.json()["status"] == "completed"
        assert client.get("/payments/pending-verification").json() == []

    def test_rejected_proof(self, client, place_order):
        order = place_order()
        reference = _initiate(client, order["order_id"], "cash")["action"]["external_reference"]
        client.post(f"/payments/{reference}/proof", json={"proof_reference": "receipts/cash.jpg"})

        response = client.post(
            f"/payments/{reference}/verify",
            json={"admin_id": "admin-001", "approved": False, "note": "Amount does not match"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        assert response.json()["failure_reason"] == "Amount does not match"

    def test_manual_webhooks_are_refused(self, client, place_order):
        order = place_order()
        reference = _initiate(client, order["order_id"], "cash")["action"]["external_reference"]
        assert _webhook(client, reference, {"approved": True}, method="cash").status_code == 401
