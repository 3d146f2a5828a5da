"""Integration tests for the refund, payout and ledger endpoints."""

import pytest

BANK = {"method": "bank_transfer", "account_name": "Acme Cleaning", "account_number": "0012345", "bank_name": "First Bank"}


@pytest.fixture()
def paid_order_id(place_order, pay_via_api):
    order = place_order()
    pay_via_api(order["order_id"])
    return order["order_id"]


def _request_refund(client, order_id, amount, reason="Arrived late"):
    return client.post(
        "/refunds",
        json={"order_id": order_id, "customer_id": "cust-001", "amount": amount, "reason": reason},
    )


class TestRefundApi:
    def test_request_and_approve(self, client, paid_order_id):
        created = _request_refund(client, paid_order_id, 200.0)
        assert created.status_code == 201
        refund_id = created.json()["refund_id"]
        assert [r["refund_id"] for r in client.get("/refunds").json()] == [refund_id]

        approved = client.post(f"/refunds/{refund_id}/approve", json={"admin_id": "admin-001"})

        assert approved.status_code == 200
        assert approved.json()["status"] == "processed"
        assert approved.json()["transaction_id"] is not None
        order = client.get(f"/orders/{paid_order_id}").json()
        assert order["payment_status"] == "partially_refunded"

    def test_refund_beyond_remaining(self, client, paid_order_id):
        first = _request_refund(client, paid_order_id, 900.0).json()["refund_id"]
        second = _request_refund(client, paid_order_id, 100.0).json()["refund_id"]
        client.post(f"/refunds/{first}/approve", json={"admin_id": "admin-001"})

        response = client.post(f"/refunds/{second}/approve", json={"admin_id": "admin-001"})

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "exceeds_refundable"

    def test_unpaid_order(self, client, place_order):
        order = place_order()
        assert _request_refund(client, order["order_id"], 10.0).status_code == 409

    def test_non_positive_amount_rejected_by_schema(self, client, paid_order_id):
        assert _request_refund(client, paid_order_id, 0).status_code == 422

    def test_reject(self, client, paid_order_id):
        refund_id = _request_refund(client, paid_order_id, 50.0).json()["refund_id"]
        response = client.post(
            f"/refunds/{refund_id}/reject",
            json={"admin_id": "admin-001", "reason": "Service delivered as booked"},
        )
        assert response.json()["status"] == "rejected"
        assert response.json()["rejection_reason"] == "Service delivered as booked"


class TestPayoutApi:
    def test_request_approve_and_pay(self, client, paid_order_id):
        created = client.post("/payouts", json={"vendor_id": "vendor-001", "amount": 500.0, "destination": BANK})
        assert created.status_code == 201
        payout_id = created.json()["payout_id"]

        approved = client.post(f"/payouts/{payout_id}/approve", json={"admin_id": "admin-001"})
        assert approved.json()["status"] == "approved"
        paid = client.post(f"/payouts/{payout_id}/paid", json={"payout_reference": "BANK-REF-42"})

        assert paid.json()["status"] == "paid"
        assert paid.json()["payout_reference"] == "BANK-REF-42"
        payouts = client.get("/payouts/vendor/vendor-001").json()
        assert [p["payout_id"] for p in payouts] == [payout_id]

    def test_over_balance(self, client, paid_order_id):
        response = client.post("/payouts", json={"vendor_id": "vendor-001", "amount": 5000.0, "destination": BANK})
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "insufficient_balance"

    def test_approval_rechecks_balance(self, client, paid_order_id):
        first = client.post("/payouts", json={"vendor_id": "vendor-001", "amount": 600.0, "destination": BANK}).json()
        second = client.post("/payouts", json={"vendor_id": "vendor-001", "amount": 600.0, "destination": BANK}).json()
        client.post(f"/payouts/{first['payout_id']}/approve", json={"admin_id": "admin-001"})

        response = client.post(f"/payouts/{second['payout_id']}/approve", json={"admin_id": "admin-001"})

        assert response.status_code == 409
        statuses = {p["payout_id"]: p["status"] for p in client.get("/payouts/vendor/vendor-001").json()}
        assert statuses[second["payout_id"]] == "rejected"

    def test_reject(self, client, paid_order_id):
        payout_id = client.post(
            "/payouts", json={"vendor_id": "vendor-001", "amount": 100.0, "destination": BANK}
        ).json()["payout_id"]
        response = client.post(
            f"/payouts/{payout_id}/reject",
            json={"admin_id": "admin-001", "reason": "Bank details unverified"},
        )
        assert response.json()["status"] == "rejected"


class TestLedgerApi:
    def test_vendor_balance_after_activity(self, client, paid_order_id):
        refund_id = _request_refund(client, paid_order_id, 100.0).json()["refund_id"]
        client.post(f"/refunds/{refund_id}/approve", json={"admin_id": "admin-001"})

        balance = client.get("/ledger/vendors/vendor-001/balance").json()

        assert balance["available_balance"] == 778.5
        assert balance["counter_balance"] == 778.5
        assert balance["is_balanced"] is True
        rows = client.get("/ledger/vendors/vendor-001/transactions").json()
        assert [r["transaction_type"] for r in rows] == ["payment", "refund"]

    def test_get_transaction(self, client, paid_order_id):
        payment_id = client.get(f"/orders/{paid_order_id}").json()["payment_transaction_id"]
        response = client.get(f"/ledger/transactions/{payment_id}")
        assert response.status_code == 200
        assert response.json()["amount"] == 965.0

    def test_missing_transaction(self, client):
        assert client.get("/ledger/transactions/missing").status_code == 404
