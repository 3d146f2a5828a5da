"""Integration tests for the coupon administration endpoints."""

from datetime import UTC, datetime, timedelta


def _coupon(**overrides):
    now = datetime.now(UTC)
    payload = {
        "code": "spring15",
        "name": "Spring sale",
        "coupon_type": "percentage",
        "value": 15.0,
        "max_discount_amount": 100.0,
        "usage_limit": 10,
        "starts_at": (now - timedelta(days=1)).isoformat(),
        "ends_at": (now + timedelta(days=14)).isoformat(),
    }
    payload.update(overrides)
    return payload


class TestCouponApi:
    def test_create_and_get(self, client):
        created = client.post("/coupons", json=_coupon())
        assert created.status_code == 201
        assert created.json()["code"] == "SPRING15"

        response = client.get("/coupons/spring15")
        assert response.status_code == 200
        assert response.json()["usage_limit"] == 10

    def test_percentage_over_hundred(self, client):
        assert client.post("/coupons", json=_coupon(value=150.0)).status_code == 400

    def test_update(self, client):
        client.post("/coupons", json=_coupon())
        response = client.patch("/coupons/SPRING15", json={"changes": {"usage_limit": 20}})
        assert response.status_code == 200
        assert response.json()["usage_limit"] == 20

    def test_update_unknown_field(self, client):
        client.post("/coupons", json=_coupon())
        response = client.patch("/coupons/SPRING15", json={"changes": {"usage_count": 0}})
        assert response.status_code == 400

    def test_deactivate_hides_from_available(self, client):
        client.post("/coupons", json=_coupon())
        assert [c["code"] for c in client.get("/coupons/available/cust-001").json()] == ["SPRING15"]

        response = client.put("/coupons/SPRING15/active", json={"is_active": False})

        assert response.json()["is_active"] is False
        assert client.get("/coupons/available/cust-001").json() == []

    def test_missing_coupon(self, client):
        assert client.get("/coupons/NOPE").status_code == 404

    def test_usage_counted_after_payment(self, client, place_order, pay_via_api):
        client.post("/coupons", json=_coupon())
        order = place_order(coupon_code="SPRING15")
        assert order["pricing"]["coupon_discount"] == 100.0

        pay_via_api(order["order_id"])

        assert client.get("/coupons/SPRING15").json()["usage_count"] == 1
