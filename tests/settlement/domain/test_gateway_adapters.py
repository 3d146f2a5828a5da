"""Tests for the payment gateway adapters and the method registry."""

from types import SimpleNamespace

import pytest
from protean.exceptions import ValidationError

from settlement.gateway import get_gateway, resolve_method, set_gateway
from settlement.gateway.card_intent import CardIntentGateway
from settlement.gateway.fake_adapter import FakeGateway
from settlement.gateway.hosted_redirect import HostedRedirectGateway
from settlement.gateway.manual_proof import ManualProofGateway
from settlement.gateway.port import ActionKind, PaymentGatewayAdapter, PaymentMethod


def _order(total=807.5):
    return SimpleNamespace(id="order-001", total_amount=total, pricing=SimpleNamespace(currency="USD"))


class TestRegistry:
    def test_resolve_known_methods(self):
        assert resolve_method("card") == PaymentMethod.CARD
        assert resolve_method(PaymentMethod.CASH) == PaymentMethod.CASH

    def test_unknown_method_is_validation_error(self):
        with pytest.raises(ValidationError) as exc:
            resolve_method("barter")
        assert "payment_method" in exc.value.messages

    def test_default_variants(self):
        assert isinstance(get_gateway("card"), CardIntentGateway)
        assert isinstance(get_gateway("hosted_checkout"), HostedRedirectGateway)
        assert get_gateway("cash") is get_gateway("bank_transfer")
        assert get_gateway("cash").requires_manual_verification

    def test_override(self):
        fake = FakeGateway()
        set_gateway("hosted_checkout", fake)
        assert get_gateway("hosted_checkout") is fake


class TestCardIntentGateway:
    @pytest.fixture
    def gateway(self):
        return CardIntentGateway(api_key="sk_test", webhook_secret="whsec")

    def test_initiate_returns_client_secret(self, gateway):
        ref = gateway.new_reference()
        action = gateway.initiate(_order(), ref)
        assert ref.startswith("pi_")
        assert action.kind == ActionKind.CLIENT_SECRET
        assert action.client_secret.startswith(f"{ref}_secret_")
        assert action.amount == 807.5

    def test_confirm_succeeded(self, gateway):
        outcome = gateway.confirm("pi_1", {"status": "succeeded", "charge_id": "ch_1", "amount": 807.5})
        assert outcome.success
        assert outcome.gateway_transaction_id == "ch_1"

    def test_confirm_failed(self, gateway):
        outcome = gateway.confirm("pi_1", {"status": "failed", "failure_message": "Insufficient funds"})
        assert not outcome.success
        assert outcome.failure_reason == "Insufficient funds"

    def test_confirm_unknown_status(self, gateway):
        assert not gateway.confirm("pi_1", {}).success

    def test_webhook_signature(self, gateway):
        body = '{"external_reference": "pi_1"}'
        assert gateway.verify_webhook_signature(body, PaymentGatewayAdapter.sign("whsec", body))
        assert not gateway.verify_webhook_signature(body, "forged")
        assert not gateway.verify_webhook_signature(body, "")


class TestHostedRedirectGateway:
    @pytest.fixture
    def gateway(self):
        return HostedRedirectGateway(base_url="https://pay.example.com/checkout/", store_id="store", store_secret="s3")

    def test_initiate_builds_signed_redirect(self, gateway):
        action = gateway.initiate(_order(), "hc_1")
        assert action.kind == ActionKind.REDIRECT
        assert action.redirect_url.startswith("https://pay.example.com/checkout?")
        assert "tran_id=hc_1" in action.redirect_url
        assert "amount=807.50" in action.redirect_url
        assert "signature=" in action.redirect_url

    def test_valid_callback(self, gateway):
        outcome = gateway.confirm("hc_1", {"status": "VALID", "val_id": "v-9", "amount": "807.50", "tran_id": "hc_1"})
        assert outcome.success
        assert outcome.amount == 807.5

    def test_reference_mismatch_fails(self, gateway):
        outcome = gateway.confirm("hc_1", {"status": "VALID", "tran_id": "hc_2"})
        assert not outcome.success
        assert outcome.failure_reason == "Callback reference mismatch"

    def test_cancelled_callback(self, gateway):
        outcome = gateway.confirm("hc_1", {"status": "CANCELLED"})
        assert not outcome.success
        assert outcome.failure_reason == "Hosted checkout cancelled"


class TestManualProofGateway:
    @pytest.fixture
    def gateway(self):
        return ManualProofGateway(signing_secret="proof")

    def test_initiate_issues_upload_token(self, gateway):
        action = gateway.initiate(_order(), "mp_1")
        assert action.kind == ActionKind.UPLOAD_PROOF
        assert action.upload_token == gateway.upload_token("mp_1")

    def test_confirm_requires_admin(self, gateway):
        outcome = gateway.confirm("mp_1", {"approved": True})
        assert not outcome.success
        assert outcome.gateway_status == "unverified"

    def test_admin_approval(self, gateway):
        outcome = gateway.confirm("mp_1", {"approved": True, "verified_by": "admin-001"})
        assert outcome.success
        assert outcome.verified_by == "admin-001"

    def test_admin_rejection(self, gateway):
        outcome = gateway.confirm("mp_1", {"approved": False, "verified_by": "admin-001", "note": "Blurry receipt"})
        assert not outcome.success
        assert outcome.failure_reason == "Blurry receipt"

    def test_webhooks_never_verified(self, gateway):
        assert not gateway.verify_webhook_signature("{}", "anything")
