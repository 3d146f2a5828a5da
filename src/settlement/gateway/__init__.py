"""Payment gateway registry.

Maps each payment method to a ``PaymentGatewayAdapter`` variant:

- card            → CardIntentGateway
- hosted_checkout → HostedRedirectGateway
- cash, bank_transfer → ManualProofGateway

get_gateway() / set_gateway() / reset_gateway() let tests swap in a
FakeGateway for any method.
"""

from protean.exceptions import ValidationError

from settlement.config import get_settings
from settlement.gateway.card_intent import CardIntentGateway
from settlement.gateway.hosted_redirect import HostedRedirectGateway
from settlement.gateway.manual_proof import ManualProofGateway
from settlement.gateway.port import PaymentGatewayAdapter, PaymentMethod

_gateways: dict[PaymentMethod, PaymentGatewayAdapter] = {}


def _default_gateways() -> dict[PaymentMethod, PaymentGatewayAdapter]:
    settings = get_settings()
    manual = ManualProofGateway(signing_secret=settings.manual_proof_secret)
    return {
        PaymentMethod.CARD: CardIntentGateway(
            api_key=settings.card_api_key,
            webhook_secret=settings.card_webhook_secret,
        ),
        PaymentMethod.HOSTED_CHECKOUT: HostedRedirectGateway(
            base_url=settings.hosted_checkout_url,
            store_id=settings.hosted_store_id,
            store_secret=settings.hosted_store_secret,
        ),
        PaymentMethod.CASH: manual,
        PaymentMethod.BANK_TRANSFER: manual,
    }


def resolve_method(method) -> PaymentMethod:
    try:
        return PaymentMethod(method.value if isinstance(method, PaymentMethod) else method)
    except ValueError:
        choices = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError({"payment_method": [f"Unsupported payment method '{method}'. Use one of: {choices}"]})


def get_gateway(method) -> PaymentGatewayAdapter:
    """Return the gateway serving ``method``."""
    if not _gateways:
        _gateways.update(_default_gateways())
    return _gateways[resolve_method(method)]


def set_gateway(method, gateway: PaymentGatewayAdapter) -> None:
    """Override the gateway for one payment method (useful for tests)."""
    if not _gateways:
        _gateways.update(_default_gateways())
    _gateways[resolve_method(method)] = gateway


def reset_gateway() -> None:
    """Reset to the configured gateways."""
    _gateways.clear()
