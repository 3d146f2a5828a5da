"""Settlement domain API package."""

from settlement.api.routes import (
    coupon_router,
    ledger_router,
    order_router,
    payment_router,
    payout_router,
    refund_router,
)

__all__ = ["order_router", "payment_router", "refund_router", "payout_router", "coupon_router", "ledger_router"]
