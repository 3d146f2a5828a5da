"""Pydantic request/response schemas for the Settlement API.

These are external contracts, kept separate from the internal Protean
commands and aggregates.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    street: str
    city: str
    state: str | None = None
    postal_code: str | None = None
    country: str


class PricingSchema(BaseModel):
    base_price: float
    service_discount_percent: float
    service_discount: float
    coupon_code: str | None = None
    coupon_discount: float
    tax_percent: float
    tax_amount: float
    platform_fee: float
    total_amount: float
    currency: str


class PayoutDestinationSchema(BaseModel):
    method: str  # bank_transfer, mobile_banking, paypal, card_network
    account_name: str | None = None
    account_number: str | None = None
    bank_name: str | None = None
    routing_number: str | None = None
    mobile_provider: str | None = None
    mobile_number: str | None = None
    email: str | None = None


# ---------------------------------------------------------------------------
# Order Schemas
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    customer_id: str
    service_id: str
    vendor_id: str
    scheduled_at: datetime
    scheduled_slot: str | None = None
    address: AddressSchema
    coupon_code: str | None = None
    notes: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "service_id": "svc-001",
                    "vendor_id": "vendor-001",
                    "scheduled_at": "2030-01-15T10:00:00Z",
                    "scheduled_slot": "10:00-12:00",
                    "address": {"street": "1 Main St", "city": "Springfield", "country": "US"},
                    "coupon_code": "SAVE20",
                }
            ]
        }
    }


class VersionedRequest(BaseModel):
    expected_version: int = Field(ge=0)


class RejectOrderRequest(VersionedRequest):
    reason: str


class CancelOrderRequest(VersionedRequest):
    reason: str
    cancelled_by: str  # customer, vendor, admin


class RescheduleOrderRequest(VersionedRequest):
    scheduled_at: datetime
    scheduled_slot: str | None = None
    rescheduled_by: str
    reason: str | None = None


class ApplyCouponRequest(VersionedRequest):
    coupon_code: str


class OrderResponse(BaseModel):
    order_id: str
    customer_id: str
    vendor_id: str
    service_id: str
    status: str
    payment_status: str
    version: int
    scheduled_at: datetime
    scheduled_slot: str | None = None
    pricing: PricingSchema
    payment_transaction_id: str | None = None


# ---------------------------------------------------------------------------
# Payment Schemas
# ---------------------------------------------------------------------------
class InitiatePaymentRequest(BaseModel):
    order_id: str
    payment_method: str  # card, hosted_checkout, cash, bank_transfer


class ClientActionResponse(BaseModel):
    kind: str
    external_reference: str
    amount: float
    currency: str
    redirect_url: str | None = None
    client_secret: str | None = None
    upload_token: str | None = None
    expires_at: datetime | None = None


class TransactionResultResponse(BaseModel):
    transaction_id: str
    order_id: str
    external_reference: str | None = None
    status: str
    amount: float
    commission_amount: float = 0.0
    vendor_amount: float = 0.0
    failure_reason: str | None = None
    replayed: bool = False


class PaymentInitiationResponse(BaseModel):
    transaction: TransactionResultResponse
    action: ClientActionResponse


class PaymentWebhookRequest(BaseModel):
    external_reference: str
    outcome: dict = {}


class SubmitProofRequest(BaseModel):
    proof_reference: str
    upload_token: str | None = None


class VerifyPaymentRequest(BaseModel):
    admin_id: str
    approved: bool
    note: str | None = None


# ---------------------------------------------------------------------------
# Refund Schemas
# ---------------------------------------------------------------------------
class RequestRefundRequest(BaseModel):
    order_id: str
    customer_id: str
    amount: float = Field(gt=0)
    reason: str


class AdminDecisionRequest(BaseModel):
    admin_id: str


class AdminRejectionRequest(BaseModel):
    admin_id: str
    reason: str


class RefundResponse(BaseModel):
    refund_id: str
    order_id: str
    amount: float
    status: str
    rejection_reason: str | None = None
    transaction_id: str | None = None


# ---------------------------------------------------------------------------
# Payout Schemas
# ---------------------------------------------------------------------------
class RequestPayoutRequest(BaseModel):
    vendor_id: str
    amount: float = Field(gt=0)
    destination: PayoutDestinationSchema
    notes: str | None = None


class MarkPayoutPaidRequest(BaseModel):
    payout_reference: str


class PayoutResponse(BaseModel):
    payout_id: str
    vendor_id: str
    amount: float
    status: str
    rejection_reason: str | None = None
    transaction_id: str | None = None
    payout_reference: str | None = None


# ---------------------------------------------------------------------------
# Coupon Schemas
# ---------------------------------------------------------------------------
class CreateCouponRequest(BaseModel):
    code: str
    name: str
    description: str | None = None
    coupon_type: str  # percentage, fixed, free_delivery
    value: float = Field(ge=0)
    max_discount_amount: float = 0.0
    min_order_amount: float = 0.0
    usage_limit: int = 0
    user_usage_limit: int = 1
    starts_at: datetime
    ends_at: datetime
    applicable_service_ids: list[str] = []
    applicable_vendor_ids: list[str] = []
    applicable_user_ids: list[str] = []
    first_order_only: bool = False
    created_by: str | None = None


class UpdateCouponRequest(BaseModel):
    changes: dict


class SetCouponActiveRequest(BaseModel):
    is_active: bool


class CouponResponse(BaseModel):
    code: str
    name: str
    coupon_type: str
    value: float
    usage_count: int
    usage_limit: int
    is_active: bool
    starts_at: datetime
    ends_at: datetime


# ---------------------------------------------------------------------------
# Ledger Schemas
# ---------------------------------------------------------------------------
class TransactionResponse(BaseModel):
    transaction_id: str
    transaction_type: str
    status: str
    order_id: str | None = None
    vendor_id: str
    amount: float
    commission_amount: float
    vendor_amount: float
    payment_method: str | None = None
    external_reference: str | None = None
    created_at: datetime | None = None


class VendorBalanceResponse(BaseModel):
    vendor_id: str
    available_balance: float
    counter_balance: float
    drift: float
    is_balanced: bool
