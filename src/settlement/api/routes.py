"""FastAPI routes for the Settlement domain.

Routers call the result-returning facades; an ``Err`` becomes an HTTP error
whose status depends on its kind.
"""

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import ValidationError

from settlement.api.schemas import (
    AdminDecisionRequest,
    AdminRejectionRequest,
    ApplyCouponRequest,
    CancelOrderRequest,
    ClientActionResponse,
    CouponResponse,
    CreateCouponRequest,
    CreateOrderRequest,
    InitiatePaymentRequest,
    MarkPayoutPaidRequest,
    OrderResponse,
    PaymentInitiationResponse,
    PaymentWebhookRequest,
    PayoutResponse,
    PricingSchema,
    RefundResponse,
    RejectOrderRequest,
    RequestPayoutRequest,
    RequestRefundRequest,
    RescheduleOrderRequest,
    SetCouponActiveRequest,
    SubmitProofRequest,
    TransactionResponse,
    TransactionResultResponse,
    UpdateCouponRequest,
    VendorBalanceResponse,
    VerifyPaymentRequest,
    VersionedRequest,
)
from settlement.coupon.management import CouponAdmin
from settlement.coupon.validator import CouponValidator
from settlement.gateway import get_gateway
from settlement.ledger.ledger import TransactionLedger
from settlement.order.lifecycle import OrderLifecycleManager
from settlement.payment.capture import PaymentCapture
from settlement.payout.batching import PayoutBatcher
from settlement.refund.workflow import RefundWorkflow
from settlement.shared.results import ErrorKind, capture

_STATUS_FOR_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.BUSINESS_RULE: 409,
    ErrorKind.CONCURRENT_MODIFICATION: 409,
    ErrorKind.GATEWAY_FAILURE: 502,
    ErrorKind.NOT_FOUND: 404,
}


def _unwrap(result):
    if result.is_ok:
        return result.value
    raise HTTPException(
        status_code=_STATUS_FOR_KIND[result.kind],
        detail={
            "kind": result.kind.value,
            "message": result.message,
            "code": result.code,
            "details": result.details,
        },
    )


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------
def _order_response(order) -> OrderResponse:
    pricing = order.pricing
    return OrderResponse(
        order_id=str(order.id),
        customer_id=str(order.customer_id),
        vendor_id=str(order.vendor_id),
        service_id=str(order.service_id),
        status=order.status,
        payment_status=order.payment_status,
        version=order.version,
        scheduled_at=order.scheduled_at,
        scheduled_slot=order.scheduled_slot,
        pricing=PricingSchema(
            base_price=pricing.base_price,
            service_discount_percent=pricing.service_discount_percent,
            service_discount=pricing.service_discount,
            coupon_code=pricing.coupon_code,
            coupon_discount=pricing.coupon_discount,
            tax_percent=pricing.tax_percent,
            tax_amount=pricing.tax_amount,
            platform_fee=pricing.platform_fee,
            total_amount=pricing.total_amount,
            currency=pricing.currency,
        ),
        payment_transaction_id=str(order.payment_transaction_id) if order.payment_transaction_id else None,
    )


def _result_response(result) -> TransactionResultResponse:
    return TransactionResultResponse(
        transaction_id=result.transaction_id,
        order_id=result.order_id,
        external_reference=result.external_reference,
        status=result.status,
        amount=result.amount,
        commission_amount=result.commission_amount,
        vendor_amount=result.vendor_amount,
        failure_reason=result.failure_reason,
        replayed=result.replayed,
    )


def _transaction_response(txn) -> TransactionResponse:
    return TransactionResponse(
        transaction_id=str(txn.id),
        transaction_type=txn.transaction_type,
        status=txn.status,
        order_id=str(txn.order_id) if txn.order_id else None,
        vendor_id=str(txn.vendor_id),
        amount=txn.amount,
        commission_amount=txn.commission_amount or 0.0,
        vendor_amount=txn.vendor_amount or 0.0,
        payment_method=txn.payment_method,
        external_reference=txn.external_reference,
        created_at=txn.created_at,
    )


def _refund_response(refund) -> RefundResponse:
    return RefundResponse(
        refund_id=str(refund.id),
        order_id=str(refund.order_id),
        amount=refund.amount,
        status=refund.status,
        rejection_reason=refund.rejection_reason,
        transaction_id=str(refund.transaction_id) if refund.transaction_id else None,
    )


def _payout_response(payout) -> PayoutResponse:
    return PayoutResponse(
        payout_id=str(payout.id),
        vendor_id=str(payout.vendor_id),
        amount=payout.amount,
        status=payout.status,
        rejection_reason=payout.rejection_reason,
        transaction_id=str(payout.transaction_id) if payout.transaction_id else None,
        payout_reference=payout.payout_reference,
    )


def _action_response(action) -> ClientActionResponse:
    return ClientActionResponse(
        kind=action.kind.value,
        external_reference=action.external_reference,
        amount=action.amount,
        currency=action.currency,
        redirect_url=action.redirect_url,
        client_secret=action.client_secret,
        upload_token=action.upload_token,
        expires_at=action.expires_at,
    )


def _coupon_response(coupon) -> CouponResponse:
    return CouponResponse(
        code=coupon.code,
        name=coupon.name,
        coupon_type=coupon.coupon_type,
        value=coupon.value,
        usage_count=coupon.usage_count,
        usage_limit=coupon.usage_limit,
        is_active=coupon.is_active,
        starts_at=coupon.starts_at,
        ends_at=coupon.ends_at,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(body: CreateOrderRequest) -> OrderResponse:
    """Price and place a booking."""
    order = _unwrap(
        OrderLifecycleManager().create_order(
            customer_id=body.customer_id,
            service_id=body.service_id,
            vendor_id=body.vendor_id,
            scheduled_at=body.scheduled_at,
            address=body.address.model_dump(),
            scheduled_slot=body.scheduled_slot,
            coupon_code=body.coupon_code,
            notes=body.notes,
        )
    )
    return _order_response(order)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return _order_response(_unwrap(OrderLifecycleManager().get_order(order_id)))


@order_router.post("/{order_id}/accept", response_model=OrderResponse)
async def accept_order(order_id: str, body: VersionedRequest) -> OrderResponse:
    return _order_response(_unwrap(OrderLifecycleManager().accept(order_id, body.expected_version)))


@order_router.post("/{order_id}/reject", response_model=OrderResponse)
async def reject_order(order_id: str, body: RejectOrderRequest) -> OrderResponse:
    return _order_response(_unwrap(OrderLifecycleManager().reject(order_id, body.expected_version, body.reason)))


@order_router.post("/{order_id}/start", response_model=OrderResponse)
async def start_order(order_id: str, body: VersionedRequest) -> OrderResponse:
    return _order_response(_unwrap(OrderLifecycleManager().start(order_id, body.expected_version)))


@order_router.post("/{order_id}/complete", response_model=OrderResponse)
async def complete_order(order_id: str, body: VersionedRequest) -> OrderResponse:
    return _order_response(_unwrap(OrderLifecycleManager().complete(order_id, body.expected_version)))


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest) -> OrderResponse:
    return _order_response(
        _unwrap(OrderLifecycleManager().cancel(order_id, body.expected_version, body.reason, body.cancelled_by))
    )


@order_router.post("/{order_id}/reschedule", response_model=OrderResponse)
async def reschedule_order(order_id: str, body: RescheduleOrderRequest) -> OrderResponse:
    order = _unwrap(
        OrderLifecycleManager().reschedule(
            order_id,
            body.expected_version,
            body.scheduled_at,
            body.rescheduled_by,
            scheduled_slot=body.scheduled_slot,
            reason=body.reason,
        )
    )
    return _order_response(order)


@order_router.post("/{order_id}/coupon", response_model=OrderResponse)
async def apply_coupon(order_id: str, body: ApplyCouponRequest) -> OrderResponse:
    return _order_response(
        _unwrap(OrderLifecycleManager().apply_coupon(order_id, body.expected_version, body.coupon_code))
    )


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("", status_code=201, response_model=PaymentInitiationResponse)
async def initiate_payment(body: InitiatePaymentRequest) -> PaymentInitiationResponse:
    """Open a payment attempt and return what the client must do next."""
    initiation = _unwrap(PaymentCapture().initiate(body.order_id, body.payment_method))
    return PaymentInitiationResponse(
        transaction=_result_response(initiation.transaction),
        action=_action_response(initiation.action),
    )


@payment_router.post("/webhook/{method}", response_model=TransactionResultResponse)
async def payment_webhook(
    method: str,
    request: Request,
    x_gateway_signature: str = Header(default=""),
) -> TransactionResultResponse:
    """Gateway callback confirming or declining a payment. Safe to deliver more than once."""
    raw = (await request.body()).decode()
    gateway = _unwrap(capture(lambda: get_gateway(method)))
    if not gateway.verify_webhook_signature(raw, x_gateway_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        body = PaymentWebhookRequest.model_validate_json(raw)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors()) from exc

    attempt = TransactionLedger().by_external_reference(body.external_reference)
    if attempt is not None and get_gateway(attempt.payment_method) is not gateway:
        raise HTTPException(
            status_code=401,
            detail=f"Webhook for {method} cannot settle a {attempt.payment_method} payment",
        )

    return _result_response(_unwrap(PaymentCapture().confirm(body.external_reference, body.outcome)))


@payment_router.post("/{external_reference}/proof", response_model=TransactionResultResponse)
async def submit_payment_proof(external_reference: str, body: SubmitProofRequest) -> TransactionResultResponse:
    """Attach a cash or bank-transfer receipt to a manual payment attempt."""
    result = _unwrap(PaymentCapture().submit_proof(external_reference, body.proof_reference, body.upload_token))
    return _result_response(result)


@payment_router.post("/{external_reference}/verify", response_model=TransactionResultResponse)
async def verify_manual_payment(external_reference: str, body: VerifyPaymentRequest) -> TransactionResultResponse:
    result = _unwrap(
        PaymentCapture().verify_manual_payment(external_reference, body.admin_id, body.approved, body.note)
    )
    return _result_response(result)


@payment_router.get("/pending-verification", response_model=list[TransactionResultResponse])
async def pending_verifications() -> list[TransactionResultResponse]:
    return [_result_response(r) for r in PaymentCapture().pending_verifications()]


# ---------------------------------------------------------------------------
# Refund Router
# ---------------------------------------------------------------------------
refund_router = APIRouter(prefix="/refunds", tags=["refunds"])


@refund_router.post("", status_code=201, response_model=RefundResponse)
async def request_refund(body: RequestRefundRequest) -> RefundResponse:
    refund = _unwrap(RefundWorkflow().request(body.order_id, body.customer_id, body.amount, body.reason))
    return _refund_response(refund)


@refund_router.get("", response_model=list[RefundResponse])
async def pending_refunds() -> list[RefundResponse]:
    return [_refund_response(r) for r in RefundWorkflow().pending()]


@refund_router.post("/{refund_id}/approve", response_model=RefundResponse)
async def approve_refund(refund_id: str, body: AdminDecisionRequest) -> RefundResponse:
    return _refund_response(_unwrap(RefundWorkflow().approve(refund_id, body.admin_id)))


@refund_router.post("/{refund_id}/reject", response_model=RefundResponse)
async def reject_refund(refund_id: str, body: AdminRejectionRequest) -> RefundResponse:
    return _refund_response(_unwrap(RefundWorkflow().reject(refund_id, body.admin_id, body.reason)))


# ---------------------------------------------------------------------------
# Payout Router
# ---------------------------------------------------------------------------
payout_router = APIRouter(prefix="/payouts", tags=["payouts"])


@payout_router.post("", status_code=201, response_model=PayoutResponse)
async def request_payout(body: RequestPayoutRequest) -> PayoutResponse:
    payout = _unwrap(
        PayoutBatcher().request(
            body.vendor_id,
            body.amount,
            body.destination.model_dump(exclude_none=True),
            notes=body.notes,
        )
    )
    return _payout_response(payout)


@payout_router.get("/vendor/{vendor_id}", response_model=list[PayoutResponse])
async def vendor_payouts(vendor_id: str) -> list[PayoutResponse]:
    return [_payout_response(p) for p in PayoutBatcher().payouts_for_vendor(vendor_id)]


@payout_router.post("/{payout_id}/approve", response_model=PayoutResponse)
async def approve_payout(payout_id: str, body: AdminDecisionRequest) -> PayoutResponse:
    return _payout_response(_unwrap(PayoutBatcher().approve(payout_id, body.admin_id)))


@payout_router.post("/{payout_id}/reject", response_model=PayoutResponse)
async def reject_payout(payout_id: str, body: AdminRejectionRequest) -> PayoutResponse:
    return _payout_response(_unwrap(PayoutBatcher().reject(payout_id, body.admin_id, body.reason)))


@payout_router.post("/{payout_id}/paid", response_model=PayoutResponse)
async def mark_payout_paid(payout_id: str, body: MarkPayoutPaidRequest) -> PayoutResponse:
    return _payout_response(_unwrap(PayoutBatcher().mark_paid(payout_id, body.payout_reference)))


# ---------------------------------------------------------------------------
# Coupon Router
# ---------------------------------------------------------------------------
coupon_router = APIRouter(prefix="/coupons", tags=["coupons"])


@coupon_router.post("", status_code=201, response_model=CouponResponse)
async def create_coupon(body: CreateCouponRequest) -> CouponResponse:
    fields = body.model_dump()
    coupon = _unwrap(
        CouponAdmin().create(
            fields.pop("code"),
            fields.pop("name"),
            fields.pop("coupon_type"),
            fields.pop("value"),
            fields.pop("starts_at"),
            fields.pop("ends_at"),
            **fields,
        )
    )
    return _coupon_response(coupon)


@coupon_router.get("/available/{user_id}", response_model=list[CouponResponse])
async def available_coupons(user_id: str) -> list[CouponResponse]:
    return [_coupon_response(c) for c in CouponValidator().available_for(user_id)]


@coupon_router.get("/{code}", response_model=CouponResponse)
async def get_coupon(code: str) -> CouponResponse:
    return _coupon_response(_unwrap(CouponAdmin().get(code)))


@coupon_router.patch("/{code}", response_model=CouponResponse)
async def update_coupon(code: str, body: UpdateCouponRequest) -> CouponResponse:
    return _coupon_response(_unwrap(CouponAdmin().update(code, **body.changes)))


@coupon_router.put("/{code}/active", response_model=CouponResponse)
async def set_coupon_active(code: str, body: SetCouponActiveRequest) -> CouponResponse:
    return _coupon_response(_unwrap(CouponAdmin().set_active(code, body.is_active)))


# ---------------------------------------------------------------------------
# Ledger Router (read-only)
# ---------------------------------------------------------------------------
ledger_router = APIRouter(prefix="/ledger", tags=["ledger"])


@ledger_router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(transaction_id: str) -> TransactionResponse:
    return _transaction_response(_unwrap(capture(lambda: TransactionLedger().get_transaction(transaction_id))))


@ledger_router.get("/orders/{order_id}", response_model=list[TransactionResponse])
async def order_transactions(order_id: str) -> list[TransactionResponse]:
    return [_transaction_response(t) for t in TransactionLedger().transactions_for_order(order_id)]


@ledger_router.get("/vendors/{vendor_id}/balance", response_model=VendorBalanceResponse)
async def vendor_balance(vendor_id: str) -> VendorBalanceResponse:
    report = TransactionLedger().reconcile_vendor(vendor_id)
    return VendorBalanceResponse(
        vendor_id=vendor_id,
        available_balance=float(report.ledger_balance),
        counter_balance=float(report.counter_balance),
        drift=float(report.drift),
        is_balanced=report.is_balanced,
    )


@ledger_router.get("/vendors/{vendor_id}/transactions", response_model=list[TransactionResponse])
async def vendor_transactions(vendor_id: str) -> list[TransactionResponse]:
    return [_transaction_response(t) for t in TransactionLedger().transactions_for_vendor(vendor_id)]
