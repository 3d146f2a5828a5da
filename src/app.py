"""Settlement FastAPI application.

Processes commands synchronously over HTTP. Each request runs inside the
settlement domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from settlement.domain import logger, settlement
from settlement.utils.logging import bind_context, clear_context

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# Initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the domain.toml overlay.
settlement.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Settlement API",
    description="Marketplace order settlement: orders, payments, ledger, refunds and payouts",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_UNSCOPED_PATHS = ("/health", "/docs", "/openapi.json", "/redoc")


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the settlement domain context and a request id for each request."""
    if request.url.path.startswith(_UNSCOPED_PATHS):
        return await call_next(request)

    clear_context()
    bind_context(request_id=request.headers.get("x-request-id") or str(uuid.uuid4()))
    with settlement.domain_context():
        response = await call_next(request)
    if response.status_code >= 500:
        logger.error("Request failed", method=request.method, path=request.url.path, status=response.status_code)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from settlement.api import (  # noqa: E402
    coupon_router,
    ledger_router,
    order_router,
    payment_router,
    payout_router,
    refund_router,
)

app.include_router(order_router)
app.include_router(payment_router)
app.include_router(refund_router)
app.include_router(payout_router)
app.include_router(coupon_router)
app.include_router(ledger_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": {"name": settlement.name}})
