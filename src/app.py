"""Settlement FastAPI application.

Web server that processes settlement commands synchronously via HTTP. Each
request under a settlement route is wrapped in the settlement domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

import uuid

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → event_processing = "sync"
#   - "production" → event_processing = "async"
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers
from settlement.domain import settlement
from settlement.utils.logging import bind_request_context, clear_request_context, configure_logging

configure_logging()
settlement.init()

_SETTLEMENT_PREFIXES = (
    "/orders",
    "/payments",
    "/webhooks",
    "/payouts",
    "/sellers",
    "/returns",
    "/promo-codes",
)


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Settlement API",
    description="Marketplace order settlement, seller payouts, and returns",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the settlement domain context and bind a request id for logging."""
    if not request.url.path.startswith(_SETTLEMENT_PREFIXES):
        # Health check, docs, etc.
        return await call_next(request)

    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    bind_request_context(request_id=request_id, path=request.url.path)
    try:
        with settlement.domain_context():
            response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["x-request-id"] = request_id
    return response


register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from settlement.api import (  # noqa: E402
    order_router,
    payment_router,
    payout_router,
    promo_router,
    return_router,
    seller_router,
    webhook_router,
)

app.include_router(order_router)
app.include_router(payment_router)
app.include_router(webhook_router)
app.include_router(payout_router)
app.include_router(seller_router)
app.include_router(return_router)
app.include_router(promo_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": {"name": settlement.name}})
