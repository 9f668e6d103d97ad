"""Marketplace checkout FastAPI application.

Processes commands synchronously over HTTP. Every request runs inside the
checkout domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from uuid import uuid4

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# PROTEAN_ENV selects the configuration overlay and the log format.
from checkout.domain import checkout
from checkout.utils.logging import bind_checkout_context, clear_checkout_context, configure_logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

configure_logging()
checkout.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Marketplace Checkout API",
    description="Checkout settlement: promotions, shipping consolidation and order placement",
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
    """Push the checkout domain context and a request id for each request."""
    clear_checkout_context()
    bind_checkout_context(request_id=request.headers.get("x-request-id") or uuid4().hex)
    with checkout.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from checkout.api import (  # noqa: E402
    checkout_router,
    order_router,
    payment_router,
    promotion_router,
    register_checkout_error_handlers,
    shipping_router,
    stock_router,
)

app.include_router(promotion_router)
app.include_router(shipping_router)
app.include_router(stock_router)
app.include_router(checkout_router)
app.include_router(order_router)
app.include_router(payment_router)

register_exception_handlers(app)
register_checkout_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": {"name": checkout.name}})
