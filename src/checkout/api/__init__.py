"""Checkout API package."""

from checkout.api.errors import register_checkout_error_handlers
from checkout.api.routes import (
    checkout_router,
    order_router,
    payment_router,
    promotion_router,
    shipping_router,
    stock_router,
)

__all__ = [
    "checkout_router",
    "order_router",
    "payment_router",
    "promotion_router",
    "shipping_router",
    "stock_router",
    "register_checkout_error_handlers",
]
