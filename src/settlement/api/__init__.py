"""Settlement domain API package."""

from settlement.api.routes import (
    order_router,
    payment_router,
    payout_router,
    promo_router,
    return_router,
    seller_router,
    webhook_router,
)

__all__ = [
    "order_router",
    "payment_router",
    "webhook_router",
    "payout_router",
    "seller_router",
    "return_router",
    "promo_router",
]
