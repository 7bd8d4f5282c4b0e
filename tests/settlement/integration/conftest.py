import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean.integrations.fastapi import register_exception_handlers

from settlement.api import (
    order_router,
    payment_router,
    payout_router,
    promo_router,
    return_router,
    seller_router,
    webhook_router,
)


@pytest.fixture()
def client(gateway):
    app = FastAPI()
    for router in (
        order_router,
        payment_router,
        webhook_router,
        payout_router,
        seller_router,
        return_router,
        promo_router,
    ):
        app.include_router(router)
    register_exception_handlers(app)
    return TestClient(app)


@pytest.fixture()
def api_order(client, make_item):
    """Place an order over HTTP and return its id."""

    def _place(**overrides):
        body = {"buyer_id": "buyer-api", "items": [make_item(seller_id="seller-api")]}
        body.update(overrides)
        response = client.post("/orders", json=body)
        assert response.status_code == 201
        return response.json()["order_id"]

    return _place
