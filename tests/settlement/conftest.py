import json
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from settlement.config import SettlementConfig
from settlement.order.order import Order
from settlement.order.placement import PlaceOrder
from settlement.payment.capture import CapturePayment
from settlement.payment.gateway import reset_gateway, set_gateway
from settlement.payment.gateway.razorpay_adapter import RazorpayGateway, compute_signature

KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"


@pytest.fixture(scope="session")
def settlement_bed():
    from settlement.domain import settlement

    bed = DomainFixture(settlement)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(settlement_bed):
    with settlement_bed.domain_context():
        yield

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()


@pytest.fixture(autouse=True)
def settlement_env(monkeypatch):
    """Gateway secrets and the 10% / 3% rate card used throughout the suite."""
    monkeypatch.setenv("RAZORPAY_KEY_SECRET", KEY_SECRET)
    monkeypatch.setenv("RAZORPAY_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("SETTLEMENT_PLATFORM_COMMISSION_RATE", "0.10")
    monkeypatch.setenv("SETTLEMENT_PAYMENT_PROCESSING_RATE", "0.03")
    monkeypatch.setenv("SETTLEMENT_CURRENCY", "INR")
    monkeypatch.delenv("SETTLEMENT_MINIMUM_PAYOUT", raising=False)
    yield


@pytest.fixture()
def config():
    return SettlementConfig.from_env()


@pytest.fixture()
def gateway(config):
    gw = RazorpayGateway(config)
    set_gateway(gw)
    yield gw
    reset_gateway()


# ---------------------------------------------------------------------------
# Builders shared by the application, integration, and BDD suites
# ---------------------------------------------------------------------------
def _order_item(seller_id="seller-001", price=100.0, quantity=1, **overrides):
    item = {
        "item_id": f"prod-{uuid4().hex[:8]}",
        "item_type": "product",
        "seller_id": seller_id,
        "seller_name": f"Studio {seller_id}",
        "name": "Hand-thrown bowl",
        "price": price,
        "quantity": quantity,
    }
    item.update(overrides)
    return item


def _webhook_body(event, payment=None, refund=None) -> bytes:
    payload = {}
    if payment is not None:
        payload["payment"] = {"entity": payment}
    if refund is not None:
        payload["refund"] = {"entity": refund}
    return json.dumps({"entity": "event", "event": event, "payload": payload}).encode()


@pytest.fixture()
def make_item():
    return _order_item


@pytest.fixture()
def make_webhook():
    return _webhook_body


@pytest.fixture()
def sign():
    def _sign(raw_body: bytes) -> str:
        return compute_signature(raw_body, WEBHOOK_SECRET)

    return _sign


@pytest.fixture()
def place_order():
    """Place an order through the domain and return its id."""

    def _place(buyer_id="buyer-001", items=None, gateway_order_id=None, **kwargs):
        command = PlaceOrder(
            buyer_id=buyer_id,
            items=json.dumps(items or [_order_item()]),
            gateway_order_id=gateway_order_id or f"order_{uuid4().hex[:12]}",
            **kwargs,
        )
        return current_domain.process(command, asynchronous=False)

    return _place


@pytest.fixture()
def capture():
    """Capture payment for an order as the gateway webhook would."""

    def _capture(order_id, gateway_payment_id=None):
        order = current_domain.repository_for(Order).get(order_id)
        command = CapturePayment(
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id=gateway_payment_id or f"pay_{uuid4().hex[:12]}",
            amount=order.total,
            currency="INR",
            method="card",
        )
        return current_domain.process(command, asynchronous=False)

    return _capture


@pytest.fixture()
def paid_order(place_order, capture):
    """Place and capture an order in one step."""

    def _paid(**kwargs):
        order_id = place_order(**kwargs)
        capture(order_id)
        return order_id

    return _paid


@pytest.fixture()
def period():
    """A payout period that covers orders placed during the test."""
    now = datetime.now(UTC)
    return now - timedelta(days=1), now + timedelta(days=1)
