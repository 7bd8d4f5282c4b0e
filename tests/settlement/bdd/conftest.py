"""Shared BDD fixtures and step definitions for the settlement flows."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from settlement.order.order import Order
from settlement.payout.batching import CreatePayout
from settlement.payout.lifecycle import UpdatePayoutStatus
from settlement.payout.payout import Payout


@pytest.fixture()
def error():
    """Container for captured domain errors."""
    return {"exc": None}


def _order(order_id) -> Order:
    return current_domain.repository_for(Order).get(order_id)


def _payout(payout_id) -> Payout:
    return current_domain.repository_for(Payout).get(payout_id)


def _create_payout(seller_id, period):
    start, end = period
    return current_domain.process(
        CreatePayout(seller_id=seller_id, period_start=start, period_end=end),
        asynchronous=False,
    )


def _mark_payout(payout_id, status):
    current_domain.process(UpdatePayoutStatus(payout_id=payout_id, status=status), asynchronous=False)


@pytest.fixture()
def create_payout(period):
    def _create(seller_id):
        return _create_payout(seller_id, period)

    return _create


@pytest.fixture()
def mark_payout():
    return _mark_payout


@pytest.fixture()
def load_order():
    return _order


@pytest.fixture()
def load_payout():
    return _payout


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("the platform commission is {commission:d}% and payment processing is {processing:d}%"))
def rate_card(monkeypatch, commission, processing):
    monkeypatch.setenv("SETTLEMENT_PLATFORM_COMMISSION_RATE", str(commission / 100))
    monkeypatch.setenv("SETTLEMENT_PAYMENT_PROCESSING_RATE", str(processing / 100))


@given(
    parsers.cfparse('a paid order for seller "{seller_id}" with an item priced {price:f}'),
    target_fixture="order_id",
)
def paid_order_for_seller(paid_order, make_item, seller_id, price):
    return paid_order(items=[make_item(seller_id=seller_id, price=price)])


@given(
    parsers.cfparse('an unpaid order for seller "{seller_id}" with an item priced {price:f}'),
    target_fixture="order_id",
)
def unpaid_order_for_seller(place_order, make_item, seller_id, price):
    return place_order(items=[make_item(seller_id=seller_id, price=price)])


@given(parsers.cfparse('a payout has been created for seller "{seller_id}"'), target_fixture="payout_id")
def existing_payout(seller_id, period):
    return _create_payout(seller_id, period)


@given(parsers.cfparse('the payout has been marked "{status}"'))
def payout_already_marked(payout_id, status):
    _mark_payout(payout_id, status)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the payout gross is {amount:f}"))
def payout_gross(payout_id, amount):
    assert _payout(payout_id).gross_earnings == round(amount, 2)


@then(parsers.cfparse("the payout platform fee is {amount:f}"))
def payout_platform_fee(payout_id, amount):
    assert _payout(payout_id).platform_fees == round(amount, 2)


@then(parsers.cfparse("the payout processing fee is {amount:f}"))
def payout_processing_fee(payout_id, amount):
    assert _payout(payout_id).processing_fees == round(amount, 2)


@then(parsers.cfparse("the payout net is {amount:f}"))
def payout_net(payout_id, amount):
    assert _payout(payout_id).net_earnings == round(amount, 2)


@then(parsers.cfparse('the payout status is "{status}"'))
def payout_status(payout_id, status):
    assert _payout(payout_id).status == status


@then(parsers.cfparse('the order payment status is "{status}"'))
def order_payment_status(order_id, status):
    assert _order(order_id).payment_status == status


@then(parsers.cfparse('the order status is "{status}"'))
def order_status(order_id, status):
    assert _order(order_id).status == status


@then(parsers.cfparse("the order refunded amount is {amount:f}"))
def order_refunded_amount(order_id, amount):
    assert _order(order_id).refunded_amount == round(amount, 2)
