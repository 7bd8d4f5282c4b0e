"""Tests for the Order aggregate: placement, payment, refunds, and fulfillment."""

import pytest
from protean.exceptions import ValidationError

from settlement.exceptions import InvalidState
from settlement.order.events import (
    GatewayRefundRecorded,
    OrderCancelled,
    OrderPlaced,
    OrderStatusUpdated,
    PaymentCaptured,
    PaymentFailed,
)
from settlement.order.order import ItemPayoutStatus, Order, OrderStatus, PaymentStatus


def _item(seller_id="seller-001", price=100.0, quantity=1, item_id="prod-001"):
    return {
        "item_id": item_id,
        "item_type": "product",
        "seller_id": seller_id,
        "seller_name": "Clay Studio",
        "name": "Stoneware Mug",
        "price": price,
        "quantity": quantity,
    }


def _make_order(items=None, **overrides):
    defaults = {
        "buyer_id": "buyer-001",
        "items_data": items or [_item()],
        "order_number": "ORD-000001",
        "gateway_order_id": "order_abc",
    }
    defaults.update(overrides)
    order = Order.place(**defaults)
    order._events.clear()
    return order


def _paid_order(items=None, **overrides):
    order = _make_order(items, **overrides)
    order.capture_payment(gateway_payment_id="pay_001", amount=order.total, currency="INR", method="card")
    order._events.clear()
    return order


class TestPlacement:
    def test_totals_are_computed_from_items(self):
        order = _make_order(
            [_item(price=250.0, quantity=2), _item(price=100.0, item_id="prod-002")],
            shipping=50.0,
            tax=18.0,
            discount=20.0,
        )
        assert order.subtotal == 600.0
        assert order.total == 648.0

    def test_total_never_goes_negative(self):
        order = _make_order([_item(price=10.0)], discount=50.0)
        assert order.total == 0.0

    def test_new_order_is_pending(self):
        order = _make_order()
        assert order.status == OrderStatus.PENDING.value
        assert order.payment_status == PaymentStatus.PENDING.value
        assert order.refunded_amount == 0.0

    def test_items_start_unsettled(self):
        order = _make_order()
        item = order.items[0]
        assert item.payout_status == ItemPayoutStatus.PENDING.value
        assert item.payout_id is None
        assert item.is_claimable

    def test_placement_records_tracking_entry(self):
        order = _make_order()
        assert len(order.tracking_history) == 1
        assert order.tracking_history[0].message == "Order placed"

    def test_placement_raises_event(self):
        order = Order.place(
            buyer_id="buyer-001",
            items_data=[_item(seller_id="seller-b"), _item(seller_id="seller-a", item_id="prod-002")],
            order_number="ORD-000009",
        )
        event = order._events[-1]
        assert isinstance(event, OrderPlaced)
        assert event.order_number == "ORD-000009"
        assert event.item_count == 2
        assert event.seller_ids == '["seller-a", "seller-b"]'

    def test_promo_code_is_upper_cased(self):
        order = _make_order(promo_code="welcome10", discount=10.0)
        assert order.promo_code == "WELCOME10"
        assert order.promo_discount == 10.0

    def test_order_without_items_is_rejected(self):
        with pytest.raises(ValidationError):
            Order.place(buyer_id="buyer-001", items_data=[], order_number="ORD-000001")


class TestItemLookup:
    def test_find_item_by_line_id(self):
        order = _make_order()
        line = order.items[0]
        assert order.find_item(str(line.id)).id == line.id

    def test_find_item_falls_back_to_catalogue_id(self):
        order = _make_order()
        assert order.find_item("prod-001").id == order.items[0].id

    def test_find_item_returns_none_for_unknown_reference(self):
        assert _make_order().find_item("nope") is None

    def test_items_for_seller(self):
        order = _make_order([_item(seller_id="s1"), _item(seller_id="s2", item_id="prod-002")])
        assert [i.item_id for i in order.items_for_seller("s2")] == ["prod-002"]


class TestPaymentCapture:
    def test_capture_marks_order_paid(self):
        order = _make_order()
        order.capture_payment(gateway_payment_id="pay_001", amount=100.0, currency="INR", method="upi")
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.gateway_payment_id == "pay_001"
        assert order.payment_details.amount == 100.0
        assert order.payment_details.method == "upi"
        assert order.payment_details.paid_at is not None

    def test_capture_confirms_pending_order(self):
        order = _make_order()
        order.capture_payment(gateway_payment_id="pay_001", amount=100.0, currency="INR")
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.tracking_history[-1].status == OrderStatus.CONFIRMED.value

    def test_capture_raises_event(self):
        order = _make_order()
        order.capture_payment(gateway_payment_id="pay_001", amount=100.0, currency="INR")
        assert any(isinstance(e, PaymentCaptured) for e in order._events)

    def test_capture_does_not_move_fulfillment_backwards(self):
        order = _make_order()
        order.update_status(OrderStatus.SHIPPED.value)
        order.capture_payment(gateway_payment_id="pay_001", amount=100.0, currency="INR")
        assert order.status == OrderStatus.SHIPPED.value

    def test_is_paid_with_matches_only_the_captured_payment(self):
        order = _paid_order()
        assert order.is_paid_with("pay_001")
        assert not order.is_paid_with("pay_other")

    def test_second_capture_is_rejected(self):
        order = _paid_order()
        with pytest.raises(InvalidState):
            order.capture_payment(gateway_payment_id="pay_002", amount=100.0, currency="INR")

    def test_failed_payment_can_be_retried(self):
        order = _make_order()
        order.record_payment_failure("pay_001", "Card declined")
        order.capture_payment(gateway_payment_id="pay_002", amount=100.0, currency="INR")
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.gateway_payment_id == "pay_002"


class TestPaymentFailure:
    def test_failure_records_reason(self):
        order = _make_order()
        order.record_payment_failure("pay_001", "Insufficient funds")
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.payment_details.failure_reason == "Insufficient funds"
        assert isinstance(order._events[-1], PaymentFailed)

    def test_failure_leaves_fulfillment_alone(self):
        order = _make_order()
        order.record_payment_failure("pay_001", "Insufficient funds")
        assert order.status == OrderStatus.PENDING.value

    def test_failure_after_capture_is_rejected(self):
        order = _paid_order()
        with pytest.raises(InvalidState):
            order.record_payment_failure("pay_001", "Late failure")
        assert order.payment_status == PaymentStatus.PAID.value


class TestGatewayRefunds:
    def test_partial_refund(self):
        order = _paid_order()
        order.record_gateway_refund("rfnd_1", refund_amount=40.0)
        assert order.payment_status == PaymentStatus.PARTIALLY_REFUNDED.value
        assert order.refunded_amount == 40.0
        assert order.refund_details.status == "processed"
        assert isinstance(order._events[-1], GatewayRefundRecorded)

    def test_full_refund(self):
        order = _paid_order()
        order.record_gateway_refund("rfnd_1", refund_amount=100.0)
        assert order.payment_status == PaymentStatus.REFUNDED.value
        assert order.refunded_amount == 100.0

    def test_three_partial_refunds_aggregate(self):
        order = _paid_order([_item(price=30.0)])
        order.record_gateway_refund("rfnd_1", refund_amount=10.0)
        order.record_gateway_refund("rfnd_2", refund_amount=10.0)
        assert order.payment_status == PaymentStatus.PARTIALLY_REFUNDED.value
        order.record_gateway_refund("rfnd_3", refund_amount=10.0)
        assert order.refunded_amount == 30.0
        assert order.payment_status == PaymentStatus.REFUNDED.value

    def test_cumulative_amount_wins_over_local_arithmetic(self):
        order = _paid_order()
        order.record_gateway_refund("rfnd_1", refund_amount=10.0, cumulative_amount=25.0)
        assert order.refunded_amount == 25.0

    def test_refunded_amount_never_decreases(self):
        order = _paid_order()
        order.record_gateway_refund("rfnd_1", refund_amount=60.0)
        order.record_gateway_refund("rfnd_2", refund_amount=5.0, cumulative_amount=5.0)
        assert order.refunded_amount == 60.0

    def test_refund_is_capped_at_order_total(self):
        order = _paid_order()
        order.record_gateway_refund("rfnd_1", refund_amount=500.0)
        assert order.refunded_amount == 100.0
        assert order.payment_status == PaymentStatus.REFUNDED.value

    def test_refund_ids_are_remembered(self):
        order = _paid_order()
        order.record_gateway_refund("rfnd_1", refund_amount=10.0)
        assert order.processed_refund_ids == ["rfnd_1"]

    def test_same_refund_id_is_rejected(self):
        order = _paid_order()
        order.record_gateway_refund("rfnd_1", refund_amount=10.0)
        with pytest.raises(InvalidState):
            order.record_gateway_refund("rfnd_1", refund_amount=10.0)
        assert order.refunded_amount == 10.0

    def test_refund_on_unpaid_order_is_rejected(self):
        order = _make_order()
        with pytest.raises(InvalidState):
            order.record_gateway_refund("rfnd_1", refund_amount=10.0)

    def test_gateway_refund_does_not_touch_item_payout_status(self):
        order = _paid_order()
        order.record_gateway_refund("rfnd_1", refund_amount=100.0)
        assert order.items[0].payout_status == ItemPayoutStatus.PENDING.value


class TestFulfillment:
    def test_forward_transition(self):
        order = _paid_order()
        order.update_status(OrderStatus.PROCESSING.value, updated_by="seller-001")
        assert order.status == OrderStatus.PROCESSING.value
        event = order._events[-1]
        assert isinstance(event, OrderStatusUpdated)
        assert event.previous_status == OrderStatus.CONFIRMED.value

    def test_shipping_with_tracking_number(self):
        order = _paid_order()
        order.update_status(
            OrderStatus.SHIPPED.value,
            updated_by="seller-001",
            carrier="BlueDart",
            tracking_number="BD123",
            tracking_url="https://track.example.com/BD123",
        )
        assert order.shipping_tracking.tracking_number == "BD123"
        messages = [t.message for t in order.tracking_history]
        assert "Shipped via BlueDart. Tracking: BD123" in messages

    def test_backward_transition_is_rejected(self):
        order = _paid_order()
        order.update_status(OrderStatus.SHIPPED.value)
        with pytest.raises(InvalidState):
            order.update_status(OrderStatus.PROCESSING.value)

    def test_same_status_is_rejected(self):
        order = _paid_order()
        with pytest.raises(InvalidState):
            order.update_status(OrderStatus.CONFIRMED.value)

    def test_cancel(self):
        order = _paid_order()
        order.cancel(cancelled_by="buyer-001", reason="Changed my mind")
        assert order.status == OrderStatus.CANCELLED.value
        assert order.tracking_history[-1].message == "Changed my mind"
        assert isinstance(order._events[-1], OrderCancelled)

    def test_cancelled_order_cannot_move(self):
        order = _paid_order()
        order.cancel()
        with pytest.raises(InvalidState):
            order.update_status(OrderStatus.SHIPPED.value)
        with pytest.raises(InvalidState):
            order.cancel()

    def test_tracking_history_is_append_only(self):
        order = _paid_order()
        before = len(order.tracking_history)
        order.update_status(OrderStatus.PROCESSING.value)
        order.update_status(OrderStatus.SHIPPED.value)
        assert len(order.tracking_history) == before + 2
