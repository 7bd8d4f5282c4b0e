"""Application tests for gateway webhook processing."""

import pytest
from protean import current_domain

from settlement.exceptions import InvalidSignature, MalformedPayload
from settlement.order.order import Order, OrderStatus, PaymentStatus
from settlement.payment.webhook import handle_webhook_event


def _payment(order, payment_id="pay_001", amount_minor=None, **extra):
    entity = {
        "id": payment_id,
        "order_id": order.gateway_order_id,
        "amount": amount_minor if amount_minor is not None else int(round(order.total * 100)),
        "currency": "INR",
        "method": "upi",
    }
    entity.update(extra)
    return entity


def _deliver(gateway, sign, body):
    return handle_webhook_event(body, sign(body), gateway)


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


class TestPaymentCaptured:
    def test_capture_marks_order_paid(self, gateway, sign, make_webhook, place_order):
        order = _order(place_order())
        result = _deliver(gateway, sign, make_webhook("payment.captured", payment=_payment(order)))

        assert result.outcome == "processed"
        assert result.order_id == str(order.id)
        order = _order(order.id)
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.gateway_payment_id == "pay_001"
        assert order.payment_details.amount == 100.0
        assert order.payment_details.method == "upi"

    def test_redelivered_capture_is_a_duplicate(self, gateway, sign, make_webhook, place_order):
        order = _order(place_order())
        body = make_webhook("payment.captured", payment=_payment(order))
        _deliver(gateway, sign, body)
        first = _order(order.id)

        result = _deliver(gateway, sign, body)

        assert result.outcome == "duplicate"
        again = _order(order.id)
        assert again.payment_status == PaymentStatus.PAID.value
        assert again.payment_details.paid_at == first.payment_details.paid_at
        assert len(again.tracking_history) == len(first.tracking_history)

    def test_capture_with_other_payment_after_paid_is_ignored(self, gateway, sign, make_webhook, place_order):
        order = _order(place_order())
        _deliver(gateway, sign, make_webhook("payment.captured", payment=_payment(order)))

        result = _deliver(gateway, sign, make_webhook("payment.captured", payment=_payment(order, "pay_002")))

        assert result.outcome == "ignored"
        assert _order(order.id).gateway_payment_id == "pay_001"

    def test_capture_for_unknown_order_is_ignored(self, gateway, sign, make_webhook):
        body = make_webhook(
            "payment.captured",
            payment={"id": "pay_x", "order_id": "order_missing", "amount": 1000, "currency": "INR"},
        )
        result = _deliver(gateway, sign, body)
        assert result.outcome == "ignored"
        assert result.order_id is None

    def test_capture_without_order_reference_is_ignored(self, gateway, sign, make_webhook):
        body = make_webhook("payment.captured", payment={"id": "pay_x", "amount": 1000})
        assert _deliver(gateway, sign, body).outcome == "ignored"

    def test_capture_without_amount_is_malformed(self, gateway, sign, make_webhook, place_order):
        order = _order(place_order())
        entity = _payment(order)
        del entity["amount"]

        with pytest.raises(MalformedPayload):
            _deliver(gateway, sign, make_webhook("payment.captured", payment=entity))
        assert _order(order.id).payment_status == PaymentStatus.PENDING.value

    def test_capture_with_non_numeric_amount_is_malformed(self, gateway, sign, make_webhook, place_order):
        order = _order(place_order())
        body = make_webhook("payment.captured", payment=_payment(order, amount_minor="one hundred"))

        with pytest.raises(MalformedPayload):
            _deliver(gateway, sign, body)
        assert _order(order.id).payment_status == PaymentStatus.PENDING.value


class TestPaymentFailed:
    def test_failure_is_recorded(self, gateway, sign, make_webhook, place_order):
        order = _order(place_order())
        body = make_webhook("payment.failed", payment=_payment(order, error_description="Card declined"))

        result = _deliver(gateway, sign, body)

        assert result.outcome == "processed"
        order = _order(order.id)
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.payment_details.failure_reason == "Card declined"

    def test_late_failure_after_capture_is_ignored(self, gateway, sign, make_webhook, place_order):
        order = _order(place_order())
        _deliver(gateway, sign, make_webhook("payment.captured", payment=_payment(order)))

        result = _deliver(gateway, sign, make_webhook("payment.failed", payment=_payment(order, "pay_002")))

        assert result.outcome == "ignored"
        assert _order(order.id).payment_status == PaymentStatus.PAID.value

    def test_retry_after_failure_is_captured(self, gateway, sign, make_webhook, place_order):
        order = _order(place_order())
        _deliver(gateway, sign, make_webhook("payment.failed", payment=_payment(order, "pay_001")))
        _deliver(gateway, sign, make_webhook("payment.captured", payment=_payment(order, "pay_002")))

        order = _order(order.id)
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.gateway_payment_id == "pay_002"


class TestRefundProcessed:
    def _captured(self, gateway, sign, make_webhook, place_order, make_item, price=30.0):
        order = _order(place_order(items=[make_item(price=price)]))
        _deliver(gateway, sign, make_webhook("payment.captured", payment=_payment(order)))
        return _order(order.id)

    def _refund(self, order, refund_id, amount_minor, amount_refunded=None):
        refund = {"id": refund_id, "payment_id": order.gateway_payment_id, "amount": amount_minor}
        payment = None
        if amount_refunded is not None:
            payment = {"id": order.gateway_payment_id, "order_id": order.gateway_order_id}
            payment["amount_refunded"] = amount_refunded
        return refund, payment

    def test_three_ten_rupee_refunds_add_up(self, gateway, sign, make_webhook, place_order, make_item):
        order = self._captured(gateway, sign, make_webhook, place_order, make_item)

        for n in (1, 2, 3):
            refund, _ = self._refund(order, f"rfnd_{n}", 1000)
            _deliver(gateway, sign, make_webhook("refund.processed", refund=refund))

        order = _order(order.id)
        assert order.refunded_amount == 30.0
        assert order.payment_status == PaymentStatus.REFUNDED.value
        assert order.processed_refund_ids == ["rfnd_1", "rfnd_2", "rfnd_3"]

    def test_partial_refund(self, gateway, sign, make_webhook, place_order, make_item):
        order = self._captured(gateway, sign, make_webhook, place_order, make_item)
        refund, _ = self._refund(order, "rfnd_1", 1000)

        _deliver(gateway, sign, make_webhook("refund.processed", refund=refund))

        order = _order(order.id)
        assert order.refunded_amount == 10.0
        assert order.payment_status == PaymentStatus.PARTIALLY_REFUNDED.value

    def test_redelivered_refund_is_counted_once(self, gateway, sign, make_webhook, place_order, make_item):
        order = self._captured(gateway, sign, make_webhook, place_order, make_item)
        refund, _ = self._refund(order, "rfnd_1", 1000)
        body = make_webhook("refund.processed", refund=refund)

        _deliver(gateway, sign, body)
        result = _deliver(gateway, sign, body)

        assert result.outcome == "duplicate"
        assert _order(order.id).refunded_amount == 10.0

    def test_gateway_cumulative_amount_is_used(self, gateway, sign, make_webhook, place_order, make_item):
        order = self._captured(gateway, sign, make_webhook, place_order, make_item)
        refund, payment = self._refund(order, "rfnd_2", 1000, amount_refunded=2000)

        _deliver(gateway, sign, make_webhook("refund.processed", refund=refund, payment=payment))

        assert _order(order.id).refunded_amount == 20.0

    def test_stale_cumulative_amount_never_lowers_the_total(self, gateway, sign, make_webhook, place_order, make_item):
        order = self._captured(gateway, sign, make_webhook, place_order, make_item)
        first, first_payment = self._refund(order, "rfnd_2", 1000, amount_refunded=2000)
        late, late_payment = self._refund(order, "rfnd_1", 1000, amount_refunded=1000)

        _deliver(gateway, sign, make_webhook("refund.processed", refund=first, payment=first_payment))
        _deliver(gateway, sign, make_webhook("refund.processed", refund=late, payment=late_payment))

        order = _order(order.id)
        assert order.refunded_amount == 20.0
        assert order.payment_status == PaymentStatus.PARTIALLY_REFUNDED.value

    def test_refund_for_unknown_payment_is_ignored(self, gateway, sign, make_webhook):
        body = make_webhook("refund.processed", refund={"id": "rfnd_1", "payment_id": "pay_missing", "amount": 100})
        assert _deliver(gateway, sign, body).outcome == "ignored"

    def test_refund_without_amount_is_malformed(self, gateway, sign, make_webhook, place_order, make_item):
        order = self._captured(gateway, sign, make_webhook, place_order, make_item)
        body = make_webhook("refund.processed", refund={"id": "rfnd_1", "payment_id": order.gateway_payment_id})

        with pytest.raises(MalformedPayload):
            _deliver(gateway, sign, body)
        assert _order(order.id).refunded_amount == 0.0


class TestSignatureAndEnvelope:
    def test_bad_signature_writes_nothing(self, gateway, make_webhook, place_order):
        order = _order(place_order())
        body = make_webhook("payment.captured", payment=_payment(order))

        with pytest.raises(InvalidSignature):
            handle_webhook_event(body, "0" * 64, gateway)

        unchanged = _order(order.id)
        assert unchanged.payment_status == PaymentStatus.PENDING.value
        assert unchanged._version == order._version

    def test_missing_signature_is_rejected(self, gateway, make_webhook, place_order):
        order = _order(place_order())
        with pytest.raises(InvalidSignature):
            handle_webhook_event(make_webhook("payment.captured", payment=_payment(order)), None, gateway)

    def test_signed_garbage_is_malformed(self, gateway, sign):
        with pytest.raises(MalformedPayload):
            _deliver(gateway, sign, b"{not json")

    def test_unknown_event_is_acknowledged(self, gateway, sign, make_webhook):
        result = _deliver(gateway, sign, make_webhook("order.paid"))
        assert result.event == "order.paid"
        assert result.outcome == "ignored"
