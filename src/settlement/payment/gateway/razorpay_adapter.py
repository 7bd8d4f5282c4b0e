"""Razorpay gateway adapter.

Both signatures are hex-encoded HMAC-SHA256 digests:

* return callback: over ``"{order_id}|{payment_id}"`` with the API key secret
* webhook: over the exact raw request body with the webhook secret

Comparisons are constant-time. An empty secret never verifies anything.
"""

import hashlib
import hmac
import json

from settlement.config import SettlementConfig
from settlement.exceptions import MalformedPayload
from settlement.payment.gateway.port import GatewayEvent, PaymentEntity, PaymentGateway, RefundEntity


def compute_signature(message: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class RazorpayGateway(PaymentGateway):
    def __init__(self, config: SettlementConfig) -> None:
        self.config = config

    def verify_return_callback(self, order_ref: str, payment_ref: str, signature: str) -> bool:
        if not self.config.gateway_key_secret or not signature or not order_ref or not payment_ref:
            return False
        expected = compute_signature(f"{order_ref}|{payment_ref}".encode(), self.config.gateway_key_secret)
        return hmac.compare_digest(expected, signature)

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool:
        if not self.config.webhook_secret or not signature:
            return False
        expected = compute_signature(raw_body, self.config.webhook_secret)
        return hmac.compare_digest(expected, signature)

    def parse_webhook_event(self, raw_body: bytes) -> GatewayEvent:
        try:
            envelope = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise MalformedPayload({"body": ["Webhook body is not valid JSON"]}) from exc

        if not isinstance(envelope, dict) or not isinstance(envelope.get("event"), str):
            raise MalformedPayload({"event": ["Webhook body has no event type"]})
        event_type = envelope["event"]
        payload = envelope.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        payment_data = _entity(payload, "payment")
        refund_data = _entity(payload, "refund")

        if event_type.startswith("payment.") and payment_data is None:
            raise MalformedPayload({"payload": [f"{event_type} has no payment entity"]})
        if event_type.startswith("refund.") and refund_data is None:
            raise MalformedPayload({"payload": [f"{event_type} has no refund entity"]})

        payment = None
        if payment_data is not None:
            if not payment_data.get("id"):
                raise MalformedPayload({"payload": ["Payment entity has no id"]})
            payment = PaymentEntity(
                payment_id=str(payment_data["id"]),
                gateway_order_id=payment_data.get("order_id"),
                amount=payment_data.get("amount"),
                currency=payment_data.get("currency"),
                method=payment_data.get("method"),
                error_description=payment_data.get("error_description"),
                amount_refunded=payment_data.get("amount_refunded"),
            )

        refund = None
        if refund_data is not None:
            if not refund_data.get("id") or not refund_data.get("payment_id"):
                raise MalformedPayload({"payload": ["Refund entity must carry id and payment_id"]})
            refund = RefundEntity(
                refund_id=str(refund_data["id"]),
                payment_id=str(refund_data["payment_id"]),
                amount=refund_data.get("amount"),
                status=refund_data.get("status"),
            )

        return GatewayEvent(event=event_type, payment=payment, refund=refund)


def _entity(payload: dict, name: str) -> dict | None:
    wrapper = payload.get(name)
    if not isinstance(wrapper, dict):
        return None
    entity = wrapper.get("entity")
    return entity if isinstance(entity, dict) else None
