"""Gateway webhook processing.

Authenticates the raw delivery, decodes it, and dispatches the supported
event types to the payment commands. Unsupported events and deliveries that
match no order are acknowledged and dropped so the gateway stops retrying.
"""

from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from settlement.config import SettlementConfig
from settlement.exceptions import InvalidSignature, MalformedPayload
from settlement.payment.capture import (
    CapturePayment,
    Outcome,
    RecordGatewayRefund,
    RecordPaymentFailure,
)
from settlement.payment.gateway.port import GatewayEvent, PaymentGateway
from settlement.shared.money import to_major_units

logger = structlog.get_logger(__name__)

PAYMENT_CAPTURED = "payment.captured"
PAYMENT_FAILED = "payment.failed"
REFUND_PROCESSED = "refund.processed"


@dataclass(frozen=True)
class WebhookResult:
    event: str
    outcome: str
    order_id: str | None = None


def handle_webhook_event(
    raw_body: bytes,
    signature: str | None,
    gateway: PaymentGateway,
    config: SettlementConfig | None = None,
) -> WebhookResult:
    """Verify and apply one webhook delivery.

    Raises InvalidSignature before the body is even parsed, and
    MalformedPayload when the body lacks the expected envelope. Nothing is
    written in either case.
    """
    if not gateway.verify_webhook_signature(raw_body, signature):
        logger.warning("webhook_signature_invalid", has_signature=bool(signature))
        raise InvalidSignature({"signature": ["Webhook signature verification failed"]})

    event = gateway.parse_webhook_event(raw_body)
    config = config or SettlementConfig.from_env()

    if event.event == PAYMENT_CAPTURED:
        command = _capture_command(event, config)
    elif event.event == PAYMENT_FAILED:
        command = _failure_command(event)
    elif event.event == REFUND_PROCESSED:
        command = _refund_command(event, config)
    else:
        logger.info("webhook_event_unhandled", event=event.event)
        return WebhookResult(event=event.event, outcome=Outcome.IGNORED.value)

    if command is None:
        return WebhookResult(event=event.event, outcome=Outcome.IGNORED.value)

    result = current_domain.process(command, asynchronous=False)
    logger.info("webhook_processed", event=event.event, outcome=result.outcome, order_id=result.order_id)
    return WebhookResult(event=event.event, outcome=result.outcome, order_id=result.order_id)


def _major_amount(value, config: SettlementConfig, label: str) -> float:
    if value is None or isinstance(value, bool):
        raise MalformedPayload({"payload": [f"{label} carries no amount"]})
    try:
        return to_major_units(value, config.minor_units_per_major)
    except (TypeError, ValueError):
        raise MalformedPayload({"payload": [f"{label} amount is not a number"]}) from None


def _capture_command(event: GatewayEvent, config: SettlementConfig) -> CapturePayment | None:
    payment = event.payment
    if not payment.gateway_order_id:
        logger.warning("webhook_capture_without_order", payment_id=payment.payment_id)
        return None
    return CapturePayment(
        gateway_order_id=payment.gateway_order_id,
        gateway_payment_id=payment.payment_id,
        amount=_major_amount(payment.amount, config, "Payment event"),
        currency=payment.currency or config.currency,
        method=payment.method,
    )


def _failure_command(event: GatewayEvent) -> RecordPaymentFailure | None:
    payment = event.payment
    if not payment.gateway_order_id:
        logger.warning("webhook_failure_without_order", payment_id=payment.payment_id)
        return None
    return RecordPaymentFailure(
        gateway_order_id=payment.gateway_order_id,
        gateway_payment_id=payment.payment_id,
        reason=payment.error_description,
    )


def _refund_command(event: GatewayEvent, config: SettlementConfig) -> RecordGatewayRefund:
    refund = event.refund
    refund_amount = _major_amount(refund.amount, config, "Refund event")
    cumulative = None
    if event.payment is not None and event.payment.amount_refunded is not None:
        cumulative = _major_amount(event.payment.amount_refunded, config, "Payment entity")
    return RecordGatewayRefund(
        gateway_payment_id=refund.payment_id,
        gateway_refund_id=refund.refund_id,
        refund_amount=refund_amount,
        cumulative_amount=cumulative,
    )
