"""Payment confirmation — commands and handlers for gateway-reported outcomes.

Every write here is conditional on the order's current stored state so the
gateway can redeliver, reorder, or race the buyer's return callback without
corrupting the order:

- a capture for a payment the order already holds is a duplicate
- a capture or failure that no longer fits the payment state is ignored
- a refund whose id was already recorded is a duplicate
"""

from dataclasses import dataclass
from enum import Enum

import structlog
from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from settlement.config import SettlementConfig
from settlement.domain import settlement
from settlement.exceptions import InvalidSignature, InvalidState
from settlement.order.order import Order
from settlement.order.queries import find_by_gateway_order_id, find_by_gateway_payment_id
from settlement.payment.gateway import get_gateway

logger = structlog.get_logger(__name__)


class Outcome(Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass(frozen=True)
class PaymentOutcome:
    outcome: str
    order_id: str | None = None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@settlement.command(part_of="Order")
class CapturePayment:
    """Gateway reported a captured payment. Amount is in major units."""

    gateway_order_id = String(required=True, max_length=255)
    gateway_payment_id = String(required=True, max_length=255)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3)
    method = String(max_length=50)


@settlement.command(part_of="Order")
class RecordPaymentFailure:
    gateway_order_id = String(required=True, max_length=255)
    gateway_payment_id = String(max_length=255)
    reason = String(max_length=500)


@settlement.command(part_of="Order")
class RecordGatewayRefund:
    """Gateway reported a processed refund. Amounts are in major units.

    ``cumulative_amount`` is the payment's running refund total, when the
    gateway supplies it.
    """

    gateway_payment_id = String(required=True, max_length=255)
    gateway_refund_id = String(required=True, max_length=255)
    refund_amount = Float(required=True, min_value=0.0)
    cumulative_amount = Float(min_value=0.0)


@settlement.command(part_of="Order")
class ConfirmPayment:
    """Buyer returned from checkout with a signed payment reference."""

    order_id = Identifier(required=True)
    gateway_order_id = String(required=True, max_length=255)
    gateway_payment_id = String(required=True, max_length=255)
    signature = String(required=True, max_length=255)
    method = String(max_length=50)


# ---------------------------------------------------------------------------
# Shared capture logic
# ---------------------------------------------------------------------------
def _apply_capture(
    order: Order,
    gateway_payment_id: str,
    amount: float,
    currency: str,
    method: str | None,
    gateway_order_id: str | None = None,
) -> str:
    if order.is_paid_with(gateway_payment_id):
        logger.info("payment_capture_duplicate", order_id=str(order.id), payment_id=gateway_payment_id)
        return Outcome.DUPLICATE.value

    try:
        order.capture_payment(
            gateway_payment_id=gateway_payment_id,
            amount=amount,
            currency=currency,
            method=method,
            gateway_order_id=gateway_order_id,
        )
    except InvalidState as exc:
        logger.warning(
            "payment_capture_ignored",
            order_id=str(order.id),
            payment_id=gateway_payment_id,
            payment_status=order.payment_status,
            error=str(exc),
        )
        return Outcome.IGNORED.value

    current_domain.repository_for(Order).add(order)
    logger.info("payment_captured", order_id=str(order.id), payment_id=gateway_payment_id, amount=amount)
    return Outcome.PROCESSED.value


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------
@settlement.command_handler(part_of=Order)
class PaymentConfirmationHandler:
    @handle(CapturePayment)
    def capture_payment(self, command):
        order = find_by_gateway_order_id(command.gateway_order_id)
        if order is None:
            logger.warning("payment_capture_order_not_found", gateway_order_id=command.gateway_order_id)
            return PaymentOutcome(outcome=Outcome.IGNORED.value)

        outcome = _apply_capture(
            order,
            gateway_payment_id=command.gateway_payment_id,
            amount=command.amount,
            currency=command.currency or SettlementConfig.from_env().currency,
            method=command.method,
        )
        return PaymentOutcome(outcome=outcome, order_id=str(order.id))

    @handle(RecordPaymentFailure)
    def record_payment_failure(self, command):
        order = find_by_gateway_order_id(command.gateway_order_id)
        if order is None:
            logger.warning("payment_failure_order_not_found", gateway_order_id=command.gateway_order_id)
            return PaymentOutcome(outcome=Outcome.IGNORED.value)

        try:
            order.record_payment_failure(command.gateway_payment_id, command.reason or "Payment failed")
        except InvalidState:
            # Late failure after a successful capture
            logger.info(
                "payment_failure_ignored",
                order_id=str(order.id),
                payment_status=order.payment_status,
            )
            return PaymentOutcome(outcome=Outcome.IGNORED.value, order_id=str(order.id))

        current_domain.repository_for(Order).add(order)
        logger.info("payment_failed", order_id=str(order.id), reason=command.reason)
        return PaymentOutcome(outcome=Outcome.PROCESSED.value, order_id=str(order.id))

    @handle(RecordGatewayRefund)
    def record_gateway_refund(self, command):
        order = find_by_gateway_payment_id(command.gateway_payment_id)
        if order is None:
            logger.warning("refund_order_not_found", gateway_payment_id=command.gateway_payment_id)
            return PaymentOutcome(outcome=Outcome.IGNORED.value)

        if command.gateway_refund_id in order.processed_refund_ids:
            logger.info("refund_duplicate", order_id=str(order.id), refund_id=command.gateway_refund_id)
            return PaymentOutcome(outcome=Outcome.DUPLICATE.value, order_id=str(order.id))

        try:
            order.record_gateway_refund(
                command.gateway_refund_id,
                refund_amount=command.refund_amount,
                cumulative_amount=command.cumulative_amount,
            )
        except InvalidState as exc:
            logger.warning(
                "refund_ignored",
                order_id=str(order.id),
                refund_id=command.gateway_refund_id,
                payment_status=order.payment_status,
                error=str(exc),
            )
            return PaymentOutcome(outcome=Outcome.IGNORED.value, order_id=str(order.id))

        current_domain.repository_for(Order).add(order)
        logger.info(
            "refund_recorded",
            order_id=str(order.id),
            refund_id=command.gateway_refund_id,
            refunded_amount=order.refunded_amount,
        )
        return PaymentOutcome(outcome=Outcome.PROCESSED.value, order_id=str(order.id))

    @handle(ConfirmPayment)
    def confirm_payment(self, command):
        if not get_gateway().verify_return_callback(
            command.gateway_order_id, command.gateway_payment_id, command.signature
        ):
            logger.warning("return_callback_signature_invalid", order_id=str(command.order_id))
            raise InvalidSignature({"signature": ["Payment signature verification failed"]})

        order = current_domain.repository_for(Order).get(command.order_id)
        if order.gateway_order_id and order.gateway_order_id != command.gateway_order_id:
            raise InvalidSignature({"gateway_order_id": ["Payment reference does not belong to this order"]})

        config = SettlementConfig.from_env()
        outcome = _apply_capture(
            order,
            gateway_payment_id=command.gateway_payment_id,
            amount=order.total,
            currency=config.currency,
            method=command.method,
            gateway_order_id=command.gateway_order_id,
        )
        return {
            "order_id": str(order.id),
            "gateway_order_id": order.gateway_order_id,
            "gateway_payment_id": order.gateway_payment_id,
            "amount": order.payment_details.amount if order.payment_details else order.total,
            "currency": order.payment_details.currency if order.payment_details else config.currency,
            "method": order.payment_details.method if order.payment_details else command.method,
            "payment_status": order.payment_status,
            "outcome": outcome,
        }
