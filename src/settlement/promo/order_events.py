"""Promo usage accounting — PromoCode reacts to Order payment events.

A code is counted against its usage limits only after the order's payment
capture has committed, in a unit of work of its own. A contended, missing, or
retired code is logged and left uncounted; it never undoes the capture.
"""

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.utils.mixins import handle

from settlement.domain import settlement
from settlement.order.events import PaymentCaptured
from settlement.promo.promo_code import PromoCode
from settlement.promo.validation import record_usage

logger = structlog.get_logger(__name__)

# Each attempt re-reads the code
MAX_USAGE_ATTEMPTS = 3


@settlement.event_handler(part_of=PromoCode, stream_category="settlement::order")
class PromoUsageEventHandler:
    """Counts one use of the order's promo code per captured payment."""

    @handle(PaymentCaptured)
    def on_payment_captured(self, event: PaymentCaptured) -> None:
        if not event.promo_code:
            return

        for attempt in range(1, MAX_USAGE_ATTEMPTS + 1):
            try:
                promo = record_usage(event.promo_code)
            except ExpectedVersionError as exc:
                logger.warning(
                    "promo_usage_conflict",
                    order_id=str(event.order_id),
                    promo_code=event.promo_code,
                    attempt=attempt,
                    error=str(exc),
                )
                continue
            except (ObjectNotFoundError, ValidationError) as exc:
                logger.warning(
                    "promo_usage_not_recorded",
                    order_id=str(event.order_id),
                    promo_code=event.promo_code,
                    error=str(exc),
                )
                return

            logger.info(
                "promo_usage_recorded",
                order_id=str(event.order_id),
                promo_code=promo.code,
                used_count=promo.used_count,
            )
            return

        logger.error(
            "promo_usage_not_recorded",
            order_id=str(event.order_id),
            promo_code=event.promo_code,
            attempts=MAX_USAGE_ATTEMPTS,
        )
