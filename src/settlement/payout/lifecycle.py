"""Payout lifecycle — command and handler for admin status updates.

Completing a payout settles every item it still holds; failing or cancelling
it releases them for a future batch. Items already refunded are left alone
either way.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from settlement.domain import settlement
from settlement.exceptions import InvalidState
from settlement.order.order import Order
from settlement.payout.payout import Payout, PayoutStatus

logger = structlog.get_logger(__name__)


@settlement.command(part_of="Payout")
class UpdatePayoutStatus:
    payout_id = Identifier(required=True)
    status = String(required=True, choices=PayoutStatus)
    processed_by = Identifier()
    transaction_id = String(max_length=255)
    notes = Text()
    failure_reason = String(max_length=500)


@settlement.command_handler(part_of=Payout)
class PayoutLifecycleHandler:
    @handle(UpdatePayoutStatus)
    def update_payout_status(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        target = PayoutStatus(command.status)

        if target == PayoutStatus.PROCESSING:
            payout.start_processing(transaction_id=command.transaction_id, notes=command.notes)
        elif target == PayoutStatus.COMPLETED:
            payout.complete(
                processed_by=command.processed_by,
                transaction_id=command.transaction_id,
                notes=command.notes,
            )
            self._apply_to_orders(payout, lambda order: order.settle_payout(str(payout.id)))
        elif target == PayoutStatus.FAILED:
            payout.fail(reason=command.failure_reason, transaction_id=command.transaction_id, notes=command.notes)
            self._apply_to_orders(payout, lambda order: order.release_payout(str(payout.id)))
        elif target == PayoutStatus.CANCELLED:
            payout.cancel(reason=command.failure_reason, transaction_id=command.transaction_id, notes=command.notes)
            self._apply_to_orders(payout, lambda order: order.release_payout(str(payout.id)))
        else:
            raise InvalidState({"status": [f"Cannot move payout from {payout.status} back to {target.value}"]})

        repo.add(payout)
        logger.info("payout_status_updated", payout_id=str(payout.id), status=payout.status)
        return str(payout.id)

    @staticmethod
    def _apply_to_orders(payout, action) -> None:
        order_repo = current_domain.repository_for(Order)
        for order_id in payout.order_id_list:
            try:
                order = order_repo.get(order_id)
            except ObjectNotFoundError:
                logger.warning("payout_order_missing", payout_id=str(payout.id), order_id=order_id)
                continue
            if action(order):
                order_repo.add(order)
