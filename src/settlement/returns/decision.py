"""DecideReturn — an admin approves or rejects a return request.

Rejection frees the order line for a new request. Approval is a compound
update across up to three aggregates, committed in one unit of work:

1. the request records the decision and the approved amount
2. the owning order refunds the line and recomputes its payment status
3. if an unsettled payout had claimed the line, that payout drops the line
   and is re-priced (or cancelled if nothing is left in it)

A line that has already been paid out to its seller cannot be approved for
refund; the approval is rejected and nothing is written.
"""

import structlog
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from settlement.domain import settlement
from settlement.exceptions import InvalidState
from settlement.order.order import Order
from settlement.payout.payout import Payout
from settlement.returns.return_request import ReturnDecision, ReturnRequest

logger = structlog.get_logger(__name__)


@settlement.command(part_of="ReturnRequest")
class DecideReturn:
    return_id = Identifier(required=True)
    admin_id = Identifier(required=True)
    decision = String(required=True, choices=ReturnDecision)
    notes = Text()
    refund_amount = Float()


@settlement.command_handler(part_of=ReturnRequest)
class DecideReturnHandler:
    @handle(DecideReturn)
    def decide_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        request = repo.get(command.return_id)

        request.decide(
            admin_id=str(command.admin_id),
            decision=command.decision,
            notes=command.notes,
            refund_amount=command.refund_amount,
        )

        if request.status == ReturnDecision.APPROVED.value:
            self._refund_order_item(request)
        else:
            order_repo = current_domain.repository_for(Order)
            order = order_repo.get(request.order_id)
            order.close_return(str(request.id))
            order_repo.add(order)

        repo.add(request)
        logger.info(
            "return_decided",
            return_id=str(request.id),
            decision=command.decision,
            refund_amount=request.refund_amount,
        )
        return str(request.id)

    @staticmethod
    def _refund_order_item(request: ReturnRequest) -> None:
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(request.order_id)

        order_item_id = str(request.item.order_item_id)
        item = order.find_item(order_item_id)
        if item is None:
            raise InvalidState({"order_item_id": ["The returned item no longer exists on the order"]})
        claimed_by = str(item.payout_id) if item.payout_id else None
        line_total = item.line_total

        order.refund_item(order_item_id, request.refund_amount)

        if claimed_by:
            payout_repo = current_domain.repository_for(Payout)
            payout = payout_repo.get(claimed_by)
            if payout.is_open:
                payout.remove_item(
                    order_id=str(order.id),
                    amount=line_total,
                    order_still_claimed=bool(order.items_claimed_by(claimed_by)),
                )
                payout_repo.add(payout)
                logger.info(
                    "payout_claim_released_for_refund",
                    payout_id=claimed_by,
                    order_id=str(order.id),
                    order_item_id=order_item_id,
                    payout_status=payout.status,
                )

        order_repo.add(order)
