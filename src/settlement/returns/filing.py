"""FileReturn — a buyer files a return or refund request against one order item.

Only product lines on delivered orders qualify, and only one open request may
exist per order item. The order line carries the id of its open request, and
the order is saved together with the new request, so a concurrent duplicate
filing fails the order's version check instead of inserting a second request.
"""

import json

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from settlement.domain import settlement
from settlement.exceptions import InvalidState
from settlement.order.order import ItemPayoutStatus, ItemType, Order, OrderStatus
from settlement.returns.return_request import (
    ReturnItem,
    ReturnReason,
    ReturnRequest,
    ReturnType,
)

logger = structlog.get_logger(__name__)


@settlement.command(part_of="ReturnRequest")
class FileReturn:
    buyer_id = Identifier(required=True)
    order_id = Identifier(required=True)
    item_ref = String(required=True, max_length=255)  # order line id or catalogue item id
    return_type = String(choices=ReturnType, default=ReturnType.REFUND.value)
    reason = String(required=True, choices=ReturnReason)
    description = Text(required=True)
    evidence = Text()  # JSON array of {media_type, url, filename}


def next_request_number() -> str:
    count = current_domain.repository_for(ReturnRequest)._dao.query.all().total
    return f"RET-{count + 1:06d}"


@settlement.command_handler(part_of=ReturnRequest)
class FileReturnHandler:
    @handle(FileReturn)
    def file_return(self, command):
        order_id = str(command.order_id)
        order = current_domain.repository_for(Order).get(order_id)
        if str(order.buyer_id) != str(command.buyer_id) or order.status != OrderStatus.DELIVERED.value:
            raise ObjectNotFoundError({"_entity": f"Order `{order_id}` is not eligible for return"})

        item = order.find_item(command.item_ref)
        if item is None or item.item_type != ItemType.PRODUCT.value:
            raise ObjectNotFoundError({"_entity": f"Item `{command.item_ref}` is not returnable on this order"})

        if item.payout_status == ItemPayoutStatus.REFUNDED.value:
            raise InvalidState({"order_item_id": ["This item has already been refunded"]})

        if item.open_return_id:
            existing = current_domain.repository_for(ReturnRequest).get(str(item.open_return_id))
            raise InvalidState(
                {"order_item_id": [f"Return request {existing.request_number} is already open for this item"]}
            )

        request = ReturnRequest.file(
            request_number=next_request_number(),
            order_id=order_id,
            buyer_id=str(command.buyer_id),
            item=ReturnItem(
                order_item_id=str(item.id),
                item_id=str(item.item_id),
                name=item.name,
                price=item.price,
                quantity=item.quantity,
                seller_id=str(item.seller_id),
                seller_name=item.seller_name,
            ),
            reason=command.reason,
            description=command.description,
            return_type=command.return_type,
            evidence=json.loads(command.evidence) if command.evidence else None,
        )
        order.open_return(str(item.id), str(request.id))

        current_domain.repository_for(ReturnRequest).add(request)
        current_domain.repository_for(Order).add(order)
        logger.info(
            "return_filed",
            return_id=str(request.id),
            request_number=request.request_number,
            order_id=order_id,
            order_item_id=str(item.id),
        )
        return str(request.id)
