"""Seller shipping updates — command and handler.

A seller may only move orders that contain at least one of their items, and
only to PROCESSING, SHIPPED, DELIVERED, or CANCELLED.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from settlement.domain import settlement
from settlement.exceptions import InvalidState
from settlement.order.order import SELLER_SETTABLE_STATUSES, Order, OrderStatus
from settlement.order.queries import get_seller_order


@settlement.command(part_of="Order")
class ApplyShippingUpdate:
    order_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    new_status = String(required=True, max_length=20)
    carrier = String(max_length=100)
    tracking_number = String(max_length=255)
    tracking_url = String(max_length=500)


@settlement.command_handler(part_of=Order)
class ShippingHandler:
    @handle(ApplyShippingUpdate)
    def apply_shipping_update(self, command):
        allowed = {s.value for s in SELLER_SETTABLE_STATUSES}
        if command.new_status not in allowed:
            raise InvalidState({"status": [f"Sellers can only set status to one of {sorted(allowed)}"]})

        order = get_seller_order(str(command.order_id), str(command.seller_id))
        if command.new_status == OrderStatus.CANCELLED.value:
            order.cancel(cancelled_by=str(command.seller_id))
        else:
            order.update_status(
                command.new_status,
                updated_by=str(command.seller_id),
                carrier=command.carrier,
                tracking_number=command.tracking_number,
                tracking_url=command.tracking_url,
            )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
