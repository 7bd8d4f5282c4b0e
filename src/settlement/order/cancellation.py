"""Admin order cancellation — command and handler."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from settlement.domain import settlement
from settlement.order.order import Order


@settlement.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    cancelled_by = Identifier(required=True)
    reason = String(max_length=500)


@settlement.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel(cancelled_by=str(command.cancelled_by), reason=command.reason)
        repo.add(order)
        return str(order.id)
