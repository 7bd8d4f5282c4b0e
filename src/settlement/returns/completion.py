"""CompleteReturn — close an approved request once the refund has been issued."""

from protean.fields import Identifier
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from settlement.domain import settlement
from settlement.order.order import Order
from settlement.returns.return_request import ReturnRequest


@settlement.command(part_of="ReturnRequest")
class CompleteReturn:
    return_id = Identifier(required=True)


@settlement.command_handler(part_of=ReturnRequest)
class CompleteReturnHandler:
    @handle(CompleteReturn)
    def complete_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        request = repo.get(command.return_id)
        request.complete()
        repo.add(request)

        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(request.order_id)
        order.close_return(str(request.id))
        order_repo.add(order)
        return str(request.id)
