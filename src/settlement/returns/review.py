"""StartReturnReview — an admin picks up a pending request."""

from protean.fields import Identifier
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from settlement.domain import settlement
from settlement.returns.return_request import ReturnRequest


@settlement.command(part_of="ReturnRequest")
class StartReturnReview:
    return_id = Identifier(required=True)
    admin_id = Identifier(required=True)


@settlement.command_handler(part_of=ReturnRequest)
class StartReturnReviewHandler:
    @handle(StartReturnReview)
    def start_review(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        request = repo.get(command.return_id)
        request.start_review(str(command.admin_id))
        repo.add(request)
        return str(request.id)
