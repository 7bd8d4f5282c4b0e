"""AddStudioFeedback — the item's seller comments on a return request.

Feedback never gates the admin decision. Sellers other than the item's
seller cannot see the request at all, so they get a not-found.
"""

from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from settlement.domain import settlement
from settlement.returns.return_request import ReturnRequest


@settlement.command(part_of="ReturnRequest")
class AddStudioFeedback:
    return_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    message = Text()


@settlement.command_handler(part_of=ReturnRequest)
class AddStudioFeedbackHandler:
    @handle(AddStudioFeedback)
    def add_studio_feedback(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        request = repo.get(command.return_id)
        if str(request.item.seller_id) != str(command.seller_id):
            raise ObjectNotFoundError({"_entity": f"Return request `{command.return_id}` not found"})

        request.add_feedback(str(command.seller_id), command.message)
        repo.add(request)
        return str(request.id)
