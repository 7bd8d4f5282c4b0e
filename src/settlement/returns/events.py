"""Return request domain events."""

from protean.fields import DateTime, Float, Identifier, String

from settlement.domain import settlement


@settlement.event(part_of="ReturnRequest")
class ReturnFiled:
    __version__ = 1

    return_id = Identifier(required=True)
    request_number = String(required=True)
    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    return_type = String(required=True)
    reason = String(required=True)
    refund_amount = Float(required=True)
    filed_at = DateTime(required=True)


@settlement.event(part_of="ReturnRequest")
class ReturnReviewStarted:
    __version__ = 1

    return_id = Identifier(required=True)
    reviewer_id = Identifier(required=True)
    started_at = DateTime(required=True)


@settlement.event(part_of="ReturnRequest")
class ReturnApproved:
    """An admin approved the return; the order item is refunded in the same unit of work."""

    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    reviewed_by = Identifier(required=True)
    refund_amount = Float(required=True)
    notes = String()
    approved_at = DateTime(required=True)


@settlement.event(part_of="ReturnRequest")
class ReturnRejected:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reviewed_by = Identifier(required=True)
    notes = String()
    rejected_at = DateTime(required=True)


@settlement.event(part_of="ReturnRequest")
class ReturnCompleted:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    completed_at = DateTime(required=True)


@settlement.event(part_of="ReturnRequest")
class StudioFeedbackAdded:
    __version__ = 1

    return_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    message = String(required=True)
    added_at = DateTime(required=True)
