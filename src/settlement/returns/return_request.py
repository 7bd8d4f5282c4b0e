"""ReturnRequest aggregate (CQRS) — a buyer's claim against one order item.

State Machine:
    PENDING → UNDER_REVIEW → APPROVED | REJECTED
    PENDING → APPROVED | REJECTED   (a decision implies the review)
    APPROVED → COMPLETED

The admin decision is recorded once. A second decision is refused rather
than overwriting the first, since approval moves money on the owning order.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from settlement.domain import settlement
from settlement.exceptions import AlreadyReviewed, InvalidState
from settlement.returns.events import (
    ReturnApproved,
    ReturnCompleted,
    ReturnFiled,
    ReturnRejected,
    ReturnReviewStarted,
    StudioFeedbackAdded,
)
from settlement.shared.money import MONEY_TOLERANCE, round_money


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ReturnStatus(Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class ReturnType(Enum):
    RETURN = "return"
    REFUND = "refund"


class ReturnReason(Enum):
    DAMAGED = "damaged"
    WRONG_ITEM = "wrong_item"
    NOT_AS_DESCRIBED = "not_as_described"
    DEFECTIVE = "defective"
    OTHER = "other"


class ReturnDecision(Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class EvidenceType(Enum):
    IMAGE = "image"
    VIDEO = "video"


# Requests that still block a new filing for the same order item
OPEN_RETURN_STATUSES = {
    ReturnStatus.PENDING.value,
    ReturnStatus.UNDER_REVIEW.value,
    ReturnStatus.APPROVED.value,
}

_DECIDABLE_STATUSES = {ReturnStatus.PENDING, ReturnStatus.UNDER_REVIEW}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@settlement.value_object(part_of="ReturnRequest")
class ReturnItem:
    """Snapshot of the order item at filing time."""

    order_item_id = Identifier(required=True)
    item_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    price = Float(required=True)
    quantity = Integer(required=True)
    seller_id = Identifier(required=True)
    seller_name = String(max_length=200)


@settlement.value_object(part_of="ReturnRequest")
class AdminReview:
    reviewed_by = Identifier(required=True)
    reviewed_at = DateTime(required=True)
    decision = String(required=True, choices=ReturnDecision)
    notes = Text()
    refund_amount = Float()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@settlement.entity(part_of="ReturnRequest")
class Evidence:
    media_type = String(required=True, choices=EvidenceType)
    url = String(required=True, max_length=1000)
    filename = String(max_length=255)


@settlement.entity(part_of="ReturnRequest")
class StudioFeedback:
    """A seller's note on the request. Informational only."""

    seller_id = Identifier(required=True)
    message = Text(required=True)
    created_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@settlement.aggregate
class ReturnRequest:
    request_number = String(max_length=20)
    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    item = ValueObject(ReturnItem, required=True)
    return_type = String(choices=ReturnType, default=ReturnType.REFUND.value)
    reason = String(required=True, choices=ReturnReason)
    description = Text(required=True)
    evidence = HasMany(Evidence)
    status = String(choices=ReturnStatus, default=ReturnStatus.PENDING.value)
    admin_review = ValueObject(AdminReview)
    studio_feedback = HasMany(StudioFeedback)
    refund_amount = Float(default=0.0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def refund_amount_within_line_total(self):
        if self.item is None or self.refund_amount is None:
            return
        if self.refund_amount < 0:
            raise ValidationError({"refund_amount": ["Refund amount cannot be negative"]})
        if self.refund_amount > self.line_total + MONEY_TOLERANCE:
            raise ValidationError({"refund_amount": ["Refund amount cannot exceed the item's price times quantity"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def file(
        cls,
        request_number: str,
        order_id: str,
        buyer_id: str,
        item: ReturnItem,
        reason: str,
        description: str,
        return_type: str = ReturnType.REFUND.value,
        evidence: list[dict] | None = None,
    ):
        """File a new request. The refund defaults to the full line total."""
        if not description or not description.strip():
            raise ValidationError({"description": ["Please describe the problem with the item"]})

        now = datetime.now(UTC)
        request = cls(
            request_number=request_number,
            order_id=order_id,
            buyer_id=buyer_id,
            item=item,
            return_type=return_type,
            reason=reason,
            description=description,
            status=ReturnStatus.PENDING.value,
            refund_amount=round_money(item.price * item.quantity),
            created_at=now,
            updated_at=now,
        )
        for entry in evidence or []:
            request.add_evidence(Evidence(**entry))

        request.raise_(
            ReturnFiled(
                return_id=str(request.id),
                request_number=request_number,
                order_id=order_id,
                order_item_id=str(item.order_item_id),
                buyer_id=buyer_id,
                seller_id=str(item.seller_id),
                return_type=return_type,
                reason=reason,
                refund_amount=request.refund_amount,
                filed_at=now,
            )
        )
        return request

    @property
    def line_total(self) -> float:
        return round_money(self.item.price * self.item.quantity)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_RETURN_STATUSES

    # -------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------
    def start_review(self, reviewer_id: str) -> None:
        if ReturnStatus(self.status) != ReturnStatus.PENDING:
            raise InvalidState({"status": [f"Cannot start review of a {self.status} request"]})

        now = datetime.now(UTC)
        self.status = ReturnStatus.UNDER_REVIEW.value
        self.updated_at = now
        self.raise_(ReturnReviewStarted(return_id=str(self.id), reviewer_id=reviewer_id, started_at=now))

    def decide(
        self,
        admin_id: str,
        decision: str,
        notes: str | None = None,
        refund_amount: float | None = None,
    ) -> None:
        """Record the admin decision.

        Only the request itself changes here. On approval the caller refunds
        the order item in the same unit of work.
        """
        if self.admin_review is not None:
            raise AlreadyReviewed({"admin_review": ["This return request has already been reviewed"]})
        current = ReturnStatus(self.status)
        if current not in _DECIDABLE_STATUSES:
            raise InvalidState({"status": [f"Cannot decide a {current.value} request"]})

        outcome = ReturnDecision(decision)
        now = datetime.now(UTC)

        if outcome == ReturnDecision.APPROVED:
            amount = round_money(refund_amount if refund_amount is not None else self.refund_amount)
            if amount <= 0:
                raise InvalidState({"refund_amount": ["Approved refund amount must be positive"]})
            if amount > self.line_total + MONEY_TOLERANCE:
                raise InvalidState({"refund_amount": ["Approved refund amount cannot exceed the item total"]})

            self.refund_amount = amount
            self.status = ReturnStatus.APPROVED.value
            self.admin_review = AdminReview(
                reviewed_by=admin_id,
                reviewed_at=now,
                decision=outcome.value,
                notes=notes,
                refund_amount=amount,
            )
            self.updated_at = now
            self.raise_(
                ReturnApproved(
                    return_id=str(self.id),
                    order_id=str(self.order_id),
                    order_item_id=str(self.item.order_item_id),
                    seller_id=str(self.item.seller_id),
                    reviewed_by=admin_id,
                    refund_amount=amount,
                    notes=notes,
                    approved_at=now,
                )
            )
        else:
            self.status = ReturnStatus.REJECTED.value
            self.admin_review = AdminReview(
                reviewed_by=admin_id,
                reviewed_at=now,
                decision=outcome.value,
                notes=notes,
            )
            self.updated_at = now
            self.raise_(
                ReturnRejected(
                    return_id=str(self.id),
                    order_id=str(self.order_id),
                    reviewed_by=admin_id,
                    notes=notes,
                    rejected_at=now,
                )
            )

    def complete(self) -> None:
        if ReturnStatus(self.status) != ReturnStatus.APPROVED:
            raise InvalidState({"status": [f"Only approved requests can be completed, not {self.status}"]})

        now = datetime.now(UTC)
        self.status = ReturnStatus.COMPLETED.value
        self.updated_at = now
        self.raise_(ReturnCompleted(return_id=str(self.id), order_id=str(self.order_id), completed_at=now))

    # -------------------------------------------------------------------
    # Seller feedback
    # -------------------------------------------------------------------
    def add_feedback(self, seller_id: str, message: str) -> None:
        if not message or not message.strip():
            raise InvalidState({"message": ["Feedback message cannot be empty"]})

        now = datetime.now(UTC)
        self.add_studio_feedback(StudioFeedback(seller_id=seller_id, message=message.strip(), created_at=now))
        self.updated_at = now
        self.raise_(
            StudioFeedbackAdded(
                return_id=str(self.id),
                seller_id=seller_id,
                message=message.strip(),
                added_at=now,
            )
        )
