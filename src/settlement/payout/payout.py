"""Payout aggregate (CQRS) — one seller's batched earnings over a period.

State Machine:
    PENDING → {PROCESSING, COMPLETED, FAILED, CANCELLED}
    PROCESSING → {COMPLETED, FAILED, CANCELLED}
    COMPLETED, FAILED, CANCELLED are terminal

A payout stores the rates it was priced with so that removing a refunded
item later re-prices it consistently, even if the configured rates changed
in the meantime.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String, Text, ValueObject

from settlement.domain import settlement
from settlement.exceptions import InvalidState
from settlement.payout.events import (
    PayoutAdjusted,
    PayoutCancelled,
    PayoutCompleted,
    PayoutCreated,
    PayoutFailed,
    PayoutProcessing,
)
from settlement.shared.money import MONEY_TOLERANCE, round_money


class PayoutStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PayoutMethod(Enum):
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    RAZORPAY_PAYOUT = "razorpay_payout"
    MANUAL = "manual"


_VALID_TRANSITIONS = {
    PayoutStatus.PENDING: {
        PayoutStatus.PROCESSING,
        PayoutStatus.COMPLETED,
        PayoutStatus.FAILED,
        PayoutStatus.CANCELLED,
    },
    PayoutStatus.PROCESSING: {PayoutStatus.COMPLETED, PayoutStatus.FAILED, PayoutStatus.CANCELLED},
    PayoutStatus.COMPLETED: set(),  # terminal
    PayoutStatus.FAILED: set(),  # terminal
    PayoutStatus.CANCELLED: set(),  # terminal
}

# Payouts whose claimed items are still reserved but not yet settled
OPEN_PAYOUT_STATUSES = {PayoutStatus.PENDING.value, PayoutStatus.PROCESSING.value}


@dataclass(frozen=True)
class PayoutAmounts:
    gross: float
    platform_fees: float
    processing_fees: float
    net: float


def price_payout(gross: float, commission_rate: float, processing_rate: float) -> PayoutAmounts:
    """Split gross earnings into platform fee, processing fee, and net payout."""
    gross = round_money(gross)
    platform_fees = round_money(gross * commission_rate)
    processing_fees = round_money(gross * processing_rate)
    net = max(0.0, round_money(gross - platform_fees - processing_fees))
    return PayoutAmounts(gross=gross, platform_fees=platform_fees, processing_fees=processing_fees, net=net)


@settlement.value_object(part_of="Payout")
class PayoutPaymentDetails:
    transaction_id = String(max_length=255)
    notes = Text()


@settlement.aggregate
class Payout:
    seller_id = Identifier(required=True)
    seller_name = String(max_length=200)
    seller_email = String(max_length=254)
    order_ids = Text()  # JSON list of order id strings
    order_count = Integer(default=0)
    item_count = Integer(default=0)
    gross_earnings = Float(default=0.0)
    platform_fees = Float(default=0.0)
    processing_fees = Float(default=0.0)
    net_earnings = Float(default=0.0)
    platform_commission_rate = Float(required=True)
    processing_fee_rate = Float(required=True)
    currency = String(max_length=3, default="INR")
    status = String(choices=PayoutStatus, default=PayoutStatus.PENDING.value)
    payment_method = String(choices=PayoutMethod, default=PayoutMethod.BANK_TRANSFER.value)
    payment_details = ValueObject(PayoutPaymentDetails)
    failure_reason = String(max_length=500)
    period_start = DateTime(required=True)
    period_end = DateTime(required=True)
    processed_by = Identifier()
    processed_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def money_fields_cannot_be_negative(self):
        for name in ("gross_earnings", "platform_fees", "processing_fees", "net_earnings"):
            if (getattr(self, name) or 0.0) < 0:
                raise ValidationError({name: ["Payout amounts cannot be negative"]})

    @invariant.post
    def net_must_balance_fees(self):
        expected = max(0.0, (self.gross_earnings or 0.0) - (self.platform_fees or 0.0) - (self.processing_fees or 0.0))
        if abs((self.net_earnings or 0.0) - expected) > MONEY_TOLERANCE * 2:
            raise ValidationError({"net_earnings": ["Net earnings must equal gross minus fees"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        seller_id: str,
        order_ids: list[str],
        item_count: int,
        gross: float,
        commission_rate: float,
        processing_rate: float,
        period_start: datetime,
        period_end: datetime,
        currency: str = "INR",
        payment_method: str = PayoutMethod.BANK_TRANSFER.value,
        seller_name: str | None = None,
        seller_email: str | None = None,
        notes: str | None = None,
    ):
        amounts = price_payout(gross, commission_rate, processing_rate)
        now = datetime.now(UTC)
        payout = cls(
            seller_id=seller_id,
            seller_name=seller_name,
            seller_email=seller_email,
            order_ids=json.dumps(order_ids),
            order_count=len(order_ids),
            item_count=item_count,
            gross_earnings=amounts.gross,
            platform_fees=amounts.platform_fees,
            processing_fees=amounts.processing_fees,
            net_earnings=amounts.net,
            platform_commission_rate=commission_rate,
            processing_fee_rate=processing_rate,
            currency=currency,
            status=PayoutStatus.PENDING.value,
            payment_method=payment_method,
            payment_details=PayoutPaymentDetails(notes=notes) if notes else None,
            period_start=period_start,
            period_end=period_end,
            created_at=now,
            updated_at=now,
        )
        payout.raise_(
            PayoutCreated(
                payout_id=str(payout.id),
                seller_id=seller_id,
                order_ids=payout.order_ids,
                item_count=item_count,
                gross_earnings=amounts.gross,
                platform_fees=amounts.platform_fees,
                processing_fees=amounts.processing_fees,
                net_earnings=amounts.net,
                currency=currency,
                period_start=period_start,
                period_end=period_end,
                created_at=now,
            )
        )
        return payout

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def order_id_list(self) -> list[str]:
        return json.loads(self.order_ids) if self.order_ids else []

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_PAYOUT_STATUSES

    def _assert_can_transition(self, target: PayoutStatus) -> None:
        current = PayoutStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidState({"status": [f"Cannot transition payout from {current.value} to {target.value}"]})

    def _record_payment_details(self, transaction_id: str | None, notes: str | None) -> None:
        if transaction_id is None and notes is None:
            return
        current = self.payment_details
        self.payment_details = PayoutPaymentDetails(
            transaction_id=transaction_id if transaction_id is not None else (current.transaction_id if current else None),
            notes=notes if notes is not None else (current.notes if current else None),
        )

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def start_processing(self, transaction_id: str | None = None, notes: str | None = None) -> None:
        self._assert_can_transition(PayoutStatus.PROCESSING)
        now = datetime.now(UTC)
        self.status = PayoutStatus.PROCESSING.value
        self._record_payment_details(transaction_id, notes)
        self.updated_at = now
        self.raise_(
            PayoutProcessing(
                payout_id=str(self.id),
                seller_id=str(self.seller_id),
                transaction_id=transaction_id,
                started_at=now,
            )
        )

    def complete(
        self,
        processed_by: str | None = None,
        transaction_id: str | None = None,
        notes: str | None = None,
    ) -> None:
        """Mark the payout as paid to the seller.

        The caller settles the claimed order items in the same unit of work.
        """
        self._assert_can_transition(PayoutStatus.COMPLETED)
        now = datetime.now(UTC)
        self.status = PayoutStatus.COMPLETED.value
        self.processed_by = processed_by
        self.processed_at = now
        self._record_payment_details(transaction_id, notes)
        self.updated_at = now
        self.raise_(
            PayoutCompleted(
                payout_id=str(self.id),
                seller_id=str(self.seller_id),
                order_ids=self.order_ids or "[]",
                net_earnings=self.net_earnings,
                transaction_id=transaction_id,
                processed_by=processed_by,
                processed_at=now,
            )
        )

    def fail(self, reason: str | None = None, transaction_id: str | None = None, notes: str | None = None) -> None:
        self._assert_can_transition(PayoutStatus.FAILED)
        now = datetime.now(UTC)
        self.status = PayoutStatus.FAILED.value
        self.failure_reason = reason
        self._record_payment_details(transaction_id, notes)
        self.updated_at = now
        self.raise_(
            PayoutFailed(
                payout_id=str(self.id),
                seller_id=str(self.seller_id),
                order_ids=self.order_ids or "[]",
                reason=reason,
                failed_at=now,
            )
        )

    def cancel(self, reason: str | None = None, transaction_id: str | None = None, notes: str | None = None) -> None:
        self._assert_can_transition(PayoutStatus.CANCELLED)
        now = datetime.now(UTC)
        self.status = PayoutStatus.CANCELLED.value
        self.failure_reason = reason
        self._record_payment_details(transaction_id, notes)
        self.updated_at = now
        self.raise_(
            PayoutCancelled(
                payout_id=str(self.id),
                seller_id=str(self.seller_id),
                order_ids=self.order_ids or "[]",
                reason=reason,
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Adjustment
    # -------------------------------------------------------------------
    def remove_item(self, order_id: str, amount: float, order_still_claimed: bool) -> None:
        """Drop one refunded item from an unsettled payout and re-price it.

        ``order_still_claimed`` tells whether the order has other items left
        in this payout. A payout left with no items is cancelled.
        """
        if not self.is_open:
            raise InvalidState({"status": [f"Cannot adjust a {self.status} payout"]})

        now = datetime.now(UTC)
        gross = max(0.0, round_money(self.gross_earnings - amount))
        amounts = price_payout(gross, self.platform_commission_rate, self.processing_fee_rate)

        order_ids = self.order_id_list
        if not order_still_claimed and order_id in order_ids:
            order_ids.remove(order_id)

        with atomic_change(self):
            self.gross_earnings = amounts.gross
            self.platform_fees = amounts.platform_fees
            self.processing_fees = amounts.processing_fees
            self.net_earnings = amounts.net
            self.item_count = max(0, (self.item_count or 0) - 1)
            self.order_ids = json.dumps(order_ids)
            self.order_count = len(order_ids)
            self.updated_at = now

        self.raise_(
            PayoutAdjusted(
                payout_id=str(self.id),
                order_id=order_id,
                removed_amount=round_money(amount),
                gross_earnings=amounts.gross,
                net_earnings=amounts.net,
                item_count=self.item_count,
                adjusted_at=now,
            )
        )

        if self.item_count == 0:
            self.cancel(reason="All claimed items were refunded")
