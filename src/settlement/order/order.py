"""Order aggregate (CQRS) — the ledger every settlement flow reads and writes.

An Order is a buyer checkout that spans items from several sellers. It tracks
three independent state machines:

Fulfillment status:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED
    Any state except CANCELLED → CANCELLED

Payment status:
    PENDING → {PAID, FAILED}
    FAILED → {PAID, FAILED}       (a retried payment may still succeed)
    PAID → {REFUNDED, PARTIALLY_REFUNDED}
    PARTIALLY_REFUNDED → {REFUNDED, PARTIALLY_REFUNDED}

Item payout status (per seller line):
    PENDING → PAID               (only by the payout that claimed the item)
    {PENDING, PAID} → REFUNDED   (terminal)

Items are claimed by a payout by stamping ``payout_id`` while they remain
PENDING; completing the payout settles them, failing or cancelling it
releases them again.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from settlement.domain import settlement
from settlement.exceptions import InvalidState
from settlement.order.events import (
    GatewayRefundRecorded,
    ItemsClaimedForPayout,
    OrderCancelled,
    OrderItemRefunded,
    OrderPlaced,
    OrderStatusUpdated,
    PaymentCaptured,
    PaymentFailed,
    PayoutItemsReleased,
    PayoutItemsSettled,
)
from settlement.shared.money import MONEY_TOLERANCE, round_money


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class ItemPayoutStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class ItemType(Enum):
    PRODUCT = "product"
    COURSE = "course"
    WORKSHOP = "workshop"


class PaymentMethod(Enum):
    RAZORPAY = "razorpay"
    STRIPE = "stripe"
    PAYPAL = "paypal"
    COD = "cod"


_FULFILLMENT_SEQUENCE = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]

_VALID_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.PARTIALLY_REFUNDED: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.REFUNDED: set(),  # terminal
}

# Statuses under which captured money exists to be settled or refunded
SETTLEABLE_PAYMENT_STATUSES = {PaymentStatus.PAID.value, PaymentStatus.PARTIALLY_REFUNDED.value}

SELLER_SETTABLE_STATUSES = {
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
}

_STATUS_MESSAGES = {
    OrderStatus.CONFIRMED: "Order has been confirmed",
    OrderStatus.PROCESSING: "Order is being prepared",
    OrderStatus.SHIPPED: "Order has been shipped",
    OrderStatus.DELIVERED: "Order has been delivered",
    OrderStatus.CANCELLED: "Order has been cancelled",
}


def status_message(status: OrderStatus) -> str:
    return _STATUS_MESSAGES.get(status, f"Order status updated to {status.value}")


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@settlement.value_object(part_of="Order")
class PaymentDetails:
    """Gateway-verified payment metadata."""

    method = String(max_length=50)
    amount = Float()
    currency = String(max_length=3)
    paid_at = DateTime()
    failure_reason = String(max_length=500)


@settlement.value_object(part_of="Order")
class RefundDetails:
    """Cumulative refund state for the order's payment."""

    amount = Float(default=0.0)
    status = String(max_length=50)
    processed_at = DateTime()


@settlement.value_object(part_of="Order")
class ShippingTracking:
    carrier = String(max_length=100)
    tracking_number = String(max_length=255)
    tracking_url = String(max_length=500)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@settlement.entity(part_of="Order")
class OrderItem:
    """One seller's line in a multi-seller order."""

    item_id = Identifier(required=True)
    item_type = String(max_length=20, choices=ItemType, default=ItemType.PRODUCT.value)
    seller_id = Identifier(required=True)
    seller_name = String(max_length=200)
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    payout_status = String(
        max_length=20,
        choices=ItemPayoutStatus,
        default=ItemPayoutStatus.PENDING.value,
    )
    payout_id = Identifier()
    open_return_id = Identifier()

    @property
    def line_total(self) -> float:
        return round_money(self.price * self.quantity)

    @property
    def is_claimable(self) -> bool:
        return self.payout_status == ItemPayoutStatus.PENDING.value and not self.payout_id


@settlement.entity(part_of="Order")
class TrackingEntry:
    """An append-only status history entry."""

    status = String(required=True, max_length=50)
    message = String(required=True, max_length=500)
    updated_by = Identifier()
    timestamp = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@settlement.aggregate
class Order:
    order_number = String(max_length=20)
    buyer_id = Identifier(required=True)
    items = HasMany(OrderItem)
    subtotal = Float(default=0.0)
    shipping = Float(default=0.0)
    discount = Float(default=0.0)
    tax = Float(default=0.0)
    total = Float(default=0.0)
    promo_code = String(max_length=50)
    promo_discount = Float(default=0.0)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.RAZORPAY.value)
    gateway_order_id = String(max_length=255)
    gateway_payment_id = String(max_length=255)
    payment_details = ValueObject(PaymentDetails)
    refund_details = ValueObject(RefundDetails)
    gateway_refund_ids = Text()  # JSON list of processed gateway refund ids
    shipping_tracking = ValueObject(ShippingTracking)
    tracking_history = HasMany(TrackingEntry)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def refunds_cannot_exceed_total(self):
        if self.refunded_amount > (self.total or 0.0) + MONEY_TOLERANCE:
            raise ValidationError({"refund_details": ["Refunded amount cannot exceed the order total"]})

    @invariant.post
    def paid_items_must_reference_a_payout(self):
        for item in self.items or []:
            if item.payout_status == ItemPayoutStatus.PAID.value and not item.payout_id:
                raise ValidationError({"items": ["A paid item must reference the payout that settled it"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        buyer_id: str,
        items_data: list[dict],
        order_number: str,
        shipping: float = 0.0,
        tax: float = 0.0,
        discount: float = 0.0,
        promo_code: str | None = None,
        payment_method: str = PaymentMethod.RAZORPAY.value,
        gateway_order_id: str | None = None,
    ):
        """Record a buyer checkout awaiting payment."""
        if not items_data:
            raise ValidationError({"items": ["An order must contain at least one item"]})

        subtotal = round_money(sum(d["price"] * d["quantity"] for d in items_data))
        total = round_money(max(subtotal + shipping + tax - discount, 0.0))
        now = datetime.now(UTC)

        order = cls(
            order_number=order_number,
            buyer_id=buyer_id,
            subtotal=subtotal,
            shipping=round_money(shipping),
            discount=round_money(discount),
            tax=round_money(tax),
            total=total,
            promo_code=promo_code.upper() if promo_code else None,
            promo_discount=round_money(discount) if promo_code else 0.0,
            payment_method=payment_method,
            gateway_order_id=gateway_order_id,
            refund_details=RefundDetails(amount=0.0),
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            order.add_items(OrderItem(**item_data))
        order.add_tracking_history(
            TrackingEntry(
                status=OrderStatus.PENDING.value,
                message="Order placed",
                updated_by=buyer_id,
                timestamp=now,
            )
        )

        seller_ids = sorted({str(d["seller_id"]) for d in items_data})
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                buyer_id=buyer_id,
                total=total,
                item_count=len(items_data),
                seller_ids=json.dumps(seller_ids),
                promo_code=order.promo_code,
                gateway_order_id=gateway_order_id,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    @property
    def refunded_amount(self) -> float:
        if self.refund_details and self.refund_details.amount:
            return self.refund_details.amount
        return 0.0

    @property
    def processed_refund_ids(self) -> list[str]:
        return json.loads(self.gateway_refund_ids) if self.gateway_refund_ids else []

    @property
    def is_settleable(self) -> bool:
        return self.payment_status in SETTLEABLE_PAYMENT_STATUSES

    def find_item(self, item_ref: str):
        """Find a line by its own id, falling back to the catalogue item id."""
        ref = str(item_ref)
        item = next((i for i in (self.items or []) if str(i.id) == ref), None)
        if item is None:
            item = next((i for i in (self.items or []) if str(i.item_id) == ref), None)
        return item

    def items_for_seller(self, seller_id: str) -> list:
        return [i for i in (self.items or []) if str(i.seller_id) == str(seller_id)]

    def items_claimed_by(self, payout_id: str) -> list:
        return [i for i in (self.items or []) if i.payout_id and str(i.payout_id) == str(payout_id)]

    def is_paid_with(self, gateway_payment_id: str) -> bool:
        return self.payment_status == PaymentStatus.PAID.value and self.gateway_payment_id == gateway_payment_id

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _assert_payment_transition(self, target: PaymentStatus) -> None:
        current = PaymentStatus(self.payment_status)
        if target not in _VALID_PAYMENT_TRANSITIONS.get(current, set()):
            raise InvalidState({"payment_status": [f"Cannot transition payment from {current.value} to {target.value}"]})

    def _assert_can_transition(self, target: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target == OrderStatus.CANCELLED:
            if current == OrderStatus.CANCELLED:
                raise InvalidState({"status": ["Order is already cancelled"]})
            return
        if current == OrderStatus.CANCELLED or _FULFILLMENT_SEQUENCE.index(target) <= _FULFILLMENT_SEQUENCE.index(
            current
        ):
            raise InvalidState({"status": [f"Cannot transition from {current.value} to {target.value}"]})

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def capture_payment(
        self,
        gateway_payment_id: str,
        amount: float,
        currency: str,
        method: str | None = None,
        gateway_order_id: str | None = None,
    ) -> None:
        """Mark the order paid with verified gateway metadata."""
        self._assert_payment_transition(PaymentStatus.PAID)
        now = datetime.now(UTC)

        with atomic_change(self):
            self.payment_status = PaymentStatus.PAID.value
            self.gateway_payment_id = gateway_payment_id
            if gateway_order_id and not self.gateway_order_id:
                self.gateway_order_id = gateway_order_id
            self.payment_details = PaymentDetails(
                method=method,
                amount=round_money(amount),
                currency=currency,
                paid_at=now,
            )
            self.updated_at = now

        # A capture never drags fulfillment backwards
        if OrderStatus(self.status) == OrderStatus.PENDING:
            self.status = OrderStatus.CONFIRMED.value
            self.add_tracking_history(
                TrackingEntry(
                    status=OrderStatus.CONFIRMED.value,
                    message=status_message(OrderStatus.CONFIRMED),
                    timestamp=now,
                )
            )

        self.raise_(
            PaymentCaptured(
                order_id=str(self.id),
                gateway_order_id=self.gateway_order_id,
                gateway_payment_id=gateway_payment_id,
                amount=round_money(amount),
                currency=currency,
                method=method,
                promo_code=self.promo_code,
                captured_at=now,
            )
        )

    def record_payment_failure(self, gateway_payment_id: str | None, reason: str) -> None:
        """Record a failed payment attempt. Fulfillment status is left alone."""
        self._assert_payment_transition(PaymentStatus.FAILED)
        now = datetime.now(UTC)
        previous = self.payment_details

        with atomic_change(self):
            self.payment_status = PaymentStatus.FAILED.value
            if gateway_payment_id:
                self.gateway_payment_id = gateway_payment_id
            self.payment_details = PaymentDetails(
                method=previous.method if previous else None,
                amount=previous.amount if previous else None,
                currency=previous.currency if previous else None,
                failure_reason=reason,
            )
            self.updated_at = now

        self.raise_(
            PaymentFailed(
                order_id=str(self.id),
                gateway_payment_id=gateway_payment_id,
                reason=reason,
                failed_at=now,
            )
        )

    def record_gateway_refund(
        self,
        gateway_refund_id: str,
        refund_amount: float,
        cumulative_amount: float | None = None,
    ) -> None:
        """Merge a gateway-reported refund into the cumulative refund state.

        ``cumulative_amount``, when the gateway reports it, is the total refunded
        so far and wins over local arithmetic. Otherwise ``refund_amount`` is
        added to what is already recorded. Either way the stored amount never
        decreases and never exceeds the order total.
        """
        if gateway_refund_id in self.processed_refund_ids:
            raise InvalidState({"gateway_refund_id": [f"Refund {gateway_refund_id} has already been recorded"]})
        if not self.is_settleable:
            raise InvalidState({"payment_status": [f"Cannot record a refund on a {self.payment_status} payment"]})

        if cumulative_amount is not None:
            reported = round_money(cumulative_amount)
        else:
            reported = round_money(self.refunded_amount + refund_amount)
        new_amount = min(max(self.refunded_amount, reported), self.total)
        if new_amount >= self.total - MONEY_TOLERANCE:
            target = PaymentStatus.REFUNDED
        else:
            target = PaymentStatus.PARTIALLY_REFUNDED
        self._assert_payment_transition(target)

        now = datetime.now(UTC)
        with atomic_change(self):
            self.payment_status = target.value
            self.refund_details = RefundDetails(amount=new_amount, status="processed", processed_at=now)
            self.gateway_refund_ids = json.dumps(self.processed_refund_ids + [gateway_refund_id])
            self.updated_at = now

        self.raise_(
            GatewayRefundRecorded(
                order_id=str(self.id),
                gateway_refund_id=gateway_refund_id,
                refunded_amount=new_amount,
                payment_status=target.value,
                processed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------
    def update_status(
        self,
        new_status: str,
        updated_by: str | None = None,
        carrier: str | None = None,
        tracking_number: str | None = None,
        tracking_url: str | None = None,
    ) -> None:
        """Move the order forward and append to its tracking history."""
        target = OrderStatus(new_status)
        self._assert_can_transition(target)
        previous = self.status
        now = datetime.now(UTC)
        message = status_message(target)

        self.status = target.value
        self.add_tracking_history(
            TrackingEntry(status=target.value, message=message, updated_by=updated_by, timestamp=now)
        )

        if tracking_number:
            self.shipping_tracking = ShippingTracking(
                carrier=carrier,
                tracking_number=tracking_number,
                tracking_url=tracking_url,
            )
            self.add_tracking_history(
                TrackingEntry(
                    status=target.value,
                    message=f"Shipped via {carrier}. Tracking: {tracking_number}",
                    updated_by=updated_by,
                    timestamp=now,
                )
            )

        self.updated_at = now
        self.raise_(
            OrderStatusUpdated(
                order_id=str(self.id),
                previous_status=previous,
                new_status=target.value,
                message=message,
                updated_by=updated_by,
                tracking_number=tracking_number,
                updated_at=now,
            )
        )

    def cancel(self, cancelled_by: str | None = None, reason: str | None = None) -> None:
        self._assert_can_transition(OrderStatus.CANCELLED)
        previous = self.status
        now = datetime.now(UTC)

        self.status = OrderStatus.CANCELLED.value
        self.add_tracking_history(
            TrackingEntry(
                status=OrderStatus.CANCELLED.value,
                message=reason or status_message(OrderStatus.CANCELLED),
                updated_by=cancelled_by,
                timestamp=now,
            )
        )
        self.updated_at = now
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=previous,
                cancelled_by=cancelled_by,
                reason=reason,
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Payout settlement
    # -------------------------------------------------------------------
    def claim_for_payout(self, seller_id: str, payout_id: str) -> list:
        """Reserve the seller's unsettled items for a payout.

        Items keep their PENDING payout status; only ``payout_id`` is stamped.
        """
        claimable = [i for i in self.items_for_seller(seller_id) if i.is_claimable]
        if not claimable:
            raise InvalidState({"items": [f"Order {self.order_number} has no unclaimed items for this seller"]})

        now = datetime.now(UTC)
        for item in claimable:
            item.payout_id = payout_id
        self.updated_at = now

        self.raise_(
            ItemsClaimedForPayout(
                order_id=str(self.id),
                payout_id=payout_id,
                seller_id=seller_id,
                order_item_ids=json.dumps([str(i.id) for i in claimable]),
                amount=round_money(sum(i.line_total for i in claimable)),
                claimed_at=now,
            )
        )
        return claimable

    def settle_payout(self, payout_id: str) -> list:
        """Mark the items a completed payout claimed as paid to the seller."""
        settled = [i for i in self.items_claimed_by(payout_id) if i.payout_status == ItemPayoutStatus.PENDING.value]
        if not settled:
            return []

        now = datetime.now(UTC)
        for item in settled:
            item.payout_status = ItemPayoutStatus.PAID.value
        self.updated_at = now

        self.raise_(
            PayoutItemsSettled(
                order_id=str(self.id),
                payout_id=payout_id,
                order_item_ids=json.dumps([str(i.id) for i in settled]),
                settled_at=now,
            )
        )
        return settled

    def release_payout(self, payout_id: str) -> list:
        """Return a failed or cancelled payout's items to the unclaimed pool."""
        released = [i for i in self.items_claimed_by(payout_id) if i.payout_status == ItemPayoutStatus.PENDING.value]
        if not released:
            return []

        now = datetime.now(UTC)
        for item in released:
            item.payout_id = None
        self.updated_at = now

        self.raise_(
            PayoutItemsReleased(
                order_id=str(self.id),
                payout_id=payout_id,
                order_item_ids=json.dumps([str(i.id) for i in released]),
                released_at=now,
            )
        )
        return released

    # -------------------------------------------------------------------
    # Returns
    # -------------------------------------------------------------------
    def open_return(self, order_item_id: str, return_id: str):
        """Mark a line as held by an open return request.

        Two filings that both read the line as free cannot both be saved: the
        second fails the order's version check.
        """
        item = self.find_item(order_item_id)
        if item is None:
            raise ValidationError({"order_item_id": ["Item not found in this order"]})
        if item.open_return_id:
            raise InvalidState({"order_item_id": ["A return request is already open for this item"]})

        item.open_return_id = return_id
        self.updated_at = datetime.now(UTC)
        return item

    def close_return(self, return_id: str) -> None:
        """Free the line held by a rejected or completed return request."""
        for item in self.items or []:
            if item.open_return_id and str(item.open_return_id) == str(return_id):
                item.open_return_id = None
                self.updated_at = datetime.now(UTC)

    def refund_item(self, order_item_id: str, amount: float):
        """Refund one line after an approved return.

        A line already paid out to its seller cannot be refunded here. A line
        claimed by an unsettled payout loses its claim; the caller is
        responsible for re-pricing that payout.
        """
        item = self.find_item(order_item_id)
        if item is None:
            raise ValidationError({"order_item_id": ["Item not found in this order"]})
        if item.payout_status == ItemPayoutStatus.REFUNDED.value:
            raise InvalidState({"order_item_id": ["Item has already been refunded"]})
        if item.payout_status == ItemPayoutStatus.PAID.value:
            raise InvalidState({"order_item_id": ["Item has already been paid out to the seller"]})

        current = PaymentStatus(self.payment_status)
        if current not in (PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.REFUNDED):
            raise InvalidState({"payment_status": [f"Cannot refund an item on a {current.value} payment"]})

        now = datetime.now(UTC)
        released_payout_id = str(item.payout_id) if item.payout_id else None
        item.payout_status = ItemPayoutStatus.REFUNDED.value
        item.payout_id = None

        all_refunded = all(i.payout_status == ItemPayoutStatus.REFUNDED.value for i in self.items)
        if all_refunded or current == PaymentStatus.REFUNDED:
            target = PaymentStatus.REFUNDED
        else:
            target = PaymentStatus.PARTIALLY_REFUNDED
        new_amount = min(round_money(self.refunded_amount + amount), self.total)

        with atomic_change(self):
            self.payment_status = target.value
            self.refund_details = RefundDetails(amount=new_amount, status="processed", processed_at=now)
            self.updated_at = now

        self.raise_(
            OrderItemRefunded(
                order_id=str(self.id),
                order_item_id=str(item.id),
                refund_amount=round_money(amount),
                refunded_total=new_amount,
                payment_status=target.value,
                released_payout_id=released_payout_id,
                refunded_at=now,
            )
        )
        return item
