"""Order domain events — immutable facts about payment, fulfillment, and item settlement.

All events are past tense, versioned, and carry enough data for downstream
consumers (notifications, reporting) without re-reading the order.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from settlement.domain import settlement


@settlement.event(part_of="Order")
class OrderPlaced:
    """A buyer checkout was recorded and is awaiting payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    buyer_id = Identifier(required=True)
    total = Float(required=True)
    item_count = Integer(required=True)
    seller_ids = Text()  # JSON list of seller id strings
    promo_code = String()
    gateway_order_id = String()
    placed_at = DateTime(required=True)


@settlement.event(part_of="Order")
class PaymentCaptured:
    """The gateway confirmed payment for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    gateway_order_id = String()
    gateway_payment_id = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    method = String()
    promo_code = String()
    captured_at = DateTime(required=True)


@settlement.event(part_of="Order")
class PaymentFailed:
    """The gateway reported a failed payment attempt."""

    __version__ = 1

    order_id = Identifier(required=True)
    gateway_payment_id = String()
    reason = String(required=True)
    failed_at = DateTime(required=True)


@settlement.event(part_of="Order")
class GatewayRefundRecorded:
    """The gateway reported a processed refund against the order's payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    gateway_refund_id = String(required=True)
    refunded_amount = Float(required=True)
    payment_status = String(required=True)
    processed_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderStatusUpdated:
    """The order's fulfillment status moved forward."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    message = String(required=True)
    updated_by = Identifier()
    tracking_number = String()
    updated_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled by a seller or an admin."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    cancelled_by = Identifier()
    reason = String()
    cancelled_at = DateTime(required=True)


@settlement.event(part_of="Order")
class ItemsClaimedForPayout:
    """A seller's unsettled items were reserved by a payout."""

    __version__ = 1

    order_id = Identifier(required=True)
    payout_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    order_item_ids = Text(required=True)  # JSON list of order item id strings
    amount = Float(required=True)
    claimed_at = DateTime(required=True)


@settlement.event(part_of="Order")
class PayoutItemsSettled:
    """Items reserved by a payout were paid to the seller."""

    __version__ = 1

    order_id = Identifier(required=True)
    payout_id = Identifier(required=True)
    order_item_ids = Text(required=True)
    settled_at = DateTime(required=True)


@settlement.event(part_of="Order")
class PayoutItemsReleased:
    """A failed or cancelled payout released its reservation on items."""

    __version__ = 1

    order_id = Identifier(required=True)
    payout_id = Identifier(required=True)
    order_item_ids = Text(required=True)
    released_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderItemRefunded:
    """An approved return refunded one order item."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    refund_amount = Float(required=True)
    refunded_total = Float(required=True)
    payment_status = String(required=True)
    released_payout_id = Identifier()
    refunded_at = DateTime(required=True)
