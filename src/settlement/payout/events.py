"""Payout domain events."""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from settlement.domain import settlement


@settlement.event(part_of="Payout")
class PayoutCreated:
    __version__ = 1

    payout_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    order_ids = Text(required=True)  # JSON list
    item_count = Integer(required=True)
    gross_earnings = Float(required=True)
    platform_fees = Float(required=True)
    processing_fees = Float(required=True)
    net_earnings = Float(required=True)
    currency = String(required=True)
    period_start = DateTime(required=True)
    period_end = DateTime(required=True)
    created_at = DateTime(required=True)


@settlement.event(part_of="Payout")
class PayoutProcessing:
    __version__ = 1

    payout_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    transaction_id = String()
    started_at = DateTime(required=True)


@settlement.event(part_of="Payout")
class PayoutCompleted:
    """Money reached the seller; claimed items are now settled."""

    __version__ = 1

    payout_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    order_ids = Text(required=True)
    net_earnings = Float(required=True)
    transaction_id = String()
    processed_by = Identifier()
    processed_at = DateTime(required=True)


@settlement.event(part_of="Payout")
class PayoutFailed:
    __version__ = 1

    payout_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    order_ids = Text(required=True)
    reason = String()
    failed_at = DateTime(required=True)


@settlement.event(part_of="Payout")
class PayoutCancelled:
    __version__ = 1

    payout_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    order_ids = Text(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)


@settlement.event(part_of="Payout")
class PayoutAdjusted:
    """A refunded item was removed from an unsettled payout and the payout re-priced."""

    __version__ = 1

    payout_id = Identifier(required=True)
    order_id = Identifier(required=True)
    removed_amount = Float(required=True)
    gross_earnings = Float(required=True)
    net_earnings = Float(required=True)
    item_count = Integer(required=True)
    adjusted_at = DateTime(required=True)
