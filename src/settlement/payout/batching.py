"""Payout batching — select a seller's unsettled items and claim them for a payout.

The batcher is configured with the rates in force when it runs. Selection,
pricing, payout creation, and claiming all happen inside the command
handler's unit of work, so either every selected item is stamped with the
new payout id or none is. Two batches racing for the same order fail on the
order's version check rather than double-claiming.
"""

from datetime import datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from settlement.config import SettlementConfig
from settlement.domain import settlement
from settlement.exceptions import LimitExceeded, NoEligibleItems
from settlement.order.order import SETTLEABLE_PAYMENT_STATUSES, Order
from settlement.payout.payout import Payout, PayoutMethod, price_payout
from settlement.shared.money import as_utc, round_money

logger = structlog.get_logger(__name__)


class PayoutBatcher:
    def __init__(self, config: SettlementConfig) -> None:
        self.config = config

    def eligible_orders(self, seller_id: str, period_start: datetime, period_end: datetime) -> list[Order]:
        """Settleable orders in the period holding at least one unclaimed item for the seller."""
        start, end = as_utc(period_start), as_utc(period_end)
        repo = current_domain.repository_for(Order)

        candidates = []
        for payment_status in sorted(SETTLEABLE_PAYMENT_STATUSES):
            candidates.extend(repo._dao.query.filter(payment_status=payment_status).all().items)

        eligible = []
        for candidate in candidates:
            created_at = as_utc(candidate.created_at)
            if created_at is None or not (start <= created_at <= end):
                continue
            order = repo.get(candidate.id)
            if any(i.is_claimable for i in order.items_for_seller(seller_id)):
                eligible.append(order)
        return sorted(eligible, key=lambda o: as_utc(o.created_at))

    def create_payout(
        self,
        seller_id: str,
        period_start: datetime,
        period_end: datetime,
        payment_method: str = PayoutMethod.BANK_TRANSFER.value,
        seller_name: str | None = None,
        seller_email: str | None = None,
        notes: str | None = None,
    ) -> Payout:
        if as_utc(period_start) > as_utc(period_end):
            raise ValidationError({"period_end": ["Period end must not be before period start"]})

        orders = self.eligible_orders(seller_id, period_start, period_end)
        items = [i for order in orders for i in order.items_for_seller(seller_id) if i.is_claimable]
        if not items:
            raise NoEligibleItems({"seller_id": ["No unsettled items for this seller in the selected period"]})

        gross = round_money(sum(i.line_total for i in items))
        amounts = price_payout(gross, self.config.platform_commission_rate, self.config.payment_processing_rate)
        if amounts.net < self.config.minimum_payout:
            raise LimitExceeded(
                {"net_earnings": [f"Net payout {amounts.net:.2f} is below the minimum of {self.config.minimum_payout:.2f}"]}
            )

        payout = Payout.create(
            seller_id=seller_id,
            order_ids=[str(o.id) for o in orders],
            item_count=len(items),
            gross=gross,
            commission_rate=self.config.platform_commission_rate,
            processing_rate=self.config.payment_processing_rate,
            period_start=period_start,
            period_end=period_end,
            currency=self.config.currency,
            payment_method=payment_method,
            seller_name=seller_name or items[0].seller_name,
            seller_email=seller_email,
            notes=notes,
        )

        order_repo = current_domain.repository_for(Order)
        for order in orders:
            order.claim_for_payout(seller_id, str(payout.id))
            order_repo.add(order)
        current_domain.repository_for(Payout).add(payout)

        logger.info(
            "payout_created",
            payout_id=str(payout.id),
            seller_id=seller_id,
            order_count=len(orders),
            item_count=len(items),
            gross=amounts.gross,
            net=amounts.net,
        )
        return payout


@settlement.command(part_of="Payout")
class CreatePayout:
    seller_id = Identifier(required=True)
    period_start = DateTime(required=True)
    period_end = DateTime(required=True)
    payment_method = String(choices=PayoutMethod, default=PayoutMethod.BANK_TRANSFER.value)
    seller_name = String(max_length=200)
    seller_email = String(max_length=254)
    notes = Text()


@settlement.command_handler(part_of=Payout)
class CreatePayoutHandler:
    @handle(CreatePayout)
    def create_payout(self, command):
        batcher = PayoutBatcher(SettlementConfig.from_env())
        payout = batcher.create_payout(
            seller_id=str(command.seller_id),
            period_start=command.period_start,
            period_end=command.period_end,
            payment_method=command.payment_method,
            seller_name=command.seller_name,
            seller_email=command.seller_email,
            notes=command.notes,
        )
        return str(payout.id)
