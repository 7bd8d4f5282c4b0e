"""Read-side payout queries: admin listing, payout detail, and seller earnings."""

from protean.utils.globals import current_domain

from settlement.order.order import SETTLEABLE_PAYMENT_STATUSES, ItemPayoutStatus, Order
from settlement.payout.payout import Payout, PayoutStatus
from settlement.shared.money import as_utc, round_money


def list_payouts(status: str | None = None, seller_id: str | None = None) -> dict:
    """Payouts newest first, with a count and net total per status."""
    query = current_domain.repository_for(Payout)._dao.query
    if status:
        query = query.filter(status=PayoutStatus(status).value)
    if seller_id:
        query = query.filter(seller_id=seller_id)
    payouts = sorted(query.all().items, key=lambda p: as_utc(p.created_at), reverse=True)

    summary = {s.value: {"count": 0, "net_total": 0.0} for s in PayoutStatus}
    for payout in payouts:
        bucket = summary[payout.status]
        bucket["count"] += 1
        bucket["net_total"] = round_money(bucket["net_total"] + payout.net_earnings)

    return {"payouts": payouts, "summary": summary}


def get_payout_detail(payout_id: str) -> dict:
    """A payout with the orders it covers and the items it holds in each."""
    payout = current_domain.repository_for(Payout).get(payout_id)
    order_repo = current_domain.repository_for(Order)

    orders = []
    for order_id in payout.order_id_list:
        order = order_repo.get(order_id)
        orders.append(
            {
                "order_id": str(order.id),
                "order_number": order.order_number,
                "created_at": order.created_at,
                "payment_status": order.payment_status,
                "items": [
                    {
                        "order_item_id": str(i.id),
                        "name": i.name,
                        "price": i.price,
                        "quantity": i.quantity,
                        "line_total": i.line_total,
                        "payout_status": i.payout_status,
                    }
                    for i in order.items_claimed_by(str(payout.id))
                ],
            }
        )
    return {"payout": payout, "orders": orders}


def seller_earnings(seller_id: str) -> dict:
    """Lifetime earnings picture for one seller."""
    repo = current_domain.repository_for(Order)
    orders = []
    for payment_status in sorted(SETTLEABLE_PAYMENT_STATUSES):
        orders.extend(repo._dao.query.filter(payment_status=payment_status).all().items)

    gross_sales = 0.0
    pending_count = 0
    pending_amount = 0.0
    unclaimed_amount = 0.0
    for order in orders:
        for item in order.items_for_seller(seller_id):
            if item.payout_status == ItemPayoutStatus.REFUNDED.value:
                continue
            gross_sales += item.line_total
            if item.payout_status == ItemPayoutStatus.PENDING.value:
                pending_count += 1
                pending_amount += item.line_total
                if item.is_claimable:
                    unclaimed_amount += item.line_total

    completed = (
        current_domain.repository_for(Payout)
        ._dao.query.filter(seller_id=seller_id, status=PayoutStatus.COMPLETED.value)
        .all()
        .items
    )

    return {
        "seller_id": seller_id,
        "gross_sales": round_money(gross_sales),
        "pending_item_count": pending_count,
        "pending_amount": round_money(pending_amount),
        "unclaimed_amount": round_money(unclaimed_amount),
        "total_paid_out": round_money(sum(p.net_earnings for p in completed)),
        "completed_payout_count": len(completed),
    }
