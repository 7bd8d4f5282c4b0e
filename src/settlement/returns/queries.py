"""Read-side return queries for buyers, sellers, and admins."""

from protean.utils.globals import current_domain

from settlement.order.order import ItemPayoutStatus, ItemType, Order, OrderStatus
from settlement.returns.return_request import ReturnRequest, ReturnStatus
from settlement.shared.money import as_utc


def get_return_detail(return_id: str) -> dict:
    """The request joined with its order summary and the line's current state."""
    request = current_domain.repository_for(ReturnRequest).get(return_id)
    order = current_domain.repository_for(Order).get(request.order_id)
    item = order.find_item(str(request.item.order_item_id))

    return {
        "request": request,
        "order": {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "status": order.status,
            "payment_status": order.payment_status,
            "total": order.total,
            "refunded_amount": order.refunded_amount,
        },
        "order_item": {
            "order_item_id": str(item.id),
            "payout_status": item.payout_status,
            "payout_id": str(item.payout_id) if item.payout_id else None,
        }
        if item
        else None,
    }


def list_returns(
    buyer_id: str | None = None,
    seller_id: str | None = None,
    status: str | None = None,
) -> list[ReturnRequest]:
    query = current_domain.repository_for(ReturnRequest)._dao.query
    if buyer_id:
        query = query.filter(buyer_id=buyer_id)
    if status:
        query = query.filter(status=ReturnStatus(status).value)
    requests = query.all().items

    if seller_id:
        requests = [r for r in requests if str(r.item.seller_id) == str(seller_id)]
    return sorted(requests, key=lambda r: as_utc(r.created_at), reverse=True)


def eligible_return_items(buyer_id: str) -> list[dict]:
    """Product lines on the buyer's delivered orders that have no open request."""
    orders = (
        current_domain.repository_for(Order)
        ._dao.query.filter(buyer_id=buyer_id, status=OrderStatus.DELIVERED.value)
        .all()
        .items
    )
    eligible = []
    for order in sorted(orders, key=lambda o: as_utc(o.created_at), reverse=True):
        for item in order.items or []:
            if item.item_type != ItemType.PRODUCT.value or item.open_return_id:
                continue
            if item.payout_status == ItemPayoutStatus.REFUNDED.value:
                continue
            eligible.append(
                {
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "order_item_id": str(item.id),
                    "item_id": str(item.item_id),
                    "name": item.name,
                    "price": item.price,
                    "quantity": item.quantity,
                    "seller_id": str(item.seller_id),
                    "payout_status": item.payout_status,
                }
            )
    return eligible
