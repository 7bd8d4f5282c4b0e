"""Order lookups shared by the payment, payout, and returns handlers."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from settlement.order.order import Order


def next_order_number() -> str:
    count = current_domain.repository_for(Order)._dao.query.all().total
    return f"ORD-{count + 1:06d}"


def find_by_gateway_order_id(gateway_order_id: str) -> Order | None:
    results = current_domain.repository_for(Order)._dao.query.filter(gateway_order_id=gateway_order_id).all().items
    return results[0] if results else None


def find_by_gateway_payment_id(gateway_payment_id: str) -> Order | None:
    results = (
        current_domain.repository_for(Order)._dao.query.filter(gateway_payment_id=gateway_payment_id).all().items
    )
    return results[0] if results else None


def get_seller_order(order_id: str, seller_id: str) -> Order:
    """Load an order only if the seller has at least one item in it."""
    order = current_domain.repository_for(Order).get(order_id)
    if not order.items_for_seller(seller_id):
        raise ObjectNotFoundError({"_entity": f"Order `{order_id}` has no items for seller `{seller_id}`"})
    return order


def orders_for_buyer(buyer_id: str, status: str | None = None) -> list[Order]:
    query = current_domain.repository_for(Order)._dao.query.filter(buyer_id=buyer_id)
    if status:
        query = query.filter(status=status)
    orders = query.all().items
    return sorted(orders, key=lambda o: o.created_at, reverse=True)
