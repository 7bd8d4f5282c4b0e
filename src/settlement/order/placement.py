"""Order placement — command and handler.

Records the checkout the gateway will later confirm. When a promo code is
supplied its discount is recomputed from the current subtotal rather than
trusted from the caller.
"""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from settlement.domain import settlement
from settlement.order.order import Order, PaymentMethod
from settlement.order.queries import next_order_number
from settlement.promo.validation import validate_promo
from settlement.shared.money import round_money

_ITEM_FIELDS = ("item_id", "item_type", "seller_id", "seller_name", "name", "price", "quantity")


@settlement.command(part_of="Order")
class PlaceOrder:
    buyer_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of item snapshots
    shipping = Float(default=0.0)
    tax = Float(default=0.0)
    discount = Float(default=0.0)
    promo_code = String(max_length=50)
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.RAZORPAY.value)
    gateway_order_id = String(max_length=255)


@settlement.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        raw_items = json.loads(command.items) if isinstance(command.items, str) else command.items
        items_data = [{k: item[k] for k in _ITEM_FIELDS if item.get(k) is not None} for item in raw_items or []]

        discount = command.discount or 0.0
        if command.promo_code:
            subtotal = round_money(sum(float(d["price"]) * int(d["quantity"]) for d in items_data))
            quote = validate_promo(command.promo_code, subtotal, buyer_id=str(command.buyer_id))
            discount = quote.discount_amount

        order = Order.place(
            buyer_id=str(command.buyer_id),
            items_data=items_data,
            order_number=next_order_number(),
            shipping=command.shipping or 0.0,
            tax=command.tax or 0.0,
            discount=discount,
            promo_code=command.promo_code,
            payment_method=command.payment_method,
            gateway_order_id=command.gateway_order_id,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
