"""Promo code validation, usage accounting, and creation.

``validate_promo`` is a pure quote: it reads the code and the buyer's order
history but writes nothing. Usage is counted by ``record_usage``, which runs
only once a payment capture has committed (see ``order_events``).
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Float, Integer, String, Text
from protean.utils.globals import current_domain

from settlement.domain import settlement
from settlement.exceptions import InvalidState, LimitExceeded
from settlement.order.order import Order, PaymentStatus
from settlement.promo.promo_code import DiscountType, PromoCode

# Orders whose payment was captured at some point
_CAPTURED_PAYMENT_STATUSES = {
    PaymentStatus.PAID.value,
    PaymentStatus.PARTIALLY_REFUNDED.value,
    PaymentStatus.REFUNDED.value,
}


@dataclass(frozen=True)
class PromoQuote:
    code: str
    discount_amount: float
    discount_type: str
    discount_value: float


def find_by_code(code: str) -> PromoCode | None:
    results = current_domain.repository_for(PromoCode)._dao.query.filter(code=code.strip().upper()).all().items
    return results[0] if results else None


def _buyer_usage(code: str, buyer_id: str) -> int:
    orders = current_domain.repository_for(Order)._dao.query.filter(buyer_id=buyer_id, promo_code=code).all().items
    return len([o for o in orders if o.payment_status in _CAPTURED_PAYMENT_STATUSES])


def validate_promo(
    code: str,
    cart_total: float,
    buyer_id: str | None = None,
    now: datetime | None = None,
) -> PromoQuote:
    """Quote the discount a code gives on a cart.

    Raises ObjectNotFoundError for an unknown, inactive, or out-of-window
    code, LimitExceeded when the code (or this buyer's share of it) is used
    up, and InvalidState when the cart is below the code's minimum purchase.
    """
    if not code or not code.strip():
        raise ValidationError({"code": ["Promo code is required"]})
    if cart_total is None or cart_total < 0:
        raise ValidationError({"cart_total": ["Cart total must be zero or more"]})

    promo = find_by_code(code)
    if promo is None or not promo.is_live(now or datetime.now(UTC)):
        raise ObjectNotFoundError({"_entity": "Invalid or expired promo code"})

    if promo.is_exhausted:
        raise LimitExceeded({"code": ["Promo code usage limit reached"]})

    if buyer_id and promo.usage_limit_per_user is not None:
        if _buyer_usage(promo.code, buyer_id) >= promo.usage_limit_per_user:
            raise LimitExceeded({"code": ["You have already used this promo code the maximum number of times"]})

    if promo.min_purchase_amount and cart_total < promo.min_purchase_amount:
        raise InvalidState({"cart_total": [f"Minimum purchase of {promo.min_purchase_amount:.2f} required"]})

    return PromoQuote(
        code=promo.code,
        discount_amount=promo.discount_for(cart_total),
        discount_type=promo.discount_type,
        discount_value=promo.discount_value,
    )


def record_usage(code: str) -> PromoCode:
    """Count one use of the code.

    Raises ExpectedVersionError when the code changed since it was read.
    """
    promo = find_by_code(code)
    if promo is None:
        raise ObjectNotFoundError({"_entity": f"Promo code `{code}` not found"})
    promo.record_usage()
    current_domain.repository_for(PromoCode).add(promo)
    return promo


@settlement.command(part_of="PromoCode")
class CreatePromoCode:
    code = String(required=True, max_length=50)
    name = String(max_length=200)
    description = Text()
    discount_type = String(required=True, choices=DiscountType)
    discount_value = Float(required=True, min_value=0.0)
    max_discount = Float(min_value=0.0)
    min_purchase_amount = Float(default=0.0, min_value=0.0)
    start_date = DateTime(required=True)
    end_date = DateTime(required=True)
    usage_limit = Integer(min_value=1)
    usage_limit_per_user = Integer(min_value=1)


@settlement.command_handler(part_of=PromoCode)
class CreatePromoCodeHandler:
    @handle(CreatePromoCode)
    def create_promo_code(self, command):
        if find_by_code(command.code) is not None:
            raise ValidationError({"code": [f"Promo code {command.code.upper()} already exists"]})

        promo = PromoCode.create(
            code=command.code,
            discount_type=command.discount_type,
            discount_value=command.discount_value,
            start_date=command.start_date,
            end_date=command.end_date,
            name=command.name,
            description=command.description,
            max_discount=command.max_discount,
            min_purchase_amount=command.min_purchase_amount,
            usage_limit=command.usage_limit,
            usage_limit_per_user=command.usage_limit_per_user,
        )
        current_domain.repository_for(PromoCode).add(promo)
        return str(promo.id)
