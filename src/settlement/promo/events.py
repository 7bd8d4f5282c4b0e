"""Promo code domain events."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from settlement.domain import settlement


@settlement.event(part_of="PromoCode")
class PromoCodeCreated:
    __version__ = 1

    promo_code_id = Identifier(required=True)
    code = String(required=True)
    discount_type = String(required=True)
    discount_value = Float(required=True)
    start_date = DateTime(required=True)
    end_date = DateTime(required=True)
    usage_limit = Integer()
    created_at = DateTime(required=True)


@settlement.event(part_of="PromoCode")
class PromoCodeUsed:
    __version__ = 1

    promo_code_id = Identifier(required=True)
    code = String(required=True)
    used_count = Integer(required=True)
    used_at = DateTime(required=True)
