"""PromoCode aggregate (CQRS) — a discount code with a validity window and usage limits.

Codes are stored upper-cased. ``used_count`` only ever goes up, and only when
a payment using the code is captured; quoting a discount never touches it.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Integer, String, Text

from settlement.domain import settlement
from settlement.promo.events import PromoCodeCreated, PromoCodeUsed
from settlement.shared.money import as_utc, round_money


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@settlement.aggregate
class PromoCode:
    code = String(required=True, max_length=50)
    name = String(max_length=200)
    description = Text()
    discount_type = String(required=True, choices=DiscountType)
    discount_value = Float(required=True, min_value=0.0)
    max_discount = Float(min_value=0.0)
    min_purchase_amount = Float(default=0.0, min_value=0.0)
    start_date = DateTime(required=True)
    end_date = DateTime(required=True)
    is_active = Boolean(default=True)
    usage_limit = Integer(min_value=1)
    usage_limit_per_user = Integer(min_value=1)
    used_count = Integer(default=0, min_value=0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def window_must_be_ordered(self):
        if self.start_date and self.end_date and as_utc(self.end_date) < as_utc(self.start_date):
            raise ValidationError({"end_date": ["End date must be after start date"]})

    @invariant.post
    def percentage_cannot_exceed_hundred(self):
        if self.discount_type == DiscountType.PERCENTAGE.value and (self.discount_value or 0) > 100:
            raise ValidationError({"discount_value": ["A percentage discount cannot exceed 100"]})

    @classmethod
    def create(
        cls,
        code: str,
        discount_type: str,
        discount_value: float,
        start_date: datetime,
        end_date: datetime,
        name: str | None = None,
        description: str | None = None,
        max_discount: float | None = None,
        min_purchase_amount: float = 0.0,
        usage_limit: int | None = None,
        usage_limit_per_user: int | None = None,
    ):
        now = datetime.now(UTC)
        promo = cls(
            code=code.strip().upper(),
            name=name,
            description=description,
            discount_type=discount_type,
            discount_value=discount_value,
            max_discount=max_discount,
            min_purchase_amount=min_purchase_amount or 0.0,
            start_date=start_date,
            end_date=end_date,
            is_active=True,
            usage_limit=usage_limit,
            usage_limit_per_user=usage_limit_per_user,
            used_count=0,
            created_at=now,
            updated_at=now,
        )
        promo.raise_(
            PromoCodeCreated(
                promo_code_id=str(promo.id),
                code=promo.code,
                discount_type=discount_type,
                discount_value=discount_value,
                start_date=start_date,
                end_date=end_date,
                usage_limit=usage_limit,
                created_at=now,
            )
        )
        return promo

    def is_live(self, now: datetime) -> bool:
        now = as_utc(now)
        return bool(self.is_active) and as_utc(self.start_date) <= now <= as_utc(self.end_date)

    @property
    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and (self.used_count or 0) >= self.usage_limit

    def discount_for(self, cart_total: float) -> float:
        """Discount for a cart, never more than the cart itself."""
        if self.discount_type == DiscountType.PERCENTAGE.value:
            discount = cart_total * self.discount_value / 100
            if self.max_discount is not None:
                discount = min(discount, self.max_discount)
        else:
            discount = self.discount_value
        return round_money(min(discount, cart_total))

    def record_usage(self) -> None:
        now = datetime.now(UTC)
        self.used_count = (self.used_count or 0) + 1
        self.updated_at = now
        self.raise_(
            PromoCodeUsed(
                promo_code_id=str(self.id),
                code=self.code,
                used_count=self.used_count,
                used_at=now,
            )
        )
