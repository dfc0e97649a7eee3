# businesses/services/discounts.py

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from django.core.exceptions import ValidationError
from django.db.models import Q
from django.utils import timezone

from businesses.models import Discount

TWOPLACES = Decimal("0.01")


@dataclass(frozen=True)
class DiscountSnapshot:
    id: object
    discount_type: str
    value: Decimal

    def amount_for(self, subtotal: Decimal) -> Decimal:
        subtotal = Decimal(subtotal)
        if self.discount_type == Discount.DiscountType.PERCENTAGE:
            amount = subtotal * self.value / Decimal("100")
        else:
            amount = self.value
        amount = Decimal(amount).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
        return min(amount, subtotal)


def get_discount(*, discount_id, business_id) -> Optional[DiscountSnapshot]:
    """
    Active, currently valid discount of `business_id`, or None.
    """
    now = timezone.now()
    try:
        discount = (
            Discount.objects.filter(id=discount_id, business_id=business_id, is_active=True)
            .filter(Q(valid_from__isnull=True) | Q(valid_from__lte=now))
            .filter(Q(valid_until__isnull=True) | Q(valid_until__gte=now))
            .first()
        )
    except (ValueError, ValidationError):
        return None

    if discount is None:
        return None

    return DiscountSnapshot(
        id=discount.id,
        discount_type=discount.discount_type,
        value=Decimal(discount.value),
    )
