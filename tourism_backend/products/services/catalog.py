# products/services/catalog.py

"""
Product catalog accessor used by order placement.

Returns an immutable snapshot so callers never hold a live model they
could accidentally save.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError

from products.models import Product


@dataclass(frozen=True)
class ProductSnapshot:
    id: object
    business_id: object
    name: str
    price: Decimal
    is_available: bool


def get_product(product_id) -> Optional[ProductSnapshot]:
    try:
        product = Product.objects.filter(id=product_id).first()
    except (ValueError, ValidationError):
        # malformed UUID
        return None

    if product is None:
        return None

    return ProductSnapshot(
        id=product.id,
        business_id=product.business_id,
        name=product.name,
        price=Decimal(product.price),
        is_available=bool(product.is_available),
    )
