# products/models/product.py

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q


class Product(models.Model):
    """
    Represents a sellable product of a business.

    STOCK MODEL (IMPORTANT):
    - current_stock is the reservable quantity (never negative, DB-enforced)
    - It is ONLY mutated by products.services.stock_ledger under a row lock
    - Units held for open orders live in StockReservation rows
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    business = models.ForeignKey(
        "businesses.Business",
        on_delete=models.CASCADE,
        related_name="products",
    )

    name = models.CharField(max_length=255, db_index=True)

    # Current selling price (snapshotted into OrderItem at order time)
    price = models.DecimalField(max_digits=10, decimal_places=2)

    is_available = models.BooleanField(default=True)

    current_stock = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(
                fields=["business", "is_available"],
                name="products_pr_busines_5d1c2a_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(current_stock__gte=0),
                name="product_current_stock_non_negative",
            ),
        ]

    def clean(self):
        if self.price is None or Decimal(self.price) <= 0:
            raise ValidationError("Price must be greater than zero")

    def __str__(self):
        return self.name
