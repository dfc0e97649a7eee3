# orders/models/order_item.py

import uuid
from decimal import Decimal

from django.db import models

from .order import Order


class OrderItem(models.Model):
    """
    Line item with price snapshots taken at order time.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="items")
    product = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )

    product_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    line_total = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )

    class Meta:
        ordering = ["product_name"]

    def __str__(self):
        return f"{self.product_name} x{self.quantity}"
