# products/models/stock_reservation.py

"""
STOCK RESERVATION (ledger entry per order line)

Lifecycle of a reservation:
    reserved -> committed   (sale finalized; no quantity change)
    reserved -> released    (quantity returned to Product.current_stock)
    committed -> released   (cancellation after capture; goods never left)

GUARANTEES:
- Every reservation sits in exactly one bucket (status)
- order_id is a plain tag: the ledger does not know about orders
"""

import uuid

from django.db import models
from django.db.models import Q

from .product import Product


class StockReservation(models.Model):
    STATUS_RESERVED = "reserved"
    STATUS_COMMITTED = "committed"
    STATUS_RELEASED = "released"

    STATUS_CHOICES = [
        (STATUS_RESERVED, "Reserved"),
        (STATUS_COMMITTED, "Committed"),
        (STATUS_RELEASED, "Released"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="reservations",
    )

    order_id = models.UUIDField(db_index=True)

    quantity = models.PositiveIntegerField()

    status = models.CharField(
        max_length=16,
        choices=STATUS_CHOICES,
        default=STATUS_RESERVED,
        db_index=True,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    committed_at = models.DateTimeField(null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["order_id", "status"],
                name="products_st_order_i_8f3b1e_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="stock_reservation_quantity_positive",
            ),
        ]

    def __str__(self):
        return f"{self.product_id} x{self.quantity} [{self.status}] order={self.order_id}"
