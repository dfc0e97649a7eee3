# businesses/models/discount.py

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models


class Discount(models.Model):
    """
    Promotional discount offered by a business.

    PERCENTAGE: value is a percent of the order subtotal (0-100)
    FIXED:      value is a currency amount
    The applied amount is always capped at the subtotal.
    """

    class DiscountType(models.TextChoices):
        PERCENTAGE = "percentage", "Percentage"
        FIXED = "fixed", "Fixed Amount"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    business = models.ForeignKey(
        "businesses.Business",
        on_delete=models.CASCADE,
        related_name="discounts",
    )

    name = models.CharField(max_length=120)
    discount_type = models.CharField(
        max_length=16,
        choices=DiscountType.choices,
        default=DiscountType.PERCENTAGE,
    )
    value = models.DecimalField(max_digits=12, decimal_places=2)

    is_active = models.BooleanField(default=True)
    valid_from = models.DateTimeField(null=True, blank=True)
    valid_until = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def clean(self):
        if self.value is None or Decimal(self.value) <= 0:
            raise ValidationError("Discount value must be greater than zero")

        if (
            self.discount_type == self.DiscountType.PERCENTAGE
            and Decimal(self.value) > Decimal("100.00")
        ):
            raise ValidationError("Percentage discount cannot exceed 100")

    def __str__(self):
        return f"{self.name} ({self.discount_type} {self.value})"
