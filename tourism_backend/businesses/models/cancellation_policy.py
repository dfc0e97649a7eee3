# businesses/models/cancellation_policy.py

"""
CANCELLATION POLICY (per business)

- deadline_hours: hours before pickup after which a purchaser cancellation
  incurs the penalty (NULL = no deadline, always free)
- penalty_percent / penalty_fixed: penalty charged after the deadline
  (both NULL = late cancellation is rejected)
- allow_customer_cancellation: False = purchasers may never cancel
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from .business import Business


class CancellationPolicy(models.Model):
    business = models.OneToOneField(
        Business,
        on_delete=models.CASCADE,
        related_name="cancellation_policy",
    )

    deadline_hours = models.PositiveIntegerField(null=True, blank=True)

    penalty_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Percent of the order total (e.g. 10.00).",
    )
    penalty_fixed = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Fixed currency amount added to the percentage penalty.",
    )

    allow_customer_cancellation = models.BooleanField(default=True)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "cancellation policies"

    def clean(self):
        if self.penalty_percent is not None and not (
            Decimal("0.00") <= Decimal(self.penalty_percent) <= Decimal("100.00")
        ):
            raise ValidationError("penalty_percent must be between 0 and 100")

        if self.penalty_fixed is not None and Decimal(self.penalty_fixed) < 0:
            raise ValidationError("penalty_fixed cannot be negative")

    def __str__(self):
        return f"CancellationPolicy({self.business_id})"
