# payments/models/refund.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models


class Refund(models.Model):
    """
    Refund of (part of) a captured order payment.

    Lifecycle:
        pending -> processing   (accepted by the gateway)
        processing -> succeeded | failed   (webhook)
        pending -> failed       (gateway rejected the request outright, 4xx)
        pending -> processing   (no answer / 5xx: outcome unknown, webhook decides)
        pending -> cancelled    (never sent: order has no gateway payment reference)

    Never marked succeeded synchronously: the webhook is the source of truth.
    """

    STATUS_PENDING = "pending"
    STATUS_PROCESSING = "processing"
    STATUS_SUCCEEDED = "succeeded"
    STATUS_FAILED = "failed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_SUCCEEDED, "Succeeded"),
        (STATUS_FAILED, "Failed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    IN_FLIGHT_STATUSES = (STATUS_PENDING, STATUS_PROCESSING)
    TERMINAL_STATUSES = (STATUS_SUCCEEDED, STATUS_FAILED, STATUS_CANCELLED)

    REASON_DUPLICATE = "duplicate"
    REASON_FRAUDULENT = "fraudulent"
    REASON_REQUESTED_BY_CUSTOMER = "requested_by_customer"
    REASON_OTHERS = "others"

    REASON_CHOICES = [
        (REASON_DUPLICATE, "Duplicate"),
        (REASON_FRAUDULENT, "Fraudulent"),
        (REASON_REQUESTED_BY_CUSTOMER, "Requested by customer"),
        (REASON_OTHERS, "Others"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="refunds",
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    gateway_reference = models.CharField(
        max_length=128, blank=True, default="", db_index=True
    )

    status = models.CharField(
        max_length=16,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        db_index=True,
    )
    reason = models.CharField(
        max_length=32,
        choices=REASON_CHOICES,
        default=REASON_REQUESTED_BY_CUSTOMER,
    )
    notes = models.TextField(blank=True, default="")

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="requested_refunds",
    )

    error_detail = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order", "status"], name="payments_re_order_i_c5a8f2_idx"),
        ]

    def __str__(self):
        return f"Refund {self.id} | {self.amount} | {self.status}"
