# orders/models/order.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone


class Order(models.Model):
    """
    Pickup order placed by a purchaser with one business.

    Key rules:
    - status only moves along orders.services.order_lifecycle
    - total_amount = subtotal - discount + tax, fixed at creation
      (refunds live in payments.Refund + payment_status, never in the totals)
    - orders are never deleted
    """

    STATUS_PENDING = "pending"
    STATUS_ACCEPTED = "accepted"
    STATUS_PREPARING = "preparing"
    STATUS_READY_FOR_PICKUP = "ready_for_pickup"
    STATUS_PICKED_UP = "picked_up"
    STATUS_CANCELLED_BY_USER = "cancelled_by_user"
    STATUS_CANCELLED_BY_BUSINESS = "cancelled_by_business"
    STATUS_FAILED_PAYMENT = "failed_payment"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_ACCEPTED, "Accepted"),
        (STATUS_PREPARING, "Preparing"),
        (STATUS_READY_FOR_PICKUP, "Ready for pickup"),
        (STATUS_PICKED_UP, "Picked up"),
        (STATUS_CANCELLED_BY_USER, "Cancelled by user"),
        (STATUS_CANCELLED_BY_BUSINESS, "Cancelled by business"),
        (STATUS_FAILED_PAYMENT, "Failed payment"),
    ]

    LIVE_STATUSES = (
        STATUS_PENDING,
        STATUS_ACCEPTED,
        STATUS_PREPARING,
        STATUS_READY_FOR_PICKUP,
    )

    PAYMENT_METHOD_CASH_ON_PICKUP = "cash_on_pickup"
    PAYMENT_METHOD_PAYMONGO = "paymongo"

    PAYMENT_METHOD_CHOICES = [
        (PAYMENT_METHOD_CASH_ON_PICKUP, "Cash on pickup"),
        (PAYMENT_METHOD_PAYMONGO, "PayMongo"),
    ]

    PAYMENT_METHOD_TYPE_CHOICES = [
        ("gcash", "GCash"),
        ("paymaya", "Maya"),
        ("card", "Card"),
        ("grab_pay", "GrabPay"),
    ]

    PAYMENT_STATUS_PENDING = "pending"
    PAYMENT_STATUS_PAID = "paid"
    PAYMENT_STATUS_FAILED = "failed"
    PAYMENT_STATUS_PARTIALLY_REFUNDED = "partially_refunded"
    PAYMENT_STATUS_REFUNDED = "refunded"

    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_STATUS_PENDING, "Pending"),
        (PAYMENT_STATUS_PAID, "Paid"),
        (PAYMENT_STATUS_FAILED, "Failed"),
        (PAYMENT_STATUS_PARTIALLY_REFUNDED, "Partially refunded"),
        (PAYMENT_STATUS_REFUNDED, "Refunded"),
    ]

    # Money was captured at some point (refunds may follow)
    CAPTURED_PAYMENT_STATUSES = (
        PAYMENT_STATUS_PAID,
        PAYMENT_STATUS_PARTIALLY_REFUNDED,
        PAYMENT_STATUS_REFUNDED,
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order_number = models.CharField(
        max_length=64,
        unique=True,
        blank=True,
        help_text="System-generated public order number",
    )

    business = models.ForeignKey(
        "businesses.Business",
        on_delete=models.PROTECT,
        related_name="orders",
    )
    purchaser = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )

    # Money fields (server authoritative)
    subtotal_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    tax_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    total_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    discount_reference = models.CharField(max_length=64, blank=True, default="")

    pickup_at = models.DateTimeField()

    payment_method = models.CharField(max_length=32, choices=PAYMENT_METHOD_CHOICES)
    payment_method_type = models.CharField(
        max_length=32,
        choices=PAYMENT_METHOD_TYPE_CHOICES,
        blank=True,
        default="",
    )
    payment_status = models.CharField(
        max_length=32,
        choices=PAYMENT_STATUS_CHOICES,
        default=PAYMENT_STATUS_PENDING,
    )
    gateway_payment_id = models.CharField(max_length=128, blank=True, default="")

    status = models.CharField(
        max_length=32, choices=STATUS_CHOICES, default=STATUS_PENDING
    )

    arrival_code = models.CharField(max_length=6)

    # Cancellation metadata
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cancelled_orders",
    )
    cancellation_reason = models.TextField(blank=True, default="")
    cancellation_penalty = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="orders_orde_status_1b9e0c_idx"),
            models.Index(fields=["business", "status"], name="orders_orde_busines_7d21aa_idx"),
            models.Index(fields=["purchaser", "created_at"], name="orders_orde_purchas_e3c94f_idx"),
            models.Index(
                fields=["payment_method", "payment_status", "status"],
                name="orders_orde_payment_5f0d62_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["arrival_code"],
                condition=Q(
                    status__in=[
                        "pending",
                        "accepted",
                        "preparing",
                        "ready_for_pickup",
                    ]
                ),
                name="order_arrival_code_unique_live",
            ),
        ]

    @property
    def is_online_payment(self) -> bool:
        return self.payment_method == self.PAYMENT_METHOD_PAYMONGO

    @property
    def is_payment_captured(self) -> bool:
        return self.payment_status in self.CAPTURED_PAYMENT_STATUSES

    def save(self, *args, **kwargs):
        if not self.order_number:
            prefix = timezone.now().strftime("ORD-%Y%m%d")
            self.order_number = f"{prefix}-{uuid.uuid4().hex[:8].upper()}"

        if self.payment_status == self.PAYMENT_STATUS_PAID and not self.paid_at:
            self.paid_at = timezone.now()

        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Orders cannot be deleted")

    def __str__(self):
        return f"{self.order_number} | {self.total_amount} | {self.status}"
