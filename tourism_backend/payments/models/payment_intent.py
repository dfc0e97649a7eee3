# payments/models/payment_intent.py

import uuid
from decimal import Decimal

from django.db import models
from django.db.models import Q


class PaymentIntent(models.Model):
    """
    One gateway payment attempt for an order (checkout session or
    payment intent).

    Key rules:
    - at most one ACTIVE intent per order (DB partial unique constraint)
    - a retry supersedes the previous intent (is_active=False), rows are kept
    """

    KIND_CHECKOUT_SESSION = "checkout_session"
    KIND_PAYMENT_INTENT = "payment_intent"

    KIND_CHOICES = [
        (KIND_CHECKOUT_SESSION, "Checkout session"),
        (KIND_PAYMENT_INTENT, "Payment intent"),
    ]

    STATUS_AWAITING_PAYMENT_METHOD = "awaiting_payment_method"
    STATUS_PROCESSING = "processing"
    STATUS_SUCCEEDED = "succeeded"
    STATUS_FAILED = "failed"
    STATUS_EXPIRED = "expired"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_AWAITING_PAYMENT_METHOD, "Awaiting payment method"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_SUCCEEDED, "Succeeded"),
        (STATUS_FAILED, "Failed"),
        (STATUS_EXPIRED, "Expired"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_intents",
    )

    kind = models.CharField(max_length=32, choices=KIND_CHOICES)

    # cs_... for checkout sessions, pi_... for payment intents
    gateway_reference = models.CharField(max_length=128, unique=True)
    # underlying pi_... of a checkout session (payment.* events carry this one)
    payment_intent_ref = models.CharField(
        max_length=128, blank=True, default="", db_index=True
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="PHP")

    status = models.CharField(
        max_length=32,
        choices=STATUS_CHOICES,
        default=STATUS_AWAITING_PAYMENT_METHOD,
    )
    is_active = models.BooleanField(default=True)

    checkout_url = models.URLField(max_length=500, blank=True, default="")
    client_key = models.CharField(max_length=255, blank=True, default="")

    gateway_payload = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    expires_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order", "is_active"], name="payments_pa_order_i_2e6b4d_idx"),
            models.Index(fields=["is_active", "expires_at"], name="payments_pa_is_acti_93c0a7_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=Q(is_active=True),
                name="payment_intent_one_active_per_order",
            ),
        ]

    def __str__(self):
        return f"{self.gateway_reference} | {self.status} | active={self.is_active}"
