"""
======================================================
PATH: payments/migrations/0001_initial.py
======================================================
MIGRATION: CREATE PaymentIntent + WebhookEvent + Refund
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentIntent",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        primary_key=True,
                        default=uuid.uuid4,
                        editable=False,
                        serialize=False,
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        max_length=32,
                        choices=[
                            ("checkout_session", "Checkout session"),
                            ("payment_intent", "Payment intent"),
                        ],
                    ),
                ),
                ("gateway_reference", models.CharField(max_length=128, unique=True)),
                (
                    "payment_intent_ref",
                    models.CharField(max_length=128, blank=True, default="", db_index=True),
                ),
                (
                    "amount",
                    models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00")),
                ),
                ("currency", models.CharField(max_length=3, default="PHP")),
                (
                    "status",
                    models.CharField(
                        max_length=32,
                        choices=[
                            ("awaiting_payment_method", "Awaiting payment method"),
                            ("processing", "Processing"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                            ("expired", "Expired"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="awaiting_payment_method",
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("checkout_url", models.URLField(max_length=500, blank=True, default="")),
                ("client_key", models.CharField(max_length=255, blank=True, default="")),
                ("gateway_payload", models.JSONField(default=dict, blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("expires_at", models.DateTimeField(null=True, blank=True, db_index=True)),
                (
                    "order",
                    models.ForeignKey(
                        to="orders.order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_intents",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["order", "is_active"], name="payments_pa_order_i_2e6b4d_idx"),
                    models.Index(fields=["is_active", "expires_at"], name="payments_pa_is_acti_93c0a7_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=["order"],
                        condition=models.Q(is_active=True),
                        name="payment_intent_one_active_per_order",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        primary_key=True,
                        default=uuid.uuid4,
                        editable=False,
                        serialize=False,
                    ),
                ),
                ("event_id", models.CharField(max_length=128, unique=True)),
                ("event_type", models.CharField(max_length=64, db_index=True)),
                ("payload", models.JSONField(default=dict, blank=True)),
                (
                    "status",
                    models.CharField(
                        max_length=16,
                        choices=[
                            ("pending", "Pending"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        db_index=True,
                    ),
                ),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("error_detail", models.TextField(blank=True, default="")),
                ("note", models.TextField(blank=True, default="")),
                ("received_at", models.DateTimeField(auto_now_add=True)),
                ("processed_at", models.DateTimeField(null=True, blank=True)),
            ],
            options={
                "ordering": ["-received_at"],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        primary_key=True,
                        default=uuid.uuid4,
                        editable=False,
                        serialize=False,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00")),
                ),
                (
                    "gateway_reference",
                    models.CharField(max_length=128, blank=True, default="", db_index=True),
                ),
                (
                    "status",
                    models.CharField(
                        max_length=16,
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        db_index=True,
                    ),
                ),
                (
                    "reason",
                    models.CharField(
                        max_length=32,
                        choices=[
                            ("duplicate", "Duplicate"),
                            ("fraudulent", "Fraudulent"),
                            ("requested_by_customer", "Requested by customer"),
                            ("others", "Others"),
                        ],
                        default="requested_by_customer",
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                ("error_detail", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("completed_at", models.DateTimeField(null=True, blank=True)),
                (
                    "order",
                    models.ForeignKey(
                        to="orders.order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                    ),
                ),
                (
                    "requested_by",
                    models.ForeignKey(
                        to=settings.AUTH_USER_MODEL,
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="requested_refunds",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["order", "status"], name="payments_re_order_i_c5a8f2_idx"),
                ],
            },
        ),
    ]
