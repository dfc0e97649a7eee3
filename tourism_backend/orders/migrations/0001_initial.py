"""
======================================================
PATH: orders/migrations/0001_initial.py
======================================================
MIGRATION: CREATE Order + OrderItem
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("businesses", "0001_initial"),
        ("products", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
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
                    "order_number",
                    models.CharField(
                        max_length=64,
                        unique=True,
                        blank=True,
                        help_text="System-generated public order number",
                    ),
                ),
                (
                    "subtotal_amount",
                    models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00")),
                ),
                (
                    "discount_amount",
                    models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00")),
                ),
                (
                    "tax_amount",
                    models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00")),
                ),
                (
                    "total_amount",
                    models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00")),
                ),
                (
                    "discount_reference",
                    models.CharField(max_length=64, blank=True, default=""),
                ),
                ("pickup_at", models.DateTimeField()),
                (
                    "payment_method",
                    models.CharField(
                        max_length=32,
                        choices=[
                            ("cash_on_pickup", "Cash on pickup"),
                            ("paymongo", "PayMongo"),
                        ],
                    ),
                ),
                (
                    "payment_method_type",
                    models.CharField(
                        max_length=32,
                        choices=[
                            ("gcash", "GCash"),
                            ("paymaya", "Maya"),
                            ("card", "Card"),
                            ("grab_pay", "GrabPay"),
                        ],
                        blank=True,
                        default="",
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        max_length=32,
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("partially_refunded", "Partially refunded"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending",
                    ),
                ),
                (
                    "gateway_payment_id",
                    models.CharField(max_length=128, blank=True, default=""),
                ),
                (
                    "status",
                    models.CharField(
                        max_length=32,
                        choices=[
                            ("pending", "Pending"),
                            ("accepted", "Accepted"),
                            ("preparing", "Preparing"),
                            ("ready_for_pickup", "Ready for pickup"),
                            ("picked_up", "Picked up"),
                            ("cancelled_by_user", "Cancelled by user"),
                            ("cancelled_by_business", "Cancelled by business"),
                            ("failed_payment", "Failed payment"),
                        ],
                        default="pending",
                    ),
                ),
                ("arrival_code", models.CharField(max_length=6)),
                ("cancelled_at", models.DateTimeField(null=True, blank=True)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                (
                    "cancellation_penalty",
                    models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00")),
                ),
                (
                    "created_at",
                    models.DateTimeField(default=django.utils.timezone.now, db_index=True),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("paid_at", models.DateTimeField(null=True, blank=True)),
                ("picked_up_at", models.DateTimeField(null=True, blank=True)),
                (
                    "business",
                    models.ForeignKey(
                        to="businesses.business",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                    ),
                ),
                (
                    "purchaser",
                    models.ForeignKey(
                        to=settings.AUTH_USER_MODEL,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                    ),
                ),
                (
                    "cancelled_by",
                    models.ForeignKey(
                        to=settings.AUTH_USER_MODEL,
                        null=True,
                        blank=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="cancelled_orders",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="orders_orde_status_1b9e0c_idx"),
                    models.Index(fields=["business", "status"], name="orders_orde_busines_7d21aa_idx"),
                    models.Index(fields=["purchaser", "created_at"], name="orders_orde_purchas_e3c94f_idx"),
                    models.Index(
                        fields=["payment_method", "payment_status", "status"],
                        name="orders_orde_payment_5f0d62_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=["arrival_code"],
                        condition=models.Q(
                            status__in=[
                                "pending",
                                "accepted",
                                "preparing",
                                "ready_for_pickup",
                            ]
                        ),
                        name="order_arrival_code_unique_live",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
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
                ("product_name", models.CharField(max_length=255)),
                ("quantity", models.PositiveIntegerField()),
                ("unit_price", models.DecimalField(max_digits=12, decimal_places=2)),
                (
                    "line_total",
                    models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00")),
                ),
                (
                    "order",
                    models.ForeignKey(
                        to="orders.order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="items",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        to="products.product",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="order_items",
                    ),
                ),
            ],
            options={
                "ordering": ["product_name"],
            },
        ),
    ]
