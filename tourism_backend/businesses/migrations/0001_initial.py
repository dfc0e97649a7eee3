"""
======================================================
PATH: businesses/migrations/0001_initial.py
======================================================
MIGRATION: CREATE Business + CancellationPolicy + Discount
"""

from __future__ import annotations

import uuid

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Business",
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
                ("name", models.CharField(max_length=255, db_index=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="CancellationPolicy",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "deadline_hours",
                    models.PositiveIntegerField(null=True, blank=True),
                ),
                (
                    "penalty_percent",
                    models.DecimalField(
                        max_digits=5,
                        decimal_places=2,
                        null=True,
                        blank=True,
                        help_text="Percent of the order total (e.g. 10.00).",
                    ),
                ),
                (
                    "penalty_fixed",
                    models.DecimalField(
                        max_digits=12,
                        decimal_places=2,
                        null=True,
                        blank=True,
                        help_text="Fixed currency amount added to the percentage penalty.",
                    ),
                ),
                (
                    "allow_customer_cancellation",
                    models.BooleanField(default=True),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "business",
                    models.OneToOneField(
                        to="businesses.business",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="cancellation_policy",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "cancellation policies",
            },
        ),
        migrations.CreateModel(
            name="Discount",
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
                ("name", models.CharField(max_length=120)),
                (
                    "discount_type",
                    models.CharField(
                        max_length=16,
                        choices=[
                            ("percentage", "Percentage"),
                            ("fixed", "Fixed Amount"),
                        ],
                        default="percentage",
                    ),
                ),
                ("value", models.DecimalField(max_digits=12, decimal_places=2)),
                ("is_active", models.BooleanField(default=True)),
                ("valid_from", models.DateTimeField(null=True, blank=True)),
                ("valid_until", models.DateTimeField(null=True, blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "business",
                    models.ForeignKey(
                        to="businesses.business",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discounts",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
