"""
======================================================
PATH: audit/migrations/0001_initial.py
======================================================
MIGRATION: CREATE OrderAuditEntry (append-only)
"""

from __future__ import annotations

import uuid

from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="OrderAuditEntry",
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
                ("order_id", models.UUIDField(db_index=True)),
                (
                    "event_type",
                    models.CharField(
                        max_length=32,
                        choices=[
                            ("created", "Created"),
                            ("status_changed", "Status changed"),
                            ("payment_updated", "Payment updated"),
                            ("cancelled", "Cancelled"),
                            ("refund_requested", "Refund requested"),
                            ("refunded", "Refunded"),
                            ("refund_failed", "Refund failed"),
                            ("picked_up", "Picked up"),
                            ("arrival_code_rejected", "Arrival code rejected"),
                            ("abandoned", "Abandoned"),
                            ("payment_webhook", "Payment webhook"),
                        ],
                    ),
                ),
                ("old_value", models.CharField(max_length=64, null=True, blank=True)),
                ("new_value", models.CharField(max_length=64, null=True, blank=True)),
                ("actor_id", models.UUIDField(null=True, blank=True)),
                ("actor_role", models.CharField(max_length=32, default="system")),
                (
                    "actor_origin",
                    models.CharField(max_length=64, null=True, blank=True),
                ),
                ("metadata", models.JSONField(default=dict, blank=True)),
                (
                    "created_at",
                    models.DateTimeField(auto_now_add=True, db_index=True),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["order_id", "created_at"],
                        name="audit_order_order_i_4c2d7a_idx",
                    ),
                    models.Index(
                        fields=["event_type"],
                        name="audit_order_event_t_b81f0e_idx",
                    ),
                ],
            },
        ),
    ]
