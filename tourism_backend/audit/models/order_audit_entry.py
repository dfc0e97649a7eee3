# audit/models/order_audit_entry.py

"""
======================================================
PATH: audit/models/order_audit_entry.py
======================================================
ORDER AUDIT ENTRY (IMMUTABLE)

GUARANTEES:
- Append-only (no updates, no deletes)
- One row per lifecycle event
- order_id is a tag, not a FK: the trail outlives any schema change to orders
"""

import uuid

from django.core.exceptions import ValidationError
from django.db import models


class OrderAuditEntry(models.Model):
    class EventType(models.TextChoices):
        CREATED = "created", "Created"
        STATUS_CHANGED = "status_changed", "Status changed"
        PAYMENT_UPDATED = "payment_updated", "Payment updated"
        CANCELLED = "cancelled", "Cancelled"
        REFUND_REQUESTED = "refund_requested", "Refund requested"
        REFUNDED = "refunded", "Refunded"
        REFUND_FAILED = "refund_failed", "Refund failed"
        PICKED_UP = "picked_up", "Picked up"
        ARRIVAL_CODE_REJECTED = "arrival_code_rejected", "Arrival code rejected"
        ABANDONED = "abandoned", "Abandoned"
        PAYMENT_WEBHOOK = "payment_webhook", "Payment webhook"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order_id = models.UUIDField(db_index=True)

    event_type = models.CharField(max_length=32, choices=EventType.choices)

    old_value = models.CharField(max_length=64, null=True, blank=True)
    new_value = models.CharField(max_length=64, null=True, blank=True)

    # NULL actor = system (sweeper, webhook)
    actor_id = models.UUIDField(null=True, blank=True)
    actor_role = models.CharField(max_length=32, default="system")
    actor_origin = models.CharField(max_length=64, null=True, blank=True)

    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["order_id", "created_at"],
                name="audit_order_order_i_4c2d7a_idx",
            ),
            models.Index(
                fields=["event_type"],
                name="audit_order_event_t_b81f0e_idx",
            ),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("OrderAuditEntry records are immutable")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("OrderAuditEntry records cannot be deleted")

    def __str__(self):
        return f"{self.order_id} | {self.event_type} | {self.old_value} -> {self.new_value}"
