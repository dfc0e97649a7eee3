# audit/tests/test_audit_trail.py

import uuid
from unittest import mock

from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.test import TestCase

from audit.models import OrderAuditEntry
from audit.services import audit_trail
from orders.tests.helpers import make_user


class AuditTrailTests(TestCase):
    """
    Audit trail integrity tests.

    GUARANTEES:
    - Entries are append-only
    - System events carry no actor
    - A failed write never raises into the caller
    """

    def setUp(self):
        self.order_id = uuid.uuid4()

    def test_record_with_actor(self):
        user = make_user()

        entry = audit_trail.record(
            order_id=self.order_id,
            event_type=OrderAuditEntry.EventType.CREATED,
            new_value="pending",
            actor=user,
            origin="203.0.113.7",
            metadata={"lines": 2},
        )

        self.assertEqual(entry.actor_id, user.id)
        self.assertEqual(entry.actor_role, "tourist")
        self.assertEqual(entry.actor_origin, "203.0.113.7")
        self.assertEqual(entry.metadata, {"lines": 2})

    def test_system_event(self):
        entry = audit_trail.record(
            order_id=self.order_id,
            event_type=OrderAuditEntry.EventType.ABANDONED,
            old_value="pending",
            new_value="cancelled_by_user",
        )

        self.assertIsNone(entry.actor_id)
        self.assertEqual(entry.actor_role, audit_trail.SYSTEM_ROLE)

    def test_entries_are_immutable(self):
        entry = audit_trail.record(
            order_id=self.order_id, event_type=OrderAuditEntry.EventType.CREATED
        )

        entry.new_value = "tampered"
        with self.assertRaises(ValidationError):
            entry.save()

        with self.assertRaises(ValidationError):
            entry.delete()

    def test_history_is_chronological(self):
        for event_type in (
            OrderAuditEntry.EventType.CREATED,
            OrderAuditEntry.EventType.STATUS_CHANGED,
            OrderAuditEntry.EventType.PICKED_UP,
        ):
            audit_trail.record(order_id=self.order_id, event_type=event_type)
        audit_trail.record(order_id=uuid.uuid4(), event_type=OrderAuditEntry.EventType.CREATED)

        events = list(audit_trail.history(order_id=self.order_id).values_list("event_type", flat=True))
        self.assertEqual(events, ["created", "status_changed", "picked_up"])

    def test_degraded_mode(self):
        with mock.patch.object(
            OrderAuditEntry.objects, "create", side_effect=DatabaseError("disk full")
        ), self.assertLogs("audit.services.audit_trail", level="WARNING"):
            entry = audit_trail.record(
                order_id=self.order_id, event_type=OrderAuditEntry.EventType.CANCELLED
            )

        self.assertIsNone(entry)
        self.assertEqual(OrderAuditEntry.objects.count(), 0)

    def test_long_values_truncated(self):
        entry = audit_trail.record(
            order_id=self.order_id,
            event_type=OrderAuditEntry.EventType.STATUS_CHANGED,
            new_value="x" * 200,
        )
        self.assertEqual(len(entry.new_value), 64)
