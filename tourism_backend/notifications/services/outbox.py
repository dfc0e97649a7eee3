# notifications/services/outbox.py

"""
======================================================
PATH: notifications/services/outbox.py
======================================================
NOTIFICATION OUTBOX

enqueue():
- Called INSIDE the lifecycle transition's transaction, so a rolled-back
  transition never notifies and a committed one always does.
- Runs in its own savepoint; a failed insert is logged and swallowed so
  notifications can never block an order transition.

deliver_pending():
- Claims each pending row (pending -> sending) with a conditional UPDATE,
  then hands it to the dispatcher named by NOTIFICATIONS_DISPATCHER with no
  row lock or transaction open, then records the result.
- Dispatcher failures are recorded on the row (attempts / last_error) and
  never propagate; after NOTIFICATIONS_MAX_ATTEMPTS the row is marked failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F, Q
from django.utils import timezone
from django.utils.module_loading import import_string

from notifications.models import NotificationOutbox

logger = logging.getLogger(__name__)

# Notification types
ORDER_CREATED = "order_created"
ORDER_STATUS_CHANGED = "order_status_changed"
ORDER_CANCELLED = "order_cancelled"
ORDER_PICKED_UP = "order_picked_up"
ORDER_ABANDONED = "order_abandoned"
PAYMENT_RECEIVED = "payment_received"
PAYMENT_FAILED = "payment_failed"
REFUND_UPDATED = "refund_updated"


@dataclass(frozen=True)
class DeliveryResult:
    delivered: int
    retried: int
    failed: int


def enqueue(*, user_id, notification_type: str, payload: Optional[dict] = None):
    if user_id is None:
        return None

    try:
        with transaction.atomic():
            return NotificationOutbox.objects.create(
                recipient_id=user_id,
                notification_type=notification_type,
                payload=dict(payload or {}),
            )
    except (DatabaseError, TypeError, ValueError):
        logger.warning(
            "Notification enqueue failed",
            extra={"recipient_id": str(user_id), "notification_type": notification_type},
            exc_info=True,
        )
        return None


def _dispatcher():
    return import_string(settings.NOTIFICATIONS_DISPATCHER)


def _claimable(now) -> Q:
    # a `sending` row older than the claim timeout belongs to a dead worker
    stale_before = now - timedelta(
        seconds=int(getattr(settings, "NOTIFICATIONS_CLAIM_TIMEOUT_SECONDS", 300))
    )
    return Q(status=NotificationOutbox.STATUS_PENDING) | Q(
        status=NotificationOutbox.STATUS_SENDING, updated_at__lt=stale_before
    )


def _claim(outbox_id, now) -> Optional[NotificationOutbox]:
    """Conditional UPDATE: exactly one worker wins the row, no lock is held afterwards."""
    claimed = NotificationOutbox.objects.filter(_claimable(now), id=outbox_id).update(
        status=NotificationOutbox.STATUS_SENDING,
        attempts=F("attempts") + 1,
        updated_at=now,
    )
    if not claimed:
        return None
    return NotificationOutbox.objects.get(id=outbox_id)


def deliver_pending(*, limit: int = 100) -> DeliveryResult:
    dispatch = _dispatcher()
    max_attempts = int(getattr(settings, "NOTIFICATIONS_MAX_ATTEMPTS", 5))

    delivered = retried = failed = 0

    candidate_ids = list(
        NotificationOutbox.objects.filter(_claimable(timezone.now()))
        .order_by("created_at")
        .values_list("id", flat=True)[: int(limit)]
    )

    for outbox_id in candidate_ids:
        row = _claim(outbox_id, timezone.now())
        if row is None:
            continue

        try:
            dispatch(
                recipient_id=row.recipient_id,
                notification_type=row.notification_type,
                payload=row.payload,
            )
        except Exception as exc:
            row.last_error = str(exc)[:2000]
            if row.attempts >= max_attempts:
                row.status = NotificationOutbox.STATUS_FAILED
                failed += 1
            else:
                row.status = NotificationOutbox.STATUS_PENDING
                retried += 1
            logger.warning(
                "Notification delivery failed",
                extra={
                    "outbox_id": str(row.id),
                    "attempts": row.attempts,
                    "notification_type": row.notification_type,
                },
            )
        else:
            row.status = NotificationOutbox.STATUS_DELIVERED
            row.delivered_at = timezone.now()
            row.last_error = ""
            delivered += 1

        row.save(update_fields=["status", "last_error", "delivered_at", "updated_at"])

    return DeliveryResult(delivered=delivered, retried=retried, failed=failed)
