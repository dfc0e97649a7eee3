# audit/services/audit_trail.py

"""
AUDIT TRAIL SINK

record() never raises and never poisons the caller's transaction:
the insert runs inside its own savepoint, and a failure is logged as a
WARNING (degraded mode) while the lifecycle operation carries on.
"""

from __future__ import annotations

import logging
from typing import Optional

from django.db import DatabaseError, transaction

from audit.models import OrderAuditEntry

logger = logging.getLogger(__name__)

SYSTEM_ROLE = "system"


def _actor_fields(actor) -> tuple:
    if actor is None or not getattr(actor, "is_authenticated", False):
        return None, SYSTEM_ROLE
    return actor.id, (getattr(actor, "role", None) or "unknown")


def _stringify(value) -> Optional[str]:
    if value is None:
        return None
    return str(value)[:64]


def record(
    *,
    order_id,
    event_type: str,
    old_value=None,
    new_value=None,
    actor=None,
    metadata: Optional[dict] = None,
    origin: Optional[str] = None,
) -> Optional[OrderAuditEntry]:
    actor_id, actor_role = _actor_fields(actor)

    try:
        with transaction.atomic():
            return OrderAuditEntry.objects.create(
                order_id=order_id,
                event_type=event_type,
                old_value=_stringify(old_value),
                new_value=_stringify(new_value),
                actor_id=actor_id,
                actor_role=actor_role,
                actor_origin=(origin or None),
                metadata=dict(metadata or {}),
            )
    except (DatabaseError, TypeError, ValueError):
        logger.warning(
            "Audit write failed; continuing in degraded mode",
            extra={
                "order_id": str(order_id),
                "event_type": event_type,
                "old_value": _stringify(old_value),
                "new_value": _stringify(new_value),
            },
            exc_info=True,
        )
        return None


def history(*, order_id):
    return OrderAuditEntry.objects.filter(order_id=order_id).order_by("created_at")
