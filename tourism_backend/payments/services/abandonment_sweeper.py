# payments/services/abandonment_sweeper.py

"""
ABANDONMENT SWEEPER

Periodic reclaim of stale online checkouts:
- pending online orders still unpaid after the threshold -> cancelled_by_user
  (reason "abandoned"), stock released, intents expired
- active intents past expires_at -> expired

Each order runs in its own transaction (order_service.abandon_order re-checks
the status under the row lock, so losing a race to a webhook is a no-op).
Per-order failures are collected in SweepResult.errors, never raised.

Only one sweep runs at a time across instances: an expiring lock is taken in
the shared Django cache with cache.add().
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import timedelta

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.db.models import Min
from django.utils import timezone

from orders.models import Order
from orders.services import order_service
from payments.models import PaymentIntent
from payments.services import intent_service, paymongo

logger = logging.getLogger(__name__)

LOCK_KEY = "payments:abandonment-sweeper:lock"

# intent states that mean "money may be on its way"
IN_PROGRESS_GATEWAY_STATUSES = frozenset(
    {PaymentIntent.STATUS_SUCCEEDED, PaymentIntent.STATUS_PROCESSING}
)


@dataclass
class SweepResult:
    orders_abandoned: int = 0
    intents_expired: int = 0
    stock_units_released: int = 0
    orders_skipped: int = 0
    errors: list = field(default_factory=list)
    lock_acquired: bool = True

    def as_dict(self) -> dict:
        return asdict(self)


def _threshold() -> timedelta:
    return timedelta(minutes=int(getattr(settings, "ORDERS_ABANDONMENT_THRESHOLD_MINUTES", 30)))


def _batch_size() -> int:
    return int(getattr(settings, "ORDERS_SWEEP_BATCH_SIZE", 50))


def _lock_ttl() -> int:
    # outlive one interval so a crashed sweeper frees the lock eventually
    return max(60, int(getattr(settings, "ORDERS_SWEEP_INTERVAL_SECONDS", 300)) * 2)


def _verify_with_gateway() -> bool:
    return bool(getattr(settings, "ORDERS_SWEEPER_VERIFY_WITH_GATEWAY", False))


def _stale_orders(now):
    return Order.objects.filter(
        status=Order.STATUS_PENDING,
        payment_status=Order.PAYMENT_STATUS_PENDING,
        payment_method=Order.PAYMENT_METHOD_PAYMONGO,
        created_at__lt=now - _threshold(),
    ).order_by("created_at")


def _expired_intents(now):
    return PaymentIntent.objects.filter(is_active=True, expires_at__lt=now).order_by("expires_at")


def _gateway_says_in_progress(order) -> bool:
    intent = intent_service.active_intent(order)
    if intent is None:
        return False

    gateway_intent = paymongo.retrieve_payment_intent(intent.gateway_reference)
    if gateway_intent.status in IN_PROGRESS_GATEWAY_STATUSES:
        logger.info(
            "Skipping abandonment; gateway reports payment in progress",
            extra={
                "order_id": str(order.id),
                "reference": intent.gateway_reference,
                "gateway_status": gateway_intent.status,
            },
        )
        return True
    return False


def _abandon_one(order, result: SweepResult, *, origin: str) -> None:
    try:
        if _verify_with_gateway() and _gateway_says_in_progress(order):
            result.orders_skipped += 1
            return

        outcome = order_service.abandon_order(order_id=order.id, origin=origin)
    except Exception as exc:
        logger.exception("Abandonment failed for order", extra={"order_id": str(order.id)})
        result.errors.append({"order_id": str(order.id), "error": str(exc)})
        return

    if outcome is None:
        result.orders_skipped += 1
        return

    _, units, intents_closed = outcome
    result.orders_abandoned += 1
    result.stock_units_released += units
    result.intents_expired += intents_closed


def _expire_intent(intent, result: SweepResult) -> None:
    """
    Intent expired on an order that is not itself abandonable (too young,
    or already past pending): just close the intent.
    """
    with transaction.atomic():
        locked = PaymentIntent.objects.select_for_update().get(id=intent.id)
        if not locked.is_active:
            return
        locked.is_active = False
        if locked.status != PaymentIntent.STATUS_SUCCEEDED:
            locked.status = PaymentIntent.STATUS_EXPIRED
        locked.save(update_fields=["is_active", "status", "updated_at"])
    result.intents_expired += 1


def _sweep(now, *, origin: str) -> SweepResult:
    result = SweepResult()
    batch = _batch_size()
    seen = set()

    for order in _stale_orders(now)[:batch]:
        seen.add(order.id)
        _abandon_one(order, result, origin=origin)

    for intent in _expired_intents(now).select_related("order")[:batch]:
        order = intent.order
        if order.id in seen:
            continue

        abandonable = (
            order.status == Order.STATUS_PENDING
            and order.payment_status == Order.PAYMENT_STATUS_PENDING
            and order.is_online_payment
        )
        if abandonable:
            seen.add(order.id)
            _abandon_one(order, result, origin=origin)
            continue

        try:
            _expire_intent(intent, result)
        except Exception as exc:
            logger.exception("Expiring payment intent failed", extra={"intent_id": str(intent.id)})
            result.errors.append({"intent_id": str(intent.id), "error": str(exc)})

    return result


def run_sweep(*, now=None, origin: str = "sweeper") -> SweepResult:
    now = now or timezone.now()
    token = uuid.uuid4().hex

    if not cache.add(LOCK_KEY, token, timeout=_lock_ttl()):
        logger.info("Abandonment sweep already running elsewhere; skipping")
        return SweepResult(lock_acquired=False)

    try:
        result = _sweep(now, origin=origin)
    finally:
        if cache.get(LOCK_KEY) == token:
            cache.delete(LOCK_KEY)

    logger.info(
        "Abandonment sweep finished",
        extra={
            "orders_abandoned": result.orders_abandoned,
            "intents_expired": result.intents_expired,
            "stock_units_released": result.stock_units_released,
            "orders_skipped": result.orders_skipped,
            "errors": len(result.errors),
        },
    )
    return result


def run_manual_sweep(*, actor=None) -> SweepResult:
    origin = f"manual:{actor.id}" if actor is not None else "manual"
    logger.info("Manual abandonment sweep requested", extra={"actor_id": str(getattr(actor, "id", ""))})
    return run_sweep(origin=origin)


def get_abandonment_stats(*, now=None) -> dict:
    now = now or timezone.now()

    pending_online = Order.objects.filter(
        status=Order.STATUS_PENDING,
        payment_status=Order.PAYMENT_STATUS_PENDING,
        payment_method=Order.PAYMENT_METHOD_PAYMONGO,
    )
    oldest = pending_online.aggregate(oldest=Min("created_at"))["oldest"]

    return {
        "pending_online_orders": pending_online.count(),
        "potentially_abandoned": _stale_orders(now).count(),
        "expired_active_intents": _expired_intents(now).count(),
        "oldest_pending_age_minutes": (
            int((now - oldest).total_seconds() // 60) if oldest is not None else None
        ),
        "threshold_minutes": int(_threshold().total_seconds() // 60),
        "batch_size": _batch_size(),
        "verify_with_gateway": _verify_with_gateway(),
    }
