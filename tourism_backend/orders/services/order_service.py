# orders/services/order_service.py

"""
ORDER SERVICE (APPLICATION SERVICE)

Purpose:
- Place an order: validate lines against the catalog, snapshot prices,
  compute totals, reserve stock (all-or-nothing), issue an arrival code.
- Cancel an order under the business's cancellation policy.
- Advance an order along the state machine (business side).
- Confirm pickup against the arrival code.
- Abandon stale unpaid online orders (sweeper entry point).

Hard rules:
- Every state change runs in transaction.atomic() with the order row locked.
- Money values are computed server-side; totals never change after creation.
- Audit + notification writes ride the same transaction (both degrade,
  neither can roll back the transition).
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from audit.models import OrderAuditEntry
from audit.services import audit_trail
from businesses.models import Business
from businesses.services import get_cancellation_policy, get_discount
from notifications.services import outbox
from orders.models import Order, OrderItem
from orders.services import order_lifecycle
from orders.services.exceptions import (
    ArrivalCodeMismatch,
    CancellationNotAllowed,
    InvalidOrderTransition,
    OrderAccessDenied,
    OrderAlreadyTerminal,
    OrderNotFound,
    OrderValidationError,
    StockReservationError,
)
from products.services import stock_ledger
from products.services.catalog import get_product
from products.services.exceptions import InsufficientStockError
from users.models import ROLE_BUSINESS_OWNER

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")
ABANDONED_REASON = "abandoned"
ARRIVAL_CODE_ATTEMPTS = 10


def _money(v) -> Decimal:
    if v is None or v == "":
        return Decimal("0.00")
    return Decimal(str(v)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _to_int_qty(value) -> int:
    if isinstance(value, bool):
        raise OrderValidationError("quantity must be a whole integer unit")

    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise OrderValidationError("quantity must be a whole integer unit")

    try:
        qty = int(value)
    except (TypeError, ValueError):
        raise OrderValidationError("quantity must be a whole integer unit")

    if qty <= 0:
        raise OrderValidationError("quantity must be at least 1")
    return qty


def _tax_rate() -> Decimal:
    try:
        return Decimal(str(getattr(settings, "ORDERS_TAX_RATE", "0.00") or "0.00"))
    except InvalidOperation:
        return Decimal("0.00")


def _grace_window() -> timedelta:
    return timedelta(seconds=int(getattr(settings, "ORDERS_CANCELLATION_GRACE_SECONDS", 10)))


def _is_admin(actor) -> bool:
    return bool(actor is not None and getattr(actor, "role", None) == "admin")


def _acts_for_business(actor, business_id) -> bool:
    return bool(actor is not None and actor.acts_for_business(business_id))


def _business_recipients(business_id) -> list:
    User = get_user_model()
    return list(
        User.objects.filter(
            business_id=business_id,
            role=ROLE_BUSINESS_OWNER,
            is_active=True,
        ).values_list("id", flat=True)
    )


def _notify_business(order: Order, notification_type: str, payload: dict) -> None:
    for user_id in _business_recipients(order.business_id):
        outbox.enqueue(user_id=user_id, notification_type=notification_type, payload=payload)


def _notify_purchaser(order: Order, notification_type: str, payload: dict) -> None:
    outbox.enqueue(
        user_id=order.purchaser_id,
        notification_type=notification_type,
        payload=payload,
    )


def _order_payload(order: Order, **extra) -> dict:
    payload = {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "status": order.status,
        "payment_status": order.payment_status,
    }
    payload.update(extra)
    return payload


def _lock_order(order_id) -> Order:
    try:
        return Order.objects.select_for_update().get(id=order_id)
    except (Order.DoesNotExist, ValueError, ValidationError):
        raise OrderNotFound(f"Order {order_id} not found")


def _generate_arrival_code() -> str:
    for _ in range(ARRIVAL_CODE_ATTEMPTS):
        code = f"{secrets.randbelow(10**6):06d}"
        taken = Order.objects.filter(
            arrival_code=code,
            status__in=Order.LIVE_STATUSES,
        ).exists()
        if not taken:
            return code
    raise OrderValidationError("Could not allocate an arrival code, please retry")


# ============================================================
# READ
# ============================================================


def get_order(order_id) -> Order:
    try:
        return Order.objects.select_related("business", "purchaser").get(id=order_id)
    except (Order.DoesNotExist, ValueError, ValidationError):
        raise OrderNotFound(f"Order {order_id} not found")


def can_view_order(*, order: Order, viewer) -> bool:
    if viewer is None or not getattr(viewer, "is_authenticated", False):
        return False
    if _is_admin(viewer):
        return True
    if str(order.purchaser_id) == str(viewer.id):
        return True
    return _acts_for_business(viewer, order.business_id)


def orders_for_user(*, user_id, viewer):
    """
    Orders placed by `user_id`, as visible to `viewer`:
    the purchaser and admins see everything, business members only
    their own business's orders.
    """
    qs = Order.objects.filter(purchaser_id=user_id).prefetch_related("items")

    if _is_admin(viewer) or str(viewer.id) == str(user_id):
        return qs

    if getattr(viewer, "business_id", None) and viewer.acts_for_business(viewer.business_id):
        return qs.filter(business_id=viewer.business_id)

    raise OrderAccessDenied("You may not list this user's orders")


# ============================================================
# CREATE
# ============================================================


def _validate_lines(*, business_id, items) -> list:
    """
    Returns [(ProductSnapshot, qty)] with duplicate products merged.
    """
    if not items:
        raise OrderValidationError("Order must contain at least one item")

    merged = {}
    snapshots = {}
    for idx, item in enumerate(items):
        product_id = item.get("product_id")
        qty = _to_int_qty(item.get("quantity"))

        snapshot = get_product(product_id)
        if snapshot is None:
            raise OrderValidationError(f"Product not found at index {idx}: {product_id}")

        if str(snapshot.business_id) != str(business_id):
            raise OrderValidationError(
                f"Product '{snapshot.name}' does not belong to this business"
            )

        if not snapshot.is_available:
            raise OrderValidationError(f"Product '{snapshot.name}' is not available")

        if snapshot.price is None or snapshot.price <= Decimal("0.00"):
            raise OrderValidationError(f"Product '{snapshot.name}' has no valid price")

        key = str(snapshot.id)
        snapshots[key] = snapshot
        merged[key] = merged.get(key, 0) + qty

    return [(snapshots[key], qty) for key, qty in merged.items()]


def _validate_payment(payment_method: str, payment_method_type: str) -> tuple:
    method = (payment_method or "").strip().lower()
    valid_methods = {m for m, _ in Order.PAYMENT_METHOD_CHOICES}
    if method not in valid_methods:
        raise OrderValidationError(
            f"Invalid payment_method '{payment_method}'. Must be one of: {sorted(valid_methods)}"
        )

    method_type = (payment_method_type or "").strip().lower()
    if method_type:
        valid_types = {t for t, _ in Order.PAYMENT_METHOD_TYPE_CHOICES}
        if method != Order.PAYMENT_METHOD_PAYMONGO:
            raise OrderValidationError("payment_method_type is only valid for online payments")
        if method_type not in valid_types:
            raise OrderValidationError(
                f"Invalid payment_method_type '{payment_method_type}'. "
                f"Must be one of: {sorted(valid_types)}"
            )

    return method, method_type


def create_order(
    *,
    purchaser,
    business_id,
    items,
    pickup_at,
    payment_method: str,
    payment_method_type: str = "",
    discount_id=None,
    origin=None,
) -> Order:
    if pickup_at is None or pickup_at <= timezone.now():
        raise OrderValidationError("pickup_at must be in the future")

    try:
        business = Business.objects.filter(id=business_id, is_active=True).first()
    except (ValueError, ValidationError):
        business = None
    if business is None:
        raise OrderValidationError(f"Business {business_id} not found")

    method, method_type = _validate_payment(payment_method, payment_method_type)
    lines = _validate_lines(business_id=business.id, items=items)

    subtotal = _money(sum(snapshot.price * qty for snapshot, qty in lines))

    discount_amount = Decimal("0.00")
    discount_reference = ""
    if discount_id:
        discount = get_discount(discount_id=discount_id, business_id=business.id)
        if discount is None:
            raise OrderValidationError("Discount is not valid for this business")
        discount_amount = discount.amount_for(subtotal)
        discount_reference = str(discount.id)

    tax_amount = _money((subtotal - discount_amount) * _tax_rate())
    total = _money(subtotal - discount_amount + tax_amount)

    try:
        with transaction.atomic():
            order = Order.objects.create(
                business=business,
                purchaser=purchaser,
                subtotal_amount=subtotal,
                discount_amount=discount_amount,
                tax_amount=tax_amount,
                total_amount=total,
                discount_reference=discount_reference,
                pickup_at=pickup_at,
                payment_method=method,
                payment_method_type=method_type,
                payment_status=Order.PAYMENT_STATUS_PENDING,
                status=Order.STATUS_PENDING,
                arrival_code=_generate_arrival_code(),
            )

            for snapshot, qty in lines:
                unit_price = _money(snapshot.price)
                OrderItem.objects.create(
                    order=order,
                    product_id=snapshot.id,
                    product_name=snapshot.name,
                    quantity=qty,
                    unit_price=unit_price,
                    line_total=_money(unit_price * qty),
                )

            stock_ledger.reserve_many(
                lines=[(snapshot.id, qty) for snapshot, qty in lines],
                order_id=order.id,
            )

            audit_trail.record(
                order_id=order.id,
                event_type=OrderAuditEntry.EventType.CREATED,
                new_value=order.status,
                actor=purchaser,
                origin=origin,
                metadata={
                    "total_amount": str(order.total_amount),
                    "payment_method": order.payment_method,
                    "lines": len(lines),
                },
            )

            _notify_business(
                order,
                outbox.ORDER_CREATED,
                _order_payload(order, total_amount=str(order.total_amount)),
            )
    except InsufficientStockError as exc:
        raise StockReservationError(
            str(exc),
            product_id=exc.product_id,
            requested=exc.requested,
            available=exc.available,
        ) from exc
    except IntegrityError as exc:
        # arrival code collided with a concurrent checkout
        raise OrderValidationError("Could not allocate an arrival code, please retry") from exc

    logger.info(
        "Order created",
        extra={
            "order_id": str(order.id),
            "order_number": order.order_number,
            "business_id": str(business.id),
            "total_amount": str(order.total_amount),
            "payment_method": order.payment_method,
        },
    )
    return order


# ============================================================
# CANCEL
# ============================================================


def _purchaser_cancellation_penalty(order: Order, now) -> Decimal:
    """
    Penalty owed by the purchaser, or CancellationNotAllowed.
    """
    if (
        order.payment_status != Order.PAYMENT_STATUS_PAID
        and now - order.created_at <= _grace_window()
    ):
        return Decimal("0.00")

    policy = get_cancellation_policy(order.business_id)

    if not policy.allow_customer_cancellation:
        raise CancellationNotAllowed("This business does not allow customer cancellations")

    if policy.deadline_hours is None:
        return Decimal("0.00")

    deadline = order.pickup_at - timedelta(hours=int(policy.deadline_hours))
    if now < deadline:
        return Decimal("0.00")

    if not policy.has_penalty:
        raise CancellationNotAllowed(
            f"Cancellation deadline passed ({policy.deadline_hours}h before pickup)"
        )

    total = _money(order.total_amount)
    percent = Decimal(policy.penalty_percent or 0)
    fixed = Decimal(policy.penalty_fixed or 0)
    penalty = _money(total * percent / Decimal("100") + fixed)
    return min(penalty, total)


def purchaser_cancellation_penalty(order: Order, now=None) -> Decimal:
    """What the purchaser would owe cancelling now (read-only quote)."""
    return _purchaser_cancellation_penalty(order, now or timezone.now())


def _resolve_cancellation(order: Order, actor, now) -> tuple:
    """
    Returns (target_status, penalty) for `actor` cancelling `order`.
    actor None = system.
    """
    if actor is None:
        return Order.STATUS_CANCELLED_BY_USER, Decimal("0.00")

    if _is_admin(actor) or _acts_for_business(actor, order.business_id):
        return Order.STATUS_CANCELLED_BY_BUSINESS, Decimal("0.00")

    if str(order.purchaser_id) == str(actor.id):
        return Order.STATUS_CANCELLED_BY_USER, _purchaser_cancellation_penalty(order, now)

    raise OrderAccessDenied("You may not cancel this order")


def _apply_cancellation(
    *,
    order: Order,
    target_status: str,
    actor,
    reason: str,
    penalty: Decimal,
    origin,
    event_type: str,
    intent_final_status: str,
    notification_type: str = outbox.ORDER_CANCELLED,
) -> tuple:
    """
    Shared cancellation effects. Caller holds the order row lock inside
    an atomic block. Returns (stock units released, intents closed).
    """
    from payments.services.intent_service import deactivate_active_intents
    from payments.services.refund_coordinator import open_cancellation_refund

    now = timezone.now()
    old_status = order.status

    units_released = stock_ledger.release(order_id=order.id, include_committed=True)
    intents_closed = deactivate_active_intents(order=order, final_status=intent_final_status)

    order.status = target_status
    order.cancelled_at = now
    order.cancelled_by = actor
    order.cancellation_reason = (reason or "").strip()
    order.cancellation_penalty = _money(penalty)
    order.save(
        update_fields=[
            "status",
            "cancelled_at",
            "cancelled_by",
            "cancellation_reason",
            "cancellation_penalty",
            "updated_at",
        ]
    )

    refund = None
    if order.is_payment_captured:
        refund = open_cancellation_refund(order=order, penalty=order.cancellation_penalty, actor=actor)

    audit_trail.record(
        order_id=order.id,
        event_type=event_type,
        old_value=old_status,
        new_value=order.status,
        actor=actor,
        origin=origin,
        metadata={
            "reason": order.cancellation_reason,
            "penalty": str(order.cancellation_penalty),
            "stock_units_released": units_released,
            "intents_closed": intents_closed,
            "refund_id": str(refund.id) if refund is not None else None,
        },
    )

    payload = _order_payload(
        order,
        reason=order.cancellation_reason,
        penalty=str(order.cancellation_penalty),
    )
    _notify_purchaser(order, notification_type, payload)
    _notify_business(order, notification_type, payload)

    return units_released, intents_closed


def cancel_order(*, order_id, actor, reason: str = "", origin=None) -> Order:
    from payments.models import PaymentIntent

    with transaction.atomic():
        order = _lock_order(order_id)

        if order_lifecycle.is_terminal(order.status):
            raise OrderAlreadyTerminal(
                f"Order {order.order_number} is already in terminal state '{order.status}'"
            )

        if order.status not in order_lifecycle.CANCELLABLE_STATES:
            raise InvalidOrderTransition(
                f"Order {order.order_number} cannot be cancelled from '{order.status}'"
            )

        now = timezone.now()
        target_status, penalty = _resolve_cancellation(order, actor, now)
        order_lifecycle.validate_transition(order=order, target_status=target_status)

        _apply_cancellation(
            order=order,
            target_status=target_status,
            actor=actor,
            reason=reason,
            penalty=penalty,
            origin=origin,
            event_type=OrderAuditEntry.EventType.CANCELLED,
            intent_final_status=PaymentIntent.STATUS_CANCELLED,
        )

    logger.info(
        "Order cancelled",
        extra={
            "order_id": str(order.id),
            "status": order.status,
            "penalty": str(order.cancellation_penalty),
            "actor_role": getattr(actor, "role", "system"),
        },
    )
    return order


def abandon_order(*, order_id, origin: str = "sweeper"):
    """
    System cancellation of a stale unpaid online order.

    Returns (order, units_released, intents_closed), or None when the order is no longer
    eligible once locked (paid / cancelled / advanced meanwhile).
    """
    from payments.models import PaymentIntent

    with transaction.atomic():
        order = _lock_order(order_id)

        eligible = (
            order.status == Order.STATUS_PENDING
            and order.payment_status == Order.PAYMENT_STATUS_PENDING
            and order.is_online_payment
        )
        if not eligible:
            logger.info(
                "Abandonment skipped; order no longer eligible",
                extra={
                    "order_id": str(order.id),
                    "status": order.status,
                    "payment_status": order.payment_status,
                },
            )
            return None

        units, intents_closed = _apply_cancellation(
            order=order,
            target_status=Order.STATUS_CANCELLED_BY_USER,
            actor=None,
            reason=ABANDONED_REASON,
            penalty=Decimal("0.00"),
            origin=origin,
            event_type=OrderAuditEntry.EventType.ABANDONED,
            intent_final_status=PaymentIntent.STATUS_EXPIRED,
            notification_type=outbox.ORDER_ABANDONED,
        )

    return order, units, intents_closed


# ============================================================
# ADVANCE (business side)
# ============================================================


def advance_status(*, order_id, next_status: str, actor, origin=None) -> Order:
    next_status = (next_status or "").strip()

    if next_status in order_lifecycle.CANCELLED_STATES:
        raise InvalidOrderTransition("Use the cancel endpoint to cancel an order")
    if next_status == Order.STATUS_PICKED_UP:
        raise InvalidOrderTransition("Use the pickup endpoint with the arrival code")
    if next_status == Order.STATUS_FAILED_PAYMENT:
        raise InvalidOrderTransition("failed_payment is set by the payment gateway only")

    valid_statuses = {s for s, _ in Order.STATUS_CHOICES}
    if next_status not in valid_statuses:
        raise OrderValidationError(f"Unknown status '{next_status}'")

    with transaction.atomic():
        order = _lock_order(order_id)

        if not (_is_admin(actor) or _acts_for_business(actor, order.business_id)):
            raise OrderAccessDenied("Only the business or an admin may update this order")

        order_lifecycle.validate_transition(order=order, target_status=next_status)

        old_status = order.status
        order.status = next_status
        order.save(update_fields=["status", "updated_at"])

        audit_trail.record(
            order_id=order.id,
            event_type=OrderAuditEntry.EventType.STATUS_CHANGED,
            old_value=old_status,
            new_value=order.status,
            actor=actor,
            origin=origin,
        )
        _notify_purchaser(order, outbox.ORDER_STATUS_CHANGED, _order_payload(order))

    logger.info(
        "Order status advanced",
        extra={"order_id": str(order.id), "from": old_status, "to": order.status},
    )
    return order


# ============================================================
# PICKUP
# ============================================================


def mark_picked_up(*, order_id, arrival_code: str, actor, origin=None) -> Order:
    supplied = (arrival_code or "").strip()
    rejected = False

    with transaction.atomic():
        order = _lock_order(order_id)

        if not (_is_admin(actor) or _acts_for_business(actor, order.business_id)):
            raise OrderAccessDenied("Only the business or an admin may confirm pickup")

        order_lifecycle.validate_transition(order=order, target_status=Order.STATUS_PICKED_UP)

        if not secrets.compare_digest(supplied, order.arrival_code):
            # recorded, then raised outside the block so the entry survives
            audit_trail.record(
                order_id=order.id,
                event_type=OrderAuditEntry.EventType.ARRIVAL_CODE_REJECTED,
                old_value=order.status,
                new_value=order.status,
                actor=actor,
                origin=origin,
            )
            rejected = True
        else:
            now = timezone.now()
            old_status = order.status

            stock_ledger.commit(order_id=order.id)

            order.status = Order.STATUS_PICKED_UP
            order.picked_up_at = now
            update_fields = ["status", "picked_up_at", "updated_at"]

            # cash is collected at the counter
            if order.payment_method == Order.PAYMENT_METHOD_CASH_ON_PICKUP:
                order.payment_status = Order.PAYMENT_STATUS_PAID
                order.paid_at = now
                update_fields += ["payment_status", "paid_at"]

            order.save(update_fields=update_fields)

            audit_trail.record(
                order_id=order.id,
                event_type=OrderAuditEntry.EventType.PICKED_UP,
                old_value=old_status,
                new_value=order.status,
                actor=actor,
                origin=origin,
            )
            _notify_purchaser(order, outbox.ORDER_PICKED_UP, _order_payload(order))

    if rejected:
        logger.warning(
            "Arrival code rejected",
            extra={"order_id": str(order.id), "actor_id": str(getattr(actor, "id", ""))},
        )
        raise ArrivalCodeMismatch("Arrival code does not match this order")

    return order
