# payments/services/refund_coordinator.py

"""
======================================================
PATH: payments/services/refund_coordinator.py
======================================================
REFUND COORDINATOR

Responsibilities:
- Validate a refund against the order's remaining refundable balance
- Create the Refund row (pending) under the order lock
- Submit it to the gateway (outside the lock) -> processing | failed (4xx only)
- Apply terminal outcomes reported by webhooks
- Purchaser self-service: eligibility check, refund-by-cancellation, history

GUARANTEES:
- succeeded + in-flight refunds never exceed the order total
- a refund is never marked succeeded synchronously
- a definite gateway rejection leaves a failed Refund row with the error detail
- an unknown outcome (timeout, 5xx) stays processing until the webhook
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from audit.models import OrderAuditEntry
from audit.services import audit_trail
from notifications.services import outbox
from orders.models import Order
from orders.services import order_lifecycle, order_service
from orders.services.exceptions import (
    CancellationNotAllowed,
    OrderAccessDenied,
    OrderNotFound,
)
from payments.models import Refund
from payments.services import paymongo
from payments.services.exceptions import (
    PaymentGatewayError,
    RefundAmountExceeded,
    RefundError,
    RefundNotAllowed,
)

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")
CANCELLATION_REFUND_NOTE = "Automatic refund on order cancellation"


def _money(v) -> Decimal:
    if v is None or v == "":
        return Decimal("0.00")
    return Decimal(str(v)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _sum_amount(qs) -> Decimal:
    return _money(qs.aggregate(total=Sum("amount"))["total"])


def refunded_amount(order) -> Decimal:
    return _sum_amount(Refund.objects.filter(order=order, status=Refund.STATUS_SUCCEEDED))


def committed_refund_amount(order) -> Decimal:
    """Succeeded + in-flight: money already promised back."""
    statuses = (Refund.STATUS_SUCCEEDED,) + Refund.IN_FLIGHT_STATUSES
    return _sum_amount(Refund.objects.filter(order=order, status__in=statuses))


def refundable_balance(order) -> Decimal:
    return max(Decimal("0.00"), _money(order.total_amount) - committed_refund_amount(order))


def _can_refund(actor, order) -> bool:
    if actor is None:
        return False
    if getattr(actor, "role", None) == "admin":
        return True
    return actor.acts_for_business(order.business_id)


def _validate_reason(reason: str) -> None:
    valid_reasons = {r for r, _ in Refund.REASON_CHOICES}
    if reason not in valid_reasons:
        raise RefundError(f"Invalid reason '{reason}'. Must be one of: {sorted(valid_reasons)}")


def _create_refund_row(*, order, amount: Decimal, reason: str, notes: str, actor) -> Refund:
    refund = Refund.objects.create(
        order=order,
        amount=amount,
        reason=reason,
        notes=notes,
        requested_by=actor if getattr(actor, "is_authenticated", False) else None,
        status=Refund.STATUS_PENDING,
    )

    audit_trail.record(
        order_id=order.id,
        event_type=OrderAuditEntry.EventType.REFUND_REQUESTED,
        old_value=order.payment_status,
        new_value=order.payment_status,
        actor=actor,
        metadata={
            "refund_id": str(refund.id),
            "amount": str(refund.amount),
            "reason": refund.reason,
        },
    )
    return refund


# ============================================================
# REQUEST
# ============================================================


def request_refund(
    *,
    order_id,
    amount,
    reason: str = Refund.REASON_REQUESTED_BY_CUSTOMER,
    actor,
    notes: str = "",
) -> Refund:
    try:
        amount = _money(amount)
    except InvalidOperation:
        raise RefundError("amount must be a valid decimal")

    if amount <= Decimal("0.00"):
        raise RefundError("amount must be greater than zero")

    _validate_reason(reason)

    with transaction.atomic():
        try:
            order = Order.objects.select_for_update().get(id=order_id)
        except Order.DoesNotExist:
            raise OrderNotFound(f"Order {order_id} not found")

        if not _can_refund(actor, order):
            raise OrderAccessDenied("Only the business or an admin may refund this order")

        if not order.is_payment_captured or not order.is_online_payment:
            raise RefundNotAllowed("Order has no captured online payment")

        if not order.gateway_payment_id:
            raise RefundNotAllowed("Order has no gateway payment reference")

        balance = refundable_balance(order)
        if amount > balance:
            raise RefundAmountExceeded(
                f"Refund {amount} exceeds refundable balance {balance}"
            )

        refund = _create_refund_row(
            order=order, amount=amount, reason=reason, notes=notes, actor=actor
        )

    return submit_refund(refund.id)


def open_cancellation_refund(*, order, penalty, actor) -> Optional[Refund]:
    """
    Called inside the cancellation transaction (order row locked).
    Refunds total - penalty - already refunded/in flight; the gateway call
    happens after commit.
    """
    amount = _money(order.total_amount) - _money(penalty) - committed_refund_amount(order)
    if amount <= Decimal("0.00"):
        return None

    refund = _create_refund_row(
        order=order,
        amount=_money(amount),
        reason=Refund.REASON_REQUESTED_BY_CUSTOMER,
        notes=CANCELLATION_REFUND_NOTE,
        actor=actor,
    )

    refund_id = refund.id
    transaction.on_commit(lambda: _submit_after_commit(refund_id))
    return refund


def _submit_after_commit(refund_id) -> None:
    try:
        submit_refund(refund_id)
    except PaymentGatewayError:
        # failure is already persisted on the refund row
        logger.exception("Cancellation refund submission failed", extra={"refund_id": str(refund_id)})


# ============================================================
# SUBMIT
# ============================================================


def submit_refund(refund_id) -> Refund:
    refund = Refund.objects.select_related("order").get(id=refund_id)
    if refund.status != Refund.STATUS_PENDING:
        return refund

    order = refund.order

    if not order.gateway_payment_id:
        return _cancel_unsendable(refund_id)

    try:
        gateway_refund = paymongo.create_refund(
            payment_id=order.gateway_payment_id,
            amount=refund.amount,
            reason=refund.reason,
            notes=refund.notes,
            metadata={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "refund_id": str(refund.id),
            },
        )
    except PaymentGatewayError as exc:
        if paymongo.outcome_unknown(exc):
            return _hold_for_webhook(refund_id, exc)

        with transaction.atomic():
            refund = Refund.objects.select_for_update().get(id=refund_id)
            if refund.status != Refund.STATUS_PENDING:
                # a webhook already settled it
                return refund
            refund.status = Refund.STATUS_FAILED
            refund.error_detail = str(exc)[:2000]
            refund.completed_at = timezone.now()
            refund.save(update_fields=["status", "error_detail", "completed_at", "updated_at"])

            audit_trail.record(
                order_id=order.id,
                event_type=OrderAuditEntry.EventType.REFUND_FAILED,
                old_value=Refund.STATUS_PENDING,
                new_value=refund.status,
                metadata={"refund_id": str(refund.id), "error": refund.error_detail},
            )

        logger.error(
            "Refund rejected by gateway",
            extra={"refund_id": str(refund.id), "order_id": str(order.id), "error": str(exc)},
        )
        raise

    with transaction.atomic():
        refund = Refund.objects.select_for_update().get(id=refund_id)
        refund.gateway_reference = gateway_refund.reference
        update_fields = ["gateway_reference", "updated_at"]
        # a webhook may have landed first
        if refund.status == Refund.STATUS_PENDING:
            refund.status = Refund.STATUS_PROCESSING
            update_fields.append("status")
        refund.save(update_fields=update_fields)

    logger.info(
        "Refund submitted",
        extra={
            "refund_id": str(refund.id),
            "order_id": str(order.id),
            "reference": refund.gateway_reference,
            "amount": str(refund.amount),
        },
    )
    return refund


def _cancel_unsendable(refund_id) -> Refund:
    """
    Captured without a gateway payment reference (e.g. a paid event that
    carried no payment id): nothing to refund against, settle by hand.
    """
    with transaction.atomic():
        refund = Refund.objects.select_for_update().get(id=refund_id)
        if refund.status != Refund.STATUS_PENDING:
            return refund
        refund.status = Refund.STATUS_CANCELLED
        refund.error_detail = "Order has no gateway payment reference; settle manually"
        refund.completed_at = timezone.now()
        refund.save(update_fields=["status", "error_detail", "completed_at", "updated_at"])

        audit_trail.record(
            order_id=refund.order_id,
            event_type=OrderAuditEntry.EventType.REFUND_FAILED,
            old_value=Refund.STATUS_PENDING,
            new_value=refund.status,
            metadata={
                "refund_id": str(refund.id),
                "amount": str(refund.amount),
                "review_required": True,
            },
        )

    logger.error(
        "Refund cancelled: order has no gateway payment reference",
        extra={"refund_id": str(refund.id), "order_id": str(refund.order_id)},
    )
    return refund


def _hold_for_webhook(refund_id, exc: PaymentGatewayError) -> Refund:
    """
    The gateway may have accepted the refund. Keep it in flight so it still
    counts against the refundable balance; the refund webhook settles it.
    """
    with transaction.atomic():
        refund = Refund.objects.select_for_update().get(id=refund_id)
        if refund.status == Refund.STATUS_PENDING:
            refund.status = Refund.STATUS_PROCESSING
            refund.error_detail = str(exc)[:2000]
            refund.save(update_fields=["status", "error_detail", "updated_at"])

    logger.warning(
        "Refund outcome unknown; awaiting gateway webhook",
        extra={
            "refund_id": str(refund.id),
            "order_id": str(refund.order_id),
            "error": str(exc),
            "status_code": exc.status_code,
        },
    )
    return refund


# ============================================================
# TERMINAL OUTCOMES (webhook side)
# ============================================================


def apply_refund_outcome(*, refund: Refund, succeeded: bool, detail: str = "") -> Refund:
    """
    Caller holds the refund row lock inside an atomic block.
    Returns the refund; no-op when it is already terminal.
    """
    if refund.status in Refund.TERMINAL_STATUSES:
        return refund

    order = Order.objects.select_for_update().get(id=refund.order_id)
    old_refund_status = refund.status

    refund.status = Refund.STATUS_SUCCEEDED if succeeded else Refund.STATUS_FAILED
    refund.completed_at = timezone.now()
    if succeeded:
        refund.error_detail = ""
    elif detail:
        refund.error_detail = detail[:2000]
    refund.save(update_fields=["status", "completed_at", "error_detail", "updated_at"])

    old_payment_status = order.payment_status
    if succeeded:
        total_refunded = refunded_amount(order)
        if total_refunded >= _money(order.total_amount):
            order.payment_status = Order.PAYMENT_STATUS_REFUNDED
        else:
            order.payment_status = Order.PAYMENT_STATUS_PARTIALLY_REFUNDED
        order.save(update_fields=["payment_status", "updated_at"])

    audit_trail.record(
        order_id=order.id,
        event_type=(
            OrderAuditEntry.EventType.REFUNDED
            if succeeded
            else OrderAuditEntry.EventType.REFUND_FAILED
        ),
        old_value=old_payment_status if succeeded else old_refund_status,
        new_value=order.payment_status if succeeded else refund.status,
        metadata={
            "refund_id": str(refund.id),
            "amount": str(refund.amount),
            "gateway_reference": refund.gateway_reference,
        },
    )

    outbox.enqueue(
        user_id=order.purchaser_id,
        notification_type=outbox.REFUND_UPDATED,
        payload={
            "order_id": str(order.id),
            "order_number": order.order_number,
            "refund_id": str(refund.id),
            "refund_status": refund.status,
            "amount": str(refund.amount),
        },
    )
    return refund


# ============================================================
# PURCHASER SELF-SERVICE
# ============================================================

ACTION_REFUND = "refund"
ACTION_CANCEL = "cancel"
ACTION_CONTACT_BUSINESS = "contact_business"


@dataclass(frozen=True)
class RefundEligibility:
    order_id: str
    eligible: bool
    reason: str
    payment_method: str
    order_status: str
    refundable_amount: Decimal = Decimal("0.00")
    penalty: Decimal = Decimal("0.00")
    can_cancel: bool = False
    requires_business: bool = False

    @property
    def actions(self) -> list:
        actions = []
        if self.eligible:
            actions.append(ACTION_REFUND)
        if self.can_cancel:
            actions.append(ACTION_CANCEL)
        if self.requires_business:
            actions.append(ACTION_CONTACT_BUSINESS)
        return actions


def _evaluate_for_purchaser(order: Order, now) -> RefundEligibility:
    base = {
        "order_id": str(order.id),
        "payment_method": order.payment_method,
        "order_status": order.status,
    }

    if order_lifecycle.is_terminal(order.status):
        return RefundEligibility(eligible=False, reason=f"Order is already '{order.status}'", **base)

    if order.status not in order_lifecycle.CANCELLABLE_STATES:
        return RefundEligibility(
            eligible=False,
            reason=f"Order is '{order.status}'; contact the business for a refund",
            requires_business=True,
            **base,
        )

    try:
        penalty = order_service.purchaser_cancellation_penalty(order, now)
    except CancellationNotAllowed as exc:
        return RefundEligibility(eligible=False, reason=str(exc), requires_business=True, **base)

    if not (order.is_online_payment and order.is_payment_captured):
        return RefundEligibility(
            eligible=False,
            reason="Nothing was paid online; the order can be cancelled instead",
            can_cancel=True,
            penalty=penalty,
            **base,
        )

    if Refund.objects.filter(order=order, status__in=Refund.IN_FLIGHT_STATUSES).exists():
        return RefundEligibility(eligible=False, reason="A refund is already in progress", **base)

    amount = refundable_balance(order) - penalty
    if amount <= Decimal("0.00"):
        return RefundEligibility(
            eligible=False,
            reason="Nothing left to refund after the cancellation penalty",
            can_cancel=True,
            penalty=penalty,
            **base,
        )

    return RefundEligibility(
        eligible=True,
        reason="",
        refundable_amount=_money(amount),
        penalty=penalty,
        **base,
    )


def refund_eligibility(*, order_id, viewer) -> RefundEligibility:
    """
    Whether the purchaser can get their money back themselves right now.
    A purchaser refund cancels the order (total - policy penalty); once the
    order can no longer be cancelled only the business can refund.
    """
    order = order_service.get_order(order_id)
    if not order_service.can_view_order(order=order, viewer=viewer):
        raise OrderAccessDenied("You may not view this order")

    if str(order.purchaser_id) != str(viewer.id):
        return RefundEligibility(
            order_id=str(order.id),
            eligible=False,
            reason="Only the purchaser can request a refund",
            payment_method=order.payment_method,
            order_status=order.status,
        )

    return _evaluate_for_purchaser(order, timezone.now())


def request_customer_refund(
    *,
    order_id,
    actor,
    reason: str = Refund.REASON_REQUESTED_BY_CUSTOMER,
    notes: str = "",
) -> tuple:
    """
    Purchaser asks for their money back. Returns (order, refund).

    Runs as a purchaser cancellation so stock, intents and penalty follow
    the cancellation rules (re-checked under the order lock).
    """
    _validate_reason(reason)

    eligibility = refund_eligibility(order_id=order_id, viewer=actor)
    if not eligibility.eligible:
        raise RefundNotAllowed(eligibility.reason)

    order = order_service.cancel_order(
        order_id=order_id,
        actor=actor,
        reason=(notes or "").strip() or reason,
    )
    refund = Refund.objects.filter(order=order).order_by("-created_at").first()

    logger.info(
        "Customer refund requested",
        extra={
            "order_id": str(order.id),
            "refund_id": str(refund.id) if refund is not None else None,
            "penalty": str(order.cancellation_penalty),
        },
    )
    return order, refund


def refunds_for_purchaser(user):
    return (
        Refund.objects.filter(order__purchaser_id=user.id)
        .select_related("order")
        .order_by("-created_at")
    )
