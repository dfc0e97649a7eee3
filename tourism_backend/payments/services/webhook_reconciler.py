# payments/services/webhook_reconciler.py

"""
======================================================
PATH: payments/services/webhook_reconciler.py
======================================================
WEBHOOK RECONCILER

Flow for one delivery:
1) signature check (before anything is read or written)
2) read envelope (event id + type) -> WebhookEvent get_or_create (idempotency key)
3) under the event row lock: parse the resource (bad fields -> failed),
   apply the mapped transition, mark processed

Outcomes:
- processed   transition applied (or benign race / unknown type, with a note)
- duplicate   event already processed, nothing touched
- failed      authentic but inapplicable (unknown order, amount mismatch, ...);
              stored with error_detail, retried on redelivery
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from audit.models import OrderAuditEntry
from audit.services import audit_trail
from notifications.services import outbox
from orders.models import Order
from orders.services import order_lifecycle
from payments.models import PaymentIntent, Refund, WebhookEvent
from payments.services import payment_capture, paymongo, refund_coordinator
from payments.services.exceptions import (
    PaymentAmountMismatch,
    WebhookDataError,
    WebhookSignatureError,
)
from payments.services.webhook_events import (
    PAYMENT_PAID_TYPES,
    ParsedEvent,
    WebhookEventType,
    parse_event,
    read_envelope,
)
from products.services import stock_ledger

logger = logging.getLogger(__name__)

OUTCOME_PROCESSED = "processed"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_FAILED = "failed"

WEBHOOK_ORIGIN = "paymongo-webhook"


@dataclass(frozen=True)
class WebhookOutcome:
    event_id: str
    event_type: str
    status: str
    note: str = ""
    error: str = ""
    order_id: Optional[str] = None


class _BenignRace(Exception):
    """Authentic event that no longer applies to the current state."""


# ============================================================
# ENTRY POINT
# ============================================================


def handle(raw_body: bytes, signature_header: Optional[str]) -> WebhookOutcome:
    if not paymongo.verify_webhook_signature(raw_body=raw_body, signature_header=signature_header):
        raise WebhookSignatureError("Invalid webhook signature")

    try:
        payload = json.loads((raw_body or b"").decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise WebhookDataError("Webhook body is not valid JSON") from exc

    event_id, raw_type = read_envelope(payload)

    event, _created = WebhookEvent.objects.get_or_create(
        event_id=event_id,
        defaults={"event_type": raw_type or WebhookEventType.UNKNOWN.value, "payload": payload},
    )
    if event.status == WebhookEvent.STATUS_PROCESSED:
        logger.info("Duplicate webhook ignored", extra={"event_id": event_id})
        return WebhookOutcome(event_id, raw_type, OUTCOME_DUPLICATE, note=event.note)

    with transaction.atomic():
        event = WebhookEvent.objects.select_for_update().get(id=event.id)

        # concurrent delivery finished first
        if event.status == WebhookEvent.STATUS_PROCESSED:
            return WebhookOutcome(event_id, raw_type, OUTCOME_DUPLICATE, note=event.note)

        event.attempts += 1
        event.payload = payload
        order_id = None
        note = ""

        try:
            with transaction.atomic():
                order_id, note = _apply(parse_event(payload))
        except WebhookDataError as exc:
            event.status = WebhookEvent.STATUS_FAILED
            event.error_detail = str(exc)[:2000]
            event.save(update_fields=["status", "error_detail", "attempts", "payload"])

            logger.error(
                "Webhook event could not be applied",
                extra={
                    "event_id": event_id,
                    "event_type": raw_type,
                    "error": event.error_detail,
                },
            )
            return WebhookOutcome(event_id, raw_type, OUTCOME_FAILED, error=event.error_detail)

        event.status = WebhookEvent.STATUS_PROCESSED
        event.error_detail = ""
        event.note = note
        event.processed_at = timezone.now()
        event.save(
            update_fields=["status", "error_detail", "note", "processed_at", "attempts", "payload"]
        )

    logger.info(
        "Webhook processed",
        extra={
            "event_id": event_id,
            "event_type": raw_type,
            "order_id": order_id,
            "note": note,
        },
    )
    return WebhookOutcome(event_id, raw_type, OUTCOME_PROCESSED, note=note, order_id=order_id)


def _apply(parsed: ParsedEvent) -> tuple:
    """
    Returns (order_id, note). Raises WebhookDataError for integrity faults.
    """
    if parsed.type in PAYMENT_PAID_TYPES:
        handler = _apply_payment_paid
    elif parsed.type == WebhookEventType.PAYMENT_FAILED:
        handler = _apply_payment_failed
    elif parsed.type in (
        WebhookEventType.REFUND_SUCCEEDED,
        WebhookEventType.REFUND_FAILED,
        WebhookEventType.REFUND_UPDATED,
    ):
        handler = _apply_refund
    else:
        logger.info("Unhandled webhook event type", extra={"event_type": parsed.raw_type})
        return None, "unhandled event type"

    try:
        return handler(parsed), ""
    except _BenignRace as race:
        order_id, note = race.args
        logger.warning(
            "Webhook event no longer applies",
            extra={"event_id": parsed.event_id, "order_id": order_id, "note": note},
        )
        return order_id, note


# ============================================================
# LOOKUPS
# ============================================================


def _find_intent(parsed: ParsedEvent) -> PaymentIntent:
    refs = {r for r in (parsed.payment_intent_ref, parsed.resource_id) if r}
    if not refs:
        raise WebhookDataError("Payment event carries no payment intent reference")

    intent = (
        PaymentIntent.objects.filter(Q(gateway_reference__in=refs) | Q(payment_intent_ref__in=refs))
        .order_by("-is_active", "-created_at")
        .first()
    )
    if intent is None:
        raise WebhookDataError(f"No payment intent matches {sorted(refs)}")

    if parsed.order_id and parsed.order_id != str(intent.order_id):
        raise WebhookDataError(
            f"Event order {parsed.order_id} does not own intent {intent.gateway_reference}"
        )
    return intent


def _lock_order(order_id) -> Order:
    try:
        return Order.objects.select_for_update().get(id=order_id)
    except Order.DoesNotExist:
        raise WebhookDataError(f"Order {order_id} not found")


# ============================================================
# PAYMENT PAID
# ============================================================


def _apply_payment_paid(parsed: ParsedEvent) -> str:
    intent = _find_intent(parsed)
    order = _lock_order(intent.order_id)
    intent = PaymentIntent.objects.select_for_update().get(id=intent.id)
    order_id = str(order.id)

    try:
        note = payment_capture.capture_payment(
            order=order,
            intent=intent,
            payment_id=parsed.payment_id,
            amount_centavos=parsed.amount_centavos,
            origin=WEBHOOK_ORIGIN,
            metadata={"event_id": parsed.event_id, "event_type": parsed.raw_type},
        )
    except PaymentAmountMismatch as exc:
        raise WebhookDataError(str(exc)) from exc

    if note:
        raise _BenignRace(order_id, note)
    return order_id


# ============================================================
# PAYMENT FAILED
# ============================================================


def _apply_payment_failed(parsed: ParsedEvent) -> str:
    intent = _find_intent(parsed)
    order = _lock_order(intent.order_id)
    intent = PaymentIntent.objects.select_for_update().get(id=intent.id)
    order_id = str(order.id)

    if order.is_payment_captured:
        raise _BenignRace(order_id, "payment failure after capture ignored")

    if not intent.is_active:
        # an older attempt failed; the customer has moved on to a newer one
        raise _BenignRace(order_id, f"superseded intent {intent.gateway_reference} failed")

    if not order_lifecycle.can_transition(
        from_status=order.status, to_status=Order.STATUS_FAILED_PAYMENT
    ):
        raise _BenignRace(order_id, f"payment failure while order is '{order.status}'")

    old_status = order.status
    units = stock_ledger.release(order_id=order.id)

    order.status = Order.STATUS_FAILED_PAYMENT
    order.payment_status = Order.PAYMENT_STATUS_FAILED
    order.save(update_fields=["status", "payment_status", "updated_at"])

    intent.status = PaymentIntent.STATUS_FAILED
    intent.is_active = False
    intent.save(update_fields=["status", "is_active", "updated_at"])

    audit_trail.record(
        order_id=order.id,
        event_type=OrderAuditEntry.EventType.PAYMENT_UPDATED,
        old_value=old_status,
        new_value=order.status,
        origin=WEBHOOK_ORIGIN,
        metadata={
            "event_id": parsed.event_id,
            "event_type": parsed.raw_type,
            "intent": intent.gateway_reference,
            "failure": parsed.failure_message,
            "stock_units_released": units,
        },
    )

    outbox.enqueue(
        user_id=order.purchaser_id,
        notification_type=outbox.PAYMENT_FAILED,
        payload={
            "order_id": order_id,
            "order_number": order.order_number,
            "status": order.status,
            "reason": parsed.failure_message,
        },
    )
    return order_id


# ============================================================
# REFUNDS
# ============================================================


def _find_refund(parsed: ParsedEvent) -> Refund:
    refund = None
    if parsed.resource_id:
        refund = Refund.objects.filter(gateway_reference=parsed.resource_id).first()
    if refund is None and parsed.refund_id:
        try:
            refund = Refund.objects.filter(id=parsed.refund_id).first()
        except (ValueError, ValidationError):
            refund = None
    if refund is None:
        raise WebhookDataError(f"No refund matches {parsed.resource_id or parsed.refund_id!r}")
    return refund


def _refund_outcome(parsed: ParsedEvent) -> Optional[bool]:
    if parsed.type == WebhookEventType.REFUND_SUCCEEDED:
        return True
    if parsed.type == WebhookEventType.REFUND_FAILED:
        return False

    status = parsed.resource_status.strip().lower()
    if status == "succeeded":
        return True
    if status == "failed":
        return False
    return None


def _apply_refund(parsed: ParsedEvent) -> str:
    refund = _find_refund(parsed)
    # order before refund, same lock order as cancellation
    _lock_order(refund.order_id)
    refund = Refund.objects.select_for_update().get(id=refund.id)
    order_id = str(refund.order_id)

    if refund.status in Refund.TERMINAL_STATUSES:
        raise _BenignRace(order_id, f"refund already '{refund.status}'")

    if not refund.gateway_reference and parsed.resource_id:
        refund.gateway_reference = parsed.resource_id
        refund.save(update_fields=["gateway_reference", "updated_at"])

    succeeded = _refund_outcome(parsed)
    if succeeded is None:
        raise _BenignRace(order_id, f"refund still '{parsed.resource_status or 'pending'}'")

    refund_coordinator.apply_refund_outcome(
        refund=refund,
        succeeded=succeeded,
        detail=parsed.failure_message,
    )
    return order_id
