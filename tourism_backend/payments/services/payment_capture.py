# payments/services/payment_capture.py

"""
PAYMENT CAPTURE

One path for "the gateway says this intent was paid", shared by the
webhook reconciler and the client-return verification.

Caller holds the order row lock, then the intent row lock, inside an
atomic block.
"""

from __future__ import annotations

import logging

from django.contrib.auth import get_user_model
from django.utils import timezone

from audit.models import OrderAuditEntry
from audit.services import audit_trail
from notifications.services import outbox
from orders.models import Order
from orders.services import order_lifecycle
from payments.models import PaymentIntent
from payments.services import intent_service, paymongo
from payments.services.exceptions import PaymentAmountMismatch
from products.services import stock_ledger
from users.models import ROLE_BUSINESS_OWNER

logger = logging.getLogger(__name__)

CAPTURABLE_STATUSES = (Order.STATUS_PENDING, Order.STATUS_ACCEPTED)
ALREADY_RECORDED = "payment already recorded"


def capture_payment(
    *,
    order: Order,
    intent: PaymentIntent,
    payment_id: str,
    amount_centavos,
    origin: str,
    metadata: dict | None = None,
) -> str:
    """
    Record a captured payment for `intent`.

    Returns "" when the payment was applied, otherwise a note saying why it
    no longer applies (already paid, order closed). Raises
    PaymentAmountMismatch when the amount differs from the intent.
    """
    metadata = dict(metadata or {})

    expected = paymongo.to_centavos(intent.amount)
    if amount_centavos is None or amount_centavos != expected:
        raise PaymentAmountMismatch(
            f"Amount mismatch for order {order.order_number}: "
            f"paid={amount_centavos} expected={expected}"
        )

    if order.is_payment_captured:
        return ALREADY_RECORDED

    if order.status not in CAPTURABLE_STATUSES:
        # money captured for an order that is already closed: needs a human
        logger.warning(
            "Payment received for an order in terminal state; operator review required",
            extra={"order_id": str(order.id), "status": order.status, "payment_id": payment_id},
        )
        audit_trail.record(
            order_id=order.id,
            event_type=OrderAuditEntry.EventType.PAYMENT_WEBHOOK,
            old_value=order.payment_status,
            new_value=order.payment_status,
            origin=origin,
            metadata={
                **metadata,
                "payment_id": payment_id,
                "amount_centavos": amount_centavos,
                "order_status": order.status,
                "review_required": True,
            },
        )
        return f"payment received while order is '{order.status}'"

    old_status = order.status
    old_payment_status = order.payment_status

    if order.status == Order.STATUS_PENDING:
        order_lifecycle.validate_transition(order=order, target_status=Order.STATUS_ACCEPTED)
        order.status = Order.STATUS_ACCEPTED

    stock_ledger.commit(order_id=order.id)

    order.payment_status = Order.PAYMENT_STATUS_PAID
    order.paid_at = timezone.now()
    order.gateway_payment_id = payment_id or order.gateway_payment_id
    order.save(
        update_fields=["status", "payment_status", "paid_at", "gateway_payment_id", "updated_at"]
    )

    intent.status = PaymentIntent.STATUS_SUCCEEDED
    intent.is_active = False
    intent.save(update_fields=["status", "is_active", "updated_at"])

    # paid through an older attempt: close the newer checkout as well
    superseded = intent_service.deactivate_active_intents(
        order=order, final_status=PaymentIntent.STATUS_CANCELLED
    )

    audit_trail.record(
        order_id=order.id,
        event_type=OrderAuditEntry.EventType.PAYMENT_UPDATED,
        old_value=old_payment_status,
        new_value=order.payment_status,
        origin=origin,
        metadata={
            **metadata,
            "payment_id": order.gateway_payment_id,
            "intent": intent.gateway_reference,
            "intents_closed": superseded,
            "status_from": old_status,
            "status_to": order.status,
        },
    )

    payload = {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "status": order.status,
        "payment_status": order.payment_status,
        "amount": str(order.total_amount),
    }
    outbox.enqueue(
        user_id=order.purchaser_id,
        notification_type=outbox.PAYMENT_RECEIVED,
        payload=payload,
    )
    for user_id in _business_owner_ids(order):
        outbox.enqueue(user_id=user_id, notification_type=outbox.PAYMENT_RECEIVED, payload=payload)

    logger.info(
        "Payment captured",
        extra={
            "order_id": str(order.id),
            "payment_id": order.gateway_payment_id,
            "origin": origin,
        },
    )
    return ""


def _business_owner_ids(order) -> list:
    return list(
        get_user_model()
        .objects.filter(business_id=order.business_id, role=ROLE_BUSINESS_OWNER, is_active=True)
        .values_list("id", flat=True)
    )
