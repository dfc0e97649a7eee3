# payments/services/intent_service.py

"""
PAYMENT INTENT SERVICE

Owns the PaymentIntent rows of an order:
- create_intent_for_order(): supersede -> gateway call -> store active intent
- deactivate_active_intents(): used by cancellation / abandonment / failure

The gateway call runs OUTSIDE any transaction so the order row is never
locked while waiting on the network. A gateway failure leaves the order
pending with no active intent; the caller may retry.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from orders.models import Order
from orders.services.exceptions import OrderNotFound
from payments.models import PaymentIntent
from payments.services import paymongo
from payments.services.exceptions import PaymentGatewayError, PaymentIntentNotAllowed

logger = logging.getLogger(__name__)


def _intent_expiry_hours() -> int:
    cfg = (getattr(settings, "PAYMENTS", {}) or {}).get("PAYMONGO") or {}
    return int(cfg.get("INTENT_EXPIRY_HOURS") or 24)


def _lock_order(order_id) -> Order:
    try:
        return Order.objects.select_for_update().get(id=order_id)
    except Order.DoesNotExist:
        raise OrderNotFound(f"Order {order_id} not found")


def _ensure_payable(order: Order) -> None:
    if not order.is_online_payment:
        raise PaymentIntentNotAllowed("Order is not paid online")
    if order.status != Order.STATUS_PENDING:
        raise PaymentIntentNotAllowed(f"Order is '{order.status}', not pending")
    if order.payment_status != Order.PAYMENT_STATUS_PENDING:
        raise PaymentIntentNotAllowed(f"Order payment is already '{order.payment_status}'")


def active_intent(order) -> PaymentIntent | None:
    return PaymentIntent.objects.filter(order=order, is_active=True).first()


def deactivate_active_intents(*, order, final_status: str) -> int:
    """
    Close every active intent of `order`. Succeeded intents keep their
    status (only the active flag drops). Returns the number closed.
    """
    now = timezone.now()
    active = PaymentIntent.objects.filter(order=order, is_active=True)

    closed = active.exclude(status=PaymentIntent.STATUS_SUCCEEDED).update(
        is_active=False, status=final_status, updated_at=now
    )
    closed += active.update(is_active=False, updated_at=now)
    return closed


def create_intent_for_order(order, *, use_checkout: bool = True) -> PaymentIntent:
    # 1) supersede whatever was active before
    with transaction.atomic():
        locked = _lock_order(order.id)
        _ensure_payable(locked)
        superseded = deactivate_active_intents(
            order=locked, final_status=PaymentIntent.STATUS_CANCELLED
        )

    if superseded:
        logger.info(
            "Superseded previous payment intent",
            extra={"order_id": str(order.id), "superseded": superseded},
        )

    # 2) gateway (never retried: outcome of a timed-out write is unknown)
    try:
        gateway_intent = paymongo.create_payment_intent(locked, use_checkout=use_checkout)
    except PaymentGatewayError as exc:
        logger.error(
            "Payment intent creation failed",
            extra={
                "order_id": str(order.id),
                "error": str(exc),
                "status_code": exc.status_code,
            },
        )
        raise

    # 3) store; the order may have moved on while we were waiting
    with transaction.atomic():
        locked = _lock_order(order.id)

        still_payable = True
        try:
            _ensure_payable(locked)
        except PaymentIntentNotAllowed:
            still_payable = False

        if still_payable:
            deactivate_active_intents(order=locked, final_status=PaymentIntent.STATUS_CANCELLED)

        intent = PaymentIntent.objects.create(
            order=locked,
            kind=gateway_intent.kind,
            gateway_reference=gateway_intent.reference,
            payment_intent_ref=gateway_intent.payment_intent_ref,
            amount=paymongo.from_centavos(gateway_intent.amount_centavos)
            if gateway_intent.amount_centavos
            else Decimal(locked.total_amount),
            status=gateway_intent.status if still_payable else PaymentIntent.STATUS_CANCELLED,
            is_active=still_payable,
            checkout_url=gateway_intent.checkout_url,
            client_key=gateway_intent.client_key,
            gateway_payload=gateway_intent.raw,
            expires_at=timezone.now() + timedelta(hours=_intent_expiry_hours()),
        )

    if not still_payable:
        logger.warning(
            "Order changed while creating payment intent; intent stored inactive",
            extra={"order_id": str(order.id), "reference": intent.gateway_reference},
        )
        raise PaymentIntentNotAllowed(f"Order is '{locked.status}', not pending")

    logger.info(
        "Payment intent created",
        extra={
            "order_id": str(order.id),
            "reference": intent.gateway_reference,
            "kind": intent.kind,
            "amount": str(intent.amount),
        },
    )
    return intent
