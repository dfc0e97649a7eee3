# payments/services/payment_verification.py

"""
CLIENT-RETURN PAYMENT VERIFICATION

When the customer comes back from the hosted checkout the client asks us to
check the active intent with PayMongo instead of waiting for the webhook.

- succeeded at the gateway -> same capture path as payment.paid
- anything else            -> reported, nothing written (failures stay
                              webhook-driven; the checkout may still be retried)

Safe to call repeatedly and concurrently with the webhook: whichever lands
second finds the payment already recorded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import transaction

from orders.models import Order
from orders.services import order_service
from orders.services.exceptions import OrderAccessDenied
from payments.models import PaymentIntent
from payments.services import intent_service, payment_capture, paymongo
from payments.services.exceptions import PaymentAmountMismatch, PaymentIntentNotAllowed

logger = logging.getLogger(__name__)

CLIENT_RETURN_ORIGIN = "client-return"

OUTCOME_CAPTURED = "captured"
OUTCOME_ALREADY_PAID = "already_paid"
OUTCOME_AWAITING_PAYMENT = "awaiting_payment"
OUTCOME_NOT_APPLIED = "not_applied"


@dataclass(frozen=True)
class VerificationResult:
    order_id: str
    outcome: str
    order_status: str
    payment_status: str
    gateway_status: str = ""
    note: str = ""


def _result(order: Order, outcome: str, **kwargs) -> VerificationResult:
    return VerificationResult(
        order_id=str(order.id),
        outcome=outcome,
        order_status=order.status,
        payment_status=order.payment_status,
        **kwargs,
    )


def verify_order_payment(*, order_id, viewer) -> VerificationResult:
    order = order_service.get_order(order_id)
    if not order_service.can_view_order(order=order, viewer=viewer):
        raise OrderAccessDenied("You may not verify this order's payment")

    if not order.is_online_payment:
        raise PaymentIntentNotAllowed("Order is not paid online")

    if order.is_payment_captured:
        return _result(order, OUTCOME_ALREADY_PAID)

    intent = intent_service.active_intent(order)
    if intent is None:
        return _result(order, OUTCOME_NOT_APPLIED, note="no checkout in progress")

    # network call outside any transaction
    gateway_intent = paymongo.retrieve_payment_intent(intent.gateway_reference)

    if gateway_intent.status != PaymentIntent.STATUS_SUCCEEDED:
        logger.info(
            "Payment not completed at gateway",
            extra={
                "order_id": str(order.id),
                "reference": intent.gateway_reference,
                "gateway_status": gateway_intent.status,
            },
        )
        return _result(order, OUTCOME_AWAITING_PAYMENT, gateway_status=gateway_intent.status)

    try:
        with transaction.atomic():
            order = Order.objects.select_for_update().get(id=order.id)
            intent = PaymentIntent.objects.select_for_update().get(id=intent.id)
            note = payment_capture.capture_payment(
                order=order,
                intent=intent,
                payment_id=gateway_intent.payment_id,
                amount_centavos=gateway_intent.amount_centavos,
                origin=CLIENT_RETURN_ORIGIN,
                metadata={
                    "verification_source": CLIENT_RETURN_ORIGIN,
                    "reference": intent.gateway_reference,
                },
            )
    except PaymentAmountMismatch:
        logger.error(
            "Verified payment amount does not match intent",
            extra={
                "order_id": str(order.id),
                "reference": intent.gateway_reference,
                "amount_centavos": gateway_intent.amount_centavos,
            },
        )
        raise

    if note == payment_capture.ALREADY_RECORDED:
        return _result(order, OUTCOME_ALREADY_PAID, gateway_status=gateway_intent.status)
    if note:
        return _result(order, OUTCOME_NOT_APPLIED, gateway_status=gateway_intent.status, note=note)
    return _result(order, OUTCOME_CAPTURED, gateway_status=gateway_intent.status)
