# orders/tests/helpers.py

"""
Shared fixtures for the lifecycle tests (orders, payments, audit).
"""

from __future__ import annotations

import json
import time
import uuid
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from businesses.models import Business, CancellationPolicy
from orders.models import Order
from orders.services import order_service
from payments.models import PaymentIntent
from payments.services.paymongo import sign_webhook_payload
from products.models import Product
from users.models import ROLE_ADMIN, ROLE_BUSINESS_OWNER, ROLE_STAFF, ROLE_TOURIST

User = get_user_model()


def make_business(name="Island Crafts", *, policy: dict | None = None) -> Business:
    business = Business.objects.create(name=name)
    if policy is not None:
        CancellationPolicy.objects.create(business=business, **policy)
    return business


def make_user(role=ROLE_TOURIST, *, business=None, email=None):
    email = email or f"{role}-{uuid.uuid4().hex[:8]}@example.com"
    return User.objects.create_user(
        email=email,
        password="password123",
        role=role,
        business=business,
    )


def make_owner(business):
    return make_user(ROLE_BUSINESS_OWNER, business=business)


def make_staff(business):
    return make_user(ROLE_STAFF, business=business)


def make_admin():
    return make_user(ROLE_ADMIN)


def make_product(business, *, name="Woven Bag", price="250.00", stock=5) -> Product:
    return Product.objects.create(
        business=business,
        name=name,
        price=Decimal(price),
        current_stock=stock,
        is_available=True,
    )


def place_order(
    purchaser,
    business,
    lines,
    *,
    payment_method=Order.PAYMENT_METHOD_CASH_ON_PICKUP,
    pickup_in=timedelta(days=2),
    **kwargs,
) -> Order:
    """lines: [(product, qty), ...]"""
    return order_service.create_order(
        purchaser=purchaser,
        business_id=business.id,
        items=[{"product_id": p.id, "quantity": q} for p, q in lines],
        pickup_at=timezone.now() + pickup_in,
        payment_method=payment_method,
        **kwargs,
    )


def age_order(order, *, seconds=0, minutes=0) -> Order:
    Order.objects.filter(id=order.id).update(
        created_at=timezone.now() - timedelta(seconds=seconds, minutes=minutes)
    )
    order.refresh_from_db()
    return order


def attach_intent(order, *, reference=None, pi_ref=None, expires_in=timedelta(hours=24)) -> PaymentIntent:
    reference = reference or f"cs_{uuid.uuid4().hex[:16]}"
    return PaymentIntent.objects.create(
        order=order,
        kind=PaymentIntent.KIND_CHECKOUT_SESSION,
        gateway_reference=reference,
        payment_intent_ref=pi_ref or f"pi_{uuid.uuid4().hex[:16]}",
        amount=order.total_amount,
        checkout_url=f"https://checkout.paymongo.com/{reference}",
        expires_at=timezone.now() + expires_in,
    )


def mark_paid(order, *, payment_id="pay_test_1") -> Order:
    Order.objects.filter(id=order.id).update(
        status=Order.STATUS_ACCEPTED,
        payment_status=Order.PAYMENT_STATUS_PAID,
        gateway_payment_id=payment_id,
        paid_at=timezone.now(),
    )
    order.refresh_from_db()
    return order


# ------------------------------------------------------------
# PayMongo webhook payloads
# ------------------------------------------------------------


def payment_event(event_type, intent, *, amount=None, event_id=None, payment_id="pay_test_1", metadata=None) -> dict:
    centavos = int(Decimal(intent.amount) * 100) if amount is None else amount
    return {
        "data": {
            "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
            "type": "event",
            "attributes": {
                "type": event_type,
                "livemode": False,
                "data": {
                    "id": payment_id,
                    "type": "payment",
                    "attributes": {
                        "amount": centavos,
                        "currency": "PHP",
                        "status": "paid" if event_type == "payment.paid" else "failed",
                        "payment_intent_id": intent.payment_intent_ref,
                        "metadata": metadata if metadata is not None else {"order_id": str(intent.order_id)},
                        "failed_message": "" if event_type == "payment.paid" else "Card declined",
                    },
                },
            },
        }
    }


def refund_event(event_type, refund, *, status=None, event_id=None) -> dict:
    return {
        "data": {
            "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
            "type": "event",
            "attributes": {
                "type": event_type,
                "livemode": False,
                "data": {
                    "id": refund.gateway_reference or f"ref_{uuid.uuid4().hex[:12]}",
                    "type": "refund",
                    "attributes": {
                        "amount": int(Decimal(refund.amount) * 100),
                        "payment_id": refund.order.gateway_payment_id,
                        "status": status or event_type.split(".")[-1],
                        "metadata": {"refund_id": str(refund.id), "order_id": str(refund.order_id)},
                    },
                },
            },
        }
    }


def signed(payload: dict) -> tuple:
    """Returns (raw_body, signature_header)."""
    raw = json.dumps(payload).encode("utf-8")
    return raw, sign_webhook_payload(raw_body=raw, timestamp=int(time.time()))
