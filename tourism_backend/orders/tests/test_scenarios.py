# orders/tests/test_scenarios.py

"""
End-to-end lifecycle walkthroughs: checkout, duplicate webhook delivery,
abandonment, refund limits, and cancellation without a deadline.
"""

from __future__ import annotations

from decimal import Decimal
from unittest import mock

from django.test import TestCase

from audit.models import OrderAuditEntry
from orders.models import Order
from orders.services import order_service
from orders.tests.helpers import (
    age_order,
    attach_intent,
    make_business,
    make_owner,
    make_product,
    make_user,
    mark_paid,
    payment_event,
    place_order,
    signed,
)
from payments.models import Refund
from payments.services import refund_coordinator, webhook_reconciler
from payments.services.abandonment_sweeper import run_sweep
from payments.services.exceptions import RefundAmountExceeded
from products.models import Product


class CheckoutScenarioTests(TestCase):
    """
    GUARANTEES:
    - 2 of 5 units ordered -> 3 left, order pending
    - duplicate payment webhook captures once, audited once
    - an unpaid order past the threshold is abandoned and its units restored
    """

    def setUp(self):
        self.business = make_business()
        self.owner = make_owner(self.business)
        self.tourist = make_user()
        self.bag = make_product(self.business, price="250.00", stock=5)

    def _stock(self):
        return Product.objects.get(id=self.bag.id).current_stock

    def _online_order(self):
        return place_order(
            self.tourist,
            self.business,
            [(self.bag, 2)],
            payment_method=Order.PAYMENT_METHOD_PAYMONGO,
        )

    def test_order_reserves_stock(self):
        order = self._online_order()

        self.assertEqual(self._stock(), 3)
        self.assertEqual(order.status, Order.STATUS_PENDING)

    def test_duplicate_payment_webhook_captures_once(self):
        order = self._online_order()
        intent = attach_intent(order)
        raw, header = signed(payment_event("payment.paid", intent, event_id="evt_dup_1"))

        first = webhook_reconciler.handle(raw, header)
        second = webhook_reconciler.handle(raw, header)

        self.assertEqual(first.status, webhook_reconciler.OUTCOME_PROCESSED)
        self.assertEqual(second.status, webhook_reconciler.OUTCOME_DUPLICATE)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_ACCEPTED)
        self.assertEqual(order.payment_status, Order.PAYMENT_STATUS_PAID)
        self.assertEqual(self._stock(), 3)
        self.assertEqual(
            OrderAuditEntry.objects.filter(
                order_id=order.id, event_type=OrderAuditEntry.EventType.PAYMENT_UPDATED
            ).count(),
            1,
        )

    def test_abandoned_order_restores_stock(self):
        order = self._online_order()
        attach_intent(order)
        age_order(order, minutes=31)

        result = run_sweep()

        self.assertEqual(result.orders_abandoned, 1)
        self.assertEqual(result.stock_units_released, 2)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_CANCELLED_BY_USER)
        self.assertEqual(order.cancellation_reason, order_service.ABANDONED_REASON)
        self.assertEqual(self._stock(), 5)


class RefundLimitScenarioTests(TestCase):
    """
    GUARANTEES:
    - refunds never exceed total minus what was already refunded
    """

    def setUp(self):
        self.business = make_business()
        self.owner = make_owner(self.business)
        self.tourist = make_user()
        bag = make_product(self.business, price="500.00", stock=5)
        self.order = mark_paid(
            place_order(
                self.tourist,
                self.business,
                [(bag, 1)],
                payment_method=Order.PAYMENT_METHOD_PAYMONGO,
            )
        )
        Refund.objects.create(
            order=self.order,
            amount=Decimal("250.00"),
            status=Refund.STATUS_SUCCEEDED,
            gateway_reference="ref_prior",
        )

    def test_refund_beyond_remaining_balance_rejected(self):
        self.assertEqual(refund_coordinator.refundable_balance(self.order), Decimal("250.00"))

        with mock.patch("payments.services.paymongo.create_refund") as create_refund:
            with self.assertRaises(RefundAmountExceeded):
                refund_coordinator.request_refund(
                    order_id=self.order.id, amount="300.00", actor=self.owner
                )

        create_refund.assert_not_called()
        self.assertEqual(Refund.objects.filter(order=self.order).count(), 1)


class NoDeadlineCancellationScenarioTests(TestCase):
    """
    GUARANTEES:
    - past the grace window, a business without a deadline still lets
      the purchaser cancel for free
    """

    def test_cancel_after_grace_without_deadline(self):
        business = make_business(
            policy={"deadline_hours": None, "allow_customer_cancellation": True}
        )
        tourist = make_user()
        bag = make_product(business, stock=5)
        order = place_order(tourist, business, [(bag, 2)])
        age_order(order, seconds=11)

        cancelled = order_service.cancel_order(order_id=order.id, actor=tourist)

        self.assertEqual(cancelled.status, Order.STATUS_CANCELLED_BY_USER)
        self.assertEqual(cancelled.cancellation_penalty, Decimal("0.00"))
        self.assertEqual(Product.objects.get(id=bag.id).current_stock, 5)
