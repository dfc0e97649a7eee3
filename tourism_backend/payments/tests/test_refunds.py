# payments/tests/test_refunds.py

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from audit.models import OrderAuditEntry
from orders.models import Order
from orders.services import order_service
from orders.services.exceptions import OrderAccessDenied
from orders.tests.helpers import (
    age_order,
    make_business,
    make_owner,
    make_product,
    make_user,
    mark_paid,
    place_order,
    refund_event,
    signed,
)
from payments.models import Refund
from payments.services import refund_coordinator, webhook_reconciler
from payments.services.exceptions import (
    PaymentGatewayError,
    PaymentGatewayTimeout,
    RefundAmountExceeded,
    RefundError,
    RefundNotAllowed,
)
from payments.services.paymongo import GatewayRefund
from products.models import Product


def _gateway_refund(reference="ref_1", amount=10000):
    return GatewayRefund(reference=reference, status="pending", amount_centavos=amount)


class RefundCoordinatorTests(TestCase):
    """
    GUARANTEES:
    - sum of succeeded + in-flight refunds never exceeds total_amount
    - a 4xx rejection marks the refund failed and audits it
    - a timeout or 5xx keeps the refund in flight until the webhook settles it
    - a submitted refund waits in processing for the webhook
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

    def _request(self, amount, **kwargs):
        kwargs.setdefault("actor", self.owner)
        return refund_coordinator.request_refund(order_id=self.order.id, amount=amount, **kwargs)

    def test_refund_submitted_and_processing(self):
        with mock.patch(
            "payments.services.paymongo.create_refund", return_value=_gateway_refund()
        ) as create_refund:
            refund = self._request("100.00", notes="damaged item")

        self.assertEqual(refund.status, Refund.STATUS_PROCESSING)
        self.assertEqual(refund.gateway_reference, "ref_1")
        self.assertEqual(refund.requested_by, self.owner)

        kwargs = create_refund.call_args.kwargs
        self.assertEqual(kwargs["payment_id"], "pay_test_1")
        self.assertEqual(kwargs["amount"], Decimal("100.00"))
        self.assertEqual(kwargs["metadata"]["refund_id"], str(refund.id))

        self.assertTrue(
            OrderAuditEntry.objects.filter(
                order_id=self.order.id, event_type=OrderAuditEntry.EventType.REFUND_REQUESTED
            ).exists()
        )
        # payment status moves only on the gateway's confirmation
        self.assertEqual(Order.objects.get(id=self.order.id).payment_status, Order.PAYMENT_STATUS_PAID)

    def test_in_flight_refunds_count_against_balance(self):
        Refund.objects.create(order=self.order, amount=Decimal("400.00"), status=Refund.STATUS_PROCESSING)

        self.assertEqual(refund_coordinator.refundable_balance(self.order), Decimal("100.00"))
        with self.assertRaises(RefundAmountExceeded):
            self._request("100.01")

    def test_failed_refunds_free_the_balance(self):
        Refund.objects.create(order=self.order, amount=Decimal("400.00"), status=Refund.STATUS_FAILED)
        self.assertEqual(refund_coordinator.refundable_balance(self.order), Decimal("500.00"))

    def test_gateway_rejection_marks_failed(self):
        with mock.patch(
            "payments.services.paymongo.create_refund",
            side_effect=PaymentGatewayError("PayMongo HTTPError: 400 already refunded", status_code=400),
        ):
            with self.assertRaises(PaymentGatewayError):
                self._request("50.00")

        refund = Refund.objects.get(order=self.order)
        self.assertEqual(refund.status, Refund.STATUS_FAILED)
        self.assertIn("already refunded", refund.error_detail)
        self.assertIsNotNone(refund.completed_at)
        self.assertTrue(
            OrderAuditEntry.objects.filter(
                order_id=self.order.id, event_type=OrderAuditEntry.EventType.REFUND_FAILED
            ).exists()
        )

    def test_timeout_keeps_refund_in_flight(self):
        with mock.patch(
            "payments.services.paymongo.create_refund",
            side_effect=PaymentGatewayTimeout("PayMongo timed out after 15s"),
        ):
            refund = self._request("500.00")

        self.assertEqual(refund.status, Refund.STATUS_PROCESSING)
        self.assertIsNone(refund.completed_at)
        self.assertIn("timed out", refund.error_detail)
        self.assertEqual(refund_coordinator.refundable_balance(self.order), Decimal("0.00"))
        self.assertFalse(
            OrderAuditEntry.objects.filter(
                order_id=self.order.id, event_type=OrderAuditEntry.EventType.REFUND_FAILED
            ).exists()
        )

        with self.assertRaises(RefundAmountExceeded):
            self._request("500.00")

    def test_timed_out_refund_settled_by_webhook(self):
        with mock.patch(
            "payments.services.paymongo.create_refund",
            side_effect=PaymentGatewayTimeout("PayMongo timed out after 15s"),
        ):
            refund = self._request("500.00")

        outcome = webhook_reconciler.handle(*signed(refund_event("refund.succeeded", refund)))

        self.assertEqual(outcome.status, webhook_reconciler.OUTCOME_PROCESSED)
        refund.refresh_from_db()
        self.assertEqual(refund.status, Refund.STATUS_SUCCEEDED)
        self.assertEqual(refund.error_detail, "")
        self.assertEqual(
            Order.objects.get(id=self.order.id).payment_status, Order.PAYMENT_STATUS_REFUNDED
        )

        with mock.patch("payments.services.paymongo.create_refund") as create_refund:
            with self.assertRaises(RefundAmountExceeded):
                self._request("500.00")
        create_refund.assert_not_called()

    def test_server_error_keeps_refund_in_flight(self):
        with mock.patch(
            "payments.services.paymongo.create_refund",
            side_effect=PaymentGatewayError("PayMongo HTTPError: 502 bad gateway", status_code=502),
        ):
            refund = self._request("100.00")

        self.assertEqual(refund.status, Refund.STATUS_PROCESSING)
        self.assertEqual(refund_coordinator.refundable_balance(self.order), Decimal("400.00"))

    def test_invalid_amounts(self):
        for amount in ("0", "-5", "abc"):
            with self.subTest(amount=amount):
                with self.assertRaises(RefundError):
                    self._request(amount)

    def test_invalid_reason(self):
        with self.assertRaises(RefundError):
            self._request("10.00", reason="because")

    def test_purchaser_cannot_refund(self):
        with self.assertRaises(OrderAccessDenied):
            self._request("10.00", actor=self.tourist)

    def test_unpaid_order_cannot_be_refunded(self):
        unpaid = place_order(
            self.tourist,
            self.business,
            [(make_product(self.business), 1)],
            payment_method=Order.PAYMENT_METHOD_PAYMONGO,
        )
        with self.assertRaises(RefundNotAllowed):
            refund_coordinator.request_refund(order_id=unpaid.id, amount="10.00", actor=self.owner)

    def test_submit_is_noop_unless_pending(self):
        refund = Refund.objects.create(order=self.order, amount=Decimal("10.00"), status=Refund.STATUS_PROCESSING)

        with mock.patch("payments.services.paymongo.create_refund") as create_refund:
            result = refund_coordinator.submit_refund(refund.id)

        create_refund.assert_not_called()
        self.assertEqual(result.status, Refund.STATUS_PROCESSING)


class CancellationRefundTests(TestCase):
    """
    GUARANTEES:
    - cancelling a paid online order opens a refund of total - penalty
    - the gateway is only called after the cancellation commits
    - a refund with no gateway payment to refund against is cancelled, not sent
    """

    def setUp(self):
        self.business = make_business(
            policy={"deadline_hours": 24, "penalty_percent": Decimal("10")}
        )
        self.owner = make_owner(self.business)
        self.tourist = make_user()
        self.bag = make_product(self.business, price="500.00", stock=5)

    def _paid_order(self, **kwargs):
        return mark_paid(
            place_order(
                self.tourist,
                self.business,
                [(self.bag, 1)],
                payment_method=Order.PAYMENT_METHOD_PAYMONGO,
                **kwargs,
            )
        )

    def test_business_cancel_refunds_everything(self):
        order = self._paid_order()

        with mock.patch(
            "payments.services.paymongo.create_refund",
            return_value=_gateway_refund("ref_cancel", 50000),
        ) as create_refund:
            with self.captureOnCommitCallbacks(execute=True):
                order_service.cancel_order(order_id=order.id, actor=self.owner)

        create_refund.assert_called_once()
        refund = Refund.objects.get(order=order)
        self.assertEqual(refund.amount, Decimal("500.00"))
        self.assertEqual(refund.status, Refund.STATUS_PROCESSING)
        self.assertEqual(refund.gateway_reference, "ref_cancel")

    def test_late_purchaser_cancel_keeps_penalty(self):
        order = self._paid_order(pickup_in=timedelta(hours=3))
        age_order(order, minutes=5)

        with mock.patch(
            "payments.services.paymongo.create_refund", return_value=_gateway_refund()
        ):
            with self.captureOnCommitCallbacks(execute=True):
                cancelled = order_service.cancel_order(order_id=order.id, actor=self.tourist)

        self.assertEqual(cancelled.cancellation_penalty, Decimal("50.00"))
        self.assertEqual(Refund.objects.get(order=order).amount, Decimal("450.00"))

    def test_gateway_failure_does_not_undo_cancellation(self):
        order = self._paid_order()

        with mock.patch(
            "payments.services.paymongo.create_refund",
            side_effect=PaymentGatewayError("unavailable", status_code=503),
        ):
            with self.captureOnCommitCallbacks(execute=True):
                order_service.cancel_order(order_id=order.id, actor=self.owner)

        self.assertEqual(Order.objects.get(id=order.id).status, Order.STATUS_CANCELLED_BY_BUSINESS)
        # a 5xx may still have been accepted: the refund stays in flight
        refund = Refund.objects.get(order=order)
        self.assertEqual(refund.status, Refund.STATUS_PROCESSING)
        self.assertIn("unavailable", refund.error_detail)

    def test_refund_without_payment_reference_is_cancelled(self):
        order = mark_paid(
            place_order(
                self.tourist,
                self.business,
                [(self.bag, 1)],
                payment_method=Order.PAYMENT_METHOD_PAYMONGO,
            ),
            payment_id="",
        )

        with mock.patch("payments.services.paymongo.create_refund") as create_refund:
            with self.captureOnCommitCallbacks(execute=True):
                order_service.cancel_order(order_id=order.id, actor=self.owner)

        create_refund.assert_not_called()
        refund = Refund.objects.get(order=order)
        self.assertEqual(refund.status, Refund.STATUS_CANCELLED)
        self.assertIsNotNone(refund.completed_at)
        self.assertEqual(refund_coordinator.refundable_balance(order), Decimal("500.00"))
        entry = OrderAuditEntry.objects.get(
            order_id=order.id, event_type=OrderAuditEntry.EventType.REFUND_FAILED
        )
        self.assertTrue(entry.metadata["review_required"])


class RefundApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
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
        self.url = reverse("payments:order-refunds", args=[self.order.id])

    def test_owner_requests_refund(self):
        self.client.force_authenticate(self.owner)

        with mock.patch(
            "payments.services.paymongo.create_refund", return_value=_gateway_refund()
        ):
            res = self.client.post(self.url, {"amount": "120.00"}, format="json")

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertEqual(res.data["status"], Refund.STATUS_PROCESSING)

        listed = self.client.get(self.url)
        self.assertEqual(len(listed.data), 1)

    def test_amount_exceeded_is_unprocessable(self):
        self.client.force_authenticate(self.owner)

        res = self.client.post(self.url, {"amount": "600.00"}, format="json")

        self.assertEqual(res.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(res.data["error"]["code"], "REFUND_AMOUNT_EXCEEDED")

    def test_tourist_forbidden(self):
        self.client.force_authenticate(self.tourist)
        res = self.client.post(self.url, {"amount": "10.00"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)


class CustomerRefundTests(TestCase):
    """
    GUARANTEES:
    - the purchaser may refund a paid order while it can still be cancelled
    - the quoted amount is the refundable balance minus the policy penalty
    - a customer refund cancels the order and refunds through the gateway
    - once the order is past cancelling, only the business can refund
    """

    def setUp(self):
        self.business = make_business(
            policy={"deadline_hours": 24, "penalty_percent": Decimal("10")}
        )
        self.owner = make_owner(self.business)
        self.tourist = make_user()
        self.bag = make_product(self.business, price="500.00", stock=5)

    def _paid_order(self, **kwargs):
        return mark_paid(
            place_order(
                self.tourist,
                self.business,
                [(self.bag, 1)],
                payment_method=Order.PAYMENT_METHOD_PAYMONGO,
                **kwargs,
            )
        )

    def _eligibility(self, order, viewer=None):
        return refund_coordinator.refund_eligibility(order_id=order.id, viewer=viewer or self.tourist)

    def test_paid_order_is_eligible(self):
        eligibility = self._eligibility(self._paid_order())

        self.assertTrue(eligibility.eligible)
        self.assertEqual(eligibility.refundable_amount, Decimal("500.00"))
        self.assertEqual(eligibility.penalty, Decimal("0.00"))
        self.assertEqual(eligibility.actions, [refund_coordinator.ACTION_REFUND])

    def test_late_request_quotes_penalty(self):
        order = self._paid_order(pickup_in=timedelta(hours=3))

        eligibility = self._eligibility(order)

        self.assertTrue(eligibility.eligible)
        self.assertEqual(eligibility.penalty, Decimal("50.00"))
        self.assertEqual(eligibility.refundable_amount, Decimal("450.00"))

    def test_cash_order_can_only_be_cancelled(self):
        order = place_order(self.tourist, self.business, [(self.bag, 1)])

        eligibility = self._eligibility(order)

        self.assertFalse(eligibility.eligible)
        self.assertTrue(eligibility.can_cancel)
        self.assertEqual(eligibility.actions, [refund_coordinator.ACTION_CANCEL])

    def test_ready_order_needs_the_business(self):
        order = self._paid_order()
        Order.objects.filter(id=order.id).update(status=Order.STATUS_READY_FOR_PICKUP)

        eligibility = self._eligibility(order)

        self.assertFalse(eligibility.eligible)
        self.assertTrue(eligibility.requires_business)
        self.assertEqual(eligibility.actions, [refund_coordinator.ACTION_CONTACT_BUSINESS])

    def test_policy_without_customer_cancellation(self):
        strict = make_business("Strict Shop", policy={"allow_customer_cancellation": False})
        order = mark_paid(
            place_order(
                self.tourist,
                strict,
                [(make_product(strict), 1)],
                payment_method=Order.PAYMENT_METHOD_PAYMONGO,
            )
        )

        eligibility = self._eligibility(order)

        self.assertFalse(eligibility.eligible)
        self.assertTrue(eligibility.requires_business)
        self.assertIn("does not allow", eligibility.reason)

    def test_refund_in_flight_blocks_another(self):
        order = self._paid_order()
        Refund.objects.create(order=order, amount=Decimal("100.00"), status=Refund.STATUS_PROCESSING)

        eligibility = self._eligibility(order)

        self.assertFalse(eligibility.eligible)
        self.assertIn("already in progress", eligibility.reason)

    def test_business_member_is_not_the_purchaser(self):
        eligibility = self._eligibility(self._paid_order(), viewer=self.owner)
        self.assertFalse(eligibility.eligible)

    def test_stranger_denied(self):
        with self.assertRaises(OrderAccessDenied):
            self._eligibility(self._paid_order(), viewer=make_user())

    def test_request_cancels_and_refunds(self):
        order = self._paid_order()

        with mock.patch(
            "payments.services.paymongo.create_refund",
            return_value=_gateway_refund("ref_self", 50000),
        ) as create_refund:
            with self.captureOnCommitCallbacks(execute=True):
                cancelled, refund = refund_coordinator.request_customer_refund(
                    order_id=order.id, actor=self.tourist, notes="plans changed"
                )

        create_refund.assert_called_once()
        self.assertEqual(cancelled.status, Order.STATUS_CANCELLED_BY_USER)
        self.assertEqual(cancelled.cancellation_reason, "plans changed")

        refund.refresh_from_db()
        self.assertEqual(refund.amount, Decimal("500.00"))
        self.assertEqual(refund.status, Refund.STATUS_PROCESSING)
        self.assertEqual(refund.requested_by, self.tourist)
        self.assertEqual(Product.objects.get(id=self.bag.id).current_stock, 5)

    def test_ineligible_request_changes_nothing(self):
        order = self._paid_order()
        Order.objects.filter(id=order.id).update(status=Order.STATUS_READY_FOR_PICKUP)

        with mock.patch("payments.services.paymongo.create_refund") as create_refund:
            with self.assertRaises(RefundNotAllowed):
                refund_coordinator.request_customer_refund(order_id=order.id, actor=self.tourist)

        create_refund.assert_not_called()
        self.assertEqual(Order.objects.get(id=order.id).status, Order.STATUS_READY_FOR_PICKUP)
        self.assertFalse(Refund.objects.filter(order=order).exists())

    def test_refunds_for_purchaser(self):
        mine = self._paid_order()
        Refund.objects.create(order=mine, amount=Decimal("10.00"), status=Refund.STATUS_SUCCEEDED)
        other = mark_paid(
            place_order(
                make_user(),
                self.business,
                [(self.bag, 1)],
                payment_method=Order.PAYMENT_METHOD_PAYMONGO,
            )
        )
        Refund.objects.create(order=other, amount=Decimal("20.00"), status=Refund.STATUS_SUCCEEDED)

        refunds = list(refund_coordinator.refunds_for_purchaser(self.tourist))

        self.assertEqual([r.order_id for r in refunds], [mine.id])


class CustomerRefundApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.business = make_business()
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
        self.client.force_authenticate(self.tourist)

    def test_eligibility(self):
        res = self.client.get(reverse("payments:refund-eligibility", args=[self.order.id]))

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertTrue(res.data["eligible"])
        self.assertEqual(res.data["refundable_amount"], "500.00")
        self.assertEqual(res.data["actions"], ["refund"])

    def test_request_and_list(self):
        with mock.patch(
            "payments.services.paymongo.create_refund", return_value=_gateway_refund()
        ):
            with self.captureOnCommitCallbacks(execute=True):
                res = self.client.post(
                    reverse("payments:refund-request", args=[self.order.id]),
                    {"notes": "weather"},
                    format="json",
                )

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertEqual(res.data["order_status"], Order.STATUS_CANCELLED_BY_USER)
        self.assertEqual(res.data["refund"]["amount"], "500.00")

        listed = self.client.get(reverse("payments:my-refunds"))
        self.assertEqual(listed.status_code, status.HTTP_200_OK)
        self.assertEqual(listed.data["count"], 1)
        self.assertEqual(listed.data["results"][0]["status"], Refund.STATUS_PROCESSING)
        self.assertEqual(listed.data["results"][0]["order_number"], self.order.order_number)

    def test_second_request_is_conflict(self):
        Refund.objects.create(order=self.order, amount=Decimal("500.00"), status=Refund.STATUS_PROCESSING)

        res = self.client.post(
            reverse("payments:refund-request", args=[self.order.id]), {}, format="json"
        )

        self.assertEqual(res.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(res.data["error"]["code"], "REFUND_NOT_ALLOWED")
