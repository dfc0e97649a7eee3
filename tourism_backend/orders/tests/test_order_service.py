# orders/tests/test_order_service.py

from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone

from audit.models import OrderAuditEntry
from businesses.models import Discount
from notifications.models import NotificationOutbox
from orders.models import Order
from orders.services import order_service
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
from orders.tests.helpers import (
    age_order,
    make_admin,
    make_business,
    make_owner,
    make_product,
    make_staff,
    make_user,
    place_order,
)
from products.models import Product, StockReservation
from products.services import stock_ledger


class CreateOrderTests(TestCase):
    """
    GUARANTEES:
    - total = subtotal - discount + tax, computed server-side
    - unit prices are snapshots
    - stock is reserved for every line or for none
    """

    def setUp(self):
        self.business = make_business()
        self.owner = make_owner(self.business)
        self.tourist = make_user()
        self.bag = make_product(self.business, price="250.00", stock=5)
        self.hat = make_product(self.business, name="Buri Hat", price="120.50", stock=3)

    def test_create_reserves_stock_and_snapshots_prices(self):
        order = place_order(self.tourist, self.business, [(self.bag, 2), (self.hat, 1)])

        self.assertEqual(order.status, Order.STATUS_PENDING)
        self.assertEqual(order.payment_status, Order.PAYMENT_STATUS_PENDING)
        self.assertEqual(order.subtotal_amount, Decimal("620.50"))
        self.assertEqual(order.total_amount, Decimal("620.50"))
        self.assertEqual(len(order.arrival_code), 6)
        self.assertTrue(order.arrival_code.isdigit())

        self.assertEqual(Product.objects.get(id=self.bag.id).current_stock, 3)
        self.assertEqual(Product.objects.get(id=self.hat.id).current_stock, 2)

        # later price changes do not touch the order
        Product.objects.filter(id=self.bag.id).update(price=Decimal("999.00"))
        item = order.items.get(product=self.bag)
        self.assertEqual(item.unit_price, Decimal("250.00"))
        self.assertEqual(item.line_total, Decimal("500.00"))

    def test_create_writes_audit_and_notifies_business(self):
        order = place_order(self.tourist, self.business, [(self.bag, 1)])

        entry = OrderAuditEntry.objects.get(order_id=order.id)
        self.assertEqual(entry.event_type, OrderAuditEntry.EventType.CREATED)
        self.assertEqual(entry.actor_id, self.tourist.id)

        self.assertTrue(
            NotificationOutbox.objects.filter(
                recipient_id=self.owner.id, notification_type="order_created"
            ).exists()
        )

    def test_duplicate_lines_are_merged(self):
        order = place_order(self.tourist, self.business, [(self.bag, 1), (self.bag, 2)])

        self.assertEqual(order.items.count(), 1)
        self.assertEqual(order.items.get().quantity, 3)

    def test_insufficient_stock_leaves_nothing_behind(self):
        with self.assertRaises(StockReservationError) as ctx:
            place_order(self.tourist, self.business, [(self.bag, 2), (self.hat, 4)])

        self.assertEqual(ctx.exception.available, 3)
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(StockReservation.objects.count(), 0)
        self.assertEqual(Product.objects.get(id=self.bag.id).current_stock, 5)

    def test_product_from_other_business_rejected(self):
        other = make_business("Elsewhere")
        foreign = make_product(other)
        with self.assertRaises(OrderValidationError):
            place_order(self.tourist, self.business, [(foreign, 1)])

    def test_unavailable_product_rejected(self):
        Product.objects.filter(id=self.bag.id).update(is_available=False)
        with self.assertRaises(OrderValidationError):
            place_order(self.tourist, self.business, [(self.bag, 1)])

    def test_pickup_must_be_in_future(self):
        with self.assertRaises(OrderValidationError):
            place_order(self.tourist, self.business, [(self.bag, 1)], pickup_in=timedelta(minutes=-5))

    def test_payment_method_type_requires_online_payment(self):
        with self.assertRaises(OrderValidationError):
            place_order(self.tourist, self.business, [(self.bag, 1)], payment_method_type="gcash")

    def test_percentage_discount_applied(self):
        discount = Discount.objects.create(
            business=self.business,
            name="Summer",
            discount_type=Discount.DiscountType.PERCENTAGE,
            value=Decimal("10"),
        )
        order = place_order(self.tourist, self.business, [(self.bag, 2)], discount_id=discount.id)

        self.assertEqual(order.discount_amount, Decimal("50.00"))
        self.assertEqual(order.total_amount, Decimal("450.00"))
        self.assertEqual(order.discount_reference, str(discount.id))

    def test_fixed_discount_capped_at_subtotal(self):
        discount = Discount.objects.create(
            business=self.business,
            name="Big",
            discount_type=Discount.DiscountType.FIXED,
            value=Decimal("10000"),
        )
        order = place_order(self.tourist, self.business, [(self.hat, 1)], discount_id=discount.id)

        self.assertEqual(order.discount_amount, Decimal("120.50"))
        self.assertEqual(order.total_amount, Decimal("0.00"))

    @override_settings(ORDERS_TAX_RATE="0.12")
    def test_tax_added_on_discounted_subtotal(self):
        order = place_order(self.tourist, self.business, [(self.bag, 2)])

        self.assertEqual(order.tax_amount, Decimal("60.00"))
        self.assertEqual(
            order.total_amount,
            order.subtotal_amount - order.discount_amount + order.tax_amount,
        )

    def test_orders_cannot_be_deleted(self):
        order = place_order(self.tourist, self.business, [(self.bag, 1)])
        with self.assertRaises(ValidationError):
            order.delete()
        self.assertTrue(Order.objects.filter(id=order.id).exists())


class CancelOrderTests(TestCase):
    """
    GUARANTEES:
    - cancellation inside the grace window is unconditional (pre-capture)
    - after it, the business's cancellation policy decides
    - every cancellation releases the order's stock
    - a failing audit write never undoes the transition
    """

    def setUp(self):
        self.business = make_business(
            policy={
                "deadline_hours": 24,
                "penalty_percent": None,
                "penalty_fixed": None,
                "allow_customer_cancellation": True,
            }
        )
        self.owner = make_owner(self.business)
        self.tourist = make_user()
        self.bag = make_product(self.business, price="500.00", stock=5)

    def _stock(self):
        return Product.objects.get(id=self.bag.id).current_stock

    def test_cancel_within_grace_restores_stock(self):
        order = place_order(self.tourist, self.business, [(self.bag, 2)], pickup_in=timedelta(hours=1))
        self.assertEqual(self._stock(), 3)

        cancelled = order_service.cancel_order(order_id=order.id, actor=self.tourist, reason="changed mind")

        self.assertEqual(cancelled.status, Order.STATUS_CANCELLED_BY_USER)
        self.assertEqual(cancelled.cancellation_penalty, Decimal("0.00"))
        self.assertEqual(self._stock(), 5)
        self.assertEqual(
            OrderAuditEntry.objects.filter(
                order_id=order.id, event_type=OrderAuditEntry.EventType.CANCELLED
            ).count(),
            1,
        )

    def test_cancel_after_deadline_without_penalty_rejected(self):
        order = place_order(self.tourist, self.business, [(self.bag, 1)], pickup_in=timedelta(hours=2))
        age_order(order, seconds=30)

        with self.assertRaises(CancellationNotAllowed):
            order_service.cancel_order(order_id=order.id, actor=self.tourist)

        self.assertEqual(Order.objects.get(id=order.id).status, Order.STATUS_PENDING)
        self.assertEqual(self._stock(), 4)

    def test_cancel_before_deadline_allowed(self):
        order = place_order(self.tourist, self.business, [(self.bag, 1)], pickup_in=timedelta(days=3))
        age_order(order, minutes=5)

        cancelled = order_service.cancel_order(order_id=order.id, actor=self.tourist)
        self.assertEqual(cancelled.status, Order.STATUS_CANCELLED_BY_USER)

    def test_cancel_after_deadline_with_penalty(self):
        self.business.cancellation_policy.penalty_percent = Decimal("10")
        self.business.cancellation_policy.penalty_fixed = Decimal("20.00")
        self.business.cancellation_policy.save()

        order = place_order(self.tourist, self.business, [(self.bag, 1)], pickup_in=timedelta(hours=2))
        age_order(order, seconds=30)

        cancelled = order_service.cancel_order(order_id=order.id, actor=self.tourist)

        self.assertEqual(cancelled.status, Order.STATUS_CANCELLED_BY_USER)
        self.assertEqual(cancelled.cancellation_penalty, Decimal("70.00"))

    def test_customer_cancellation_disabled(self):
        self.business.cancellation_policy.allow_customer_cancellation = False
        self.business.cancellation_policy.save()

        order = place_order(self.tourist, self.business, [(self.bag, 1)])
        age_order(order, seconds=30)

        with self.assertRaises(CancellationNotAllowed):
            order_service.cancel_order(order_id=order.id, actor=self.tourist)

    def test_business_cancellation_is_by_business(self):
        order = place_order(self.tourist, self.business, [(self.bag, 2)])
        staff = make_staff(self.business)

        cancelled = order_service.cancel_order(order_id=order.id, actor=staff, reason="closed today")

        self.assertEqual(cancelled.status, Order.STATUS_CANCELLED_BY_BUSINESS)
        self.assertEqual(cancelled.cancelled_by, staff)
        self.assertEqual(self._stock(), 5)

    def test_admin_cancellation_is_by_business(self):
        order = place_order(self.tourist, self.business, [(self.bag, 1)])
        cancelled = order_service.cancel_order(order_id=order.id, actor=make_admin())
        self.assertEqual(cancelled.status, Order.STATUS_CANCELLED_BY_BUSINESS)

    def test_stranger_cannot_cancel(self):
        order = place_order(self.tourist, self.business, [(self.bag, 1)])
        with self.assertRaises(OrderAccessDenied):
            order_service.cancel_order(order_id=order.id, actor=make_user())

    def test_second_cancel_is_already_terminal(self):
        order = place_order(self.tourist, self.business, [(self.bag, 2)])
        order_service.cancel_order(order_id=order.id, actor=self.owner)

        with self.assertRaises(OrderAlreadyTerminal):
            order_service.cancel_order(order_id=order.id, actor=self.owner)
        self.assertEqual(self._stock(), 5)

    def test_ready_for_pickup_cannot_be_cancelled(self):
        order = place_order(self.tourist, self.business, [(self.bag, 1)])
        Order.objects.filter(id=order.id).update(status=Order.STATUS_READY_FOR_PICKUP)

        with self.assertRaises(InvalidOrderTransition):
            order_service.cancel_order(order_id=order.id, actor=self.owner)

    def test_audit_outage_does_not_undo_cancellation(self):
        order = place_order(self.tourist, self.business, [(self.bag, 2)])

        with mock.patch.object(
            OrderAuditEntry.objects, "create", side_effect=DatabaseError("audit table locked")
        ), self.assertLogs("audit.services.audit_trail", level="WARNING"):
            cancelled = order_service.cancel_order(order_id=order.id, actor=self.owner)

        self.assertEqual(cancelled.status, Order.STATUS_CANCELLED_BY_BUSINESS)
        self.assertEqual(Order.objects.get(id=order.id).status, Order.STATUS_CANCELLED_BY_BUSINESS)
        self.assertEqual(self._stock(), 5)
        self.assertFalse(
            OrderAuditEntry.objects.filter(
                order_id=order.id, event_type=OrderAuditEntry.EventType.CANCELLED
            ).exists()
        )

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFound):
            order_service.cancel_order(order_id="not-a-uuid", actor=self.owner)


class AdvanceAndPickupTests(TestCase):
    """
    GUARANTEES:
    - only the business (or an admin) moves the order forward
    - pickup requires the exact arrival code; a mismatch changes nothing
    """

    def setUp(self):
        self.business = make_business()
        self.owner = make_owner(self.business)
        self.tourist = make_user()
        self.bag = make_product(self.business, stock=5)
        self.order = place_order(self.tourist, self.business, [(self.bag, 2)])

    def _advance_to_ready(self):
        for status in (Order.STATUS_ACCEPTED, Order.STATUS_PREPARING, Order.STATUS_READY_FOR_PICKUP):
            order_service.advance_status(order_id=self.order.id, next_status=status, actor=self.owner)

    def test_advance_writes_one_audit_entry_per_step(self):
        self._advance_to_ready()

        entries = OrderAuditEntry.objects.filter(
            order_id=self.order.id, event_type=OrderAuditEntry.EventType.STATUS_CHANGED
        )
        self.assertEqual(entries.count(), 3)
        self.assertEqual(Order.objects.get(id=self.order.id).status, Order.STATUS_READY_FOR_PICKUP)

    def test_audit_outage_does_not_block_advance(self):
        with mock.patch.object(
            OrderAuditEntry.objects, "create", side_effect=DatabaseError("audit table locked")
        ), self.assertLogs("audit.services.audit_trail", level="WARNING"):
            order_service.advance_status(
                order_id=self.order.id, next_status=Order.STATUS_ACCEPTED, actor=self.owner
            )

        self.assertEqual(Order.objects.get(id=self.order.id).status, Order.STATUS_ACCEPTED)
        self.assertFalse(
            OrderAuditEntry.objects.filter(
                order_id=self.order.id, event_type=OrderAuditEntry.EventType.STATUS_CHANGED
            ).exists()
        )

    def test_purchaser_cannot_advance(self):
        with self.assertRaises(OrderAccessDenied):
            order_service.advance_status(
                order_id=self.order.id, next_status=Order.STATUS_ACCEPTED, actor=self.tourist
            )

    def test_other_business_cannot_advance(self):
        stranger = make_owner(make_business("Rival"))
        with self.assertRaises(OrderAccessDenied):
            order_service.advance_status(
                order_id=self.order.id, next_status=Order.STATUS_ACCEPTED, actor=stranger
            )

    def test_picked_up_only_via_pickup(self):
        with self.assertRaises(InvalidOrderTransition):
            order_service.advance_status(
                order_id=self.order.id, next_status=Order.STATUS_PICKED_UP, actor=self.owner
            )

    def test_cancel_status_only_via_cancel(self):
        with self.assertRaises(InvalidOrderTransition):
            order_service.advance_status(
                order_id=self.order.id,
                next_status=Order.STATUS_CANCELLED_BY_BUSINESS,
                actor=self.owner,
            )

    def test_pickup_with_wrong_code_changes_nothing(self):
        self._advance_to_ready()
        wrong = "000000" if self.order.arrival_code != "000000" else "111111"

        with self.assertRaises(ArrivalCodeMismatch):
            order_service.mark_picked_up(order_id=self.order.id, arrival_code=wrong, actor=self.owner)

        order = Order.objects.get(id=self.order.id)
        self.assertEqual(order.status, Order.STATUS_READY_FOR_PICKUP)
        self.assertTrue(
            OrderAuditEntry.objects.filter(
                order_id=order.id, event_type=OrderAuditEntry.EventType.ARRIVAL_CODE_REJECTED
            ).exists()
        )

    def test_pickup_before_ready_rejected(self):
        with self.assertRaises(InvalidOrderTransition):
            order_service.mark_picked_up(
                order_id=self.order.id, arrival_code=self.order.arrival_code, actor=self.owner
            )

    def test_pickup_commits_stock_and_collects_cash(self):
        self._advance_to_ready()

        order = order_service.mark_picked_up(
            order_id=self.order.id, arrival_code=self.order.arrival_code, actor=self.owner
        )

        self.assertEqual(order.status, Order.STATUS_PICKED_UP)
        self.assertIsNotNone(order.picked_up_at)
        self.assertEqual(order.payment_status, Order.PAYMENT_STATUS_PAID)

        summary = stock_ledger.reservation_summary(order_id=order.id)
        self.assertEqual(summary.committed, 2)
        self.assertEqual(summary.reserved, 0)
        self.assertEqual(Product.objects.get(id=self.bag.id).current_stock, 3)

    def test_arrival_code_reusable_after_terminal(self):
        self._advance_to_ready()
        order_service.mark_picked_up(
            order_id=self.order.id, arrival_code=self.order.arrival_code, actor=self.owner
        )

        # the live-order uniqueness constraint no longer covers a picked-up order
        second = place_order(self.tourist, self.business, [(self.bag, 1)])
        Order.objects.filter(id=second.id).update(arrival_code=self.order.arrival_code)
        self.assertEqual(Order.objects.filter(arrival_code=self.order.arrival_code).count(), 2)


class ReadAccessTests(TestCase):
    def setUp(self):
        self.business = make_business()
        self.owner = make_owner(self.business)
        self.tourist = make_user()
        self.bag = make_product(self.business, stock=5)
        self.order = place_order(self.tourist, self.business, [(self.bag, 1)])

    def test_visibility(self):
        self.assertTrue(order_service.can_view_order(order=self.order, viewer=self.tourist))
        self.assertTrue(order_service.can_view_order(order=self.order, viewer=self.owner))
        self.assertTrue(order_service.can_view_order(order=self.order, viewer=make_admin()))
        self.assertFalse(order_service.can_view_order(order=self.order, viewer=make_user()))

    def test_business_lists_only_its_own_orders(self):
        rival = make_business("Rival")
        place_order(self.tourist, rival, [(make_product(rival), 1)])

        own = order_service.orders_for_user(user_id=self.tourist.id, viewer=self.tourist)
        self.assertEqual(own.count(), 2)

        as_business = order_service.orders_for_user(user_id=self.tourist.id, viewer=self.owner)
        self.assertEqual(list(as_business.values_list("id", flat=True)), [self.order.id])

    def test_stranger_cannot_list(self):
        with self.assertRaises(OrderAccessDenied):
            order_service.orders_for_user(user_id=self.tourist.id, viewer=make_user())


class CreatedAtDefaultTests(TestCase):
    def test_created_at_defaults_to_now(self):
        business = make_business()
        order = place_order(make_user(), business, [(make_product(business), 1)])
        self.assertLessEqual(abs((timezone.now() - order.created_at).total_seconds()), 5)
