# products/tests/test_stock_ledger.py

import uuid

from django.db import IntegrityError, transaction
from django.test import TestCase

from orders.tests.helpers import make_business, make_product
from products.models import Product, StockReservation
from products.services import stock_ledger
from products.services.exceptions import InsufficientStockError


class StockLedgerTests(TestCase):
    """
    GUARANTEES:
    - current_stock never goes negative
    - multi-line reservations are all-or-nothing
    - release is idempotent; commit moves no quantity
    - released + committed + reserved always equals what was reserved
    """

    def setUp(self):
        self.business = make_business()
        self.bag = make_product(self.business, name="Woven Bag", stock=5)
        self.hat = make_product(self.business, name="Buri Hat", stock=2)
        self.order_id = uuid.uuid4()

    def _stock(self, product):
        return Product.objects.get(id=product.id).current_stock

    def test_reserve_decrements_stock_and_tags_order(self):
        reservation = stock_ledger.reserve(product_id=self.bag.id, quantity=2, order_id=self.order_id)

        self.assertEqual(self._stock(self.bag), 3)
        self.assertEqual(reservation.order_id, self.order_id)
        self.assertEqual(reservation.status, StockReservation.STATUS_RESERVED)

    def test_reserve_more_than_available_raises(self):
        with self.assertRaises(InsufficientStockError) as ctx:
            stock_ledger.reserve(product_id=self.hat.id, quantity=3, order_id=self.order_id)

        self.assertEqual(ctx.exception.available, 2)
        self.assertEqual(self._stock(self.hat), 2)

    def test_reserve_many_is_all_or_nothing(self):
        with self.assertRaises(InsufficientStockError):
            stock_ledger.reserve_many(
                lines=[(self.bag.id, 2), (self.hat.id, 5)],
                order_id=self.order_id,
            )

        self.assertEqual(self._stock(self.bag), 5)
        self.assertEqual(self._stock(self.hat), 2)
        self.assertFalse(StockReservation.objects.filter(order_id=self.order_id).exists())

    def test_reserve_many_merges_duplicate_lines(self):
        reservations = stock_ledger.reserve_many(
            lines=[(self.bag.id, 1), (self.bag.id, 2)],
            order_id=self.order_id,
        )

        self.assertEqual(len(reservations), 1)
        self.assertEqual(reservations[0].quantity, 3)
        self.assertEqual(self._stock(self.bag), 2)

    def test_quantity_must_be_positive_integer(self):
        for bad in (0, -1, "1.5", True):
            with self.assertRaises(ValueError):
                stock_ledger.reserve(product_id=self.bag.id, quantity=bad, order_id=self.order_id)

    def test_release_restores_stock_and_is_idempotent(self):
        stock_ledger.reserve_many(lines=[(self.bag.id, 2), (self.hat.id, 1)], order_id=self.order_id)

        self.assertEqual(stock_ledger.release(order_id=self.order_id), 3)
        self.assertEqual(self._stock(self.bag), 5)
        self.assertEqual(self._stock(self.hat), 2)

        self.assertEqual(stock_ledger.release(order_id=self.order_id), 0)
        self.assertEqual(self._stock(self.bag), 5)

    def test_commit_moves_no_quantity(self):
        stock_ledger.reserve(product_id=self.bag.id, quantity=2, order_id=self.order_id)

        self.assertEqual(stock_ledger.commit(order_id=self.order_id), 2)
        self.assertEqual(self._stock(self.bag), 3)

        # committed units are not released by a plain release
        self.assertEqual(stock_ledger.release(order_id=self.order_id), 0)
        self.assertEqual(self._stock(self.bag), 3)

    def test_release_including_committed(self):
        stock_ledger.reserve(product_id=self.bag.id, quantity=2, order_id=self.order_id)
        stock_ledger.commit(order_id=self.order_id)

        self.assertEqual(stock_ledger.release(order_id=self.order_id, include_committed=True), 2)
        self.assertEqual(self._stock(self.bag), 5)

    def test_summary_buckets_add_up(self):
        stock_ledger.reserve_many(lines=[(self.bag.id, 2), (self.hat.id, 1)], order_id=self.order_id)
        stock_ledger.commit(order_id=self.order_id)
        other = uuid.uuid4()
        stock_ledger.reserve(product_id=self.bag.id, quantity=1, order_id=other)
        stock_ledger.release(order_id=other)

        summary = stock_ledger.reservation_summary(order_id=self.order_id)
        self.assertEqual((summary.reserved, summary.committed, summary.released), (0, 3, 0))
        self.assertEqual(summary.total, 3)

        other_summary = stock_ledger.reservation_summary(order_id=other)
        self.assertEqual(other_summary.released, 1)

    def test_database_rejects_negative_stock(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Product.objects.filter(id=self.hat.id).update(current_stock=-1)
