# products/services/stock_ledger.py

"""
======================================================
PATH: products/services/stock_ledger.py
======================================================
STOCK LEDGER

Purpose:
- Reserve units for an order (all-or-nothing across lines).
- Release units back to the shelf (cancellation / abandonment / failed payment).
- Commit reservations once the sale is final (no quantity change).

Rules:
- Quantities are integer units.
- Product rows are locked (select_for_update) before any quantity change.
- Multi-product operations lock products in a deterministic order (by id)
  so two concurrent checkouts cannot deadlock each other.
- release() is idempotent: only open reservations are touched.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from products.models import Product, StockReservation
from products.services.exceptions import InsufficientStockError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationSummary:
    reserved: int
    committed: int
    released: int

    @property
    def total(self) -> int:
        return self.reserved + self.committed + self.released


def _to_int_qty(value) -> int:
    """
    Quantity normalizer.
    HARD RULE: quantities are positive integer units.
    """
    if isinstance(value, bool):
        raise ValueError("quantity must be a whole integer unit")

    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise ValueError("quantity must be a whole integer unit")

    try:
        qty = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError("quantity must be a whole integer unit") from exc

    if qty <= 0:
        raise ValueError("quantity must be greater than zero")
    return qty


def _lock_products(product_ids) -> dict:
    products = (
        Product.objects.select_for_update()
        .filter(id__in=list(product_ids))
        .order_by("id")
    )
    return {p.id: p for p in products}


def _merge_lines(lines: Iterable) -> "OrderedDict":
    merged = OrderedDict()
    for product_id, quantity in lines:
        merged[product_id] = merged.get(product_id, 0) + _to_int_qty(quantity)
    return OrderedDict(sorted(merged.items(), key=lambda kv: str(kv[0])))


# ============================================================
# RESERVE
# ============================================================


@transaction.atomic
def reserve(*, product_id, quantity, order_id) -> StockReservation:
    qty = _to_int_qty(quantity)

    product = Product.objects.select_for_update().get(id=product_id)

    if product.current_stock < qty:
        raise InsufficientStockError(
            product_id=product.id,
            requested=qty,
            available=product.current_stock,
        )

    product.current_stock -= qty
    product.save(update_fields=["current_stock", "updated_at"])

    return StockReservation.objects.create(
        product=product,
        order_id=order_id,
        quantity=qty,
        status=StockReservation.STATUS_RESERVED,
    )


def reserve_many(*, lines, order_id) -> list[StockReservation]:
    """
    Reserve every line or none.

    `lines` is an iterable of (product_id, quantity). Duplicate products are
    merged. The inner atomic block is a savepoint when called inside an outer
    transaction, so a shortfall on line N rolls back lines 1..N-1.
    """
    merged = _merge_lines(lines)
    if not merged:
        return []

    with transaction.atomic():
        products = _lock_products(merged.keys())

        reservations = []
        for product_id, qty in merged.items():
            product = products.get(product_id)
            if product is None:
                product = Product.objects.select_for_update().get(id=product_id)
                products[product.id] = product

            if product.current_stock < qty:
                raise InsufficientStockError(
                    product_id=product.id,
                    requested=qty,
                    available=product.current_stock,
                )

            product.current_stock -= qty
            product.save(update_fields=["current_stock", "updated_at"])

            reservations.append(
                StockReservation.objects.create(
                    product=product,
                    order_id=order_id,
                    quantity=qty,
                    status=StockReservation.STATUS_RESERVED,
                )
            )

    logger.info(
        "Stock reserved",
        extra={"order_id": str(order_id), "lines": len(reservations)},
    )
    return reservations


# ============================================================
# RELEASE
# ============================================================


@transaction.atomic
def release(*, order_id, include_committed: bool = False) -> int:
    """
    Return every open reservation of `order_id` to the shelf.

    Returns the number of units restored (0 when nothing was open, which
    makes a second call a no-op).
    """
    statuses = [StockReservation.STATUS_RESERVED]
    if include_committed:
        statuses.append(StockReservation.STATUS_COMMITTED)

    reservations = list(
        StockReservation.objects.select_for_update()
        .filter(order_id=order_id, status__in=statuses)
        .order_by("product_id", "created_at")
    )
    if not reservations:
        return 0

    products = _lock_products({r.product_id for r in reservations})
    now = timezone.now()
    restored = 0

    for reservation in reservations:
        product = products[reservation.product_id]
        product.current_stock += int(reservation.quantity)
        restored += int(reservation.quantity)

        reservation.status = StockReservation.STATUS_RELEASED
        reservation.released_at = now
        reservation.save(update_fields=["status", "released_at"])

    for product in products.values():
        product.save(update_fields=["current_stock", "updated_at"])

    logger.info(
        "Stock released",
        extra={"order_id": str(order_id), "units": restored},
    )
    return restored


# ============================================================
# COMMIT
# ============================================================


@transaction.atomic
def commit(*, order_id) -> int:
    """
    Mark open reservations as committed (sale finalized).
    Quantities were already deducted at reserve time.
    """
    reservations = list(
        StockReservation.objects.select_for_update().filter(
            order_id=order_id,
            status=StockReservation.STATUS_RESERVED,
        )
    )
    if not reservations:
        return 0

    now = timezone.now()
    units = 0
    for reservation in reservations:
        reservation.status = StockReservation.STATUS_COMMITTED
        reservation.committed_at = now
        reservation.save(update_fields=["status", "committed_at"])
        units += int(reservation.quantity)

    return units


# ============================================================
# READ
# ============================================================


def reservation_summary(*, order_id) -> ReservationSummary:
    rows = (
        StockReservation.objects.filter(order_id=order_id)
        .values("status")
        .annotate(units=Sum("quantity"))
    )
    by_status = {row["status"]: int(row["units"] or 0) for row in rows}

    return ReservationSummary(
        reserved=by_status.get(StockReservation.STATUS_RESERVED, 0),
        committed=by_status.get(StockReservation.STATUS_COMMITTED, 0),
        released=by_status.get(StockReservation.STATUS_RELEASED, 0),
    )
