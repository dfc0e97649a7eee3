# products/admin.py
"""
=====================================================
PATH: products/admin.py
=====================================================

Admin rules:
- Products are editable (name, price, availability, shelf stock).
- Stock reservations are ledger rows: read-only, never deleted here.
  Quantities move only through products.services.stock_ledger.
"""

from __future__ import annotations

from django.contrib import admin

from products.models import Product, StockReservation


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "business", "price", "current_stock", "is_available")
    list_filter = ("is_available", "business")
    search_fields = ("name",)


@admin.register(StockReservation)
class StockReservationAdmin(admin.ModelAdmin):
    list_display = ("order_id", "product", "quantity", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("order_id",)
    readonly_fields = (
        "product",
        "order_id",
        "quantity",
        "status",
        "created_at",
        "committed_at",
        "released_at",
    )

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
