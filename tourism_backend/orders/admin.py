# orders/admin.py

from django.contrib import admin

from orders.models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ("product", "product_name", "quantity", "unit_price", "line_total")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Read-only: lifecycle changes go through the order services so they
    are audited and keep stock in sync.
    """

    list_display = (
        "order_number",
        "business",
        "purchaser",
        "status",
        "payment_method",
        "payment_status",
        "total_amount",
        "created_at",
    )
    list_filter = ("status", "payment_status", "payment_method")
    search_fields = ("order_number", "purchaser__email")
    readonly_fields = [f.name for f in Order._meta.fields if f.name != "arrival_code"]
    exclude = ("arrival_code",)
    inlines = [OrderItemInline]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
