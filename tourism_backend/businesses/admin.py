# businesses/admin.py

from django.contrib import admin

from businesses.models import Business, CancellationPolicy, Discount


class CancellationPolicyInline(admin.StackedInline):
    model = CancellationPolicy
    can_delete = False
    extra = 0


@admin.register(Business)
class BusinessAdmin(admin.ModelAdmin):
    list_display = ("name", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name",)
    inlines = [CancellationPolicyInline]


@admin.register(Discount)
class DiscountAdmin(admin.ModelAdmin):
    list_display = ("name", "business", "discount_type", "value", "is_active")
    list_filter = ("discount_type", "is_active")
    search_fields = ("name",)
