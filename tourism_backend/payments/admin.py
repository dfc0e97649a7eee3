# payments/admin.py

from django.contrib import admin

from payments.models import PaymentIntent, Refund, WebhookEvent


@admin.register(PaymentIntent)
class PaymentIntentAdmin(admin.ModelAdmin):
    list_display = (
        "gateway_reference",
        "order",
        "kind",
        "amount",
        "status",
        "is_active",
        "expires_at",
        "created_at",
    )
    list_filter = ("status", "is_active", "kind")
    search_fields = ("gateway_reference", "payment_intent_ref", "order__order_number")
    readonly_fields = [f.name for f in PaymentIntent._meta.fields]

    def has_add_permission(self, request):
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ("event_id", "event_type", "status", "attempts", "received_at", "processed_at")
    list_filter = ("status", "event_type")
    search_fields = ("event_id",)
    readonly_fields = [f.name for f in WebhookEvent._meta.fields]

    def has_add_permission(self, request):
        return False


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "amount", "status", "reason", "created_at", "completed_at")
    list_filter = ("status", "reason")
    search_fields = ("gateway_reference", "order__order_number")
    readonly_fields = [f.name for f in Refund._meta.fields]

    def has_add_permission(self, request):
        return False
