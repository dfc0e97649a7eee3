# notifications/admin.py

from django.contrib import admin

from notifications.models import NotificationOutbox


@admin.register(NotificationOutbox)
class NotificationOutboxAdmin(admin.ModelAdmin):
    list_display = ("notification_type", "recipient_id", "status", "attempts", "created_at")
    list_filter = ("status", "notification_type")
    search_fields = ("recipient_id",)
    readonly_fields = ("created_at", "updated_at", "delivered_at")
