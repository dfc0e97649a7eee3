# audit/admin.py

from django.contrib import admin

from audit.models import OrderAuditEntry


@admin.register(OrderAuditEntry)
class OrderAuditEntryAdmin(admin.ModelAdmin):
    list_display = (
        "order_id",
        "event_type",
        "old_value",
        "new_value",
        "actor_role",
        "created_at",
    )
    list_filter = ("event_type", "actor_role")
    search_fields = ("order_id",)
    readonly_fields = [f.name for f in OrderAuditEntry._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
