# audit/apps.py

"""
AUDIT APP CONFIG

Append-only trail of order lifecycle events (who / what / when / from where).
"""

from django.apps import AppConfig


class AuditConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "audit"
    verbose_name = "Order Audit Trail"
