# orders/apps.py

"""
ORDERS APP CONFIG

Order aggregate: placement, state machine, cancellation policy, pickup.
"""

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "orders"
    verbose_name = "Orders"
