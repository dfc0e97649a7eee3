# businesses/apps.py

"""
BUSINESSES APP CONFIG

Businesses that sell through the platform and the per-business
cancellation policy consulted when a purchaser cancels an order.
"""

from django.apps import AppConfig


class BusinessesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "businesses"
    verbose_name = "Businesses"
