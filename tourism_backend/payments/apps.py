# payments/apps.py

"""
PAYMENTS APP CONFIG

PayMongo gateway adapter, payment intents, webhook reconciliation,
refunds and the abandoned-order sweeper.
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
