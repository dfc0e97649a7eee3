# notifications/apps.py

"""
NOTIFICATIONS APP CONFIG

Transactional outbox: lifecycle transitions enqueue rows in the same
transaction; a separate delivery pass hands them to the configured
dispatcher (push/email/SMS transport lives outside this service).
"""

from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "notifications"
    verbose_name = "Notification Outbox"
