from .notification_outbox import NotificationOutbox

__all__ = ["NotificationOutbox"]
