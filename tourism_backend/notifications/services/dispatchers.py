# notifications/services/dispatchers.py

"""
Delivery transports selectable through NOTIFICATIONS_DISPATCHER.

A dispatcher is any callable accepting
(recipient_id, notification_type, payload) as keyword arguments;
raising means "not delivered, try again later".
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def log_dispatcher(*, recipient_id, notification_type: str, payload: dict) -> None:
    logger.info(
        "Notification dispatched",
        extra={
            "recipient_id": str(recipient_id),
            "notification_type": notification_type,
            "payload": payload,
        },
    )
