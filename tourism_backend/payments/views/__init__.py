from .admin import AbandonedStatsView, CleanupAbandonedView
from .refund import (
    CustomerRefundRequestView,
    MyRefundListView,
    OrderRefundView,
    RefundEligibilityView,
)
from .webhook import PaymongoWebhookView, WebhookThrottle

__all__ = [
    "AbandonedStatsView",
    "CleanupAbandonedView",
    "CustomerRefundRequestView",
    "MyRefundListView",
    "OrderRefundView",
    "PaymongoWebhookView",
    "RefundEligibilityView",
    "WebhookThrottle",
]
