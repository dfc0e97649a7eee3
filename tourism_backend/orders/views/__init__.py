from .order import OrderCreateView, OrderDetailView, UserOrderListView
from .transitions import (
    OrderCancelView,
    OrderPaymentIntentView,
    OrderPickupView,
    OrderStatusView,
    OrderVerifyPaymentView,
)

__all__ = [
    "OrderCancelView",
    "OrderCreateView",
    "OrderDetailView",
    "OrderPaymentIntentView",
    "OrderPickupView",
    "OrderStatusView",
    "OrderVerifyPaymentView",
    "UserOrderListView",
]
