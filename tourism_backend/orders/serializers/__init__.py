from .commands import (
    OrderCancelSerializer,
    OrderPickupSerializer,
    OrderStatusSerializer,
    PaymentIntentRequestSerializer,
)
from .order_create import (
    OrderCreateResponseSerializer,
    OrderCreateSerializer,
    OrderItemInputSerializer,
)
from .order_read import OrderItemSerializer, OrderSerializer, PaymentIntentSerializer

__all__ = [
    "OrderCancelSerializer",
    "OrderCreateResponseSerializer",
    "OrderCreateSerializer",
    "OrderItemInputSerializer",
    "OrderItemSerializer",
    "OrderPickupSerializer",
    "OrderSerializer",
    "OrderStatusSerializer",
    "PaymentIntentRequestSerializer",
    "PaymentIntentSerializer",
]
