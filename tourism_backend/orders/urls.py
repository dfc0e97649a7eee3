# orders/urls.py
"""
ORDER API URLS

Base path (mounted in backend/urls.py):
    /api/orders/
"""

from django.urls import path

from orders.views import (
    OrderCancelView,
    OrderCreateView,
    OrderDetailView,
    OrderPaymentIntentView,
    OrderPickupView,
    OrderStatusView,
    OrderVerifyPaymentView,
    UserOrderListView,
)

app_name = "orders"

urlpatterns = [
    path("", OrderCreateView.as_view(), name="order-create"),
    path("user/<uuid:user_id>/", UserOrderListView.as_view(), name="user-orders"),
    path("<uuid:order_id>/", OrderDetailView.as_view(), name="order-detail"),
    path("<uuid:order_id>/cancel/", OrderCancelView.as_view(), name="order-cancel"),
    path("<uuid:order_id>/status/", OrderStatusView.as_view(), name="order-status"),
    path("<uuid:order_id>/pickup/", OrderPickupView.as_view(), name="order-pickup"),
    path(
        "<uuid:order_id>/payment-intent/",
        OrderPaymentIntentView.as_view(),
        name="order-payment-intent",
    ),
    path(
        "<uuid:order_id>/verify-payment/",
        OrderVerifyPaymentView.as_view(),
        name="order-verify-payment",
    ),
]
