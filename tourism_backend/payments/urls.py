# payments/urls.py
"""
PAYMENT API URLS

Base path (mounted in backend/urls.py):
    /api/payment/

- POST /api/payment/webhook/                            PayMongo events (signed)
- GET|POST /api/payment/orders/<id>/refunds/            refunds (business / admin)
- GET  /api/payment/orders/<id>/refund-eligibility/     purchaser self-service check
- POST /api/payment/orders/<id>/refund-request/         purchaser cancels for a refund
- GET  /api/payment/refunds/mine/                       refunds on the caller's orders
- POST /api/payment/admin/cleanup-abandoned/            manual sweep (admin)
- GET  /api/payment/admin/abandoned-stats/              sweeper stats (admin)
"""

from django.urls import path

from payments.views import (
    AbandonedStatsView,
    CleanupAbandonedView,
    CustomerRefundRequestView,
    MyRefundListView,
    OrderRefundView,
    PaymongoWebhookView,
    RefundEligibilityView,
)

app_name = "payments"

urlpatterns = [
    path("webhook/", PaymongoWebhookView.as_view(), name="paymongo-webhook"),
    path("orders/<uuid:order_id>/refunds/", OrderRefundView.as_view(), name="order-refunds"),
    path(
        "orders/<uuid:order_id>/refund-eligibility/",
        RefundEligibilityView.as_view(),
        name="refund-eligibility",
    ),
    path(
        "orders/<uuid:order_id>/refund-request/",
        CustomerRefundRequestView.as_view(),
        name="refund-request",
    ),
    path("refunds/mine/", MyRefundListView.as_view(), name="my-refunds"),
    path(
        "admin/cleanup-abandoned/",
        CleanupAbandonedView.as_view(),
        name="cleanup-abandoned",
    ),
    path(
        "admin/abandoned-stats/",
        AbandonedStatsView.as_view(),
        name="abandoned-stats",
    ),
]
