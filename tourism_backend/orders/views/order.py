# orders/views/order.py

"""
ORDER PLACEMENT + READ ENDPOINTS

- POST /api/orders/                  place an order (purchaser = caller)
- GET  /api/orders/<id>/             purchaser, business members, admin
- GET  /api/orders/user/<user_id>/   orders placed by a user

Online orders get a payment intent right after the order commits. If the
gateway fails, the order stays pending (stock reserved) and the response
carries the order so the client can retry via /payment-intent/.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import UserRateThrottle
from rest_framework.views import APIView

from orders.filters import OrderFilter
from orders.serializers import (
    OrderCreateResponseSerializer,
    OrderCreateSerializer,
    OrderSerializer,
)
from orders.services import order_service
from orders.services.exceptions import OrderNotFound, OrderServiceError
from orders.views.errors import error_response, map_service_error
from payments.services.exceptions import PaymentServiceError
from payments.services.intent_service import create_intent_for_order

logger = logging.getLogger(__name__)


class OrderWriteThrottle(UserRateThrottle):
    scope = "order_write"


def client_origin(request) -> str | None:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip()[:64] or None
    return (request.META.get("REMOTE_ADDR") or "")[:64] or None


def _created_body(order, intent=None) -> dict:
    body = {
        "order_id": order.id,
        "order_number": order.order_number,
        "arrival_code": order.arrival_code,
        "status": order.status,
        "payment_status": order.payment_status,
        "total_amount": order.total_amount,
    }
    if intent is not None:
        body["checkout_url"] = intent.checkout_url
        body["client_key"] = intent.client_key
        body["payment_intent_reference"] = intent.gateway_reference
    return OrderCreateResponseSerializer(body).data


class OrderCreateView(APIView):
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser]
    throttle_classes = [OrderWriteThrottle]

    @extend_schema(
        request=OrderCreateSerializer,
        responses={
            201: OrderCreateResponseSerializer,
            400: OpenApiResponse(description="Validation error"),
            409: OpenApiResponse(description="Insufficient stock"),
            502: OpenApiResponse(description="Gateway rejected the payment intent (order kept)"),
            503: OpenApiResponse(description="Gateway timeout (order kept, retry payment-intent)"),
        },
        description="Place an order. Stock is reserved; online orders get a checkout session.",
        tags=["Orders"],
    )
    def post(self, request):
        s = OrderCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        try:
            order = order_service.create_order(
                purchaser=request.user,
                business_id=data["business_id"],
                items=data["items"],
                pickup_at=data["pickup_at"],
                payment_method=data["payment_method"],
                payment_method_type=data.get("payment_method_type", ""),
                discount_id=data.get("discount_id"),
                origin=client_origin(request),
            )
        except OrderServiceError as exc:
            return map_service_error(exc)

        if not order.is_online_payment:
            return Response(_created_body(order), status=status.HTTP_201_CREATED)

        try:
            intent = create_intent_for_order(order, use_checkout=not data["skip_checkout"])
        except PaymentServiceError as exc:
            logger.warning(
                "Order kept pending without payment intent",
                extra={"order_id": str(order.id), "error": str(exc)},
            )
            return map_service_error(exc, extra={"order": _created_body(order)})

        return Response(_created_body(order, intent), status=status.HTTP_201_CREATED)


class OrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        responses={200: OrderSerializer, 404: OpenApiResponse(description="Not found")},
        tags=["Orders"],
    )
    def get(self, request, order_id):
        try:
            order = order_service.get_order(order_id)
        except OrderServiceError as exc:
            return map_service_error(exc)

        # not-visible looks like not-found
        if not order_service.can_view_order(order=order, viewer=request.user):
            return map_service_error(OrderNotFound(f"Order {order_id} not found"))

        return Response(OrderSerializer(order, context={"request": request}).data)


class UserOrderListView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        responses={200: OrderSerializer(many=True), 403: OpenApiResponse(description="Forbidden")},
        tags=["Orders"],
    )
    def get(self, request, user_id):
        try:
            qs = order_service.orders_for_user(user_id=user_id, viewer=request.user)
        except OrderServiceError as exc:
            return map_service_error(exc)

        filterset = OrderFilter(request.query_params, queryset=qs)
        if not filterset.is_valid():
            return error_response(
                code="INVALID_FILTER",
                message="Invalid filter parameters",
                http_status=status.HTTP_400_BAD_REQUEST,
                extra={"detail": filterset.errors},
            )

        qs = filterset.qs.select_related("business")
        return Response(OrderSerializer(qs, many=True, context={"request": request}).data)
