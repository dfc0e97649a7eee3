# orders/views/transitions.py

"""
ORDER LIFECYCLE TRANSITIONS

- POST /api/orders/<id>/cancel/          purchaser (policy) | business | admin
- POST /api/orders/<id>/status/          business | admin, adjacency enforced
- POST /api/orders/<id>/pickup/          business | admin, arrival code checked
- POST /api/orders/<id>/payment-intent/  purchaser, retry a failed/expired checkout
- POST /api/orders/<id>/verify-payment/  after checkout return: ask the gateway, capture if paid
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework.parsers import JSONParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.serializers import (
    OrderCancelSerializer,
    OrderPickupSerializer,
    OrderSerializer,
    OrderStatusSerializer,
    PaymentIntentRequestSerializer,
    PaymentIntentSerializer,
)
from orders.services import order_service
from orders.services.exceptions import OrderAccessDenied, OrderServiceError
from orders.views.errors import map_service_error
from orders.views.order import OrderWriteThrottle, client_origin
from payments.serializers import PaymentVerificationSerializer
from payments.services import payment_verification
from payments.services.exceptions import PaymentServiceError
from payments.services.intent_service import create_intent_for_order
from users.permissions import IsBusinessMemberOrAdmin


def _order_response(order, request):
    return Response(OrderSerializer(order, context={"request": request}).data)


class OrderCancelView(APIView):
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser]
    throttle_classes = [OrderWriteThrottle]

    @extend_schema(
        request=OrderCancelSerializer,
        responses={
            200: OrderSerializer,
            403: OpenApiResponse(description="Not allowed to cancel this order"),
            404: OpenApiResponse(description="Not found"),
            409: OpenApiResponse(description="Already in terminal state / not cancellable"),
            422: OpenApiResponse(description="Cancellation policy forbids it"),
        },
        tags=["Orders"],
    )
    def post(self, request, order_id):
        s = OrderCancelSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            order = order_service.cancel_order(
                order_id=order_id,
                actor=request.user,
                reason=s.validated_data.get("reason", ""),
                origin=client_origin(request),
            )
        except OrderServiceError as exc:
            return map_service_error(exc)

        return _order_response(order, request)


class OrderStatusView(APIView):
    permission_classes = [IsAuthenticated, IsBusinessMemberOrAdmin]
    parser_classes = [JSONParser]
    throttle_classes = [OrderWriteThrottle]

    @extend_schema(
        request=OrderStatusSerializer,
        responses={
            200: OrderSerializer,
            409: OpenApiResponse(description="Transition not allowed"),
        },
        tags=["Orders"],
    )
    def post(self, request, order_id):
        s = OrderStatusSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            order = order_service.advance_status(
                order_id=order_id,
                next_status=s.validated_data["status"],
                actor=request.user,
                origin=client_origin(request),
            )
        except OrderServiceError as exc:
            return map_service_error(exc)

        return _order_response(order, request)


class OrderPickupView(APIView):
    permission_classes = [IsAuthenticated, IsBusinessMemberOrAdmin]
    parser_classes = [JSONParser]
    throttle_classes = [OrderWriteThrottle]

    @extend_schema(
        request=OrderPickupSerializer,
        responses={
            200: OrderSerializer,
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Order is not ready for pickup"),
            422: OpenApiResponse(description="Arrival code does not match"),
        },
        tags=["Orders"],
    )
    def post(self, request, order_id):
        s = OrderPickupSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            order = order_service.mark_picked_up(
                order_id=order_id,
                arrival_code=s.validated_data["arrival_code"],
                actor=request.user,
                origin=client_origin(request),
            )
        except OrderServiceError as exc:
            return map_service_error(exc)

        return _order_response(order, request)


class OrderPaymentIntentView(APIView):
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser]
    throttle_classes = [OrderWriteThrottle]

    @extend_schema(
        request=PaymentIntentRequestSerializer,
        responses={
            201: PaymentIntentSerializer,
            409: OpenApiResponse(description="Order no longer accepts payment"),
            502: OpenApiResponse(description="Gateway rejected the request"),
            503: OpenApiResponse(description="Gateway timeout"),
        },
        description="Create a fresh payment intent, superseding any active one.",
        tags=["Orders"],
    )
    def post(self, request, order_id):
        s = PaymentIntentRequestSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            order = order_service.get_order(order_id)
            if str(order.purchaser_id) != str(request.user.id):
                raise OrderAccessDenied("Only the purchaser may pay for this order")
            intent = create_intent_for_order(
                order, use_checkout=not s.validated_data["skip_checkout"]
            )
        except (OrderServiceError, PaymentServiceError) as exc:
            return map_service_error(exc)

        return Response(PaymentIntentSerializer(intent).data, status=201)


class OrderVerifyPaymentView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_classes = [OrderWriteThrottle]

    @extend_schema(
        request=None,
        responses={
            200: PaymentVerificationSerializer,
            403: OpenApiResponse(description="Not allowed to view this order"),
            409: OpenApiResponse(description="Not an online order / amount mismatch"),
            502: OpenApiResponse(description="Gateway error"),
            503: OpenApiResponse(description="Gateway timeout"),
        },
        description="Check the active checkout with PayMongo and record the payment if it succeeded.",
        tags=["Orders"],
    )
    def post(self, request, order_id):
        try:
            result = payment_verification.verify_order_payment(
                order_id=order_id, viewer=request.user
            )
        except (OrderServiceError, PaymentServiceError) as exc:
            return map_service_error(exc)

        return Response(PaymentVerificationSerializer(result).data)
