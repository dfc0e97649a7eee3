# payments/views/refund.py

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import generics, status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.services.exceptions import OrderServiceError
from orders.views.errors import map_service_error
from orders.views.order import OrderWriteThrottle
from payments.models import Refund
from payments.serializers import (
    CustomerRefundRequestSerializer,
    CustomerRefundResultSerializer,
    RefundCreateSerializer,
    RefundEligibilitySerializer,
    RefundSerializer,
)
from payments.services import refund_coordinator
from payments.services.exceptions import PaymentServiceError
from users.permissions import IsBusinessMemberOrAdmin


class OrderRefundView(APIView):
    """
    Refund (part of) a captured online payment.

    The refund is submitted to the gateway and left `processing`; the
    terminal outcome arrives by webhook.
    """

    permission_classes = [IsAuthenticated, IsBusinessMemberOrAdmin]
    parser_classes = [JSONParser]
    throttle_classes = [OrderWriteThrottle]

    @extend_schema(
        responses={200: RefundSerializer(many=True)},
        tags=["Payments"],
    )
    def get(self, request, order_id):
        refunds = Refund.objects.filter(order_id=order_id).select_related("order")
        visible = [
            r for r in refunds
            if request.user.role == "admin" or request.user.acts_for_business(r.order.business_id)
        ]
        return Response(RefundSerializer(visible, many=True).data)

    @extend_schema(
        request=RefundCreateSerializer,
        responses={
            201: RefundSerializer,
            409: OpenApiResponse(description="Order has no captured payment"),
            422: OpenApiResponse(description="Amount exceeds refundable balance"),
            502: OpenApiResponse(description="Gateway rejected the refund"),
        },
        tags=["Payments"],
    )
    def post(self, request, order_id):
        s = RefundCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        try:
            refund = refund_coordinator.request_refund(
                order_id=order_id,
                amount=data["amount"],
                reason=data["reason"],
                notes=data.get("notes", ""),
                actor=request.user,
            )
        except (OrderServiceError, PaymentServiceError) as exc:
            return map_service_error(exc)

        return Response(RefundSerializer(refund).data, status=status.HTTP_201_CREATED)


class RefundEligibilityView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        responses={
            200: RefundEligibilitySerializer,
            403: OpenApiResponse(description="Not allowed to view this order"),
            404: OpenApiResponse(description="Not found"),
        },
        description="Whether the purchaser can cancel for a refund right now, and for how much.",
        tags=["Payments"],
    )
    def get(self, request, order_id):
        try:
            eligibility = refund_coordinator.refund_eligibility(
                order_id=order_id, viewer=request.user
            )
        except (OrderServiceError, PaymentServiceError) as exc:
            return map_service_error(exc)

        return Response(RefundEligibilitySerializer(eligibility).data)


class CustomerRefundRequestView(APIView):
    """
    Purchaser-initiated refund: cancels the order under the business's
    cancellation policy and refunds total minus penalty.
    """

    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser]
    throttle_classes = [OrderWriteThrottle]

    @extend_schema(
        request=CustomerRefundRequestSerializer,
        responses={
            201: CustomerRefundResultSerializer,
            403: OpenApiResponse(description="Not the purchaser"),
            409: OpenApiResponse(description="Order is not eligible for a refund"),
            422: OpenApiResponse(description="Cancellation policy forbids it"),
        },
        tags=["Payments"],
    )
    def post(self, request, order_id):
        s = CustomerRefundRequestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        try:
            order, refund = refund_coordinator.request_customer_refund(
                order_id=order_id,
                actor=request.user,
                reason=data["reason"],
                notes=data.get("notes", ""),
            )
        except (OrderServiceError, PaymentServiceError) as exc:
            return map_service_error(exc)

        body = {
            "order_id": order.id,
            "order_status": order.status,
            "cancellation_penalty": order.cancellation_penalty,
            "refund": refund,
        }
        return Response(CustomerRefundResultSerializer(body).data, status=status.HTTP_201_CREATED)


class MyRefundListView(generics.ListAPIView):
    """Refunds on orders the caller placed, newest first."""

    permission_classes = [IsAuthenticated]
    serializer_class = RefundSerializer

    def get_queryset(self):
        return refund_coordinator.refunds_for_purchaser(self.request.user)

    @extend_schema(tags=["Payments"])
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)
