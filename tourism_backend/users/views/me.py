# users/views/me.py

"""
GET /api/auth/me/

The caller as the order lifecycle sees them: role, the business they act
for, what they may do with orders, and how many live orders concern them.
"""

from drf_spectacular.utils import extend_schema
from rest_framework import serializers
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.models import Order
from users.models import BUSINESS_ROLES, ROLE_ADMIN, ROLE_TOURIST, User


class MeSerializer(serializers.ModelSerializer):
    business_id = serializers.UUIDField(allow_null=True, read_only=True)
    business_name = serializers.SerializerMethodField()
    capabilities = serializers.SerializerMethodField()
    live_orders = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "first_name",
            "last_name",
            "role",
            "business_id",
            "business_name",
            "capabilities",
            "live_orders",
        ]
        read_only_fields = fields

    def get_business_name(self, user):
        return user.business.name if user.business_id else None

    def get_capabilities(self, user) -> dict:
        manages = user.role == ROLE_ADMIN or (user.role in BUSINESS_ROLES and user.business_id)
        return {
            "place_orders": user.role == ROLE_TOURIST,
            "manage_orders": bool(manages),
            "refund_orders": bool(manages),
            "run_sweeper": user.role == ROLE_ADMIN,
        }

    def get_live_orders(self, user) -> int:
        live = Order.objects.filter(status__in=Order.LIVE_STATUSES)
        if user.role == ROLE_ADMIN:
            return live.count()
        if user.role in BUSINESS_ROLES:
            return live.filter(business_id=user.business_id).count() if user.business_id else 0
        return live.filter(purchaser_id=user.id).count()


class MeView(APIView):
    permission_classes = [IsAuthenticated]
    serializer_class = MeSerializer

    @extend_schema(
        responses={200: MeSerializer},
        description="Current user with order capabilities and live order count",
        tags=["Auth"],
    )
    def get(self, request):
        user = User.objects.select_related("business").get(id=request.user.id)
        return Response(MeSerializer(user).data)
