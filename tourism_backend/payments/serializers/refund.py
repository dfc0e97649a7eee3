# payments/serializers/refund.py

from decimal import Decimal

from rest_framework import serializers

from payments.models import Refund


class RefundCreateSerializer(serializers.Serializer):
    """
    Command serializer: validates shape only.
    Balance / state checks live in refund_coordinator.
    """

    amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0.01")
    )
    reason = serializers.ChoiceField(
        choices=Refund.REASON_CHOICES,
        required=False,
        default=Refund.REASON_REQUESTED_BY_CUSTOMER,
    )
    notes = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")


class RefundSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True)

    class Meta:
        model = Refund
        fields = [
            "id",
            "order",
            "order_number",
            "amount",
            "gateway_reference",
            "status",
            "reason",
            "notes",
            "requested_by",
            "error_detail",
            "created_at",
            "completed_at",
        ]
        read_only_fields = fields


class CustomerRefundRequestSerializer(serializers.Serializer):
    reason = serializers.ChoiceField(
        choices=Refund.REASON_CHOICES,
        required=False,
        default=Refund.REASON_REQUESTED_BY_CUSTOMER,
    )
    notes = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")


class CustomerRefundResultSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    order_status = serializers.CharField()
    cancellation_penalty = serializers.DecimalField(max_digits=12, decimal_places=2)
    refund = RefundSerializer(allow_null=True)


class RefundEligibilitySerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    eligible = serializers.BooleanField()
    reason = serializers.CharField(allow_blank=True)
    payment_method = serializers.CharField()
    order_status = serializers.CharField()
    refundable_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    penalty = serializers.DecimalField(max_digits=12, decimal_places=2)
    can_cancel = serializers.BooleanField()
    requires_business = serializers.BooleanField()
    actions = serializers.ListField(child=serializers.CharField())
