# orders/serializers/commands.py

from rest_framework import serializers


class OrderCancelSerializer(serializers.Serializer):
    """
    Command serializer for cancellation.
    Validates input only; the policy lives in order_service.
    """

    reason = serializers.CharField(
        required=False,
        allow_blank=True,
        max_length=500,
        default="",
    )


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=32)


class OrderPickupSerializer(serializers.Serializer):
    arrival_code = serializers.RegexField(
        regex=r"^\d{6}$",
        error_messages={"invalid": "arrival_code must be 6 digits"},
    )


class PaymentIntentRequestSerializer(serializers.Serializer):
    skip_checkout = serializers.BooleanField(required=False, default=False)
