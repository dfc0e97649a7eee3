# payments/serializers/verification.py

from rest_framework import serializers


class PaymentVerificationSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    outcome = serializers.CharField()
    order_status = serializers.CharField()
    payment_status = serializers.CharField()
    gateway_status = serializers.CharField(allow_blank=True)
    note = serializers.CharField(allow_blank=True)
