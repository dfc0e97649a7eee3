# orders/serializers/order_create.py

"""
Transport-layer contracts for POST /api/orders/.
Shapes only; business rules are enforced by order_service.create_order().
"""

from rest_framework import serializers

from orders.models import Order


class OrderItemInputSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class OrderCreateSerializer(serializers.Serializer):
    business_id = serializers.UUIDField()
    items = OrderItemInputSerializer(many=True, allow_empty=False)
    discount_id = serializers.UUIDField(required=False, allow_null=True)
    pickup_at = serializers.DateTimeField()
    payment_method = serializers.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES)
    payment_method_type = serializers.ChoiceField(
        choices=Order.PAYMENT_METHOD_TYPE_CHOICES,
        required=False,
        allow_blank=True,
        default="",
    )
    # true -> bare payment intent (client_key) instead of hosted checkout
    skip_checkout = serializers.BooleanField(required=False, default=False)


class OrderCreateResponseSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    order_number = serializers.CharField()
    arrival_code = serializers.CharField()
    status = serializers.CharField()
    payment_status = serializers.CharField()
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    checkout_url = serializers.URLField(required=False, allow_blank=True)
    client_key = serializers.CharField(required=False, allow_blank=True)
    payment_intent_reference = serializers.CharField(required=False, allow_blank=True)
