# orders/serializers/order_read.py

from rest_framework import serializers

from orders.models import Order, OrderItem
from payments.models import PaymentIntent


class OrderItemSerializer(serializers.ModelSerializer):
    """
    Line item (read-only). Prices are the snapshots taken at order time.
    """

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product",
            "product_name",
            "quantity",
            "unit_price",
            "line_total",
        ]
        read_only_fields = fields


class PaymentIntentSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentIntent
        fields = [
            "id",
            "kind",
            "gateway_reference",
            "amount",
            "currency",
            "status",
            "is_active",
            "checkout_url",
            "client_key",
            "expires_at",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """
    Order read model.

    The arrival code is shown to the purchaser only: the business must
    receive it from the customer at the counter.
    """

    items = OrderItemSerializer(many=True, read_only=True)
    business_name = serializers.CharField(source="business.name", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "business",
            "business_name",
            "purchaser",
            "status",
            "payment_method",
            "payment_method_type",
            "payment_status",
            "subtotal_amount",
            "discount_amount",
            "tax_amount",
            "total_amount",
            "discount_reference",
            "pickup_at",
            "arrival_code",
            "cancelled_at",
            "cancellation_reason",
            "cancellation_penalty",
            "created_at",
            "updated_at",
            "paid_at",
            "picked_up_at",
            "items",
        ]
        read_only_fields = fields

    def to_representation(self, instance):
        data = super().to_representation(instance)

        request = self.context.get("request")
        viewer = getattr(request, "user", None)
        if viewer is None or str(getattr(viewer, "id", "")) != str(instance.purchaser_id):
            data.pop("arrival_code", None)

        return data
