# payments/serializers/sweeper.py

from rest_framework import serializers


class SweepResultSerializer(serializers.Serializer):
    orders_abandoned = serializers.IntegerField()
    intents_expired = serializers.IntegerField()
    stock_units_released = serializers.IntegerField()
    orders_skipped = serializers.IntegerField()
    errors = serializers.ListField(child=serializers.DictField())
    lock_acquired = serializers.BooleanField()


class AbandonmentStatsSerializer(serializers.Serializer):
    pending_online_orders = serializers.IntegerField()
    potentially_abandoned = serializers.IntegerField()
    expired_active_intents = serializers.IntegerField()
    oldest_pending_age_minutes = serializers.IntegerField(allow_null=True)
    threshold_minutes = serializers.IntegerField()
    batch_size = serializers.IntegerField()
    verify_with_gateway = serializers.BooleanField()
