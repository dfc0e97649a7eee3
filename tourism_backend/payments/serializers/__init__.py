from .refund import (
    CustomerRefundRequestSerializer,
    CustomerRefundResultSerializer,
    RefundCreateSerializer,
    RefundEligibilitySerializer,
    RefundSerializer,
)
from .sweeper import AbandonmentStatsSerializer, SweepResultSerializer
from .verification import PaymentVerificationSerializer

__all__ = [
    "AbandonmentStatsSerializer",
    "CustomerRefundRequestSerializer",
    "CustomerRefundResultSerializer",
    "PaymentVerificationSerializer",
    "RefundCreateSerializer",
    "RefundEligibilitySerializer",
    "RefundSerializer",
    "SweepResultSerializer",
]
