from .cancellation_policy import (
    DEFAULT_POLICY,
    CancellationPolicySnapshot,
    get_cancellation_policy,
)
from .discounts import DiscountSnapshot, get_discount

__all__ = [
    "CancellationPolicySnapshot",
    "DEFAULT_POLICY",
    "DiscountSnapshot",
    "get_cancellation_policy",
    "get_discount",
]
