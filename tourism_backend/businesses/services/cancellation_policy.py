# businesses/services/cancellation_policy.py

"""
Read-only access to a business's cancellation policy.

Order code consumes the snapshot, never the model, so policy edits made
after an order was placed do not race with a cancellation in flight.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from businesses.models import CancellationPolicy


@dataclass(frozen=True)
class CancellationPolicySnapshot:
    deadline_hours: Optional[int] = None
    penalty_percent: Optional[Decimal] = None
    penalty_fixed: Optional[Decimal] = None
    allow_customer_cancellation: bool = True

    @property
    def has_penalty(self) -> bool:
        return self.penalty_percent is not None or self.penalty_fixed is not None


DEFAULT_POLICY = CancellationPolicySnapshot()


def get_cancellation_policy(business_id) -> CancellationPolicySnapshot:
    """
    Businesses without a configured policy get the permissive default
    (no deadline, purchasers may cancel).
    """
    policy = CancellationPolicy.objects.filter(business_id=business_id).first()
    if policy is None:
        return DEFAULT_POLICY

    return CancellationPolicySnapshot(
        deadline_hours=policy.deadline_hours,
        penalty_percent=policy.penalty_percent,
        penalty_fixed=policy.penalty_fixed,
        allow_customer_cancellation=bool(policy.allow_customer_cancellation),
    )
