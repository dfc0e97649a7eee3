"""
ORDER LIFECYCLE DOMAIN RULES

This module defines the ONLY allowed lifecycle transitions
for Order entities.

DESIGN PRINCIPLES:
- No database writes
- No stock mutation
- No side effects
- Single source of truth

    pending -> accepted -> preparing -> ready_for_pickup -> picked_up
    pending | accepted | preparing -> cancelled_by_user | cancelled_by_business
    pending -> failed_payment
"""

from orders.models import Order
from orders.services.exceptions import InvalidOrderTransition, OrderAlreadyTerminal

# ============================================================
# STATE DEFINITIONS
# ============================================================

TERMINAL_STATES = frozenset(
    {
        Order.STATUS_PICKED_UP,
        Order.STATUS_CANCELLED_BY_USER,
        Order.STATUS_CANCELLED_BY_BUSINESS,
        Order.STATUS_FAILED_PAYMENT,
    }
)

CANCELLED_STATES = frozenset(
    {
        Order.STATUS_CANCELLED_BY_USER,
        Order.STATUS_CANCELLED_BY_BUSINESS,
    }
)

CANCELLABLE_STATES = frozenset(
    {
        Order.STATUS_PENDING,
        Order.STATUS_ACCEPTED,
        Order.STATUS_PREPARING,
    }
)

ALLOWED_TRANSITIONS = {
    Order.STATUS_PENDING: {
        Order.STATUS_ACCEPTED,
        Order.STATUS_CANCELLED_BY_USER,
        Order.STATUS_CANCELLED_BY_BUSINESS,
        Order.STATUS_FAILED_PAYMENT,
    },
    Order.STATUS_ACCEPTED: {
        Order.STATUS_PREPARING,
        Order.STATUS_CANCELLED_BY_USER,
        Order.STATUS_CANCELLED_BY_BUSINESS,
    },
    Order.STATUS_PREPARING: {
        Order.STATUS_READY_FOR_PICKUP,
        Order.STATUS_CANCELLED_BY_USER,
        Order.STATUS_CANCELLED_BY_BUSINESS,
    },
    Order.STATUS_READY_FOR_PICKUP: {
        Order.STATUS_PICKED_UP,
    },
}

# Online orders may not be worked on before the money is in.
PAYMENT_GATED_STATES = frozenset(
    {
        Order.STATUS_PREPARING,
        Order.STATUS_READY_FOR_PICKUP,
    }
)


# ============================================================
# DOMAIN RULES
# ============================================================


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES


def allowed_next_statuses(from_status: str) -> frozenset:
    if from_status in TERMINAL_STATES:
        return frozenset()
    return frozenset(ALLOWED_TRANSITIONS.get(from_status, set()))


def can_transition(*, from_status: str, to_status: str) -> bool:
    if from_status in TERMINAL_STATES:
        return False

    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def validate_transition(*, order: Order, target_status: str):
    if order.status in TERMINAL_STATES:
        raise OrderAlreadyTerminal(
            f"Order {order.order_number} is already in terminal state '{order.status}'"
        )

    if not can_transition(from_status=order.status, to_status=target_status):
        raise InvalidOrderTransition(
            f"Order {order.order_number} cannot transition from "
            f"'{order.status}' to '{target_status}'"
        )

    if (
        target_status in PAYMENT_GATED_STATES
        and order.is_online_payment
        and order.payment_status != Order.PAYMENT_STATUS_PAID
    ):
        raise InvalidOrderTransition(
            f"Order {order.order_number} must be paid before moving to '{target_status}'"
        )
