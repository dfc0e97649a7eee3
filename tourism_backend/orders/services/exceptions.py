# orders/services/exceptions.py

"""
ORDER DOMAIN EXCEPTIONS

Raised by orders.services.*; views translate them to HTTP
(see orders/views/errors.py).
"""


class OrderServiceError(Exception):
    """Base exception for all order lifecycle errors."""


class OrderValidationError(OrderServiceError):
    """Input rejected before anything was written (HTTP 400)."""


class OrderNotFound(OrderServiceError):
    pass


class OrderAccessDenied(OrderServiceError):
    """Caller is identified but may not act on this order."""


class InvalidOrderTransition(OrderServiceError):
    """Requested status is not adjacent to the current one."""


class OrderAlreadyTerminal(InvalidOrderTransition):
    """Order is already picked up, cancelled or failed."""


class CancellationNotAllowed(OrderServiceError):
    """Cancellation policy forbids this cancellation."""


class ArrivalCodeMismatch(OrderServiceError):
    """Supplied arrival code does not match the order."""


class StockReservationError(OrderServiceError):
    """Not enough stock for at least one line (nothing was reserved)."""

    def __init__(self, message, *, product_id=None, requested=None, available=None):
        super().__init__(message)
        self.product_id = product_id
        self.requested = requested
        self.available = available
