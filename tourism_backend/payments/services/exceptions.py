# payments/services/exceptions.py

"""
PAYMENT DOMAIN EXCEPTIONS
"""


class PaymentServiceError(Exception):
    """Base exception for payment operations."""


# ------------------------------------------------------------
# Gateway
# ------------------------------------------------------------


class PaymentGatewayError(PaymentServiceError):
    """Gateway rejected the request or answered with garbage (retryable by the caller)."""

    def __init__(self, message, *, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class PaymentGatewayTimeout(PaymentGatewayError):
    """No answer within the configured timeout; outcome unknown."""


class PaymentGatewayConfigError(PaymentGatewayError):
    """Gateway credentials missing or malformed."""


class PaymentIntentNotAllowed(PaymentServiceError):
    """Order is not in a state that accepts a (new) payment intent."""


# ------------------------------------------------------------
# Webhooks
# ------------------------------------------------------------


class WebhookSignatureError(PaymentServiceError):
    pass


class WebhookDataError(PaymentServiceError):
    """Authentic event that cannot be applied (unknown order, amount mismatch, ...)."""


# ------------------------------------------------------------
# Refunds
# ------------------------------------------------------------


class RefundError(PaymentServiceError):
    pass


class RefundAmountExceeded(RefundError):
    pass


class RefundNotAllowed(RefundError):
    pass


# ------------------------------------------------------------
# Capture
# ------------------------------------------------------------


class PaymentAmountMismatch(PaymentServiceError):
    """Captured amount differs from the amount the intent asked for."""
