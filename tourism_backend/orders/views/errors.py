# orders/views/errors.py

"""
API ERROR NORMALIZATION

Every lifecycle endpoint answers failures with:
    {"error": {"code": "...", "message": "..."}}
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response

from orders.services.exceptions import (
    ArrivalCodeMismatch,
    CancellationNotAllowed,
    InvalidOrderTransition,
    OrderAccessDenied,
    OrderAlreadyTerminal,
    OrderNotFound,
    OrderServiceError,
    OrderValidationError,
    StockReservationError,
)
from payments.services.exceptions import (
    PaymentAmountMismatch,
    PaymentGatewayConfigError,
    PaymentGatewayError,
    PaymentGatewayTimeout,
    PaymentIntentNotAllowed,
    PaymentServiceError,
    RefundAmountExceeded,
    RefundError,
    RefundNotAllowed,
)

logger = logging.getLogger(__name__)


def error_response(*, code: str, message: str, http_status: int, extra: dict | None = None):
    """
    Canonical API error response.
    """
    body = {"error": {"code": code, "message": message}}
    if extra:
        body.update(extra)
    return Response(body, status=http_status)


# most specific first
_ERROR_MAP = [
    (OrderAlreadyTerminal, "ORDER_ALREADY_TERMINAL", status.HTTP_409_CONFLICT),
    (InvalidOrderTransition, "INVALID_TRANSITION", status.HTTP_409_CONFLICT),
    (OrderNotFound, "ORDER_NOT_FOUND", status.HTTP_404_NOT_FOUND),
    (OrderAccessDenied, "ORDER_ACCESS_DENIED", status.HTTP_403_FORBIDDEN),
    (OrderValidationError, "ORDER_VALIDATION_ERROR", status.HTTP_400_BAD_REQUEST),
    (CancellationNotAllowed, "CANCELLATION_NOT_ALLOWED", status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ArrivalCodeMismatch, "ARRIVAL_CODE_MISMATCH", status.HTTP_422_UNPROCESSABLE_ENTITY),
    (StockReservationError, "INSUFFICIENT_STOCK", status.HTTP_409_CONFLICT),
    (PaymentGatewayTimeout, "PAYMENT_GATEWAY_TIMEOUT", status.HTTP_503_SERVICE_UNAVAILABLE),
    (PaymentGatewayConfigError, "PAYMENT_GATEWAY_UNAVAILABLE", status.HTTP_503_SERVICE_UNAVAILABLE),
    (PaymentGatewayError, "PAYMENT_GATEWAY_ERROR", status.HTTP_502_BAD_GATEWAY),
    (PaymentIntentNotAllowed, "PAYMENT_INTENT_NOT_ALLOWED", status.HTTP_409_CONFLICT),
    (PaymentAmountMismatch, "PAYMENT_AMOUNT_MISMATCH", status.HTTP_409_CONFLICT),
    (RefundAmountExceeded, "REFUND_AMOUNT_EXCEEDED", status.HTTP_422_UNPROCESSABLE_ENTITY),
    (RefundNotAllowed, "REFUND_NOT_ALLOWED", status.HTTP_409_CONFLICT),
    (RefundError, "REFUND_INVALID", status.HTTP_400_BAD_REQUEST),
]


def map_service_error(exc: Exception, *, extra: dict | None = None):
    """
    Translate an order/payment domain exception into an error response.
    Anything unexpected propagates (DRF turns it into a 500).
    """
    for exc_type, code, http_status in _ERROR_MAP:
        if isinstance(exc, exc_type):
            body_extra = dict(extra or {})
            if isinstance(exc, StockReservationError):
                body_extra["detail"] = {
                    "product_id": str(exc.product_id) if exc.product_id else None,
                    "requested": exc.requested,
                    "available": exc.available,
                }
            if http_status >= 500:
                logger.warning("Payment gateway failure surfaced to client", extra={"code": code})
            return error_response(
                code=code,
                message=str(exc),
                http_status=http_status,
                extra=body_extra or None,
            )

    if isinstance(exc, (OrderServiceError, PaymentServiceError)):
        return error_response(
            code="ORDER_ERROR",
            message=str(exc),
            http_status=status.HTTP_400_BAD_REQUEST,
            extra=extra,
        )
    raise exc
