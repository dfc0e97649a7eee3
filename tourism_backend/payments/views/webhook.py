# payments/views/webhook.py

"""
POST /api/payment/webhook/

PayMongo delivers events at least once. The reconciler makes every
delivery idempotent; this view only maps outcomes to HTTP:
- 401 bad signature (nothing touched)
- 400 body is not a PayMongo event at all
- 200 processed / duplicate / failed (failed events are kept for review
  and re-attempted on redelivery)
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle
from rest_framework.views import APIView

from orders.views.errors import error_response
from payments.services import webhook_reconciler
from payments.services.exceptions import WebhookDataError, WebhookSignatureError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Paymongo-Signature"


class WebhookThrottle(AnonRateThrottle):
    scope = "webhook"


class PaymongoWebhookView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]
    throttle_classes = [WebhookThrottle]

    @extend_schema(
        request=None,
        responses={
            200: OpenApiResponse(description="Accepted (processed, duplicate or recorded as failed)"),
            400: OpenApiResponse(description="Not a PayMongo event"),
            401: OpenApiResponse(description="Invalid signature"),
        },
        tags=["Payments"],
    )
    def post(self, request, *args, **kwargs):
        raw_body = getattr(request, "body", b"") or b""
        signature = request.headers.get(SIGNATURE_HEADER)

        try:
            outcome = webhook_reconciler.handle(raw_body, signature)
        except WebhookSignatureError:
            logger.warning("Invalid PayMongo signature")
            return error_response(
                code="INVALID_SIGNATURE",
                message="Invalid signature",
                http_status=status.HTTP_401_UNAUTHORIZED,
            )
        except WebhookDataError as exc:
            logger.error("Unreadable PayMongo webhook", extra={"error": str(exc)})
            return error_response(
                code="INVALID_PAYLOAD",
                message=str(exc),
                http_status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(
            {
                "ok": True,
                "event_id": outcome.event_id,
                "status": outcome.status,
                "detail": outcome.note or outcome.error or outcome.status,
            },
            status=status.HTTP_200_OK,
        )
