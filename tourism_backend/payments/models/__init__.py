from .payment_intent import PaymentIntent
from .refund import Refund
from .webhook_event import WebhookEvent

__all__ = ["PaymentIntent", "Refund", "WebhookEvent"]
