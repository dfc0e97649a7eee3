# payments/services/webhook_events.py

"""
PAYMONGO WEBHOOK ENVELOPE

{
  "data": {
    "id": "evt_...",
    "attributes": {
      "type": "payment.paid",
      "livemode": false,
      "data": { "id": "pay_...", "attributes": { ... } }
    }
  }
}

read_envelope() pulls the event id and type so the delivery can be stored
before anything else is trusted. parse_event() turns the envelope into a
ParsedEvent whose `type` is a closed enum; unhandled types map to UNKNOWN,
malformed resource fields raise WebhookDataError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from payments.services.exceptions import WebhookDataError


class WebhookEventType(str, Enum):
    PAYMENT_PAID = "payment.paid"
    PAYMENT_FAILED = "payment.failed"
    CHECKOUT_SESSION_PAYMENT_PAID = "checkout_session.payment.paid"
    REFUND_SUCCEEDED = "refund.succeeded"
    REFUND_FAILED = "refund.failed"
    REFUND_UPDATED = "refund.updated"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, raw: str) -> "WebhookEventType":
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


PAYMENT_PAID_TYPES = frozenset(
    {WebhookEventType.PAYMENT_PAID, WebhookEventType.CHECKOUT_SESSION_PAYMENT_PAID}
)
REFUND_TYPES = frozenset(
    {
        WebhookEventType.REFUND_SUCCEEDED,
        WebhookEventType.REFUND_FAILED,
        WebhookEventType.REFUND_UPDATED,
    }
)


@dataclass(frozen=True)
class ParsedEvent:
    event_id: str
    type: WebhookEventType
    raw_type: str
    resource_id: str = ""
    payment_intent_ref: str = ""
    payment_id: str = ""
    amount_centavos: Optional[int] = None
    resource_status: str = ""
    order_id: str = ""
    refund_id: str = ""
    failure_message: str = ""
    payload: dict = field(default_factory=dict)


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _as_int(value) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise WebhookDataError(f"Invalid amount in webhook payload: {value!r}")


def _checkout_session_fields(resource_id: str, attrs: dict) -> dict:
    """
    checkout_session.payment.paid carries the session; the captured
    payment sits in attributes.payments[0].
    """
    pi = _as_dict(attrs.get("payment_intent"))
    payments = attrs.get("payments") or []
    payment = _as_dict(payments[0]) if payments else {}
    payment_attrs = _as_dict(payment.get("attributes"))

    amount = _as_int(payment_attrs.get("amount"))
    if amount is None:
        amount = _as_int(_as_dict(pi.get("attributes")).get("amount"))

    return {
        "payment_intent_ref": str(pi.get("id") or payment_attrs.get("payment_intent_id") or ""),
        "payment_id": str(payment.get("id") or ""),
        "amount_centavos": amount,
        "resource_status": str(payment_attrs.get("status") or attrs.get("status") or ""),
        "checkout_session_ref": resource_id,
    }


def read_envelope(payload) -> tuple:
    """
    (event_id, raw_type): just enough to record the delivery. Raises
    WebhookDataError only when the body is not a PayMongo event at all.
    """
    if not isinstance(payload, dict):
        raise WebhookDataError("Webhook payload must be a JSON object")

    envelope = _as_dict(payload.get("data"))
    event_id = str(envelope.get("id") or "").strip()
    if not event_id:
        raise WebhookDataError("Webhook payload has no event id")

    event_attrs = _as_dict(envelope.get("attributes"))
    return event_id, str(event_attrs.get("type") or "").strip()


def parse_event(payload: dict) -> ParsedEvent:
    event_id, raw_type = read_envelope(payload)
    event_attrs = _as_dict(_as_dict(payload.get("data")).get("attributes"))
    event_type = WebhookEventType.from_raw(raw_type)

    resource = _as_dict(event_attrs.get("data"))
    resource_id = str(resource.get("id") or "").strip()
    attrs = _as_dict(resource.get("attributes"))
    metadata = _as_dict(attrs.get("metadata"))

    fields = {
        "payment_intent_ref": str(attrs.get("payment_intent_id") or ""),
        "payment_id": "",
        "amount_centavos": _as_int(attrs.get("amount")),
        "resource_status": str(attrs.get("status") or ""),
    }

    if event_type == WebhookEventType.CHECKOUT_SESSION_PAYMENT_PAID:
        fields = _checkout_session_fields(resource_id, attrs)
        # the session itself is what we stored as gateway_reference
        fields["payment_intent_ref"] = fields["payment_intent_ref"] or resource_id
        fields.pop("checkout_session_ref")
    elif event_type in REFUND_TYPES:
        fields["payment_id"] = str(attrs.get("payment_id") or "")
    elif event_type != WebhookEventType.UNKNOWN:
        fields["payment_id"] = resource_id

    return ParsedEvent(
        event_id=event_id,
        type=event_type,
        raw_type=raw_type,
        resource_id=resource_id,
        order_id=str(metadata.get("order_id") or ""),
        refund_id=str(metadata.get("refund_id") or ""),
        failure_message=str(
            attrs.get("failed_message") or attrs.get("failed_code") or ""
        ),
        payload=payload,
        **fields,
    )
