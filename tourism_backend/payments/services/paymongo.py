# payments/services/paymongo.py
"""
PAYMONGO GATEWAY ADAPTER

- Hosted checkout sessions / payment intents (amounts in centavos, PHP)
- Refunds
- Idempotent reads retried with exponential backoff (timeouts / 5xx only)
- Webhook signature verification (t=<ts>,te=<hex>,li=<hex>)

Writes (intent / checkout / refund creation) are never retried: a timeout
means "outcome unknown" and the caller decides.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import socket
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from django.conf import settings

from payments.services.exceptions import (
    PaymentGatewayConfigError,
    PaymentGatewayError,
    PaymentGatewayTimeout,
)

logger = logging.getLogger(__name__)

PAYMONGO_BASE = "https://api.paymongo.com/v1"
CURRENCY = "PHP"
MIN_AMOUNT_CENTAVOS = 2000
DEFAULT_PAYMENT_METHODS = ["gcash", "paymaya", "card", "grab_pay"]
REFUND_REASONS = {"duplicate", "fraudulent", "requested_by_customer", "others"}

RETRY_BACKOFF_SECONDS = 0.5


@dataclass(frozen=True)
class GatewayIntent:
    reference: str
    kind: str
    status: str
    amount_centavos: int
    checkout_url: str = ""
    client_key: str = ""
    payment_intent_ref: str = ""
    payment_id: str = ""
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayRefund:
    reference: str
    status: str
    amount_centavos: int
    raw: dict = field(default_factory=dict)


# ============================================================
# CONFIG
# ============================================================


def _paymongo_cfg() -> dict:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    cfg = payments.get("PAYMONGO") if isinstance(payments, dict) else None
    return cfg if isinstance(cfg, dict) else {}


def _get_secret_key() -> str:
    sk = (_paymongo_cfg().get("SECRET_KEY") or "").strip()
    if not sk:
        raise PaymentGatewayConfigError(
            "PAYMONGO SECRET_KEY is not configured. "
            "Expected settings.PAYMENTS['PAYMONGO']['SECRET_KEY']."
        )
    if not sk.startswith("sk_"):
        raise PaymentGatewayConfigError(
            "Invalid PAYMONGO SECRET_KEY format (expected sk_test_... or sk_live_...)"
        )
    return sk


def _get_webhook_secret() -> str:
    return (_paymongo_cfg().get("WEBHOOK_SECRET") or "").strip()


def _timeout() -> int:
    return int(_paymongo_cfg().get("TIMEOUT_SECONDS") or 15)


def _read_retries() -> int:
    return max(0, int(_paymongo_cfg().get("READ_RETRIES") or 0))


def _tolerance_seconds() -> int:
    return int(_paymongo_cfg().get("WEBHOOK_TOLERANCE_SECONDS") or 300)


# ============================================================
# MONEY
# ============================================================


def to_centavos(amount) -> int:
    try:
        pesos = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError("amount must be a valid Decimal") from exc
    centavos = (pesos * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(centavos)


def from_centavos(centavos) -> Decimal:
    return (Decimal(int(centavos)) / Decimal("100")).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )


# ============================================================
# HTTP
# ============================================================


def _safe_preview(text: str, limit: int = 800) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + " ...(truncated)"


def _error_detail(raw: str) -> str:
    try:
        parsed = json.loads(raw or "")
    except ValueError:
        return _safe_preview(raw)

    errors = parsed.get("errors") if isinstance(parsed, dict) else None
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        return str(errors[0].get("detail") or errors[0].get("code") or "PayMongo rejected request")
    return _safe_preview(raw)


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return True
    reason = getattr(exc, "reason", None)
    return isinstance(reason, (socket.timeout, TimeoutError))


def _request_json(method: str, path: str, *, body: dict | None = None) -> dict[str, Any]:
    sk = _get_secret_key()
    token = base64.b64encode(f"{sk}:".encode("utf-8")).decode("ascii")

    data = None
    if body is not None:
        data = json.dumps(body, ensure_ascii=False).encode("utf-8")

    req = Request(
        f"{PAYMONGO_BASE}{path}",
        data=data,
        headers={
            "Authorization": f"Basic {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        },
        method=method,
    )

    try:
        with urlopen(req, timeout=_timeout()) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except HTTPError as e:
        try:
            raw = e.read().decode("utf-8", errors="replace")
        except OSError:
            raw = ""
        raise PaymentGatewayError(
            f"PayMongo HTTPError: {e.code} {_error_detail(raw)}",
            status_code=e.code,
        ) from e
    except (socket.timeout, TimeoutError) as e:
        raise PaymentGatewayTimeout(f"PayMongo timed out after {_timeout()}s") from e
    except URLError as e:
        if _is_timeout(e):
            raise PaymentGatewayTimeout(f"PayMongo timed out after {_timeout()}s") from e
        raise PaymentGatewayError(f"PayMongo URLError: {e.reason}") from e

    try:
        parsed = json.loads(raw)
    except ValueError as e:
        raise PaymentGatewayError(f"PayMongo returned non-JSON: {_safe_preview(raw)}") from e

    if not isinstance(parsed, dict):
        raise PaymentGatewayError("PayMongo returned an unexpected JSON document")

    return parsed


def _is_retryable(exc: PaymentGatewayError) -> bool:
    if isinstance(exc, PaymentGatewayConfigError):
        return False
    if isinstance(exc, PaymentGatewayTimeout):
        return True
    return exc.status_code is None or int(exc.status_code) >= 500


def outcome_unknown(exc: PaymentGatewayError) -> bool:
    """
    True when a failed write may still have been accepted by PayMongo
    (timeout, transport error, 5xx). Only a 4xx is a definite rejection.
    """
    return _is_retryable(exc)


def _get_with_retry(path: str) -> dict[str, Any]:
    retries = _read_retries()
    attempt = 0
    while True:
        try:
            return _request_json("GET", path)
        except PaymentGatewayError as exc:
            if attempt >= retries or not _is_retryable(exc):
                raise
            delay = RETRY_BACKOFF_SECONDS * (2**attempt)
            logger.warning(
                "PayMongo read failed; retrying",
                extra={"path": path, "attempt": attempt + 1, "delay": delay, "error": str(exc)},
            )
            time.sleep(delay)
            attempt += 1


# ============================================================
# PAYMENT INTENTS / CHECKOUT SESSIONS
# ============================================================


def _normalize_intent_status(raw_status: str) -> str:
    s = (raw_status or "").strip().lower()
    if s in {"succeeded", "paid"}:
        return "succeeded"
    if s in {"processing", "awaiting_next_action"}:
        return "processing"
    if s in {"failed"}:
        return "failed"
    if s in {"expired"}:
        return "expired"
    if s in {"cancelled", "canceled"}:
        return "cancelled"
    return "awaiting_payment_method"


def _order_metadata(order) -> dict:
    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "business_id": str(order.business_id),
    }


def _allowed_methods(order) -> list:
    method_type = (getattr(order, "payment_method_type", "") or "").strip()
    return [method_type] if method_type else list(DEFAULT_PAYMENT_METHODS)


def create_payment_intent(order, *, use_checkout: bool = True) -> GatewayIntent:
    """
    use_checkout=True  -> POST /checkout_sessions (hosted page, checkout_url)
    use_checkout=False -> POST /payment_intents   (client attaches, client_key)
    """
    centavos = to_centavos(order.total_amount)
    if centavos < MIN_AMOUNT_CENTAVOS:
        raise PaymentGatewayError(
            f"Amount below gateway minimum ({MIN_AMOUNT_CENTAVOS} centavos)",
            status_code=400,
        )

    description = f"Order {order.order_number}"
    metadata = _order_metadata(order)

    if use_checkout:
        cfg = _paymongo_cfg()
        attributes = {
            "line_items": [
                {
                    "name": description,
                    "quantity": 1,
                    "amount": centavos,
                    "currency": CURRENCY,
                }
            ],
            "payment_method_types": _allowed_methods(order),
            "description": description,
            "reference_number": order.order_number,
            "send_email_receipt": False,
            "show_line_items": True,
            "metadata": metadata,
        }
        if cfg.get("SUCCESS_URL"):
            attributes["success_url"] = cfg["SUCCESS_URL"]
        if cfg.get("CANCEL_URL"):
            attributes["cancel_url"] = cfg["CANCEL_URL"]

        parsed = _request_json(
            "POST", "/checkout_sessions", body={"data": {"attributes": attributes}}
        )
        data = parsed.get("data") or {}
        attrs = data.get("attributes") or {}
        pi = attrs.get("payment_intent") or {}
        pi_attrs = pi.get("attributes") or {}

        reference = str(data.get("id") or "").strip()
        if not reference:
            raise PaymentGatewayError("PayMongo checkout session response missing id")

        return GatewayIntent(
            reference=reference,
            kind="checkout_session",
            status=_normalize_intent_status(pi_attrs.get("status") or attrs.get("status")),
            amount_centavos=centavos,
            checkout_url=str(attrs.get("checkout_url") or ""),
            payment_intent_ref=str(pi.get("id") or ""),
            raw=data,
        )

    attributes = {
        "amount": centavos,
        "currency": CURRENCY,
        "payment_method_allowed": _allowed_methods(order),
        "payment_method_options": {"card": {"request_three_d_secure": "any"}},
        "capture_type": "automatic",
        "description": description,
        "metadata": metadata,
    }
    parsed = _request_json("POST", "/payment_intents", body={"data": {"attributes": attributes}})
    data = parsed.get("data") or {}
    attrs = data.get("attributes") or {}

    reference = str(data.get("id") or "").strip()
    if not reference:
        raise PaymentGatewayError("PayMongo payment intent response missing id")

    return GatewayIntent(
        reference=reference,
        kind="payment_intent",
        status=_normalize_intent_status(attrs.get("status")),
        amount_centavos=int(attrs.get("amount") or centavos),
        client_key=str(attrs.get("client_key") or ""),
        payment_intent_ref=reference,
        raw=data,
    )


def retrieve_payment_intent(reference: str) -> GatewayIntent:
    """
    Current gateway view of a checkout session (cs_...) or payment intent.
    Idempotent read: retried with backoff on timeouts and 5xx.
    """
    ref = str(reference or "").strip()
    if not ref:
        raise PaymentGatewayError("reference is required")

    if ref.startswith("cs_"):
        data = _get_with_retry(f"/checkout_sessions/{ref}").get("data") or {}
        attrs = data.get("attributes") or {}
        pi = attrs.get("payment_intent") or {}
        pi_attrs = pi.get("attributes") or {}
        payment = _first_payment(attrs) or _first_payment(pi_attrs)
        raw_status = pi_attrs.get("status") or attrs.get("status")
        if payment:
            raw_status = "succeeded"
        return GatewayIntent(
            reference=ref,
            kind="checkout_session",
            status=_normalize_intent_status(raw_status),
            amount_centavos=_payment_amount(payment) or int(pi_attrs.get("amount") or 0),
            checkout_url=str(attrs.get("checkout_url") or ""),
            payment_intent_ref=str(pi.get("id") or ""),
            payment_id=str(payment.get("id") or ""),
            raw=data,
        )

    data = _get_with_retry(f"/payment_intents/{ref}").get("data") or {}
    attrs = data.get("attributes") or {}
    payment = _first_payment(attrs)
    return GatewayIntent(
        reference=ref,
        kind="payment_intent",
        status=_normalize_intent_status(attrs.get("status")),
        amount_centavos=_payment_amount(payment) or int(attrs.get("amount") or 0),
        client_key=str(attrs.get("client_key") or ""),
        payment_intent_ref=ref,
        payment_id=str(payment.get("id") or ""),
        raw=data,
    )


def _first_payment(attrs: dict) -> dict:
    payments = attrs.get("payments") or []
    return payments[0] if payments and isinstance(payments[0], dict) else {}


def _payment_amount(payment: dict) -> int:
    return int((payment.get("attributes") or {}).get("amount") or 0)


# ============================================================
# REFUNDS
# ============================================================


def create_refund(
    *,
    payment_id: str,
    amount,
    reason: str,
    notes: str = "",
    metadata: Optional[dict] = None,
) -> GatewayRefund:
    if not (payment_id or "").strip():
        raise PaymentGatewayError("Payment id is required for refund", status_code=400)

    centavos = to_centavos(amount)
    refund_reason = reason if reason in REFUND_REASONS else "requested_by_customer"

    attributes = {
        "payment_id": payment_id.strip(),
        "amount": centavos,
        "reason": refund_reason,
        "metadata": {k: str(v) for k, v in (metadata or {}).items() if v not in (None, "")},
    }
    if notes:
        attributes["notes"] = notes[:255]

    parsed = _request_json("POST", "/refunds", body={"data": {"attributes": attributes}})
    data = parsed.get("data") or {}
    attrs = data.get("attributes") or {}

    reference = str(data.get("id") or "").strip()
    if not reference:
        raise PaymentGatewayError("PayMongo refund response missing id")

    return GatewayRefund(
        reference=reference,
        status=str(attrs.get("status") or "pending").lower(),
        amount_centavos=int(attrs.get("amount") or centavos),
        raw=data,
    )


# ============================================================
# WEBHOOK SIGNATURE
# ============================================================


def _parse_signature_header(header: str) -> dict:
    parts = {}
    for chunk in (header or "").split(","):
        key, sep, value = chunk.strip().partition("=")
        if sep and key:
            parts[key.strip()] = value.strip()
    return parts


def verify_webhook_signature(
    *, raw_body: bytes, signature_header: str | None, now: Optional[datetime] = None
) -> bool:
    """
    HMAC-SHA256 over "<t>.<raw body>" with the webhook secret, compared in
    constant time against te= (test mode) or li= (live mode).
    Pure: never raises, returns False on anything malformed.
    """
    secret = _get_webhook_secret()
    if not secret or not signature_header:
        return False

    parts = _parse_signature_header(signature_header)
    timestamp = parts.get("t", "")
    candidates = [sig for sig in (parts.get("te"), parts.get("li")) if sig]
    if not timestamp.isdigit() or not candidates:
        return False

    current = int((now or datetime.now(dt_timezone.utc)).timestamp())
    if abs(current - int(timestamp)) > _tolerance_seconds():
        return False

    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")

    signed = timestamp.encode("ascii") + b"." + (raw_body or b"")
    expected = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()

    return any(hmac.compare_digest(expected, sig) for sig in candidates)


def sign_webhook_payload(*, raw_body: bytes, timestamp: int, secret: str | None = None) -> str:
    """
    Build a signature header the way PayMongo does (used by tests and
    local tooling that replays webhooks).
    """
    key = (secret or _get_webhook_secret()).encode("utf-8")
    signed = str(int(timestamp)).encode("ascii") + b"." + (raw_body or b"")
    digest = hmac.new(key, signed, hashlib.sha256).hexdigest()
    return f"t={int(timestamp)},te={digest},li="
