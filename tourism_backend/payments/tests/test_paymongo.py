# payments/tests/test_paymongo.py

from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

from django.test import SimpleTestCase, override_settings

from payments.services import paymongo
from payments.services.exceptions import (
    PaymentGatewayConfigError,
    PaymentGatewayError,
    PaymentGatewayTimeout,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)
BODY = b'{"data":{"id":"evt_1"}}'


def _header(body=BODY, *, ts=None, secret="whsk_test_dummy", slot="te"):
    ts = int((ts or NOW).timestamp())
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
    if slot == "li":
        return f"t={ts},te=,li={digest}"
    return f"t={ts},te={digest},li="


class WebhookSignatureTests(SimpleTestCase):
    """
    GUARANTEES:
    - only the exact body signed with our secret verifies
    - stale timestamps are rejected
    - verification never raises
    """

    def test_test_mode_signature(self):
        self.assertTrue(
            paymongo.verify_webhook_signature(raw_body=BODY, signature_header=_header(), now=NOW)
        )

    def test_live_mode_signature(self):
        self.assertTrue(
            paymongo.verify_webhook_signature(
                raw_body=BODY, signature_header=_header(slot="li"), now=NOW
            )
        )

    def test_tampered_body(self):
        self.assertFalse(
            paymongo.verify_webhook_signature(
                raw_body=BODY + b" ", signature_header=_header(), now=NOW
            )
        )

    def test_wrong_secret(self):
        self.assertFalse(
            paymongo.verify_webhook_signature(
                raw_body=BODY, signature_header=_header(secret="whsk_other"), now=NOW
            )
        )

    def test_outside_tolerance(self):
        stale = _header(ts=NOW - timedelta(minutes=10))
        self.assertFalse(
            paymongo.verify_webhook_signature(raw_body=BODY, signature_header=stale, now=NOW)
        )

    def test_garbage_header(self):
        for header in (None, "", "garbage", "t=abc,te=00", "te=00,li="):
            with self.subTest(header=header):
                self.assertFalse(
                    paymongo.verify_webhook_signature(
                        raw_body=BODY, signature_header=header, now=NOW
                    )
                )

    @override_settings(PAYMENTS={"PAYMONGO": {"WEBHOOK_SECRET": ""}})
    def test_missing_secret_rejects_everything(self):
        self.assertFalse(
            paymongo.verify_webhook_signature(raw_body=BODY, signature_header=_header(), now=NOW)
        )

    def test_sign_matches_verify(self):
        header = paymongo.sign_webhook_payload(raw_body=BODY, timestamp=int(NOW.timestamp()))
        self.assertEqual(header, _header())


class MoneyConversionTests(SimpleTestCase):
    def test_to_centavos(self):
        self.assertEqual(paymongo.to_centavos(Decimal("500.00")), 50000)
        self.assertEqual(paymongo.to_centavos("120.505"), 12051)

    def test_to_centavos_rejects_garbage(self):
        with self.assertRaises(ValueError):
            paymongo.to_centavos("abc")

    def test_from_centavos(self):
        self.assertEqual(paymongo.from_centavos(12050), Decimal("120.50"))


def _order(total="500.00"):
    return SimpleNamespace(
        id="0b5c3a1e-0000-4000-8000-000000000001",
        order_number="ORD-20260301-ABCDEF12",
        business_id="0b5c3a1e-0000-4000-8000-000000000002",
        total_amount=Decimal(total),
        payment_method_type="",
    )


class GatewayCallTests(SimpleTestCase):
    """
    GUARANTEES:
    - reads retry on timeouts / 5xx with backoff, never on 4xx
    - writes are never retried
    - amounts below the gateway minimum are refused locally
    """

    def test_checkout_session_created(self):
        response = {
            "data": {
                "id": "cs_abc",
                "attributes": {
                    "checkout_url": "https://checkout.paymongo.com/cs_abc",
                    "payment_intent": {
                        "id": "pi_abc",
                        "attributes": {"status": "awaiting_payment_method"},
                    },
                },
            }
        }
        with mock.patch.object(paymongo, "_request_json", return_value=response) as request:
            intent = paymongo.create_payment_intent(_order())

        method, path = request.call_args.args
        self.assertEqual((method, path), ("POST", "/checkout_sessions"))
        attributes = request.call_args.kwargs["body"]["data"]["attributes"]
        self.assertEqual(attributes["line_items"][0]["amount"], 50000)
        self.assertEqual(attributes["metadata"]["order_id"], _order().id)

        self.assertEqual(intent.reference, "cs_abc")
        self.assertEqual(intent.payment_intent_ref, "pi_abc")
        self.assertEqual(intent.checkout_url, "https://checkout.paymongo.com/cs_abc")

    def test_below_minimum_amount(self):
        with mock.patch.object(paymongo, "_request_json") as request:
            with self.assertRaises(PaymentGatewayError) as ctx:
                paymongo.create_payment_intent(_order("19.99"))

        self.assertEqual(ctx.exception.status_code, 400)
        request.assert_not_called()

    def test_write_not_retried_on_timeout(self):
        with mock.patch.object(
            paymongo, "_request_json", side_effect=PaymentGatewayTimeout("timed out")
        ) as request:
            with self.assertRaises(PaymentGatewayTimeout):
                paymongo.create_payment_intent(_order())

        self.assertEqual(request.call_count, 1)

    def test_read_retried_on_server_error(self):
        ok = {"data": {"id": "pi_abc", "attributes": {"status": "succeeded", "amount": 50000}}}
        failures = [
            PaymentGatewayError("bad gateway", status_code=502),
            PaymentGatewayTimeout("timed out"),
        ]

        with mock.patch.object(paymongo, "_request_json", side_effect=failures + [ok]) as request, \
                mock.patch.object(paymongo.time, "sleep") as sleep:
            intent = paymongo.retrieve_payment_intent("pi_abc")

        self.assertEqual(intent.status, "succeeded")
        self.assertEqual(request.call_count, 3)
        self.assertEqual(
            [c.args[0] for c in sleep.call_args_list],
            [paymongo.RETRY_BACKOFF_SECONDS, paymongo.RETRY_BACKOFF_SECONDS * 2],
        )

    def test_read_gives_up_after_retries(self):
        with mock.patch.object(
            paymongo, "_request_json", side_effect=PaymentGatewayTimeout("timed out")
        ) as request, mock.patch.object(paymongo.time, "sleep"):
            with self.assertRaises(PaymentGatewayTimeout):
                paymongo.retrieve_payment_intent("pi_abc")

        # test settings: READ_RETRIES = 2
        self.assertEqual(request.call_count, 3)

    def test_read_not_retried_on_client_error(self):
        with mock.patch.object(
            paymongo,
            "_request_json",
            side_effect=PaymentGatewayError("not found", status_code=404),
        ) as request, mock.patch.object(paymongo.time, "sleep") as sleep:
            with self.assertRaises(PaymentGatewayError):
                paymongo.retrieve_payment_intent("pi_missing")

        self.assertEqual(request.call_count, 1)
        sleep.assert_not_called()

    def test_checkout_session_with_payment_reads_as_succeeded(self):
        response = {
            "data": {
                "id": "cs_abc",
                "attributes": {
                    "payments": [{"id": "pay_1"}],
                    "payment_intent": {"id": "pi_abc", "attributes": {"status": "processing"}},
                },
            }
        }
        with mock.patch.object(paymongo, "_request_json", return_value=response) as request:
            intent = paymongo.retrieve_payment_intent("cs_abc")

        self.assertEqual(request.call_args.args, ("GET", "/checkout_sessions/cs_abc"))
        self.assertEqual(intent.status, "succeeded")
        self.assertEqual(intent.payment_id, "pay_1")

    def test_paid_intent_reports_payment(self):
        response = {
            "data": {
                "id": "pi_abc",
                "attributes": {
                    "status": "succeeded",
                    "amount": 50000,
                    "payments": [{"id": "pay_9", "attributes": {"amount": 50000}}],
                },
            }
        }
        with mock.patch.object(paymongo, "_request_json", return_value=response):
            intent = paymongo.retrieve_payment_intent("pi_abc")

        self.assertEqual(intent.payment_id, "pay_9")
        self.assertEqual(intent.amount_centavos, 50000)

    def test_refund_requires_payment_id(self):
        with self.assertRaises(PaymentGatewayError):
            paymongo.create_refund(payment_id="", amount="10.00", reason="others")

    def test_refund_created(self):
        response = {"data": {"id": "ref_1", "attributes": {"status": "pending", "amount": 25000}}}
        with mock.patch.object(paymongo, "_request_json", return_value=response) as request:
            refund = paymongo.create_refund(
                payment_id="pay_1",
                amount=Decimal("250.00"),
                reason="not-a-reason",
                metadata={"order_id": "o1", "empty": ""},
            )

        attributes = request.call_args.kwargs["body"]["data"]["attributes"]
        self.assertEqual(attributes["amount"], 25000)
        self.assertEqual(attributes["reason"], "requested_by_customer")
        self.assertEqual(attributes["metadata"], {"order_id": "o1"})
        self.assertEqual(refund.reference, "ref_1")
        self.assertEqual(refund.status, "pending")

    @override_settings(PAYMENTS={"PAYMONGO": {"SECRET_KEY": ""}})
    def test_missing_secret_key(self):
        with self.assertRaises(PaymentGatewayConfigError):
            paymongo._get_secret_key()
