import hashlib
import hmac
from unittest.mock import patch

import requests
from django.test import SimpleTestCase

from .integrations.mercadopago import (
    MercadoPagoClient,
    MercadoPagoError,
    parse_signature_header,
    verify_webhook_signature,
)


class FakeResponse:
    def __init__(self, status_code=200, data=None, text=""):
        self.status_code = status_code
        self._data = data
        self.text = text

    def json(self):
        if self._data is None:
            raise ValueError("No JSON")
        return self._data


REDIRECTS = {
    "success": "https://legalup.test/payment/success",
    "failure": "https://legalup.test/payment/failure",
    "pending": "https://legalup.test/payment/pending",
}
ITEMS = [{"id": "ord-1", "title": "Consulta", "quantity": 1, "currency_id": "CLP", "unit_price": 10000}]


def sign(secret, data_id, request_id, ts="1704908010"):
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
    v1 = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return f"ts={ts},v1={v1}"


class CreateCheckoutTests(SimpleTestCase):
    def setUp(self):
        self.client_ = MercadoPagoClient(
            "TEST-token",
            base_url="https://api.mercadopago.test/",
            notification_url="https://api.legalup.test/webhooks/mercadopago",
        )

    def test_posts_preference_and_returns_session(self):
        resp = FakeResponse(201, {"id": "PREF-1", "init_point": "https://mp.test/init", "sandbox_init_point": "https://mp.test/sandbox"})
        with patch("payments.integrations.mercadopago.requests.request", return_value=resp) as req:
            session = self.client_.create_checkout(ITEMS, {"email": "a@b.cl"}, REDIRECTS, "ord-1")

        self.assertEqual(session.checkout_url, "https://mp.test/init")
        self.assertEqual(session.gateway_id, "PREF-1")

        method, url = req.call_args.args
        self.assertEqual((method, url), ("POST", "https://api.mercadopago.test/checkout/preferences"))
        kwargs = req.call_args.kwargs
        self.assertEqual(kwargs["timeout"], 5)
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer TEST-token")
        self.assertEqual(kwargs["headers"]["X-Idempotency-Key"], "ord-1")
        body = kwargs["json"]
        self.assertEqual(body["external_reference"], "ord-1")
        self.assertEqual(body["items"], ITEMS)
        self.assertEqual(body["back_urls"], REDIRECTS)
        self.assertEqual(body["notification_url"], "https://api.legalup.test/webhooks/mercadopago")
        self.assertTrue(body["binary_mode"])

    def test_falls_back_to_sandbox_link(self):
        resp = FakeResponse(201, {"id": "PREF-1", "sandbox_init_point": "https://mp.test/sandbox"})
        with patch("payments.integrations.mercadopago.requests.request", return_value=resp):
            session = self.client_.create_checkout(ITEMS, {}, REDIRECTS, "ord-1")
        self.assertEqual(session.checkout_url, "https://mp.test/sandbox")

    def test_missing_link_is_an_error(self):
        resp = FakeResponse(201, {"id": "PREF-1"})
        with patch("payments.integrations.mercadopago.requests.request", return_value=resp):
            with self.assertRaises(MercadoPagoError):
                self.client_.create_checkout(ITEMS, {}, REDIRECTS, "ord-1")

    def test_non_2xx_is_an_error(self):
        resp = FakeResponse(500, None, text="upstream exploded")
        with patch("payments.integrations.mercadopago.requests.request", return_value=resp):
            with self.assertRaises(MercadoPagoError) as cm:
                self.client_.create_checkout(ITEMS, {}, REDIRECTS, "ord-1")
        self.assertEqual(cm.exception.status_code, 500)
        self.assertIn("upstream exploded", str(cm.exception))

    def test_timeout_is_an_error(self):
        with patch("payments.integrations.mercadopago.requests.request", side_effect=requests.Timeout("read timed out")):
            with self.assertRaises(MercadoPagoError) as cm:
                self.client_.create_checkout(ITEMS, {}, REDIRECTS, "ord-1")
        self.assertIn("read timed out", str(cm.exception))

    def test_requires_access_token(self):
        with self.assertRaises(MercadoPagoError):
            MercadoPagoClient("")


class PaymentLookupTests(SimpleTestCase):
    def setUp(self):
        self.client_ = MercadoPagoClient("TEST-token", base_url="https://api.mercadopago.test")

    def test_search_payments_by_reference(self):
        resp = FakeResponse(200, {"results": [{"id": 1, "status": "approved"}]})
        with patch("payments.integrations.mercadopago.requests.request", return_value=resp) as req:
            results = self.client_.search_payments("ord-1")
        self.assertEqual(results, [{"id": 1, "status": "approved"}])
        self.assertEqual(req.call_args.kwargs["params"]["external_reference"], "ord-1")

    def test_refund_payment(self):
        resp = FakeResponse(201, {"id": 77, "payment_id": 1})
        with patch("payments.integrations.mercadopago.requests.request", return_value=resp) as req:
            self.client_.refund_payment(1)
        self.assertEqual(req.call_args.args, ("POST", "https://api.mercadopago.test/v1/payments/1/refunds"))
        first_key = req.call_args.kwargs["headers"]["X-Idempotency-Key"]

        with patch("payments.integrations.mercadopago.requests.request", return_value=resp) as req:
            self.client_.refund_payment(1)
        self.assertEqual(req.call_args.kwargs["headers"]["X-Idempotency-Key"], first_key)

        with patch("payments.integrations.mercadopago.requests.request", return_value=resp) as req:
            self.client_.refund_payment(2)
        self.assertNotEqual(req.call_args.kwargs["headers"]["X-Idempotency-Key"], first_key)


class WebhookSignatureTests(SimpleTestCase):
    def test_valid_signature(self):
        header = sign("secret", "123", "req-1")
        self.assertTrue(verify_webhook_signature("secret", header, "req-1", "123"))

    def test_tampered_or_missing_parts(self):
        header = sign("secret", "123", "req-1")
        self.assertFalse(verify_webhook_signature("secret", header, "req-1", "124"))
        self.assertFalse(verify_webhook_signature("other", header, "req-1", "123"))
        self.assertFalse(verify_webhook_signature("secret", header, None, "123"))
        self.assertFalse(verify_webhook_signature("secret", "ts=1", "req-1", "123"))
        self.assertFalse(verify_webhook_signature("secret", None, "req-1", "123"))

    def test_missing_secret_rejects(self):
        header = sign("secret", "123", "req-1")
        with self.assertLogs("payments.integrations.mercadopago", level="ERROR"):
            self.assertFalse(verify_webhook_signature("", header, "req-1", "123"))

    def test_parse_header(self):
        self.assertEqual(parse_signature_header("ts=1, v1=abc"), {"ts": "1", "v1": "abc"})
