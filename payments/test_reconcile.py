from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from .models import PaymentOrder
from .test_mercadopago import FakeResponse

REQUEST_PATH = "payments.integrations.mercadopago.requests.request"


def make_order(**kwargs):
    defaults = dict(
        client_user_id="u1", lawyer_user_id="l1", appointment_id="a1",
        total_amount=10000, lawyer_amount=8500, platform_fee=1500,
    )
    defaults.update(kwargs)
    return PaymentOrder.objects.create(**defaults)


def search_response(order, *payments):
    return FakeResponse(200, {
        "results": [dict(p, external_reference=str(order.id)) for p in payments],
        "paging": {"total": len(payments)},
    })


class PaymentSyncViewTests(TestCase):
    def setUp(self):
        self.order = make_order()

    def test_sync_applies_latest_gateway_payment(self):
        resp = search_response(
            self.order,
            {"id": 1, "status": "rejected", "date_last_updated": "2024-05-01T10:00:00.000-04:00"},
            {"id": 2, "status": "approved", "date_last_updated": "2024-05-01T10:05:00.000-04:00"},
        )
        with patch(REQUEST_PATH, return_value=resp) as req:
            r = self.client.post(reverse("payments:payment_sync", args=[self.order.id]))

        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["payment"]["status"], "succeeded")
        self.assertEqual(req.call_args.kwargs["params"]["external_reference"], str(self.order.id))
        self.order.refresh_from_db()
        self.assertEqual(self.order.gateway_payment_id, "2")

    def test_sync_without_gateway_payments_keeps_pending(self):
        with patch(REQUEST_PATH, return_value=search_response(self.order)):
            r = self.client.post(reverse("payments:payment_sync", args=[self.order.id]))
        self.assertEqual(r.json()["payment"]["status"], "pending")

    def test_sync_gateway_error(self):
        with patch(REQUEST_PATH, return_value=FakeResponse(401, {"message": "invalid token"})):
            r = self.client.post(reverse("payments:payment_sync", args=[self.order.id]))
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json()["error"], "Failed to fetch payment from gateway")

    def test_sync_unknown_order(self):
        with patch(REQUEST_PATH) as req:
            r = self.client.post(reverse("payments:payment_sync", args=["00000000-0000-0000-0000-000000000000"]))
        self.assertEqual(r.status_code, 404)
        req.assert_not_called()


class ReconcilePendingPaymentsCommandTests(TestCase):
    def _age(self, order, minutes):
        PaymentOrder.objects.filter(pk=order.pk).update(updated_at=timezone.now() - timedelta(minutes=minutes))

    def test_no_pending(self):
        out = StringIO()
        call_command("reconcile_pending_payments", "--sleep", "0", stdout=out)
        self.assertIn("No pending payments", out.getvalue())

    def test_updates_stale_pending_orders(self):
        stale = make_order(appointment_id="a-stale")
        fresh = make_order(appointment_id="a-fresh")
        done = make_order(appointment_id="a-done", status="succeeded")
        self._age(stale, 30)
        self._age(done, 30)

        def fake_request(method, url, **kwargs):
            ref = kwargs["params"]["external_reference"]
            return FakeResponse(200, {"results": [{"id": 9, "status": "approved", "external_reference": ref}]})

        out = StringIO()
        with patch(REQUEST_PATH, side_effect=fake_request) as req:
            call_command("reconcile_pending_payments", "--sleep", "0", stdout=out)

        self.assertEqual(req.call_count, 1)
        stale.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(stale.status, "succeeded")
        self.assertEqual(fresh.status, "pending")
        self.assertIn("Checked 1, updated 1 payments.", out.getvalue())

    def test_gateway_errors_are_reported_and_skipped(self):
        order = make_order()
        self._age(order, 30)
        out = StringIO()
        with patch(REQUEST_PATH, return_value=FakeResponse(500, {})):
            call_command("reconcile_pending_payments", "--sleep", "0", stdout=out)
        self.assertIn(str(order.id), out.getvalue())
        self.assertIn("Checked 1, updated 0 payments.", out.getvalue())
        order.refresh_from_db()
        self.assertEqual(order.status, "pending")
