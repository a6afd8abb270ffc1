from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase

from .exceptions import GatewayError, InvalidTransition, LedgerWriteError, OrderNotFound, ValidationError
from .integrations.mercadopago import CheckoutSession, MercadoPagoError
from .ledger import OrderLedger
from .models import PaymentOrder
from .services import PaymentOrchestrator
from .utils import parse_amount, split_amount


class FakeGateway:
    """Records calls; fails when ``error`` is set."""

    def __init__(self, error=None, checkout_url="https://mp.test/checkout/PREF-1", gateway_id="PREF-1"):
        self.error = error
        self.checkout_url = checkout_url
        self.gateway_id = gateway_id
        self.calls = []
        self.refunds = []

    def create_checkout(self, line_items, payer, redirect_urls, external_reference):
        self.calls.append({
            "line_items": line_items,
            "payer": payer,
            "redirect_urls": redirect_urls,
            "external_reference": external_reference,
        })
        if self.error:
            raise self.error
        return CheckoutSession(checkout_url=self.checkout_url, gateway_id=self.gateway_id)

    def refund_payment(self, payment_id, amount=None):
        self.refunds.append(payment_id)
        if self.error:
            raise self.error
        return {"id": 99, "payment_id": payment_id, "status": "approved"}


def make_request(**overrides):
    body = {
        "amount": 10000,
        "user_id": "u1",
        "lawyer_id": "l1",
        "appointment_id": "a1",
        "description": "Consulta laboral",
        "user_email": "cliente@example.com",
        "user_name": "Ana Pérez",
    }
    body.update(overrides)
    return body


class SplitAmountTests(SimpleTestCase):
    def test_observed_split(self):
        self.assertEqual(split_amount(10000), (8500, 1500))

    def test_sum_never_below_total(self):
        for total in list(range(1, 2000)) + [99999, 123457, 10**9 + 7]:
            split = split_amount(total)
            self.assertIn(split.lawyer_amount + split.platform_fee, (total, total + 1), total)

    def test_fee_rounds_up_and_share_rounds_down(self):
        # 0.15 * 7 = 1.05, 0.85 * 7 = 5.95
        self.assertEqual(split_amount(7), (5, 2))

    def test_custom_fee_percent(self):
        self.assertEqual(split_amount(10000, Decimal("0.2")), (8000, 2000))


class ParseAmountTests(SimpleTestCase):
    def test_accepts_integral_values(self):
        self.assertEqual(parse_amount(10000), 10000)
        self.assertEqual(parse_amount("25000"), 25000)
        self.assertEqual(parse_amount(15000.0), 15000)

    def test_rejects_bad_values(self):
        for value in (0, -5, "abc", "", 10.5, "NaN", "Infinity", True, None):
            with self.assertRaises(ValueError, msg=repr(value)):
                parse_amount(value)


class PaymentOrderTransitionTests(SimpleTestCase):
    def test_lifecycle(self):
        order = PaymentOrder(status=PaymentOrder.Status.PENDING)
        self.assertTrue(order.can_transition_to("succeeded"))
        self.assertTrue(order.can_transition_to("failed"))
        self.assertFalse(order.can_transition_to("refunded"))

        order.status = PaymentOrder.Status.SUCCEEDED
        self.assertTrue(order.can_transition_to("refunded"))
        self.assertFalse(order.can_transition_to("failed"))

        for terminal in ("failed", "refunded"):
            order.status = terminal
            for target in ("pending", "succeeded", "failed", "refunded"):
                self.assertFalse(order.can_transition_to(target))


class OrderLedgerTests(TestCase):
    def setUp(self):
        self.ledger = OrderLedger()
        self.order = self.ledger.insert(PaymentOrder(
            client_user_id="u1", lawyer_user_id="l1", appointment_id="a1",
            total_amount=10000, lawyer_amount=8500, platform_fee=1500,
        ))

    def test_gateway_reference_set_once(self):
        self.ledger.update_status(self.order.id, gateway_reference="PREF-1")
        self.ledger.update_status(self.order.id, gateway_reference="PREF-1")
        with self.assertRaises(InvalidTransition):
            self.ledger.update_status(self.order.id, gateway_reference="PREF-2")
        self.assertEqual(self.ledger.get_by_id(self.order.id).payment_gateway_id, "PREF-1")

    def test_forbidden_transition_is_refused(self):
        self.ledger.update_status(self.order.id, "failed")
        with self.assertRaises(InvalidTransition):
            self.ledger.update_status(self.order.id, "succeeded")
        self.assertEqual(self.ledger.get_by_id(self.order.id).status, "failed")

    def test_previous_status_is_reported(self):
        order = self.ledger.update_status(self.order.id, "succeeded")
        self.assertEqual(order.previous_status, "pending")
        order = self.ledger.update_status(self.order.id, "succeeded")
        self.assertEqual(order.previous_status, "succeeded")

    def test_settled_order_keeps_its_gateway_payment(self):
        self.ledger.update_status(self.order.id, "succeeded", gateway_payment_id="111")
        with self.assertRaises(InvalidTransition):
            self.ledger.update_status(self.order.id, None, gateway_payment_id="222", payment_method="account_money")
        order = self.ledger.get_by_id(self.order.id)
        self.assertEqual((order.gateway_payment_id, order.payment_method), ("111", ""))

        order = self.ledger.update_status(self.order.id, "refunded", gateway_payment_id="111")
        self.assertEqual(order.status, "refunded")

    def test_pending_order_follows_latest_gateway_payment(self):
        self.ledger.update_status(self.order.id, gateway_payment_id="111")
        order = self.ledger.update_status(self.order.id, "succeeded", gateway_payment_id="222")
        self.assertEqual(order.gateway_payment_id, "222")

    def test_unknown_and_malformed_ids(self):
        with self.assertRaises(OrderNotFound):
            self.ledger.get_by_id("not-a-uuid")
        with self.assertRaises(OrderNotFound):
            self.ledger.update_status("00000000-0000-0000-0000-000000000000", "failed")

    def test_list_by_participant_covers_both_sides(self):
        self.ledger.insert(PaymentOrder(
            client_user_id="l1", lawyer_user_id="l2", appointment_id="a2",
            total_amount=5000, lawyer_amount=4250, platform_fee=750,
        ))
        self.ledger.insert(PaymentOrder(
            client_user_id="u9", lawyer_user_id="l9", appointment_id="a9",
            total_amount=5000, lawyer_amount=4250, platform_fee=750,
        ))
        self.assertEqual(self.ledger.list_by_participant("l1").count(), 2)
        self.assertEqual(self.ledger.list_by_participant("u1").count(), 1)

    def test_insert_failure_is_ledger_error(self):
        with patch.object(PaymentOrder, "save", side_effect=DatabaseError("disk full")):
            with self.assertRaises(LedgerWriteError) as cm:
                self.ledger.insert(PaymentOrder(
                    client_user_id="u1", lawyer_user_id="l1", appointment_id="a1",
                    total_amount=1, lawyer_amount=0, platform_fee=1,
                ))
        self.assertIn("disk full", cm.exception.details)


class PaymentOrchestratorTests(TestCase):
    def make(self, gateway=None, ledger=None, **kwargs):
        self.gateway = gateway or FakeGateway()
        kwargs.setdefault("frontend_url", "https://legalup.test/")
        return PaymentOrchestrator(ledger or OrderLedger(), self.gateway, **kwargs)

    def test_creates_pending_order_with_gateway_reference(self):
        result = self.make().create_order(make_request())

        order = PaymentOrder.objects.get()
        self.assertEqual(order.status, PaymentOrder.Status.PENDING)
        self.assertEqual(order.lawyer_amount, 8500)
        self.assertEqual(order.platform_fee, 1500)
        self.assertEqual(order.payment_gateway_id, "PREF-1")
        self.assertEqual(order.payment_link, "https://mp.test/checkout/PREF-1")
        self.assertEqual(result.redirect_url, "https://mp.test/checkout/PREF-1")
        self.assertEqual(result.order.pk, order.pk)

    def test_gateway_receives_single_line_item(self):
        self.make().create_order(make_request())

        self.assertEqual(len(self.gateway.calls), 1)
        call = self.gateway.calls[0]
        order = PaymentOrder.objects.get()
        self.assertEqual(call["external_reference"], order.id)
        self.assertEqual(len(call["line_items"]), 1)
        item = call["line_items"][0]
        self.assertEqual(item["id"], str(order.id))
        self.assertEqual(item["quantity"], 1)
        self.assertEqual(item["unit_price"], 10000)
        self.assertEqual(item["currency_id"], "CLP")
        self.assertEqual(call["payer"], {"name": "Ana Pérez", "email": "cliente@example.com"})

    def test_redirect_urls_default_from_frontend_url(self):
        self.make().create_order(make_request(success_url="https://app.test/ok"))

        self.assertEqual(self.gateway.calls[0]["redirect_urls"], {
            "success": "https://app.test/ok",
            "failure": "https://legalup.test/payment/failure",
            "pending": "https://legalup.test/payment/pending",
        })

    def test_camel_case_fields_are_accepted(self):
        self.make().create_order({
            "amount": "20000", "userId": "u1", "lawyerId": "l1", "appointmentId": "a1",
        })
        order = PaymentOrder.objects.get()
        self.assertEqual((order.client_user_id, order.lawyer_user_id, order.appointment_id), ("u1", "l1", "a1"))
        self.assertEqual(order.service_description, "Consulta Legal")

    def test_missing_fields_rejected_before_any_write(self):
        orchestrator = self.make()
        for field in ("amount", "user_id", "lawyer_id", "appointment_id"):
            body = make_request()
            body[field] = "" if field != "amount" else None
            with self.assertRaises(ValidationError) as cm:
                orchestrator.create_order(body)
            self.assertEqual(cm.exception.required, ["amount", "user_id", "lawyer_id", "appointment_id"])
        self.assertFalse(PaymentOrder.objects.exists())
        self.assertEqual(self.gateway.calls, [])

    def test_overlong_fields_rejected_before_any_write(self):
        orchestrator = self.make()
        for field in ("user_id", "lawyer_id", "appointment_id", "user_email"):
            with self.assertRaises(ValidationError) as cm:
                orchestrator.create_order(make_request(**{field: "x" * 300}))
            self.assertEqual(cm.exception.error, "Invalid field")
        self.assertFalse(PaymentOrder.objects.exists())
        self.assertEqual(self.gateway.calls, [])

    def test_long_description_and_name_are_truncated(self):
        self.make().create_order(make_request(description="d" * 400, user_name="n" * 200))
        order = PaymentOrder.objects.get()
        self.assertEqual(len(order.service_description), 255)
        self.assertEqual(len(order.payer_name), 128)

    def test_minimum_amount(self):
        with self.assertRaises(ValidationError):
            self.make(min_amount=1000).create_order(make_request(amount=999))
        self.assertFalse(PaymentOrder.objects.exists())

    def test_ledger_failure_skips_gateway(self):
        class BrokenLedger(OrderLedger):
            def insert(self, order):
                raise LedgerWriteError("connection refused")

        with self.assertRaises(LedgerWriteError):
            self.make(ledger=BrokenLedger()).create_order(make_request())
        self.assertEqual(len(self.gateway.calls), 0)

    def test_gateway_failure_marks_order_failed(self):
        gateway = FakeGateway(error=MercadoPagoError("Create preference failed: Gateway error 500."))
        with self.assertLogs("payments.services", level="ERROR"):
            with self.assertRaises(GatewayError) as cm:
                self.make(gateway=gateway).create_order(make_request())

        self.assertIn("Gateway error 500", cm.exception.details)
        order = PaymentOrder.objects.get()
        self.assertEqual(order.status, PaymentOrder.Status.FAILED)
        self.assertIsNone(order.payment_gateway_id)

    def test_exactly_one_update_after_gateway(self):
        ledger = OrderLedger()
        with patch.object(ledger, "update_status", wraps=ledger.update_status) as update:
            self.make(ledger=ledger).create_order(make_request())
        self.assertEqual(update.call_count, 1)

    def test_reference_update_failure_still_returns_link(self):
        ledger = OrderLedger()
        with patch.object(ledger, "update_status", side_effect=LedgerWriteError("timeout")):
            with self.assertLogs("payments.services", level="ERROR"):
                result = self.make(ledger=ledger).create_order(make_request())

        self.assertEqual(result.redirect_url, "https://mp.test/checkout/PREF-1")
        order = PaymentOrder.objects.get()
        self.assertEqual(order.status, PaymentOrder.Status.PENDING)
        self.assertIsNone(order.payment_gateway_id)

    def test_each_request_creates_a_new_order(self):
        orchestrator = self.make()
        first = orchestrator.create_order(make_request())
        second = orchestrator.create_order(make_request())
        self.assertNotEqual(first.order.id, second.order.id)
        self.assertEqual(PaymentOrder.objects.count(), 2)


class RefundTests(TestCase):
    def setUp(self):
        self.order = PaymentOrder.objects.create(
            client_user_id="u1", lawyer_user_id="l1", appointment_id="a1",
            total_amount=10000, lawyer_amount=8500, platform_fee=1500,
            status=PaymentOrder.Status.SUCCEEDED, gateway_payment_id="123456",
        )

    def test_refund_succeeded_order(self):
        gateway = FakeGateway()
        order = PaymentOrchestrator(OrderLedger(), gateway).refund_order(self.order.id)
        self.assertEqual(order.status, PaymentOrder.Status.REFUNDED)
        self.assertEqual(gateway.refunds, ["123456"])

    def test_refund_requires_succeeded(self):
        PaymentOrder.objects.filter(pk=self.order.pk).update(status=PaymentOrder.Status.PENDING)
        gateway = FakeGateway()
        with self.assertRaises(InvalidTransition):
            PaymentOrchestrator(OrderLedger(), gateway).refund_order(self.order.id)
        self.assertEqual(gateway.refunds, [])

    def test_gateway_refund_failure_keeps_status(self):
        gateway = FakeGateway(error=MercadoPagoError("Refund payment failed"))
        with self.assertLogs("payments.services", level="ERROR"):
            with self.assertRaises(GatewayError):
                PaymentOrchestrator(OrderLedger(), gateway).refund_order(self.order.id)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, PaymentOrder.Status.SUCCEEDED)
