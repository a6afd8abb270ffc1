"""Payment order creation, refunds and gateway reconciliation."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings as django_settings

from .emails import send_payment_confirmation
from .exceptions import GatewayError, InvalidTransition, LedgerWriteError, OrderNotFound, ValidationError
from .integrations.mercadopago import MercadoPagoClient, MercadoPagoError
from .ledger import OrderLedger
from .models import PaymentOrder
from .utils import parse_amount, split_amount

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["amount", "user_id", "lawyer_id", "appointment_id"]

# camelCase keys sent by the web front-end
FIELD_ALIASES = {
    "userId": "user_id",
    "lawyerId": "lawyer_id",
    "appointmentId": "appointment_id",
    "successUrl": "success_url",
    "failureUrl": "failure_url",
    "pendingUrl": "pending_url",
    "userEmail": "user_email",
    "userName": "user_name",
}

DEFAULT_DESCRIPTION = "Consulta Legal"

# request field -> PaymentOrder column, for length checks
STORED_FIELDS = {
    "user_id": "client_user_id",
    "lawyer_id": "lawyer_user_id",
    "appointment_id": "appointment_id",
    "user_email": "payer_email",
}

# MercadoPago payment status -> ledger status
GATEWAY_STATUS_MAP = {
    "approved": PaymentOrder.Status.SUCCEEDED,
    "rejected": PaymentOrder.Status.FAILED,
    "cancelled": PaymentOrder.Status.FAILED,
    "refunded": PaymentOrder.Status.REFUNDED,
    "charged_back": PaymentOrder.Status.REFUNDED,
}


@dataclass
class CheckoutResult:
    order: PaymentOrder
    redirect_url: str


def normalize_request(body: dict) -> dict:
    data = {}
    for key, value in (body or {}).items():
        data[FIELD_ALIASES.get(key, key)] = value
    return data


def _max_length(column: str) -> int:
    return PaymentOrder._meta.get_field(column).max_length


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class PaymentOrchestrator:
    def __init__(self, ledger: OrderLedger, gateway, *, currency="CLP", fee_percent=Decimal("0.15"),
                 min_amount=1, frontend_url="http://localhost:3000"):
        self.ledger = ledger
        self.gateway = gateway
        self.currency = currency
        self.fee_percent = Decimal(str(fee_percent))
        self.min_amount = min_amount
        self.frontend_url = frontend_url.rstrip("/")

    def _validate(self, data: dict) -> int:
        missing = [k for k in REQUIRED_FIELDS if _blank(data.get(k))]
        if missing:
            raise ValidationError(
                f"Missing fields: {', '.join(missing)}",
                required=REQUIRED_FIELDS,
            )
        try:
            amount = parse_amount(data["amount"])
        except ValueError as e:
            raise ValidationError(str(e), error="Invalid amount")
        for key, column in STORED_FIELDS.items():
            limit = _max_length(column)
            if len(str(data.get(key) or "").strip()) > limit:
                raise ValidationError(f"{key} must be at most {limit} characters", error="Invalid field")
        if amount < self.min_amount:
            raise ValidationError(
                f"Amount must be at least {self.min_amount} {self.currency}",
                error="Invalid amount",
            )
        return amount

    def _redirect_urls(self, data: dict) -> dict:
        return {
            outcome: data.get(f"{outcome}_url") or f"{self.frontend_url}/payment/{outcome}"
            for outcome in ("success", "failure", "pending")
        }

    def create_order(self, request: dict) -> CheckoutResult:
        """Record a pending order, open a gateway checkout for it and return the redirect URL.

        The order is written before the gateway is contacted, so a charge can
        never exist without a local record. After the gateway call the order
        is updated exactly once: with the gateway reference on success, or to
        ``failed`` on any gateway error.
        """
        data = normalize_request(request)
        amount = self._validate(data)
        split = split_amount(amount, self.fee_percent)
        description = str(data.get("description") or "").strip() or DEFAULT_DESCRIPTION
        description = description[:_max_length("service_description")]

        order = PaymentOrder(
            client_user_id=str(data["user_id"]).strip(),
            lawyer_user_id=str(data["lawyer_id"]).strip(),
            appointment_id=str(data["appointment_id"]).strip(),
            total_amount=amount,
            lawyer_amount=split.lawyer_amount,
            platform_fee=split.platform_fee,
            currency=self.currency,
            status=PaymentOrder.Status.PENDING,
            service_description=description,
            payer_email=str(data.get("user_email") or "").strip(),
            payer_name=str(data.get("user_name") or "").strip()[:_max_length("payer_name")],
        )
        self.ledger.insert(order)
        logger.info("Payment %s recorded as pending (%s %s)", order.id, amount, self.currency)

        line_items = [{
            "id": str(order.id),
            "title": description,
            "description": f"Consulta con abogado especializado - {description}",
            "quantity": 1,
            "currency_id": self.currency,
            "unit_price": amount,
        }]
        payer = {"name": order.payer_name or "Cliente LegalUp"}
        if order.payer_email:
            payer["email"] = order.payer_email

        try:
            session = self.gateway.create_checkout(line_items, payer, self._redirect_urls(data), order.id)
        except MercadoPagoError as e:
            logger.error("Gateway checkout failed for payment %s: %s", order.id, e)
            try:
                self.ledger.update_status(order.id, PaymentOrder.Status.FAILED)
            except LedgerWriteError:
                logger.exception("Could not mark payment %s as failed", order.id)
            raise GatewayError(str(e), error="Failed to create payment with gateway") from e

        try:
            order = self.ledger.update_status(
                order.id,
                gateway_reference=session.gateway_id,
                payment_link=session.checkout_url,
            )
        except LedgerWriteError:
            # order stays pending without a reference; reconcilable by external_reference
            logger.exception("Could not store gateway reference %s for payment %s", session.gateway_id, order.id)
            order.payment_link = session.checkout_url

        return CheckoutResult(order=order, redirect_url=session.checkout_url)

    def refund_order(self, order_id) -> PaymentOrder:
        order = self.ledger.get_by_id(order_id)
        if order.status != PaymentOrder.Status.SUCCEEDED:
            raise InvalidTransition(f"Only succeeded payments can be refunded ({order.id} is {order.status})")
        if not order.gateway_payment_id:
            raise InvalidTransition(
                f"Payment {order.id} has no gateway payment to refund",
                error="Payment not reconciled",
            )
        try:
            refund = self.gateway.refund_payment(order.gateway_payment_id)
        except MercadoPagoError as e:
            logger.error("Refund failed for payment %s: %s", order.id, e)
            raise GatewayError(str(e), error="Failed to refund payment with gateway") from e
        logger.info("Payment %s refunded (refund %s)", order.id, refund.get("id"))
        return self.ledger.update_status(order.id, PaymentOrder.Status.REFUNDED)


class PaymentReconciler:
    """Bring ledger status in line with what the gateway reports."""

    def __init__(self, ledger: OrderLedger, gateway):
        self.ledger = ledger
        self.gateway = gateway

    def apply_gateway_payment(self, payment: dict):
        reference = payment.get("external_reference")
        if not reference:
            logger.warning("Gateway payment %s has no external_reference", payment.get("id"))
            return None
        try:
            order = self.ledger.get_by_id(reference)
        except OrderNotFound:
            logger.warning("Gateway payment %s references unknown order %s", payment.get("id"), reference)
            return None

        gateway_status = str(payment.get("status") or "").lower()
        target = GATEWAY_STATUS_MAP.get(gateway_status)
        fields = {
            "gateway_payment_id": str(payment.get("id") or order.gateway_payment_id or ""),
            "payment_method": payment.get("payment_type_id") or order.payment_method or "",
            "last_status_payload": payment,
        }

        try:
            order = self.ledger.update_status(order.id, target, **fields)
        except InvalidTransition as e:
            logger.warning("Ignoring gateway status %s: %s", gateway_status, e.details)
            try:
                order = self.ledger.update_status(order.id, None, **fields)
            except InvalidTransition as e:
                # another gateway payment settled this order; leave it untouched
                logger.warning("Ignoring gateway payment %s: %s", payment.get("id"), e.details)
                order = self.ledger.get_by_id(order.id)
                order.previous_status = order.status

        if order.status != order.previous_status:
            logger.info("Payment %s moved %s -> %s", order.id, order.previous_status, order.status)
            if order.status == PaymentOrder.Status.SUCCEEDED:
                send_payment_confirmation(order=order)
        return order

    def handle_notification(self, topic: str, resource_id):
        """Process one gateway notification; only payment notifications change state."""
        if topic != "payment" or not resource_id:
            return None
        try:
            payment = self.gateway.get_payment(resource_id)
        except MercadoPagoError as e:
            raise GatewayError(str(e), error="Failed to fetch payment from gateway") from e
        return self.apply_gateway_payment(payment)

    def sync_order(self, order_id) -> PaymentOrder:
        order = self.ledger.get_by_id(order_id)
        try:
            payments = self.gateway.search_payments(order.id)
        except MercadoPagoError as e:
            raise GatewayError(str(e), error="Failed to fetch payment from gateway") from e
        if not payments:
            return order
        latest = max(payments, key=lambda p: p.get("date_last_updated") or p.get("date_created") or "")
        return self.apply_gateway_payment(latest) or order


def build_gateway(settings=None):
    return MercadoPagoClient.from_settings(settings or django_settings)


def build_orchestrator(settings=None) -> PaymentOrchestrator:
    settings = settings or django_settings
    return PaymentOrchestrator(
        OrderLedger(),
        build_gateway(settings),
        currency=settings.PAYMENTS_CURRENCY,
        fee_percent=settings.PAYMENTS_PLATFORM_FEE_PERCENT,
        min_amount=settings.PAYMENTS_MIN_AMOUNT,
        frontend_url=settings.FRONTEND_URL,
    )


def build_reconciler(settings=None) -> PaymentReconciler:
    return PaymentReconciler(OrderLedger(), build_gateway(settings))
