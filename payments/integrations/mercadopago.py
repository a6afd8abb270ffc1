import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field

import requests
from requests import RequestException

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.mercadopago.com"
DEFAULT_TIMEOUT = 5


class MercadoPagoError(Exception):
    def __init__(self, message, *, status_code=None, response=None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


@dataclass
class CheckoutSession:
    checkout_url: str
    gateway_id: str
    raw: dict = field(default_factory=dict)


def _hint(status_code: int) -> str:
    if status_code == 401:
        return "Check MERCADOPAGO_ACCESS_TOKEN."
    if status_code == 400:
        return "Bad request: items/payer/back_urls/external_reference."
    if status_code == 429:
        return "Rate limited by gateway."
    if status_code >= 500:
        return f"Gateway error {status_code}."
    return f"HTTP {status_code}"


class MercadoPagoClient:
    """Thin wrapper over the MercadoPago REST API.

    Every failure (transport error, timeout, non-2xx status, unexpected body)
    is raised as :class:`MercadoPagoError`.
    """

    def __init__(self, access_token, *, base_url=DEFAULT_BASE_URL, timeout=DEFAULT_TIMEOUT,
                 notification_url="", statement_descriptor="LEGALUP", sandbox=False):
        if not access_token:
            raise MercadoPagoError("Missing MERCADOPAGO_ACCESS_TOKEN")
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.notification_url = notification_url
        self.statement_descriptor = statement_descriptor
        self.sandbox = sandbox

    @classmethod
    def from_settings(cls, settings):
        return cls(
            settings.MERCADOPAGO_ACCESS_TOKEN,
            base_url=getattr(settings, "MERCADOPAGO_BASE_URL", DEFAULT_BASE_URL),
            timeout=getattr(settings, "MERCADOPAGO_TIMEOUT", DEFAULT_TIMEOUT),
            notification_url=getattr(settings, "MERCADOPAGO_NOTIFICATION_URL", ""),
            statement_descriptor=getattr(settings, "MERCADOPAGO_STATEMENT_DESCRIPTOR", "LEGALUP"),
            sandbox=getattr(settings, "MERCADOPAGO_SANDBOX", False),
        )

    def _headers(self, idempotency_key=None) -> dict:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key
        return headers

    def _request(self, method, path, *, action, json_body=None, params=None, idempotency_key=None):
        url = f"{self.base_url}{path}"
        try:
            resp = requests.request(
                method,
                url,
                headers=self._headers(idempotency_key),
                json=json_body,
                params=params,
                timeout=self.timeout,
            )
        except RequestException as e:
            raise MercadoPagoError(f"Gateway request failed: {e}")
        try:
            data = resp.json()
        except ValueError:
            data = {"raw": resp.text}
        if 200 <= resp.status_code < 300:
            return data
        raise MercadoPagoError(
            f"{action} failed: {_hint(resp.status_code)} Response: {json.dumps(data)[:800]}",
            status_code=resp.status_code,
            response=data,
        )

    # ---------- API calls ----------
    def create_checkout(self, line_items, payer, redirect_urls, external_reference) -> CheckoutSession:
        """Create a checkout preference and return its hosted checkout URL."""
        preference = {
            "items": list(line_items),
            "payer": payer,
            "back_urls": {
                "success": redirect_urls["success"],
                "failure": redirect_urls["failure"],
                "pending": redirect_urls["pending"],
            },
            "auto_return": "approved",
            "binary_mode": True,
            "external_reference": str(external_reference),
            "statement_descriptor": self.statement_descriptor,
        }
        if self.notification_url:
            preference["notification_url"] = self.notification_url

        data = self._request(
            "POST",
            "/checkout/preferences",
            action="Create preference",
            json_body=preference,
            idempotency_key=str(external_reference),
        )
        if self.sandbox:
            checkout_url = data.get("sandbox_init_point") or data.get("init_point")
        else:
            checkout_url = data.get("init_point") or data.get("sandbox_init_point")
        gateway_id = data.get("id")
        if not checkout_url:
            raise MercadoPagoError("No payment link received from MercadoPago", response=data)
        if not gateway_id:
            raise MercadoPagoError("No preference id received from MercadoPago", response=data)
        logger.info("MercadoPago preference %s created for %s", gateway_id, external_reference)
        return CheckoutSession(checkout_url=checkout_url, gateway_id=str(gateway_id), raw=data)

    def get_payment(self, payment_id) -> dict:
        return self._request("GET", f"/v1/payments/{payment_id}", action="Get payment")

    def search_payments(self, external_reference) -> list:
        data = self._request(
            "GET",
            "/v1/payments/search",
            action="Search payments",
            params={"external_reference": str(external_reference), "sort": "date_created", "criteria": "desc"},
        )
        return list(data.get("results") or [])

    def refund_payment(self, payment_id, amount=None) -> dict:
        body = {"amount": amount} if amount is not None else {}
        return self._request(
            "POST",
            f"/v1/payments/{payment_id}/refunds",
            action="Refund payment",
            json_body=body,
            # one refund per payment and amount, even if requested twice
            idempotency_key=f"refund-{payment_id}-{amount if amount is not None else 'full'}",
        )


def parse_signature_header(x_signature: str | None) -> dict:
    parts = {}
    for part in (x_signature or "").split(","):
        key, sep, value = part.partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def verify_webhook_signature(secret: str, x_signature: str | None, x_request_id: str | None, data_id: str) -> bool:
    """Check the ``x-signature`` header MercadoPago attaches to notifications.

    The signed manifest is ``id:<data_id>;request-id:<x_request_id>;ts:<ts>;``
    hashed with HMAC-SHA256 under the webhook secret; the hex digest arrives
    as ``v1``.
    """
    if not secret:
        logger.error("MERCADOPAGO_WEBHOOK_SECRET missing in settings")
        return False
    parts = parse_signature_header(x_signature)
    ts, v1 = parts.get("ts"), parts.get("v1")
    if not ts or not v1 or not x_request_id:
        return False
    # ids are lower-cased by the gateway before signing
    manifest = f"id:{str(data_id).lower()};request-id:{x_request_id};ts:{ts};"
    expected = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, v1)
