import logging
from typing import List

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def _fail_silently() -> bool:
    return getattr(settings, "EMAIL_FAIL_SILENTLY", True)


def _admin_recipients() -> List[str]:
    raw = getattr(settings, "PAYMENTS_ADMIN_EMAILS", None) or getattr(settings, "DEFAULT_FROM_EMAIL", "")
    seen = set()
    uniq: List[str] = []
    for e in (raw or "").split(","):
        e = e.strip()
        if e and e.lower() not in seen:
            seen.add(e.lower())
            uniq.append(e)
    return uniq


def _send(subject, template, context, recipients):
    text = render_to_string(f"payments/emails/{template}.txt", context)
    html = render_to_string(f"payments/emails/{template}.html", context)
    from_email = getattr(settings, "DEFAULT_FROM_EMAIL", None) or getattr(settings, "EMAIL_HOST_USER", None)
    msg = EmailMultiAlternatives(subject, text, from_email, recipients)
    msg.attach_alternative(html, "text/html")
    msg.send(fail_silently=_fail_silently())


def send_payment_confirmation(*, order) -> None:
    """Send a receipt to the payer and a notification to admins for a succeeded order.

    Mail problems are logged and never propagate to the caller; a confirmed
    payment must not be reported as failed because SMTP is down.
    """
    context = {
        "payment_id": str(order.id),
        "amount": order.total_amount,
        "lawyer_amount": order.lawyer_amount,
        "platform_fee": order.platform_fee,
        "currency": order.currency,
        "status": order.status,
        "description": order.service_description,
        "payer_name": order.payer_name or "Cliente LegalUp",
        "appointment_id": order.appointment_id,
        "lawyer_user_id": order.lawyer_user_id,
        "client_user_id": order.client_user_id,
    }

    if order.payer_email:
        try:
            _send(
                f"Pago recibido: {order.currency} {order.total_amount}",
                "payment_receipt_client",
                context,
                [order.payer_email],
            )
        except Exception:
            logger.exception("Failed to send payment receipt to %s", order.payer_email)

    admins = _admin_recipients()
    if admins:
        try:
            _send(
                f"Nuevo pago: {order.id} - {order.currency} {order.total_amount} ({order.status})",
                "payment_notification_admin",
                context,
                admins,
            )
        except Exception:
            logger.exception("Failed to send payment admin notification for %s", order.id)
