import json
import logging
import traceback

from django.conf import settings
from django.http import HttpResponse, HttpResponseBadRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .exceptions import GatewayError, PaymentError
from .integrations.mercadopago import verify_webhook_signature
from .ledger import OrderLedger
from .services import build_orchestrator, build_reconciler

logger = logging.getLogger(__name__)

PAGE_SIZE = 10


def _json_body(request):
    try:
        body = json.loads(request.body.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


def _error_response(exc: PaymentError, status=None):
    data = exc.as_dict()
    if settings.DEBUG:
        data["stack"] = traceback.format_exc()
    return JsonResponse(data, status=status or exc.status_code)


def _unexpected_error(e: Exception):
    data = {"error": "Internal server error", "details": str(e)}
    if settings.DEBUG:
        data["stack"] = traceback.format_exc()
    return JsonResponse(data, status=500)


@csrf_exempt
@require_POST
def create_payment_view(request):
    body = _json_body(request)
    if body is None:
        return JsonResponse({"error": "Invalid JSON body"}, status=400)

    try:
        result = build_orchestrator().create_order(body)
    except PaymentError as e:
        return _error_response(e)
    except Exception as e:
        logger.exception("Error in create-payment")
        return _unexpected_error(e)

    payment = result.order.to_dict()
    payment["payment_link"] = result.redirect_url
    return JsonResponse({
        "success": True,
        "payment": payment,
        "payment_link": result.redirect_url,
    })


@require_GET
def payment_detail_view(request, payment_id: str):
    try:
        order = OrderLedger().get_by_id(payment_id)
    except PaymentError as e:
        return _error_response(e)
    return JsonResponse({"payment": order.to_dict()})


@require_GET
def payment_by_reference_view(request, reference: str):
    """Look an order up by its checkout preference id, as returned on the gateway redirect."""
    try:
        order = OrderLedger().get_by_gateway_reference(reference)
    except PaymentError as e:
        return _error_response(e)
    return JsonResponse({"payment": order.to_dict()})


@csrf_exempt
@require_POST
def payment_sync_view(request, payment_id: str):
    """Re-read the order's state from the gateway, e.g. after the browser returns from checkout."""
    try:
        order = build_reconciler().sync_order(payment_id)
    except PaymentError as e:
        return _error_response(e)
    except Exception as e:
        logger.exception("Error syncing payment %s", payment_id)
        return _unexpected_error(e)
    return JsonResponse({"payment": order.to_dict()})


@csrf_exempt
@require_POST
def payment_refund_view(request, payment_id: str):
    try:
        order = build_orchestrator().refund_order(payment_id)
    except PaymentError as e:
        return _error_response(e)
    except Exception as e:
        logger.exception("Error refunding payment %s", payment_id)
        return _unexpected_error(e)
    return JsonResponse({"success": True, "payment": order.to_dict()})


@require_GET
def participant_payments_view(request):
    user_id = request.GET.get("user_id", "").strip()
    if not user_id:
        return JsonResponse({"error": "Missing required fields", "required": ["user_id"]}, status=400)

    qs = OrderLedger().list_by_participant(user_id)

    # Very light pagination
    try:
        page = max(int(request.GET.get("page", "1")), 1)
    except ValueError:
        page = 1
    start = (page - 1) * PAGE_SIZE
    end = start + PAGE_SIZE
    total = qs.count()
    return JsonResponse({
        "payments": [o.to_dict() for o in qs[start:end]],
        "page": page,
        "total": total,
        "has_next": end < total,
        "has_prev": start > 0,
    })


@csrf_exempt
def mercadopago_webhook(request):
    if request.method != "POST":
        return HttpResponseBadRequest("POST only")

    body = _json_body(request)
    if body is None:
        return HttpResponseBadRequest("Invalid JSON")

    topic = request.GET.get("type") or request.GET.get("topic") or body.get("type") or body.get("topic") or ""
    data_id = (
        request.GET.get("data.id")
        or request.GET.get("id")
        or str((body.get("data") or {}).get("id") or "")
    )

    if not verify_webhook_signature(
        settings.MERCADOPAGO_WEBHOOK_SECRET,
        request.headers.get("x-signature"),
        request.headers.get("x-request-id"),
        data_id,
    ):
        logger.warning("Rejected MercadoPago notification with bad signature (data.id=%s)", data_id)
        return HttpResponse("Unauthorized", status=401)

    logger.info("MercadoPago notification received: type=%s data.id=%s", topic, data_id)
    if topic != "payment":
        return JsonResponse({"received": True})

    try:
        order = build_reconciler().handle_notification(topic, data_id)
    except GatewayError as e:
        # non-2xx makes the gateway redeliver the notification later
        logger.error("Could not fetch notified payment %s: %s", data_id, e.details)
        return _error_response(e, status=502)
    except PaymentError as e:
        return _error_response(e)

    if order is None:
        return HttpResponse("unknown order", status=202)
    return JsonResponse({"received": True, "status": order.status})
