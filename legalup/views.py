import json
import logging

from django.conf import settings
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .rut import is_valid_rut

logger = logging.getLogger(__name__)


@require_GET
def health_view(request):
    return JsonResponse({
        "status": "Server is running",
        "timestamp": timezone.now().isoformat(),
        "environment": settings.ENVIRONMENT,
    })


@csrf_exempt
@require_POST
def verify_rut_view(request):
    try:
        body = json.loads(request.body.decode("utf-8") or "{}")
    except (ValueError, UnicodeDecodeError):
        body = {}
    rut = body.get("rut") if isinstance(body, dict) else None
    if not rut:
        return JsonResponse(
            {"valid": False, "message": "Se requiere un RUT para la verificación."},
            status=400,
        )
    valid = is_valid_rut(str(rut))
    return JsonResponse({"valid": valid, "message": "RUT válido" if valid else "RUT inválido"})


def error_404_view(request, exception):
    return JsonResponse({"error": "Not found", "path": request.path}, status=404)


def error_500_view(request):
    logger.error("Unhandled server error on %s", request.path)
    return JsonResponse({"error": "Internal server error"}, status=500)
