from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.checks import Error, Tags, register


@register(Tags.security, deploy=False)
def check_gateway_credentials(app_configs, **kwargs):
    """Refuse to start without gateway credentials."""
    errors = []
    if not getattr(settings, "MERCADOPAGO_ACCESS_TOKEN", ""):
        errors.append(
            Error(
                "MERCADOPAGO_ACCESS_TOKEN is not set.",
                hint="Set MERCADOPAGO_ACCESS_TOKEN in the environment or .env file.",
                id="payments.E001",
            )
        )
    return errors


def require_gateway_credentials():
    """Raise ImproperlyConfigured when the gateway check fails; used by server entry points."""
    errors = check_gateway_credentials(None)
    if errors:
        raise ImproperlyConfigured("; ".join(f"{e.id}: {e.msg}" for e in errors))
