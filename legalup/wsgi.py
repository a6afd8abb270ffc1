import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "legalup.settings.base")

application = get_wsgi_application()

# runserver and check run the system checks; WSGI servers do not
from payments.checks import require_gateway_credentials  # noqa: E402

require_gateway_credentials()
