from .base import *

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

ALLOWED_HOSTS = ['testserver']

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

MERCADOPAGO_ACCESS_TOKEN = 'TEST-access-token'
MERCADOPAGO_BASE_URL = 'https://api.mercadopago.test'
MERCADOPAGO_WEBHOOK_SECRET = 'webhook-secret'
MERCADOPAGO_NOTIFICATION_URL = 'https://api.legalup.test/webhooks/mercadopago'
MERCADOPAGO_SANDBOX = False

FRONTEND_URL = 'https://legalup.test'
PAYMENTS_ADMIN_EMAILS = 'admin@legalup.test'
