from django.urls import path
from . import views
app_name = "payments"
urlpatterns = [
    path("create-payment", views.create_payment_view, name="create_payment"),
    path("payments", views.participant_payments_view, name="participant_payments"),
    path("payment/by-reference/<str:reference>", views.payment_by_reference_view, name="payment_by_reference"),
    path("payment/<str:payment_id>", views.payment_detail_view, name="payment_detail"),
    path("payment/<str:payment_id>/sync", views.payment_sync_view, name="payment_sync"),
    path("payment/<str:payment_id>/refund", views.payment_refund_view, name="payment_refund"),
    path("webhooks/mercadopago", views.mercadopago_webhook, name="mercadopago_webhook"),
]
