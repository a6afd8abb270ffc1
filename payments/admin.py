from django.contrib import admin
from .models import PaymentOrder

@admin.register(PaymentOrder)
class PaymentOrderAdmin(admin.ModelAdmin):
    list_display = ("id", "status", "total_amount", "currency", "client_user_id", "lawyer_user_id", "created_at", "updated_at")
    search_fields = ("id", "payment_gateway_id", "gateway_payment_id", "client_user_id", "lawyer_user_id", "appointment_id")
    list_filter = ("status", "currency", "created_at")
    readonly_fields = ("id", "total_amount", "lawyer_amount", "platform_fee", "created_at", "updated_at", "last_status_payload")
