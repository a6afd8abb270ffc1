import uuid

from django.db import models


class PaymentOrder(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        SUCCEEDED = "succeeded", "Succeeded"
        FAILED = "failed", "Failed"
        REFUNDED = "refunded", "Refunded"

    # allowed moves; failed and refunded are terminal
    TRANSITIONS = {
        Status.PENDING: {Status.SUCCEEDED, Status.FAILED},
        Status.SUCCEEDED: {Status.REFUNDED},
        Status.FAILED: set(),
        Status.REFUNDED: set(),
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    client_user_id = models.CharField(max_length=64, db_index=True)
    lawyer_user_id = models.CharField(max_length=64, db_index=True)
    appointment_id = models.CharField(max_length=64, db_index=True)

    total_amount = models.PositiveBigIntegerField()
    lawyer_amount = models.PositiveBigIntegerField()
    platform_fee = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=8, default="CLP")

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING, db_index=True)
    service_description = models.CharField(max_length=255, blank=True, default="Consulta Legal")

    payer_email = models.EmailField(blank=True, default="")
    payer_name = models.CharField(max_length=128, blank=True, default="")

    payment_gateway_id = models.CharField(max_length=128, null=True, blank=True, db_index=True)  # preference id
    payment_link = models.URLField(max_length=512, blank=True, default="")
    gateway_payment_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    payment_method = models.CharField(max_length=32, blank=True, default="")
    last_status_payload = models.JSONField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payments"
        ordering = ("-created_at",)

    def can_transition_to(self, status: str) -> bool:
        return status in self.TRANSITIONS.get(self.status, set())

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "client_user_id": self.client_user_id,
            "lawyer_user_id": self.lawyer_user_id,
            "appointment_id": self.appointment_id,
            "total_amount": self.total_amount,
            "lawyer_amount": self.lawyer_amount,
            "platform_fee": self.platform_fee,
            "currency": self.currency,
            "status": self.status,
            "service_description": self.service_description,
            "payment_gateway_id": self.payment_gateway_id,
            "gateway_payment_id": self.gateway_payment_id or None,
            "payment_method": self.payment_method or None,
            "payment_link": self.payment_link or None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __str__(self):
        return f"{self.id} ({self.status})"
