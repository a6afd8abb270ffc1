import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="PaymentOrder",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("client_user_id", models.CharField(db_index=True, max_length=64)),
                ("lawyer_user_id", models.CharField(db_index=True, max_length=64)),
                ("appointment_id", models.CharField(db_index=True, max_length=64)),
                ("total_amount", models.PositiveBigIntegerField()),
                ("lawyer_amount", models.PositiveBigIntegerField()),
                ("platform_fee", models.PositiveBigIntegerField()),
                ("currency", models.CharField(default="CLP", max_length=8)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("service_description", models.CharField(blank=True, default="Consulta Legal", max_length=255)),
                ("payer_email", models.EmailField(blank=True, default="", max_length=254)),
                ("payer_name", models.CharField(blank=True, default="", max_length=128)),
                ("payment_gateway_id", models.CharField(blank=True, db_index=True, max_length=128, null=True)),
                ("payment_link", models.URLField(blank=True, default="", max_length=512)),
                ("gateway_payment_id", models.CharField(blank=True, db_index=True, default="", max_length=64)),
                ("payment_method", models.CharField(blank=True, default="", max_length=32)),
                ("last_status_payload", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "payments",
                "ordering": ("-created_at",),
            },
        ),
    ]
