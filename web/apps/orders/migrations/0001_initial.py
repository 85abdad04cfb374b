import uuid

import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="OrderModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending_payment", "Pending Payment"),
                            ("payment_failed", "Payment Failed"),
                            ("paid", "Paid"),
                            ("completed", "Completed"),
                            ("generation_failed", "Generation Failed"),
                        ],
                        default="pending_payment",
                        max_length=32,
                    ),
                ),
                ("product_id", models.CharField(max_length=64)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("payment_session_id", models.CharField(blank=True, max_length=255, null=True)),
                ("download_path", models.CharField(blank=True, max_length=255, null=True)),
                ("failure_stage", models.CharField(blank=True, max_length=32, null=True)),
                ("failure_reason", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "orders",
                "ordering": ["created_at"],
            },
        ),
    ]
