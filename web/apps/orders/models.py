import uuid
from django.db import models
from django.utils import timezone


class OrderModel(models.Model):
    # UUID PK expuesto en API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Status(models.TextChoices):
        PENDING_PAYMENT = "pending_payment"
        PAYMENT_FAILED = "payment_failed"
        PAID = "paid"
        COMPLETED = "completed"
        GENERATION_FAILED = "generation_failed"

    status = models.CharField(max_length=32, choices=Status.choices, default=Status.PENDING_PAYMENT)
    product_id = models.CharField(max_length=64)
    email = models.EmailField(null=True, blank=True)
    payment_session_id = models.CharField(max_length=255, null=True, blank=True)
    download_path = models.CharField(max_length=255, null=True, blank=True)
    failure_stage = models.CharField(max_length=32, null=True, blank=True)
    failure_reason = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "orders"
        ordering = ["created_at"]
