"""
WebhookEvent model for provider webhook tracking.

Stores every webhook received from Stripe or Paystack for idempotent
processing and audit trails. The unique (provider, event_id) constraint
makes duplicate deliveries detectable before any work is done.

Usage:
    from payments.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        provider="stripe",
        event_id="evt_1234567890",
        defaults={"event_type": "payment_intent.succeeded", "payload": payload},
    )
    if not created:
        return Response(status=200)  # duplicate delivery
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PaymentProvider, WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks provider webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, provider signature verified
        2. Insert/get WebhookEvent by (provider, event_id)
        3. If it already existed -> acknowledge, do nothing
        4. Queue process_webhook_event task
        5. Task sets PROCESSING, routes to handler, ends PROCESSED or FAILED
    """

    provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        help_text="Provider that sent the webhook",
    )

    event_id = models.CharField(
        max_length=255,
        help_text="Provider event id (Stripe evt_xxx, Paystack derived id)",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Provider event type (e.g., 'payment_intent.succeeded', 'charge.success')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload (JSON)",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )

    processed_at = models.DateTimeField(null=True, blank=True)

    error_message = models.TextField(null=True, blank=True)

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "event_id"],
                name="unique_webhook_event_per_provider",
            )
        ]
        indexes = [
            models.Index(
                fields=["status", "created_at"], name="webhook_status_created_idx"
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider}:{self.event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    # Helpers below do not save; the caller saves.

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message
