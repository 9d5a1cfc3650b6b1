"""
Celery tasks for payment processing.

This module provides async tasks for:
- Processing provider webhook events
- Verifying payments whose confirmation could not be verified yet
- Retrying failed webhook events
- Resetting webhook events stuck in processing

Usage:
    from payments.tasks import process_webhook_event, verify_pending_payment

    # Queue a webhook for async processing
    process_webhook_event.delay(webhook_event_id)

    # Ask the provider again about a reference, with backoff
    verify_pending_payment.delay(reference)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from payments.adapters import backoff_delay
from payments.exceptions import InvalidTransition, UnknownReference, VerificationError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = 5
STUCK_PROCESSING_THRESHOLD_MINUTES = 30


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a provider webhook event asynchronously.

    This task:
    1. Loads the WebhookEvent by ID
    2. Checks if already processed (idempotency)
    3. Marks as processing
    4. Dispatches to the handler for (provider, event type)
    5. Marks as processed or failed

    Raises:
        Exception: Re-raised to trigger Celery retry
    """
    # Import here to avoid circular imports
    from payments.webhooks.handlers import dispatch_webhook

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    log_context = {
        "webhook_event_id": str(webhook_event_id),
        "provider": webhook_event.provider,
        "event_id": webhook_event.event_id,
        "event_type": webhook_event.event_type,
    }

    if webhook_event.is_processed:
        logger.info("WebhookEvent already processed, skipping", extra=log_context)
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    webhook_event.mark_processing()
    webhook_event.save()

    try:
        handled = dispatch_webhook(webhook_event)
    except Exception as e:
        webhook_event.mark_failed(f"{type(e).__name__}: {e}")
        webhook_event.save()
        logger.exception("Webhook processing failed", extra=log_context)
        raise

    webhook_event.mark_processed()
    webhook_event.save()
    logger.info("Webhook processed", extra={**log_context, "handled": handled})
    return {
        "status": "processed" if handled else "ignored",
        "webhook_event_id": str(webhook_event_id),
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task re-queuing failed webhook events below the retry limit.
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in failed_webhooks:
        process_webhook_event.delay(str(webhook.id))
        queued_count += 1

    if queued_count:
        logger.info("Queued failed webhooks for retry", extra={"queued_count": queued_count})
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task resetting webhooks stuck in PROCESSING (worker crashed)
    to FAILED so they can be retried.
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)
    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={"webhook_event_id": str(webhook.id), "event_id": webhook.event_id},
        )

    return {"reset_count": reset_count}


# =============================================================================
# Payment Verification
# =============================================================================


@shared_task(bind=True, acks_late=True)
def verify_pending_payment(self, reference: str) -> dict:
    """
    Settle a payment from the provider's own answer.

    Retryable verification errors (timeouts, provider outages, payment still
    processing) are retried with exponential backoff up to
    PAYMENT_VERIFICATION_MAX_RETRIES; the payment stays unpaid meanwhile.
    """
    from payments.services import SettlementService

    log_context = {"reference": reference, "attempt": self.request.retries}

    try:
        request = SettlementService().confirm(reference, None)
    except VerificationError as e:
        if e.is_retryable and self.request.retries < settings.PAYMENT_VERIFICATION_MAX_RETRIES:
            countdown = backoff_delay(self.request.retries)
            logger.info(
                "Payment not verified yet, retrying",
                extra={**log_context, "countdown": countdown, "error_code": e.error_code},
            )
            raise self.retry(exc=e, countdown=countdown)
        logger.error(
            "Payment verification gave up",
            extra={**log_context, "error_code": e.error_code},
        )
        return {"status": "unverified", "reference": reference, "error_code": e.error_code}
    except (UnknownReference, InvalidTransition) as e:
        logger.warning(
            "Payment verification rejected",
            extra={**log_context, "error_code": e.error_code},
        )
        return {"status": "rejected", "reference": reference, "error_code": e.error_code}

    return {
        "status": request.payment_status,
        "reference": reference,
        "request_id": str(request.id),
    }
