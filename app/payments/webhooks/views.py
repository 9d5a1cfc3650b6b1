"""
Webhook endpoint views for Stripe and Paystack.

Each view:
1. Verifies the provider signature through the provider adapter
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Queues the event for async processing
4. Returns immediately

Usage:
    # In urls.py
    from payments.webhooks.views import paystack_webhook, stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
        path("webhooks/paystack/", paystack_webhook, name="paystack_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import get_registry
from payments.exceptions import WebhookSignatureError
from payments.models import WebhookEvent
from payments.state_machines import PaymentProvider, WebhookEventStatus

logger = logging.getLogger(__name__)


def receive_webhook(request: HttpRequest, provider_name: str) -> HttpResponse:
    """
    Verify, store and queue one provider webhook.

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new or duplicate)
        - 400: Invalid signature or payload
    """
    provider = get_registry().get(provider_name)

    try:
        notification = provider.parse_webhook(request.body, dict(request.headers))
    except WebhookSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"provider": provider_name, "error": e.message},
        )
        return HttpResponse(e.message, status=400)

    if not notification.event_id or not notification.event_type:
        logger.warning("Webhook missing required fields", extra={"provider": provider_name})
        return HttpResponse("Invalid event", status=400)

    log_context = {
        "provider": provider_name,
        "event_id": notification.event_id,
        "event_type": notification.event_type,
    }
    logger.info("Received webhook", extra=log_context)

    webhook_event, created = WebhookEvent.objects.get_or_create(
        provider=provider_name,
        event_id=notification.event_id,
        defaults={
            "event_type": notification.event_type,
            "payload": notification.payload,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info("Webhook already processed", extra=log_context)
        return HttpResponse("Already processed", status=200)

    from payments.tasks import process_webhook_event

    webhook_event_id = str(webhook_event.id)

    def enqueue() -> None:
        try:
            process_webhook_event.delay(webhook_event_id)
        except Exception:
            # The provider redelivers; retry_failed_webhooks also picks it up.
            logger.error(
                "Failed to queue webhook",
                extra={**log_context, "webhook_event_id": webhook_event_id},
                exc_info=True,
            )

    transaction.on_commit(enqueue)
    return HttpResponse("Accepted", status=200)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    return receive_webhook(request, PaymentProvider.STRIPE)


@csrf_exempt
@require_POST
def paystack_webhook(request: HttpRequest) -> HttpResponse:
    return receive_webhook(request, PaymentProvider.PAYSTACK)
