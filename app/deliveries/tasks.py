"""
Celery tasks for delivery request notifications.

Tasks:
    send_request_notification: Email both participants about a request event

Emails go through Django's mail API (EMAIL_BACKEND). Delivery is best
effort: transient SMTP errors are retried a few times, anything else is
logged and dropped.
"""

from __future__ import annotations

import logging
import smtplib

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from deliveries.models import DeliveryRequest
from deliveries.notifications import RequestEvent

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(smtplib.SMTPServerDisconnected, ConnectionError),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_request_notification(self, request_id: str, event: str, status: str) -> int:
    """
    Email the sender and traveler of a request.

    Args:
        request_id: UUID string of the DeliveryRequest
        event: RequestEvent value
        status: Request status when the event happened

    Returns:
        Number of emails sent (0 when skipped or failed)
    """
    request = (
        DeliveryRequest.objects.select_related("sender", "traveler")
        .filter(pk=request_id)
        .first()
    )
    if request is None:
        logger.warning("Notification for unknown request", extra={"request_id": request_id})
        return 0

    recipients = [u.email for u in (request.sender, request.traveler) if u.email]
    if not recipients:
        return 0

    label = RequestEvent(event).label if event in RequestEvent.values else event
    subject = f"{label}: delivery request {request.id}"
    body = (
        f"{label}.\n\n"
        f"Request: {request.id}\n"
        f"Status: {status}\n"
        f"Amount: {request.total_cents / 100:.2f} {request.currency.upper()}\n"
    )

    try:
        sent = send_mail(
            subject,
            body,
            settings.DEFAULT_FROM_EMAIL,
            recipients,
            fail_silently=False,
        )
    except (smtplib.SMTPServerDisconnected, ConnectionError):
        raise
    except Exception:
        logger.warning(
            "Request notification email failed",
            extra={"request_id": request_id, "event": event},
            exc_info=True,
        )
        return 0

    logger.info(
        "Request notification sent",
        extra={"request_id": request_id, "event": event, "recipients": len(recipients)},
    )
    return sent
