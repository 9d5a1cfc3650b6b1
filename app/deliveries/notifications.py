"""
Fire-and-forget notifications for delivery request events.

notify() schedules an email task once the surrounding transaction commits.
Nothing here may fail the operation that triggered it: dispatch errors are
logged and dropped.

Usage:
    from deliveries.notifications import RequestEvent, notify

    notify(request, RequestEvent.ACCEPTED)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import models, transaction

if TYPE_CHECKING:
    from deliveries.models import DeliveryRequest

logger = logging.getLogger(__name__)


class RequestEvent(models.TextChoices):
    CREATED = "created", "Request created"
    ACCEPTED = "accepted", "Request accepted"
    REJECTED = "rejected", "Request rejected"
    STATUS_CHANGED = "status_changed", "Status changed"
    COMPLETED = "completed", "Delivery completed"
    CANCELLED = "cancelled", "Request cancelled"
    PAYMENT_CONFIRMED = "payment_confirmed", "Payment confirmed"
    DISPUTE_RAISED = "dispute_raised", "Dispute raised"
    DISPUTE_DECIDED = "dispute_decided", "Dispute decided"


def notify(request: DeliveryRequest, event: str) -> None:
    """Queue a notification for both participants after commit."""
    request_id = str(request.id)
    status = str(request.status)
    transaction.on_commit(lambda: _dispatch(request_id, event, status))


def _dispatch(request_id: str, event: str, status: str) -> None:
    from deliveries.tasks import send_request_notification

    try:
        send_request_notification.delay(request_id, event, status)
    except Exception:
        logger.warning(
            "Failed to queue request notification",
            extra={"request_id": request_id, "event": event},
            exc_info=True,
        )
