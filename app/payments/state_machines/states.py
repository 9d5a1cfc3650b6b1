"""
State enums for payment models.

These are Django TextChoices used as FSMField choices on payment-related
models, so they appear as-is in the database and the admin.

State Machines Overview:

Request payment status (DeliveryRequest.payment_status):
    unpaid → paid
    unpaid → failed → (new intent) unpaid

Refund requests:
    pending → approved
    pending → rejected
    pending → failed

Webhook events:
    pending → processing → processed
    pending → processing → failed (retried by the task)
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    Settlement status of a delivery request's payment.

    PAID and FAILED are terminal for a given provider reference: a repeated
    confirmation for the same reference is a no-op. Only a new intent (new
    reference) moves FAILED back to UNPAID.
    """

    UNPAID = "unpaid", "Unpaid"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"


class PaymentProvider(models.TextChoices):
    """External payment providers a request can be paid through."""

    STRIPE = "stripe", "Stripe"
    PAYSTACK = "paystack", "Paystack"


class PaymentOutcome(models.TextChoices):
    """Outcome reported by a provider for one reference."""

    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"


class RefundState(models.TextChoices):
    """
    States for the RefundRequest lifecycle.

    Terminal states: APPROVED, REJECTED, FAILED
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    FAILED = "failed", "Failed"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


__all__ = [
    "PaymentStatus",
    "PaymentProvider",
    "PaymentOutcome",
    "RefundState",
    "WebhookEventStatus",
]
