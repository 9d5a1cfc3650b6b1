"""
Webhook handling for payment events from Stripe and Paystack.

Webhooks are verified, stored idempotently, and processed asynchronously
via Celery tasks.
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.views import paystack_webhook, stripe_webhook

__all__ = [
    "dispatch_webhook",
    "paystack_webhook",
    "register_handler",
    "stripe_webhook",
]
