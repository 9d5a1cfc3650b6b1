"""
Payment adapters for external providers.

All external payment API calls go through these adapters to get
consistent error handling, timeouts, idempotency and logging.

Usage:
    from payments.adapters import CreateIntentParams, get_registry

    provider = get_registry().get("stripe")
    intent = provider.create_intent(
        CreateIntentParams(
            amount_cents=5000,
            currency="usd",
            idempotency_key="intent:request_123:1",
        )
    )
"""

from payments.adapters.base import (
    CreateIntentParams,
    IntentResult,
    PaymentProvider,
    RefundResult,
    VerificationResult,
    WebhookNotification,
    backoff_delay,
)
from payments.adapters.paystack_adapter import PaystackAdapter
from payments.adapters.registry import ProviderRegistry, get_registry
from payments.adapters.stripe_adapter import StripeAdapter

__all__ = [
    "CreateIntentParams",
    "IntentResult",
    "PaymentProvider",
    "PaystackAdapter",
    "ProviderRegistry",
    "RefundResult",
    "StripeAdapter",
    "VerificationResult",
    "WebhookNotification",
    "backoff_delay",
    "get_registry",
]
