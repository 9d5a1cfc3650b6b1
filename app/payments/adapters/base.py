"""
Provider-neutral payment adapter interface.

Settlement code never talks to Stripe or Paystack directly; it receives a
PaymentProvider from the ProviderRegistry built at startup. Every adapter
translates its SDK/HTTP failures into payments.exceptions.ProviderError
subclasses, so callers only handle one exception family.

Usage:
    provider = registry.get("paystack")
    intent = provider.create_intent(CreateIntentParams(...))
    result = provider.verify(intent.reference)
    if result.outcome == PaymentOutcome.PAID:
        ...
"""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreateIntentParams:
    """
    Parameters for starting a provider payment.

    Attributes:
        amount_cents: Amount in the currency's smallest unit
        currency: ISO 4217 code
        idempotency_key: Key passed to the provider so retries never double-charge
        request_id: Delivery request the payment belongs to (sent as metadata)
        customer_email: Payer email (required by Paystack)
        metadata: Extra key-value pairs attached to the provider object
    """

    amount_cents: int
    currency: str
    idempotency_key: str
    request_id: uuid.UUID | str | None = None
    customer_email: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.currency:
            raise ValueError("currency is required")


@dataclass
class IntentResult:
    """
    A started provider payment.

    Attributes:
        provider: Provider name
        reference: External reference later used to confirm the payment
        status: Provider status string
        client_secret: Stripe client secret for client-side confirmation
        authorization_url: Paystack hosted checkout url
    """

    provider: str
    reference: str
    status: str
    amount_cents: int
    currency: str
    client_secret: str | None = None
    authorization_url: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class VerificationResult:
    """
    What the provider says about a reference.

    outcome is "paid" or "failed" once the provider reached a final answer,
    None while the payment is still in flight.
    """

    reference: str
    status: str
    outcome: str | None
    amount_cents: int | None = None
    currency: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_final(self) -> bool:
        return self.outcome is not None


@dataclass
class RefundResult:
    id: str
    reference: str
    amount_cents: int
    status: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookNotification:
    """
    A signature-verified webhook reduced to what settlement needs.

    outcome is None for event types that do not settle a payment.
    amount_cents and currency are what the provider reports as charged.
    """

    event_id: str
    event_type: str
    reference: str | None
    outcome: str | None
    amount_cents: int | None = None
    currency: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Provider Interface
# =============================================================================


@runtime_checkable
class PaymentProvider(Protocol):
    """Operations every payment provider adapter implements."""

    name: str

    def create_intent(self, params: CreateIntentParams) -> IntentResult: ...

    def verify(self, reference: str) -> VerificationResult: ...

    def refund(
        self, reference: str, amount_cents: int, idempotency_key: str
    ) -> RefundResult: ...

    def parse_webhook(
        self, payload: bytes, headers: dict[str, str]
    ) -> WebhookNotification: ...


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Exponential backoff delay with 0-25% jitter.

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter
