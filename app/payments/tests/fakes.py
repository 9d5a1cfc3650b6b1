"""
In-process payment provider for tests.

FakeProvider satisfies the PaymentProvider protocol and records every
call. Set verify_result / refund_error etc. to steer its answers.
"""

from __future__ import annotations

from payments.adapters import (
    CreateIntentParams,
    IntentResult,
    RefundResult,
    VerificationResult,
    WebhookNotification,
)
from payments.state_machines import PaymentOutcome


class FakeProvider:
    def __init__(self, name: str = "stripe"):
        self.name = name
        self.intents: list[CreateIntentParams] = []
        self.verified: list[str] = []
        self.refunds: list[tuple[str, int, str]] = []

        self.intent_error: Exception | None = None
        self.verify_result: VerificationResult | None = None
        self.verify_error: Exception | None = None
        self.refund_error: Exception | None = None
        self.notification: WebhookNotification | None = None
        self.webhook_error: Exception | None = None

    def create_intent(self, params: CreateIntentParams) -> IntentResult:
        self.intents.append(params)
        if self.intent_error:
            raise self.intent_error
        return IntentResult(
            provider=self.name,
            reference=f"ref_{len(self.intents)}_{params.idempotency_key}",
            status="requires_payment_method",
            amount_cents=params.amount_cents,
            currency=params.currency,
            client_secret="secret_123",
        )

    def verify(self, reference: str) -> VerificationResult:
        self.verified.append(reference)
        if self.verify_error:
            raise self.verify_error
        if self.verify_result is not None:
            return self.verify_result
        return VerificationResult(
            reference=reference, status="succeeded", outcome=PaymentOutcome.PAID
        )

    def refund(self, reference: str, amount_cents: int, idempotency_key: str) -> RefundResult:
        self.refunds.append((reference, amount_cents, idempotency_key))
        if self.refund_error:
            raise self.refund_error
        return RefundResult(
            id=f"re_{len(self.refunds)}",
            reference=reference,
            amount_cents=amount_cents,
            status="succeeded",
        )

    def parse_webhook(self, payload: bytes, headers: dict[str, str]) -> WebhookNotification:
        if self.webhook_error:
            raise self.webhook_error
        return self.notification


def paid(reference: str, amount_cents: int | None = None) -> VerificationResult:
    return VerificationResult(
        reference=reference,
        status="succeeded",
        outcome=PaymentOutcome.PAID,
        amount_cents=amount_cents,
    )


def failed(reference: str) -> VerificationResult:
    return VerificationResult(
        reference=reference, status="failed", outcome=PaymentOutcome.FAILED
    )


def processing(reference: str) -> VerificationResult:
    return VerificationResult(reference=reference, status="processing", outcome=None)
