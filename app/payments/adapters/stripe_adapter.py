"""
Stripe API adapter for payment operations.

StripeAdapter implements PaymentProvider on top of the stripe SDK. All
Stripe calls go through it to get consistent timeouts, idempotency keys,
error translation and structured logging.

Features:
- A StripeClient per adapter carries the key, timeout and retry policy
- Stripe errors translated to payments.exceptions.ProviderError subclasses
- Structured logging with timing metrics
- No module-level stripe configuration is touched

Configuration (passed by the registry from settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: SDK network retries (default: 3)

Usage:
    adapter = StripeAdapter(api_key="sk_test_...", webhook_secret="whsec_...")
    intent = adapter.create_intent(CreateIntentParams(...))
    result = adapter.verify(intent.reference)
"""

from __future__ import annotations

import logging
import time
from typing import Any, NoReturn

import stripe

from payments.adapters.base import (
    CreateIntentParams,
    IntentResult,
    RefundResult,
    VerificationResult,
    WebhookNotification,
)
from payments.exceptions import (
    CardDeclinedError,
    ProviderAuthenticationError,
    ProviderInvalidRequestError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    WebhookSignatureError,
)
from payments.state_machines import PaymentOutcome, PaymentProvider

logger = logging.getLogger(__name__)


# PaymentIntent status -> settled outcome; anything else is still in flight.
INTENT_OUTCOMES = {
    "succeeded": PaymentOutcome.PAID,
    "canceled": PaymentOutcome.FAILED,
}

# Webhook event type -> settled outcome.
WEBHOOK_OUTCOMES = {
    "payment_intent.succeeded": PaymentOutcome.PAID,
    "payment_intent.payment_failed": PaymentOutcome.FAILED,
    "payment_intent.canceled": PaymentOutcome.FAILED,
}


def captured_amount(intent: dict[str, Any]) -> tuple[int | None, str | None]:
    """Amount received (falling back to amount) and currency of a PaymentIntent payload."""
    amount = intent.get("amount_received") or intent.get("amount")
    return amount, intent.get("currency")


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    Holds its own StripeClient; one instance is built at startup by the
    ProviderRegistry and shared. Tests pass a mock client.
    """

    name = PaymentProvider.STRIPE

    def __init__(
        self,
        api_key: str,
        webhook_secret: str = "",
        timeout: float = 10,
        max_retries: int = 3,
        client: stripe.StripeClient | None = None,
    ) -> None:
        self.webhook_secret = webhook_secret
        self.timeout = timeout
        self.client = client or stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout),
            max_network_retries=max_retries,
        )

    # =========================================================================
    # PaymentProvider
    # =========================================================================

    def create_intent(self, params: CreateIntentParams) -> IntentResult:
        """
        Create a PaymentIntent for a delivery request.

        Raises:
            ProviderError subclass: On any Stripe failure
        """
        metadata = dict(params.metadata)
        if params.request_id:
            metadata["delivery_request_id"] = str(params.request_id)

        create_params: dict[str, Any] = {
            "amount": params.amount_cents,
            "currency": params.currency,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if params.customer_email:
            create_params["receipt_email"] = params.customer_email

        intent = self._call(
            "create_payment_intent",
            {"amount_cents": params.amount_cents, "idempotency_key": params.idempotency_key},
            self.client.v1.payment_intents.create,
            params=create_params,
            options={"idempotency_key": params.idempotency_key},
        )

        return IntentResult(
            provider=self.name,
            reference=intent.id,
            status=intent.status,
            amount_cents=intent.amount,
            currency=intent.currency,
            client_secret=intent.client_secret,
            raw_response=intent.to_dict(),
        )

    def verify(self, reference: str) -> VerificationResult:
        """
        Retrieve a PaymentIntent and map its status to an outcome.

        A requires_payment_method intent that carries a last_payment_error
        has been declined and counts as failed.
        """
        intent = self._call(
            "retrieve_payment_intent",
            {"payment_intent_id": reference},
            self.client.v1.payment_intents.retrieve,
            reference,
        )

        outcome = INTENT_OUTCOMES.get(intent.status)
        if (
            outcome is None
            and intent.status == "requires_payment_method"
            and intent.last_payment_error
        ):
            outcome = PaymentOutcome.FAILED

        return VerificationResult(
            reference=intent.id,
            status=intent.status,
            outcome=outcome,
            amount_cents=intent.amount,
            currency=intent.currency,
            raw_response=intent.to_dict(),
        )

    def refund(
        self, reference: str, amount_cents: int, idempotency_key: str
    ) -> RefundResult:
        refund = self._call(
            "create_refund",
            {
                "payment_intent_id": reference,
                "amount_cents": amount_cents,
                "idempotency_key": idempotency_key,
            },
            self.client.v1.refunds.create,
            params={
                "payment_intent": reference,
                "amount": amount_cents,
                "reason": "requested_by_customer",
            },
            options={"idempotency_key": idempotency_key},
        )

        return RefundResult(
            id=refund.id,
            reference=reference,
            amount_cents=refund.amount,
            status=refund.status,
            raw_response=refund.to_dict(),
        )

    def parse_webhook(
        self, payload: bytes, headers: dict[str, str]
    ) -> WebhookNotification:
        """
        Verify the Stripe-Signature header and reduce the event.

        Raises:
            WebhookSignatureError: Missing or invalid signature
        """
        signature = headers.get("Stripe-Signature") or headers.get("stripe-signature")
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        try:
            event = self.client.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(
                "Invalid webhook signature",
                details={"provider": self.name, "error": str(e)},
            )
        except ValueError as e:
            raise WebhookSignatureError(
                "Malformed webhook payload",
                details={"provider": self.name, "error": str(e)},
            )

        data = event.to_dict()
        event_type = data.get("type", "")
        obj = data.get("data", {}).get("object", {})
        is_intent = obj.get("object") == "payment_intent"
        amount_cents, currency = captured_amount(obj) if is_intent else (None, None)
        return WebhookNotification(
            event_id=data.get("id", ""),
            event_type=event_type,
            reference=obj.get("id") if is_intent else None,
            outcome=WEBHOOK_OUTCOMES.get(event_type),
            amount_cents=amount_cents,
            currency=currency,
            payload=data,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _call(self, operation: str, log_context: dict[str, Any], func, *args, **kwargs):
        """Run one SDK call with the adapter's key, timing it and translating errors."""
        log_context = {"operation": operation, "provider": self.name, **log_context}
        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "stripe_id": getattr(result, "id", None),
                "status": getattr(result, "status", None),
                "duration_ms": duration_ms,
            },
        )
        return result

    def _handle_stripe_error(
        self,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> NoReturn:
        """
        Translate Stripe exceptions to domain exceptions.

        Raises:
            CardDeclinedError: Card was declined
            ProviderInvalidRequestError: Invalid parameters or unknown object
            ProviderAuthenticationError: Bad API key
            ProviderRateLimitError: Rate limited (retryable)
            ProviderTimeoutError: Connection timed out (retryable)
            ProviderUnavailableError: Connection or server error (retryable)
        """
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            raise CardDeclinedError(
                str(error.user_message or error),
                provider=self.name,
                provider_code=error.code,
                decline_code=decline_code,
            ) from error

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise ProviderInvalidRequestError(
                str(error), provider=self.name, provider_code=error.code
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise ProviderAuthenticationError(
                "Stripe authentication failed", provider=self.name
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise ProviderRateLimitError(
                "Stripe rate limit exceeded. Please retry.", provider=self.name
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                raise ProviderTimeoutError(
                    f"Stripe did not respond within {self.timeout}s",
                    provider=self.name,
                ) from error
            raise ProviderUnavailableError(
                "Could not connect to Stripe. Please retry.", provider=self.name
            ) from error

        if isinstance(error, stripe.StripeError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise ProviderUnavailableError(
                "Stripe service error. Please retry.",
                provider=self.name,
                provider_code=getattr(error, "code", None),
            ) from error

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise ProviderUnavailableError(
            f"Unexpected Stripe error: {error}", provider=self.name
        ) from error
