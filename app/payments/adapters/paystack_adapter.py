"""
Paystack REST adapter for payment operations.

PaystackAdapter implements PaymentProvider over Paystack's HTTP API using
a requests.Session. Every call carries the configured timeout; timeouts and
connection failures surface as retryable ProviderError subclasses, never as
a payment outcome.

Paystack references are chosen by us: the idempotency key of the intent is
sent as the transaction reference, so re-initializing the same intent is
rejected by Paystack instead of creating a second charge.

Configuration (passed by the registry from settings):
- PAYSTACK_SECRET_KEY: Secret key (also the webhook HMAC key)
- PAYSTACK_BASE_URL: API root (default: https://api.paystack.co)
- PAYSTACK_API_TIMEOUT_SECONDS: Per-request timeout (default: 10)
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any

import requests

from payments.adapters.base import (
    CreateIntentParams,
    IntentResult,
    RefundResult,
    VerificationResult,
    WebhookNotification,
)
from payments.exceptions import (
    ProviderAuthenticationError,
    ProviderInvalidRequestError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    WebhookSignatureError,
)
from payments.state_machines import PaymentOutcome, PaymentProvider

logger = logging.getLogger(__name__)


TRANSACTION_OUTCOMES = {
    "success": PaymentOutcome.PAID,
    "failed": PaymentOutcome.FAILED,
    "abandoned": PaymentOutcome.FAILED,
    "reversed": PaymentOutcome.FAILED,
}

WEBHOOK_OUTCOMES = {
    "charge.success": PaymentOutcome.PAID,
    "charge.failed": PaymentOutcome.FAILED,
}


def captured_amount(data: dict[str, Any]) -> tuple[int | None, str | None]:
    """Amount (kobo/cents) and lower-cased currency of a transaction object."""
    currency = data.get("currency")
    return data.get("amount"), currency.lower() if currency else None


class PaystackAdapter:
    """Adapter for the Paystack transaction and refund APIs."""

    name = PaymentProvider.PAYSTACK

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 10,
        session: requests.Session | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    # =========================================================================
    # PaymentProvider
    # =========================================================================

    def create_intent(self, params: CreateIntentParams) -> IntentResult:
        """
        Initialize a transaction and return its hosted checkout url.

        Raises:
            ProviderInvalidRequestError: customer_email missing or rejected params
            ProviderError subclass: On any other Paystack failure
        """
        if not params.customer_email:
            raise ProviderInvalidRequestError(
                "Paystack requires a customer email", provider=self.name
            )

        metadata = dict(params.metadata)
        if params.request_id:
            metadata["delivery_request_id"] = str(params.request_id)

        data = self._request(
            "POST",
            "/transaction/initialize",
            json={
                "email": params.customer_email,
                "amount": params.amount_cents,
                "currency": params.currency.upper(),
                "reference": params.idempotency_key,
                "metadata": metadata,
            },
        )

        return IntentResult(
            provider=self.name,
            reference=data.get("reference", params.idempotency_key),
            status="initialized",
            amount_cents=params.amount_cents,
            currency=params.currency,
            authorization_url=data.get("authorization_url"),
            raw_response=data,
        )

    def verify(self, reference: str) -> VerificationResult:
        data = self._request("GET", f"/transaction/verify/{reference}")
        status = data.get("status", "")
        amount_cents, currency = captured_amount(data)
        return VerificationResult(
            reference=data.get("reference", reference),
            status=status,
            outcome=TRANSACTION_OUTCOMES.get(status),
            amount_cents=amount_cents,
            currency=currency,
            raw_response=data,
        )

    def refund(
        self, reference: str, amount_cents: int, idempotency_key: str
    ) -> RefundResult:
        """
        Refund part or all of a transaction.

        Paystack has no idempotency header; the caller's lock and the
        refund request's state machine stop duplicate submissions.
        """
        data = self._request(
            "POST",
            "/refund",
            json={
                "transaction": reference,
                "amount": amount_cents,
                "merchant_note": idempotency_key,
            },
        )
        return RefundResult(
            id=str(data.get("id", "")),
            reference=reference,
            amount_cents=data.get("amount", amount_cents),
            status=data.get("status", ""),
            raw_response=data,
        )

    def parse_webhook(
        self, payload: bytes, headers: dict[str, str]
    ) -> WebhookNotification:
        """
        Verify x-paystack-signature (HMAC-SHA512 of the raw body) and reduce the event.

        Paystack events have no id of their own; the event name plus the
        transaction id identifies a delivery.

        Raises:
            WebhookSignatureError: Missing or invalid signature, or bad JSON
        """
        signature = headers.get("x-paystack-signature") or headers.get(
            "X-Paystack-Signature"
        )
        if not signature or not self.signature_is_valid(payload, signature):
            raise WebhookSignatureError(
                "Invalid webhook signature", details={"provider": self.name}
            )

        try:
            body = json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError(
                "Malformed webhook payload",
                details={"provider": self.name, "error": str(e)},
            )

        event_type = body.get("event", "")
        data = body.get("data") or {}
        amount_cents, currency = captured_amount(data)
        return WebhookNotification(
            event_id=f"{event_type}:{data.get('id') or data.get('reference')}",
            event_type=event_type,
            reference=data.get("reference"),
            outcome=WEBHOOK_OUTCOMES.get(event_type),
            amount_cents=amount_cents,
            currency=currency,
            payload=body,
        )

    def signature_is_valid(self, payload: bytes, signature: str) -> bool:
        computed = hmac.new(
            self.secret_key.encode(), payload, hashlib.sha512
        ).hexdigest()
        return hmac.compare_digest(computed, signature)

    # =========================================================================
    # HTTP
    # =========================================================================

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        """
        Send one request and return the response's `data` object.

        Raises:
            ProviderTimeoutError: Timeout elapsed (retryable)
            ProviderUnavailableError: Connection failure or 5xx (retryable)
            ProviderRateLimitError: 429 (retryable)
            ProviderAuthenticationError: 401
            ProviderInvalidRequestError: Other 4xx or status=false body
        """
        log_context = {"provider": self.name, "method": method, "path": path}
        start_time = time.time()

        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers={"Authorization": f"Bearer {self.secret_key}"},
                timeout=self.timeout,
                **kwargs,
            )
        except requests.Timeout as e:
            logger.warning("Paystack request timed out", extra=log_context)
            raise ProviderTimeoutError(
                f"Paystack did not respond within {self.timeout}s", provider=self.name
            ) from e
        except requests.RequestException as e:
            logger.error(
                "Connection error to Paystack", extra=log_context, exc_info=True
            )
            raise ProviderUnavailableError(
                "Could not connect to Paystack. Please retry.", provider=self.name
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        log_context = {
            **log_context,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }

        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("message") or response.reason or "Paystack error"

        if response.status_code == 401:
            logger.critical("Paystack authentication failed", extra=log_context)
            raise ProviderAuthenticationError(message, provider=self.name)
        if response.status_code == 429:
            logger.warning("Rate limited by Paystack", extra=log_context)
            raise ProviderRateLimitError(message, provider=self.name)
        if response.status_code >= 500:
            logger.error("Paystack server error", extra=log_context)
            raise ProviderUnavailableError(message, provider=self.name)
        if response.status_code >= 400 or not body.get("status"):
            logger.error("Invalid request to Paystack", extra=log_context)
            raise ProviderInvalidRequestError(
                message,
                provider=self.name,
                provider_code=str(response.status_code),
            )

        logger.info("Paystack operation completed", extra=log_context)
        return body.get("data") or {}
