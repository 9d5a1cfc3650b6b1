"""
Payment-specific exceptions.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError - Payment entity lookup failures (404)
    │   ├── UnknownReference - No delivery request carries this provider reference
    │   └── RefundNotFound
    ├── PaymentValidationError - Payment input failures (400)
    │   └── WebhookSignatureError - Webhook signature did not verify
    └── PaymentProcessingError - Provider-side failures (502)
        ├── ProviderError - Base for errors raised by provider adapters
        │   ├── CardDeclinedError - Card declined (permanent)
        │   ├── ProviderInvalidRequestError - Bad params / unknown object (permanent)
        │   ├── ProviderAuthenticationError - Bad API key (permanent)
        │   ├── ProviderRateLimitError - Rate limited (transient, retry)
        │   ├── ProviderUnavailableError - API unavailable (transient, retry)
        │   └── ProviderTimeoutError - Request timeout (transient, retry)
        └── VerificationError - Provider could not confirm a payment (retry later)

    EscrowError (ConflictError, 409)
    ├── AlreadyReleased - Escrow for a request was already released
    ├── AlreadyCleared - Escrow for a request was already removed
    ├── EscrowNotHeld - Release/removal attempted before any hold
    └── PaymentNotSettled - Hold attempted before the payment was confirmed

    RefundNotAllowed - Refund state/eligibility conflict (ConflictError)
    StaleRecordError - Optimistic locking conflict (ConflictError)
    LockAcquisitionError - Distributed lock timeout (ConflictError)
    InvalidTransition - Re-exported from core.exceptions

Usage:
    from payments.exceptions import VerificationError, UnknownReference

    try:
        SettlementService.confirm(reference, outcome)
    except VerificationError as e:
        if e.is_retryable:
            raise self.retry(exc=e)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import status

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    InvalidTransition,
    NotFoundError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """Base exception for all payment domain errors."""

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """Raised when a payment-related entity cannot be found."""

    default_error_code: str = "PAYMENT_NOT_FOUND"
    http_status: int = status.HTTP_404_NOT_FOUND


class UnknownReference(PaymentNotFoundError):
    """
    Raised when a provider confirmation names a reference that no delivery
    request has recorded. Nothing is mutated when this is raised.
    """

    default_error_code: str = "UNKNOWN_REFERENCE"


class RefundNotFound(PaymentNotFoundError):
    default_error_code: str = "REFUND_NOT_FOUND"


class PaymentValidationError(PaymentError):
    """Raised when payment input fails validation (unsupported provider, etc.)."""

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class WebhookSignatureError(PaymentValidationError):
    """Raised when a webhook's provider signature does not verify."""

    default_error_code: str = "INVALID_WEBHOOK_SIGNATURE"


class PaymentProcessingError(PaymentError, ExternalServiceError):
    """Raised when a payment cannot be processed by the external provider."""

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"
    http_status: int = status.HTTP_502_BAD_GATEWAY
    is_retryable: bool = False


# =============================================================================
# Provider Exceptions
# =============================================================================


class ProviderError(PaymentProcessingError):
    """
    Base exception for errors raised by payment provider adapters.

    Attributes:
        provider: "stripe" or "paystack"
        provider_code: The provider's own error code, when it sent one
        decline_code: Card decline code (Stripe only)
        is_retryable: True for transient failures safe to retry with backoff
    """

    default_error_code: str = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        error_code: str | None = None,
        provider_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider:
            details["provider"] = provider
        if provider_code:
            details["provider_code"] = provider_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider = provider
        self.provider_code = provider_code
        self.decline_code = decline_code


class CardDeclinedError(ProviderError):
    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class ProviderInvalidRequestError(ProviderError):
    default_error_code: str = "PROVIDER_INVALID_REQUEST"
    is_retryable: bool = False


class ProviderAuthenticationError(ProviderError):
    default_error_code: str = "PROVIDER_AUTHENTICATION_FAILED"
    is_retryable: bool = False


class ProviderRateLimitError(ProviderError):
    default_error_code: str = "PROVIDER_RATE_LIMITED"
    is_retryable: bool = True


class ProviderUnavailableError(ProviderError):
    """Provider API returned 5xx or the connection failed."""

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    is_retryable: bool = True


class ProviderTimeoutError(ProviderError):
    """The bounded provider timeout elapsed before a response arrived."""

    default_error_code: str = "PROVIDER_TIMEOUT"
    is_retryable: bool = True


class VerificationError(PaymentProcessingError):
    """
    Raised when the provider could not confirm a payment's outcome.

    The request's payment status is left unpaid; the caller may retry later.
    Timeouts and transport failures are always retryable.
    """

    default_error_code: str = "PAYMENT_VERIFICATION_FAILED"
    is_retryable: bool = True

    def __init__(
        self,
        message: str,
        is_retryable: bool = True,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code=error_code, details=details)
        self.is_retryable = is_retryable


# =============================================================================
# Escrow Exceptions
# =============================================================================


class EscrowError(ConflictError):
    """Base exception for escrow engine conflicts."""

    default_error_code: str = "ESCROW_ERROR"


class AlreadyReleased(EscrowError):
    default_error_code: str = "ESCROW_ALREADY_RELEASED"


class AlreadyCleared(EscrowError):
    default_error_code: str = "ESCROW_ALREADY_CLEARED"


class EscrowNotHeld(EscrowError):
    default_error_code: str = "ESCROW_NOT_HELD"


class PaymentNotSettled(EscrowError):
    """Raised when escrow is requested for a request whose payment is not paid."""

    default_error_code: str = "PAYMENT_NOT_SETTLED"


class ReceiptNotConfirmed(EscrowError):
    """Raised when release is attempted before the sender confirmed receipt."""

    default_error_code: str = "RECEIPT_NOT_CONFIRMED"


# =============================================================================
# Refund Exceptions
# =============================================================================


class RefundNotAllowed(ConflictError):
    """
    Raised when a refund cannot be filed or decided in the current state.

    Examples: request not cancelled, payment not paid, refund already
    decided, refund amount above the removed escrow.
    """

    default_error_code: str = "REFUND_NOT_ALLOWED"


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class StaleRecordError(ConflictError):
    """
    Raised when optimistic locking detects concurrent modification.

    Attributes:
        details: Contains pk, expected_version, and current_version
    """

    default_error_code: str = "STALE_RECORD"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Attributes:
        details: Contains key and timeout information
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


__all__ = [
    # Payment domain
    "PaymentError",
    "PaymentNotFoundError",
    "UnknownReference",
    "RefundNotFound",
    "PaymentValidationError",
    "WebhookSignatureError",
    "PaymentProcessingError",
    # Providers
    "ProviderError",
    "CardDeclinedError",
    "ProviderInvalidRequestError",
    "ProviderAuthenticationError",
    "ProviderRateLimitError",
    "ProviderUnavailableError",
    "ProviderTimeoutError",
    "VerificationError",
    # Escrow
    "EscrowError",
    "AlreadyReleased",
    "AlreadyCleared",
    "EscrowNotHeld",
    "PaymentNotSettled",
    "ReceiptNotConfirmed",
    # Refunds
    "RefundNotAllowed",
    # Concurrency control
    "StaleRecordError",
    "LockAcquisitionError",
    "InvalidTransition",
]
