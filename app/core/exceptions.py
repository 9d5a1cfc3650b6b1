"""
Base exception classes for application-wide error handling.

Every domain error raised by a service inherits from BaseApplicationError so
that views can render it uniformly (see core.viewset_mixins.DomainErrorMixin).

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input or business-rule validation failures (400)
    ├── NotFoundError - Resource not found (404)
    ├── PermissionDeniedError - Authorization failures (403)
    ├── ConflictError - State conflicts, idempotency guards, stale writes (409)
    │   └── InvalidTransition - State machine transition not allowed
    └── ExternalServiceError - Payment provider / third-party failures (502)

Usage:
    from core.exceptions import ConflictError, NotFoundError

    raise NotFoundError(
        f"Trip {trip_id} not found",
        error_code="TRIP_NOT_FOUND",
        details={"trip_id": str(trip_id)},
    )

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import status

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, amounts, states)
        http_status: Status code used when the error reaches a view
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Request 1f0c... not found",
                "error_code": "REQUEST_NOT_FOUND",
                "details": {"request_id": "1f0c..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails in the service layer.

    DRF serializers still handle request-shape validation; this covers
    business rules such as non-positive amounts or out-of-range ratings.
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = status.HTTP_400_BAD_REQUEST


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource is not found."""

    default_error_code: str = "NOT_FOUND"
    http_status: int = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the acting user may not perform an operation.

    Covers ownership checks (only the traveler may update a trip), role
    checks (only staff may resolve disputes) and the KYC gate.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = status.HTTP_403_FORBIDDEN


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with the current resource state.

    Use for:
    - Invalid state transitions
    - Idempotency guards that must be reported (already cancelled)
    - Optimistic locking failures
    - Insufficient balances
    """

    default_error_code: str = "CONFLICT"
    http_status: int = status.HTTP_409_CONFLICT


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but do not expose provider
    internals to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = status.HTTP_502_BAD_GATEWAY


class InvalidTransition(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed (see core.fsm.apply_transition),
    and is also raised when a delayed operation (e.g. a late payment
    confirmation) targets a record that already reached a terminal state.
    The record is left unmodified.

    Attributes:
        details: Contains current_state and the attempted transition
    """

    default_error_code: str = "INVALID_TRANSITION"
