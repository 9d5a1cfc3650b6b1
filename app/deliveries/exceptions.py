"""
Delivery domain exceptions.

Exception Hierarchy:
    NotFoundError (404)
    ├── TripNotFound
    ├── PackageNotFound
    ├── RequestNotFound
    └── DisputeNotFound
    PermissionDeniedError (403)
    └── NotRequestParticipant - Actor is not the sender/traveler (or wrong one)
    ConflictError (409)
    ├── AlreadyCancelled - Cancelling a request that is already cancelled
    ├── RequestCancelled - Disputing a request that was cancelled
    ├── DisputeOpen - Completion or escrow movement blocked by an open dispute
    ├── DisputeAlreadyExists - A request gets one dispute, ever
    ├── DisputeNotOpen - Resolving a dispute that was already decided
    └── InsufficientCapacity - Package heavier than the trip's remaining capacity

InvalidTransition lives in core.exceptions and is re-exported here,
since both apps raise it.
"""

from __future__ import annotations

from core.exceptions import (
    ConflictError,
    InvalidTransition,
    NotFoundError,
    PermissionDeniedError,
)


class TripNotFound(NotFoundError):
    default_error_code: str = "TRIP_NOT_FOUND"


class PackageNotFound(NotFoundError):
    default_error_code: str = "PACKAGE_NOT_FOUND"


class RequestNotFound(NotFoundError):
    default_error_code: str = "REQUEST_NOT_FOUND"


class DisputeNotFound(NotFoundError):
    default_error_code: str = "DISPUTE_NOT_FOUND"


class NotRequestParticipant(PermissionDeniedError):
    """Raised when the acting user may not perform this action on the request."""

    default_error_code: str = "NOT_REQUEST_PARTICIPANT"


class AlreadyCancelled(ConflictError):
    default_error_code: str = "ALREADY_CANCELLED"


class RequestCancelled(ConflictError):
    """Raised when raising a dispute on a cancelled request; refunds cover that case."""

    default_error_code: str = "REQUEST_CANCELLED"


class DisputeOpen(ConflictError):
    """
    Raised when an open dispute blocks completion, cancellation or escrow
    release. Nothing is modified.
    """

    default_error_code: str = "DISPUTE_OPEN"


class DisputeAlreadyExists(ConflictError):
    default_error_code: str = "DISPUTE_ALREADY_EXISTS"


class DisputeNotOpen(ConflictError):
    default_error_code: str = "DISPUTE_NOT_OPEN"


class InsufficientCapacity(ConflictError):
    default_error_code: str = "INSUFFICIENT_CAPACITY"


__all__ = [
    "TripNotFound",
    "PackageNotFound",
    "RequestNotFound",
    "DisputeNotFound",
    "NotRequestParticipant",
    "AlreadyCancelled",
    "RequestCancelled",
    "DisputeOpen",
    "DisputeAlreadyExists",
    "DisputeNotOpen",
    "InsufficientCapacity",
    "InvalidTransition",
]
