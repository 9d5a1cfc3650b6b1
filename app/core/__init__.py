"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps (authentication,
payments, deliveries). No business rules live here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - VersionedMixin: Optimistic-locking version counter

Exceptions (import from core.exceptions):
    - BaseApplicationError and its HTTP-aware subclasses

ViewSet Mixins (import from core.viewset_mixins):
    - DomainErrorMixin: Render BaseApplicationError as a JSON response

Note:
    Django models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    InvalidTransition,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

__all__ = [
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "ExternalServiceError",
    "InvalidTransition",
]
