"""
Account-level exceptions.

Exception Hierarchy:
    NotFoundError
    └── UserNotFound
    PermissionDeniedError
    └── KYCNotVerified - Money-moving action attempted before KYC approval
    ValidationError
    └── InvalidReferralCode
"""

from __future__ import annotations

from core.exceptions import NotFoundError, PermissionDeniedError, ValidationError


class UserNotFound(NotFoundError):
    """Raised when a referenced user does not exist or is inactive."""

    default_error_code: str = "USER_NOT_FOUND"


class KYCNotVerified(PermissionDeniedError):
    """
    Raised when a user whose identity is not verified attempts an action
    gated on KYC (creating a delivery request as sender, withdrawing funds).
    """

    default_error_code: str = "KYC_NOT_VERIFIED"


class InvalidReferralCode(ValidationError):
    """Raised when a registration references an unknown referral code."""

    default_error_code: str = "INVALID_REFERRAL_CODE"


__all__ = [
    "UserNotFound",
    "KYCNotVerified",
    "InvalidReferralCode",
]
