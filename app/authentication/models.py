"""
Authentication models.

This module defines the custom User model. Besides email-based login it
carries the two pieces of account state the delivery marketplace depends on:

- kyc_status: identity verification gate for money-moving actions
- has_used_referral_discount: one-shot referral discount flag

Balances are NOT stored on the user; they live in the payments ledger
(payments.ledger) as per-user balance and escrow accounts.

Related files:
    - managers.py: Custom user manager for email-based creation
    - services.py: UserService business logic (KYC, referral)
"""

import secrets

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from authentication.managers import UserManager


def generate_referral_code() -> str:
    """Return a short, URL-safe, upper-case referral code."""
    return secrets.token_hex(4).upper()


class KYCStatus(models.TextChoices):
    """
    Identity verification state of a user.

    Lifecycle:
        PENDING -> VERIFIED
        PENDING -> REJECTED
        REJECTED -> VERIFIED (after resubmission reviewed by an admin)
    """

    PENDING = "pending", "Pending"
    VERIFIED = "verified", "Verified"
    REJECTED = "rejected", "Rejected"


class User(UUIDPrimaryKeyMixin, AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        first_name / last_name / phone: Contact details shown to counterparties
        kyc_status: pending | verified | rejected
        has_used_referral_discount: Set exactly once, never cleared
        referral_code: Code other users can register with
        referred_by: User whose referral code was used at registration
        is_active / is_staff: Django account flags
        date_joined / updated_at: Timestamps

    Usage:
        user = User.objects.create_user(
            email='sender@example.com',
            password='securepassword'
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    phone = models.CharField(max_length=32, blank=True)

    kyc_status = models.CharField(
        max_length=20,
        choices=KYCStatus.choices,
        default=KYCStatus.PENDING,
        db_index=True,
        help_text="Identity verification state",
    )
    has_used_referral_discount = models.BooleanField(
        default=False,
        help_text="Whether the one-time referral discount has been consumed",
    )
    referral_code = models.CharField(
        max_length=16,
        unique=True,
        default=generate_referral_code,
        help_text="Code other users can register with",
    )
    referred_by = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="referrals",
        help_text="User whose referral code was used at registration",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email

    def get_short_name(self):
        return self.first_name or self.email.split("@")[0]

    @property
    def is_kyc_verified(self) -> bool:
        return self.kyc_status == KYCStatus.VERIFIED
