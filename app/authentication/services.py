"""
User account services.

UserService holds the account rules other apps depend on:

- register: create a user, optionally linking a referrer
- set_kyc_status: admin decision on identity verification
- require_kyc_verified: gate used before money-moving actions
- apply_referral_discount: one-time discount, safe under concurrency

Usage:
    from authentication.services import UserService

    UserService.require_kyc_verified(request.user)
    discount = UserService.apply_referral_discount(user, amount_cents=5000)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from django.conf import settings
from django.db import transaction

from authentication.exceptions import InvalidReferralCode, KYCNotVerified, UserNotFound
from authentication.models import KYCStatus, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferralDiscount:
    """
    Outcome of a referral discount request.

    Attributes:
        applied: True only on the call that consumed the discount
        discount_cents: Discount granted by this call (0 when not applied)
        percent: Discount percentage in force
    """

    applied: bool
    discount_cents: int
    percent: int


def percent_of(amount_cents: int, percent: int) -> int:
    """Return percent of amount_cents, rounded half up to a whole cent."""
    return (amount_cents * percent + 50) // 100


class UserService:
    """
    Service for account operations.

    All methods are static; state lives in the database.
    """

    @staticmethod
    def get_user(user_id: uuid.UUID | str) -> User:
        """
        Fetch an active user by id.

        Raises:
            UserNotFound: If no active user has this id
        """
        try:
            return User.objects.get(pk=user_id, is_active=True)
        except (User.DoesNotExist, ValueError, TypeError):
            raise UserNotFound(
                f"User {user_id} not found",
                details={"user_id": str(user_id)},
            )

    @staticmethod
    @transaction.atomic
    def register(
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        phone: str = "",
        referral_code: str | None = None,
    ) -> User:
        """
        Create a new account.

        Args:
            email: Login email
            password: Raw password (hashed by the manager)
            first_name / last_name / phone: Contact details
            referral_code: Optional code of the referring user

        Returns:
            The created User (KYC pending)

        Raises:
            InvalidReferralCode: If referral_code matches no user
        """
        referrer = None
        if referral_code:
            referrer = User.objects.filter(
                referral_code=referral_code.strip().upper()
            ).first()
            if referrer is None:
                raise InvalidReferralCode(
                    "Referral code not recognised",
                    details={"referral_code": referral_code},
                )

        user = User.objects.create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            referred_by=referrer,
        )
        logger.info(
            "User registered",
            extra={
                "user_id": str(user.id),
                "referred_by": str(referrer.id) if referrer else None,
            },
        )
        return user

    @staticmethod
    def set_kyc_status(user_id: uuid.UUID | str, kyc_status: str) -> User:
        """
        Record an admin's identity verification decision.

        Args:
            user_id: User being reviewed
            kyc_status: One of KYCStatus values

        Returns:
            The updated User
        """
        if kyc_status not in KYCStatus.values:
            raise ValueError(f"Unknown KYC status: {kyc_status}")

        user = UserService.get_user(user_id)
        previous = user.kyc_status
        user.kyc_status = kyc_status
        user.save(update_fields=["kyc_status", "updated_at"])

        logger.info(
            "KYC status changed",
            extra={
                "user_id": str(user.id),
                "from_status": previous,
                "to_status": kyc_status,
            },
        )
        return user

    @staticmethod
    def require_kyc_verified(user: User) -> None:
        """
        Enforce the KYC gate for money-moving actions.

        Disabled entirely when settings.KYC_REQUIRED_FOR_PAYMENTS is False.

        Raises:
            KYCNotVerified: If the user is not verified
        """
        if not settings.KYC_REQUIRED_FOR_PAYMENTS:
            return
        if user.kyc_status != KYCStatus.VERIFIED:
            raise KYCNotVerified(
                "Identity verification is required for this action",
                details={"user_id": str(user.id), "kyc_status": user.kyc_status},
            )

    @staticmethod
    def apply_referral_discount(user: User, amount_cents: int) -> ReferralDiscount:
        """
        Consume the user's one-time referral discount.

        The flag flip is a conditional UPDATE, so two concurrent calls can
        never both see the discount as unused. Only the call that flips the
        flag receives a non-zero discount; every later call is a no-op.

        Args:
            user: User paying for a delivery
            amount_cents: Amount the discount applies to (price + insurance)

        Returns:
            ReferralDiscount describing this call's outcome
        """
        percent = settings.REFERRAL_DISCOUNT_PERCENT
        if amount_cents <= 0:
            return ReferralDiscount(applied=False, discount_cents=0, percent=percent)

        flipped = User.objects.filter(
            pk=user.pk, has_used_referral_discount=False
        ).update(has_used_referral_discount=True)

        if not flipped:
            logger.info(
                "Referral discount already used",
                extra={"user_id": str(user.pk)},
            )
            return ReferralDiscount(applied=False, discount_cents=0, percent=percent)

        user.has_used_referral_discount = True
        discount_cents = percent_of(amount_cents, percent)
        logger.info(
            "Referral discount applied",
            extra={
                "user_id": str(user.pk),
                "amount_cents": amount_cents,
                "discount_cents": discount_cents,
                "percent": percent,
            },
        )
        return ReferralDiscount(
            applied=True, discount_cents=discount_cents, percent=percent
        )
